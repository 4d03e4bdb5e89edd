"""
Pass to fuse recurrent-cell subgraphs (e.g. LSTM cells) into single operators.

Which operator sequences make up a cell is supplied by the caller as a pattern
catalog. Matching is heuristic: not every LSTM is identified, which is why the
pass can be disabled on its own.
"""

from typing import List, Optional, Sequence, Set, Tuple

from .base import PassSite, PassStage, RewritePass
from ..config.policy import PolicyConfig
from ..ir.graph import GraphView
from ..ir.node import OperatorNode


class RecurrentCellFusionPass(RewritePass):
    """
    Fuses linear chains of operators whose op types match a pattern.

    A chain matches when each operator's first output is consumed only by the
    next operator of the chain. Patterns are tried in catalog order at each
    starting operator; an operator belongs to at most one site.
    """

    name = "fuse_recurrent_cells"
    stage = PassStage.FUSION
    crosses_boundaries = False

    def __init__(self, patterns: Sequence[Sequence[str]], required: bool = False,
                 verbose: bool = False):
        """
        Initialize the pass.

        Args:
            patterns: Op-type sequences, each describing one fusible cell
        """
        super().__init__(required=required, verbose=verbose)
        self.patterns: List[Tuple[str, ...]] = [tuple(p) for p in patterns]
        for pattern in self.patterns:
            if len(pattern) < 2:
                raise ValueError(f"Fusion pattern {pattern} must have at least two operators")

    def is_enabled(self, policy: PolicyConfig) -> bool:
        return not policy.disable_recurrent_fusion

    def disabled_reason(self, policy: PolicyConfig) -> str:
        return "recurrent cell fusion disabled"

    def find_sites(self, graph: GraphView) -> List[PassSite]:
        claimed: Set[str] = set()
        sites = []

        for op in graph.topological_sort():
            if op.name in claimed:
                continue
            for pattern in self.patterns:
                chain = self._match_chain(graph, op, pattern, claimed)
                if chain is None:
                    continue
                claimed.update(o.name for o in chain)
                internal = tuple(o.outputs[0] for o in chain[:-1])
                sites.append(PassSite(operators=tuple(o.name for o in chain), arrays=internal))
                self._log(f"Matched {pattern} at {chain[0].name}")
                break

        self.stats = {'cells_fused': len(sites)}
        return sites

    def _match_chain(self, graph: GraphView, start: OperatorNode, pattern: Tuple[str, ...],
                     claimed: Set[str]) -> Optional[List[OperatorNode]]:
        if start.op_type != pattern[0]:
            return None

        chain = [start]
        current = start
        for op_type in pattern[1:]:
            if not current.outputs:
                return None
            consumers = graph.consumers_of(current.outputs[0])
            if len(consumers) != 1:
                return None
            nxt = consumers[0]
            if nxt.op_type != op_type or nxt.name in claimed:
                return None
            chain.append(nxt)
            current = nxt
        return chain
