"""
Pass to drop control dependencies while importing a training graph.
"""

from typing import List

from .base import PassSite, PassStage, RewritePass
from ..config.policy import PolicyConfig
from ..ir.graph import GraphView


class DropControlDependencyPass(RewritePass):
    """
    Removes control-dependency edges.

    Control edges carry no data, so dropping them never moves an operator
    across a fake-quant marker.
    """

    name = "drop_control_dependency"
    stage = PassStage.IMPORT
    crosses_boundaries = False

    def is_enabled(self, policy: PolicyConfig) -> bool:
        return policy.drops_control_dependencies

    def disabled_reason(self, policy: PolicyConfig) -> str:
        return (f"control dependencies kept (mode={policy.drop_control_dependency.name}, "
                f"input={policy.input_format.name}, output={policy.output_format.name})")

    def find_sites(self, graph: GraphView) -> List[PassSite]:
        sites = []
        for op in graph.operators:
            if op.control_deps:
                sites.append(PassSite(operators=(op.name,) + op.control_deps))
                self._log(f"{op.name}: dropping {len(op.control_deps)} control dependencies")
        self.stats = {'operators_with_control_deps': len(sites),
                      'edges': sum(len(s.operators) - 1 for s in sites)}
        return sites
