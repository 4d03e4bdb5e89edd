"""
BoundaryPolicy - Classify fake-quant marker edges as hard or soft boundaries

Fake-quant markers record where training simulated quantization. Rewriting
operators across them can make inference arithmetic diverge from what was
trained, so by default every marker's output edge is a hard boundary.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Tuple

from ..config.policy import PolicyConfig
from ..diagnostics import BOUNDARY_RELAXED, DiagnosticLog
from ..ir.graph import GraphView


class BoundaryKind(Enum):
    HARD = "hard"
    SOFT = "soft"


@dataclass(frozen=True)
class BoundaryEdge:
    """
    A marker output edge.

    Attributes:
        array_name: The marker's output array
        marker: Name of the fake-quant operator producing the array
        kind: HARD (no pass may cross) or SOFT (crossing allowed with a warning)
        consumers: Operators reading the array
    """

    array_name: str
    marker: str
    kind: BoundaryKind
    consumers: Tuple[str, ...] = ()

    @property
    def is_hard(self) -> bool:
        return self.kind is BoundaryKind.HARD


class BoundarySet:
    """Boundaries of one graph plus the markers scheduled for removal."""

    def __init__(self, edges=(), removed_markers=(), diagnostics=None):
        self.edges: Tuple[BoundaryEdge, ...] = tuple(edges)
        self.removed_markers: Tuple[str, ...] = tuple(removed_markers)
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
        self._by_array: Dict[str, BoundaryEdge] = {e.array_name: e for e in self.edges}

    def hard(self) -> List[BoundaryEdge]:
        return [e for e in self.edges if e.kind is BoundaryKind.HARD]

    def soft(self) -> List[BoundaryEdge]:
        return [e for e in self.edges if e.kind is BoundaryKind.SOFT]

    def get(self, array_name: str):
        return self._by_array.get(array_name)

    def is_hard(self, array_name: str) -> bool:
        edge = self._by_array.get(array_name)
        return edge is not None and edge.is_hard

    def is_soft(self, array_name: str) -> bool:
        edge = self._by_array.get(array_name)
        return edge is not None and not edge.is_hard

    def __iter__(self) -> Iterator[BoundaryEdge]:
        return iter(self.edges)

    def __len__(self) -> int:
        return len(self.edges)

    def __contains__(self, array_name: str) -> bool:
        return array_name in self._by_array

    def __repr__(self) -> str:
        return (f"BoundarySet(hard={len(self.hard())}, soft={len(self.soft())}, "
                f"removed_markers={len(self.removed_markers)})")


class BoundaryPolicy:
    """
    Derives the boundary set of a graph from its fake-quant markers.

    - drop_fake_quant: markers are scheduled for removal, no boundary recorded
    - relax_quant_boundary: boundaries are recorded as SOFT, with a warning
    - otherwise: boundaries are HARD
    """

    def __init__(self, policy: PolicyConfig, verbose: bool = False):
        self.policy = policy
        self.verbose = verbose

    def compute_boundaries(self, graph: GraphView) -> BoundarySet:
        """
        Classify every marker output edge of the graph.

        Args:
            graph: Snapshot of the graph (not modified)

        Returns:
            BoundarySet in marker order
        """
        diagnostics = DiagnosticLog()
        edges: List[BoundaryEdge] = []
        removed: List[str] = []

        for marker in graph.markers():
            if self.policy.drop_fake_quant:
                removed.append(marker.name)
                self._log(f"{marker.name}: dropped")
                continue

            kind = BoundaryKind.SOFT if self.policy.relax_quant_boundary else BoundaryKind.HARD
            for array_name in marker.outputs:
                consumers = tuple(op.name for op in graph.consumers_of(array_name))
                edges.append(BoundaryEdge(array_name, marker.name, kind, consumers))
                self._log(f"{marker.name} -> {array_name}: {kind.value} boundary")

            if kind is BoundaryKind.SOFT:
                diagnostics.warning(
                    BOUNDARY_RELAXED,
                    "Boundary relaxed; passes may reorder across this marker and "
                    "inference arithmetic may no longer match training",
                    marker.name,
                )

        return BoundarySet(edges, removed, diagnostics)

    def _log(self, message: str):
        """Print message if verbose mode is enabled."""
        if self.verbose:
            print(f"[{self.__class__.__name__}] {message}")
