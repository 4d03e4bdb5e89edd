"""
TransformationScheduler - Order and gate rewrite passes against boundaries

Passes that never cross a boundary get the whole graph. Passes that may
reorder operators across fake-quant markers get the graph partitioned at
hard boundaries. For every pass, a site touching a hard boundary is
rejected, and soft boundaries may be crossed, always with a warning.

Once marker removal is scheduled, later passes see their sites without
the removed markers.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set, Tuple

from .base import PassSite, PassStage, RewritePass
from .control_dependency import DropControlDependencyPass
from .fake_quant_removal import RemoveFakeQuantPass
from ..boundaries.policy import BoundarySet
from ..config.policy import PolicyConfig
from ..diagnostics import DiagnosticLog, SITE_REJECTED, SOFT_BOUNDARY_CROSSED
from ..errors import SchedulingConflict
from ..ir.graph import GraphView

WHOLE_GRAPH = "graph"


@dataclass(frozen=True)
class Region:
    """
    Part of the graph a pass may touch.

    Attributes:
        name: 'graph' for the whole graph, 'region_<n>' for a partition
        operators: Operators in the region, in graph order
        arrays: Arrays the pass may rewrite, in graph order
    """

    name: str
    operators: Tuple[str, ...]
    arrays: Tuple[str, ...]


@dataclass(frozen=True)
class PlannedPass:
    """
    One scheduled pass.

    Attributes:
        pass_name: Identifier of the pass
        stage: Scheduling stage
        crosses_boundaries: Whether the pass may reorder across markers
        regions: Where the pass may apply
        sites: Accepted rewrite sites
        rejected_sites: Sites blocked by a hard boundary
        soft_crossings: Soft-boundary arrays crossed by accepted sites
    """

    pass_name: str
    stage: PassStage
    crosses_boundaries: bool
    regions: Tuple[Region, ...]
    sites: Tuple[PassSite, ...] = ()
    rejected_sites: Tuple[PassSite, ...] = ()
    soft_crossings: Tuple[str, ...] = ()


class PassPlan:
    """Ordered pass plan consumed by the rewrite executor."""

    def __init__(self, passes=(), skipped=(), diagnostics=None):
        self.passes: Tuple[PlannedPass, ...] = tuple(passes)
        self.skipped: Tuple[Tuple[str, str], ...] = tuple(skipped)
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()

    def pass_names(self) -> List[str]:
        return [p.pass_name for p in self.passes]

    def get(self, pass_name: str) -> Optional[PlannedPass]:
        for planned in self.passes:
            if planned.pass_name == pass_name:
                return planned
        return None

    def removed_operators(self) -> List[str]:
        """Operators the marker-removal pass will delete."""
        planned = self.get(RemoveFakeQuantPass.name)
        if planned is None:
            return []
        return [name for site in planned.sites for name in site.operators]

    def __contains__(self, pass_name: str) -> bool:
        return self.get(pass_name) is not None

    def __iter__(self):
        return iter(self.passes)

    def __len__(self) -> int:
        return len(self.passes)

    def __eq__(self, other) -> bool:
        if not isinstance(other, PassPlan):
            return NotImplemented
        return self.passes == other.passes and self.skipped == other.skipped

    def __repr__(self) -> str:
        return f"PassPlan(passes={self.pass_names()}, skipped={[s[0] for s in self.skipped]})"

    def describe(self) -> str:
        """
        Generate a human-readable representation of the plan.

        Returns:
            String representation of the plan
        """
        lines = ["PassPlan:"]
        for i, planned in enumerate(self.passes, 1):
            crossing = " crosses-boundaries" if planned.crosses_boundaries else ""
            lines.append(f"  {i}. {planned.pass_name} [{planned.stage.name}]{crossing}")
            lines.append(f"      regions: {[r.name for r in planned.regions]}")
            lines.append(f"      sites: {[list(s.operators) for s in planned.sites]}")
            if planned.rejected_sites:
                lines.append(f"      rejected: {[list(s.operators) for s in planned.rejected_sites]}")
            if planned.soft_crossings:
                lines.append(f"      soft crossings: {list(planned.soft_crossings)}")
        for name, reason in self.skipped:
            lines.append(f"  - skipped {name}: {reason}")
        return "\n".join(lines)


def compute_regions(graph: GraphView, boundaries: BoundarySet) -> List[Region]:
    """
    Partition operators into regions joined by non-hard-boundary arrays.

    Hard-boundary arrays are left out of every region, so a region never
    allows rewriting across one.

    Args:
        graph: The graph snapshot
        boundaries: Boundary classification of the graph

    Returns:
        Regions ordered by their first operator in graph order
    """
    parent: Dict[str, str] = {op.name: op.name for op in graph.operators}

    def find(name: str) -> str:
        while parent[name] != name:
            parent[name] = parent[parent[name]]
            name = parent[name]
        return name

    def union(a: str, b: str):
        ra, rb = find(a), find(b)
        if ra != rb:
            parent[rb] = ra

    array_owner: Dict[str, str] = {}
    for array in graph.arrays:
        if boundaries.is_hard(array.name):
            continue
        producer = graph.producer_of(array.name)
        touching = [producer.name] if producer is not None else []
        touching.extend(op.name for op in graph.consumers_of(array.name))
        if not touching:
            continue
        for other in touching[1:]:
            union(touching[0], other)
        array_owner[array.name] = touching[0]

    order: List[str] = []
    members: Dict[str, List[str]] = {}
    for op in graph.operators:
        root = find(op.name)
        if root not in members:
            members[root] = []
            order.append(root)
        members[root].append(op.name)

    region_arrays: Dict[str, List[str]] = {root: [] for root in order}
    for array in graph.arrays:
        owner = array_owner.get(array.name)
        if owner is not None:
            region_arrays[find(owner)].append(array.name)

    return [Region(f"region_{i}", tuple(members[root]), tuple(region_arrays[root]))
            for i, root in enumerate(order)]


def whole_graph_region(graph: GraphView) -> Region:
    return Region(WHOLE_GRAPH,
                  tuple(op.name for op in graph.operators),
                  tuple(a.name for a in graph.arrays))


def collapse_removed_markers(sites: Sequence[PassSite], removed: Set[str],
                             graph: GraphView) -> List[PassSite]:
    """
    Rewrite sites as they look after marker removal.

    Removed markers and the arrays they produced are dropped from each site.
    A site left without operators is dropped.

    Example:
        (conv, fq, relu) over (conv_out, fq_out) -> (conv, relu) over (conv_out,)
    """
    collapsed = []
    for site in sites:
        markers = [name for name in site.operators if name in removed]
        if not markers:
            collapsed.append(site)
            continue
        gone = {a for name in markers for a in graph.get_operator(name).outputs}
        operators = tuple(name for name in site.operators if name not in removed)
        if operators:
            collapsed.append(PassSite(operators, tuple(a for a in site.arrays if a not in gone)))
    return collapsed


class TransformationScheduler:
    """
    Builds a PassPlan from candidate passes.

    Ordering: stable by PassStage, then by position in the candidate list.
    Given identical inputs the plan is identical.
    """

    def __init__(self, policy: PolicyConfig, verbose: bool = False):
        self.policy = policy
        self.verbose = verbose

    def build_plan(self, candidate_passes: Sequence[RewritePass], boundaries: BoundarySet,
                   graph: GraphView) -> PassPlan:
        """
        Order and gate candidate passes.

        Policy-mandated passes (marker removal, control-dependency elision)
        are added when the candidates lack them.

        Args:
            candidate_passes: Externally supplied passes
            boundaries: Output of BoundaryPolicy.compute_boundaries
            graph: The graph snapshot the boundaries were computed on

        Returns:
            The PassPlan

        Raises:
            SchedulingConflict: If a required pass has a
                site blocked by a hard boundary
        """
        candidates = self._with_policy_passes(candidate_passes)
        ordered = sorted(enumerate(candidates), key=lambda item: (item[1].stage, item[0]))

        diagnostics = DiagnosticLog()
        planned: List[PlannedPass] = []
        skipped: List[Tuple[str, str]] = []
        regions: Optional[List[Region]] = None
        removed_markers: Set[str] = set()

        for _, rewrite in ordered:
            if not rewrite.is_enabled(self.policy):
                reason = rewrite.disabled_reason(self.policy)
                skipped.append((rewrite.name, reason))
                self._log(f"Skipping {rewrite.name}: {reason}")
                continue

            sites = rewrite.find_sites(graph)
            if removed_markers:
                sites = collapse_removed_markers(sites, removed_markers, graph)

            if rewrite.crosses_boundaries:
                if regions is None:
                    regions = compute_regions(graph, boundaries)
                pass_regions = tuple(regions)
            else:
                pass_regions = (whole_graph_region(graph),)

            scheduled = self._gate_sites(rewrite, sites, boundaries, pass_regions, diagnostics)
            planned.append(scheduled)
            if rewrite.name == RemoveFakeQuantPass.name:
                removed_markers.update(name for site in scheduled.sites for name in site.operators)

        return PassPlan(planned, skipped, diagnostics)

    def _gate_sites(self, rewrite: RewritePass, sites: List[PassSite],
                    boundaries: BoundarySet, regions: Tuple[Region, ...],
                    diagnostics: DiagnosticLog) -> PlannedPass:
        accepted: List[PassSite] = []
        rejected: List[PassSite] = []
        soft: List[str] = []

        for site in sites:
            hard = [a for a in site.arrays if boundaries.is_hard(a)]
            if hard:
                if rewrite.required:
                    raise SchedulingConflict(rewrite.name, hard[0])
                rejected.append(site)
                diagnostics.info(
                    SITE_REJECTED,
                    f"Site {list(site.operators)} crosses hard boundary at '{hard[0]}'",
                    rewrite.name,
                )
                self._log(f"{rewrite.name}: rejected {list(site.operators)}")
                continue

            for array_name in site.arrays:
                if boundaries.is_soft(array_name) and array_name not in soft:
                    soft.append(array_name)
                    diagnostics.warning(
                        SOFT_BOUNDARY_CROSSED,
                        f"Pass '{rewrite.name}' crosses relaxed boundary at "
                        f"'{array_name}'; inference arithmetic may differ from training",
                        array_name,
                    )
            accepted.append(site)

        self._log(f"Scheduled {rewrite.name} over {len(regions)} region(s) "
                  f"({len(accepted)} sites, {len(rejected)} rejected)")
        return PlannedPass(rewrite.name, rewrite.stage, rewrite.crosses_boundaries, regions,
                           tuple(accepted), tuple(rejected), tuple(soft))

    def _with_policy_passes(self, candidate_passes: Sequence[RewritePass]) -> List[RewritePass]:
        candidates = list(candidate_passes)
        names = [p.name for p in candidates]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ValueError(f"Duplicate candidate passes: {sorted(duplicates)}")

        for mandated in (DropControlDependencyPass, RemoveFakeQuantPass):
            if mandated.name not in names:
                candidates.append(mandated())
        return candidates

    def _log(self, message: str):
        """Print message if verbose mode is enabled."""
        if self.verbose:
            print(f"[{self.__class__.__name__}] {message}")


def build_plan(candidate_passes: Sequence[RewritePass], boundaries: BoundarySet,
               policy: PolicyConfig, graph: GraphView) -> PassPlan:
    """Convenience function wrapping TransformationScheduler.build_plan."""
    return TransformationScheduler(policy).build_plan(candidate_passes, boundaries, graph)
