"""
Main entry point for planning a conversion job
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .boundaries.policy import BoundaryPolicy, BoundarySet
from .config.policy import PolicyConfig
from .diagnostics import DiagnosticLog
from .errors import QuantizationInfeasible
from .ir.graph import GraphView
from .passes import default_passes
from .passes.base import RewritePass
from .passes.scheduler import PassPlan, TransformationScheduler
from .quantization.type_resolver import QuantizationDecision, TypeResolver
from .support import OperatorSupport


@dataclass
class ConversionResult:
    """
    Everything the exporter and rewrite executor need from one job.

    plan and boundaries are None when the job stopped after resolution.
    """

    policy: PolicyConfig
    decisions: Dict[str, QuantizationDecision]
    failures: Dict[str, QuantizationInfeasible]
    passthrough: List[str]
    boundaries: Optional[BoundarySet] = None
    plan: Optional[PassPlan] = None
    custom_operators: List[str] = field(default_factory=list)
    diagnostics: DiagnosticLog = field(default_factory=DiagnosticLog)

    @property
    def succeeded(self) -> bool:
        """True when every real-number array resolved and a plan was built."""
        return not self.failures and self.plan is not None

    def summary(self) -> str:
        lines = [f"Resolved arrays: {len(self.decisions)}",
                 f"Failed arrays: {sorted(self.failures)}",
                 f"Untouched non-real arrays: {len(self.passthrough)}"]
        if self.boundaries is not None:
            lines.append(f"Boundaries: {len(self.boundaries.hard())} hard, "
                         f"{len(self.boundaries.soft())} soft")
        if self.plan is not None:
            lines.append(f"Passes: {self.plan.pass_names()}")
        if self.custom_operators:
            lines.append(f"Custom operators: {self.custom_operators}")
        lines.append(f"Warnings: {len(self.diagnostics.warnings())}")
        return "\n".join(lines)


class ConversionPlanner:
    """
    Orchestrates the planning pipeline.

    Pipeline:
    1. Resolve ranges and types for every array
    2. Classify fake-quant boundaries
    3. Build the pass plan
    4. Check operator support (optional)

    The graph is only read.
    """

    def __init__(self, policy: PolicyConfig, passes: Optional[Sequence[RewritePass]] = None,
                 operator_support: Optional[OperatorSupport] = None,
                 max_workers: Optional[int] = None, verbose: bool = False):
        """
        Initialize the planner.

        Args:
            policy: Validated conversion policy
            passes: Candidate passes (default_passes() when None)
            operator_support: Output-format operator support (skipped when None)
            max_workers: Thread pool size for per-array resolution
            verbose: If True, print planning progress
        """
        self.policy = policy
        self.passes = list(passes) if passes is not None else default_passes()
        self.operator_support = operator_support
        self.max_workers = max_workers
        self.verbose = verbose
        self.type_resolver = TypeResolver(policy, verbose=verbose)
        self.boundary_policy = BoundaryPolicy(policy, verbose=verbose)
        self.scheduler = TransformationScheduler(policy, verbose=verbose)

    def plan(self, graph: GraphView, abort_on_failure: bool = False) -> ConversionResult:
        """
        Plan the conversion of a graph.

        Args:
            graph: Read-only graph snapshot
            abort_on_failure: Stop before scheduling if any array failed

        Returns:
            ConversionResult

        Raises:
            ValueError: If the graph is malformed
            SchedulingConflict: If a required pass is blocked by a hard boundary
            UnsupportedOperator: If an operator cannot be exported
        """
        self._log("=" * 60)
        self._log("Conversion planning")
        self._log("=" * 60)

        graph.validate()

        self._log("\n[1/4] Resolving array types...")
        resolution = self.type_resolver.resolve_all(graph, max_workers=self.max_workers)
        diagnostics = DiagnosticLog(resolution.diagnostics)
        result = ConversionResult(self.policy, resolution.decisions, resolution.failures,
                                  resolution.passthrough, diagnostics=diagnostics)
        self._log(f"  ✓ {len(resolution.decisions)} decisions, "
                  f"{len(resolution.failures)} failures")

        if abort_on_failure and not resolution.succeeded:
            self._log(f"  ✗ Aborting: {resolution.failed_arrays}")
            return result

        self._log("\n[2/4] Computing quantization boundaries...")
        result.boundaries = self.boundary_policy.compute_boundaries(graph)
        diagnostics.extend(result.boundaries.diagnostics)
        self._log(f"  ✓ {result.boundaries!r}")

        self._log("\n[3/4] Building pass plan...")
        result.plan = self.scheduler.build_plan(self.passes, result.boundaries, graph)
        diagnostics.extend(result.plan.diagnostics)
        self._log(f"  ✓ {result.plan.pass_names()}")

        if self.operator_support is not None:
            self._log("\n[4/4] Checking operator support...")
            result.custom_operators = self.operator_support.check(
                graph, self.policy, result.plan.removed_operators(), diagnostics
            )
            self._log(f"  ✓ {len(result.custom_operators)} custom operators")

        return result

    def _log(self, message: str) -> None:
        """Print a log message if verbose mode is enabled."""
        if self.verbose:
            print(message)


def plan_conversion(graph: GraphView, policy: Optional[PolicyConfig] = None,
                    passes: Optional[Sequence[RewritePass]] = None,
                    operator_support: Optional[OperatorSupport] = None,
                    verbose: bool = False, **flags) -> ConversionResult:
    """
    Convenience function to plan a conversion.

    Args:
        graph: Read-only graph snapshot
        policy: Validated policy; alternatively pass raw flags as keywords
        passes: Candidate passes
        operator_support: Output-format operator support
        verbose: If True, print planning progress

    Returns:
        ConversionResult

    Example:
        >>> result = plan_conversion(graph, input_format='TENSORFLOW_GRAPHDEF',
        ...                          output_format='TFLITE',
        ...                          inference_type='QUANTIZED_UINT8')
        >>> result.decisions['conv_out'].zero_point
    """
    if policy is not None and flags:
        raise ValueError("Pass either a PolicyConfig or raw flags, not both")
    if policy is None:
        policy = PolicyConfig.from_flags(flags)
    planner = ConversionPlanner(policy, passes=passes, operator_support=operator_support,
                                verbose=verbose)
    return planner.plan(graph)
