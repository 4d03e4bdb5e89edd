"""
TypeResolver - Decide the output representation of every real-number array
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple, Union

from ..config.policy import IODataType, PolicyConfig
from ..diagnostics import (
    DiagnosticLog, MISSING_RANGE, QUANTIZATION_INFEASIBLE, SYNTHETIC_RANGE,
)
from ..errors import MissingRange, QuantizationInfeasible
from ..ir.array import ArrayDescriptor, ElementKind, MinMax, QuantizationParams
from ..ir.graph import GraphView
from .quant_params import choose_quantization_params
from .range_resolver import RangeResolver

IO_TYPE_TO_KIND = {
    IODataType.FLOAT: ElementKind.FLOAT,
    IODataType.QUANTIZED_UINT8: ElementKind.QUANTIZED_UINT8,
}


class DecisionAction(Enum):
    PASS_THROUGH = "pass_through"
    QUANTIZE = "quantize"
    DEQUANTIZE = "dequantize"


@dataclass(frozen=True)
class QuantizationDecision:
    """
    Final representation of one real-number array.

    Attributes:
        array_name: The array this decision is for
        kind: Element kind in the output
        action: What the exporter has to do to the array's data
        quant_params: (scale, zero_point) when the output is quantized
        range: The range the parameters were derived from (or the observed
            range for float outputs)
    """

    array_name: str
    kind: ElementKind
    action: DecisionAction
    quant_params: Optional[QuantizationParams] = None
    range: Optional[MinMax] = None

    @property
    def is_quantized(self) -> bool:
        return self.kind.is_quantized

    @property
    def scale(self) -> Optional[float]:
        return self.quant_params.scale if self.quant_params else None

    @property
    def zero_point(self) -> Optional[int]:
        return self.quant_params.zero_point if self.quant_params else None

    @property
    def uses_synthetic_range(self) -> bool:
        return self.range is not None and self.range.synthetic


class ResolutionReport:
    """
    Outcome of resolving every array of a graph.

    Real-number arrays end up in exactly one of decisions or failures.
    Non-real arrays are listed in passthrough and never get a decision.
    """

    def __init__(self):
        self.decisions: Dict[str, QuantizationDecision] = {}
        self.failures: Dict[str, QuantizationInfeasible] = {}
        self.passthrough: List[str] = []
        self.diagnostics = DiagnosticLog()

    @property
    def succeeded(self) -> bool:
        return not self.failures

    @property
    def failed_arrays(self) -> List[str]:
        return list(self.failures.keys())

    def decision_for(self, array_name: str) -> Optional[QuantizationDecision]:
        return self.decisions.get(array_name)

    def __repr__(self) -> str:
        return (f"ResolutionReport(decisions={len(self.decisions)}, "
                f"failures={len(self.failures)}, passthrough={len(self.passthrough)})")


Outcome = Union[QuantizationDecision, QuantizationInfeasible, None]


class TypeResolver:
    """
    Determines the final numeric representation of arrays.

    Resolution of an array depends only on its own role, kind and range, so
    arrays may be resolved in any order or concurrently.
    """

    def __init__(self, policy: PolicyConfig, range_resolver: Optional[RangeResolver] = None,
                 verbose: bool = False):
        """
        Initialize the resolver.

        Args:
            policy: Validated conversion policy
            range_resolver: Range source (defaults to one built from the policy)
            verbose: If True, print each decision
        """
        self.policy = policy
        self.range_resolver = range_resolver or RangeResolver(policy)
        self.verbose = verbose

    def resolve_type(self, array: ArrayDescriptor) -> Optional[QuantizationDecision]:
        """
        Resolve the output representation of one array.

        Args:
            array: The array to resolve

        Returns:
            A QuantizationDecision for real-number arrays, None for any other
            kind (its declared kind passes through unchanged)

        Raises:
            QuantizationInfeasible: If quantization was requested but no range
                (or only a degenerate one) is available
        """
        if not array.is_real_number:
            return None

        target = self.policy.effective_type(array.is_designated_input)
        if target is None:
            # No conversion requested: keep whatever the array already carries.
            return QuantizationDecision(array.name, array.kind,
                                        DecisionAction.PASS_THROUGH,
                                        quant_params=array.quant_params,
                                        range=array.observed_range)
        target_kind = IO_TYPE_TO_KIND[target]

        if target_kind is ElementKind.FLOAT:
            if array.kind.is_quantized:
                return QuantizationDecision(array.name, ElementKind.FLOAT,
                                            DecisionAction.DEQUANTIZE,
                                            range=array.observed_range)
            return QuantizationDecision(array.name, ElementKind.FLOAT,
                                        DecisionAction.PASS_THROUGH,
                                        range=array.observed_range)

        # Quantized target
        if array.kind.is_quantized and array.quant_params is not None:
            return QuantizationDecision(array.name, array.kind,
                                        DecisionAction.PASS_THROUGH,
                                        quant_params=array.quant_params,
                                        range=array.observed_range)

        min_max, params = self._quantize_from_range(array)
        action = (DecisionAction.PASS_THROUGH if array.kind.is_quantized
                  else DecisionAction.QUANTIZE)
        return QuantizationDecision(array.name, target_kind, action,
                                    quant_params=params, range=min_max)

    def _quantize_from_range(self, array: ArrayDescriptor) -> Tuple[MinMax, QuantizationParams]:
        try:
            min_max = self.range_resolver.resolve_range(array)
        except MissingRange as e:
            raise QuantizationInfeasible(array.name, "no (min, max) range available") from e
        try:
            params = choose_quantization_params(min_max)
        except ValueError as e:
            raise QuantizationInfeasible(array.name, str(e)) from e
        return min_max, params

    def final_kind(self, array: ArrayDescriptor) -> ElementKind:
        """Output element kind of an array (declared kind for non-real arrays)."""
        decision = self.resolve_type(array)
        return decision.kind if decision is not None else array.kind

    def _outcome(self, array: ArrayDescriptor) -> Outcome:
        try:
            return self.resolve_type(array)
        except QuantizationInfeasible as e:
            return e

    def resolve_all(self, arrays: Union[GraphView, Iterable[ArrayDescriptor]],
                    max_workers: Optional[int] = None) -> ResolutionReport:
        """
        Resolve every array, collecting per-array failures instead of stopping.

        Args:
            arrays: A GraphView or an iterable of ArrayDescriptors
            max_workers: Resolve on a thread pool of this size when > 1

        Returns:
            ResolutionReport ordered like the input arrays
        """
        if isinstance(arrays, GraphView):
            arrays = arrays.arrays
        arrays = list(arrays)

        if max_workers is not None and max_workers > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                outcomes = list(pool.map(self._outcome, arrays))
        else:
            outcomes = [self._outcome(a) for a in arrays]

        report = ResolutionReport()
        for array, outcome in zip(arrays, outcomes):
            if outcome is None:
                report.passthrough.append(array.name)
            elif isinstance(outcome, QuantizationInfeasible):
                report.failures[array.name] = outcome
                if isinstance(outcome.__cause__, MissingRange):
                    report.diagnostics.error(MISSING_RANGE, str(outcome.__cause__), array.name)
                report.diagnostics.error(QUANTIZATION_INFEASIBLE, str(outcome), array.name)
                self._log(f"{array.name}: FAILED ({outcome.reason})")
            else:
                report.decisions[array.name] = outcome
                if outcome.uses_synthetic_range and outcome.quant_params is not None:
                    report.diagnostics.warning(
                        SYNTHETIC_RANGE,
                        f"Quantized with default range {outcome.range.as_tuple()}; "
                        f"for experimentation only",
                        array.name,
                    )
                self._log(f"{array.name}: {outcome.action.value} -> {outcome.kind.value}"
                          f" (scale={outcome.scale}, zero_point={outcome.zero_point})")
        return report

    def _log(self, message: str):
        """Print message if verbose mode is enabled."""
        if self.verbose:
            print(f"[{self.__class__.__name__}] {message}")
