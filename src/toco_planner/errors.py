"""
Error taxonomy for conversion planning.

Policy and plan errors are fatal to a job. Range and quantization errors are
per-array and get collected by the resolvers instead of aborting the job.
"""

from typing import Optional


class PlannerError(ValueError):
    """Base class for all planning errors."""


class InvalidPolicy(PlannerError):
    """Raised when conversion flags are malformed or contradictory."""


class MissingRange(PlannerError):
    """Raised when a real-number array has no usable (min, max) range."""

    def __init__(self, array_name: str):
        self.array_name = array_name
        super().__init__(
            f"Array '{array_name}' has no observed (min, max) range and no "
            f"default range is configured"
        )


class QuantizationInfeasible(PlannerError):
    """
    Raised when an array was requested to be quantized but cannot be.

    Usually derived from a MissingRange (available as __cause__).
    """

    def __init__(self, array_name: str, reason: str):
        self.array_name = array_name
        self.reason = reason
        super().__init__(f"Cannot quantize array '{array_name}': {reason}")


class UnsupportedOperator(PlannerError):
    """Raised when an operator is neither convertible nor allowed as a custom op."""

    def __init__(self, operator_name: str, op_type: str):
        self.operator_name = operator_name
        self.op_type = op_type
        super().__init__(
            f"Operator '{operator_name}' ({op_type}) is not supported by the "
            f"output format and custom operators are not allowed"
        )


class SchedulingConflict(PlannerError):
    """Raised when a required pass cannot be scheduled without breaking a hard boundary."""

    def __init__(self, pass_name: str, array_name: Optional[str] = None):
        self.pass_name = pass_name
        self.array_name = array_name
        detail = f" at array '{array_name}'" if array_name else ""
        super().__init__(
            f"Required pass '{pass_name}' would cross a hard quantization "
            f"boundary{detail}"
        )
