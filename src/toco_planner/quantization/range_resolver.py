"""
RangeResolver - Supplies (min, max) ranges for real-number arrays
"""

from ..config.policy import PolicyConfig
from ..errors import MissingRange
from ..ir.array import ArrayDescriptor, MinMax


class RangeResolver:
    """
    Resolves the range used to quantize an array.

    Observed statistics always win. Arrays without them fall back to the
    policy's default range, tagged synthetic so accuracy-sensitive tooling can
    tell it apart from measured data.
    """

    def __init__(self, policy: PolicyConfig):
        self.policy = policy
        self._default = None
        if policy.has_default_range:
            lo, hi = policy.default_range
            self._default = MinMax(lo, hi, synthetic=True)

    def resolve_range(self, array: ArrayDescriptor) -> MinMax:
        """
        Resolve the range of one array.

        Args:
            array: The array to resolve

        Returns:
            The observed range unchanged, or the synthetic default range

        Raises:
            MissingRange: If the array has no observed range and no default
                range is configured
        """
        if array.observed_range is not None:
            return array.observed_range
        if self._default is not None:
            return self._default
        raise MissingRange(array.name)

    def has_range(self, array: ArrayDescriptor) -> bool:
        return array.observed_range is not None or self._default is not None
