"""
ArrayDescriptor - Read-only description of one array in the graph
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class ElementKind(Enum):
    """Declared element kind of an array."""
    FLOAT = "float"
    QUANTIZED_UINT8 = "quantized_uint8"
    PLAIN_INTEGER = "plain_integer"
    STRING = "string"
    OTHER = "other"

    @property
    def is_real_number(self) -> bool:
        """
        Real-number arrays are float arrays and quantized arrays.

        Plain integers, strings and everything else are excluded; their
        representation is never changed by inference-type flags.
        """
        return self in (ElementKind.FLOAT, ElementKind.QUANTIZED_UINT8)

    @property
    def is_quantized(self) -> bool:
        return self is ElementKind.QUANTIZED_UINT8


class ArrayRole(Enum):
    ORDINARY = "ordinary"
    DESIGNATED_INPUT = "designated_input"


@dataclass(frozen=True)
class MinMax:
    """
    A (min, max) range for a real-number array.

    Attributes:
        min: Lower bound
        max: Upper bound
        synthetic: True when substituted from the default range rather than
            measured; such ranges are for experimentation only
    """

    min: float
    max: float
    synthetic: bool = False

    def __post_init__(self):
        if math.isnan(self.min) or math.isnan(self.max):
            raise ValueError(f"Range bounds must not be NaN, got ({self.min}, {self.max})")
        if self.min > self.max:
            raise ValueError(f"Range min ({self.min}) is greater than max ({self.max})")

    def as_tuple(self) -> Tuple[float, float]:
        return (self.min, self.max)

    @property
    def width(self) -> float:
        return self.max - self.min

    def __repr__(self) -> str:
        tag = ", synthetic" if self.synthetic else ""
        return f"MinMax({self.min}, {self.max}{tag})"


@dataclass(frozen=True)
class QuantizationParams:
    """Affine uint8 quantization parameters: real = scale * (q - zero_point)."""

    scale: float
    zero_point: int

    def __post_init__(self):
        if not (self.scale > 0 and math.isfinite(self.scale)):
            raise ValueError(f"Quantization scale must be positive and finite, got {self.scale}")


@dataclass(frozen=True)
class ArrayDescriptor:
    """
    Describes an array as the input model declares it.

    Args:
        name: Unique array name
        kind: Declared element kind
        role: Ordinary array or designated model input
        observed_range: Measured (min, max) statistics, if any
        quant_params: Existing quantization parameters, for quantized arrays
        shape: Static shape, if known
        is_constant: True for weights and other constant buffers
    """

    name: str
    kind: ElementKind = ElementKind.FLOAT
    role: ArrayRole = ArrayRole.ORDINARY
    observed_range: Optional[MinMax] = None
    quant_params: Optional[QuantizationParams] = None
    shape: Optional[Tuple[int, ...]] = None
    is_constant: bool = False

    def __post_init__(self):
        if self.observed_range is not None and self.observed_range.synthetic:
            raise ValueError(
                f"Array '{self.name}': observed range cannot be tagged synthetic"
            )

    @property
    def is_real_number(self) -> bool:
        return self.kind.is_real_number

    @property
    def is_designated_input(self) -> bool:
        return self.role is ArrayRole.DESIGNATED_INPUT

    def __repr__(self) -> str:
        return (f"ArrayDescriptor(name='{self.name}', kind={self.kind.value}, "
                f"role={self.role.value}, range={self.observed_range})")
