"""
PolicyConfig - Validated, immutable view of the conversion flags

The flags describe how a model is to be processed by one conversion job
rather than properties of the model itself. A PolicyConfig is built once at
job start and only read afterwards.
"""

import math
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from ..errors import InvalidPolicy


class FileFormat(Enum):
    """On-disk model representations. Some are input-only or output-only."""
    UNKNOWN = 0
    TENSORFLOW_GRAPHDEF = 1
    TFLITE = 2
    GRAPHVIZ_DOT = 3  # export-only


class IODataType(Enum):
    """Numeric representations selectable for arrays in the output file."""
    FLOAT = 1
    QUANTIZED_UINT8 = 2
    INT32 = 3
    INT64 = 4
    STRING = 5


class ControlDependencyMode(Enum):
    """
    Tri-state for dropping control dependencies.

    UNSET defers to the output format: keep them when writing a training
    graph, drop them otherwise.
    """
    UNSET = 0
    DROP = 1
    KEEP = 2


EXPORT_ONLY_FORMATS = frozenset({FileFormat.GRAPHVIZ_DOT})
REAL_NUMBER_IO_TYPES = frozenset({IODataType.FLOAT, IODataType.QUANTIZED_UINT8})

# Names used by the original command-line tool that map onto renamed fields.
FLAG_ALIASES = {
    'reorder_across_fake_quant': 'relax_quant_boundary',
    'debug_disable_recurrent_cell_fusion': 'disable_recurrent_fusion',
    'default_ranges_min': 'default_range_min',
    'default_ranges_max': 'default_range_max',
}


def _coerce_enum(enum_cls, value, flag_name: str):
    """Accept an enum member or its (case-insensitive) name."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls[value.strip().upper()]
        except KeyError:
            pass
    raise InvalidPolicy(
        f"Flag '{flag_name}' has invalid value {value!r}; expected one of "
        f"{[m.name for m in enum_cls]}"
    )


def _coerce_control_dependency(value) -> ControlDependencyMode:
    if value is None:
        return ControlDependencyMode.UNSET
    if isinstance(value, bool):
        return ControlDependencyMode.DROP if value else ControlDependencyMode.KEEP
    return _coerce_enum(ControlDependencyMode, value, 'drop_control_dependency')


@dataclass(frozen=True)
class PolicyConfig:
    """
    Conversion flags for a single job.

    Args:
        input_format: Format of the model being read
        output_format: Format of the model being written
        inference_type: Representation of real-number arrays in the output
            (None keeps each array's input representation)
        inference_input_type: Like inference_type, but only for designated
            input arrays (None falls back to inference_type)
        default_range_min: Fallback range minimum for arrays lacking
            observed statistics (experimentation only)
        default_range_max: Fallback range maximum, set together with the minimum
        drop_fake_quant: Discard fake-quant markers entirely
        relax_quant_boundary: Let rewrite passes cross fake-quant markers at
            the cost of training/inference arithmetic equivalence
        allow_custom_ops: Emit unsupported operators as opaque custom ops
        drop_control_dependency: Tri-state, also accepts True/False/None
        disable_recurrent_fusion: Skip recurrent-cell fusion

    Raises:
        InvalidPolicy: If the flags are malformed or contradictory
    """

    input_format: FileFormat = FileFormat.UNKNOWN
    output_format: FileFormat = FileFormat.UNKNOWN
    inference_type: Optional[IODataType] = None
    inference_input_type: Optional[IODataType] = None
    default_range_min: Optional[float] = None
    default_range_max: Optional[float] = None
    drop_fake_quant: bool = False
    relax_quant_boundary: bool = False
    allow_custom_ops: bool = False
    drop_control_dependency: ControlDependencyMode = ControlDependencyMode.UNSET
    disable_recurrent_fusion: bool = False
    drops_control_dependencies: bool = field(init=False, default=False)

    def __post_init__(self):
        self._validate_formats()
        self._validate_inference_types()
        self._validate_default_range()
        self._validate_switches()
        object.__setattr__(
            self, 'drops_control_dependencies', self._resolve_control_dependency()
        )

    @classmethod
    def from_flags(cls, flags: Mapping[str, Any]) -> 'PolicyConfig':
        """
        Build a PolicyConfig from raw flag names.

        Accepts both the field names of this class and the flag names of the
        original command-line tool (e.g. 'reorder_across_fake_quant').

        Args:
            flags: Mapping of flag name -> value

        Returns:
            Validated PolicyConfig
        """
        known = {f.name for f in fields(cls) if f.init}
        kwargs: Dict[str, Any] = {}
        for name, value in flags.items():
            canonical = FLAG_ALIASES.get(name, name)
            if canonical not in known:
                raise InvalidPolicy(f"Unknown flag '{name}'")
            if canonical in kwargs:
                raise InvalidPolicy(f"Flag '{canonical}' given more than once (via '{name}')")
            kwargs[canonical] = value
        return cls(**kwargs)

    def _validate_formats(self):
        object.__setattr__(self, 'input_format',
                           _coerce_enum(FileFormat, self.input_format, 'input_format'))
        object.__setattr__(self, 'output_format',
                           _coerce_enum(FileFormat, self.output_format, 'output_format'))

        if self.input_format is FileFormat.UNKNOWN:
            raise InvalidPolicy("Flag 'input_format' must name a concrete file format")
        if self.output_format is FileFormat.UNKNOWN:
            raise InvalidPolicy("Flag 'output_format' must name a concrete file format")
        if self.input_format in EXPORT_ONLY_FORMATS:
            raise InvalidPolicy(
                f"{self.input_format.name} is export-only and cannot be used as input_format"
            )

    def _validate_inference_types(self):
        for name in ('inference_type', 'inference_input_type'):
            value = getattr(self, name)
            if value is None:
                continue
            value = _coerce_enum(IODataType, value, name)
            if value not in REAL_NUMBER_IO_TYPES:
                raise InvalidPolicy(
                    f"Flag '{name}' only applies to real-number arrays and must be "
                    f"FLOAT or QUANTIZED_UINT8, got {value.name}"
                )
            object.__setattr__(self, name, value)

    def _validate_default_range(self):
        lo, hi = self.default_range_min, self.default_range_max
        if (lo is None) != (hi is None):
            raise InvalidPolicy(
                "default_range_min and default_range_max must be set together"
            )
        if lo is None:
            return
        try:
            lo, hi = float(lo), float(hi)
        except (TypeError, ValueError):
            raise InvalidPolicy(
                f"Default range bounds must be numbers, got ({lo!r}, {hi!r})"
            )
        if not (math.isfinite(lo) and math.isfinite(hi)):
            raise InvalidPolicy(f"Default range must be finite, got ({lo}, {hi})")
        if lo >= hi:
            raise InvalidPolicy(
                f"default_range_min ({lo}) must be less than default_range_max ({hi})"
            )
        object.__setattr__(self, 'default_range_min', lo)
        object.__setattr__(self, 'default_range_max', hi)

    def _validate_switches(self):
        for name in ('drop_fake_quant', 'relax_quant_boundary',
                     'allow_custom_ops', 'disable_recurrent_fusion'):
            if not isinstance(getattr(self, name), bool):
                raise InvalidPolicy(
                    f"Flag '{name}' must be a bool, got {getattr(self, name)!r}"
                )
        object.__setattr__(self, 'drop_control_dependency',
                           _coerce_control_dependency(self.drop_control_dependency))

    def _resolve_control_dependency(self) -> bool:
        # Only training graphs carry control dependencies.
        if self.input_format is not FileFormat.TENSORFLOW_GRAPHDEF:
            return False
        if self.drop_control_dependency is ControlDependencyMode.DROP:
            return True
        if self.drop_control_dependency is ControlDependencyMode.KEEP:
            return False
        return self.output_format is not FileFormat.TENSORFLOW_GRAPHDEF

    @property
    def has_default_range(self) -> bool:
        return self.default_range_min is not None

    @property
    def default_range(self) -> Optional[Tuple[float, float]]:
        if not self.has_default_range:
            return None
        return (self.default_range_min, self.default_range_max)

    def effective_type(self, is_designated_input: bool) -> Optional[IODataType]:
        """
        Target representation for a real-number array.

        Designated inputs use inference_input_type when set; everything else
        (and inputs without an override) uses inference_type. None means the
        array keeps its input representation.
        """
        if is_designated_input and self.inference_input_type is not None:
            return self.inference_input_type
        return self.inference_type

    def to_flags(self) -> Dict[str, Any]:
        """Canonical flag mapping; from_flags(to_flags()) rebuilds an equal config."""
        return {f.name: getattr(self, f.name) for f in fields(self) if f.init}

    def describe(self) -> str:
        lines = ["PolicyConfig:"]
        for name, value in self.to_flags().items():
            if isinstance(value, Enum):
                value = value.name
            lines.append(f"  {name}: {value}")
        lines.append(f"  (resolved) drops_control_dependencies: {self.drops_control_dependencies}")
        return "\n".join(lines)
