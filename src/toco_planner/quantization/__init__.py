"""Range and type resolution for real-number arrays"""

from .quant_params import (
    QMIN, QMAX, choose_quantization_params, quantize, dequantize,
    representable_range, round_half_away_from_zero,
)
from .range_resolver import RangeResolver
from .type_resolver import (
    TypeResolver, QuantizationDecision, DecisionAction, ResolutionReport,
)

__all__ = [
    'QMIN', 'QMAX',
    'choose_quantization_params',
    'quantize',
    'dequantize',
    'representable_range',
    'round_half_away_from_zero',
    'RangeResolver',
    'TypeResolver',
    'QuantizationDecision',
    'DecisionAction',
    'ResolutionReport',
]
