"""
Affine uint8 quantization math.

real_value = scale * (quantized_value - zero_point), with quantized values in
[QMIN, QMAX]. Zero points round half away from zero before clamping.
"""

from typing import Union

import numpy as np

from ..ir.array import MinMax, QuantizationParams

QMIN = 0
QMAX = 255


def round_half_away_from_zero(values):
    """
    Round to nearest integer, ties away from zero (np.round ties to even).

    Args:
        values: Scalar or numpy array

    Returns:
        Rounded values with the same shape, as float64
    """
    values = np.asarray(values, dtype=np.float64)
    return np.sign(values) * np.floor(np.abs(values) + 0.5)


def choose_quantization_params(min_max: MinMax) -> QuantizationParams:
    """
    Map a real range onto the uint8 domain.

    scale = (max - min) / 255, zero_point = round(-min / scale) clamped to [0, 255].

    Args:
        min_max: The resolved range

    Returns:
        QuantizationParams for the range

    Raises:
        ValueError: If the range is empty (max <= min)
    """
    lo, hi = float(min_max.min), float(min_max.max)
    if not hi > lo:
        raise ValueError(f"Cannot quantize degenerate range [{lo}, {hi}]")

    num_steps = QMAX - QMIN
    scale = (hi - lo) / num_steps
    # -lo / scale written without the rounded scale, so exact ties stay exact.
    zero_point_real = QMIN - lo * num_steps / (hi - lo)
    zero_point = int(np.clip(round_half_away_from_zero(zero_point_real), QMIN, QMAX))
    return QuantizationParams(scale=scale, zero_point=zero_point)


def representable_range(params: QuantizationParams) -> MinMax:
    """Real values that the lowest and highest quantized values stand for."""
    return MinMax(
        min=params.scale * (QMIN - params.zero_point),
        max=params.scale * (QMAX - params.zero_point),
    )


def quantize(values: Union[float, np.ndarray], params: QuantizationParams) -> np.ndarray:
    """
    Quantize real values to uint8.

    Formula: Q = round(R / scale) + zero_point, clipped to [0, 255]

    Args:
        values: Real values
        params: Quantization parameters

    Returns:
        uint8 numpy array
    """
    q = round_half_away_from_zero(np.asarray(values, dtype=np.float64) / params.scale)
    q = q + params.zero_point
    return np.clip(q, QMIN, QMAX).astype(np.uint8)


def dequantize(values: Union[int, np.ndarray], params: QuantizationParams) -> np.ndarray:
    """
    Dequantize uint8 values back to real numbers.

    Formula: R = scale * (Q - zero_point)

    Args:
        values: Quantized values
        params: Quantization parameters

    Returns:
        float32 numpy array
    """
    q = np.asarray(values, dtype=np.int32)
    return (params.scale * (q - params.zero_point)).astype(np.float32)
