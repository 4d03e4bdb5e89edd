"""
Conversion Planner for Quantized Models

Decides the numeric representation of every array and the order of graph
rewrite passes for a model conversion job, under a validated policy. The
graph itself is never modified.
"""

__version__ = "0.1.0"

from .config.policy import PolicyConfig, FileFormat, IODataType, ControlDependencyMode
from .errors import (
    PlannerError, InvalidPolicy, MissingRange, QuantizationInfeasible,
    UnsupportedOperator, SchedulingConflict,
)
from .planner import ConversionPlanner, ConversionResult, plan_conversion

__all__ = [
    'PolicyConfig', 'FileFormat', 'IODataType', 'ControlDependencyMode',
    'PlannerError', 'InvalidPolicy', 'MissingRange', 'QuantizationInfeasible',
    'UnsupportedOperator', 'SchedulingConflict',
    'ConversionPlanner', 'ConversionResult', 'plan_conversion',
]
