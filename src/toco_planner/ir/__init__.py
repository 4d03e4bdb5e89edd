"""Read-only graph view consumed by the planning engine"""

from .array import ArrayDescriptor, ArrayRole, ElementKind, MinMax, QuantizationParams
from .node import OperatorNode, FAKE_QUANT_OP
from .graph import GraphView

__all__ = [
    'ArrayDescriptor', 'ArrayRole', 'ElementKind', 'MinMax', 'QuantizationParams',
    'OperatorNode', 'FAKE_QUANT_OP', 'GraphView',
]
