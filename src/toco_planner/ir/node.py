"""
OperatorNode - One operator of the read-only graph view
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

FAKE_QUANT_OP = 'fake_quant'


@dataclass(frozen=True)
class OperatorNode:
    """
    Represents a single operator in the graph view.

    Operators are linked through array names rather than through each other:
    an array has at most one producing operator and any number of consumers.

    Args:
        name: Unique operator name
        op_type: Type of operation (e.g., 'conv2d', 'lstm_cell', 'fake_quant')
        inputs: Names of arrays this operator reads
        outputs: Names of arrays this operator writes
        control_deps: Names of operators that must run first without a data edge
        attrs: Additional operation-specific attributes
    """

    name: str
    op_type: str
    inputs: Tuple[str, ...] = ()
    outputs: Tuple[str, ...] = ()
    control_deps: Tuple[str, ...] = ()
    attrs: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self):
        # Normalize lists passed by callers so the node stays hashable.
        object.__setattr__(self, 'inputs', tuple(self.inputs))
        object.__setattr__(self, 'outputs', tuple(self.outputs))
        object.__setattr__(self, 'control_deps', tuple(self.control_deps))

    @property
    def is_fake_quant(self) -> bool:
        """True for fake-quantization marker operators."""
        return self.op_type == FAKE_QUANT_OP

    def __str__(self) -> str:
        return f"{', '.join(self.outputs)} = {self.op_type}({', '.join(self.inputs)})"
