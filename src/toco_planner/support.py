"""
Operator support check for the output format.

Operators the output format cannot express either become opaque custom
operators (when allow_custom_ops is set) or fail the job.
"""

from typing import Iterable, List, Optional

from .config.policy import PolicyConfig
from .diagnostics import CUSTOM_OP, DiagnosticLog
from .errors import UnsupportedOperator
from .ir.graph import GraphView


class OperatorSupport:
    """
    Classifies operators as supported, custom, or unsupported.

    Args:
        supported_op_types: Op types the output format converts natively
        verbose: If True, print each custom operator
    """

    def __init__(self, supported_op_types: Iterable[str], verbose: bool = False):
        self.supported_op_types = frozenset(supported_op_types)
        self.verbose = verbose

    def is_supported(self, op_type: str) -> bool:
        return op_type in self.supported_op_types

    def check(self, graph: GraphView, policy: PolicyConfig,
              removed_operators: Iterable[str] = (),
              diagnostics: Optional[DiagnosticLog] = None) -> List[str]:
        """
        Check every operator that will reach the exporter.

        Fake-quant markers and operators the plan removes are not checked.

        Args:
            graph: The graph snapshot
            policy: Conversion policy (allow_custom_ops)
            removed_operators: Operators the plan deletes
            diagnostics: Optional log receiving one notice per custom operator

        Returns:
            Names of operators to be emitted as custom operators

        Raises:
            UnsupportedOperator: For the first unsupported operator in graph
                order when custom operators are not allowed
        """
        removed = set(removed_operators)
        custom = []
        for op in graph.operators:
            if op.is_fake_quant or op.name in removed or self.is_supported(op.op_type):
                continue
            if not policy.allow_custom_ops:
                raise UnsupportedOperator(op.name, op.op_type)
            custom.append(op.name)
            if diagnostics is not None:
                diagnostics.info(CUSTOM_OP, f"Emitting '{op.op_type}' as a custom operator",
                                 op.name)
            self._log(f"{op.name} ({op.op_type}) -> custom operator")
        return custom

    def _log(self, message: str):
        """Print message if verbose mode is enabled."""
        if self.verbose:
            print(f"[{self.__class__.__name__}] {message}")
