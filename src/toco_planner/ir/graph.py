"""
GraphView - Read-only snapshot of a model graph
"""

from typing import Dict, Iterable, List, Optional

from .array import ArrayDescriptor
from .node import OperatorNode


class GraphView:
    """
    Represents the arrays and operators of a model being converted.

    Maintains:
    - Ordered arrays and operators (insertion order is the canonical order)
    - Producer / consumer lookup per array

    The planning engine only reads a GraphView. The add_* methods exist for
    importers building the view.
    """

    def __init__(self, arrays: Optional[Iterable[ArrayDescriptor]] = None,
                 operators: Optional[Iterable[OperatorNode]] = None):
        self._arrays: Dict[str, ArrayDescriptor] = {}
        self._operators: Dict[str, OperatorNode] = {}
        self._producers: Dict[str, OperatorNode] = {}
        self._consumers: Dict[str, List[OperatorNode]] = {}
        self.outputs: List[str] = []

        for array in arrays or []:
            self.add_array(array)
        for op in operators or []:
            self.add_operator(op)

    def add_array(self, array: ArrayDescriptor) -> None:
        """
        Add an array to the graph.

        Args:
            array: The ArrayDescriptor to add
        """
        if array.name in self._arrays:
            raise ValueError(f"Array with name '{array.name}' already exists in graph")
        self._arrays[array.name] = array
        self._consumers.setdefault(array.name, [])

    def add_operator(self, op: OperatorNode) -> None:
        """
        Add an operator to the graph.

        Arrays the operator references must already be present.

        Args:
            op: The OperatorNode to add
        """
        if op.name in self._operators:
            raise ValueError(f"Operator with name '{op.name}' already exists in graph")
        for name in list(op.inputs) + list(op.outputs):
            if name not in self._arrays:
                raise ValueError(
                    f"Operator '{op.name}' references array '{name}' "
                    f"which is not in the graph"
                )
        for name in op.outputs:
            if name in self._producers:
                raise ValueError(
                    f"Array '{name}' is produced by both '{self._producers[name].name}' "
                    f"and '{op.name}'"
                )

        self._operators[op.name] = op
        for name in op.outputs:
            self._producers[name] = op
        for name in op.inputs:
            if op not in self._consumers[name]:
                self._consumers[name].append(op)

    def mark_output(self, array_name: str) -> None:
        """Mark an array as a graph output."""
        if array_name not in self._arrays:
            raise ValueError(f"Unknown array '{array_name}'")
        if array_name not in self.outputs:
            self.outputs.append(array_name)

    @property
    def arrays(self) -> List[ArrayDescriptor]:
        return list(self._arrays.values())

    @property
    def operators(self) -> List[OperatorNode]:
        return list(self._operators.values())

    def get_array(self, name: str) -> Optional[ArrayDescriptor]:
        return self._arrays.get(name)

    def get_operator(self, name: str) -> Optional[OperatorNode]:
        return self._operators.get(name)

    def producer_of(self, array_name: str) -> Optional[OperatorNode]:
        """Operator writing the array, or None for inputs and constants."""
        return self._producers.get(array_name)

    def consumers_of(self, array_name: str) -> List[OperatorNode]:
        return list(self._consumers.get(array_name, []))

    def designated_inputs(self) -> List[ArrayDescriptor]:
        return [a for a in self._arrays.values() if a.is_designated_input]

    def markers(self) -> List[OperatorNode]:
        """Fake-quantization marker operators, in graph order."""
        return [op for op in self._operators.values() if op.is_fake_quant]

    def topological_sort(self) -> List[OperatorNode]:
        """
        Sort operators so every operator follows its data and control predecessors.

        Returns:
            List of operators in topologically sorted order

        Raises:
            ValueError: If the graph contains a cycle
        """
        visited = set()
        temp_mark = set()
        sorted_ops: List[OperatorNode] = []

        def predecessors(op: OperatorNode) -> List[OperatorNode]:
            preds = [self._producers[a] for a in op.inputs if a in self._producers]
            preds.extend(self._operators[d] for d in op.control_deps if d in self._operators)
            return preds

        def visit(op: OperatorNode):
            if op.name in temp_mark:
                raise ValueError(f"Graph contains a cycle at operator '{op.name}'")
            if op.name in visited:
                return
            temp_mark.add(op.name)
            for pred in predecessors(op):
                visit(pred)
            temp_mark.remove(op.name)
            visited.add(op.name)
            sorted_ops.append(op)

        for op in self._operators.values():
            if op.name not in visited:
                visit(op)

        return sorted_ops

    def validate(self) -> bool:
        """
        Validate the graph structure.

        Returns:
            True if valid, raises exception otherwise
        """
        try:
            self.topological_sort()
        except ValueError as e:
            raise ValueError(f"Graph validation failed: {e}")

        for op in self._operators.values():
            for dep in op.control_deps:
                if dep not in self._operators:
                    raise ValueError(
                        f"Operator '{op.name}' has control dependency '{dep}' "
                        f"which is not in the graph"
                    )
        return True

    def __repr__(self) -> str:
        return (f"GraphView(arrays={len(self._arrays)}, "
                f"operators={len(self._operators)}, "
                f"markers={len(self.markers())})")

    def describe(self) -> str:
        """
        Generate a human-readable representation of the graph.

        Returns:
            String representation of the graph structure
        """
        lines = ["GraphView:"]
        lines.append(f"  Inputs: {[a.name for a in self.designated_inputs()]}")
        lines.append(f"  Outputs: {self.outputs}")
        lines.append("  Arrays:")
        for array in self._arrays.values():
            rng = array.observed_range.as_tuple() if array.observed_range else None
            lines.append(f"    {array.name} kind={array.kind.value} range={rng}")
        lines.append("  Operators:")
        for op in self._operators.values():
            lines.append(f"    {op.name} [{op.op_type}]")
            lines.append(f"      inputs: [{', '.join(op.inputs)}]")
            lines.append(f"      outputs: [{', '.join(op.outputs)}]")
            if op.control_deps:
                lines.append(f"      control_deps: [{', '.join(op.control_deps)}]")
        return "\n".join(lines)
