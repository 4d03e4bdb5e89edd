"""
Frontend: build a GraphView from a quantization-aware-trained torch module

Fake-quantize modules are traced as leaves so they survive as marker
operators. Their observed (min, max) statistics become the observed range of
the marker's output array.
"""

import copy
import math
from typing import Dict, Optional

import numpy as np
import torch
import torch.fx as fx
from torch.ao.quantization.fake_quantize import FakeQuantizeBase
from torch.fx.passes.shape_prop import ShapeProp, TensorMetadata

from ..ir.array import ArrayDescriptor, ArrayRole, ElementKind, MinMax
from ..ir.graph import GraphView
from ..ir.node import FAKE_QUANT_OP, OperatorNode

PLAIN_INTEGER_DTYPES = (torch.uint8, torch.int8, torch.int16, torch.int32,
                        torch.int64, torch.bool)


def element_kind(dtype: torch.dtype) -> ElementKind:
    """Map a torch dtype onto an ElementKind."""
    if dtype.is_floating_point:
        return ElementKind.FLOAT
    if dtype == torch.quint8:
        return ElementKind.QUANTIZED_UINT8
    if dtype in PLAIN_INTEGER_DTYPES:
        return ElementKind.PLAIN_INTEGER
    return ElementKind.OTHER


def observed_range(module: torch.nn.Module) -> Optional[MinMax]:
    """
    Per-tensor (min, max) recorded by a fake-quantize module's observer.

    Returns None for uncalibrated or per-channel observers.
    """
    observer = getattr(module, 'activation_post_process', None)
    lo = getattr(observer, 'min_val', None)
    hi = getattr(observer, 'max_val', None)
    if not isinstance(lo, torch.Tensor) or not isinstance(hi, torch.Tensor):
        return None
    if lo.numel() != 1 or hi.numel() != 1:
        return None
    lo, hi = float(lo), float(hi)
    if not (math.isfinite(lo) and math.isfinite(hi)) or lo > hi:
        return None
    return MinMax(lo, hi)


class MarkerAwareTracer(fx.Tracer):
    """fx tracer keeping fake-quantize modules as single call_module nodes."""

    def is_leaf_module(self, m: torch.nn.Module, module_qualified_name: str) -> bool:
        if isinstance(m, FakeQuantizeBase):
            return True
        return super().is_leaf_module(m, module_qualified_name)


class FXImporter:
    """
    Converts a torch.nn.Module into a GraphView.

    Mapping:
    - placeholder   -> designated-input array
    - get_attr      -> constant array (range taken from its data)
    - call_*        -> operator writing one array named after the node
    - fake quantize -> 'fake_quant' marker operator
    """

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def trace(self, model: torch.nn.Module) -> fx.GraphModule:
        """
        Trace a model with fake-quantize modules kept as leaves.

        Raises:
            RuntimeError: If tracing fails
        """
        try:
            tracer = MarkerAwareTracer()
            graph = tracer.trace(model)
            return fx.GraphModule(tracer.root, graph)
        except Exception as e:
            raise RuntimeError(f"Failed to trace model: {e}") from e

    def import_module(self, model: torch.nn.Module,
                      example_input: Optional[torch.Tensor] = None) -> GraphView:
        """
        Build a GraphView from a module.

        Args:
            model: The module to import
            example_input: Example input used to infer dtypes and shapes
                (without it every tensor is assumed float)

        Returns:
            The GraphView
        """
        gm = self.trace(model)

        # Read statistics before anything runs the observers again.
        ranges: Dict[str, Optional[MinMax]] = {}
        for node in gm.graph.nodes:
            if node.op == 'call_module':
                module = gm.get_submodule(node.target)
                if isinstance(module, FakeQuantizeBase):
                    ranges[node.name] = observed_range(module)

        metadata = self._propagate_metadata(gm, example_input)

        graph = GraphView()
        for node in gm.graph.nodes:
            if node.op == 'output':
                for arg in self._node_args(node):
                    graph.mark_output(arg.name)
                continue

            kind, shape = self._kind_and_shape(metadata.get(node.name))

            if node.op == 'placeholder':
                graph.add_array(ArrayDescriptor(node.name, kind, ArrayRole.DESIGNATED_INPUT,
                                                shape=shape))
            elif node.op == 'get_attr':
                graph.add_array(self._constant_array(gm, node))
            elif node.op in ('call_module', 'call_function', 'call_method'):
                op_type = self._op_type(gm, node)
                graph.add_array(ArrayDescriptor(node.name, kind, observed_range=ranges.get(node.name),
                                                shape=shape))
                graph.add_operator(OperatorNode(
                    name=node.name,
                    op_type=op_type,
                    inputs=tuple(dict.fromkeys(arg.name for arg in self._node_args(node))),
                    outputs=(node.name,),
                ))
            else:
                raise ValueError(f"Unsupported FX node operation: {node.op}")
            self._log(f"{node.name}: {node.op} -> {kind.value}")

        graph.validate()
        return graph

    def _propagate_metadata(self, gm: fx.GraphModule,
                            example_input: Optional[torch.Tensor]) -> Dict[str, object]:
        if example_input is None:
            return {}
        # Run on a copy so observers in the caller's module keep their statistics.
        probe = copy.deepcopy(gm)
        probe.eval()
        with torch.no_grad():
            ShapeProp(probe).propagate(example_input)
        return {n.name: n.meta.get('tensor_meta') for n in probe.graph.nodes}

    def _kind_and_shape(self, meta):
        if meta is None:
            return ElementKind.FLOAT, None
        if isinstance(meta, TensorMetadata):
            return element_kind(meta.dtype), tuple(meta.shape)
        # Tuples of tensors and other containers
        return ElementKind.OTHER, None

    def _constant_array(self, gm: fx.GraphModule, node: fx.Node) -> ArrayDescriptor:
        value = gm
        for atom in str(node.target).split('.'):
            value = getattr(value, atom)
        if not isinstance(value, torch.Tensor):
            return ArrayDescriptor(node.name, ElementKind.OTHER, is_constant=True)

        kind = element_kind(value.dtype)
        min_max = None
        if kind is ElementKind.FLOAT and value.numel() > 0:
            data = value.detach().cpu().numpy()
            min_max = MinMax(float(np.min(data)), float(np.max(data)))
        return ArrayDescriptor(node.name, kind, observed_range=min_max,
                               shape=tuple(value.shape), is_constant=True)

    def _op_type(self, gm: fx.GraphModule, node: fx.Node) -> str:
        if node.op == 'call_module':
            module = gm.get_submodule(node.target)
            if isinstance(module, FakeQuantizeBase):
                return FAKE_QUANT_OP
            return type(module).__name__.lower()
        if node.op == 'call_method':
            return str(node.target)
        return getattr(node.target, '__name__', str(node.target))

    def _node_args(self, node: fx.Node):
        args = []
        fx.node.map_arg((node.args, node.kwargs), lambda n: args.append(n))
        return args

    def _log(self, message: str):
        """Print message if verbose mode is enabled."""
        if self.verbose:
            print(f"[{self.__class__.__name__}] {message}")


def import_module(model: torch.nn.Module,
                  example_input: Optional[torch.Tensor] = None) -> GraphView:
    """
    Convenience function to import a torch module.

    Args:
        model: The module to import
        example_input: Optional example input for dtype/shape inference

    Returns:
        The GraphView
    """
    return FXImporter().import_module(model, example_input)
