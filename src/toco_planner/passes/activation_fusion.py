"""
Pass to fuse activation functions into the operator producing their input.

Before: conv2d -> relu
After:  conv2d(fused_activation=relu)

When a fake-quant marker sits between the producer and the activation
(conv2d -> fake_quant -> relu), fusing moves the activation across the marker.
That changes where quantization happens relative to training, so this pass
crosses quantization boundaries.
"""

from typing import Iterable, List, Optional

from .base import PassSite, PassStage, RewritePass
from ..ir.graph import GraphView
from ..ir.node import OperatorNode

DEFAULT_ACTIVATIONS = ('relu', 'relu6', 'relu_n1_to_1', 'tanh')
DEFAULT_PRODUCERS = ('conv2d', 'depthwise_conv2d', 'linear', 'fully_connected', 'add', 'mul')


class FuseActivationFunctionsPass(RewritePass):
    """Fuses activations into their producer, looking through one marker."""

    name = "fuse_activation_functions"
    stage = PassStage.GENERAL
    crosses_boundaries = True

    def __init__(self, activations: Iterable[str] = DEFAULT_ACTIVATIONS,
                 producers: Iterable[str] = DEFAULT_PRODUCERS,
                 required: bool = False, verbose: bool = False):
        super().__init__(required=required, verbose=verbose)
        self.activations = frozenset(activations)
        self.producers = frozenset(producers)

    def find_sites(self, graph: GraphView) -> List[PassSite]:
        sites = []
        for op in graph.operators:
            if op.op_type not in self.activations or len(op.inputs) != 1:
                continue
            site = self._site_for(graph, op)
            if site is not None:
                sites.append(site)
                self._log(f"Fusable: {' -> '.join(site.operators)}")

        self.stats = {'sites_found': len(sites),
                      'through_marker': sum(1 for s in sites if len(s.operators) == 3)}
        return sites

    def _single_consumer(self, graph: GraphView, array_name: str) -> bool:
        return len(graph.consumers_of(array_name)) == 1

    def _site_for(self, graph: GraphView, activation: OperatorNode) -> Optional[PassSite]:
        x = activation.inputs[0]
        producer = graph.producer_of(x)
        if producer is None or not self._single_consumer(graph, x):
            return None

        if producer.op_type in self.producers:
            return PassSite(operators=(producer.name, activation.name), arrays=(x,))

        if producer.is_fake_quant and producer.inputs:
            inner = producer.inputs[0]
            source = graph.producer_of(inner)
            if (source is not None and source.op_type in self.producers
                    and self._single_consumer(graph, inner)):
                return PassSite(operators=(source.name, producer.name, activation.name),
                                arrays=(inner, x))
        return None
