"""
Pass to remove fake-quant markers.

Before: A -> fake_quant -> B
After:  A -> B

Floating-point semantics then propagate through unchanged.
"""

from typing import List

from .base import PassSite, PassStage, RewritePass
from ..config.policy import PolicyConfig
from ..ir.graph import GraphView


class RemoveFakeQuantPass(RewritePass):
    """Removes every fake-quant marker when the policy drops them."""

    name = "remove_fake_quant"
    stage = PassStage.MARKERS
    crosses_boundaries = False

    def is_enabled(self, policy: PolicyConfig) -> bool:
        return policy.drop_fake_quant

    def disabled_reason(self, policy: PolicyConfig) -> str:
        return "fake-quant markers are kept (drop_fake_quant is off)"

    def find_sites(self, graph: GraphView) -> List[PassSite]:
        sites = [PassSite(operators=(m.name,), arrays=m.inputs + m.outputs)
                 for m in graph.markers()]
        for site in sites:
            self._log(f"Removing marker {site.operators[0]}")
        self.stats = {'markers_removed': len(sites)}
        return sites
