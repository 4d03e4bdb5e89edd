"""
Base class for graph-rewrite passes.

A pass here does not rewrite anything itself: it reports the sites it would
touch so the scheduler can order and gate it. The external rewrite executor
applies the resulting plan.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, List, Tuple

from ..config.policy import PolicyConfig
from ..ir.graph import GraphView


class PassStage(IntEnum):
    """Scheduling stage; lower stages run first."""
    IMPORT = 0
    MARKERS = 1
    FUSION = 2
    GENERAL = 3


@dataclass(frozen=True)
class PassSite:
    """
    One place a pass would rewrite.

    Attributes:
        operators: Operators merged, removed or reordered at this site
        arrays: Arrays whose producer/consumer relationship changes
    """

    operators: Tuple[str, ...]
    arrays: Tuple[str, ...] = ()


class RewritePass(ABC):
    """
    Abstract base class for rewrite passes.

    Subclasses set:
        name: Stable pass identifier used in plans
        stage: Scheduling stage
        crosses_boundaries: True if the pass may merge or reorder operators
            across a fake-quant marker
    """

    name = "rewrite_pass"
    stage = PassStage.GENERAL
    crosses_boundaries = False

    def __init__(self, required: bool = False, verbose: bool = False):
        """
        Initialize the pass.

        Args:
            required: If True, a site blocked by a hard boundary is a
                scheduling conflict instead of being skipped
            verbose: If True, print information about sites found
        """
        self.required = required
        self.verbose = verbose
        self.stats: Dict[str, Any] = {}

    def is_enabled(self, policy: PolicyConfig) -> bool:
        """Whether the policy allows this pass at all."""
        return True

    def disabled_reason(self, policy: PolicyConfig) -> str:
        return "disabled by policy"

    @abstractmethod
    def find_sites(self, graph: GraphView) -> List[PassSite]:
        """
        Find every site the pass would rewrite.

        Args:
            graph: Snapshot of the graph (must not be modified)

        Returns:
            Sites in graph order
        """
        pass

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the last site search.

        Returns:
            Dictionary with pass statistics
        """
        return self.stats

    def _log(self, message: str):
        """Print message if verbose mode is enabled."""
        if self.verbose:
            print(f"[{self.__class__.__name__}] {message}")

    def __repr__(self) -> str:
        return (f"{self.__class__.__name__}(name='{self.name}', stage={self.stage.name}, "
                f"crosses_boundaries={self.crosses_boundaries}, required={self.required})")
