"""
Rewrite passes and their scheduling.

Usage:
    from src.toco_planner.passes import TransformationScheduler, default_passes

    scheduler = TransformationScheduler(policy)
    plan = scheduler.build_plan(default_passes(lstm_patterns), boundaries, graph)
"""

from typing import List, Sequence

from .base import PassSite, PassStage, RewritePass
from .control_dependency import DropControlDependencyPass
from .fake_quant_removal import RemoveFakeQuantPass
from .recurrent_fusion import RecurrentCellFusionPass
from .activation_fusion import FuseActivationFunctionsPass
from .scheduler import (
    PassPlan, PlannedPass, Region, TransformationScheduler, build_plan, compute_regions,
)


def default_passes(recurrent_patterns: Sequence[Sequence[str]] = ()) -> List[RewritePass]:
    """
    Standard candidate passes.

    Args:
        recurrent_patterns: Op-type sequences identifying recurrent cells;
            fusion is only a candidate when at least one is given
    """
    passes: List[RewritePass] = [DropControlDependencyPass(), RemoveFakeQuantPass()]
    if recurrent_patterns:
        passes.append(RecurrentCellFusionPass(recurrent_patterns))
    passes.append(FuseActivationFunctionsPass())
    return passes


__all__ = [
    'PassSite',
    'PassStage',
    'RewritePass',
    'DropControlDependencyPass',
    'RemoveFakeQuantPass',
    'RecurrentCellFusionPass',
    'FuseActivationFunctionsPass',
    'PassPlan',
    'PlannedPass',
    'Region',
    'TransformationScheduler',
    'build_plan',
    'compute_regions',
    'default_passes',
]
