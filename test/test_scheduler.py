"""
Tests for TransformationScheduler and pass plans
"""

import pytest
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.toco_planner.boundaries import BoundaryPolicy
from src.toco_planner.config import PolicyConfig, FileFormat
from src.toco_planner.errors import SchedulingConflict
from src.toco_planner.ir import ArrayDescriptor, ArrayRole, GraphView, MinMax, OperatorNode
from src.toco_planner.passes import (
    FuseActivationFunctionsPass, RecurrentCellFusionPass, TransformationScheduler,
    build_plan, compute_regions, default_passes,
)
from src.toco_planner.passes.scheduler import collapse_removed_markers
from src.toco_planner.passes.base import PassSite

LSTM_PATTERN = ('matmul', 'add', 'sigmoid', 'mul')


def make_policy(**overrides):
    flags = dict(input_format=FileFormat.TENSORFLOW_GRAPHDEF, output_format=FileFormat.TFLITE)
    flags.update(overrides)
    return PolicyConfig(**flags)


def marker_graph():
    """x -> conv -> fq -> relu"""
    graph = GraphView(arrays=[
        ArrayDescriptor('x', role=ArrayRole.DESIGNATED_INPUT),
        ArrayDescriptor('conv_out'),
        ArrayDescriptor('fq_out', observed_range=MinMax(0.0, 6.0)),
        ArrayDescriptor('relu_out'),
    ])
    graph.add_operator(OperatorNode('conv', 'conv2d', ['x'], ['conv_out']))
    graph.add_operator(OperatorNode('fq', 'fake_quant', ['conv_out'], ['fq_out']))
    graph.add_operator(OperatorNode('relu', 'relu', ['fq_out'], ['relu_out']))
    return graph


def recurrent_graph():
    """A recurrent cell followed by conv -> fq -> relu, with a control dependency"""
    names = ['h', 'mm', 'sum', 'gate', 'cell', 'conv_out', 'fq_out', 'relu_out']
    graph = GraphView(arrays=[ArrayDescriptor(n) for n in names])
    ops = [('matmul', 'matmul'), ('add', 'add'), ('sigmoid', 'sigmoid'), ('mul', 'mul'),
           ('conv', 'conv2d'), ('fq', 'fake_quant'), ('relu', 'relu')]
    for i, (name, op_type) in enumerate(ops):
        deps = ('matmul',) if name == 'conv' else ()
        graph.add_operator(OperatorNode(name, op_type, [names[i]], [names[i + 1]],
                                        control_deps=deps))
    return graph


def plan_for(graph, policy, passes=None):
    boundaries = BoundaryPolicy(policy).compute_boundaries(graph)
    candidates = passes if passes is not None else default_passes([LSTM_PATTERN])
    return TransformationScheduler(policy).build_plan(candidates, boundaries, graph), boundaries


class TestRegions:
    """Test partitioning at hard boundaries"""

    def test_hard_boundary_splits_regions(self):
        graph = marker_graph()
        boundaries = BoundaryPolicy(make_policy()).compute_boundaries(graph)
        regions = compute_regions(graph, boundaries)

        assert [r.operators for r in regions] == [('conv', 'fq'), ('relu',)]
        assert [r.arrays for r in regions] == [('x', 'conv_out'), ('relu_out',)]
        assert all('fq_out' not in r.arrays for r in regions)

    def test_soft_boundary_keeps_region(self):
        graph = marker_graph()
        boundaries = BoundaryPolicy(make_policy(relax_quant_boundary=True)).compute_boundaries(graph)
        regions = compute_regions(graph, boundaries)
        assert len(regions) == 1
        assert 'fq_out' in regions[0].arrays

    def test_diamond_keeps_boundary_out(self):
        """Operators joined around a marker still never list its output array"""
        graph = GraphView(arrays=[ArrayDescriptor(n) for n in ('x', 'q', 'y')])
        graph.add_operator(OperatorNode('fq', 'fake_quant', ['x'], ['q']))
        graph.add_operator(OperatorNode('add', 'add', ['x', 'q'], ['y']))
        boundaries = BoundaryPolicy(make_policy()).compute_boundaries(graph)
        regions = compute_regions(graph, boundaries)
        assert len(regions) == 1
        assert regions[0].arrays == ('x', 'y')


class TestBoundaryGating:
    """Test hard/soft boundary handling for crossing passes"""

    def test_hard_boundary_rejects_site(self):
        plan, _ = plan_for(marker_graph(), make_policy())
        fusion = plan.get('fuse_activation_functions')

        assert fusion.crosses_boundaries
        assert fusion.sites == ()
        assert [s.operators for s in fusion.rejected_sites] == [('conv', 'fq', 'relu')]
        assert plan.diagnostics.by_code('site-rejected')

    def test_required_pass_conflict(self):
        graph = marker_graph()
        policy = make_policy()
        with pytest.raises(SchedulingConflict) as exc_info:
            plan_for(graph, policy, [FuseActivationFunctionsPass(required=True)])
        assert exc_info.value.array_name == 'fq_out'

    def test_soft_boundary_crossed_with_warning(self):
        plan, _ = plan_for(marker_graph(), make_policy(relax_quant_boundary=True))
        fusion = plan.get('fuse_activation_functions')

        assert [s.operators for s in fusion.sites] == [('conv', 'fq', 'relu')]
        assert fusion.soft_crossings == ('fq_out',)
        warnings = plan.diagnostics.by_code('soft-boundary-crossed')
        assert [w.subject for w in warnings] == ['fq_out']

    def test_non_crossing_pass_rejected_at_hard_boundary(self):
        """A fusion pattern spanning a marker never merges across a hard boundary"""
        marker_fusion = RecurrentCellFusionPass([('fake_quant', 'relu')])
        plan, _ = plan_for(marker_graph(), make_policy(), [marker_fusion])
        fusion = plan.get('fuse_recurrent_cells')

        assert not fusion.crosses_boundaries
        assert fusion.sites == ()
        assert fusion.rejected_sites == (PassSite(('fq', 'relu'), ('fq_out',)),)
        assert [d.subject for d in plan.diagnostics.by_code('site-rejected')] == \
            ['fuse_recurrent_cells']

    def test_required_non_crossing_pass_conflict(self):
        marker_fusion = RecurrentCellFusionPass([('fake_quant', 'relu')], required=True)
        with pytest.raises(SchedulingConflict) as exc_info:
            plan_for(marker_graph(), make_policy(), [marker_fusion])
        assert exc_info.value.pass_name == 'fuse_recurrent_cells'
        assert exc_info.value.array_name == 'fq_out'

    def test_non_crossing_pass_warns_on_soft_boundary(self):
        marker_fusion = RecurrentCellFusionPass([('fake_quant', 'relu')])
        plan, _ = plan_for(marker_graph(), make_policy(relax_quant_boundary=True),
                           [marker_fusion])
        fusion = plan.get('fuse_recurrent_cells')

        assert [s.operators for s in fusion.sites] == [('fq', 'relu')]
        assert fusion.soft_crossings == ('fq_out',)

    def test_non_crossing_pass_gets_whole_graph(self):
        plan, _ = plan_for(recurrent_graph(), make_policy())
        fusion = plan.get('fuse_recurrent_cells')
        assert [r.name for r in fusion.regions] == ['graph']
        assert fusion.sites[0].operators == ('matmul', 'add', 'sigmoid', 'mul')

    @pytest.mark.parametrize("graph_fn", [marker_graph, recurrent_graph])
    def test_no_pass_touches_hard_boundary(self, graph_fn):
        """With strict boundaries no accepted site holds a hard boundary"""
        graph = graph_fn()
        passes = default_passes([LSTM_PATTERN, ('fake_quant', 'relu')])
        plan, boundaries = plan_for(graph, make_policy(), passes)
        hard = {e.array_name for e in boundaries.hard()}
        assert hard

        for planned in plan:
            for site in planned.sites:
                assert not hard & set(site.arrays)
            if planned.crosses_boundaries:
                for region in planned.regions:
                    assert not hard & set(region.arrays)


class TestPolicyGating:
    """Test policy switches on the plan"""

    def test_drop_fake_quant_schedules_removal(self):
        graph = marker_graph()
        plan, boundaries = plan_for(graph, make_policy(drop_fake_quant=True))

        assert len(boundaries) == 0
        assert 'remove_fake_quant' in plan
        assert plan.removed_operators() == ['fq']
        # Nothing left to protect
        assert plan.get('fuse_activation_functions').rejected_sites == ()

    def test_fusion_sites_skip_removed_markers(self):
        """After marker removal, activation fusion sees conv -> relu directly"""
        plan, _ = plan_for(marker_graph(), make_policy(drop_fake_quant=True))
        fusion = plan.get('fuse_activation_functions')
        assert fusion.sites == (PassSite(('conv', 'relu'), ('conv_out',)),)
        assert 'fq' not in plan.describe().split('fuse_activation_functions')[1]

    def test_collapse_removed_markers(self):
        graph = marker_graph()
        sites = [PassSite(('conv', 'fq', 'relu'), ('conv_out', 'fq_out')),
                 PassSite(('fq',), ('conv_out', 'fq_out')),
                 PassSite(('conv',), ('x',))]
        collapsed = collapse_removed_markers(sites, {'fq'}, graph)
        assert collapsed == [PassSite(('conv', 'relu'), ('conv_out',)), PassSite(('conv',), ('x',))]

    def test_markers_kept_without_removal(self):
        plan, _ = plan_for(marker_graph(), make_policy(relax_quant_boundary=True))
        fusion = plan.get('fuse_activation_functions')
        assert fusion.sites[0].operators == ('conv', 'fq', 'relu')

    def test_disable_recurrent_fusion(self):
        plan, _ = plan_for(recurrent_graph(), make_policy(disable_recurrent_fusion=True))
        assert 'fuse_recurrent_cells' not in plan
        assert ('fuse_recurrent_cells', 'recurrent cell fusion disabled') in plan.skipped

    def test_control_dependencies_dropped_for_tflite(self):
        plan, _ = plan_for(recurrent_graph(), make_policy())
        elision = plan.get('drop_control_dependency')
        assert [s.operators for s in elision.sites] == [('conv', 'matmul')]

    def test_control_dependencies_kept_for_graphdef(self):
        policy = make_policy(output_format=FileFormat.TENSORFLOW_GRAPHDEF)
        plan, _ = plan_for(recurrent_graph(), policy)
        assert 'drop_control_dependency' not in plan
        assert plan.skipped[0][0] == 'drop_control_dependency'

    def test_control_dependencies_explicit_override(self):
        policy = make_policy(output_format=FileFormat.TENSORFLOW_GRAPHDEF,
                             drop_control_dependency=True)
        plan, _ = plan_for(recurrent_graph(), policy)
        assert 'drop_control_dependency' in plan

    def test_policy_passes_added_when_missing(self):
        graph = marker_graph()
        policy = make_policy(drop_fake_quant=True)
        boundaries = BoundaryPolicy(policy).compute_boundaries(graph)
        plan = build_plan([], boundaries, policy, graph)
        assert plan.pass_names() == ['drop_control_dependency', 'remove_fake_quant']


class TestOrdering:
    """Test ordering and determinism"""

    def test_stage_order_independent_of_candidate_order(self):
        policy = make_policy(drop_fake_quant=True)
        plan, _ = plan_for(recurrent_graph(), policy, list(reversed(default_passes([LSTM_PATTERN]))))
        assert plan.pass_names() == ['drop_control_dependency', 'remove_fake_quant',
                                     'fuse_recurrent_cells', 'fuse_activation_functions']

    def test_same_stage_keeps_candidate_order(self):
        class FirstFusion(RecurrentCellFusionPass):
            name = 'first_fusion'

        passes = [FirstFusion([LSTM_PATTERN]), RecurrentCellFusionPass([('conv2d', 'fake_quant')])]
        plan, _ = plan_for(recurrent_graph(), make_policy(), passes)
        fusion_names = [n for n in plan.pass_names() if 'fusion' in n or 'recurrent' in n]
        assert fusion_names == ['first_fusion', 'fuse_recurrent_cells']

    def test_deterministic(self):
        first, _ = plan_for(recurrent_graph(), make_policy(relax_quant_boundary=True))
        second, _ = plan_for(recurrent_graph(), make_policy(relax_quant_boundary=True))
        assert first == second
        assert first.describe() == second.describe()

    def test_duplicate_candidates(self):
        with pytest.raises(ValueError, match="Duplicate"):
            plan_for(marker_graph(), make_policy(),
                     [FuseActivationFunctionsPass(), FuseActivationFunctionsPass()])

    def test_describe(self):
        plan, _ = plan_for(marker_graph(), make_policy())
        text = plan.describe()
        assert "fuse_activation_functions [GENERAL] crosses-boundaries" in text
        assert "rejected: [['conv', 'fq', 'relu']]" in text
