"""
Integration tests for the conversion planner
"""

import pytest
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.toco_planner import (
    ConversionPlanner, InvalidPolicy, PolicyConfig, UnsupportedOperator, plan_conversion,
)
from src.toco_planner.ir import (
    ArrayDescriptor, ArrayRole, ElementKind, GraphView, MinMax, OperatorNode,
)
from src.toco_planner.support import OperatorSupport

SUPPORTED = ('conv2d', 'relu', 'fake_quant', 'gather')


def small_model():
    """
    image -> conv -> fq -> relu -> gather(indices)

    'indices' is a plain-integer array, 'conv_out' has no statistics.
    """
    graph = GraphView(arrays=[
        ArrayDescriptor('image', role=ArrayRole.DESIGNATED_INPUT, observed_range=MinMax(0.0, 1.0)),
        ArrayDescriptor('weights', observed_range=MinMax(-0.5, 0.5), is_constant=True),
        ArrayDescriptor('conv_out'),
        ArrayDescriptor('fq_out', observed_range=MinMax(-1.0, 1.0)),
        ArrayDescriptor('relu_out', observed_range=MinMax(0.0, 1.0)),
        ArrayDescriptor('indices', ElementKind.PLAIN_INTEGER, is_constant=True),
        ArrayDescriptor('out', observed_range=MinMax(0.0, 1.0)),
    ])
    graph.add_operator(OperatorNode('conv', 'conv2d', ['image', 'weights'], ['conv_out']))
    graph.add_operator(OperatorNode('fq', 'fake_quant', ['conv_out'], ['fq_out']))
    graph.add_operator(OperatorNode('relu', 'relu', ['fq_out'], ['relu_out']))
    graph.add_operator(OperatorNode('gather', 'gather', ['relu_out', 'indices'], ['out']))
    graph.mark_output('out')
    return graph


def make_policy(**overrides):
    flags = dict(input_format='TENSORFLOW_GRAPHDEF', output_format='TFLITE')
    flags.update(overrides)
    return PolicyConfig(**flags)


class TestConversionPlanner:
    """End-to-end planning"""

    def test_quantized_job_reports_missing_range(self):
        result = ConversionPlanner(make_policy(inference_type='QUANTIZED_UINT8')).plan(small_model())

        assert list(result.failures) == ['conv_out']
        assert result.decisions['fq_out'].zero_point == 128
        assert result.passthrough == ['indices']
        assert not result.succeeded
        # Resolution failures do not stop planning by default
        assert result.plan is not None
        assert len(result.boundaries.hard()) == 1

    def test_abort_on_failure(self):
        planner = ConversionPlanner(make_policy(inference_type='QUANTIZED_UINT8'))
        result = planner.plan(small_model(), abort_on_failure=True)
        assert result.plan is None
        assert result.boundaries is None
        assert result.failures

    def test_default_range_completes_job(self):
        policy = make_policy(inference_type='QUANTIZED_UINT8',
                             default_range_min=-6.0, default_range_max=6.0)
        result = ConversionPlanner(policy).plan(small_model())

        assert result.succeeded
        assert result.decisions['conv_out'].uses_synthetic_range
        assert result.diagnostics.by_code('synthetic-range')[0].subject == 'conv_out'

    def test_float_job(self):
        result = plan_conversion(small_model(), input_format='TENSORFLOW_GRAPHDEF',
                                 output_format='TFLITE', inference_type='FLOAT')
        assert result.succeeded
        assert all(d.kind is ElementKind.FLOAT for d in result.decisions.values())

    def test_relaxed_boundaries_surface_warnings(self):
        result = ConversionPlanner(make_policy(relax_quant_boundary=True)).plan(small_model())
        codes = {d.code for d in result.diagnostics.warnings()}
        assert codes == {'boundary-relaxed', 'soft-boundary-crossed'}

    def test_graph_not_modified(self):
        graph = small_model()
        before = graph.describe()
        ConversionPlanner(make_policy(drop_fake_quant=True)).plan(graph)
        assert graph.describe() == before

    def test_malformed_graph(self):
        graph = GraphView(arrays=[ArrayDescriptor('a'), ArrayDescriptor('b')])
        graph.add_operator(OperatorNode('op1', 'relu', ['b'], ['a']))
        graph.add_operator(OperatorNode('op2', 'relu', ['a'], ['b']))
        with pytest.raises(ValueError, match="cycle"):
            ConversionPlanner(make_policy()).plan(graph)

    def test_summary_and_verbose(self, capsys):
        result = ConversionPlanner(make_policy(), verbose=True).plan(small_model())
        out = capsys.readouterr().out
        assert "[3/4] Building pass plan..." in out
        assert "Passes:" in result.summary()


class TestPlanConversion:
    """Test the convenience function"""

    def test_policy_or_flags(self):
        with pytest.raises(ValueError):
            plan_conversion(small_model(), policy=make_policy(), inference_type='FLOAT')

    def test_invalid_flags(self):
        with pytest.raises(InvalidPolicy):
            plan_conversion(small_model(), input_format='TFLITE', output_format='TFLITE',
                            default_range_min=0)


class TestOperatorSupport:
    """Test custom operator handling"""

    def test_all_supported(self):
        support = OperatorSupport(SUPPORTED)
        result = ConversionPlanner(make_policy(), operator_support=support).plan(small_model())
        assert result.custom_operators == []

    def test_unsupported_operator(self):
        support = OperatorSupport(('conv2d', 'relu'))
        planner = ConversionPlanner(make_policy(), operator_support=support)
        with pytest.raises(UnsupportedOperator) as exc_info:
            planner.plan(small_model())
        assert exc_info.value.operator_name == 'gather'
        assert exc_info.value.op_type == 'gather'

    def test_custom_ops_allowed(self):
        support = OperatorSupport(('conv2d', 'relu'))
        planner = ConversionPlanner(make_policy(allow_custom_ops=True), operator_support=support)
        result = planner.plan(small_model())
        assert result.custom_operators == ['gather']
        assert result.diagnostics.by_code('custom-op')[0].subject == 'gather'

    def test_markers_never_checked(self):
        """fake_quant is handled by quantization, not exported as an operator"""
        support = OperatorSupport(('conv2d', 'relu', 'gather'))
        result = ConversionPlanner(make_policy(), operator_support=support).plan(small_model())
        assert result.custom_operators == []

    def test_removed_operators_skipped(self):
        graph = small_model()
        support = OperatorSupport(('conv2d', 'relu', 'fake_quant'))
        custom = support.check(graph, make_policy(allow_custom_ops=True),
                               removed_operators=['gather'])
        assert custom == []
