import numpy as np
import pytest

keras = pytest.importorskip("tensorflow").keras

from core.errors import ConfigValidationError
from models.definition import ModelDefinition, create_model_definition
from models.layers import (
    BatchNormLayerConfig,
    Conv1DLayerConfig,
    DenseLayerConfig,
    DropoutLayerConfig,
)


def _small_definition(**kwargs) -> ModelDefinition:
    defaults = dict(input_shape=(4,), output_width=3, layers=(DenseLayerConfig(units=8),))
    defaults.update(kwargs)
    return ModelDefinition(**defaults)


def test_compile_builds_hidden_and_output_layers() -> None:
    graph = _small_definition().compile()
    assert len(graph.layers) == 2
    output = graph.layers[-1]
    assert output.name == 'output'
    assert output.units == 3
    assert output.activation.__name__ == 'softmax'
    assert graph.count_params() == 67


def test_single_output_uses_sigmoid() -> None:
    definition = _small_definition(output_width=1)
    assert definition.output_activation == 'sigmoid'
    assert definition.compile().layers[-1].activation.__name__ == 'sigmoid'


def test_compiles_are_independent() -> None:
    definition = _small_definition()
    first = definition.compile()
    second = definition.compile()
    assert first is not second

    before = [w.copy() for w in second.get_weights()]
    first.set_weights([np.zeros_like(w) for w in first.get_weights()])

    for expected, actual in zip(before, second.get_weights()):
        np.testing.assert_array_equal(expected, actual)


def test_non_dense_first_layer_gets_explicit_input() -> None:
    definition = ModelDefinition(
        input_shape=(6, 2),
        output_width=3,
        layers=(Conv1DLayerConfig(filters=4, kernel_size=3),),
    )
    graph = definition.compile()
    assert graph.layers[0].filters == 4
    assert graph.count_params() == definition.estimate_parameter_count() == 43


def test_estimate_includes_batch_norm_and_skips_dropout() -> None:
    definition = _small_definition(layers=(
        DenseLayerConfig(units=8),
        BatchNormLayerConfig(),
        DropoutLayerConfig(rate=0.5),
    ))
    assert definition.estimate_parameter_count() == 67 + 32
    assert definition.compile().count_params() == 67 + 32
    assert definition.estimate_memory_usage() == (67 + 32) * 4


@pytest.mark.parametrize("input_shape, layers", [
    ((4,), (DenseLayerConfig(units=8), BatchNormLayerConfig(axis=1))),
    ((6, 2), (Conv1DLayerConfig(filters=4, kernel_size=3), BatchNormLayerConfig(axis=2))),
    ((6, 2), (Conv1DLayerConfig(filters=4, kernel_size=3), BatchNormLayerConfig(axis=1))),
])
def test_batch_norm_positive_axis_matches_keras(input_shape, layers) -> None:
    definition = ModelDefinition(input_shape=input_shape, output_width=1, layers=layers)
    assert definition.estimate_parameter_count() == definition.compile().count_params()


def test_no_hidden_layers() -> None:
    graph = _small_definition(layers=()).compile()
    assert len(graph.layers) == 1
    assert graph.count_params() == 4 * 3 + 3


def test_invalid_layer_reports_index() -> None:
    definition = _small_definition(layers=(DenseLayerConfig(units=8), DropoutLayerConfig(rate=2.0)))
    with pytest.raises(ConfigValidationError) as excinfo:
        definition.compile()
    assert excinfo.value.index == 1


@pytest.mark.parametrize("kwargs", [
    {'input_shape': ()},
    {'input_shape': (0,)},
    {'output_width': 0},
])
def test_invalid_shapes_rejected(kwargs) -> None:
    with pytest.raises(ConfigValidationError):
        _small_definition(**kwargs).validate()


def test_ids_are_unique_and_prefixed() -> None:
    a = _small_definition()
    b = _small_definition()
    assert a.id.startswith('nn_model_')
    assert a.id != b.id


def test_dict_round_trip_preserves_layers() -> None:
    definition = ModelDefinition.from_dict({
        'inputShape': [4],
        'outputWidth': 2,
        'layers': [{'kind': 'dense', 'units': 5}, {'type': 'dropout', 'rate': 0.1}],
    })
    assert definition.layers == (DenseLayerConfig(units=5), DropoutLayerConfig(rate=0.1))
    assert ModelDefinition.from_dict(definition.to_dict()) == definition


def test_default_definition() -> None:
    definition = create_model_definition()
    assert definition.input_shape == (10,)
    assert [layer.units for layer in definition.layers] == [64, 32]
    assert definition.output_width == 1
