import pytest

keras = pytest.importorskip("tensorflow").keras

from core.errors import ConfigValidationError, UnsupportedLayerKindError
from models.layers import (
    ACTIVATIONS,
    BatchNormLayerConfig,
    Conv1DLayerConfig,
    DenseLayerConfig,
    DropoutLayerConfig,
    LAYER_REGISTRY,
    create_default_layer_config,
    create_layer,
    get_supported_layer_kinds,
    layer_config_from_dict,
    layer_config_to_dict,
    validate_layer_config,
)


def test_registry_defaults_validate_and_create() -> None:
    assert set(get_supported_layer_kinds()) == {'dense', 'dropout', 'batch_normalization', 'conv1d'}
    for kind in LAYER_REGISTRY:
        config = create_default_layer_config(kind)
        assert validate_layer_config(config)
        assert isinstance(create_layer(config), keras.layers.Layer)


def test_default_values() -> None:
    dense = DenseLayerConfig()
    assert dense.units == 32
    assert dense.kernel_initializer == 'glorot_normal'
    assert DropoutLayerConfig().rate == 0.2
    assert BatchNormLayerConfig().momentum == 0.99
    assert Conv1DLayerConfig().padding == 'valid'


@pytest.mark.parametrize("config", [
    DenseLayerConfig(units=0),
    DenseLayerConfig(units=True),
    DropoutLayerConfig(rate=1.0),
    DropoutLayerConfig(rate=-0.1),
    BatchNormLayerConfig(epsilon=0),
    Conv1DLayerConfig(padding='full'),
    Conv1DLayerConfig(kernel_size=0),
    DenseLayerConfig(activation='relu6x'),
    Conv1DLayerConfig(activation='mish'),
])
def test_invalid_configs_fail_validation(config) -> None:
    assert validate_layer_config(config) is False


def test_activation_may_be_omitted_or_any_known_name() -> None:
    assert validate_layer_config(DenseLayerConfig(activation=None))
    for name in ACTIVATIONS:
        assert validate_layer_config(Conv1DLayerConfig(activation=name))
        assert isinstance(create_layer(DenseLayerConfig(activation=name)), keras.layers.Layer)


def test_unknown_kind_raises() -> None:
    with pytest.raises(UnsupportedLayerKindError) as excinfo:
        create_default_layer_config('lstm')
    assert 'lstm' in str(excinfo.value)


def test_factory_creates_configured_layer() -> None:
    layer = create_layer(DenseLayerConfig(units=7, activation='tanh'), name='hidden')
    assert layer.units == 7
    assert layer.name == 'hidden'
    assert layer.activation.__name__ == 'tanh'


def test_mapping_form_accepts_aliases() -> None:
    config = layer_config_from_dict({'type': 'batchNormalization', 'momentum': 0.9})
    assert config == BatchNormLayerConfig(momentum=0.9)

    conv = layer_config_from_dict({'kind': 'conv1d', 'filters': 4, 'kernelSize': 2})
    assert conv.kernel_size == 2
    assert layer_config_to_dict(conv)['kind'] == 'conv1d'


def test_mapping_form_rejects_unknown_fields() -> None:
    with pytest.raises(ConfigValidationError):
        layer_config_from_dict({'kind': 'dense', 'neurons': 3})
    with pytest.raises(ConfigValidationError):
        layer_config_from_dict({'units': 3})
