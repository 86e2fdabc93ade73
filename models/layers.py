# =============================================================================
# Layer Configs & Factory Registry
# =============================================================================
"""
Declarative layer configurations and the registry that turns them into
Keras layers.

Each layer kind maps to a (validate, create, default) triple in
LAYER_REGISTRY. Adding a kind means adding an entry, not a subclass.

Contract:
- validate(config) is pure and returns a bool
- create(config) assumes validate(config) already passed
"""

import dataclasses
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, ClassVar, Dict, List, Mapping, NamedTuple, Optional, Union

from tensorflow import keras

from core.errors import ConfigValidationError, UnsupportedLayerKindError


logger = logging.getLogger(__name__)

ACTIVATIONS = (
    'relu', 'sigmoid', 'tanh', 'softmax', 'linear', 'elu', 'selu',
    'softplus', 'softsign', 'swish', 'gelu', 'exponential', 'hard_sigmoid',
)
CONV_PADDINGS = ('valid', 'same', 'causal')


# =============================================================================
# Config types
# =============================================================================

@dataclass(frozen=True)
class DenseLayerConfig:
    kind: ClassVar[str] = 'dense'

    units: int = 32
    activation: Optional[str] = 'relu'
    use_bias: bool = True
    kernel_initializer: str = 'glorot_normal'
    bias_initializer: str = 'zeros'


@dataclass(frozen=True)
class DropoutLayerConfig:
    kind: ClassVar[str] = 'dropout'

    rate: float = 0.2


@dataclass(frozen=True)
class BatchNormLayerConfig:
    kind: ClassVar[str] = 'batch_normalization'

    axis: int = -1
    momentum: float = 0.99
    epsilon: float = 0.001


@dataclass(frozen=True)
class Conv1DLayerConfig:
    kind: ClassVar[str] = 'conv1d'

    filters: int = 32
    kernel_size: int = 3
    strides: int = 1
    padding: str = 'valid'
    activation: Optional[str] = 'relu'


LayerConfig = Union[DenseLayerConfig, DropoutLayerConfig, BatchNormLayerConfig, Conv1DLayerConfig]


# =============================================================================
# Validators
# =============================================================================

def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_activation(value: Any) -> bool:
    return value is None or value in ACTIVATIONS


def validate_dense_config(config: DenseLayerConfig) -> bool:
    return _is_positive_int(config.units) and _is_activation(config.activation)


def validate_dropout_config(config: DropoutLayerConfig) -> bool:
    return _is_number(config.rate) and 0 <= config.rate < 1


def validate_batch_norm_config(config: BatchNormLayerConfig) -> bool:
    return (
        isinstance(config.axis, int)
        and _is_number(config.momentum) and 0 <= config.momentum <= 1
        and _is_number(config.epsilon) and config.epsilon > 0
    )


def validate_conv1d_config(config: Conv1DLayerConfig) -> bool:
    return (
        _is_positive_int(config.filters)
        and _is_positive_int(config.kernel_size)
        and _is_positive_int(config.strides)
        and config.padding in CONV_PADDINGS
        and _is_activation(config.activation)
    )


# =============================================================================
# Factories
# =============================================================================

def create_dense_layer(config: DenseLayerConfig, **layer_kwargs) -> keras.layers.Layer:
    return keras.layers.Dense(
        units=config.units,
        activation=config.activation or 'linear',
        use_bias=config.use_bias,
        kernel_initializer=config.kernel_initializer,
        bias_initializer=config.bias_initializer,
        **layer_kwargs
    )


def create_dropout_layer(config: DropoutLayerConfig, **layer_kwargs) -> keras.layers.Layer:
    return keras.layers.Dropout(rate=config.rate, **layer_kwargs)


def create_batch_norm_layer(config: BatchNormLayerConfig, **layer_kwargs) -> keras.layers.Layer:
    return keras.layers.BatchNormalization(
        axis=config.axis,
        momentum=config.momentum,
        epsilon=config.epsilon,
        **layer_kwargs
    )


def create_conv1d_layer(config: Conv1DLayerConfig, **layer_kwargs) -> keras.layers.Layer:
    return keras.layers.Conv1D(
        filters=config.filters,
        kernel_size=config.kernel_size,
        strides=config.strides,
        padding=config.padding,
        activation=config.activation or 'linear',
        **layer_kwargs
    )


# =============================================================================
# Registry
# =============================================================================

class LayerFactory(NamedTuple):
    """Validation, construction and default config for one layer kind."""
    config_type: type
    validate: Callable[[Any], bool]
    create: Callable[..., keras.layers.Layer]
    default: Callable[[], Any]


LAYER_REGISTRY: Mapping[str, LayerFactory] = MappingProxyType({
    DenseLayerConfig.kind: LayerFactory(
        DenseLayerConfig, validate_dense_config, create_dense_layer, DenseLayerConfig
    ),
    DropoutLayerConfig.kind: LayerFactory(
        DropoutLayerConfig, validate_dropout_config, create_dropout_layer, DropoutLayerConfig
    ),
    BatchNormLayerConfig.kind: LayerFactory(
        BatchNormLayerConfig, validate_batch_norm_config, create_batch_norm_layer, BatchNormLayerConfig
    ),
    Conv1DLayerConfig.kind: LayerFactory(
        Conv1DLayerConfig, validate_conv1d_config, create_conv1d_layer, Conv1DLayerConfig
    ),
})


def get_layer_factory(kind: str) -> LayerFactory:
    """
    Look up the factory entry for a layer kind.

    Raises:
        UnsupportedLayerKindError: If the kind is not registered
    """
    factory = LAYER_REGISTRY.get(kind)
    if factory is None:
        raise UnsupportedLayerKindError(kind)
    return factory


def _kind_of(config: Any) -> str:
    return getattr(config, 'kind', None) or type(config).__name__


def validate_layer_config(config: LayerConfig) -> bool:
    """
    Validate a layer configuration.

    Args:
        config: Any registered layer config

    Returns:
        True if the config can be passed to create_layer()
    """
    factory = get_layer_factory(_kind_of(config))
    if not isinstance(config, factory.config_type):
        return False
    return bool(factory.validate(config))


def create_layer(config: LayerConfig, **layer_kwargs) -> keras.layers.Layer:
    """
    Create a Keras layer from a validated config.

    Calling this on an invalid config is undefined; run
    validate_layer_config() first.

    Args:
        config: Layer configuration
        **layer_kwargs: Extra Keras layer arguments (name, input_shape)

    Returns:
        Fresh, unbuilt Keras layer
    """
    return get_layer_factory(_kind_of(config)).create(config, **layer_kwargs)


def get_supported_layer_kinds() -> List[str]:
    return list(LAYER_REGISTRY.keys())


def create_default_layer_config(kind: str) -> LayerConfig:
    return get_layer_factory(kind).default()


# =============================================================================
# Mapping form ({"kind": "dense", "units": 8, ...})
# =============================================================================

# Alternate spellings accepted in the mapping form
_KIND_ALIASES = {
    'batchNormalization': BatchNormLayerConfig.kind,
    'batch_norm': BatchNormLayerConfig.kind,
    'batchnorm': BatchNormLayerConfig.kind,
    'conv1D': Conv1DLayerConfig.kind,
}

_FIELD_ALIASES = {
    'useBias': 'use_bias',
    'kernelInitializer': 'kernel_initializer',
    'biasInitializer': 'bias_initializer',
    'kernelSize': 'kernel_size',
}


def layer_config_from_dict(data: Mapping[str, Any]) -> LayerConfig:
    """
    Build a typed layer config from its mapping form.

    Accepts either `kind` or `type` as the discriminator and camelCase
    field names.

    Raises:
        UnsupportedLayerKindError: Unknown kind
        ConfigValidationError: Missing discriminator or unknown fields
    """
    values = dict(data)
    kind = values.pop('kind', None) or values.pop('type', None)
    if not kind:
        raise ConfigValidationError(
            f"Layer mapping has no 'kind': {dict(data)}", field='kind'
        )
    values.pop('type', None)
    kind = _KIND_ALIASES.get(kind, kind)
    factory = get_layer_factory(kind)

    known = {f.name for f in dataclasses.fields(factory.config_type)}
    fields: Dict[str, Any] = {}
    for key, value in values.items():
        name = _FIELD_ALIASES.get(key, key)
        if name not in known:
            raise ConfigValidationError(
                f"Unknown field '{key}' for layer kind '{kind}'", field=key
            )
        fields[name] = value

    return factory.config_type(**fields)


def layer_config_to_dict(config: LayerConfig) -> Dict[str, Any]:
    data = {'kind': config.kind}
    data.update(dataclasses.asdict(config))
    return data
