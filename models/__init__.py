# =============================================================================
# Models Module
# =============================================================================
"""
Layer registry and declarative model definitions.

Exports:
- ModelDefinition: Validate + compile a layer stack into a keras.Sequential
- create_model_definition: Definition with the default hidden stack
- Layer configs and the LAYER_REGISTRY (dense, dropout, batch_normalization, conv1d)
"""

from models.layers import (
    DenseLayerConfig,
    DropoutLayerConfig,
    BatchNormLayerConfig,
    Conv1DLayerConfig,
    LAYER_REGISTRY,
    create_layer,
    validate_layer_config,
    get_supported_layer_kinds,
    create_default_layer_config,
    layer_config_from_dict,
)
from models.definition import ModelDefinition, create_model_definition

__all__ = [
    # Layers
    'DenseLayerConfig',
    'DropoutLayerConfig',
    'BatchNormLayerConfig',
    'Conv1DLayerConfig',
    'LAYER_REGISTRY',
    'create_layer',
    'validate_layer_config',
    'get_supported_layer_kinds',
    'create_default_layer_config',
    'layer_config_from_dict',

    # Definitions
    'ModelDefinition',
    'create_model_definition',
]
