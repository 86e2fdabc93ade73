# =============================================================================
# Model Definition (Compiler)
# =============================================================================
"""
Immutable description of a sequential network that compiles on demand
into a fresh Keras graph.

Architecture:
    [Input] -> layers[0] -> ... -> layers[n-1] -> Dense(output_width)

The output layer is synthesized: sigmoid for a single output unit,
softmax otherwise. The choice depends on width only, not on the loss.
"""

import math
import time
import uuid
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from tensorflow import keras

from core.errors import ConfigValidationError
from models.layers import (
    BatchNormLayerConfig,
    Conv1DLayerConfig,
    DenseLayerConfig,
    LayerConfig,
    create_layer,
    layer_config_from_dict,
    layer_config_to_dict,
    validate_layer_config,
)


logger = logging.getLogger(__name__)


def _generate_model_id() -> str:
    return f"nn_model_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@dataclass(frozen=True)
class ModelDefinition:
    """
    Sequential network definition.

    compile() never mutates the definition and never caches backend
    objects on it, so the same definition can be compiled repeatedly;
    every call returns an independent graph.
    """
    input_shape: Tuple[int, ...]
    output_width: int
    layers: Tuple[LayerConfig, ...] = ()
    name: Optional[str] = None
    id: str = field(default_factory=_generate_model_id)

    def __post_init__(self):
        layers = tuple(
            layer_config_from_dict(layer) if isinstance(layer, Mapping) else layer
            for layer in self.layers
        )
        object.__setattr__(self, 'layers', layers)
        object.__setattr__(self, 'input_shape', tuple(self.input_shape))

    @property
    def output_activation(self) -> str:
        return 'sigmoid' if self.output_width == 1 else 'softmax'

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validate(self) -> None:
        """
        Validate shapes and every layer, in order.

        Raises:
            ConfigValidationError: First invalid entry (with its index for layers)
            UnsupportedLayerKindError: Unknown layer kind
        """
        if not self.input_shape or not all(
            isinstance(d, int) and not isinstance(d, bool) and d > 0 for d in self.input_shape
        ):
            raise ConfigValidationError(
                f"Input shape must be non-empty positive integers, got {self.input_shape}",
                field='input_shape'
            )

        if not isinstance(self.output_width, int) or self.output_width <= 0:
            raise ConfigValidationError(
                f"Output width must be a positive integer, got {self.output_width}",
                field='output_width'
            )

        for index, layer in enumerate(self.layers):
            if not validate_layer_config(layer):
                raise ConfigValidationError(
                    f"Invalid layer configuration at index {index}: {layer}",
                    index=index
                )

    # -------------------------------------------------------------------------
    # Compilation
    # -------------------------------------------------------------------------

    def compile(self) -> keras.Sequential:
        """
        Build a new Keras Sequential graph.

        Returns:
            Uncompiled (in the Keras sense) Sequential model; the trainer
            attaches optimizer, loss and metrics.
        """
        # Fail fast before any layer is constructed
        self.validate()

        model = keras.Sequential(name=self.name or self.id)

        if self.layers:
            first = self.layers[0]
            if isinstance(first, DenseLayerConfig):
                # Input shape fused into the first dense layer
                model.add(create_layer(first, input_shape=self.input_shape))
            else:
                model.add(keras.Input(shape=self.input_shape))
                model.add(create_layer(first))

            for layer in self.layers[1:]:
                model.add(create_layer(layer))
        else:
            model.add(keras.Input(shape=self.input_shape))

        model.add(keras.layers.Dense(
            units=self.output_width,
            activation=self.output_activation,
            name='output'
        ))

        logger.info(
            f"Neural network model created: {self.id} "
            f"with {len(self.layers)} hidden layers"
        )
        return model

    # -------------------------------------------------------------------------
    # Estimates
    # -------------------------------------------------------------------------

    def estimate_parameter_count(self) -> int:
        """
        Estimate the parameter count from the configuration alone.

        Tracks the feature shape through Dense, Conv1D and BatchNorm layers;
        Conv1D is only counted for (steps, channels) inputs. BatchNorm on
        the batch axis or an axis outside the shape adds nothing.
        """
        shape: List[int] = list(self.input_shape)
        total = 0

        for layer in self.layers:
            if isinstance(layer, DenseLayerConfig):
                total += shape[-1] * layer.units + (layer.units if layer.use_bias else 0)
                shape[-1] = layer.units
            elif isinstance(layer, Conv1DLayerConfig) and len(shape) == 2:
                steps, channels = shape
                total += layer.kernel_size * channels * layer.filters + layer.filters
                if layer.padding == 'valid':
                    steps = (steps - layer.kernel_size) // layer.strides + 1
                else:
                    steps = math.ceil(steps / layer.strides)
                shape = [max(steps, 0), layer.filters]
            elif isinstance(layer, BatchNormLayerConfig):
                # Keras axes count the batch dimension; `shape` does not
                axis = layer.axis - 1 if layer.axis > 0 else layer.axis
                if layer.axis != 0 and -len(shape) <= axis < len(shape):
                    # gamma, beta, moving mean, moving variance
                    total += 4 * shape[axis]

        total += shape[-1] * self.output_width + self.output_width
        return total

    def estimate_memory_usage(self) -> int:
        """Estimated parameter memory in bytes (float32)."""
        return self.estimate_parameter_count() * 4

    # -------------------------------------------------------------------------
    # Mapping form
    # -------------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'input_shape': list(self.input_shape),
            'output_width': self.output_width,
            'layers': [layer_config_to_dict(layer) for layer in self.layers],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ModelDefinition":
        kwargs = {
            'input_shape': data.get('input_shape', data.get('inputShape')),
            'output_width': data.get('output_width', data.get('outputWidth')),
            'layers': tuple(data.get('layers', ())),
            'name': data.get('name'),
        }
        if data.get('id'):
            kwargs['id'] = data['id']
        if kwargs['input_shape'] is None or kwargs['output_width'] is None:
            raise ConfigValidationError(
                "Model definition needs 'input_shape' and 'output_width'"
            )
        return cls(**kwargs)


def create_model_definition(
    input_shape: Sequence[int] = (10,),
    output_width: int = 1,
    layers: Optional[Sequence[LayerConfig]] = None,
    name: Optional[str] = None
) -> ModelDefinition:
    """
    Convenience constructor with a small feed-forward default.

    Default architecture:
        Input(10) -> Dense(64, relu) -> Dense(32, relu) -> Dense(1, sigmoid)
    """
    if layers is None:
        layers = (
            DenseLayerConfig(units=64, activation='relu'),
            DenseLayerConfig(units=32, activation='relu'),
        )
    return ModelDefinition(
        input_shape=tuple(input_shape),
        output_width=output_width,
        layers=tuple(layers),
        name=name
    )
