# =============================================================================
# Training Configuration & Presets
# =============================================================================
"""
Typed training configuration, validation, and vetted presets per model
family.

Presets are plain data: each returns a TrainingConfig, with keyword
overrides applied on top.
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from core.errors import ConfigValidationError
from models.definition import ModelDefinition


logger = logging.getLogger(__name__)

MODEL_FAMILIES = (
    'neural-network',
    'classification',
    'regression',
    'cnn',
    'rnn',
    'transfer',
    'quick',
)


@dataclass(frozen=True)
class TrainingConfig:
    """
    Training hyperparameters for one fit call.

    validation_split=None trains without a validation set, in which case
    val_* metrics (and the early-stopping default monitor) are absent.
    """
    optimizer_kind: str = 'adam'
    learning_rate: float = 0.001
    loss_kind: str = 'mse'
    metrics: Tuple[str, ...] = ('accuracy',)
    epochs: int = 100
    batch_size: int = 32
    validation_split: Optional[float] = 0.2
    shuffle: bool = True
    early_stopping_patience: Optional[int] = None
    verbose: int = 0

    def __post_init__(self):
        object.__setattr__(self, 'metrics', tuple(self.metrics or ()))

    def replace(self, **changes) -> "TrainingConfig":
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        data['metrics'] = list(self.metrics)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TrainingConfig":
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigValidationError(
                f"Unknown training config fields: {sorted(unknown)}",
                field=sorted(unknown)[0]
            )
        return cls(**dict(data))


# =============================================================================
# Validation
# =============================================================================

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_training_config(config: TrainingConfig) -> List[str]:
    """
    Check every field.

    Returns:
        List of error messages (empty when valid)
    """
    errors: List[str] = []

    if not _is_number(config.learning_rate) or not 0 < config.learning_rate <= 1:
        errors.append('Learning rate must be between 0 and 1')

    if not _is_int(config.epochs) or config.epochs <= 0:
        errors.append('Epochs must be greater than 0')

    if not _is_int(config.batch_size) or config.batch_size <= 0:
        errors.append('Batch size must be greater than 0')

    if config.validation_split is not None and (
        not _is_number(config.validation_split) or not 0 < config.validation_split < 1
    ):
        errors.append('Validation split must be between 0 and 1')

    if config.early_stopping_patience is not None and (
        not _is_int(config.early_stopping_patience) or config.early_stopping_patience <= 0
    ):
        errors.append('Early stopping patience must be greater than 0')

    if not config.loss_kind or not isinstance(config.loss_kind, str):
        errors.append('Loss must be specified')

    if not isinstance(config.optimizer_kind, str):
        errors.append('Optimizer must be a name')

    return errors


def ensure_valid_training_config(config: TrainingConfig) -> None:
    """
    Raises:
        ConfigValidationError: With every failing rule listed in `errors`
    """
    errors = validate_training_config(config)
    if errors:
        raise ConfigValidationError(
            f"Invalid training configuration: {'; '.join(errors)}",
            errors=errors
        )


# =============================================================================
# Presets
# =============================================================================

def create_neural_network_config(**overrides) -> TrainingConfig:
    """Plain feed-forward network."""
    return TrainingConfig(
        optimizer_kind='adam',
        learning_rate=0.001,
        loss_kind='mse',
        metrics=('accuracy',),
        epochs=1000,
        batch_size=32,
        validation_split=0.2,
        shuffle=True,
        early_stopping_patience=15,
    ).replace(**overrides)


def create_classification_config(num_classes: int = 2, **overrides) -> TrainingConfig:
    """Binary (num_classes == 2) or one-hot multiclass classification."""
    loss = 'binary_crossentropy' if num_classes == 2 else 'categorical_crossentropy'
    return TrainingConfig(
        optimizer_kind='adam',
        learning_rate=0.001,
        loss_kind=loss,
        metrics=('accuracy',),
        epochs=150,
        batch_size=32,
        validation_split=0.2,
        shuffle=True,
        early_stopping_patience=20,
    ).replace(**overrides)


def create_regression_config(**overrides) -> TrainingConfig:
    return TrainingConfig(
        optimizer_kind='adam',
        learning_rate=0.001,
        loss_kind='mse',
        metrics=('mae',),
        epochs=200,
        batch_size=32,
        validation_split=0.2,
        shuffle=True,
        early_stopping_patience=25,
    ).replace(**overrides)


def create_cnn_config(**overrides) -> TrainingConfig:
    """Convolutional networks: lower learning rate, smaller batches."""
    return TrainingConfig(
        optimizer_kind='adam',
        learning_rate=0.0001,
        loss_kind='categorical_crossentropy',
        metrics=('accuracy',),
        epochs=50,
        batch_size=16,
        validation_split=0.2,
        shuffle=True,
        early_stopping_patience=10,
    ).replace(**overrides)


def create_rnn_config(**overrides) -> TrainingConfig:
    """Recurrent networks: RMSprop, no shuffling of ordered sequences."""
    return TrainingConfig(
        optimizer_kind='rmsprop',
        learning_rate=0.001,
        loss_kind='mse',
        metrics=('mae',),
        epochs=100,
        batch_size=64,
        validation_split=0.2,
        shuffle=False,
        early_stopping_patience=15,
    ).replace(**overrides)


def create_transfer_learning_config(**overrides) -> TrainingConfig:
    """Fine-tuning a pretrained network: low learning rate, few epochs."""
    return TrainingConfig(
        optimizer_kind='adam',
        learning_rate=0.0001,
        loss_kind='categorical_crossentropy',
        metrics=('accuracy',),
        epochs=30,
        batch_size=16,
        validation_split=0.2,
        shuffle=True,
        early_stopping_patience=5,
    ).replace(**overrides)


def create_quick_config(**overrides) -> TrainingConfig:
    """Fast iteration while prototyping."""
    return TrainingConfig(
        optimizer_kind='adam',
        learning_rate=0.01,
        loss_kind='mse',
        metrics=('accuracy',),
        epochs=10,
        batch_size=64,
        validation_split=0.2,
        shuffle=True,
        early_stopping_patience=3,
        verbose=1,
    ).replace(**overrides)


def get_recommended_config(model_family: str, **options) -> TrainingConfig:
    """
    Preset for a model family.

    Args:
        model_family: One of MODEL_FAMILIES; unknown values use the
            feed-forward preset
        **options: Field overrides; `num_classes` selects the
            classification loss

    Returns:
        TrainingConfig
    """
    if model_family == 'classification':
        num_classes = options.pop('num_classes', 2)
        return create_classification_config(num_classes, **options)

    options.pop('num_classes', None)
    presets = {
        'neural-network': create_neural_network_config,
        'regression': create_regression_config,
        'cnn': create_cnn_config,
        'rnn': create_rnn_config,
        'transfer': create_transfer_learning_config,
        'quick': create_quick_config,
    }
    if model_family not in presets:
        logger.warning(f"Unknown model family '{model_family}', using neural-network preset")
    return presets.get(model_family, create_neural_network_config)(**options)


# =============================================================================
# YAML run files
# =============================================================================

def load_training_config(config_path: str):
    """
    Load a YAML run file.

    Format:
        preset: classification      # optional, base for `training`
        num_classes: 3              # optional, classification preset only
        model:                      # optional
          input_shape: [4]
          output_width: 3
          layers:
            - {kind: dense, units: 8, activation: relu}
        training:
          epochs: 50

    Returns:
        Tuple of (ModelDefinition or None, TrainingConfig)
    """
    with open(config_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    training_data = dict(data.get('training') or {})
    if 'metrics' in training_data:
        training_data['metrics'] = tuple(training_data['metrics'])

    preset = data.get('preset')
    if preset:
        if data.get('num_classes') is not None:
            training_data['num_classes'] = data['num_classes']
        config = get_recommended_config(preset, **training_data)
    else:
        config = TrainingConfig.from_dict(training_data)

    definition = None
    if data.get('model'):
        definition = ModelDefinition.from_dict(data['model'])

    logger.info(f"Loaded run configuration from {config_path}")
    return definition, config
