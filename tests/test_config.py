import textwrap

import pytest

pytest.importorskip("tensorflow")

from core.errors import ConfigValidationError
from models.layers import DenseLayerConfig
from training.config import (
    MODEL_FAMILIES,
    TrainingConfig,
    ensure_valid_training_config,
    get_recommended_config,
    load_training_config,
    validate_training_config,
)


def test_defaults_are_valid() -> None:
    assert validate_training_config(TrainingConfig()) == []


def test_every_invalid_field_is_reported() -> None:
    config = TrainingConfig(learning_rate=0, epochs=0, batch_size=-1, validation_split=1.0)
    errors = validate_training_config(config)
    assert len(errors) == 4

    with pytest.raises(ConfigValidationError) as excinfo:
        ensure_valid_training_config(config)
    assert excinfo.value.errors == errors


@pytest.mark.parametrize("changes", [
    {'learning_rate': None},
    {'learning_rate': '0.01'},
    {'epochs': None},
    {'epochs': '10'},
    {'epochs': 2.5},
    {'batch_size': None},
    {'validation_split': 'half'},
    {'early_stopping_patience': '3'},
    {'loss_kind': None},
])
def test_wrongly_typed_fields_are_reported_not_raised(changes) -> None:
    config = TrainingConfig().replace(**changes)
    assert len(validate_training_config(config)) == 1
    with pytest.raises(ConfigValidationError):
        ensure_valid_training_config(config)


def test_no_validation_split_is_allowed() -> None:
    assert validate_training_config(TrainingConfig(validation_split=None)) == []


@pytest.mark.parametrize("family", MODEL_FAMILIES)
def test_every_preset_is_valid(family) -> None:
    assert validate_training_config(get_recommended_config(family)) == []


def test_classification_loss_depends_on_class_count() -> None:
    assert get_recommended_config('classification').loss_kind == 'binary_crossentropy'
    multi = get_recommended_config('classification', num_classes=3, epochs=5)
    assert multi.loss_kind == 'categorical_crossentropy'
    assert multi.epochs == 5


def test_preset_values() -> None:
    rnn = get_recommended_config('rnn')
    assert rnn.optimizer_kind == 'rmsprop'
    assert rnn.shuffle is False
    assert get_recommended_config('quick').early_stopping_patience == 3
    assert get_recommended_config('unknown-family') == get_recommended_config('neural-network')


def test_from_dict_rejects_unknown_fields() -> None:
    with pytest.raises(ConfigValidationError):
        TrainingConfig.from_dict({'epochs': 3, 'momentum': 0.9})


def test_load_run_file(tmp_path) -> None:
    path = tmp_path / "run.yaml"
    path.write_text(textwrap.dedent("""
        preset: classification
        num_classes: 3
        model:
          input_shape: [4]
          output_width: 3
          layers:
            - {kind: dense, units: 8}
        training:
          epochs: 7
          metrics: [accuracy]
    """))

    definition, config = load_training_config(str(path))

    assert definition.layers == (DenseLayerConfig(units=8),)
    assert config.loss_kind == 'categorical_crossentropy'
    assert config.epochs == 7
    assert config.metrics == ('accuracy',)
