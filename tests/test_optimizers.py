import logging

import numpy as np
import pytest

keras = pytest.importorskip("tensorflow").keras

from core.errors import UnsupportedOptimizerKindError
from training.optimizers import (
    OptimizerConfig,
    create_optimizer,
    create_optimizer_with_config,
    get_default_optimizer_config,
    get_optimizer_description,
    get_supported_optimizer_kinds,
)


@pytest.mark.parametrize("kind, cls", [
    ('adam', 'Adam'),
    ('sgd', 'SGD'),
    ('rmsprop', 'RMSprop'),
    ('adagrad', 'Adagrad'),
    ('adadelta', 'Adadelta'),
])
def test_each_kind_maps_to_backend_optimizer(kind, cls) -> None:
    optimizer = create_optimizer(kind, 0.01)
    assert isinstance(optimizer, getattr(keras.optimizers, cls))
    assert float(np.asarray(optimizer.learning_rate)) == pytest.approx(0.01)


def test_unknown_kind_falls_back_to_adam(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger='training.optimizers'):
        optimizer = create_optimizer('lbfgs', 0.01)
    assert isinstance(optimizer, keras.optimizers.Adam)
    assert "Unknown optimizer type: lbfgs, falling back to adam" in caplog.text


def test_unknown_kind_strict_raises() -> None:
    with pytest.raises(UnsupportedOptimizerKindError):
        create_optimizer('lbfgs', 0.01, strict=True)


def test_config_hyperparameters_are_applied() -> None:
    sgd = create_optimizer_with_config(OptimizerConfig('sgd', 0.1, momentum=0.9))
    assert sgd.momentum == pytest.approx(0.9)

    adam = create_optimizer_with_config(OptimizerConfig('adam', 0.001, beta_1=0.8))
    assert adam.beta_1 == pytest.approx(0.8)
    assert adam.beta_2 == pytest.approx(0.999)


def test_defaults_and_descriptions() -> None:
    assert get_default_optimizer_config('rmsprop').rho == 0.9
    assert get_default_optimizer_config('adadelta').rho == 0.95
    assert get_supported_optimizer_kinds() == ['adam', 'sgd', 'rmsprop', 'adagrad', 'adadelta']
    assert get_optimizer_description('nadam') == 'Unknown optimizer'
