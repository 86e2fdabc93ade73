# =============================================================================
# Optimizer Factory
# =============================================================================
"""
Maps an optimizer kind plus hyperparameters to a Keras optimizer.

Unknown kinds are a soft failure: a warning is logged and Adam is used,
unless strict=True is requested.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from tensorflow import keras

from core.errors import UnsupportedOptimizerKindError


logger = logging.getLogger(__name__)

OPTIMIZER_KINDS = ('adam', 'sgd', 'rmsprop', 'adagrad', 'adadelta')

OPTIMIZER_DESCRIPTIONS: Dict[str, str] = {
    'adam': 'Adaptive Moment Estimation - good default for most problems',
    'sgd': 'Stochastic Gradient Descent - simple and stable',
    'rmsprop': 'Root Mean Square Propagation - suited to recurrent networks',
    'adagrad': 'Adaptive Gradient - suited to sparse features',
    'adadelta': 'Adaptive Delta - Adagrad without a decaying learning rate',
}


@dataclass(frozen=True)
class OptimizerConfig:
    kind: str
    learning_rate: float = 0.001
    beta_1: Optional[float] = None
    beta_2: Optional[float] = None
    momentum: Optional[float] = None
    rho: Optional[float] = None
    epsilon: Optional[float] = None


def _fallback(kind: str, strict: bool) -> None:
    if strict:
        raise UnsupportedOptimizerKindError(kind)
    logger.warning(f"Unknown optimizer type: {kind}, falling back to adam")


def create_optimizer(
    kind: str,
    learning_rate: float,
    strict: bool = False
) -> keras.optimizers.Optimizer:
    """
    Create an optimizer with backend defaults.

    Args:
        kind: One of OPTIMIZER_KINDS
        learning_rate: Learning rate
        strict: Raise instead of falling back to Adam for unknown kinds

    Returns:
        Fresh Keras optimizer instance
    """
    if kind == 'adam':
        return keras.optimizers.Adam(learning_rate=learning_rate)
    if kind == 'sgd':
        return keras.optimizers.SGD(learning_rate=learning_rate)
    if kind == 'rmsprop':
        return keras.optimizers.RMSprop(learning_rate=learning_rate)
    if kind == 'adagrad':
        return keras.optimizers.Adagrad(learning_rate=learning_rate)
    if kind == 'adadelta':
        return keras.optimizers.Adadelta(learning_rate=learning_rate)

    _fallback(kind, strict)
    return keras.optimizers.Adam(learning_rate=learning_rate)


def create_optimizer_with_config(
    config: OptimizerConfig,
    strict: bool = False
) -> keras.optimizers.Optimizer:
    """
    Create an optimizer with explicit hyperparameters.

    Unset hyperparameters take the defaults of get_default_optimizer_config().
    """
    lr = config.learning_rate

    def pick(value, default):
        return default if value is None else value

    if config.kind == 'adam':
        return keras.optimizers.Adam(
            learning_rate=lr,
            beta_1=pick(config.beta_1, 0.9),
            beta_2=pick(config.beta_2, 0.999),
            epsilon=pick(config.epsilon, 1e-8)
        )
    if config.kind == 'sgd':
        return keras.optimizers.SGD(
            learning_rate=lr,
            momentum=pick(config.momentum, 0.0)
        )
    if config.kind == 'rmsprop':
        return keras.optimizers.RMSprop(
            learning_rate=lr,
            rho=pick(config.rho, 0.9),
            momentum=pick(config.momentum, 0.0),
            epsilon=pick(config.epsilon, 1e-8)
        )
    if config.kind == 'adagrad':
        return keras.optimizers.Adagrad(
            learning_rate=lr,
            initial_accumulator_value=0.1,
            epsilon=pick(config.epsilon, 1e-8)
        )
    if config.kind == 'adadelta':
        return keras.optimizers.Adadelta(
            learning_rate=lr,
            rho=pick(config.rho, 0.95),
            epsilon=pick(config.epsilon, 1e-8)
        )

    return create_optimizer(config.kind, lr, strict=strict)


def get_default_optimizer_config(kind: str, learning_rate: float = 0.001) -> OptimizerConfig:
    """Default hyperparameters for each optimizer kind."""
    if kind == 'adam':
        return OptimizerConfig(kind, learning_rate, beta_1=0.9, beta_2=0.999, epsilon=1e-8)
    if kind == 'sgd':
        return OptimizerConfig(kind, learning_rate, momentum=0.0)
    if kind == 'rmsprop':
        return OptimizerConfig(kind, learning_rate, rho=0.9, momentum=0.0, epsilon=1e-8)
    if kind == 'adadelta':
        return OptimizerConfig(kind, learning_rate, rho=0.95, epsilon=1e-8)
    if kind == 'adagrad':
        return OptimizerConfig(kind, learning_rate, epsilon=1e-8)
    return OptimizerConfig(kind, learning_rate)


def get_supported_optimizer_kinds() -> List[str]:
    return list(OPTIMIZER_KINDS)


def get_optimizer_description(kind: str) -> str:
    return OPTIMIZER_DESCRIPTIONS.get(kind, 'Unknown optimizer')
