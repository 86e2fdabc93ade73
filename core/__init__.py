# =============================================================================
# Core Module
# =============================================================================
"""
Shared building blocks: errors, disposable tensors, settings.

Exports:
- TensorHandle: Explicitly disposable tensor wrapper
- load_settings / configure_logging: config.yaml + logging setup
- Error hierarchy rooted at TrainingSystemError
"""

from core.errors import (
    TrainingSystemError,
    ConfigValidationError,
    UnsupportedKindError,
    UnsupportedLayerKindError,
    UnsupportedOptimizerKindError,
    DisposedResourceError,
    BackendTrainingError,
    TrainerBusyError,
)
from core.tensors import TensorHandle, as_tensor, dispose_all
from core.settings import load_settings, configure_logging

__all__ = [
    # Errors
    'TrainingSystemError',
    'ConfigValidationError',
    'UnsupportedKindError',
    'UnsupportedLayerKindError',
    'UnsupportedOptimizerKindError',
    'DisposedResourceError',
    'BackendTrainingError',
    'TrainerBusyError',

    # Tensors
    'TensorHandle',
    'as_tensor',
    'dispose_all',

    # Settings
    'load_settings',
    'configure_logging',
]
