# =============================================================================
# Error Taxonomy
# =============================================================================
"""
Exceptions raised by the model definition and training subsystem.

Hierarchy:
- TrainingSystemError
  - ConfigValidationError: invalid layer or training configuration
  - UnsupportedKindError: unknown layer / optimizer kind
  - DisposedResourceError: access to a released tensor or dataset
  - BackendTrainingError: failure inside compile / fit / evaluate
  - TrainerBusyError: overlapping train() calls on one trainer
"""

from typing import Dict, List, Optional


class TrainingSystemError(Exception):
    """Base class for all errors raised by this package."""


class ConfigValidationError(TrainingSystemError, ValueError):
    """
    A layer or training configuration failed validation.

    Raised synchronously before any backend call and never retried.
    """

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        index: Optional[int] = None,
        field: Optional[str] = None
    ):
        super().__init__(message)
        self.errors = list(errors) if errors else [message]
        self.index = index
        self.field = field


class UnsupportedKindError(TrainingSystemError, KeyError):
    """An unknown layer or optimizer kind was requested."""

    category = "kind"

    def __init__(self, kind: str):
        super().__init__(kind)
        self.kind = kind

    def __str__(self) -> str:
        return f"Unsupported {self.category}: {self.kind!r}"


class UnsupportedLayerKindError(UnsupportedKindError):
    category = "layer kind"


class UnsupportedOptimizerKindError(UnsupportedKindError):
    category = "optimizer kind"


class DisposedResourceError(TrainingSystemError, RuntimeError):
    """Operation attempted on a tensor or dataset after dispose()."""


class BackendTrainingError(TrainingSystemError, RuntimeError):
    """
    The numeric backend failed while compiling, fitting or evaluating.

    Attributes:
        history: Per-epoch logs completed before the failure (may be empty)
    """

    def __init__(self, message: str, history: Optional[List[Dict[str, float]]] = None):
        super().__init__(message)
        self.history = list(history or [])

    @property
    def completed_epochs(self) -> int:
        return len(self.history)


class TrainerBusyError(TrainingSystemError, RuntimeError):
    """A second train() call was made while one is still in flight."""
