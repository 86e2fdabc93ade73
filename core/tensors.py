# =============================================================================
# Disposable Tensor Handles
# =============================================================================
"""
Explicitly disposable wrapper around TensorFlow tensors.

TensorFlow frees device memory when the last Python reference goes away.
Datasets and the trainer need deterministic ownership instead, so every
tensor passed between them is a TensorHandle: dispose() drops the backend
reference exactly once and any later access raises DisposedResourceError.
"""

import logging
from typing import Iterable, Optional, Sequence, Tuple, Union

import numpy as np
import tensorflow as tf

from core.errors import DisposedResourceError


logger = logging.getLogger(__name__)

# float32 elements
BYTES_PER_ELEMENT = 4


class TensorHandle:
    """
    Owning handle for a single backend tensor.

    Usage:
        handle = TensorHandle(np.zeros((10, 4)))
        first_rows = handle.slice([0, 0], [5, -1])
        handle.dispose()
    """

    def __init__(self, value, dtype: tf.DType = tf.float32):
        """
        Args:
            value: tf.Tensor, numpy array or nested list
            dtype: Target dtype (float32 by default)
        """
        if isinstance(value, TensorHandle):
            value = value.value
        self._value: Optional[tf.Tensor] = tf.convert_to_tensor(value, dtype=dtype)
        self._disposed = False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        """Release the backend tensor. Safe to call more than once."""
        if self._disposed:
            return
        self._value = None
        self._disposed = True

    def _check(self) -> tf.Tensor:
        if self._disposed:
            raise DisposedResourceError("Tensor has been disposed")
        return self._value

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def value(self) -> tf.Tensor:
        return self._check()

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(int(d) for d in self._check().shape)

    @property
    def size(self) -> int:
        return int(np.prod(self.shape, dtype=np.int64))

    @property
    def dtype(self) -> tf.DType:
        return self._check().dtype

    def numpy(self) -> np.ndarray:
        return self._check().numpy()

    # -------------------------------------------------------------------------
    # Operations (each returns a new handle owned by the caller)
    # -------------------------------------------------------------------------

    def slice(self, begin: Sequence[int], size: Sequence[int]) -> "TensorHandle":
        return TensorHandle(tf.slice(self._check(), list(begin), list(size)), dtype=self.dtype)

    def gather(self, indices, axis: int = 0) -> "TensorHandle":
        return TensorHandle(tf.gather(self._check(), indices, axis=axis), dtype=self.dtype)

    def min(self, axis: int = 0, keepdims: bool = True) -> "TensorHandle":
        return TensorHandle(tf.reduce_min(self._check(), axis=axis, keepdims=keepdims))

    def max(self, axis: int = 0, keepdims: bool = True) -> "TensorHandle":
        return TensorHandle(tf.reduce_max(self._check(), axis=axis, keepdims=keepdims))

    def sub(self, other: Union["TensorHandle", float]) -> "TensorHandle":
        return TensorHandle(tf.subtract(self._check(), _unwrap(other)))

    def div(self, other: Union["TensorHandle", float]) -> "TensorHandle":
        return TensorHandle(tf.divide(self._check(), _unwrap(other)))

    def __repr__(self) -> str:
        if self._disposed:
            return "TensorHandle(<disposed>)"
        return f"TensorHandle(shape={self.shape}, dtype={self._value.dtype.name})"


def _unwrap(value):
    if isinstance(value, TensorHandle):
        return value.value
    return value


def as_tensor(value, dtype: tf.DType = tf.float32) -> TensorHandle:
    """Wrap a value in a TensorHandle unless it already is one."""
    if isinstance(value, TensorHandle):
        return value
    return TensorHandle(value, dtype=dtype)


TensorInput = Union[TensorHandle, Sequence[TensorHandle], None]


def iter_handles(tensors: TensorInput) -> Iterable[TensorHandle]:
    if tensors is None:
        return []
    if isinstance(tensors, TensorHandle):
        return [tensors]
    return [t for t in tensors if t is not None]


def dispose_all(tensors: TensorInput) -> int:
    """
    Dispose every handle not already disposed.

    Args:
        tensors: A handle, a sequence of handles, or None

    Returns:
        Number of handles released by this call
    """
    released = 0
    for handle in iter_handles(tensors):
        if not handle.is_disposed:
            handle.dispose()
            released += 1
    return released


def to_backend_input(tensors: Union[TensorHandle, Sequence[TensorHandle]]):
    """Convert handle(s) to host arrays accepted by Model.fit/evaluate/predict."""
    if isinstance(tensors, TensorHandle):
        return tensors.numpy()
    return [t.numpy() for t in tensors]
