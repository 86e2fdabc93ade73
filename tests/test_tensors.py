import numpy as np
import pytest

tf = pytest.importorskip("tensorflow")

from core.errors import DisposedResourceError
from core.tensors import TensorHandle, dispose_all, to_backend_input


def test_handle_reports_shape_and_size() -> None:
    handle = TensorHandle(np.zeros((5, 3)))
    assert handle.shape == (5, 3)
    assert handle.size == 15
    assert handle.dtype == tf.float32


def test_dispose_is_idempotent_and_blocks_access() -> None:
    handle = TensorHandle([[1.0, 2.0]])
    handle.dispose()
    handle.dispose()
    assert handle.is_disposed
    with pytest.raises(DisposedResourceError):
        handle.numpy()
    with pytest.raises(DisposedResourceError):
        _ = handle.shape


def test_slice_returns_independent_handle() -> None:
    handle = TensorHandle(np.arange(12, dtype=np.float32).reshape(6, 2))
    head = handle.slice([0, 0], [2, -1])
    handle.dispose()
    np.testing.assert_allclose(head.numpy(), [[0.0, 1.0], [2.0, 3.0]])


def test_dispose_all_counts_only_live_handles() -> None:
    a = TensorHandle([1.0])
    b = TensorHandle([2.0])
    b.dispose()
    assert dispose_all([a, b]) == 1
    assert dispose_all(a) == 0
    assert dispose_all(None) == 0


def test_to_backend_input_handles_lists() -> None:
    a = TensorHandle([[1.0]])
    b = TensorHandle([[2.0]])
    arrays = to_backend_input([a, b])
    assert [arr.tolist() for arr in arrays] == [[[1.0]], [[2.0]]]
