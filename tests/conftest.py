import numpy as np
import pytest


@pytest.fixture
def iris_like():
    """10 samples, 4 features, 3 one-hot classes."""
    rng = np.random.default_rng(0)
    inputs = rng.random((10, 4)).astype(np.float32)
    classes = np.arange(10) % 3
    labels = np.eye(3, dtype=np.float32)[classes]
    return inputs, labels
