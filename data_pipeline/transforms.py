# =============================================================================
# Dataset Transforms
# =============================================================================
"""
Split, normalization and shuffling over Dataset tensors.

Every function returns new tensors owned by the caller; the source
dataset is never modified.
"""

import math
import logging
from typing import NamedTuple, Optional, Tuple

import numpy as np
import tensorflow as tf

from core.tensors import TensorHandle
from data_pipeline.dataset import Dataset, slice_rows


logger = logging.getLogger(__name__)


class DataSplit(NamedTuple):
    train_inputs: TensorHandle
    train_labels: TensorHandle
    test_inputs: TensorHandle
    test_labels: TensorHandle

    def dispose(self) -> None:
        for tensor in self:
            tensor.dispose()


class NormalizedTensor(NamedTuple):
    normalized: TensorHandle
    min: TensorHandle
    max: TensorHandle


def split_data(dataset: Dataset, train_ratio: float = 0.8) -> DataSplit:
    """
    Split into train/test by contiguous slicing (no shuffling).

    Args:
        dataset: Source dataset
        train_ratio: Fraction of samples placed in the train split

    Returns:
        DataSplit; train_count = floor(sample_count * train_ratio)
    """
    if not 0 < train_ratio <= 1:
        raise ValueError(f"train_ratio must be in (0, 1], got {train_ratio}")

    total = dataset.sample_count
    train_count = int(math.floor(total * train_ratio))
    test_count = total - train_count

    return DataSplit(
        train_inputs=slice_rows(dataset.inputs, 0, train_count),
        train_labels=slice_rows(dataset.labels, 0, train_count),
        test_inputs=slice_rows(dataset.inputs, train_count, test_count),
        test_labels=slice_rows(dataset.labels, train_count, test_count),
    )


def normalize_data(tensor: TensorHandle) -> NormalizedTensor:
    """
    Min-max normalize each column to [0, 1].

    Columns with zero range are divided by 1 so they map to 0 instead of NaN.

    Returns:
        NormalizedTensor(normalized, min, max); keep min/max to invert later
    """
    col_min = tensor.min(axis=0, keepdims=True)
    col_max = tensor.max(axis=0, keepdims=True)

    value_range = col_max.value - col_min.value
    safe_range = tf.where(value_range > 0, value_range, tf.ones_like(value_range))
    normalized = TensorHandle((tensor.value - col_min.value) / safe_range)

    return NormalizedTensor(normalized=normalized, min=col_min, max=col_max)


def denormalize_data(normalized: TensorHandle, col_min: TensorHandle, col_max: TensorHandle) -> TensorHandle:
    """Invert normalize_data() using the min/max it returned."""
    value_range = col_max.value - col_min.value
    safe_range = tf.where(value_range > 0, value_range, tf.ones_like(value_range))
    return TensorHandle(normalized.value * safe_range + col_min.value)


def shuffle_data(dataset: Dataset, seed: Optional[int] = None) -> Tuple[TensorHandle, TensorHandle]:
    """
    Shuffle inputs and labels with one shared permutation.

    Args:
        dataset: Source dataset
        seed: Optional seed for a reproducible permutation

    Returns:
        (shuffled_inputs, shuffled_labels), row i of each still aligned
    """
    rng = np.random.default_rng(seed)
    indices = rng.permutation(dataset.sample_count)

    shuffled_inputs = dataset.inputs.gather(indices)
    shuffled_labels = dataset.labels.gather(indices)

    return shuffled_inputs, shuffled_labels
