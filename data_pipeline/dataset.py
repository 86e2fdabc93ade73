# =============================================================================
# Dataset Container
# =============================================================================
"""
Concrete dataset container shared by every loader.

A Dataset owns its tensors: inputs, labels and the optional train/test
slices. Loaders only need to produce arrays; disposal, statistics and
memory accounting come from this class. Split / normalize / shuffle live
in data_pipeline.transforms as free functions over a Dataset.
"""

import math
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from core.errors import DisposedResourceError
from core.tensors import BYTES_PER_ELEMENT, TensorHandle, as_tensor


logger = logging.getLogger(__name__)


@dataclass
class FeatureStats:
    """Per-feature statistics over the last tensor axis."""
    names: List[str]
    min: List[float]
    max: List[float]
    mean: List[float]
    std: List[float]

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(
            {'min': self.min, 'max': self.max, 'mean': self.mean, 'std': self.std},
            index=pd.Index(self.names, name='feature')
        )


@dataclass
class DatasetStats:
    input_stats: FeatureStats
    output_stats: FeatureStats
    memory_usage: int = 0

    def to_dataframe(self) -> pd.DataFrame:
        """Stats for inputs and outputs in one frame, keyed by role."""
        return pd.concat(
            [self.input_stats.to_dataframe(), self.output_stats.to_dataframe()],
            keys=['input', 'output'],
            names=['role', 'feature']
        )


def calculate_tensor_stats(tensor: TensorHandle, names: Optional[Sequence[str]] = None) -> FeatureStats:
    """
    Compute min/max/mean/std per feature (last axis).

    Args:
        tensor: Source tensor, any rank
        names: Optional feature names; generated when they do not match

    Returns:
        FeatureStats with one entry per feature
    """
    data = tensor.numpy()
    n_features = data.shape[-1] if data.ndim > 1 else 1
    flat = data.reshape(-1, n_features).astype(np.float64)

    if names is None or len(names) != n_features:
        names = [f"feature_{i}" for i in range(n_features)]

    return FeatureStats(
        names=list(names),
        min=flat.min(axis=0).tolist(),
        max=flat.max(axis=0).tolist(),
        mean=flat.mean(axis=0).tolist(),
        std=flat.std(axis=0).tolist(),
    )


def _as_2d(values) -> np.ndarray:
    array = np.asarray(values, dtype=np.float32)
    if array.ndim == 1:
        array = array.reshape(-1, 1)
    return array


def slice_rows(tensor: TensorHandle, start: int, count: int) -> TensorHandle:
    """Contiguous slice of `count` samples starting at `start` along axis 0."""
    rank = len(tensor.shape)
    return tensor.slice([start] + [0] * (rank - 1), [count] + [-1] * (rank - 1))


class Dataset:
    """
    Tensors plus shape metadata for one dataset.

    Ownership:
        The dataset exclusively owns every tensor it holds. dispose()
        releases each of them exactly once; afterwards every accessor
        raises DisposedResourceError.
    """

    def __init__(
        self,
        inputs,
        labels,
        input_columns: Optional[Sequence[str]] = None,
        output_columns: Optional[Sequence[str]] = None,
        train_inputs=None,
        train_labels=None,
        test_inputs=None,
        test_labels=None
    ):
        """
        Initialize dataset.

        Args:
            inputs: Input tensor (samples first)
            labels: Label tensor aligned with inputs
            input_columns: Input feature names
            output_columns: Output feature names
            train_inputs, train_labels, test_inputs, test_labels: Optional split tensors
        """
        self._inputs = as_tensor(inputs)
        self._labels = as_tensor(labels)

        n_inputs = self._inputs.shape[0]
        n_labels = self._labels.shape[0]
        if n_inputs != n_labels:
            raise ValueError(
                f"Inputs and labels must have the same sample count "
                f"({n_inputs} != {n_labels})"
            )

        self._train_inputs = as_tensor(train_inputs) if train_inputs is not None else None
        self._train_labels = as_tensor(train_labels) if train_labels is not None else None
        self._test_inputs = as_tensor(test_inputs) if test_inputs is not None else None
        self._test_labels = as_tensor(test_labels) if test_labels is not None else None

        self._input_shape = list(self._inputs.shape[1:])
        self._output_shape = list(self._labels.shape[1:])
        self._input_columns = list(input_columns or [])
        self._output_columns = list(output_columns or [])
        self._sample_count = n_inputs

        self._disposed = False

    # -------------------------------------------------------------------------
    # Constructors
    # -------------------------------------------------------------------------

    @classmethod
    def from_arrays(
        cls,
        inputs,
        labels,
        input_columns: Optional[Sequence[str]] = None,
        output_columns: Optional[Sequence[str]] = None,
        test_split: Optional[float] = None
    ) -> "Dataset":
        """
        Build a dataset from host arrays.

        1-D arrays are treated as a single feature column.

        Args:
            inputs: Array-like of shape (samples, ...)
            labels: Array-like of shape (samples, ...)
            input_columns: Input feature names
            output_columns: Output feature names
            test_split: Optional fraction held out as a contiguous tail

        Returns:
            Dataset owning all tensors it creates
        """
        x = _as_2d(inputs)
        y = _as_2d(labels)

        split = {}
        if test_split is not None:
            if not 0 < test_split < 1:
                raise ValueError(f"test_split must be in (0, 1), got {test_split}")
            train_count = int(math.floor(len(x) * (1 - test_split)))
            split = {
                'train_inputs': x[:train_count],
                'train_labels': y[:train_count],
                'test_inputs': x[train_count:],
                'test_labels': y[train_count:],
            }

        return cls(x, y, input_columns, output_columns, **split)

    @classmethod
    def from_dataframe(
        cls,
        df: pd.DataFrame,
        input_columns: Sequence[str],
        output_columns: Sequence[str],
        test_split: Optional[float] = None
    ) -> "Dataset":
        """
        Build a dataset from DataFrame columns.

        Rows with missing values in the selected columns are dropped.
        """
        for col in list(input_columns) + list(output_columns):
            if col not in df.columns:
                raise ValueError(f"Missing required column: {col}")

        selected = df[list(input_columns) + list(output_columns)].dropna()
        dropped = len(df) - len(selected)
        if dropped:
            logger.warning(f"Dropped {dropped} rows with missing values")

        return cls.from_arrays(
            selected[list(input_columns)].to_numpy(dtype=np.float32),
            selected[list(output_columns)].to_numpy(dtype=np.float32),
            input_columns=input_columns,
            output_columns=output_columns,
            test_split=test_split
        )

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    def _check(self) -> None:
        if self._disposed:
            raise DisposedResourceError("Dataset has been disposed")

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def inputs(self) -> TensorHandle:
        self._check()
        return self._inputs

    @property
    def labels(self) -> TensorHandle:
        self._check()
        return self._labels

    @property
    def input_shape(self) -> List[int]:
        self._check()
        return list(self._input_shape)

    @property
    def output_shape(self) -> List[int]:
        self._check()
        return list(self._output_shape)

    @property
    def input_columns(self) -> List[str]:
        self._check()
        return list(self._input_columns)

    @property
    def output_columns(self) -> List[str]:
        self._check()
        return list(self._output_columns)

    @property
    def sample_count(self) -> int:
        self._check()
        return self._sample_count

    @property
    def train_inputs(self) -> Optional[TensorHandle]:
        self._check()
        return self._train_inputs

    @property
    def train_labels(self) -> Optional[TensorHandle]:
        self._check()
        return self._train_labels

    @property
    def test_inputs(self) -> Optional[TensorHandle]:
        self._check()
        return self._test_inputs

    @property
    def test_labels(self) -> Optional[TensorHandle]:
        self._check()
        return self._test_labels

    @property
    def train_count(self) -> Optional[int]:
        self._check()
        return self._train_inputs.shape[0] if self._train_inputs is not None else None

    @property
    def test_count(self) -> Optional[int]:
        self._check()
        return self._test_inputs.shape[0] if self._test_inputs is not None else None

    def _held_tensors(self) -> List[TensorHandle]:
        tensors = [
            self._inputs, self._labels,
            self._train_inputs, self._train_labels,
            self._test_inputs, self._test_labels,
        ]
        return [t for t in tensors if t is not None]

    # -------------------------------------------------------------------------
    # Shared behaviour
    # -------------------------------------------------------------------------

    def dispose(self) -> None:
        """Release every held tensor. Second and later calls do nothing."""
        if self._disposed:
            return

        for tensor in self._held_tensors():
            tensor.dispose()

        self._disposed = True
        logger.info("Dataset disposed")

    @property
    def memory_usage(self) -> int:
        """Bytes held across all tensors, assuming float32 elements."""
        self._check()
        return sum(t.size for t in self._held_tensors()) * BYTES_PER_ELEMENT

    def get_stats(self) -> DatasetStats:
        """
        Compute per-feature statistics for inputs and labels.

        Raises:
            DisposedResourceError: If the dataset has been disposed
        """
        self._check()
        return DatasetStats(
            input_stats=calculate_tensor_stats(self._inputs, self._input_columns),
            output_stats=calculate_tensor_stats(self._labels, self._output_columns),
            memory_usage=self.memory_usage,
        )

    def __enter__(self) -> "Dataset":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    def __repr__(self) -> str:
        if self._disposed:
            return "Dataset(<disposed>)"
        return (
            f"Dataset(samples={self._sample_count}, "
            f"input_shape={self._input_shape}, output_shape={self._output_shape})"
        )
