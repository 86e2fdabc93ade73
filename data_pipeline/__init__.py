# =============================================================================
# Data Pipeline Module
# =============================================================================
"""
Tensor-owning datasets and the transforms applied to them.

Main exports:
- Dataset: Inputs/labels container with deterministic disposal
- split_data / normalize_data / shuffle_data: Dataset transforms
"""

from data_pipeline.dataset import Dataset, DatasetStats, FeatureStats, calculate_tensor_stats
from data_pipeline.transforms import (
    DataSplit,
    NormalizedTensor,
    split_data,
    normalize_data,
    denormalize_data,
    shuffle_data,
)

__all__ = [
    "Dataset",
    "DatasetStats",
    "FeatureStats",
    "calculate_tensor_stats",
    "DataSplit",
    "NormalizedTensor",
    "split_data",
    "normalize_data",
    "denormalize_data",
    "shuffle_data",
]
