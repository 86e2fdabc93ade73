# =============================================================================
# Training Metrics & Diagnostics
# =============================================================================
"""
History extraction, final/best metric selection and overfitting analysis.

History is a plain mapping of Keras metric name -> per-epoch values,
e.g. {'loss': [...], 'val_loss': [...], 'accuracy': [...]}.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence

import numpy as np


logger = logging.getLogger(__name__)

History = Dict[str, List[float]]

# Error-style metrics where a smaller value is better
_LOWER_IS_BETTER = {
    'mae', 'mse', 'mape', 'msle', 'rmse',
    'mean_absolute_error', 'mean_squared_error',
    'mean_absolute_percentage_error', 'mean_squared_logarithmic_error',
    'root_mean_squared_error', 'logcosh', 'log_cosh', 'huber',
}


def is_lower_better(metric: str) -> bool:
    """True for loss-like metrics; accuracy-like metrics improve upward."""
    name = metric.lower()
    if 'loss' in name:
        return True
    if name.startswith('val_'):
        name = name[len('val_'):]
    return name in _LOWER_IS_BETTER


def extract_metrics(history: Any) -> History:
    """
    Normalize a Keras History (or mapping) into name -> list of floats.

    Args:
        history: keras.callbacks.History or a mapping of lists

    Returns:
        History dict; `loss` is always present
    """
    raw = getattr(history, 'history', history) or {}
    metrics: History = {'loss': [float(v) for v in raw.get('loss', [])]}
    for name, values in raw.items():
        if name != 'loss':
            metrics[name] = [float(v) for v in values]
    return metrics


def calculate_final_metrics(history: Mapping[str, Sequence[float]]) -> Dict[str, float]:
    """Last value of every non-empty series."""
    return {
        name: float(values[-1])
        for name, values in history.items()
        if values is not None and len(values) > 0
    }


def find_best_epoch(history: Mapping[str, Sequence[float]], metric: str = 'val_loss') -> int:
    """
    Index of the best epoch for a metric.

    Falls back to the last epoch when the metric is not recorded.
    """
    values = history.get(metric)
    if not values:
        return max(len(history.get('loss', [])) - 1, 0)

    array = np.asarray(values, dtype=np.float64)
    # First occurrence wins on ties
    return int(np.argmin(array) if is_lower_better(metric) else np.argmax(array))


@dataclass
class MetricStats:
    min: float = 0.0
    max: float = 0.0
    mean: float = 0.0
    std: float = 0.0


def calculate_metric_stats(values: Sequence[float]) -> MetricStats:
    if len(values) == 0:
        return MetricStats()
    array = np.asarray(values, dtype=np.float64)
    return MetricStats(
        min=float(array.min()),
        max=float(array.max()),
        mean=float(array.mean()),
        std=float(array.std()),
    )


@dataclass
class MetricTrend:
    stats: MetricStats
    current: float
    is_improving: bool
    trend: float
    stability: float


def analyze_training_progress(history: Mapping[str, Sequence[float]], window: int = 5) -> Dict[str, MetricTrend]:
    """
    Summarize how each metric evolved.

    Per metric:
    - is_improving: last value better than the first (direction-aware)
    - trend: mean change per epoch over the last `window` epochs
    - stability: coefficient of variation (std / |mean|)
    """
    analysis: Dict[str, MetricTrend] = {}

    for name, values in history.items():
        if not values:
            continue

        stats = calculate_metric_stats(values)
        if len(values) > 1:
            if is_lower_better(name):
                improving = values[-1] < values[0]
            else:
                improving = values[-1] > values[0]
        else:
            improving = True

        recent = list(values[-min(window, len(values)):])
        trend = (recent[-1] - recent[0]) / len(recent) if len(recent) > 1 else 0.0
        stability = stats.std / abs(stats.mean) if stats.mean != 0 else float('inf')

        analysis[name] = MetricTrend(
            stats=stats,
            current=float(values[-1]),
            is_improving=improving,
            trend=float(trend),
            stability=float(stability),
        )

    return analysis


@dataclass
class OverfittingReport:
    is_overfitting: bool
    train_loss: float
    val_loss: float
    gap: float


def detect_overfitting(history: Mapping[str, Sequence[float]], threshold: float = 0.1) -> OverfittingReport:
    """
    Compare final validation loss with final training loss.

    Args:
        history: Training history
        threshold: Gap above which the run is flagged

    Returns:
        OverfittingReport; all zeros when either series is missing
    """
    train_loss = history.get('loss')
    val_loss = history.get('val_loss')

    if not train_loss or not val_loss:
        return OverfittingReport(is_overfitting=False, train_loss=0.0, val_loss=0.0, gap=0.0)

    final_train = float(train_loss[-1])
    final_val = float(val_loss[-1])
    gap = final_val - final_train

    return OverfittingReport(
        is_overfitting=gap > threshold,
        train_loss=final_train,
        val_loss=final_val,
        gap=gap,
    )
