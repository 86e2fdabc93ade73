# =============================================================================
# Training Result Types
# =============================================================================
"""
Value objects produced by a training run.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import pandas as pd

from training.metrics import OverfittingReport


class StoppedReason(str, Enum):
    COMPLETED = 'completed'
    EARLY_STOPPING = 'early_stopping'
    ERROR = 'error'


@dataclass
class TrainingProgress:
    """Snapshot sent to on_progress after every epoch."""
    epoch: int                      # 1-based number of completed epochs
    total_epochs: int
    logs: Dict[str, float]
    elapsed_ms: float
    estimated_remaining_ms: Optional[float] = None

    @property
    def fraction_complete(self) -> float:
        if not self.total_epochs:
            return 0.0
        return min(self.epoch / self.total_epochs, 1.0)


@dataclass
class TrainingResult:
    """
    Outcome of a successful (completed or early-stopped) run.

    best_epoch is a 0-based index into every history series.
    """
    history: Dict[str, List[float]]
    final_metrics: Dict[str, float]
    epochs: int
    duration_ms: float
    best_epoch: Optional[int] = None
    stopped: bool = True
    stopped_reason: StoppedReason = StoppedReason.COMPLETED
    overfitting: Optional[OverfittingReport] = None

    def history_frame(self) -> pd.DataFrame:
        """History as a DataFrame indexed by epoch."""
        frame = pd.DataFrame({name: pd.Series(values) for name, values in self.history.items()})
        frame.index.name = 'epoch'
        return frame

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['stopped_reason'] = self.stopped_reason.value
        return data
