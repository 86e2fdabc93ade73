# =============================================================================
# Training Callbacks
# =============================================================================
"""
Lifecycle hooks for a training run.

A TrainingCallbacks record holds optional hooks. Any number of records
are merged into a CallbackList, which keeps one ordered listener list per
hook and awaits listeners one at a time in registration order.

Built-ins:
- create_default_callbacks: lifecycle logging
- EarlyStoppingController: patience-based stop flag
- create_metrics_logging_callback: periodic metric dump
- create_progress_callback: forwards progress snapshots
"""

import time
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

from core.errors import ConfigValidationError
from training.metrics import is_lower_better
from training.results import TrainingProgress, TrainingResult


logger = logging.getLogger(__name__)

HOOK_NAMES = (
    'on_train_start',
    'on_epoch_start',
    'on_epoch_end',
    'on_progress',
    'on_train_end',
    'on_error',
)

Hook = Optional[Callable[..., Any]]


@dataclass
class TrainingCallbacks:
    """
    Optional lifecycle hooks. Each may be a function or a coroutine function.

    epoch arguments are 0-based.
    """
    on_train_start: Hook = None
    on_epoch_start: Hook = None
    on_epoch_end: Hook = None
    on_progress: Hook = None
    on_train_end: Hook = None
    on_error: Hook = None


class CallbackList:
    """Ordered observer list per hook."""

    def __init__(self, *callbacks: Union[TrainingCallbacks, "CallbackList", None]):
        self._listeners: Dict[str, List[Callable[..., Any]]] = {name: [] for name in HOOK_NAMES}
        for callback in callbacks:
            self.append(callback)

    def append(self, callbacks: Union[TrainingCallbacks, "CallbackList", None]) -> None:
        """Register every hook present on `callbacks`, after existing listeners."""
        if callbacks is None:
            return
        if isinstance(callbacks, CallbackList):
            for name in HOOK_NAMES:
                self._listeners[name].extend(callbacks._listeners[name])
            return
        for name in HOOK_NAMES:
            hook = getattr(callbacks, name, None)
            if hook is not None:
                self._listeners[name].append(hook)

    def has_listeners(self, hook: str) -> bool:
        return bool(self._listeners[hook])

    def __len__(self) -> int:
        return sum(len(listeners) for listeners in self._listeners.values())

    async def dispatch(self, hook: str, *args) -> None:
        """Invoke every listener for `hook`, awaiting each before the next."""
        for listener in list(self._listeners[hook]):
            result = listener(*args)
            if inspect.isawaitable(result):
                await result

    async def on_train_start(self) -> None:
        await self.dispatch('on_train_start')

    async def on_epoch_start(self, epoch: int) -> None:
        await self.dispatch('on_epoch_start', epoch)

    async def on_epoch_end(self, epoch: int, logs: Dict[str, float]) -> None:
        await self.dispatch('on_epoch_end', epoch, logs)

    async def on_progress(self, progress: TrainingProgress) -> None:
        await self.dispatch('on_progress', progress)

    async def on_train_end(self, result: TrainingResult) -> None:
        await self.dispatch('on_train_end', result)

    async def on_error(self, error: BaseException) -> None:
        await self.dispatch('on_error', error)


def combine_callbacks(*callbacks: Union[TrainingCallbacks, CallbackList, None]) -> CallbackList:
    """Merge callback records; hooks run in the order the records are given."""
    return CallbackList(*callbacks)


# =============================================================================
# Built-in callbacks
# =============================================================================

def _format_logs(logs: Dict[str, float]) -> str:
    loss = logs.get('loss')
    parts = [f"loss: {loss:.4f}" if loss is not None else "loss: N/A"]
    for name in ('accuracy', 'val_loss', 'val_accuracy'):
        if logs.get(name) is not None:
            parts.append(f"{name}: {logs[name]:.4f}")
    return " - ".join(parts)


def create_default_callbacks(
    on_progress: Optional[Callable[[int, Dict[str, float]], Any]] = None
) -> TrainingCallbacks:
    """
    Lifecycle logger.

    Args:
        on_progress: Optional (epoch, logs) function called after each epoch line

    Returns:
        TrainingCallbacks
    """

    def on_train_start():
        logger.info("Training started")

    async def on_epoch_end(epoch: int, logs: Dict[str, float]):
        logger.info(f"Epoch {epoch + 1} - {_format_logs(logs)}")
        if on_progress is not None:
            result = on_progress(epoch, logs)
            if inspect.isawaitable(result):
                await result

    def on_train_end(result: TrainingResult):
        logger.info(
            f"Training {result.stopped_reason.value} after {result.epochs} epochs "
            f"({result.duration_ms / 1000:.2f}s)"
        )

    def on_error(error: BaseException):
        logger.error(f"Training failed: {error}")

    return TrainingCallbacks(
        on_train_start=on_train_start,
        on_epoch_end=on_epoch_end,
        on_train_end=on_train_end,
        on_error=on_error,
    )


class EarlyStoppingController:
    """
    Patience-based early stopping.

    Raises a stop flag once the monitored metric has failed to improve by
    more than `min_delta` for `patience` consecutive epochs. The trainer
    polls should_stop() after each epoch and lets the current epoch
    finish. Weights are not restored; get_best_epoch() is for reporting.
    """

    def __init__(self, patience: int = 10, monitor: str = 'val_loss', min_delta: float = 0.001):
        if not isinstance(patience, int) or patience <= 0:
            raise ConfigValidationError(
                f"Early stopping patience must be greater than 0, got {patience}",
                field='patience'
            )
        self.patience = patience
        self.monitor = monitor
        self.min_delta = min_delta
        self.lower_is_better = is_lower_better(monitor)

        self.best_value: Optional[float] = None
        self.best_epoch = 0
        self.wait_count = 0
        self.stopped_epoch: Optional[int] = None
        self._stop = False

    def _is_improvement(self, current: float) -> bool:
        if self.best_value is None:
            return True
        if self.lower_is_better:
            return current < self.best_value - self.min_delta
        return current > self.best_value + self.min_delta

    def on_epoch_end(self, epoch: int, logs: Dict[str, float]) -> None:
        current = logs.get(self.monitor)
        if current is None:
            logger.warning(f"Early stopping monitor '{self.monitor}' not found in logs")
            return

        if self._is_improvement(current):
            self.best_value = float(current)
            self.best_epoch = epoch
            self.wait_count = 0
            return

        self.wait_count += 1
        if self.wait_count >= self.patience and not self._stop:
            self._stop = True
            self.stopped_epoch = epoch
            logger.info(
                f"Early stopping at epoch {epoch + 1} "
                f"(best epoch: {self.best_epoch + 1}, {self.monitor}={self.best_value:.4f})"
            )

    def should_stop(self) -> bool:
        return self._stop

    def get_best_epoch(self) -> int:
        return self.best_epoch

    @property
    def callbacks(self) -> TrainingCallbacks:
        return TrainingCallbacks(on_epoch_end=self.on_epoch_end)


def create_early_stopping_callback(
    patience: int = 10,
    monitor: str = 'val_loss',
    min_delta: float = 0.001
) -> EarlyStoppingController:
    return EarlyStoppingController(patience=patience, monitor=monitor, min_delta=min_delta)


def create_metrics_logging_callback(log_interval: int = 10) -> TrainingCallbacks:
    """Log every metric every `log_interval` epochs."""

    def on_epoch_end(epoch: int, logs: Dict[str, float]):
        if (epoch + 1) % log_interval != 0:
            return
        lines = [f"Epoch {epoch + 1} metrics:"]
        lines.extend(f"  {name}: {value:.6f}" for name, value in logs.items())
        logger.info("\n".join(lines))

    return TrainingCallbacks(on_epoch_end=on_epoch_end)


def create_progress_callback(
    on_progress: Callable[[TrainingProgress], Any],
    total_epochs: int = 0
) -> TrainingCallbacks:
    """
    Forward a TrainingProgress snapshot after each epoch, timed from
    on_train_start.
    """
    state = {'start': time.perf_counter()}

    def on_train_start():
        state['start'] = time.perf_counter()

    async def on_epoch_end(epoch: int, logs: Dict[str, float]):
        progress = TrainingProgress(
            epoch=epoch + 1,
            total_epochs=total_epochs,
            logs=dict(logs),
            elapsed_ms=(time.perf_counter() - state['start']) * 1000,
        )
        result = on_progress(progress)
        if inspect.isawaitable(result):
            await result

    return TrainingCallbacks(on_train_start=on_train_start, on_epoch_end=on_epoch_end)
