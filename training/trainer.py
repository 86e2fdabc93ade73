# =============================================================================
# Model Trainer
# =============================================================================
"""
Orchestrates compile + fit for a Keras graph.

Lifecycle:
    IDLE -> COMPILING -> FITTING -> COMPLETED | EARLY_STOPPED | FAILED

Handles:
- Merging caller callbacks with the default logger and early stopping
- Forwarding each epoch boundary to the async callback list
- Final metrics, best epoch and overfitting diagnostics
- Disposing the input/label tensors handed to train() on every exit path

Scheduling:
    Model.fit runs in a worker thread. At every epoch boundary a Keras
    callback hands control back to the event loop and blocks until all
    hooks for that epoch have finished, so epoch N's callbacks always
    complete before epoch N+1 starts.
"""

import time
import asyncio
import threading
import logging
from enum import Enum
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from tensorflow import keras

from core.errors import (
    BackendTrainingError,
    TrainerBusyError,
    TrainingSystemError,
)
from core.tensors import TensorHandle, dispose_all, to_backend_input
from data_pipeline.dataset import Dataset
from models.definition import ModelDefinition
from training.callbacks import (
    CallbackList,
    EarlyStoppingController,
    TrainingCallbacks,
    combine_callbacks,
    create_default_callbacks,
)
from training.config import TrainingConfig, ensure_valid_training_config
from training.metrics import (
    calculate_final_metrics,
    detect_overfitting,
    extract_metrics,
    find_best_epoch,
)
from training.optimizers import create_optimizer
from training.results import StoppedReason, TrainingProgress, TrainingResult


logger = logging.getLogger(__name__)

Tensors = Union[TensorHandle, Sequence[TensorHandle]]


class TrainerState(str, Enum):
    IDLE = 'idle'
    COMPILING = 'compiling'
    FITTING = 'fitting'
    COMPLETED = 'completed'
    EARLY_STOPPED = 'early_stopped'
    FAILED = 'failed'


class _EpochBridge(keras.callbacks.Callback):
    """
    Keras callback that runs the async epoch hooks on the trainer's loop.

    Called from the fit thread; each hook call blocks that thread until
    the coroutine has finished on the loop. After cancel() no further
    hooks are dispatched and fit leaves its loop at the next check.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        on_epoch_begin: Callable[[int], Awaitable[None]],
        on_epoch_end: Callable[[int, Dict[str, float]], Awaitable[None]],
        should_stop: Callable[[], bool]
    ):
        super().__init__()
        self._loop = loop
        self._on_epoch_begin = on_epoch_begin
        self._on_epoch_end = on_epoch_end
        self._should_stop = should_stop
        self._cancelled = threading.Event()
        self.epoch_logs: List[Dict[str, float]] = []

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def _run(self, coro_fn, *args) -> None:
        if self.cancelled:
            self.model.stop_training = True
            return
        asyncio.run_coroutine_threadsafe(coro_fn(*args), self._loop).result()

    def on_epoch_begin(self, epoch, logs=None):
        self._run(self._on_epoch_begin, epoch)

    def on_train_batch_end(self, batch, logs=None):
        if self.cancelled:
            self.model.stop_training = True

    def on_epoch_end(self, epoch, logs=None):
        record = {name: float(value) for name, value in (logs or {}).items()}
        self.epoch_logs.append(record)
        self._run(self._on_epoch_end, epoch, record)

        # Graceful: Keras finishes this epoch, then leaves the loop
        if self.cancelled or self._should_stop():
            self.model.stop_training = True


async def _wait_for_fit(fit: "asyncio.Future") -> None:
    """Block until the fit thread has returned, even under repeated cancellation."""
    while not fit.done():
        try:
            await asyncio.wait({fit})
        except asyncio.CancelledError:
            continue

    if not fit.cancelled() and fit.exception() is not None:
        logger.warning(f"Cancelled fit ended with an error: {fit.exception()}")


def _check_tensors(tensors: Any, argument: str) -> None:
    if isinstance(tensors, TensorHandle):
        return
    if isinstance(tensors, (list, tuple)) and tensors and all(
        isinstance(t, TensorHandle) for t in tensors
    ):
        return
    raise TypeError(f"{argument} must be a TensorHandle or a list of TensorHandles")


class ModelTrainer:
    """
    Trainer for any Keras graph.

    Holds no state across calls except the wall-clock timer of the run in
    flight and `state`, which reports the outcome of the most recent run
    until the next train() starts and resets it to IDLE. One train() call
    at a time per instance; a second concurrent call raises
    TrainerBusyError. A cancelled train() returns control only after the
    fit thread has stopped.
    """

    def __init__(
        self,
        overfitting_threshold: float = 0.1,
        monitor: str = 'val_loss',
        min_delta: float = 0.001
    ):
        """
        Initialize trainer.

        Args:
            overfitting_threshold: val_loss - loss gap that triggers the warning
            monitor: Metric used for early stopping and best epoch
            min_delta: Minimum improvement for early stopping
        """
        self.overfitting_threshold = overfitting_threshold
        self.monitor = monitor
        self.min_delta = min_delta

        self._start_time = 0.0
        self._state = TrainerState.IDLE
        self._busy = False

    @property
    def state(self) -> TrainerState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._busy

    # -------------------------------------------------------------------------
    # Training
    # -------------------------------------------------------------------------

    async def train(
        self,
        graph: keras.Model,
        inputs: Tensors,
        labels: Tensors,
        config: TrainingConfig,
        callbacks: Union[TrainingCallbacks, CallbackList, None] = None
    ) -> TrainingResult:
        """
        Compile and fit `graph`.

        The inputs/labels handles are consumed: they are disposed when
        this call returns or raises.

        Args:
            graph: Keras model, typically from ModelDefinition.compile()
            inputs: Training inputs
            labels: Training labels
            config: Training configuration
            callbacks: Caller hooks, run after the default logger

        Returns:
            TrainingResult

        Raises:
            ConfigValidationError: Invalid config (before any backend call)
            BackendTrainingError: Failure during compile or fit
            TrainerBusyError: Another train() is in flight
            asyncio.CancelledError: Cancelled; raised once the in-flight
                epoch has finished and fit has returned
        """
        _check_tensors(inputs, 'inputs')
        _check_tensors(labels, 'labels')

        if self._busy:
            raise TrainerBusyError("A training run is already in progress on this trainer")
        self._busy = True
        self._state = TrainerState.IDLE

        try:
            ensure_valid_training_config(config)

            combined = combine_callbacks(create_default_callbacks(), callbacks)
            early_stopping: Optional[EarlyStoppingController] = None
            if config.early_stopping_patience:
                early_stopping = EarlyStoppingController(
                    patience=config.early_stopping_patience,
                    monitor=self.monitor,
                    min_delta=self.min_delta
                )
                combined.append(early_stopping.callbacks)

            await combined.on_train_start()
            return await self._run(graph, inputs, labels, config, combined, early_stopping)

        finally:
            released = dispose_all(inputs) + dispose_all(labels)
            logger.debug(f"Released {released} training tensors")
            self._busy = False

    async def _run(
        self,
        graph: keras.Model,
        inputs: Tensors,
        labels: Tensors,
        config: TrainingConfig,
        combined: CallbackList,
        early_stopping: Optional[EarlyStoppingController]
    ) -> TrainingResult:
        bridge: Optional[_EpochBridge] = None

        try:
            self._state = TrainerState.COMPILING
            optimizer = create_optimizer(config.optimizer_kind, config.learning_rate)
            graph.compile(
                optimizer=optimizer,
                loss=config.loss_kind,
                metrics=list(config.metrics)
            )

            self._start_time = time.perf_counter()
            self._state = TrainerState.FITTING

            bridge = _EpochBridge(
                loop=asyncio.get_running_loop(),
                on_epoch_begin=combined.on_epoch_start,
                on_epoch_end=partial(self._on_epoch_end, combined, config.epochs),
                should_stop=early_stopping.should_stop if early_stopping else (lambda: False)
            )

            fit = asyncio.ensure_future(asyncio.to_thread(
                graph.fit,
                to_backend_input(inputs),
                to_backend_input(labels),
                epochs=config.epochs,
                batch_size=config.batch_size,
                validation_split=config.validation_split or 0.0,
                shuffle=config.shuffle,
                verbose=config.verbose,
                callbacks=[bridge]
            ))

            try:
                history = await asyncio.shield(fit)
            except asyncio.CancelledError as cancelled:
                logger.warning("Training cancelled, waiting for the current epoch to finish")
                bridge.cancel()
                await _wait_for_fit(fit)
                self._state = TrainerState.FAILED
                await combined.on_error(cancelled)
                raise

            result = self._build_result(history, early_stopping)
            if result.stopped_reason is StoppedReason.EARLY_STOPPING:
                self._state = TrainerState.EARLY_STOPPED
            else:
                self._state = TrainerState.COMPLETED

            await combined.on_train_end(result)
            return result

        except Exception as e:
            self._state = TrainerState.FAILED
            if isinstance(e, TrainingSystemError):
                await combined.on_error(e)
                raise

            error = BackendTrainingError(
                f"Training failed: {e}",
                history=bridge.epoch_logs if bridge else []
            )
            await combined.on_error(error)
            raise error from e

    async def _on_epoch_end(
        self,
        combined: CallbackList,
        total_epochs: int,
        epoch: int,
        logs: Dict[str, float]
    ) -> None:
        await combined.on_epoch_end(epoch, logs)

        completed = epoch + 1
        progress = TrainingProgress(
            epoch=completed,
            total_epochs=total_epochs,
            logs=dict(logs),
            elapsed_ms=self._elapsed_ms(),
            estimated_remaining_ms=self.calculate_estimated_time(completed, total_epochs)
        )
        await combined.on_progress(progress)

    def _build_result(
        self,
        history: keras.callbacks.History,
        early_stopping: Optional[EarlyStoppingController]
    ) -> TrainingResult:
        training_history = extract_metrics(history)
        final_metrics = calculate_final_metrics(training_history)
        monitor = early_stopping.monitor if early_stopping else self.monitor
        best_epoch = find_best_epoch(training_history, monitor)

        stopped_early = early_stopping is not None and early_stopping.should_stop()
        epochs = len(getattr(history, 'epoch', None) or training_history['loss'])

        overfitting = detect_overfitting(training_history, self.overfitting_threshold)
        if overfitting.is_overfitting:
            logger.warning(
                f"Potential overfitting detected (val_loss: {overfitting.val_loss:.4f}, "
                f"train_loss: {overfitting.train_loss:.4f}, gap: {overfitting.gap:.4f})"
            )

        return TrainingResult(
            history=training_history,
            final_metrics=final_metrics,
            epochs=epochs,
            duration_ms=self._elapsed_ms(),
            best_epoch=best_epoch,
            stopped=True,
            stopped_reason=StoppedReason.EARLY_STOPPING if stopped_early else StoppedReason.COMPLETED,
            overfitting=overfitting,
        )

    def _elapsed_ms(self) -> float:
        return (time.perf_counter() - self._start_time) * 1000

    def calculate_estimated_time(self, completed_epochs: int, total_epochs: int) -> float:
        """
        Estimated milliseconds remaining.

        (elapsed / completed_epochs) * remaining_epochs
        """
        if completed_epochs <= 0:
            return 0.0
        per_epoch = self._elapsed_ms() / completed_epochs
        return per_epoch * max(total_epochs - completed_epochs, 0)

    # -------------------------------------------------------------------------
    # Evaluation & prediction
    # -------------------------------------------------------------------------

    def evaluate(
        self,
        graph: keras.Model,
        test_inputs: Tensors,
        test_labels: Tensors
    ) -> Dict[str, float]:
        """
        Run an evaluation pass on a compiled graph.

        The test tensors are not disposed; the caller keeps ownership.

        Returns:
            Metric name -> value (always includes 'loss')
        """
        x = to_backend_input(test_inputs)
        y = to_backend_input(test_labels)

        try:
            results = graph.evaluate(x, y, verbose=0, return_dict=True)
        except Exception as e:
            logger.error(f"Model evaluation failed: {e}")
            raise BackendTrainingError(f"Evaluation failed: {e}") from e

        return {name: float(value) for name, value in results.items()}

    def predict(self, graph: keras.Model, inputs: Tensors) -> Union[TensorHandle, List[TensorHandle]]:
        """
        Forward pass.

        Nothing is disposed; the caller owns the returned tensor(s).
        """
        x = to_backend_input(inputs)

        try:
            output = graph.predict(x, verbose=0)
        except Exception as e:
            logger.error(f"Model prediction failed: {e}")
            raise BackendTrainingError(f"Prediction failed: {e}") from e

        if isinstance(output, (list, tuple)):
            return [TensorHandle(o) for o in output]
        return TensorHandle(output)


def train_model(
    definition: ModelDefinition,
    dataset: Dataset,
    config: TrainingConfig,
    callbacks: Union[TrainingCallbacks, CallbackList, None] = None,
    trainer: Optional[ModelTrainer] = None
) -> Tuple[keras.Model, TrainingResult]:
    """
    Convenience function: compile a fresh graph and train it on a dataset.

    Uses the dataset's train split when present, otherwise all samples.
    The dataset keeps ownership of its tensors; train() consumes separate
    handles over the same values.

    Returns:
        Tuple of (trained_graph, result)
    """
    trainer = trainer or ModelTrainer()
    graph = definition.compile()

    train_inputs = dataset.train_inputs if dataset.train_inputs is not None else dataset.inputs
    train_labels = dataset.train_labels if dataset.train_labels is not None else dataset.labels

    logger.info(
        f"Training {definition.id}: inputs {train_inputs.shape}, labels {train_labels.shape}"
    )

    result = asyncio.run(trainer.train(
        graph,
        TensorHandle(train_inputs),
        TensorHandle(train_labels),
        config,
        callbacks
    ))

    if result.stopped_reason is StoppedReason.EARLY_STOPPING:
        logger.info(
            f"Training stopped early at epoch {result.epochs} (best: {result.best_epoch + 1})"
        )

    return graph, result
