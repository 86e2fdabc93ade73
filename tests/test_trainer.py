import asyncio

import numpy as np
import pytest

pytest.importorskip("tensorflow")

from core.errors import BackendTrainingError, ConfigValidationError, TrainerBusyError
from core.tensors import TensorHandle
from data_pipeline.dataset import Dataset
from models.definition import ModelDefinition
from models.layers import DenseLayerConfig
from training.callbacks import TrainingCallbacks
from training.config import TrainingConfig
from training.results import StoppedReason
from training.trainer import ModelTrainer, TrainerState, train_model


def _definition() -> ModelDefinition:
    return ModelDefinition(input_shape=(4,), output_width=3, layers=(DenseLayerConfig(units=8),))


def _config(**overrides) -> TrainingConfig:
    base = TrainingConfig(
        loss_kind='categorical_crossentropy',
        metrics=('accuracy',),
        epochs=3,
        batch_size=2,
        validation_split=None,
    )
    return base.replace(**overrides)


def test_end_to_end_training(iris_like) -> None:
    inputs, labels = iris_like
    x = TensorHandle(inputs)
    y = TensorHandle(labels)
    graph = _definition().compile()
    assert len(graph.layers) == 2

    trainer = ModelTrainer()
    result = asyncio.run(trainer.train(graph, x, y, _config()))

    assert result.epochs == 3
    assert len(result.history['loss']) == 3
    assert result.stopped is True
    assert result.stopped_reason is StoppedReason.COMPLETED
    assert result.final_metrics['loss'] == result.history['loss'][-1]
    assert 'accuracy' in result.final_metrics
    assert result.duration_ms > 0
    assert trainer.state is TrainerState.COMPLETED
    assert x.is_disposed and y.is_disposed

    metrics = trainer.evaluate(graph, TensorHandle(inputs), TensorHandle(labels))
    assert 'loss' in metrics

    predictions = trainer.predict(graph, TensorHandle(inputs))
    assert predictions.shape == (10, 3)
    np.testing.assert_allclose(predictions.numpy().sum(axis=1), np.ones(10), rtol=1e-5)


def test_hooks_fire_in_order_with_progress(iris_like) -> None:
    events = []
    progress = []

    async def on_epoch_end(epoch, logs):
        await asyncio.sleep(0)
        events.append(('end', epoch))

    callbacks = TrainingCallbacks(
        on_train_start=lambda: events.append('start'),
        on_epoch_start=lambda epoch: events.append(('begin', epoch)),
        on_epoch_end=on_epoch_end,
        on_progress=progress.append,
        on_train_end=lambda result: events.append(('done', result.epochs)),
    )

    asyncio.run(ModelTrainer().train(
        _definition().compile(),
        TensorHandle(iris_like[0]),
        TensorHandle(iris_like[1]),
        _config(epochs=2),
        callbacks
    ))

    assert events == ['start', ('begin', 0), ('end', 0), ('begin', 1), ('end', 1), ('done', 2)]
    assert [p.epoch for p in progress] == [1, 2]
    assert progress[-1].estimated_remaining_ms == 0


def test_early_stopping_ends_run(iris_like) -> None:
    epochs_seen = []
    trainer = ModelTrainer(monitor='loss', min_delta=1e9)

    result = asyncio.run(trainer.train(
        _definition().compile(),
        TensorHandle(iris_like[0]),
        TensorHandle(iris_like[1]),
        _config(epochs=20, early_stopping_patience=2),
        TrainingCallbacks(on_epoch_end=lambda epoch, logs: epochs_seen.append(epoch))
    ))

    assert result.stopped_reason is StoppedReason.EARLY_STOPPING
    assert result.epochs == 3
    assert epochs_seen == [0, 1, 2]
    assert trainer.state is TrainerState.EARLY_STOPPED


def test_validation_split_produces_val_metrics(iris_like) -> None:
    result = asyncio.run(ModelTrainer().train(
        _definition().compile(),
        TensorHandle(iris_like[0]),
        TensorHandle(iris_like[1]),
        _config(epochs=2, validation_split=0.2)
    ))

    assert len(result.history['val_loss']) == 2
    assert result.overfitting is not None
    assert 0 <= result.best_epoch < 2


def test_invalid_config_disposes_inputs(iris_like) -> None:
    x = TensorHandle(iris_like[0])
    y = TensorHandle(iris_like[1])
    trainer = ModelTrainer()

    with pytest.raises(ConfigValidationError):
        asyncio.run(trainer.train(_definition().compile(), x, y, _config(epochs=0)))

    assert x.is_disposed and y.is_disposed
    assert not trainer.is_busy


def test_backend_failure_reports_error_and_disposes(iris_like) -> None:
    errors = []
    x = TensorHandle(iris_like[0])
    y = TensorHandle(np.zeros((10, 5), dtype=np.float32))
    trainer = ModelTrainer()

    with pytest.raises(BackendTrainingError) as excinfo:
        asyncio.run(trainer.train(
            _definition().compile(), x, y, _config(),
            TrainingCallbacks(on_error=errors.append)
        ))

    assert errors == [excinfo.value]
    assert excinfo.value.completed_epochs == 0
    assert trainer.state is TrainerState.FAILED
    assert x.is_disposed and y.is_disposed


def test_concurrent_train_is_rejected(iris_like) -> None:
    trainer = ModelTrainer()
    graph = _definition().compile()

    async def run():
        started = asyncio.Event()
        release = asyncio.Event()

        async def hold(epoch, logs):
            started.set()
            await release.wait()

        first = asyncio.create_task(trainer.train(
            graph,
            TensorHandle(iris_like[0]),
            TensorHandle(iris_like[1]),
            _config(epochs=1),
            TrainingCallbacks(on_epoch_end=hold)
        ))
        await started.wait()

        second_inputs = TensorHandle(iris_like[0])
        with pytest.raises(TrainerBusyError):
            await trainer.train(graph, second_inputs, TensorHandle(iris_like[1]), _config())
        assert not second_inputs.is_disposed

        release.set()
        return await first

    result = asyncio.run(run())
    assert result.epochs == 1
    assert not trainer.is_busy


def test_train_model_keeps_dataset_tensors(iris_like) -> None:
    dataset = Dataset.from_arrays(*iris_like, test_split=0.2)

    graph, result = train_model(_definition(), dataset, _config(epochs=1))

    assert result.epochs == 1
    assert not dataset.train_inputs.is_disposed
    assert ModelTrainer().predict(graph, dataset.test_inputs).shape == (2, 3)
    dataset.dispose()


def test_cancelled_run_stops_fit_before_returning(iris_like) -> None:
    trainer = ModelTrainer()
    x = TensorHandle(iris_like[0])
    y = TensorHandle(iris_like[1])
    events = []
    errors = []

    async def slow_epoch_end(epoch, logs):
        events.append(epoch)
        await asyncio.sleep(0.2)

    async def run():
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(
                trainer.train(
                    _definition().compile(), x, y, _config(epochs=40),
                    TrainingCallbacks(on_epoch_end=slow_epoch_end, on_error=errors.append)
                ),
                timeout=0.5
            )
        seen_at_return = list(events)
        busy_at_return = trainer.is_busy
        await asyncio.sleep(1.0)
        return seen_at_return, busy_at_return

    seen_at_return, busy_at_return = asyncio.run(run())

    assert events == seen_at_return
    assert len(events) < 40
    assert not busy_at_return
    assert x.is_disposed and y.is_disposed
    assert trainer.state is TrainerState.FAILED
    assert len(errors) == 1 and isinstance(errors[0], asyncio.CancelledError)

    result = asyncio.run(trainer.train(
        _definition().compile(),
        TensorHandle(iris_like[0]),
        TensorHandle(iris_like[1]),
        _config(epochs=1)
    ))
    assert result.epochs == 1


def test_state_resets_at_the_start_of_each_run(iris_like) -> None:
    trainer = ModelTrainer()
    asyncio.run(trainer.train(
        _definition().compile(),
        TensorHandle(iris_like[0]),
        TensorHandle(iris_like[1]),
        _config(epochs=1)
    ))
    assert trainer.state is TrainerState.COMPLETED

    with pytest.raises(ConfigValidationError):
        asyncio.run(trainer.train(
            _definition().compile(),
            TensorHandle(iris_like[0]),
            TensorHandle(iris_like[1]),
            _config(batch_size=0)
        ))
    assert trainer.state is TrainerState.IDLE
