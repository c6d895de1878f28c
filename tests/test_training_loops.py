from __future__ import annotations

from typing import Mapping

import numpy as np
import pytest

from densefit.core.matrix import Matrix
from densefit.core.network import NetworkConfig
from densefit.data import Data, Dataset
from densefit.data.approximation import load_approximation
from densefit.training.optimizers import SGDConfig
from densefit.training.schedules import QueriesRangeType
from densefit.training.trainer import FitParameters, Trainer, fit


class _Capture:
    def __init__(self) -> None:
        self.history: list[tuple[int, Mapping[str, float]]] = []

    def on_epoch(self, epoch: int, metrics: Mapping[str, float]) -> None:
        self.history.append((epoch, {k: float(v) for k, v in metrics.items()}))


def _parameters(dataset: Dataset, **overrides) -> FitParameters:
    options = dict(
        dataset=dataset,
        network=NetworkConfig(sizes=[dataset.d_in, 8, dataset.d_out], activations=["tanh", "linear"]),
        optimizer=SGDConfig(start_lr=0.1, stop_lr=0.0001),
        epochs=100,
        batch_size=32,
        queries=5,
        seed=0,
    )
    options.update(overrides)
    return FitParameters(**options)


def _constant_dataset() -> Dataset:
    # Identical rows make every batch loss independent of the shuffle order.
    data = Data.from_arrays(np.zeros((8, 1)), np.ones((8, 1)))
    return Dataset(train=data, test=data)


def test_fit_learns_identity_function():
    dataset = load_approximation("x", size=64, test_size=32, valid_size=16)
    capture = _Capture()
    results = fit(_parameters(dataset, early_stopping=False), callbacks=[capture])

    assert sorted(results.test_losses) == [20, 40, 60, 80, 100]
    losses = [results.test_losses[e] for e in sorted(results.test_losses)]
    assert losses[-1] <= losses[0]
    assert results.best_test_loss == min(losses)
    assert results.epochs_run == 100
    assert not results.stopped_early
    assert [epoch for epoch, _ in capture.history] == [20, 40, 60, 80, 100]
    assert set(capture.history[0][1]) == {"train_loss", "test_loss", "learning_rate"}
    assert results.errors is not None
    assert results.errors.loss_mse < 0.1


def test_best_network_is_a_snapshot():
    dataset = load_approximation("sin_x", size=32, test_size=16, valid_size=8)
    trainer = Trainer.from_parameters(_parameters(dataset, early_stopping=False))
    results = trainer.fit(_parameters(dataset, early_stopping=False))
    assert results.best_network is not trainer.network
    reproduced = results.best_network.calculate_loss(dataset.test.inputs, dataset.test.outputs)
    # One test batch: the recorded loss is the batch MSE divided by the batch size.
    assert reproduced / 32 == pytest.approx(results.best_test_loss, rel=1e-9)


def test_fit_is_deterministic_for_a_seed():
    dataset = load_approximation("sin_2x", size=24, test_size=12, valid_size=6)
    first = fit(_parameters(dataset, epochs=30, queries=3))
    second = fit(_parameters(dataset, epochs=30, queries=3))
    assert first.test_losses == second.test_losses


def test_early_stopping_aborts_training():
    # A zero learning rate keeps every loss equal to its window mean.
    params = _parameters(
        _constant_dataset(),
        optimizer=SGDConfig(start_lr=0.0, stop_lr=0.0),
        epochs=50,
        queries=50,
        batch_size=8,
        early_stopping_threshold=3,
        window_size=2,
    )
    results = fit(params)
    assert results.stopped_early
    assert results.epochs_run == 4
    assert sorted(results.test_losses) == [1, 2, 3, 4]
    assert results.best_epoch == 1


def test_early_stopping_disabled_runs_all_epochs():
    params = _parameters(
        _constant_dataset(),
        optimizer=SGDConfig(start_lr=0.0, stop_lr=0.0),
        epochs=12,
        queries=12,
        batch_size=8,
        early_stopping=False,
    )
    results = fit(params)
    assert not results.stopped_early
    assert results.epochs_run == 12


def test_non_linear_schedule_queries_early_epochs():
    params = _parameters(
        _constant_dataset(),
        epochs=100,
        queries=10,
        batch_size=8,
        early_stopping=False,
        queries_range_type=QueriesRangeType.NON_LINEAR,
    )
    results = fit(params)
    epochs = sorted(results.test_losses)
    assert epochs[0] == 1
    assert epochs[-1] == 100
    assert len(epochs) == 10


def test_nan_losses_still_keep_a_network():
    data = Data(Matrix([[0.0], [1.0]]), Matrix([[float("nan")], [0.0]]))
    params = _parameters(
        Dataset(train=data, test=data),
        epochs=4,
        queries=2,
        batch_size=2,
        early_stopping=False,
    )
    results = fit(params)
    assert results.best_network is not None
    assert results.best_epoch == 2


@pytest.mark.parametrize(
    "overrides",
    [
        {"epochs": 0},
        {"batch_size": 0},
        {"queries": 0},
        {"queries": 101},
        {"early_stopping_threshold": 0},
        {"window_size": 0},
    ],
)
def test_fit_parameters_validation(overrides):
    dataset = _constant_dataset()
    with pytest.raises(ValueError):
        _parameters(dataset, **overrides)


def test_fit_parameters_reject_mismatched_network():
    dataset = _constant_dataset()
    with pytest.raises(ValueError):
        _parameters(dataset, network=NetworkConfig(sizes=[2, 4, 1], activations=["tanh", "linear"]))


def test_default_window_size():
    dataset = _constant_dataset()
    assert _parameters(dataset, queries=5).moving_window_size == 1
    assert _parameters(dataset, queries=25).moving_window_size == 3
    assert _parameters(dataset, queries=25, window_size=7).moving_window_size == 7
