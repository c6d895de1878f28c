import json

import numpy as np
import pytest

from densefit.core.matrix import Matrix
from densefit.core.network import NetworkConfig
from densefit.reporting.metrics import CsvSink, JsonlSink
from densefit.reporting.plots import PlotAdapter
from densefit.training.metrics import Errors, compute_metrics
from densefit.training.optimizers import SGD, SGDConfig


def _network():
    return NetworkConfig(sizes=[1, 3, 1], activations=["sigmoid", "linear"]).build(
        np.random.default_rng(0)
    )


def test_sgd_step_moves_against_gradient():
    network = _network()
    params = network.parameters()
    grads = {key: value.ones_like() for key, value in params.items()}
    SGD(network, learning_rate=0.5).step(grads)
    for key, value in network.parameters().items():
        assert value.equal_values(params[key].sub(0.5))


def test_sgd_step_requires_every_gradient():
    network = _network()
    with pytest.raises(KeyError):
        SGD(network, learning_rate=0.1).step({"W0": Matrix(np.zeros((1, 3)))})


def test_learning_rate_reaches_stop_lr_on_last_epoch():
    optimizer = SGDConfig(start_lr=0.1, stop_lr=0.01).build(_network(), epochs=10)
    rates = []
    for _ in range(10):
        rates.append(optimizer.learning_rate)
        optimizer.decay()
    assert rates[0] == pytest.approx(0.1)
    assert rates[-1] == pytest.approx(0.01)


def test_single_epoch_has_no_decay():
    optimizer = SGDConfig(start_lr=0.1, stop_lr=0.01).build(_network(), epochs=1)
    assert optimizer.decay_lr == 0.0


def test_sgd_config_validation():
    with pytest.raises(ValueError):
        SGDConfig(start_lr=0.001, stop_lr=0.1)
    with pytest.raises(ValueError):
        SGDConfig().build(_network(), epochs=0)


def test_errors_from_predictions():
    targets = Matrix([[0.0], [1.0], [2.0]])
    predictions = Matrix([[0.5], [1.0], [1.0]])
    errors = Errors.from_predictions(targets, predictions)
    assert errors.max_absolute_error == pytest.approx(1.0)
    assert errors.max_relative_error == pytest.approx(50.0)
    assert errors.mean_absolute_error == pytest.approx(0.5)
    assert errors.loss_mse == pytest.approx((0.25 + 1.0) / 3)
    assert set(errors.as_dict()) == {
        "max_absolute_error",
        "max_relative_error",
        "mean_absolute_error",
        "loss_mse",
    }


def test_regression_metrics():
    targets = Matrix([[1.0], [2.0], [3.0]])
    metrics = compute_metrics(["mae", "rmse", "r2", "max_abs"], targets, targets)
    assert metrics["mae"] == 0.0
    assert metrics["rmse"] == 0.0
    assert metrics["r2"] == pytest.approx(1.0)
    with pytest.raises(KeyError):
        compute_metrics(["accuracy"], targets, targets)


def test_sinks_write_records(tmp_path):
    jsonl = JsonlSink(tmp_path / "metrics.jsonl", seed=3, sha="abc")
    csv_sink = CsvSink(tmp_path / "metrics.csv")
    for epoch, loss in ((1, 0.5), (2, 0.25)):
        jsonl.on_epoch(epoch, {"test_loss": loss})
        csv_sink.on_epoch(epoch, {"test_loss": loss})
    records = [json.loads(line) for line in jsonl.path.read_text().splitlines()]
    assert [r["epoch"] for r in records] == [1, 2]
    assert records[0]["sha"] == "abc" and records[0]["seed"] == 3
    lines = csv_sink.path.read_text().splitlines()
    assert lines[0] == "epoch,test_loss"
    assert len(lines) == 3


def test_plot_adapter_headless(tmp_path):
    adapter = PlotAdapter(tmp_path, enable_plots=True)
    adapter.on_epoch(1, {"train_loss": 1.0, "test_loss": 1.2})
    adapter.on_epoch(2, {"train_loss": 0.5, "test_loss": 0.6})
    adapter.close()
    assert (tmp_path / "loss.png").exists()


def test_plot_adapter_disabled(tmp_path):
    adapter = PlotAdapter(tmp_path / "plots", enable_plots=False)
    adapter.on_epoch(1, {"train_loss": 1.0})
    assert adapter.close() is None
    assert not (tmp_path / "plots").exists()
