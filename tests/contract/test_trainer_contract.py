import json
from pathlib import Path

import numpy as np

from densefit.core.network import NetworkConfig
from densefit.training import pipelines


def _config(run_dir: Path, seed: int = 11) -> dict:
    return {
        "data": {"name": "linear", "options": {"n_points": 64, "seed": 0}},
        "model": {"hidden": [4], "activations": ["tanh", "linear"], "loss": "mse"},
        "train": {
            "epochs": 10,
            "queries": 5,
            "batch_size": 8,
            "start_lr": 0.05,
            "stop_lr": 0.005,
            "early_stopping": False,
            "seed": seed,
            "run_dir": str(run_dir),
            "enable_plots": False,
        },
    }


def test_trainer_pipeline_produces_artifacts(tmp_path):
    config = _config(tmp_path / "run")
    result = pipelines.run_pipeline(config)

    assert result.epochs == 10
    manifest = json.loads(Path(result.manifest_path).read_text())
    assert manifest["config"]["train"]["seed"] == 11
    assert manifest["dataset"]["type"] == "linear"
    assert len(manifest["config_hash"]) == 12

    metrics = [
        json.loads(line)
        for line in Path(result.metrics_path).read_text().splitlines()
        if line
    ]
    assert [entry["epoch"] for entry in metrics] == [2, 4, 6, 8, 10]
    first = metrics[0]
    assert {"train_loss", "test_loss", "learning_rate", "sha", "seed"} <= set(first)
    assert first["seed"] == 11

    csv_path = Path(config["train"]["run_dir"]) / "metrics.csv"
    assert csv_path.read_text().splitlines()[0] == "epoch,learning_rate,test_loss,train_loss"


def test_saved_network_reproduces_best_loss(tmp_path):
    result = pipelines.run_pipeline(_config(tmp_path / "run"))
    network = NetworkConfig(sizes=[1, 4, 1], activations=["tanh", "linear"]).build(
        np.random.default_rng(123)
    )
    with np.load(result.network_path) as state:
        network.load_state_dict({name: state[name] for name in state.files})
    summary = json.loads(Path(result.summary_path).read_text())
    assert summary["best_test_loss"] == result.best_test_loss
    assert summary["query_epochs"] == [2, 4, 6, 8, 10]
    assert network.parameter_count() == 13


def test_pipeline_determinism(tmp_path):
    first = pipelines.run_pipeline(_config(tmp_path / "run1", seed=99))
    second = pipelines.run_pipeline(_config(tmp_path / "run2", seed=99))
    assert Path(first.metrics_path).read_text() == Path(second.metrics_path).read_text()
    assert first.best_test_loss == second.best_test_loss
