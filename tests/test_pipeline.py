from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest

from densefit.data import get_dataset
from densefit.training import pipelines
from densefit.training.schedules import QueriesRangeType


def _small_config(run_dir: Path, **train) -> dict:
    config = json.loads(json.dumps(pipelines.load_preset("linear-smoke")))
    config["data"]["options"]["n_points"] = 64
    config["train"].update({"epochs": 12, "queries": 4, "run_dir": str(run_dir)})
    config["train"].update(train)
    return config


def test_presets_include_builtin_and_file_presets():
    names = set(pipelines.presets())
    assert {"linear-smoke", "sin-x", "cos-pi-sqrt-x", "sin-2x"} <= names
    preset = pipelines.load_preset("sin-2x")
    assert preset["data"]["options"]["function"] == "sin_2x"
    with pytest.raises(KeyError):
        pipelines.load_preset("does-not-exist")


def test_load_preset_returns_a_copy():
    first = pipelines.load_preset("linear-smoke")
    first["train"]["epochs"] = 1
    assert pipelines.load_preset("linear-smoke")["train"]["epochs"] == 60


def test_network_config_inferred_from_dataset():
    dataset = get_dataset("approximation", function="sin_x1_mul_x2", size=4)
    network = pipelines.build_network_config({"hidden": [5, 4], "activation": "tanh"}, dataset)
    assert network.sizes == (2, 5, 4, 1)
    assert network.activations == ("tanh", "tanh", "linear")
    with pytest.raises(ValueError):
        pipelines.build_network_config({"d_in": 3, "hidden": [4]}, dataset)


def test_fit_parameters_from_train_section():
    dataset = get_dataset("linear", n_points=20)
    network = pipelines.build_network_config({"hidden": [4]}, dataset)
    parameters = pipelines.build_fit_parameters(
        dataset,
        network,
        {"epochs": 20, "queries": 4, "lr": 0.05, "queries_range_type": "non_linear", "seed": 2},
    )
    assert parameters.optimizer.start_lr == 0.05
    assert parameters.optimizer.stop_lr == 0.001
    assert parameters.queries_range_type is QueriesRangeType.NON_LINEAR
    assert parameters.query_epochs()[-1] == 20


def test_run_pipeline_writes_artifacts(tmp_path):
    run_dir = tmp_path / "run"
    result = pipelines.run_pipeline(_small_config(run_dir, retries=2, workers=2))

    for name in (
        "metrics.jsonl",
        "metrics.csv",
        "manifest.json",
        "summary.json",
        "best_network.npz",
        "metrics_valid.json",
        "config.json",
    ):
        assert (run_dir / name).exists(), name

    records = [json.loads(line) for line in Path(result.metrics_path).read_text().splitlines()]
    assert [r["epoch"] for r in records] == [3, 6, 9, 12]
    manifest = json.loads(Path(result.manifest_path).read_text())
    assert set(manifest["retries"]) == {"0", "1"}
    summary = json.loads(Path(result.summary_path).read_text())
    best = manifest["retries"][str(summary["best_retry"])]
    assert best["best_test_loss"] == pytest.approx(result.best_test_loss)
    assert min(r["best_test_loss"] for r in manifest["retries"].values()) == pytest.approx(
        result.best_test_loss
    )

    valid = json.loads((run_dir / "metrics_valid.json").read_text())
    assert {"mae", "rmse", "r2", "errors"} <= set(valid)
    with np.load(result.network_path) as state:
        assert set(state.files) == {"W0", "b0", "W1", "b1"}


def test_run_retries_validates_counts():
    dataset = get_dataset("linear", n_points=20)
    network = pipelines.build_network_config({"hidden": [4]}, dataset)
    parameters = pipelines.build_fit_parameters(dataset, network, {"epochs": 2, "queries": 1})
    with pytest.raises(ValueError):
        pipelines.run_retries(parameters, retries=0)
    with pytest.raises(ValueError):
        pipelines.run_retries(parameters, retries=2, workers=0)
    outcomes = pipelines.run_retries(parameters, retries=2)
    assert [o.seed for o in outcomes] == [0, 1]
