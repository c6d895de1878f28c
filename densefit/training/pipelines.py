"""Pipeline assembly: config dicts in, trained networks and run artifacts out."""

from __future__ import annotations

import json
import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor
from copy import deepcopy
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, List, Mapping, Sequence

import yaml

from ..core.network import NetworkConfig
from ..core.types import RunResult
from ..data import registry
from ..data.dataset import Dataset
from ..reporting.artifacts import write_manifest
from ..reporting.metrics import CsvSink, JsonlSink
from ..reporting.plots import PlotAdapter
from ..reporting.summary import write_summary
from .metrics import compute_metrics, default_metrics
from .optimizers import SGDConfig
from .schedules import QueriesRangeType
from .trainer import FitParameters, FitResults, Trainer, fit

logger = logging.getLogger(__name__)

_PRESETS: Dict[str, Mapping[str, object]] = {
    "linear-smoke": {
        "data": {"name": "linear", "options": {"n_points": 128, "seed": 0}},
        "model": {"hidden": [8], "activations": ["tanh", "linear"], "loss": "mse"},
        "train": {
            "epochs": 60,
            "batch_size": 16,
            "queries": 6,
            "start_lr": 0.05,
            "stop_lr": 0.005,
            "early_stopping": False,
            "seed": 7,
            "run_dir": "runs/linear-smoke",
            "enable_plots": False,
        },
    },
    "sin-x": {
        "data": {
            "name": "approximation",
            "options": {"function": "sin_x", "size": 64, "extending_factor": 1.1},
        },
        "model": {"hidden": [16], "activations": ["sigmoid", "linear"], "loss": "mse"},
        "train": {
            "epochs": 300,
            "batch_size": 16,
            "queries": 30,
            "start_lr": 0.1,
            "stop_lr": 0.01,
            "early_stopping": True,
            "early_stopping_threshold": 5,
            "seed": 0,
            "retries": 2,
            "workers": 2,
            "run_dir": "runs/sin-x",
            "enable_plots": False,
        },
    },
    "sin-x1-mul-x2": {
        "data": {
            "name": "approximation",
            "options": {"function": "sin_x1_mul_x2", "size": 12, "extending_factor": 1.1},
        },
        "model": {"hidden": [24], "activations": ["tanh", "linear"], "loss": "mse"},
        "train": {
            "epochs": 200,
            "batch_size": 16,
            "queries": 20,
            "start_lr": 0.05,
            "stop_lr": 0.005,
            "seed": 3,
            "run_dir": "runs/sin-x1-mul-x2",
            "enable_plots": False,
        },
    },
    "cos-pi-sqrt-x": {
        "data": {
            "name": "approximation",
            "options": {"function": "cos_pi_sqrt_x", "size": 128, "extending_factor": 1.2},
        },
        "model": {"hidden": [32, 16], "activations": ["tanh", "tanh", "linear"], "loss": "mse"},
        "train": {
            "epochs": 400,
            "batch_size": 32,
            "queries": 40,
            "queries_range_type": "non_linear",
            "start_lr": 0.05,
            "stop_lr": 0.001,
            "seed": 11,
            "run_dir": "runs/cos-pi-sqrt-x",
            "enable_plots": False,
        },
    },
}

_PRESET_DIR = Path(__file__).resolve().parents[2] / "configs" / "presets"
_FILE_PRESETS_CACHE: Dict[str, Mapping[str, object]] | None = None


def read_config_file(path: Path) -> Mapping[str, object]:
    """Decode a JSON or YAML config file into a mapping."""

    text = path.read_text()
    suffix = path.suffix.lower()
    if suffix in {".yaml", ".yml"}:
        data = yaml.safe_load(text) or {}
    elif suffix == ".json":
        data = json.loads(text or "{}")
    else:
        raise ValueError(f"Unsupported config file type: {path.suffix}")

    if not isinstance(data, Mapping):
        raise TypeError(f"Config {path.name} must decode to a mapping")
    return data


def _file_presets() -> Dict[str, Mapping[str, object]]:
    global _FILE_PRESETS_CACHE
    if _FILE_PRESETS_CACHE is None:
        loaded: Dict[str, Mapping[str, object]] = {}
        if _PRESET_DIR.exists():
            for file in sorted(_PRESET_DIR.iterdir()):
                if file.suffix.lower() not in {".yaml", ".yml", ".json"}:
                    continue
                data = read_config_file(file)
                missing = {"data", "model", "train"} - set(data)
                if missing:
                    missing_str = ", ".join(sorted(missing))
                    raise KeyError(f"Preset {file.name} is missing required sections: {missing_str}")
                loaded[file.stem] = json.loads(json.dumps(data))
        _FILE_PRESETS_CACHE = loaded
    return {name: deepcopy(cfg) for name, cfg in _FILE_PRESETS_CACHE.items()}


def presets() -> Mapping[str, Mapping[str, object]]:
    combined: Dict[str, Mapping[str, object]] = {}
    combined.update({name: deepcopy(cfg) for name, cfg in _PRESETS.items()})
    combined.update(_file_presets())
    return combined


def load_preset(name: str) -> Mapping[str, object]:
    file_overrides = _file_presets()
    if name in file_overrides:
        return file_overrides[name]
    if name not in _PRESETS:
        raise KeyError(f"Unknown preset: {name}")
    return deepcopy(_PRESETS[name])


# ---------------------------------------------------------------------------
# Config -> typed parameters


def build_network_config(model_cfg: Mapping[str, object], dataset: Dataset) -> NetworkConfig:
    d_in = int(model_cfg.get("d_in", dataset.d_in))
    d_out = int(model_cfg.get("d_out", dataset.d_out))
    if d_in != dataset.d_in:
        raise ValueError(f"Configured d_in={d_in} but the dataset has {dataset.d_in} inputs")
    if d_out != dataset.d_out:
        raise ValueError(f"Configured d_out={d_out} but the dataset has {dataset.d_out} outputs")

    hidden = [int(h) for h in model_cfg.get("hidden", [])]  # type: ignore[union-attr]
    activations = model_cfg.get("activations")
    if activations is None:
        hidden_activation = str(model_cfg.get("activation", "sigmoid"))
        activations = [hidden_activation] * len(hidden) + ["linear"]
    return NetworkConfig(
        sizes=[d_in, *hidden, d_out],
        activations=[str(a) for a in activations],  # type: ignore[union-attr]
        loss=str(model_cfg.get("loss", "mse")),
    )


def build_fit_parameters(
    dataset: Dataset, network: NetworkConfig, train_cfg: Mapping[str, object]
) -> FitParameters:
    start_lr = float(train_cfg.get("start_lr", train_cfg.get("lr", 0.01)))
    stop_lr = float(train_cfg.get("stop_lr", min(start_lr, 0.001)))
    window_size = train_cfg.get("window_size")
    return FitParameters(
        dataset=dataset,
        network=network,
        optimizer=SGDConfig(start_lr=start_lr, stop_lr=stop_lr),
        epochs=int(train_cfg.get("epochs", 100)),
        batch_size=int(train_cfg.get("batch_size", 64)),
        queries=int(train_cfg.get("queries", 10)),
        early_stopping=bool(train_cfg.get("early_stopping", True)),
        early_stopping_threshold=int(train_cfg.get("early_stopping_threshold", 5)),
        window_size=int(window_size) if window_size is not None else None,
        queries_range_type=QueriesRangeType(str(train_cfg.get("queries_range_type", "linear"))),
        double_format=str(train_cfg.get("double_format", "%13.10f")),
        seed=int(train_cfg.get("seed", 0)),
    )


# ---------------------------------------------------------------------------
# Retries


class _MetricsCapture:
    def __init__(self) -> None:
        self.history: list[tuple[int, Mapping[str, float]]] = []

    def on_epoch(self, epoch: int, metrics: Mapping[str, float]) -> None:
        self.history.append((int(epoch), {k: float(v) for k, v in metrics.items()}))


@dataclass
class _Outcome:
    retry: int
    seed: int
    results: FitResults
    capture: _MetricsCapture

    @property
    def rank(self) -> float:
        loss = self.results.best_test_loss
        return loss if math.isfinite(loss) else math.inf


def _fit_retry(parameters: FitParameters, retry: int) -> _Outcome:
    seed = int(parameters.seed or 0) + retry
    private = replace(deepcopy(parameters), seed=seed)
    capture = _MetricsCapture()
    results = fit(private, callbacks=[capture])
    logger.info(
        "retry %d (seed %d): best test loss %s at epoch %d",
        retry,
        seed,
        private.double_format % results.best_test_loss,
        results.best_epoch,
    )
    return _Outcome(retry=retry, seed=seed, results=results, capture=capture)


def run_retries(parameters: FitParameters, retries: int = 1, workers: int = 1) -> List[_Outcome]:
    """Train ``retries`` independent networks, each on its own seed."""

    if retries < 1:
        raise ValueError(f"retries must be positive, got {retries}")
    if workers < 1:
        raise ValueError(f"workers must be positive, got {workers}")
    if workers == 1 or retries == 1:
        return [_fit_retry(parameters, retry) for retry in range(retries)]
    with ThreadPoolExecutor(max_workers=min(workers, retries)) as pool:
        return list(pool.map(lambda retry: _fit_retry(parameters, retry), range(retries)))


# ---------------------------------------------------------------------------
# Entry point


def run_pipeline(config: Mapping[str, object]) -> RunResult:
    data_cfg = dict(config["data"])  # type: ignore[arg-type]
    model_cfg = dict(config["model"])  # type: ignore[arg-type]
    train_cfg = dict(config["train"])  # type: ignore[arg-type]

    dataset = registry.get_dataset(str(data_cfg["name"]), **dict(data_cfg.get("options", {})))
    network_cfg = build_network_config(model_cfg, dataset)
    parameters = build_fit_parameters(dataset, network_cfg, train_cfg)
    retries = int(train_cfg.get("retries", 1))
    workers = int(train_cfg.get("workers", 1))

    run_dir = _resolve_run_dir(train_cfg, dataset.name)
    run_dir.mkdir(parents=True, exist_ok=True)

    _print_startup_summary(
        dataset_name=dataset.name,
        splits=dataset.splits,
        network=network_cfg,
        parameters=parameters,
        retries=retries,
    )

    outcomes = run_retries(parameters, retries, workers)
    best = min(outcomes, key=lambda outcome: outcome.rank)
    results = best.results

    jsonl = JsonlSink(run_dir / "metrics.jsonl", seed=best.seed)
    csv_sink = CsvSink(run_dir / "metrics.csv")
    plots = PlotAdapter(run_dir, enable_plots=bool(train_cfg.get("enable_plots", False)))
    for epoch, metrics in best.capture.history:
        for sink in (jsonl, csv_sink, plots):
            sink.on_epoch(epoch, metrics)
    plots.close()

    network_path = run_dir / "best_network.npz"
    Trainer.save_checkpoint(network_path, results.best_network.state_dict())

    valid_metrics: Dict[str, object] = {}
    if dataset.valid is not None:
        names = _metric_names(train_cfg.get("metrics", "default"))
        predictions = results.best_network.predict(dataset.valid.inputs)
        valid_metrics.update(compute_metrics(names, predictions, dataset.valid.outputs))
    if results.errors is not None:
        valid_metrics["errors"] = results.errors.as_dict()
    (run_dir / "metrics_valid.json").write_text(json.dumps(valid_metrics, indent=2))

    safe_config = json.loads(json.dumps(config))
    retry_report = {
        str(outcome.retry): {
            "seed": outcome.seed,
            "best_test_loss": outcome.results.best_test_loss,
            "best_epoch": outcome.results.best_epoch,
            "epochs_run": outcome.results.epochs_run,
            "stopped_early": outcome.results.stopped_early,
        }
        for outcome in outcomes
    }
    manifest = write_manifest(
        run_dir / "manifest.json",
        config=safe_config,
        dataset_provenance=dataset.provenance,
        retries=retry_report,
    )
    summary_path = write_summary(
        jsonl.path,
        run_dir / "summary.json",
        tail=int(train_cfg.get("summary_tail", 32)),
        extra={
            "best_retry": best.retry,
            "best_epoch": results.best_epoch,
            "best_test_loss": results.best_test_loss,
            "epochs_run": results.epochs_run,
            "stopped_early": results.stopped_early,
            "query_epochs": parameters.query_epochs(),
        },
    )
    (run_dir / "config.json").write_text(json.dumps(safe_config, indent=2))

    return RunResult(
        epochs=results.epochs_run,
        metrics_path=str(jsonl.path),
        manifest_path=manifest,
        summary_path=summary_path,
        network_path=str(network_path),
        best_test_loss=float(results.best_test_loss),
        stopped_early=results.stopped_early,
    )


def _metric_names(metrics_cfg: object) -> List[str]:
    if isinstance(metrics_cfg, str):
        if metrics_cfg in {"", "default"}:
            return default_metrics()
        return [m.strip() for m in metrics_cfg.split(",") if m.strip()]
    return [str(m) for m in metrics_cfg]  # type: ignore[union-attr]


def _resolve_run_dir(train_cfg: Mapping[str, object], dataset: str) -> Path:
    if "run_dir" in train_cfg:
        return Path(str(train_cfg["run_dir"]))
    timestamp = time.strftime("%Y%m%d-%H%M%S")
    return Path("runs") / timestamp / dataset.replace(":", "-")


def _print_startup_summary(
    *,
    dataset_name: str,
    splits: Mapping[str, int],
    network: NetworkConfig,
    parameters: FitParameters,
    retries: int,
) -> None:
    param_count = sum(
        n_in * n_out + n_out for n_in, n_out in zip(network.sizes[:-1], network.sizes[1:])
    )
    print("=== densefit run ===")
    print(f"Dataset       : {dataset_name} {dict(splits)}")
    print(f"Dimensions    : {list(network.sizes)}")
    print(f"Activations   : {list(network.activations)}")
    print(f"Loss          : {network.loss}")
    print(f"Epochs        : {parameters.epochs} (queries at {_format_epochs(parameters.query_epochs())})")
    print(f"Learning rate : {parameters.optimizer.start_lr} -> {parameters.optimizer.stop_lr}")
    print(f"Retries       : {retries}")
    print(f"Parameters    : {param_count}")
    print("====================")


def _format_epochs(epochs: Sequence[int], limit: int = 6) -> str:
    if len(epochs) <= limit:
        return ", ".join(str(e) for e in epochs)
    head = ", ".join(str(e) for e in epochs[: limit - 1])
    return f"{head}, ..., {epochs[-1]}"


__all__ = [
    "build_fit_parameters",
    "build_network_config",
    "load_preset",
    "presets",
    "read_config_file",
    "run_pipeline",
    "run_retries",
]
