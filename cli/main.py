"""Command line entry point for densefit training runs."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Iterable

from densefit.data import approximation
from densefit.reporting.artifacts import config_hash
from densefit.training import pipelines


def _format_result(result, run_id: str | None = None) -> str:
    payload = {
        "epochs": result.epochs,
        "metrics": result.metrics_path,
        "manifest": result.manifest_path,
        "network": result.network_path,
        "best_test_loss": result.best_test_loss,
        "stopped_early": result.stopped_early,
    }
    if getattr(result, "summary_path", ""):
        payload["summary"] = result.summary_path
    if run_id is not None:
        payload["run_id"] = run_id
    return json.dumps(payload, sort_keys=True)


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    preset_names = sorted(pipelines.presets().keys())
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--preset",
        choices=preset_names,
        default="linear-smoke",
        help="Preset configuration to execute",
    )
    parser.add_argument("--config", type=Path, help="Optional JSON/YAML config override")
    parser.add_argument(
        "--function",
        choices=sorted(approximation.FUNCTIONS),
        help="Approximate a built-in function instead of the preset dataset",
    )
    parser.add_argument("--epochs", type=int, help="Override the number of epochs")
    parser.add_argument("--seed", type=int, help="Seed used for initialisation and shuffling")
    parser.add_argument("--retries", type=int, help="Number of independent trainings")
    parser.add_argument("--workers", type=int, help="Threads used to run retries")
    parser.add_argument(
        "--enable-plots", action="store_true", help="Enable plotting adapters"
    )
    parser.add_argument(
        "--list-presets", action="store_true", help="List available presets and exit"
    )
    parser.add_argument(
        "--dump-config", type=Path, help="Dump the resolved config to a JSON file"
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    return parser.parse_args(argv)


def _merge(base: dict, override: dict) -> dict:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            base[key] = _merge(dict(base[key]), value)
        else:
            base[key] = value
    return base


def main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.list_presets:
        for name in sorted(pipelines.presets().keys()):
            print(name)
        raise SystemExit(0)

    config_source = "preset"
    config = json.loads(json.dumps(pipelines.load_preset(args.preset)))

    if args.config:
        override = dict(pipelines.read_config_file(args.config))
        if {"data", "model", "train"} <= set(override.keys()):
            config = json.loads(json.dumps(override))
        else:
            config = _merge(config, override)
        config_source = "config"

    if args.function:
        options = config.setdefault("data", {}).get("options", {})
        keep = {k: v for k, v in options.items() if k in {"size", "extending_factor"}}
        config["data"] = {"name": "approximation", "options": {"function": args.function, **keep}}
        model = config.setdefault("model", {})
        model.pop("d_in", None)
        model.pop("d_out", None)

    train = config.setdefault("train", {})
    if args.enable_plots:
        train["enable_plots"] = True
    if args.epochs is not None:
        train["epochs"] = int(args.epochs)
        train["queries"] = min(int(train.get("queries", 10)), int(args.epochs))
    if args.seed is not None:
        train["seed"] = int(args.seed)
    if args.retries is not None:
        train["retries"] = int(args.retries)
    if args.workers is not None:
        train["workers"] = int(args.workers)

    run_id: str | None = None
    if config_source == "config":
        train.pop("run_dir", None)
        run_id = config_hash(config)
        train["run_dir"] = str(Path(".artifacts") / run_id)

    if args.dump_config:
        args.dump_config.parent.mkdir(parents=True, exist_ok=True)
        args.dump_config.write_text(json.dumps(config, indent=2))

    result = pipelines.run_pipeline(config)
    print(_format_result(result, run_id=run_id))


if __name__ == "__main__":
    main()
