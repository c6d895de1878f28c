import json
from pathlib import Path

import pytest
import yaml

from cli.main import main


def test_cli_basic_preset(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    main(["--preset", "linear-smoke", "--epochs", "5"])
    run_dir = Path("runs/linear-smoke")
    assert (run_dir / "metrics.jsonl").exists()
    assert (run_dir / "manifest.json").exists()
    assert (run_dir / "best_network.npz").exists()

    output = capsys.readouterr().out
    assert "=== densefit run ===" in output
    payload = json.loads(output.strip().splitlines()[-1])
    assert payload["epochs"] == 5
    assert "run_id" not in payload


def test_cli_lists_presets(capsys):
    with pytest.raises(SystemExit) as exc:
        main(["--list-presets"])
    assert exc.value.code == 0
    names = capsys.readouterr().out.split()
    assert "linear-smoke" in names
    assert "sin-2x" in names


def test_cli_config_file_runs_in_artifact_dir(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    config_path = tmp_path / "override.yaml"
    config_path.write_text(yaml.safe_dump({"train": {"epochs": 4, "queries": 2, "seed": 3}}))
    main(["--config", str(config_path), "--dump-config", "resolved.json"])

    payload = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    run_dir = Path(".artifacts") / payload["run_id"]
    assert (run_dir / "summary.json").exists()
    resolved = json.loads(Path("resolved.json").read_text())
    assert resolved["train"]["run_dir"] == str(run_dir)
    assert resolved["train"]["epochs"] == 4
    assert resolved["data"]["name"] == "linear"


def test_cli_function_override(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    main(["--preset", "linear-smoke", "--function", "sin_x", "--epochs", "3"])
    manifest = json.loads(Path("runs/linear-smoke/manifest.json").read_text())
    assert manifest["dataset"]["function"] == "sin_x"
