from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

import main
from ncdtrader.data.records_csv import write_records
from ncdtrader.data.store import load_model


CONFIG = """
model:
  encoding: plain
  splice:
    period: 10
    result_n: 5
    skip_n: 0
    normalisation: none
prediction:
  nearest_n: 3
engine:
  max_workers: 2
evaluation:
  downsample: 2
  bucket_size: 0.05
"""

runner = CliRunner()


@pytest.fixture
def workspace(tmp_path, monkeypatch, records) -> Path:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(main, "setup_logging", lambda level: None)
    (tmp_path / "config.yaml").write_text(CONFIG, encoding="utf-8")
    write_records(records, tmp_path / "bars.csv")
    return tmp_path


def test_create_add_predict_evaluate(workspace: Path) -> None:
    result = runner.invoke(main.app, ["create", "bars.csv", "model.json.gz"])
    assert result.exit_code == 0, result.output
    assert "26 items" in result.output

    result = runner.invoke(main.app, ["add", "bars.csv", "model.json.gz"])
    assert result.exit_code == 0, result.output
    assert "model now holds 52" in result.output

    result = runner.invoke(main.app, ["predict", "model.json.gz", "bars.csv", "--strategy", "top"])
    assert result.exit_code == 0, result.output
    assert result.output.strip().splitlines()[-1] in {"UP", "DOWN", "FLAT"}

    result = runner.invoke(main.app, ["evaluate", "model.json.gz", "bars.csv", "-n", "1"])
    assert result.exit_code == 0, result.output
    assert "total=26" in result.output


def test_eval_charts_persist_matrix(workspace: Path) -> None:
    assert runner.invoke(main.app, ["create", "bars.csv", "model.json.gz"]).exit_code == 0

    result = runner.invoke(main.app, ["eval", "heatmap", "model.json.gz", "heat.html"])
    assert result.exit_code == 0, result.output
    assert (workspace / "heat.html").exists()
    matrix, key = load_model(workspace / "model.json.gz").cached_distance_map()
    assert matrix is not None and matrix.shape == (26, 26)
    assert key is not None

    result = runner.invoke(main.app, ["eval", "histogram", "model.json.gz", "sizes.html"])
    assert result.exit_code == 0, result.output
    assert (workspace / "sizes.html").exists()

    result = runner.invoke(main.app, ["eval", "dstvar", "model.json.gz", "dstvar.html", "--bucket-size", "0.1"])
    assert result.exit_code == 0, result.output
    assert (workspace / "dstvar.html").exists()


def test_bad_strategy_fails(workspace: Path) -> None:
    assert runner.invoke(main.app, ["create", "bars.csv", "model.json.gz"]).exit_code == 0
    result = runner.invoke(main.app, ["predict", "model.json.gz", "bars.csv", "--strategy", "svm"])
    assert result.exit_code == 1


def test_bad_config_fails(workspace: Path) -> None:
    (workspace / "config.yaml").write_text("model:\n  encoding: base64\n", encoding="utf-8")
    result = runner.invoke(main.app, ["create", "bars.csv", "model.json.gz"])
    assert result.exit_code == 2
    assert not (workspace / "model.json.gz").exists()


def test_fetch_writes_csv(workspace: Path, monkeypatch, records) -> None:
    seen = {}

    class FakeClient:
        def __init__(self, config) -> None:  # noqa: ANN001
            seen["config"] = config

        def fetch_aggregates(self, ticker, start, end, market, timespan):  # noqa: ANN001
            seen["args"] = (ticker, start, end, market.value, timespan)
            return records[:5]

    monkeypatch.setattr(main, "PolygonClient", FakeClient)
    result = runner.invoke(main.app, ["fetch", "BTCUSD", "2024-01-01", "2024-01-31", "out.csv", "--market", "crypto"])
    assert result.exit_code == 0, result.output
    assert seen["args"] == ("BTCUSD", "2024-01-01", "2024-01-31", "crypto", "hour")
    assert len((workspace / "out.csv").read_text().splitlines()) == 6


def test_unparseable_config_fails_cleanly(workspace: Path) -> None:
    (workspace / "broken.yaml").write_text("model: [unclosed\n", encoding="utf-8")
    result = runner.invoke(main.app, ["create", "bars.csv", "model.json.gz", "--config", "broken.yaml"])
    assert result.exit_code == 2
    assert isinstance(result.exception, SystemExit)


def test_explicit_zero_options_are_validated(workspace: Path) -> None:
    assert runner.invoke(main.app, ["create", "bars.csv", "model.json.gz"]).exit_code == 0
    assert runner.invoke(main.app, ["predict", "model.json.gz", "bars.csv", "--nearest", "0"]).exit_code == 1
    assert runner.invoke(main.app, ["evaluate", "model.json.gz", "bars.csv", "-n", "0"]).exit_code == 1
    result = runner.invoke(main.app, ["eval", "dstvar", "model.json.gz", "d.html", "--bucket-size", "0"])
    assert result.exit_code == 1
    result = runner.invoke(main.app, ["eval", "heatmap", "model.json.gz", "h.html", "--downsample", "0"])
    assert result.exit_code == 1


def test_corrupt_model_file_fails_cleanly(workspace: Path) -> None:
    (workspace / "model.json.gz").write_bytes(b"not a gzip file")
    result = runner.invoke(main.app, ["predict", "model.json.gz", "bars.csv"])
    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
