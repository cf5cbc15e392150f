from __future__ import annotations

import pytest

from ncdtrader.config import AppConfig, RuntimeConfig, load_config
from ncdtrader.core.combine import CombineStrategy
from ncdtrader.core.encoding import EncodingType
from ncdtrader.core.model import CompressionModel, CosineModel, ModelType
from ncdtrader.core.predict import PredictionStrategy
from ncdtrader.core.splicer import NormalisationType, SpliceOptions
from ncdtrader.errors import InvalidConfiguration


def test_defaults(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    cfg = load_config()
    rt = cfg.runtime
    assert rt.model.model_type is ModelType.COMPRESSION
    assert rt.model.encoding is EncodingType.ROMAN
    assert rt.model.combine is CombineStrategy.INTERLEAVE
    assert rt.model.splice.to_options() == SpliceOptions(
        period=168, result_n=24, skip_n=3, normalisation=NormalisationType.Z_SCORE
    )
    assert rt.prediction.strategy is PredictionStrategy.WNN
    assert rt.prediction.nearest_n == 9
    assert rt.engine.compression_level == 9


def test_yaml_overrides(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "custom.yaml"
    path.write_text(
        "model:\n"
        "  encoding: run_length_char\n"
        "  combine: concat\n"
        "  splice:\n"
        "    period: 10\n"
        "    result_n: 5\n"
        "    skip_n: 0\n"
        "    normalisation: none\n"
        "prediction:\n"
        "  strategy: TOP\n"
        "  nearest_n: 3\n"
        "engine:\n"
        "  max_workers: 2\n",
        encoding="utf-8",
    )
    cfg = AppConfig.load(path)
    rt = cfg.runtime
    assert rt.model.encoding is EncodingType.RUN_LENGTH_CHAR
    assert rt.model.combine is CombineStrategy.CONCAT
    assert rt.prediction.strategy is PredictionStrategy.TOP
    model = rt.new_model()
    assert isinstance(model, CompressionModel)
    assert model.encoding is EncodingType.RUN_LENGTH_CHAR
    assert model.max_workers == 2
    assert model.splice_options.period == 10


def test_config_yaml_in_cwd_is_picked_up(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / "config.yaml").write_text("model:\n  model_type: cosine\n", encoding="utf-8")
    cfg = load_config()
    assert isinstance(cfg.runtime.new_model(), CosineModel)


@pytest.mark.parametrize(
    "body",
    [
        "model:\n  encoding: base64\n",
        "prediction:\n  nearest_n: 0\n",
        "model:\n  splice:\n    period: -3\n",
    ],
)
def test_invalid_yaml_values(tmp_path, monkeypatch, body: str) -> None:
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "bad.yaml"
    path.write_text(body, encoding="utf-8")
    with pytest.raises(InvalidConfiguration):
        load_config(path)


def test_missing_explicit_file(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    with pytest.raises(InvalidConfiguration):
        load_config(tmp_path / "nope.yaml")


def test_env_settings(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("POLYGON_API_KEY", "secret")
    cfg = load_config()
    assert cfg.env.LOG_LEVEL == "DEBUG"
    assert cfg.env.POLYGON_API_KEY == "secret"
    assert cfg.env.POLYGON_BASE_URL == "https://api.polygon.io"


def test_runtime_accepts_enum_instances() -> None:
    rt = RuntimeConfig(model={"encoding": EncodingType.PLAIN})
    assert rt.model.encoding is EncodingType.PLAIN


@pytest.mark.parametrize("body", ["model: [unclosed\n", "- a\n- b\n", "just a string\n"])
def test_malformed_yaml_is_invalid_configuration(tmp_path, monkeypatch, body: str) -> None:
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "broken.yaml"
    path.write_text(body, encoding="utf-8")
    with pytest.raises(InvalidConfiguration):
        AppConfig.load(path)
