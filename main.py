from __future__ import annotations

from pathlib import Path
from typing import NoReturn, Optional

import typer

from ncdtrader.config import AppConfig, load_config
from ncdtrader.core.model import CompressionModel, DistanceModel
from ncdtrader.core.predict import PredictionStrategy
from ncdtrader.core.splicer import observation_window
from ncdtrader.core.tracker import evaluate as evaluate_model
from ncdtrader.data.polygon import MarketType, PolygonClient
from ncdtrader.data.records_csv import read_records, write_records
from ncdtrader.data.store import load_model, save_model
from ncdtrader.errors import InvalidConfiguration, NcdError
from ncdtrader.utils.logging import setup_logging
from ncdtrader.web import charts


app = typer.Typer(add_completion=False, help="Nearest-neighbour market prediction by compression distance.")
eval_app = typer.Typer(add_completion=False, help="Diagnostics charts for a stored model.")
app.add_typer(eval_app, name="eval")

DIRECTIONS = {1: "UP", -1: "DOWN", 0: "FLAT"}


def _config_option():  # type: ignore[no-untyped-def]
    return typer.Option(None, "--config", "-c", help="YAML runtime config (defaults to ./config.yaml)")


def _setup(config_path: Optional[Path]) -> AppConfig:
    try:
        cfg = load_config(config_path)
    except NcdError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=2) from exc
    setup_logging(cfg.env.LOG_LEVEL)
    return cfg


def _open_model(cfg: AppConfig, path: Path) -> DistanceModel:
    model = load_model(path)
    model.max_workers = cfg.runtime.engine.max_workers
    return model


def _fail(exc: Exception) -> NoReturn:
    typer.echo(f"error: {exc}", err=True)
    raise typer.Exit(code=1) from exc


@app.command()
def create(
    data: Path = typer.Argument(..., exists=True, help="Record CSV to splice"),
    model_path: Path = typer.Argument(..., help="Where to write the model"),
    config: Optional[Path] = _config_option(),
) -> None:
    """Build a new model from a record CSV."""
    cfg = _setup(config)
    try:
        model = cfg.runtime.new_model()
        added = model.add_market_data(read_records(data))
        save_model(model, model_path)
    except NcdError as exc:
        _fail(exc)
    typer.echo(f"created {model_path} with {added} items")


@app.command()
def add(
    data: Path = typer.Argument(..., exists=True, help="Record CSV to splice"),
    model_path: Path = typer.Argument(..., exists=True, help="Existing model file"),
    config: Optional[Path] = _config_option(),
) -> None:
    """Append a record CSV to an existing model."""
    cfg = _setup(config)
    try:
        model = _open_model(cfg, model_path)
        added = model.add_market_data(read_records(data))
        save_model(model, model_path)
    except NcdError as exc:
        _fail(exc)
    typer.echo(f"added {added} items, model now holds {len(model)}")


@app.command()
def predict(
    model_path: Path = typer.Argument(..., exists=True),
    data: Path = typer.Argument(..., exists=True, help="Record CSV ending with the observation"),
    nearest_n: Optional[int] = typer.Option(None, "--nearest", "-n"),
    strategy: Optional[str] = typer.Option(None, help="wnn, cwnn or top"),
    config: Optional[Path] = _config_option(),
) -> None:
    """Predict the direction following the last ``period`` records of DATA."""
    cfg = _setup(config)
    try:
        model = _open_model(cfg, model_path)
        observation = observation_window(read_records(data), model.splice_options)
        direction = model.predict(
            observation,
            nearest_n if nearest_n is not None else cfg.runtime.prediction.nearest_n,
            PredictionStrategy.parse(strategy) if strategy else cfg.runtime.prediction.strategy,
        )
    except NcdError as exc:
        _fail(exc)
    typer.echo(DIRECTIONS[direction])


@app.command()
def evaluate(
    model_path: Path = typer.Argument(..., exists=True),
    data: Path = typer.Argument(..., exists=True, help="Held-out record CSV"),
    nearest_n: Optional[int] = typer.Option(None, "--nearest", "-n"),
    strategy: Optional[str] = typer.Option(None, help="wnn, cwnn or top"),
    config: Optional[Path] = _config_option(),
) -> None:
    """Walk forward over held-out records and report accuracy."""
    cfg = _setup(config)
    try:
        model = _open_model(cfg, model_path)
        tracker = evaluate_model(
            model,
            read_records(data),
            nearest_n if nearest_n is not None else cfg.runtime.prediction.nearest_n,
            PredictionStrategy.parse(strategy) if strategy else cfg.runtime.prediction.strategy,
        )
    except NcdError as exc:
        _fail(exc)
    st = tracker.stats
    typer.echo(
        f"total={st.total} correct={st.correct} acc={st.accuracy:.2%} up={st.up} down={st.down} flat={st.flat}"
    )


@app.command()
def fetch(
    ticker: str = typer.Argument(..., help="e.g. AAPL, or BTCUSD with --market crypto"),
    start: str = typer.Argument(..., help="First day, YYYY-MM-DD"),
    end: str = typer.Argument(..., help="Last day, YYYY-MM-DD"),
    out: Path = typer.Argument(..., help="Record CSV to write"),
    market: str = typer.Option("stock", help="stock or crypto"),
    timespan: str = typer.Option("hour"),
    config: Optional[Path] = _config_option(),
) -> None:
    """Download aggregate bars from Polygon into a record CSV."""
    cfg = _setup(config)
    try:
        client = PolygonClient(cfg)
        records = client.fetch_aggregates(ticker, start, end, MarketType.parse(market), timespan)
        write_records(records, out)
    except NcdError as exc:
        _fail(exc)
    typer.echo(f"wrote {len(records)} records to {out}")


# ───────────────────────────── eval ─────────────────────────────

@eval_app.command("heatmap")
def eval_heatmap(
    model_path: Path = typer.Argument(..., exists=True),
    out: Path = typer.Argument(..., help="HTML file to write"),
    downsample: Optional[int] = typer.Option(None, help="Block size for averaging"),
    config: Optional[Path] = _config_option(),
) -> None:
    """Distance map heatmap."""
    cfg = _setup(config)
    try:
        model = _open_model(cfg, model_path)
        matrix = model.distance_map()
        save_model(model, model_path)
        factor = downsample if downsample is not None else cfg.runtime.evaluation.downsample
        fig = charts.heatmap_figure(matrix, factor)
    except NcdError as exc:
        _fail(exc)
    charts.write_figure(fig, out)
    typer.echo(f"wrote {out}")


@eval_app.command("histogram")
def eval_histogram(
    model_path: Path = typer.Argument(..., exists=True),
    out: Path = typer.Argument(..., help="HTML file to write"),
    config: Optional[Path] = _config_option(),
) -> None:
    """Compressed size histogram."""
    cfg = _setup(config)
    try:
        model = _open_model(cfg, model_path)
        if not isinstance(model, CompressionModel):
            raise InvalidConfiguration("size histogram needs a compression model")
        fig = charts.size_histogram_figure(model.size_result_buckets())
    except NcdError as exc:
        _fail(exc)
    charts.write_figure(fig, out)
    typer.echo(f"wrote {out}")


@eval_app.command("dstvar")
def eval_dstvar(
    model_path: Path = typer.Argument(..., exists=True),
    out: Path = typer.Argument(..., help="HTML file to write"),
    bucket_size: Optional[float] = typer.Option(None, help="Distance bucket width"),
    config: Optional[Path] = _config_option(),
) -> None:
    """Result variance per distance bucket."""
    cfg = _setup(config)
    size = bucket_size if bucket_size is not None else cfg.runtime.evaluation.bucket_size
    try:
        model = _open_model(cfg, model_path)
        histogram = model.distance_variance_histogram(size)
        save_model(model, model_path)
        fig = charts.distance_variance_figure(histogram, size)
    except NcdError as exc:
        _fail(exc)
    charts.write_figure(fig, out)
    typer.echo(f"wrote {out}")


if __name__ == "__main__":
    app()
