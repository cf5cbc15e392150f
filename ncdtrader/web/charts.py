from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Union

import numpy as np
import plotly.graph_objs as go

from ..core.diagnostics import downsample_matrix


logger = logging.getLogger(__name__)

# ───────────────────────────── styling ──────────────────────────────
COLORS = {
    "bg_dark": "#0a0a0f",
    "bg_medium": "#1a1a2e",
    "bg_light": "#16213e",
    "neon_pink": "#ff006e",
    "neon_cyan": "#00d4ff",
    "neon_green": "#00ff88",
    "text_primary": "#ffffff",
}


def _axis(title: str) -> dict:
    return dict(
        gridcolor=COLORS["bg_light"],
        title=dict(text=title, font=dict(color=COLORS["text_primary"])),
        tickfont=dict(color=COLORS["text_primary"]),
    )


def _style(fig: go.Figure, title: str, x_title: str, y_title: str) -> go.Figure:
    fig.update_layout(
        title=dict(text=title, font=dict(color=COLORS["text_primary"])),
        plot_bgcolor=COLORS["bg_medium"],
        paper_bgcolor=COLORS["bg_medium"],
        font=dict(color=COLORS["text_primary"]),
        xaxis=_axis(x_title),
        yaxis=_axis(y_title),
        margin=dict(l=50, r=50, t=50, b=50),
    )
    return fig


def _empty(fig: go.Figure) -> None:
    fig.add_annotation(
        text="No data available",
        xref="paper", yref="paper",
        x=0.5, y=0.5, showarrow=False,
    )


# ───────────────────────────── figures ──────────────────────────────

def heatmap_figure(matrix: np.ndarray, downsample: int = 1) -> go.Figure:
    """Pairwise distance heatmap, block-averaged by ``downsample``."""
    fig = go.Figure()
    if matrix.size == 0:
        _empty(fig)
    else:
        z = downsample_matrix(matrix, downsample) if downsample != 1 else matrix
        fig.add_trace(go.Heatmap(z=z.tolist(), colorscale="Viridis", colorbar=dict(title="distance")))
    block = f" ({downsample}x{downsample} blocks)" if downsample > 1 else ""
    return _style(fig, "Distance map" + block, "item", "item")


def size_histogram_figure(buckets: Dict[int, List[float]]) -> go.Figure:
    """Item count per compressed size, coloured by the mean label in that size."""
    fig = go.Figure()
    if not buckets:
        _empty(fig)
    else:
        sizes = sorted(buckets)
        counts = [len(buckets[s]) for s in sizes]
        means = [float(np.mean(buckets[s])) for s in sizes]
        fig.add_trace(go.Bar(
            x=sizes,
            y=counts,
            name="items",
            marker=dict(color=means, colorscale="RdYlGn", colorbar=dict(title="mean result")),
            hovertext=[f"mean result {m:.4f}" for m in means],
        ))
    return _style(fig, "Compressed size histogram", "compressed size (bytes)", "items")


def distance_variance_figure(histogram: Dict[int, float], bucket_size: float) -> go.Figure:
    """Label-difference variance per distance bucket."""
    fig = go.Figure()
    if not histogram:
        _empty(fig)
    else:
        keys = sorted(histogram)
        fig.add_trace(go.Bar(
            x=[k * bucket_size for k in keys],
            y=[histogram[k] for k in keys],
            name="variance",
            marker=dict(color=COLORS["neon_cyan"]),
        ))
    return _style(fig, "Result variance by distance", "distance", "variance of |result difference|")


def write_figure(fig: go.Figure, path: Union[str, Path]) -> None:
    fig.write_html(str(path), include_plotlyjs="cdn")
    logger.info("wrote chart", extra={"path": str(path)})
