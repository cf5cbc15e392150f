"""Distances between windows and the parallel pairwise matrix build."""

from __future__ import annotations

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, ContextManager, List, Optional, Sequence, TypeVar

import numpy as np

from ..errors import LengthMismatch
from .combine import CombineStrategy, combine
from .compression import SizeOracle
from .records import Window


logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

# Rows are split into this many chunks per worker so slow rows even out.
CHUNKS_PER_WORKER = 4


def ncd(cx: float, cy: float, cxy: float) -> float:
    """Normalized compression distance from three compressed sizes."""
    return (cxy - min(cx, cy)) / max(cx, cy)


def compression_distance(
    oracle: SizeOracle,
    x: Window,
    cx: int,
    y: Window,
    cy: int,
    strategy: CombineStrategy,
) -> float:
    """NCD of ``x`` and ``y`` given their standalone compressed sizes."""
    cxy = oracle.compressed_size(combine(x, y, strategy))
    return ncd(cx, cy, cxy)


def cosine_distance(x: Window, y: Window) -> float:
    """Mean over the six fields of ``1 - cos(x_field, y_field)``.

    A field with a zero vector on either side contributes 1.0.
    """
    if len(x) != len(y):
        raise LengthMismatch(f"cannot compare windows of length {len(x)} and {len(y)}")
    total = 0.0
    y_fields = dict(y.series())
    for name, values in x.series():
        a = np.asarray(values, dtype=float)
        b = np.asarray(y_fields[name], dtype=float)
        norm = float(np.linalg.norm(a) * np.linalg.norm(b))
        total += 1.0 if norm == 0 else 1.0 - float(np.dot(a, b)) / norm
    return total / 6


def resolve_workers(max_workers: Optional[int], rows: int) -> int:
    workers = max_workers or os.cpu_count() or 1
    return max(1, min(workers, rows))


def interleaved_chunks(rows: int, chunks: int) -> List[List[int]]:
    """Split ``range(rows)`` into ``chunks`` strided groups.

    Row ``i`` costs ``rows - i`` distance evaluations, so striding keeps the
    groups roughly equal in work.
    """
    chunks = max(1, min(chunks, rows))
    return [list(range(k, rows, chunks)) for k in range(chunks)]


def pairwise_matrix(
    items: Sequence[T],
    distance: Callable[[R, T, T], float],
    resource: Callable[[], ContextManager[R]],
    max_workers: Optional[int] = None,
) -> np.ndarray:
    """Symmetric (N, N) matrix of ``distance(res, items[i], items[j])``.

    Only ``j >= i`` is evaluated and mirrored; the diagonal is computed too.
    Rows are spread over a bounded thread pool, each chunk entering its own
    ``resource()`` context. Every chunk is joined before returning and the
    first worker error is re-raised here after queued chunks are cancelled.
    """
    n = len(items)
    matrix = np.zeros((n, n), dtype=float)
    if n == 0:
        return matrix

    workers = resolve_workers(max_workers, n)
    chunks = interleaved_chunks(n, workers * CHUNKS_PER_WORKER)

    def run_chunk(rows: List[int]) -> int:
        with resource() as res:
            for i in rows:
                a = items[i]
                for j in range(i, n):
                    d = distance(res, a, items[j])
                    matrix[i, j] = d
                    matrix[j, i] = d
        return len(rows)

    started = time.time()
    logger.info("building distance matrix", extra={"items": n, "workers": workers, "chunks": len(chunks)})
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ncd-rows") as pool:
        futures = [pool.submit(run_chunk, rows) for rows in chunks]
        try:
            for fut in as_completed(futures):
                fut.result()
        except BaseException:
            for fut in futures:
                fut.cancel()
            raise
    logger.info(
        "distance matrix complete",
        extra={"items": n, "elapsed_sec": round(time.time() - started, 3)},
    )
    return matrix
