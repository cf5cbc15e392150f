from __future__ import annotations

import math
from collections import defaultdict
from typing import Dict, List, Sequence

import numpy as np

from ..errors import InvalidConfiguration


def size_result_buckets(sizes: Sequence[int], results: Sequence[float]) -> Dict[int, List[float]]:
    """Group labels by compressed size."""
    buckets: Dict[int, List[float]] = defaultdict(list)
    for size, result in zip(sizes, results):
        buckets[int(size)].append(float(result))
    return dict(buckets)


def population_variance(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    return sum((v - mean) ** 2 for v in values) / len(values)


def distance_variance_histogram(
    matrix: np.ndarray, results: Sequence[float], bucket_size: float
) -> Dict[int, float]:
    """Variance of label differences per distance bucket.

    Every off-diagonal cell ``(i, j)`` lands in bucket
    ``floor(matrix[i, j] / bucket_size)`` carrying ``|results[i] - results[j]|``.
    The output holds every integer bucket from the smallest to the largest
    observed one; buckets without cells report 0.0.
    """
    if bucket_size <= 0 or not math.isfinite(bucket_size):
        raise InvalidConfiguration(f"bucket_size must be a positive number, got {bucket_size}")
    n = len(results)
    buckets: Dict[int, List[float]] = defaultdict(list)
    for i in range(n):
        for j in range(n):
            if i == j:
                continue
            bucket = math.floor(float(matrix[i, j]) / bucket_size)
            buckets[bucket].append(abs(results[i] - results[j]))
    if not buckets:
        return {}
    lo, hi = min(buckets), max(buckets)
    return {b: population_variance(buckets.get(b, [])) for b in range(lo, hi + 1)}


def downsample_matrix(matrix: np.ndarray, factor: int) -> np.ndarray:
    """Block-mean downsampling of a square matrix for plotting.

    The trailing partial block, if any, is averaged over what it holds.
    """
    if factor < 1:
        raise InvalidConfiguration(f"downsample factor must be >= 1, got {factor}")
    n = matrix.shape[0]
    size = -(-n // factor)
    out = np.zeros((size, size), dtype=float)
    for bi in range(size):
        for bj in range(size):
            block = matrix[bi * factor : (bi + 1) * factor, bj * factor : (bj + 1) * factor]
            out[bi, bj] = float(block.mean())
    return out
