from __future__ import annotations

import numpy as np
import pytest

from ncdtrader.core.diagnostics import (
    distance_variance_histogram,
    downsample_matrix,
    population_variance,
    size_result_buckets,
)
from ncdtrader.errors import InvalidConfiguration


def test_distance_variance_histogram_pinned() -> None:
    matrix = np.array(
        [
            [0.0, 0.12, 0.15, 0.42],
            [0.12, 0.0, 0.18, 0.33],
            [0.15, 0.18, 0.0, 0.05],
            [0.42, 0.33, 0.05, 0.0],
        ]
    )
    results = [0.0, 1.0, 3.0, 6.0]
    hist = distance_variance_histogram(matrix, results, 0.1)
    # bucket 1 holds |differences| 1, 3, 2 (twice each); bucket 2 is empty
    assert sorted(hist) == [0, 1, 2, 3, 4]
    assert hist[1] == pytest.approx(2.0 / 3.0)
    assert hist[0] == 0.0
    assert hist[2] == 0.0
    assert hist[3] == 0.0
    assert hist[4] == 0.0


def test_histogram_rejects_bad_bucket() -> None:
    with pytest.raises(InvalidConfiguration):
        distance_variance_histogram(np.zeros((2, 2)), [1.0, 2.0], 0.0)
    with pytest.raises(InvalidConfiguration):
        distance_variance_histogram(np.zeros((2, 2)), [1.0, 2.0], float("nan"))


def test_histogram_of_single_item_is_empty() -> None:
    assert distance_variance_histogram(np.zeros((1, 1)), [1.0], 0.1) == {}


def test_population_variance() -> None:
    assert population_variance([2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0]) == pytest.approx(4.0)
    assert population_variance([]) == 0.0


def test_size_result_buckets() -> None:
    buckets = size_result_buckets([120, 118, 120], [0.5, -0.25, 1.0])
    assert buckets == {120: [0.5, 1.0], 118: [-0.25]}


def test_downsample_matrix() -> None:
    m = np.arange(16, dtype=float).reshape(4, 4)
    np.testing.assert_allclose(downsample_matrix(m, 2), [[2.5, 4.5], [10.5, 12.5]])
    partial = downsample_matrix(m, 3)
    assert partial.shape == (2, 2)
    assert partial[1, 1] == 15.0
    with pytest.raises(InvalidConfiguration):
        downsample_matrix(m, 0)
