from __future__ import annotations

from typing import Callable, List

import numpy as np
import pytest

from ncdtrader.core.records import MarketRecord


HOUR_MS = 3_600_000
T0 = 1_700_000_000_000


def synthetic_records(n: int, seed: int = 7) -> List[MarketRecord]:
    """Hourly bars with independent uniform fields; no two windows look alike."""
    rng = np.random.default_rng(seed)
    values = rng.uniform(10.0, 1000.0, size=(n, 6))
    return [
        MarketRecord(
            timestamp=T0 + i * HOUR_MS,
            open=float(row[0]),
            high=float(row[1]),
            low=float(row[2]),
            close=float(row[3]),
            volume=float(row[4]),
            vwap=float(row[5]),
        )
        for i, row in enumerate(values)
    ]


@pytest.fixture
def make_records() -> Callable[..., List[MarketRecord]]:
    return synthetic_records


@pytest.fixture
def records() -> List[MarketRecord]:
    return synthetic_records(40)
