from __future__ import annotations

from dataclasses import replace

import numpy as np
import pytest

from ncdtrader.core.records import to_window
from ncdtrader.core.splicer import (
    NormalisationType,
    SpliceOptions,
    observation_window,
    splice,
    splice_count,
    zscore,
)
from ncdtrader.errors import DegenerateNormalization, InsufficientData, InvalidConfiguration


@pytest.mark.parametrize(
    "length, period, result_n, skip_n, expected",
    [
        (40, 10, 5, 0, 26),
        (40, 10, 5, 1, 13),
        (40, 10, 5, 2, 9),
        (15, 10, 5, 0, 1),
        (15, 10, 5, 7, 1),
        (14, 10, 5, 0, 0),
        (30, 10, 0, 4, 5),
    ],
)
def test_splice_count(length: int, period: int, result_n: int, skip_n: int, expected: int) -> None:
    options = SpliceOptions(period=period, result_n=result_n, skip_n=skip_n)
    assert splice_count(length, options) == expected


@pytest.mark.parametrize("skip_n", [0, 1, 2, 5])
def test_splice_produces_counted_windows(records, skip_n: int) -> None:
    options = SpliceOptions(period=10, result_n=5, skip_n=skip_n)
    splices = splice(records, options)
    assert len(splices) == splice_count(len(records), options)
    stride = 1 + skip_n
    assert [s.start_time for s in splices] == [records[i].timestamp for i in range(0, 26, stride)]


def test_first_window_and_label(records) -> None:
    options = SpliceOptions(period=10, result_n=5)
    first = splice(records, options)[0]
    assert first.window == to_window(records[:10])
    assert len(first.window) == 10
    assert first.start_time == records[0].timestamp
    assert first.end_time == records[9].timestamp
    assert first.result == records[14].open - records[9].close


def test_last_window_ends_inside_data(records) -> None:
    splices = splice(records, SpliceOptions(period=10, result_n=5))
    last = splices[-1]
    assert last.start_time == records[25].timestamp
    assert last.result == records[39].open - records[34].close


def test_splice_requires_period_plus_horizon(make_records) -> None:
    with pytest.raises(InsufficientData):
        splice(make_records(14), SpliceOptions(period=10, result_n=5))
    assert len(splice(make_records(15), SpliceOptions(period=10, result_n=5))) == 1


def test_zscore_uses_population_std() -> None:
    values = np.tile(np.array([[1.0], [2.0], [3.0], [4.0]]), (1, 6))
    z = zscore(values)
    np.testing.assert_allclose(z.mean(axis=0), 0.0, atol=1e-12)
    np.testing.assert_allclose(z.std(axis=0), 1.0)
    np.testing.assert_allclose(z[:, 0], [-1.3416407864998738, -0.4472135954999579, 0.4472135954999579, 1.3416407864998738])


def test_zscore_splice_labels_use_normalised_range(records) -> None:
    options = SpliceOptions(period=10, result_n=5, normalisation=NormalisationType.Z_SCORE)
    first = splice(records, options)[0]
    raw = np.array([[r.open, r.close] for r in records[:15]])
    z = (raw - raw.mean(axis=0)) / raw.std(axis=0)
    assert first.result == pytest.approx(z[14, 0] - z[9, 1])
    assert first.window.open[0] == pytest.approx(z[0, 0])


def test_constant_field_is_degenerate(records) -> None:
    flat = [replace(r, volume=100.0) for r in records]
    options = SpliceOptions(period=10, result_n=5, normalisation=NormalisationType.Z_SCORE)
    with pytest.raises(DegenerateNormalization) as info:
        splice(flat, options)
    assert info.value.field == "volume"
    assert info.value.start_time == flat[0].timestamp
    # without normalisation the same data splices fine
    assert len(splice(flat, SpliceOptions(period=10, result_n=5))) == 26


def test_observation_window_takes_latest_period(records) -> None:
    options = SpliceOptions(period=10, result_n=5)
    assert observation_window(records, options) == to_window(records[-10:])
    with pytest.raises(InsufficientData):
        observation_window(records[:9], options)


def test_options_validation() -> None:
    with pytest.raises(InvalidConfiguration):
        SpliceOptions(period=0, result_n=5)
    with pytest.raises(InvalidConfiguration):
        SpliceOptions(period=10, result_n=-1)
    with pytest.raises(InvalidConfiguration):
        NormalisationType.parse("minmax")
    assert NormalisationType.parse("Z_SCORE") is NormalisationType.Z_SCORE
    opts = SpliceOptions(period=10, result_n=5, skip_n=2, normalisation=NormalisationType.Z_SCORE)
    assert SpliceOptions.from_dict(opts.to_dict()) == opts
