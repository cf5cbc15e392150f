from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Sequence, Union

import pandas as pd

from ..core.records import FIELDS, MarketRecord
from ..errors import InvalidConfiguration


logger = logging.getLogger(__name__)

COLUMNS = ["timestamp", *FIELDS]


def frame_to_records(df: pd.DataFrame) -> List[MarketRecord]:
    missing = [c for c in COLUMNS if c not in df.columns]
    if missing:
        raise InvalidConfiguration(f"record data is missing columns: {missing}")
    df = df.sort_values("timestamp", kind="stable")
    return [
        MarketRecord(
            timestamp=int(row.timestamp),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
            vwap=float(row.vwap),
        )
        for row in df[COLUMNS].itertuples(index=False)
    ]


def records_to_frame(records: Sequence[MarketRecord]) -> pd.DataFrame:
    return pd.DataFrame(
        [[r.timestamp, r.open, r.high, r.low, r.close, r.volume, r.vwap] for r in records],
        columns=COLUMNS,
    )


def read_records(path: Union[str, Path]) -> List[MarketRecord]:
    """Read a ``timestamp,open,high,low,close,volume,vwap`` CSV in time order."""
    df = pd.read_csv(path, float_precision="round_trip")
    records = frame_to_records(df)
    logger.info("parsed records", extra={"path": str(path), "records": len(records)})
    return records


def write_records(records: Sequence[MarketRecord], path: Union[str, Path]) -> None:
    # read back with float_precision="round_trip" for lossless floats
    records_to_frame(records).to_csv(path, index=False)
