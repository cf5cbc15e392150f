from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ..errors import DegenerateNormalization, InsufficientData, InvalidConfiguration
from .records import FIELDS, MarketRecord, Window


logger = logging.getLogger(__name__)

_OPEN = FIELDS.index("open")
_CLOSE = FIELDS.index("close")


class NormalisationType(str, Enum):
    NONE = "none"
    Z_SCORE = "z-score"

    @classmethod
    def parse(cls, value: str) -> "NormalisationType":
        try:
            return cls(value.strip().lower().replace("_", "-"))
        except ValueError:
            raise InvalidConfiguration(f"invalid normalisation type: {value!r}") from None


@dataclass(frozen=True)
class SpliceOptions:
    period: int
    result_n: int
    skip_n: int = 0
    normalisation: NormalisationType = NormalisationType.NONE

    def __post_init__(self) -> None:
        if self.period < 1:
            raise InvalidConfiguration(f"period must be >= 1, got {self.period}")
        if self.result_n < 0:
            raise InvalidConfiguration(f"result_n must be >= 0, got {self.result_n}")
        if self.skip_n < 0:
            raise InvalidConfiguration(f"skip_n must be >= 0, got {self.skip_n}")
        if not isinstance(self.normalisation, NormalisationType):
            object.__setattr__(self, "normalisation", NormalisationType.parse(str(self.normalisation)))

    @property
    def span(self) -> int:
        """Records consumed by one splice: the window plus the label horizon."""
        return self.period + self.result_n

    @property
    def stride(self) -> int:
        return 1 + self.skip_n

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "result_n": self.result_n,
            "skip_n": self.skip_n,
            "normalisation": self.normalisation.value,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "SpliceOptions":
        return cls(
            period=int(raw["period"]),
            result_n=int(raw["result_n"]),
            skip_n=int(raw.get("skip_n", 0)),
            normalisation=NormalisationType.parse(raw.get("normalisation", "none")),
        )


@dataclass(frozen=True)
class Splice:
    window: Window
    start_time: int
    end_time: int
    result: float


def records_to_array(records: Sequence[MarketRecord]) -> np.ndarray:
    """(N, 6) float array in FIELDS column order."""
    return np.array(
        [[getattr(rec, name) for name in FIELDS] for rec in records], dtype=float
    ).reshape(len(records), len(FIELDS))


def zscore(values: np.ndarray, start_time: Optional[int] = None) -> np.ndarray:
    """Per-column z-score using the population standard deviation.

    Raises DegenerateNormalization when a column is constant.
    """
    spread = np.ptp(values, axis=0)
    std = values.std(axis=0)
    for col, name in enumerate(FIELDS):
        if spread[col] == 0 or std[col] == 0 or not np.isfinite(std[col]):
            raise DegenerateNormalization(name, start_time)
    return (values - values.mean(axis=0)) / std


def splice_count(data_length: int, options: SpliceOptions) -> int:
    usable = data_length - options.span + 1
    if usable <= 0:
        return 0
    return -(-usable // options.stride)


def splice(records: Sequence[MarketRecord], options: SpliceOptions) -> List[Splice]:
    """Cut records into labelled windows.

    Each splice covers ``period + result_n`` records starting every
    ``1 + skip_n`` records. With z-score normalisation the whole sub-range is
    normalised before the window is cut and the result computed, so the label
    is on the same scale as the window.
    """
    if len(records) < options.span:
        raise InsufficientData(
            f"need at least {options.span} records (period={options.period}, "
            f"result_n={options.result_n}), got {len(records)}"
        )

    data = records_to_array(records)
    period = options.period
    splices: List[Splice] = []
    for i in range(0, len(records) - options.span + 1, options.stride):
        sub = data[i : i + options.span]
        if options.normalisation is NormalisationType.Z_SCORE:
            sub = zscore(sub, records[i].timestamp)

        window_values = sub[:period]
        result = float(sub[options.span - 1, _OPEN] - sub[period - 1, _CLOSE])
        window = Window.from_fields(
            {name: window_values[:, col].tolist() for col, name in enumerate(FIELDS)}
        )
        splices.append(
            Splice(
                window=window,
                start_time=records[i].timestamp,
                end_time=records[i + period - 1].timestamp,
                result=result,
            )
        )

    logger.debug(
        "spliced records",
        extra={"records": len(records), "splices": len(splices), "period": period},
    )
    return splices


def observation_window(records: Sequence[MarketRecord], options: SpliceOptions) -> Window:
    """Window over the most recent ``period`` records, normalised like stored items.

    There is no label horizon for a live observation, so z-scores are taken
    over the window alone.
    """
    if len(records) < options.period:
        raise InsufficientData(f"need at least {options.period} records, got {len(records)}")
    tail = records[len(records) - options.period :]
    values = records_to_array(tail)
    if options.normalisation is NormalisationType.Z_SCORE:
        values = zscore(values, tail[0].timestamp)
    return Window.from_fields({name: values[:, col].tolist() for col, name in enumerate(FIELDS)})
