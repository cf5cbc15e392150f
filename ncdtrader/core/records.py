from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Sequence, Tuple

from ..errors import LengthMismatch


FIELDS: Tuple[str, ...] = ("open", "high", "low", "close", "volume", "vwap")


@dataclass(frozen=True)
class MarketRecord:
    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float
    vwap: float


@dataclass(frozen=True)
class Window:
    """Six parallel float sequences, one per market field.

    All six sequences always have the same length.
    """

    open: Tuple[float, ...]
    high: Tuple[float, ...]
    low: Tuple[float, ...]
    close: Tuple[float, ...]
    volume: Tuple[float, ...]
    vwap: Tuple[float, ...]

    def __post_init__(self) -> None:
        lengths = {name: len(getattr(self, name)) for name in FIELDS}
        if len(set(lengths.values())) > 1:
            raise LengthMismatch(f"window fields have unequal lengths: {lengths}")

    def __len__(self) -> int:
        return len(self.open)

    def series(self) -> Iterator[Tuple[str, Tuple[float, ...]]]:
        for name in FIELDS:
            yield name, getattr(self, name)

    @classmethod
    def from_fields(cls, fields: Dict[str, Sequence[float]]) -> "Window":
        return cls(**{name: tuple(float(v) for v in fields[name]) for name in FIELDS})

    def to_dict(self) -> Dict[str, List[float]]:
        return {name: list(values) for name, values in self.series()}


def to_window(records: Iterable[MarketRecord]) -> Window:
    """Project a run of records field-by-field into a Window."""
    columns: Dict[str, List[float]] = {name: [] for name in FIELDS}
    for rec in records:
        for name in FIELDS:
            columns[name].append(getattr(rec, name))
    return Window.from_fields(columns)
