from __future__ import annotations

from enum import Enum
from typing import Callable, Dict, List, Sequence

from ..errors import InvalidConfiguration, LengthMismatch
from .records import Window


class CombineStrategy(str, Enum):
    INTERLEAVE = "interleave"
    CONCAT = "concat"

    @classmethod
    def parse(cls, value: str) -> "CombineStrategy":
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise InvalidConfiguration(f"invalid combine strategy: {value!r}") from None


def interleave_series(a: Sequence[float], b: Sequence[float]) -> List[float]:
    if len(a) != len(b):
        raise LengthMismatch(f"cannot interleave sequences of length {len(a)} and {len(b)}")
    out: List[float] = []
    for x, y in zip(a, b):
        out.append(x)
        out.append(y)
    return out


def concat_series(a: Sequence[float], b: Sequence[float]) -> List[float]:
    return [*a, *b]


_SERIES_COMBINERS: Dict[CombineStrategy, Callable[[Sequence[float], Sequence[float]], List[float]]] = {
    CombineStrategy.INTERLEAVE: interleave_series,
    CombineStrategy.CONCAT: concat_series,
}


def combine(a: Window, b: Window, strategy: CombineStrategy) -> Window:
    """Joint window of ``a`` and ``b``, field by field."""
    combiner = _SERIES_COMBINERS[strategy]
    b_fields = dict(b.series())
    return Window.from_fields({name: combiner(values, b_fields[name]) for name, values in a.series()})
