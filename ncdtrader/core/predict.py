from __future__ import annotations

import bisect
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Generic, Iterable, List, Optional, Sequence, Tuple, TypeVar

from ..errors import InvalidConfiguration


T = TypeVar("T")


@dataclass(frozen=True)
class Neighbour(Generic[T]):
    distance: float
    item: T


Slots = List[Optional[Neighbour]]


class PredictionStrategy(str, Enum):
    WNN = "wnn"
    CWNN = "cwnn"
    TOP = "top"

    @classmethod
    def parse(cls, value: str) -> "PredictionStrategy":
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise InvalidConfiguration(f"invalid prediction strategy: {value!r}") from None


def nearest(candidates: Iterable[Tuple[float, T]], nearest_n: int) -> Slots:
    """Keep the ``nearest_n`` smallest-distance candidates in ascending order.

    Returns exactly ``nearest_n`` slots; slots that were never filled are
    ``None``. A candidate tied with an existing slot goes after it, so the
    earlier candidate wins ties.
    """
    if nearest_n < 1:
        raise InvalidConfiguration(f"nearest_n must be >= 1, got {nearest_n}")
    distances: List[float] = []
    filled: List[Neighbour] = []
    for distance, item in candidates:
        idx = bisect.bisect_right(distances, distance)
        if idx >= nearest_n:
            continue
        distances.insert(idx, distance)
        filled.insert(idx, Neighbour(distance=distance, item=item))
        if len(filled) > nearest_n:
            distances.pop()
            filled.pop()
    return [*filled, *([None] * (nearest_n - len(filled)))]


def _weight(distance: float) -> float:
    return math.inf if distance == 0 else 1.0 / distance


def _sign(value: float) -> int:
    if value > 0:
        return 1
    if value < 0:
        return -1
    return 0


def weighted_vote(neighbours: Sequence[Optional[Neighbour]]) -> int:
    """Distance-weighted buy/sell/neither vote; empty slots do not vote.

    Returns 1 or -1 only when that side is strictly the largest, else 0.
    """
    buy = sell = neither = 0.0
    for n in neighbours:
        if n is None:
            continue
        w = _weight(n.distance)
        if n.item.result > 0:
            buy += w
        elif n.item.result < 0:
            sell += w
        else:
            neither += w
    if buy > sell and buy > neither:
        return 1
    if sell > buy and sell > neither:
        return -1
    return 0


def continuous_vote(neighbours: Sequence[Optional[Neighbour]]) -> int:
    """Sign of the 1/distance weighted mean result."""
    filled = [n for n in neighbours if n is not None]
    if not filled:
        return 0
    exact = [n for n in filled if n.distance == 0]
    if exact:
        return _sign(sum(n.item.result for n in exact))
    num = sum(n.item.result / n.distance for n in filled)
    den = sum(1.0 / n.distance for n in filled)
    return _sign(num / den) if den else 0


def top_vote(neighbours: Sequence[Optional[Neighbour]]) -> int:
    """Sign of the closest neighbour's result."""
    for n in neighbours:
        if n is not None:
            return _sign(n.item.result)
    return 0


@dataclass(frozen=True)
class StrategySpec:
    key: PredictionStrategy
    vote: Callable[[Sequence[Optional[Neighbour]]], int]
    label: str


STRATEGIES: Dict[PredictionStrategy, StrategySpec] = {
    PredictionStrategy.WNN: StrategySpec(PredictionStrategy.WNN, weighted_vote, "Weighted nearest neighbours"),
    PredictionStrategy.CWNN: StrategySpec(PredictionStrategy.CWNN, continuous_vote, "Continuous weighted mean"),
    PredictionStrategy.TOP: StrategySpec(PredictionStrategy.TOP, top_vote, "Nearest neighbour"),
}


def vote(neighbours: Sequence[Optional[Neighbour]], strategy: PredictionStrategy = PredictionStrategy.WNN) -> int:
    return STRATEGIES[strategy].vote(neighbours)
