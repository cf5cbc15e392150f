from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import List, Sequence

from .model import DistanceModel
from .predict import PredictionStrategy
from .records import MarketRecord
from .splicer import splice


logger = logging.getLogger(__name__)


@dataclass
class EvaluationStats:
    total: int = 0
    correct: int = 0
    up: int = 0
    down: int = 0
    flat: int = 0

    @property
    def accuracy(self) -> float:
        return (self.correct / self.total) if self.total else 0.0


@dataclass
class Outcome:
    start_time: int
    predicted: int
    actual: float

    @property
    def correct(self) -> bool:
        if self.actual > 0:
            return self.predicted == 1
        if self.actual < 0:
            return self.predicted == -1
        return self.predicted == 0


@dataclass
class PredictionTracker:
    """Record predicted directions against realised labels."""

    outcomes: List[Outcome] = field(default_factory=list)
    stats: EvaluationStats = field(default_factory=EvaluationStats)
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def record(self, outcome: Outcome) -> None:
        with self._lock:
            self.outcomes.append(outcome)
            s = self.stats
            s.total += 1
            if outcome.predicted == 1:
                s.up += 1
            elif outcome.predicted == -1:
                s.down += 1
            else:
                s.flat += 1
            if outcome.correct:
                s.correct += 1

    def recent(self, limit: int = 100) -> List[Outcome]:
        with self._lock:
            return list(self.outcomes[-limit:])


def evaluate(
    model: DistanceModel,
    records: Sequence[MarketRecord],
    nearest_n: int,
    strategy: PredictionStrategy = PredictionStrategy.WNN,
) -> PredictionTracker:
    """Walk forward over held-out records, predicting each window.

    The held-out records are spliced with the model's own options so every
    observation is normalised exactly like the stored items, and its label is
    the realised outcome.
    """
    tracker = PredictionTracker()
    for s in splice(records, model.splice_options):
        predicted = model.predict(s.window, nearest_n, strategy)
        tracker.record(Outcome(start_time=s.start_time, predicted=predicted, actual=s.result))
    logger.info(
        "evaluation complete",
        extra={"total": tracker.stats.total, "correct": tracker.stats.correct, "accuracy": tracker.stats.accuracy},
    )
    return tracker
