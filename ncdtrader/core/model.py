from __future__ import annotations

import contextlib
import hashlib
import logging
import struct
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, ContextManager, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from ..errors import InsufficientData, InvalidConfiguration
from . import diagnostics
from .combine import CombineStrategy
from .compression import DEFAULT_LEVEL, SizeOracle
from .distance import compression_distance, cosine_distance, pairwise_matrix
from .encoding import EncodingType
from .predict import PredictionStrategy, Slots, nearest, vote
from .records import MarketRecord, Window
from .splicer import Splice, SpliceOptions, splice


logger = logging.getLogger(__name__)


class ModelType(str, Enum):
    COMPRESSION = "compression"
    COSINE = "cosine"

    @classmethod
    def parse(cls, value: str) -> "ModelType":
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise InvalidConfiguration(f"invalid model type: {value!r}") from None


@dataclass(frozen=True)
class CompressionItem:
    window: Window
    result: float
    compressed_size: int
    start_time: int = 0
    end_time: int = 0


@dataclass(frozen=True)
class CosineItem:
    window: Window
    result: float
    start_time: int = 0
    end_time: int = 0


def _digest_window(h: "hashlib._Hash", window: Window) -> None:
    for _, values in window.series():
        h.update(struct.pack(f"<{len(values)}d", *values))


class DistanceModel:
    """Append-only store of labelled windows with a cached distance matrix.

    Subclasses decide what an item holds and how two items are compared.
    Ingestion is single-writer: a lock guards the append and the cache swap,
    but queries must not run while another thread is ingesting.
    """

    model_type: ClassVar[ModelType]

    def __init__(self, splice_options: SpliceOptions, max_workers: Optional[int] = None) -> None:
        self.splice_options = splice_options
        self.max_workers = max_workers
        self._items: List[Any] = []
        self._lock = threading.RLock()
        self._distance_map: Optional[np.ndarray] = None
        self._distance_map_key: Optional[str] = None

    # ───────────────────────────── subclass hooks ─────────────────────────────

    def _build_items(self, splices: Sequence[Splice]) -> List[Any]:
        raise NotImplementedError

    def _worker_resource(self) -> ContextManager[Any]:
        return contextlib.nullcontext()

    def _pair_distance(self, resource: Any, a: Any, b: Any) -> float:
        raise NotImplementedError

    def _observation_distances(self, observation: Window) -> Iterator[Tuple[float, Any]]:
        raise NotImplementedError

    def _digest_item(self, h: "hashlib._Hash", item: Any) -> None:
        _digest_window(h, item.window)
        h.update(struct.pack("<d", item.result))

    # ───────────────────────────── ingestion ─────────────────────────────

    @property
    def items(self) -> Tuple[Any, ...]:
        with self._lock:
            return tuple(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def add_market_data(self, records: Sequence[MarketRecord]) -> int:
        """Splice records and append one item per splice.

        Every new item is built before any is appended, so a failure leaves
        the model untouched. Calling twice with the same data duplicates items.
        """
        splices = splice(records, self.splice_options)
        new_items = self._build_items(splices)
        self.extend(new_items)
        logger.info(
            "added market data",
            extra={"records": len(records), "new_items": len(new_items), "total_items": len(self)},
        )
        return len(new_items)

    def extend(self, items: Sequence[Any]) -> None:
        with self._lock:
            self._items.extend(items)
            self.invalidate_distance_map()

    # ───────────────────────────── distance matrix ─────────────────────────────

    def fingerprint(self) -> str:
        """SHA-256 over every item's content; keys the distance matrix cache."""
        h = hashlib.sha256()
        h.update(self.model_type.value.encode("utf-8"))
        for item in self.items:
            self._digest_item(h, item)
        return h.hexdigest()

    def invalidate_distance_map(self) -> None:
        with self._lock:
            self._distance_map = None
            self._distance_map_key = None

    def cached_distance_map(self) -> Tuple[Optional[np.ndarray], Optional[str]]:
        with self._lock:
            return self._distance_map, self._distance_map_key

    def seed_distance_map(self, matrix: Optional[np.ndarray], key: Optional[str]) -> None:
        """Install a previously computed matrix, made read-only; ignored later if ``key`` is stale."""
        if matrix is not None:
            matrix.flags.writeable = False
        with self._lock:
            self._distance_map = matrix
            self._distance_map_key = key

    def distance_map(self) -> np.ndarray:
        """Pairwise distance matrix, cached until the items change.

        The returned array is shared with the cache and read-only.
        """
        with self._lock:
            items = tuple(self._items)
            key = self.fingerprint()
            if self._distance_map is not None and self._distance_map_key == key:
                return self._distance_map
        matrix = pairwise_matrix(items, self._pair_distance, self._worker_resource, self.max_workers)
        matrix.flags.writeable = False
        with self._lock:
            if self.fingerprint() == key:
                self._distance_map = matrix
                self._distance_map_key = key
        return matrix

    # ───────────────────────────── queries ─────────────────────────────

    def closest_neighbours(self, observation: Window, nearest_n: int) -> Slots:
        """The ``nearest_n`` closest items to ``observation``, ascending.

        Expects the observation normalised the same way as stored items.
        Unfilled slots are ``None``.
        """
        return nearest(self._observation_distances(observation), nearest_n)

    def predict(
        self,
        observation: Window,
        nearest_n: int,
        strategy: PredictionStrategy = PredictionStrategy.WNN,
    ) -> int:
        """Direction vote in {-1, 0, 1} from the nearest stored windows."""
        if len(self) == 0:
            raise InsufficientData("model has no items to compare against")
        return vote(self.closest_neighbours(observation, nearest_n), strategy)

    # ───────────────────────────── diagnostics ─────────────────────────────

    def results(self) -> List[float]:
        return [item.result for item in self.items]

    def distance_variance_histogram(self, bucket_size: float) -> Dict[int, float]:
        return diagnostics.distance_variance_histogram(self.distance_map(), self.results(), bucket_size)


class CompressionModel(DistanceModel):
    """k-NN over windows compared by normalized compression distance."""

    model_type = ModelType.COMPRESSION

    def __init__(
        self,
        splice_options: SpliceOptions,
        encoding: EncodingType = EncodingType.PLAIN,
        combine: CombineStrategy = CombineStrategy.INTERLEAVE,
        compression_level: int = DEFAULT_LEVEL,
        max_workers: Optional[int] = None,
    ) -> None:
        super().__init__(splice_options, max_workers=max_workers)
        self.encoding = encoding
        self.combine = combine
        self.compression_level = compression_level

    def _worker_resource(self) -> SizeOracle:
        return SizeOracle(self.encoding, self.compression_level)

    def _build_items(self, splices: Sequence[Splice]) -> List[CompressionItem]:
        with self._worker_resource() as oracle:
            return [
                CompressionItem(
                    window=s.window,
                    result=s.result,
                    compressed_size=oracle.compressed_size(s.window),
                    start_time=s.start_time,
                    end_time=s.end_time,
                )
                for s in splices
            ]

    def _pair_distance(self, oracle: SizeOracle, a: CompressionItem, b: CompressionItem) -> float:
        return compression_distance(oracle, a.window, a.compressed_size, b.window, b.compressed_size, self.combine)

    def _observation_distances(self, observation: Window) -> Iterator[Tuple[float, CompressionItem]]:
        with self._worker_resource() as oracle:
            c_obs = oracle.compressed_size(observation)
            for item in self.items:
                d = compression_distance(oracle, item.window, item.compressed_size, observation, c_obs, self.combine)
                yield d, item

    def _digest_item(self, h: "hashlib._Hash", item: CompressionItem) -> None:
        super()._digest_item(h, item)
        h.update(struct.pack("<q", item.compressed_size))

    def fingerprint(self) -> str:
        h = hashlib.sha256(super().fingerprint().encode("ascii"))
        h.update(f"{self.encoding.value}|{self.combine.value}|{self.compression_level}".encode("utf-8"))
        return h.hexdigest()

    def size_result_buckets(self) -> Dict[int, List[float]]:
        items = self.items
        return diagnostics.size_result_buckets([i.compressed_size for i in items], [i.result for i in items])


class CosineModel(DistanceModel):
    """Baseline k-NN using mean per-field cosine distance."""

    model_type = ModelType.COSINE

    def _build_items(self, splices: Sequence[Splice]) -> List[CosineItem]:
        return [CosineItem(s.window, s.result, s.start_time, s.end_time) for s in splices]

    def _pair_distance(self, _: Any, a: CosineItem, b: CosineItem) -> float:
        return cosine_distance(a.window, b.window)

    def _observation_distances(self, observation: Window) -> Iterator[Tuple[float, CosineItem]]:
        for item in self.items:
            yield cosine_distance(item.window, observation), item


def new_model(
    model_type: ModelType,
    splice_options: SpliceOptions,
    encoding: EncodingType = EncodingType.PLAIN,
    combine: CombineStrategy = CombineStrategy.INTERLEAVE,
    compression_level: int = DEFAULT_LEVEL,
    max_workers: Optional[int] = None,
) -> DistanceModel:
    if model_type is ModelType.COMPRESSION:
        return CompressionModel(splice_options, encoding, combine, compression_level, max_workers)
    return CosineModel(splice_options, max_workers=max_workers)
