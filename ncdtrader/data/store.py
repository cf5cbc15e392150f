"""gzip-compressed JSON persistence for models.

Floats are written with ``json``'s shortest round-trip repr, so windows,
labels and cached distances come back bit-for-bit.
"""

from __future__ import annotations

import gzip
import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

import numpy as np

from ..core.combine import CombineStrategy
from ..core.encoding import EncodingType
from ..core.model import CompressionItem, CompressionModel, CosineItem, CosineModel, DistanceModel, ModelType
from ..core.records import Window
from ..core.splicer import SpliceOptions
from ..errors import InvalidConfiguration


logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


def item_to_dict(item: Union[CompressionItem, CosineItem]) -> Dict[str, Any]:
    raw: Dict[str, Any] = {
        "window": item.window.to_dict(),
        "result": item.result,
        "start_time": item.start_time,
        "end_time": item.end_time,
    }
    if isinstance(item, CompressionItem):
        raw["compressed_size"] = item.compressed_size
    return raw


def model_to_dict(model: DistanceModel) -> Dict[str, Any]:
    matrix, key = model.cached_distance_map()
    raw: Dict[str, Any] = {
        "version": FORMAT_VERSION,
        "model_type": model.model_type.value,
        "splice_options": model.splice_options.to_dict(),
        "items": [item_to_dict(item) for item in model.items],
        "distance_map": matrix.tolist() if matrix is not None else None,
        "distance_map_key": key,
    }
    if isinstance(model, CompressionModel):
        raw["encoding_type"] = model.encoding.value
        raw["combine_strategy"] = model.combine.value
        raw["compression_level"] = model.compression_level
    return raw


def model_from_dict(raw: Dict[str, Any]) -> DistanceModel:
    """Rebuild a model; malformed content raises InvalidConfiguration."""
    if not isinstance(raw, dict):
        raise InvalidConfiguration(f"model data must be an object, got {type(raw).__name__}")
    try:
        return _build_model(raw)
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidConfiguration(f"malformed model data: {exc!r}") from exc


def _build_model(raw: Dict[str, Any]) -> DistanceModel:
    version = raw.get("version", FORMAT_VERSION)
    if version != FORMAT_VERSION:
        raise InvalidConfiguration(f"unsupported model file version: {version}")
    model_type = ModelType.parse(raw.get("model_type", ModelType.COMPRESSION.value))
    options = SpliceOptions.from_dict(raw["splice_options"])

    model: DistanceModel
    if model_type is ModelType.COMPRESSION:
        model = CompressionModel(
            options,
            encoding=EncodingType.parse(raw["encoding_type"]),
            combine=CombineStrategy.parse(raw.get("combine_strategy", CombineStrategy.INTERLEAVE.value)),
            compression_level=int(raw.get("compression_level", 9)),
        )
        items = [
            CompressionItem(
                window=Window.from_fields(it["window"]),
                result=float(it["result"]),
                compressed_size=int(it["compressed_size"]),
                start_time=int(it.get("start_time", 0)),
                end_time=int(it.get("end_time", 0)),
            )
            for it in raw.get("items", [])
        ]
    else:
        model = CosineModel(options)
        items = [
            CosineItem(
                window=Window.from_fields(it["window"]),
                result=float(it["result"]),
                start_time=int(it.get("start_time", 0)),
                end_time=int(it.get("end_time", 0)),
            )
            for it in raw.get("items", [])
        ]
    model.extend(items)

    matrix = raw.get("distance_map")
    if matrix is not None:
        model.seed_distance_map(np.asarray(matrix, dtype=float).reshape(len(items), len(items)), raw.get("distance_map_key"))
    return model


def save_model(model: DistanceModel, path: Union[str, Path]) -> None:
    with gzip.open(path, "wt", encoding="utf-8") as fh:
        json.dump(model_to_dict(model), fh)
    logger.info("saved model", extra={"path": str(path), "items": len(model)})


def load_model(path: Union[str, Path]) -> DistanceModel:
    try:
        with gzip.open(path, "rt", encoding="utf-8") as fh:
            raw = json.load(fh)
        model = model_from_dict(raw)
    except (OSError, EOFError, ValueError, InvalidConfiguration) as exc:
        raise InvalidConfiguration(f"invalid model file {path}: {exc}") from exc
    logger.info("loaded model", extra={"path": str(path), "items": len(model)})
    return model
