from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Iterable

import numpy as np


# LogRecord attributes that never become payload fields.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

# Loggers that chatter per HTTP request during fetch.
QUIET_LOGGERS = ("urllib3", "requests")


def _to_json(value: Any) -> Any:
    """Fallback for values json cannot encode: numpy scalars, arrays, enums, paths."""
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        return {"shape": list(value.shape), "dtype": str(value.dtype)}
    if hasattr(value, "value") and hasattr(value, "name"):
        return value.value
    return str(value)


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    Extra fields passed with ``extra=`` are copied in as-is. Records emitted
    off the main thread (matrix row workers) carry a ``thread`` field.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.threadName and record.threadName != "MainThread":
            payload["thread"] = record.threadName
        if record.exc_info and record.exc_info[0] is not None:
            payload["error"] = record.exc_info[0].__name__
            payload["exc_info"] = self.formatException(record.exc_info)
        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS and key not in payload:
                payload[key] = value
        return json.dumps(payload, ensure_ascii=False, default=_to_json)


def setup_logging(level: str = "INFO", quiet: Iterable[str] = QUIET_LOGGERS) -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.handlers.clear()
    root.addHandler(handler)

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)
