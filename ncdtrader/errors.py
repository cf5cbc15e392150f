"""Error taxonomy for the compression-similarity model.

Every failure the core can produce is a subclass of :class:`NcdError` so
callers (CLI, evaluation, notebooks) can catch one base type. None of these
are transient: nothing in the core retries.
"""

from __future__ import annotations

from typing import Optional


class NcdError(Exception):
    """Base class for all ncdtrader errors."""


class InsufficientData(NcdError):
    """Not enough records to produce a single window, or an empty model."""


class LengthMismatch(NcdError):
    """Sequences that must be aligned have different lengths."""


class InvalidConfiguration(NcdError):
    """Unknown identifier or out-of-range option."""


class CompressionFailure(NcdError):
    """The underlying compressor raised; treated as fatal."""


class DegenerateNormalization(NcdError):
    """A field has zero standard deviation so z-scores are undefined."""

    def __init__(self, field: str, start_time: Optional[int] = None) -> None:
        self.field = field
        self.start_time = start_time
        where = f" in range starting at {start_time}" if start_time is not None else ""
        super().__init__(f"zero standard deviation for field '{field}'{where}")


class FetchError(NcdError):
    """Market data provider request failed after retries."""
