from __future__ import annotations

import zlib
from types import TracebackType
from typing import Optional, Type

from ..errors import CompressionFailure
from .encoding import EncodingType, encode
from .records import Window


DEFAULT_LEVEL = zlib.Z_BEST_COMPRESSION


class SizeOracle:
    """Measures the zlib-compressed size of a window's encoded fields.

    Owns one primed compressor that is copied for each measurement. Use it as
    a context manager so the compressor is released when the owning worker or
    query is done; instances are not shared between threads.
    """

    def __init__(self, encoding: EncodingType, level: int = DEFAULT_LEVEL) -> None:
        self.encoding = encoding
        self.level = level
        self._template: Optional["zlib._Compress"] = None

    def __enter__(self) -> "SizeOracle":
        self.open()
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.close()

    def open(self) -> None:
        if self._template is None:
            try:
                self._template = zlib.compressobj(self.level)
            except (zlib.error, ValueError) as exc:
                raise CompressionFailure(f"cannot create compressor at level {self.level}: {exc}") from exc

    def close(self) -> None:
        self._template = None

    def compressed_length(self, data: bytes) -> int:
        if self._template is None:
            raise CompressionFailure("size oracle used outside of its context")
        try:
            compressor = self._template.copy()
            return len(compressor.compress(data)) + len(compressor.flush())
        except zlib.error as exc:
            raise CompressionFailure(str(exc)) from exc

    def compressed_size(self, window: Window) -> int:
        """Sum over the six fields of the compressed length of the encoded field."""
        return sum(
            self.compressed_length(encode(values, self.encoding).encode("utf-8"))
            for _, values in window.series()
        )


def compressed_size(window: Window, encoding: EncodingType, level: int = DEFAULT_LEVEL) -> int:
    with SizeOracle(encoding, level) as oracle:
        return oracle.compressed_size(window)
