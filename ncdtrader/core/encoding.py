"""Text encodings for float sequences.

The compressed size of the encoded text is the only thing the model ever
looks at, so each encoding is a different bet on how magnitude should show
up in a general-purpose compressor: longer runs for larger digits, one
character per unit of value, and so on.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable

from ..errors import InvalidConfiguration


SEPARATOR = ","

ValueEncoder = Callable[[float], str]


class EncodingType(str, Enum):
    PLAIN = "plain"
    EXPANDED = "expanded"
    SIG_FIG_EXPANDED = "sig-fig-expanded"
    RUN_LENGTH_CHAR = "run-length-char"
    RUN_LENGTH_CHAR_COARSE = "run-length-char-coarse"
    ROMAN = "roman"

    @classmethod
    def parse(cls, value: str) -> "EncodingType":
        try:
            return cls(value.strip().lower().replace("_", "-"))
        except ValueError:
            raise InvalidConfiguration(f"invalid encoding type: {value!r}") from None


def round_half_away(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def plain(value: float) -> str:
    return f"{value:.6f}"


def expanded(value: float) -> str:
    # 1.2345 -> 1.22333444455555
    out = []
    for ch in f"{value:.6f}":
        out.append(ch * int(ch) if ch.isdigit() else ch)
    return "".join(out)


def sig_fig_expanded(value: float) -> str:
    # 3.4 -> 333.44 : repeats shrink with position in the formatted text
    out = []
    for pos, ch in enumerate(f"{value:.6f}"):
        out.append(ch * max(0, int(ch) - pos) if ch.isdigit() else ch)
    return "".join(out)


def run_length_char(scale: float) -> ValueEncoder:
    """One character per ``1/scale`` of value: P for positive, N for negative.

    Meant for normalised data; raw prices or volumes produce very long runs.
    """

    def encode(value: float) -> str:
        n = round_half_away(value * scale)
        if n == 0:
            return "0"
        return ("P" if n > 0 else "N") * abs(n)

    return encode


_ROMAN_TABLE = (
    (1000, "M"),
    (900, "CM"),
    (500, "D"),
    (400, "CD"),
    (100, "C"),
    (90, "XC"),
    (50, "L"),
    (40, "XL"),
    (10, "X"),
    (9, "IX"),
    (5, "V"),
    (4, "IV"),
    (1, "I"),
)


def to_roman(n: int) -> str:
    if n == 0:
        return "0"
    sign = "-" if n < 0 else ""
    n = abs(n)
    parts = []
    for amount, numeral in _ROMAN_TABLE:
        count, n = divmod(n, amount)
        parts.append(numeral * count)
    return sign + "".join(parts)


def roman(value: float) -> str:
    return to_roman(round_half_away(value * 1000))


@dataclass(frozen=True)
class EncoderSpec:
    key: EncodingType
    encode_value: ValueEncoder
    label: str


ENCODERS: Dict[EncodingType, EncoderSpec] = {
    EncodingType.PLAIN: EncoderSpec(EncodingType.PLAIN, plain, "Plain %.6f"),
    EncodingType.EXPANDED: EncoderSpec(EncodingType.EXPANDED, expanded, "Digit-expanded"),
    EncodingType.SIG_FIG_EXPANDED: EncoderSpec(
        EncodingType.SIG_FIG_EXPANDED, sig_fig_expanded, "Significant-figure expanded"
    ),
    EncodingType.RUN_LENGTH_CHAR: EncoderSpec(
        EncodingType.RUN_LENGTH_CHAR, run_length_char(1000), "Run-length char (x1000)"
    ),
    EncodingType.RUN_LENGTH_CHAR_COARSE: EncoderSpec(
        EncodingType.RUN_LENGTH_CHAR_COARSE, run_length_char(100), "Run-length char (x100)"
    ),
    EncodingType.ROMAN: EncoderSpec(EncodingType.ROMAN, roman, "Roman numerals (x1000)"),
}


def encode(values: Iterable[float], encoding: EncodingType) -> str:
    """Encode every value and follow each with the separator."""
    encode_value = ENCODERS[encoding].encode_value
    return "".join(encode_value(v) + SEPARATOR for v in values)
