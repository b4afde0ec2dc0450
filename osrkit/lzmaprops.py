"""LZMA stream properties, status codes and errors shared by the decoder."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass

PROPS_SIZE = 5
"""Size in bytes of an encoded LZMA properties header."""

REQUIRED_INPUT_MAX = 20
"""Input bytes needed to decode one symbol in the worst case."""

DIC_MIN = 1 << 12
"""Smallest dictionary size the decoder accepts; smaller values are raised to it."""

BASE_PROBS = 1846
LIT_PROBS = 0x300

LC_MAX = 8
LP_MAX = 4
PB_MAX = 4


class LzmaError(Exception):
    """Base class for LZMA coding errors."""


class DataError(LzmaError):
    """The compressed data is corrupt."""


class UnsupportedError(LzmaError):
    """The stream properties are not supported."""


class InputEOFError(LzmaError):
    """The compressed input ended before the stream did."""


class FinishMode(enum.Enum):
    """How decoding must behave when it reaches the output limit."""

    ANY = 0
    """Stop at any point once the output limit is reached."""
    END = 1
    """The stream must end exactly at the output limit."""


class Status(enum.Enum):
    """State of the stream after a decoding call."""

    NOT_SPECIFIED = 0
    FINISHED_WITH_MARK = 1
    NOT_FINISHED = 2
    NEEDS_MORE_INPUT = 3
    MAYBE_FINISHED_WITHOUT_MARK = 4


@dataclass(frozen=True)
class LzmaProps:
    """Literal context bits, literal position bits, position bits and dictionary size."""

    lc: int = 3
    lp: int = 0
    pb: int = 2
    dict_size: int = 1 << 24

    def __post_init__(self) -> None:
        if not 0 <= self.lc <= LC_MAX:
            raise UnsupportedError(f"lc out of range: {self.lc}")
        if not 0 <= self.lp <= LP_MAX:
            raise UnsupportedError(f"lp out of range: {self.lp}")
        if not 0 <= self.pb <= PB_MAX:
            raise UnsupportedError(f"pb out of range: {self.pb}")
        if not 0 <= self.dict_size <= 0xFFFFFFFF:
            raise UnsupportedError(f"dictionary size out of range: {self.dict_size}")

    @classmethod
    def from_bytes(cls, data: bytes) -> "LzmaProps":
        """Decode the 5-byte properties header at the start of ``data``."""
        if len(data) < PROPS_SIZE:
            raise UnsupportedError(
                f"properties need {PROPS_SIZE} bytes, got {len(data)}"
            )
        (dict_size,) = struct.unpack_from("<I", data, 1)
        dict_size = max(dict_size, DIC_MIN)
        d = data[0]
        if d >= 9 * 5 * 5:
            raise UnsupportedError(f"bad properties byte: {d:#x}")
        lc = d % 9
        d //= 9
        return cls(lc=lc, lp=d % 5, pb=d // 5, dict_size=dict_size)

    def num_probs(self) -> int:
        """Number of probability slots the decoder needs for these properties."""
        return BASE_PROBS + (LIT_PROBS << (self.lc + self.lp))

    def to_bytes(self) -> bytes:
        """Encode these properties as the 5-byte header."""
        first = (self.pb * 5 + self.lp) * 9 + self.lc
        return bytes([first]) + struct.pack("<I", self.dict_size)