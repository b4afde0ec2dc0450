"""Reading and writing osu! replay (.osr) files."""

from __future__ import annotations

import enum
import io
import lzma
import math
import re
import struct
from dataclasses import dataclass, field
from typing import BinaryIO, Iterable, TextIO

from osrkit.lzmadec import LzmaDecoder
from osrkit.lzmaprops import LzmaError, LzmaProps, Status

__all__ = [
    "DamagedFileError",
    "GameMode",
    "HPGraphPoint",
    "OsrError",
    "OsuReplay",
    "ReplayFrame",
    "UnknownFileError",
    "format_hp_graph",
    "format_replay_frames",
    "parse_hp_graph",
    "parse_osr",
    "parse_replay_frames",
    "replay_frame_csv",
    "write_osr",
]

LONG_ONLINE_ID_VERSION = 20140721
"""First version that stores the online score id as a 64-bit integer."""

SHORT_ONLINE_ID_VERSION = 20121008
"""First version that stores an online score id at all (32-bit)."""

HASH_SIZE = 32
END_FRAME = "-1234|0|0|0"
CSV_HEADER = "time,mouse_x,mouse_y,button_state\n"

_STRING_PRESENT = 0x0B
_STRING_ABSENT = 0x00
_LZMA_HEADER_SIZE = 13
_UNKNOWN_SIZE = 0xFFFFFFFFFFFFFFFF

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1

_FLOAT_RE = re.compile(
    rb"\s*([+-]?(?:(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|inf(?:inity)?|nan))",
    re.IGNORECASE,
)
_INT_RE = re.compile(rb"\s*([+-]?\d+)")

_COMPRESS_FILTERS = [
    {
        "id": lzma.FILTER_LZMA1,
        "dict_size": 1 << 21,
        "lc": 3,
        "lp": 0,
        "pb": 2,
        "nice_len": 255,
    }
]


class OsrError(Exception):
    """Base class for replay file errors."""

    message = "Bad osr error code"

    def __init__(self, detail: str = "") -> None:
        super().__init__(f"{self.message}: {detail}" if detail else self.message)
        self.detail = detail


class DamagedFileError(OsrError):
    """The headers are valid but the data behind them is bad."""

    message = "Potentially damaged or corrupt file"


class UnknownFileError(OsrError):
    """The headers are not those of a replay file."""

    message = "Unknown file"


class GameMode(enum.IntEnum):
    """Ruleset a replay was played in."""

    OSU = 0
    TAIKO = 1
    CATCH = 2
    MANIA = 3


@dataclass
class HPGraphPoint:
    """Health at a point in time; ``value`` lies between 0.0 and 1.0."""

    time: int
    value: float


@dataclass
class ReplayFrame:
    """Cursor position and buttons held at an absolute time in milliseconds."""

    time: float
    mouse_x: float
    mouse_y: float
    button_state: int


@dataclass
class OsuReplay:
    """Everything stored in a replay file."""

    mode: int = GameMode.OSU
    version: int = LONG_ONLINE_ID_VERSION
    beatmap_hash: str = "0" * HASH_SIZE
    md5hash: str = "0" * HASH_SIZE
    username: str = ""
    count300: int = 0
    count100: int = 0
    count50: int = 0
    count_geki: int = 0
    count_katu: int = 0
    count_miss: int = 0
    total_score: int = 0
    max_combo: int = 0
    is_perfect: bool = False
    mod_bitfield: int = 0
    hp_graph: list[HPGraphPoint] = field(default_factory=list)
    date_time: int = 0
    frames: list[ReplayFrame] = field(default_factory=list)
    online_id: int = 0


def _f32(value: float) -> float:
    """Round a float to single precision."""
    try:
        return struct.unpack("<f", struct.pack("<f", value))[0]
    except OverflowError:
        return math.copysign(math.inf, value)


def _wrap_i32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value & 0x80000000 else value


def _float_prefix(text: bytes) -> float:
    match = _FLOAT_RE.match(text)
    return float(match.group(1)) if match else 0.0


def _int_prefix(text: bytes) -> int:
    match = _INT_RE.match(text)
    if not match:
        return 0
    return max(_INT64_MIN, min(_INT64_MAX, int(match.group(1))))


def parse_replay_frames(data: bytes | str) -> list[ReplayFrame]:
    """Parse the decompressed ``delta|x|y|buttons,`` frame text into absolute-time frames."""
    if isinstance(data, str):
        data = data.encode("latin-1")
    frames: list[ReplayFrame] = []
    current_time = 0.0
    for segment in bytes(data).split(b","):
        fields = segment.split(b"|")
        if len(fields) < 4:
            continue
        if segment.startswith(b"-1234"):
            continue
        current_time = _f32(current_time + _f32(_float_prefix(fields[0])))
        frames.append(
            ReplayFrame(
                time=current_time,
                mouse_x=_f32(_float_prefix(fields[1])),
                mouse_y=_f32(_float_prefix(fields[2])),
                button_state=_wrap_i32(_int_prefix(fields[3])),
            )
        )

        if len(frames) >= 2 and frames[1].time < frames[0].time:
            frames[1].time = frames[0].time
            frames[0].time = 0.0
        if len(frames) >= 3 and frames[0].time > frames[2].time:
            frames[0].time = frames[1].time = frames[2].time
        if len(frames) >= 2 and frames[1].mouse_x == 256.0 and frames[1].mouse_y == -500.0:
            del frames[1]
        if frames and frames[0].mouse_x == 256.0 and frames[0].mouse_y == -500.0:
            del frames[0]
    return frames


def parse_hp_graph(text: str) -> list[HPGraphPoint]:
    """Parse ``time|value,`` pairs; every pair must end with a comma."""
    points: list[HPGraphPoint] = []
    cursor = 0
    while cursor < len(text):
        end = text.find(",", cursor)
        if end < 0:
            raise DamagedFileError("health graph entry without a terminating comma")
        segment = text[cursor:end]
        if segment.count("|") != 1:
            raise DamagedFileError(f"bad health graph entry: {segment!r}")
        time_text, value_text = segment.split("|")
        points.append(
            HPGraphPoint(
                time=_wrap_i32(_int_prefix(time_text.encode("latin-1", "replace"))),
                value=_f32(_float_prefix(value_text.encode("latin-1", "replace"))),
            )
        )
        cursor = end + 1
    return points


def format_replay_frames(frames: Iterable[ReplayFrame]) -> str:
    """Render frames as delta-time frame text, closed by the end-of-replay frame."""
    parts = []
    current_time = 0.0
    for frame in frames:
        diff = _f32(frame.time - current_time)
        current_time = frame.time
        parts.append(
            f"{diff:.4f}|{frame.mouse_x:.4f}|{frame.mouse_y:.4f}|{frame.button_state},"
        )
    parts.append(END_FRAME)
    return "".join(parts)


def format_hp_graph(points: Iterable[HPGraphPoint]) -> str:
    """Render health graph points as ``time|value,`` pairs."""
    return "".join(f"{point.time}|{point.value:.3f}," for point in points)


class _Reader:
    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream

    def exact(self, size: int) -> bytes:
        data = self._stream.read(size)
        if data is None or len(data) < size:
            raise DamagedFileError("unexpected end of file")
        return bytes(data)

    def unpack(self, fmt: str):
        return struct.unpack(fmt, self.exact(struct.calcsize(fmt)))[0]

    def uleb128(self) -> int:
        result = 0
        shift = 0
        while True:
            byte = self.exact(1)[0]
            result |= (byte & 0x7F) << shift
            if not byte & 0x80:
                return result
            shift += 7

    def raw_string(self) -> bytes:
        marker = self.exact(1)[0]
        if marker == _STRING_ABSENT:
            return b""
        if marker != _STRING_PRESENT:
            raise DamagedFileError(f"bad string marker: {marker:#x}")
        return self.exact(self.uleb128())

    def string(self) -> str:
        try:
            return self.raw_string().decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DamagedFileError("string is not valid UTF-8") from exc

    def hash(self) -> str:
        data = self.raw_string()
        if len(data) != HASH_SIZE:
            raise DamagedFileError(f"hash must be {HASH_SIZE} bytes, got {len(data)}")
        return data.decode("latin-1")


def _decompress(data: bytes) -> bytes:
    if len(data) < _LZMA_HEADER_SIZE:
        raise DamagedFileError("compressed replay data too short")
    try:
        decoder = LzmaDecoder(LzmaProps.from_bytes(data[:5]))
        size = int.from_bytes(data[5:_LZMA_HEADER_SIZE], "little")
        body = data[_LZMA_HEADER_SIZE:]
        if size == _UNKNOWN_SIZE:
            result = decoder.decode(body)
            if result.status is not Status.FINISHED_WITH_MARK:
                raise DamagedFileError("compressed replay data ended early")
        else:
            result = decoder.decode(body, size)
            if len(result.data) != size:
                raise DamagedFileError("compressed replay data ended early")
    except LzmaError as exc:
        raise DamagedFileError(f"cannot decompress replay data: {exc}") from exc
    return result.data


def parse_osr(stream: BinaryIO) -> OsuReplay:
    """Read a replay from a binary stream."""
    reader = _Reader(stream)
    replay = OsuReplay()

    first = stream.read(1)
    if not first:
        raise UnknownFileError("empty file")
    try:
        mode = first[0]
        replay.mode = GameMode(mode) if mode in GameMode._value2member_map_ else mode
        replay.version = reader.unpack("<i")
        replay.beatmap_hash = reader.hash()
    except DamagedFileError as exc:
        raise UnknownFileError(exc.detail) from exc

    replay.username = reader.string()
    replay.md5hash = reader.hash()
    replay.count300 = reader.unpack("<H")
    replay.count100 = reader.unpack("<H")
    replay.count50 = reader.unpack("<H")
    replay.count_geki = reader.unpack("<H")
    replay.count_katu = reader.unpack("<H")
    replay.count_miss = reader.unpack("<H")
    replay.total_score = reader.unpack("<i")
    replay.max_combo = reader.unpack("<H")
    replay.is_perfect = reader.exact(1)[0] != 0
    replay.mod_bitfield = reader.unpack("<i")
    replay.hp_graph = parse_hp_graph(reader.string())
    replay.date_time = reader.unpack("<q")

    length = reader.unpack("<i")
    if length <= 0:
        # No replay data: the score carries no frames and no online id.
        return replay
    replay.frames = parse_replay_frames(_decompress(reader.exact(length)))

    if replay.version >= LONG_ONLINE_ID_VERSION:
        replay.online_id = reader.unpack("<q")
    elif replay.version >= SHORT_ONLINE_ID_VERSION:
        replay.online_id = reader.unpack("<i")
    return replay


def _string_bytes(data: bytes) -> bytes:
    length = len(data)
    prefix = bytearray([_STRING_PRESENT])
    while True:
        byte = length & 0x7F
        length >>= 7
        if length:
            prefix.append(byte | 0x80)
        else:
            prefix.append(byte)
            break
    return bytes(prefix) + data


def _hash_bytes(value: str, name: str) -> bytes:
    data = value.encode("latin-1")
    if len(data) != HASH_SIZE:
        raise ValueError(f"{name} must be {HASH_SIZE} bytes, got {len(data)}")
    return data


def write_osr(stream: BinaryIO, replay: OsuReplay) -> None:
    """Write a replay to a binary stream."""
    if replay.version < SHORT_ONLINE_ID_VERSION:
        raise ValueError(
            f"version {replay.version} predates online ids and cannot be written"
        )
    out = io.BytesIO()
    out.write(bytes([int(replay.mode) & 0xFF]))
    out.write(struct.pack("<i", replay.version))
    out.write(_string_bytes(_hash_bytes(replay.beatmap_hash, "beatmap hash")))
    out.write(_string_bytes(replay.username.encode("utf-8")))
    out.write(_string_bytes(_hash_bytes(replay.md5hash, "replay hash")))
    out.write(
        struct.pack(
            "<6HiH?i",
            replay.count300,
            replay.count100,
            replay.count50,
            replay.count_geki,
            replay.count_katu,
            replay.count_miss,
            replay.total_score,
            replay.max_combo,
            bool(replay.is_perfect),
            replay.mod_bitfield,
        )
    )
    out.write(_string_bytes(format_hp_graph(replay.hp_graph).encode("ascii")))
    out.write(struct.pack("<q", replay.date_time))

    compressed = lzma.compress(
        format_replay_frames(replay.frames).encode("ascii"),
        format=lzma.FORMAT_ALONE,
        filters=_COMPRESS_FILTERS,
    )
    out.write(struct.pack("<i", len(compressed)))
    out.write(compressed)

    if replay.version >= LONG_ONLINE_ID_VERSION:
        out.write(struct.pack("<q", replay.online_id))
    else:
        out.write(struct.pack("<i", _wrap_i32(replay.online_id)))
    stream.write(out.getvalue())


def replay_frame_csv(stream: TextIO, replay: OsuReplay, header: bool = True) -> None:
    """Write the replay's frames as CSV text, optionally with a header line."""
    if header:
        stream.write(CSV_HEADER)
    for frame in replay.frames:
        stream.write(
            f"{frame.time:.3f},{frame.mouse_x:.3f},{frame.mouse_y:.3f},{frame.button_state}\n"
        )