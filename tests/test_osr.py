import io
import struct

import pytest

from osrkit.osr import (
    DamagedFileError,
    GameMode,
    HPGraphPoint,
    OsuReplay,
    ReplayFrame,
    UnknownFileError,
    format_hp_graph,
    format_replay_frames,
    parse_hp_graph,
    parse_osr,
    parse_replay_frames,
    replay_frame_csv,
    write_osr,
)


def _replay(version=20140721):
    return OsuReplay(
        mode=GameMode.TAIKO,
        version=version,
        beatmap_hash="a" * 32,
        md5hash="b" * 32,
        username="player",
        count300=300,
        count100=100,
        count50=50,
        count_geki=7,
        count_katu=3,
        count_miss=2,
        total_score=123456,
        max_combo=400,
        is_perfect=True,
        mod_bitfield=0x48,
        hp_graph=[HPGraphPoint(0, 1.0), HPGraphPoint(1500, 0.5)],
        date_time=637000000000000000,
        frames=[
            ReplayFrame(16.0, 100.25, 200.5, 1),
            ReplayFrame(32.5, 300.0, 150.75, 0),
            ReplayFrame(50.0, 10.0, 20.0, 5),
        ],
        online_id=987654,
    )


def _written(replay):
    buf = io.BytesIO()
    write_osr(buf, replay)
    return buf.getvalue()


def _osr_with_payload(payload, version=20140721):
    def s(text):
        data = text.encode()
        return bytes([0x0B, len(data)]) + data

    out = bytes([0]) + struct.pack("<i", version)
    out += s("c" * 32) + s("name") + s("d" * 32)
    out += struct.pack("<6HiH?i", 1, 2, 3, 4, 5, 6, 7, 8, False, 0)
    out += s("") + struct.pack("<q", 0)
    out += struct.pack("<i", len(payload)) + payload
    return out


def test_round_trip_preserves_every_field():
    replay = _replay()
    parsed = parse_osr(io.BytesIO(_written(replay)))
    assert parsed == replay
    assert parsed.mode is GameMode.TAIKO


def test_round_trip_short_online_id():
    replay = _replay(version=20130101)
    data = _written(replay)
    assert parse_osr(io.BytesIO(data)).online_id == replay.online_id
    assert data[-4:] == struct.pack("<i", replay.online_id)


def test_header_wire_bytes():
    data = _written(_replay())
    assert data[0] == GameMode.TAIKO
    assert data[1:5] == struct.pack("<i", 20140721)
    assert data[5:7] == bytes([0x0B, 32])
    assert data[7:39] == b"a" * 32


def test_write_rejects_old_version():
    with pytest.raises(ValueError):
        _written(_replay(version=20000000))


def test_parse_old_version_has_no_online_id():
    data = bytearray(_written(_replay()))
    data[1:5] = struct.pack("<i", 20000000)
    parsed = parse_osr(io.BytesIO(bytes(data)))
    assert parsed.online_id == 0
    assert parsed.frames == _replay().frames


def test_write_rejects_bad_hash_length():
    replay = _replay()
    replay.md5hash = "short"
    with pytest.raises(ValueError):
        _written(replay)


def test_empty_stream_is_unknown_file():
    with pytest.raises(UnknownFileError):
        parse_osr(io.BytesIO(b""))


def test_bad_beatmap_hash_is_unknown_file():
    data = bytes([0]) + struct.pack("<i", 20140721) + bytes([0x0B, 3]) + b"abc"
    with pytest.raises(UnknownFileError):
        parse_osr(io.BytesIO(data))


def test_truncated_file_is_damaged():
    data = _written(_replay())
    with pytest.raises(DamagedFileError):
        parse_osr(io.BytesIO(data[:-20]))


def test_unsupported_lzma_props_is_damaged():
    payload = bytes([0xFF]) + b"\x00" * 20
    with pytest.raises(DamagedFileError):
        parse_osr(io.BytesIO(_osr_with_payload(payload)))


def test_empty_replay_data_gives_no_frames():
    parsed = parse_osr(io.BytesIO(_osr_with_payload(b"")))
    assert parsed.frames == []
    assert parsed.online_id == 0
    assert parsed.username == "name"


def test_parse_frames_accumulates_and_drops_marker_frame():
    frames = parse_replay_frames(b"0|256|-500|0,10|100.5|200|1,5|50|60|0")
    assert len(frames) == 2
    assert frames[0].time == 10.0
    assert frames[1].time - frames[0].time == 5.0
    assert (frames[0].mouse_x, frames[0].mouse_y, frames[0].button_state) == (100.5, 200.0, 1)


def test_parse_frames_skips_end_frame_and_short_segments():
    assert [f.time for f in parse_replay_frames(b"-1234|0|0|12345,7|1|2|3")] == [7.0]
    assert [f.time for f in parse_replay_frames(b"1|2|3,4|5|6|7")] == [4.0]
    assert parse_replay_frames(b"") == []


def test_parse_frames_fixes_early_ordering():
    frames = parse_replay_frames(b"0|1|1|0,-5|2|2|0")
    assert frames[0].time == frames[1].time == 0.0
    frames = parse_replay_frames(b"10|1|1|0,5|1|1|0,-20|1|1|0")
    assert frames[0].time == frames[1].time == frames[2].time


def test_format_replay_frames_ends_with_end_frame():
    text = format_replay_frames([ReplayFrame(1.0, 2.0, 3.0, 4)])
    assert text == "1.0000|2.0000|3.0000|4,-1234|0|0|0"
    assert format_replay_frames([]) == "-1234|0|0|0"


def test_frames_text_round_trip():
    frames = _replay().frames
    assert parse_replay_frames(format_replay_frames(frames)) == frames


def test_hp_graph_format_and_parse():
    assert format_hp_graph([HPGraphPoint(10, 0.5)]) == "10|0.500,"
    points = [HPGraphPoint(0, 1.0), HPGraphPoint(250, 0.25)]
    assert parse_hp_graph(format_hp_graph(points)) == points
    assert parse_hp_graph("") == []


@pytest.mark.parametrize("text", ["100|0.5", "1|2|3,", "100,"])
def test_hp_graph_rejects_bad_entries(text):
    with pytest.raises(DamagedFileError):
        parse_hp_graph(text)


def test_csv_output():
    replay = _replay()
    out = io.StringIO()
    replay_frame_csv(out, replay, True)
    lines = out.getvalue().splitlines()
    assert lines[0] == "time,mouse_x,mouse_y,button_state"
    assert len(lines) == len(replay.frames) + 1
    for line, frame in zip(lines[1:], replay.frames):
        t, x, y, b = line.split(",")
        assert (float(t), float(x), float(y), int(b)) == (
            frame.time,
            frame.mouse_x,
            frame.mouse_y,
            frame.button_state,
        )


def test_csv_without_header():
    out = io.StringIO()
    replay_frame_csv(out, _replay(), False)
    lines = out.getvalue().splitlines()
    assert len(lines) == 3
    assert not lines[0].startswith("time")