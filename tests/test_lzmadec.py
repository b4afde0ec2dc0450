import lzma
import random

import pytest

from osrkit.lzmadec import DecodeResult, LzmaDecoder, lzma_decode, lzma_uncompress
from osrkit.lzmaprops import (
    DataError,
    FinishMode,
    InputEOFError,
    LzmaProps,
    Status,
    UnsupportedError,
)

SAMPLE = b"0|256|-500|0,-1|256|-500|0," * 40 + bytes(range(256)) + random.Random(7).randbytes(300)


def _compress(data, dict_size=1 << 16, lc=3, lp=0, pb=2):
    blob = lzma.compress(
        data,
        format=lzma.FORMAT_ALONE,
        filters=[
            {
                "id": lzma.FILTER_LZMA1,
                "preset": 6,
                "dict_size": dict_size,
                "lc": lc,
                "lp": lp,
                "pb": pb,
            }
        ],
    )
    return blob[:5], blob[13:]


def test_streaming_round_trip():
    props, stream = _compress(SAMPLE)
    result = LzmaDecoder(props).decode(stream)
    assert result.data == SAMPLE
    assert result.status is Status.FINISHED_WITH_MARK
    assert result.consumed == len(stream)


@pytest.mark.parametrize("lc,lp,pb", [(0, 2, 0), (4, 0, 1), (3, 1, 4)])
def test_round_trip_with_other_properties(lc, lp, pb):
    props, stream = _compress(SAMPLE, lc=lc, lp=lp, pb=pb)
    decoded = LzmaProps.from_bytes(props)
    assert (decoded.lc, decoded.lp, decoded.pb) == (lc, lp, pb)
    assert LzmaDecoder(decoded).decode(stream).data == SAMPLE


def test_window_wraps_around_small_dictionary():
    data = random.Random(3).randbytes(2000) * 3 + b"tail" * 500
    props, stream = _compress(data, dict_size=4096)
    result = LzmaDecoder(props).decode(stream)
    assert result.data == data
    assert result.status is Status.FINISHED_WITH_MARK


def test_chunked_input_gives_same_output():
    props, stream = _compress(SAMPLE)
    decoder = LzmaDecoder(props)
    out = bytearray()
    status = None
    for start in range(0, len(stream), 7):
        chunk = stream[start:start + 7]
        result = decoder.decode(chunk)
        assert result.consumed == len(chunk)
        out += result.data
        status = result.status
    assert bytes(out) == SAMPLE
    assert status is Status.FINISHED_WITH_MARK


def test_output_limit_splits_output():
    props, stream = _compress(SAMPLE)
    decoder = LzmaDecoder(props)
    first = decoder.decode(stream, 10)
    assert first.data == SAMPLE[:10]
    assert first.status is Status.NOT_FINISHED
    rest = decoder.decode(stream[first.consumed:])
    assert first.data + rest.data == SAMPLE
    assert rest.status is Status.FINISHED_WITH_MARK


def test_reset_allows_decoding_again():
    props, stream = _compress(SAMPLE)
    decoder = LzmaDecoder(props)
    first = decoder.decode(stream)
    decoder.reset()
    second = decoder.decode(stream)
    assert first == second
    assert second.data == SAMPLE


def test_empty_stream():
    props, stream = _compress(b"")
    result = LzmaDecoder(props).decode(stream)
    assert result == DecodeResult(b"", len(stream), Status.FINISHED_WITH_MARK)


def test_uncompress_exact_size():
    props, stream = _compress(SAMPLE)
    assert lzma_uncompress(stream, props, len(SAMPLE)) == SAMPLE


def test_uncompress_larger_buffer():
    props, stream = _compress(SAMPLE)
    assert lzma_uncompress(stream, LzmaProps.from_bytes(props), len(SAMPLE) + 100) == SAMPLE


def test_uncompress_truncated_output():
    props, stream = _compress(SAMPLE)
    assert lzma_uncompress(stream, props, 50) == SAMPLE[:50]


def test_decode_finish_end_at_exact_size():
    props, stream = _compress(SAMPLE)
    result = lzma_decode(stream, props, len(SAMPLE), FinishMode.END)
    assert result.data == SAMPLE
    assert result.status is Status.FINISHED_WITH_MARK
    assert result.consumed == len(stream)


def test_decode_finish_end_too_small_raises():
    props, stream = _compress(SAMPLE)
    with pytest.raises(DataError):
        lzma_decode(stream, props, 50, FinishMode.END)


def test_decode_finish_any_too_small_is_not_finished():
    props, stream = _compress(SAMPLE)
    result = lzma_decode(stream, props, 50, FinishMode.ANY)
    assert result.status is Status.NOT_FINISHED
    assert result.data == SAMPLE[:50]


def test_truncated_input_raises_eof():
    props, stream = _compress(SAMPLE)
    with pytest.raises(InputEOFError):
        lzma_decode(stream[: len(stream) // 2], props, len(SAMPLE) * 2)


def test_too_short_input_raises_eof():
    props, _ = _compress(SAMPLE)
    with pytest.raises(InputEOFError):
        lzma_decode(b"\x00\x00", props, 10)


def test_streaming_truncated_input_needs_more():
    props, stream = _compress(SAMPLE)
    result = LzmaDecoder(props).decode(stream[: len(stream) // 2])
    assert result.status is Status.NEEDS_MORE_INPUT
    assert SAMPLE.startswith(result.data)


def test_nonzero_first_byte_is_data_error():
    props, stream = _compress(SAMPLE)
    with pytest.raises(DataError):
        lzma_decode(b"\x01" + stream[1:], props, len(SAMPLE))


def test_bad_properties_rejected():
    with pytest.raises(UnsupportedError):
        LzmaDecoder(bytes([225, 0, 0, 1, 0]))


def test_negative_output_size_rejected():
    props, stream = _compress(SAMPLE)
    with pytest.raises(ValueError):
        lzma_decode(stream, props, -1)