"""Streaming and one-call LZMA decoding on top of the range-decoder core."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Union

from osrkit.lzmacore import (
    MATCH_SPEC_LEN_START,
    RC_INIT_SIZE,
    REQUIRED_INPUT_MAX,
    DummyResult,
    LzmaState,
)
from osrkit.lzmaprops import (
    DIC_MIN,
    DataError,
    FinishMode,
    InputEOFError,
    LzmaProps,
    Status,
)

__all__ = ["DecodeResult", "LzmaDecoder", "lzma_decode", "lzma_uncompress"]

PropsLike = Union[LzmaProps, bytes, bytearray, memoryview]


@dataclass(frozen=True)
class DecodeResult:
    """Output of a decoding call: the bytes produced, input bytes used and the stream status."""

    data: bytes
    consumed: int
    status: Status


def _as_props(props: PropsLike) -> LzmaProps:
    if isinstance(props, LzmaProps):
        return props
    return LzmaProps.from_bytes(bytes(props))


def _decode_to_dic(
    st: LzmaState, dic_limit: int, src: bytes, pos: int, finish_mode: FinishMode
) -> tuple[int, Status]:
    """Decode ``src[pos:]`` into the state's dictionary up to ``dic_limit``.

    Returns the new input position and the stream status; raises DataError
    on corrupt data.
    """
    end = len(src)
    st.write_rem(dic_limit)

    while st.remain_len != MATCH_SPEC_LEN_START:
        if st.need_flush:
            while pos < end and st.temp_buf_size < RC_INIT_SIZE:
                st.temp_buf[st.temp_buf_size] = src[pos]
                st.temp_buf_size += 1
                pos += 1
            if st.temp_buf_size < RC_INIT_SIZE:
                return pos, Status.NEEDS_MORE_INPUT
            if st.temp_buf[0] != 0:
                raise DataError("range coder must start with a zero byte")
            st.init_range_coder(bytes(st.temp_buf[:RC_INIT_SIZE]))
            st.temp_buf_size = 0

        check_end_mark = False
        if st.dic_pos >= dic_limit:
            if st.remain_len == 0 and st.code == 0:
                return pos, Status.MAYBE_FINISHED_WITHOUT_MARK
            if finish_mode is FinishMode.ANY:
                return pos, Status.NOT_FINISHED
            if st.remain_len != 0:
                raise DataError("stream continues past the output limit")
            check_end_mark = True

        if st.need_init_state:
            st.init_state_real()

        if st.temp_buf_size == 0:
            in_size = end - pos
            if in_size < REQUIRED_INPUT_MAX or check_end_mark:
                dummy = st.try_dummy(src, pos, end)
                if dummy is DummyResult.ERROR:
                    st.temp_buf[:in_size] = src[pos:end]
                    st.temp_buf_size = in_size
                    return end, Status.NEEDS_MORE_INPUT
                if check_end_mark and dummy is not DummyResult.MATCH:
                    raise DataError("expected an end marker at the output limit")
                buf_limit = pos
            else:
                buf_limit = end - REQUIRED_INPUT_MAX
            pos = st.decode_real2(dic_limit, src, pos, buf_limit)
        else:
            rem = st.temp_buf_size
            look_ahead = 0
            while rem < REQUIRED_INPUT_MAX and pos + look_ahead < end:
                st.temp_buf[rem] = src[pos + look_ahead]
                rem += 1
                look_ahead += 1
            st.temp_buf_size = rem
            if rem < REQUIRED_INPUT_MAX or check_end_mark:
                dummy = st.try_dummy(st.temp_buf, 0, rem)
                if dummy is DummyResult.ERROR:
                    return pos + look_ahead, Status.NEEDS_MORE_INPUT
                if check_end_mark and dummy is not DummyResult.MATCH:
                    raise DataError("expected an end marker at the output limit")
            used = st.decode_real2(dic_limit, st.temp_buf, 0, 0)
            look_ahead -= rem - used
            pos += look_ahead
            st.temp_buf_size = 0

    if st.code != 0:
        raise DataError("range coder not empty after the end marker")
    return pos, Status.FINISHED_WITH_MARK


class LzmaDecoder:
    """Incremental decoder that keeps its own dictionary window between calls."""

    def __init__(self, props: PropsLike) -> None:
        self.props = _as_props(props)
        self._state = LzmaState(self.props, max(self.props.dict_size, DIC_MIN))
        self.reset()

    def reset(self) -> None:
        """Start over with a new stream using the same properties."""
        self._state.dic_pos = 0
        self._state.init_dic_and_state(True, True)

    def decode(
        self,
        data: bytes,
        out_limit: int | None = None,
        finish_mode: FinishMode = FinishMode.ANY,
    ) -> DecodeResult:
        """Decode as much of ``data`` as possible, producing at most ``out_limit`` bytes.

        With ``out_limit`` of None the output is not limited.
        """
        if out_limit is not None and out_limit < 0:
            raise ValueError(f"output limit must not be negative: {out_limit}")
        st = self._state
        src = bytes(data)
        out_size = sys.maxsize if out_limit is None else out_limit
        out = bytearray()
        pos = 0
        status = Status.NOT_SPECIFIED
        while True:
            if st.dic_pos == st.dic_buf_size:
                st.dic_pos = 0
            dic_pos = st.dic_pos
            if out_size > st.dic_buf_size - dic_pos:
                cur_limit = st.dic_buf_size
                cur_finish = FinishMode.ANY
            else:
                cur_limit = dic_pos + out_size
                cur_finish = finish_mode
            pos, status = _decode_to_dic(st, cur_limit, src, pos, cur_finish)
            produced = st.dic_pos - dic_pos
            out += st.dic[dic_pos:st.dic_pos]
            out_size -= produced
            if produced == 0 or out_size == 0:
                return DecodeResult(bytes(out), pos, status)


def lzma_decode(
    data: bytes,
    props: PropsLike,
    out_size: int,
    finish_mode: FinishMode = FinishMode.ANY,
) -> DecodeResult:
    """Decode a whole raw LZMA stream into at most ``out_size`` bytes in one call."""
    if out_size < 0:
        raise ValueError(f"output size must not be negative: {out_size}")
    src = bytes(data)
    if len(src) < RC_INIT_SIZE:
        raise InputEOFError("input shorter than the range coder header")
    st = LzmaState(_as_props(props), out_size)
    st.dic_pos = 0
    st.init_dic_and_state(True, True)
    consumed, status = _decode_to_dic(st, out_size, src, 0, finish_mode)
    if status is Status.NEEDS_MORE_INPUT:
        raise InputEOFError("compressed input ended early")
    return DecodeResult(bytes(st.dic[:st.dic_pos]), consumed, status)


def lzma_uncompress(data: bytes, props: PropsLike, out_size: int) -> bytes:
    """Decode a raw LZMA stream, stopping at its end or after ``out_size`` bytes."""
    return lzma_decode(data, props, out_size, FinishMode.ANY).data