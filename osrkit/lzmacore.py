"""Range-decoder core of the LZMA decoder: probability model, dictionary and symbol loop."""

from __future__ import annotations

import enum

from osrkit.lzmaprops import (
    BASE_PROBS,
    DIC_MIN,
    LIT_PROBS,
    REQUIRED_INPUT_MAX,
    DataError,
    LzmaProps,
)

_MASK32 = 0xFFFFFFFF

TOP_VALUE = 1 << 24
NUM_BIT_MODEL_TOTAL_BITS = 11
BIT_MODEL_TOTAL = 1 << NUM_BIT_MODEL_TOTAL_BITS
NUM_MOVE_BITS = 5
PROB_INIT = BIT_MODEL_TOTAL >> 1

RC_INIT_SIZE = 5

NUM_POS_BITS_MAX = 4
NUM_POS_STATES_MAX = 1 << NUM_POS_BITS_MAX

LEN_NUM_LOW_BITS = 3
LEN_NUM_LOW_SYMBOLS = 1 << LEN_NUM_LOW_BITS
LEN_NUM_MID_BITS = 3
LEN_NUM_MID_SYMBOLS = 1 << LEN_NUM_MID_BITS
LEN_NUM_HIGH_BITS = 8
LEN_NUM_HIGH_SYMBOLS = 1 << LEN_NUM_HIGH_BITS

LEN_CHOICE = 0
LEN_CHOICE2 = LEN_CHOICE + 1
LEN_LOW = LEN_CHOICE2 + 1
LEN_MID = LEN_LOW + (NUM_POS_STATES_MAX << LEN_NUM_LOW_BITS)
LEN_HIGH = LEN_MID + (NUM_POS_STATES_MAX << LEN_NUM_MID_BITS)
NUM_LEN_PROBS = LEN_HIGH + LEN_NUM_HIGH_SYMBOLS

NUM_STATES = 12
NUM_LIT_STATES = 7

START_POS_MODEL_INDEX = 4
END_POS_MODEL_INDEX = 14
NUM_FULL_DISTANCES = 1 << (END_POS_MODEL_INDEX >> 1)

NUM_POS_SLOT_BITS = 6
NUM_LEN_TO_POS_STATES = 4

NUM_ALIGN_BITS = 4
ALIGN_TABLE_SIZE = 1 << NUM_ALIGN_BITS

MATCH_MIN_LEN = 2
MATCH_SPEC_LEN_START = (
    MATCH_MIN_LEN + LEN_NUM_LOW_SYMBOLS + LEN_NUM_MID_SYMBOLS + LEN_NUM_HIGH_SYMBOLS
)
"""Remaining-length value that marks a stream finished by its end marker."""

IS_MATCH = 0
IS_REP = IS_MATCH + (NUM_STATES << NUM_POS_BITS_MAX)
IS_REP_G0 = IS_REP + NUM_STATES
IS_REP_G1 = IS_REP_G0 + NUM_STATES
IS_REP_G2 = IS_REP_G1 + NUM_STATES
IS_REP0_LONG = IS_REP_G2 + NUM_STATES
POS_SLOT = IS_REP0_LONG + (NUM_STATES << NUM_POS_BITS_MAX)
SPEC_POS = POS_SLOT + (NUM_LEN_TO_POS_STATES << NUM_POS_SLOT_BITS)
ALIGN = SPEC_POS + NUM_FULL_DISTANCES - END_POS_MODEL_INDEX
LEN_CODER = ALIGN + ALIGN_TABLE_SIZE
REP_LEN_CODER = LEN_CODER + NUM_LEN_PROBS
LITERAL = REP_LEN_CODER + NUM_LEN_PROBS

if LITERAL != BASE_PROBS:  # pragma: no cover - layout sanity check
    raise RuntimeError("LZMA probability layout does not match the base size")

LITERAL_NEXT_STATES = (0, 0, 0, 0, 1, 2, 3, 4, 5, 6, 4, 5)

__all__ = [
    "DummyResult",
    "LzmaState",
    "MATCH_SPEC_LEN_START",
    "PROB_INIT",
    "RC_INIT_SIZE",
    "REQUIRED_INPUT_MAX",
]


class DummyResult(enum.Enum):
    """Outcome of a trial decode of one symbol."""

    ERROR = 0
    """The input ended before the symbol did."""
    LIT = 1
    MATCH = 2
    REP = 3


class _InputExhausted(Exception):
    """Raised inside a trial decode when it runs past the end of its input."""


class LzmaState:
    """Decoder state: probabilities, dictionary window and range-coder registers."""

    def __init__(self, props: LzmaProps, dict_size: int) -> None:
        if dict_size < 0:
            raise ValueError(f"dictionary buffer size must not be negative: {dict_size}")
        self.props = props
        self.window_size = max(props.dict_size, DIC_MIN)
        self.probs = [PROB_INIT] * props.num_probs()
        self.dic = bytearray(dict_size)
        self.dic_buf_size = dict_size
        self.dic_pos = 0
        self.range = 0
        self.code = 0
        self.processed_pos = 0
        self.check_dic_size = 0
        self.state = 0
        self.reps = [1, 1, 1, 1]
        self.remain_len = 0
        self.need_flush = True
        self.need_init_state = True
        self.temp_buf = bytearray(REQUIRED_INPUT_MAX)
        self.temp_buf_size = 0
        self.init_dic_and_state(True, True)

    def init_dic_and_state(self, init_dic: bool, init_state: bool) -> None:
        """Prepare for a new stream, optionally forgetting the dictionary and model."""
        self.need_flush = True
        self.remain_len = 0
        self.temp_buf_size = 0
        if init_dic:
            self.processed_pos = 0
            self.check_dic_size = 0
            self.need_init_state = True
        if init_state:
            self.need_init_state = True

    def init_state_real(self) -> None:
        """Reset every probability to one half and the repeat distances to one."""
        self.probs = [PROB_INIT] * self.props.num_probs()
        self.reps = [1, 1, 1, 1]
        self.state = 0
        self.need_init_state = False

    def init_range_coder(self, data: bytes) -> None:
        """Load the range-coder registers from the 5 leading bytes of a stream."""
        if len(data) < RC_INIT_SIZE:
            raise ValueError(f"range coder needs {RC_INIT_SIZE} bytes, got {len(data)}")
        self.code = int.from_bytes(bytes(data[1:RC_INIT_SIZE]), "big")
        self.range = _MASK32
        self.need_flush = False

    def write_rem(self, limit: int) -> None:
        """Copy the pending part of an unfinished match into the dictionary."""
        if self.remain_len == 0 or self.remain_len >= MATCH_SPEC_LEN_START:
            return
        dic = self.dic
        dic_pos = self.dic_pos
        dic_buf_size = self.dic_buf_size
        rep0 = self.reps[0]
        length = min(self.remain_len, limit - dic_pos)

        if self.check_dic_size == 0 and self.window_size - self.processed_pos <= length:
            self.check_dic_size = self.window_size

        self.processed_pos += length
        self.remain_len -= length
        for _ in range(length):
            src = dic_pos - rep0 + (dic_buf_size if dic_pos < rep0 else 0)
            dic[dic_pos] = dic[src]
            dic_pos += 1
        self.dic_pos = dic_pos

    def decode_real2(self, limit: int, buf, pos: int, buf_limit: int) -> int:
        """Decode symbols from ``buf[pos:]`` into the dictionary up to ``limit``.

        Decoding goes on while the input position stays below ``buf_limit``; at
        least one symbol is always decoded. Returns the new input position and
        raises DataError on corrupt input.
        """
        while True:
            limit2 = limit
            if self.check_dic_size == 0:
                rem = self.window_size - self.processed_pos
                if limit - self.dic_pos > rem:
                    limit2 = self.dic_pos + rem
            pos = self._decode_real(limit2, buf, pos, buf_limit)
            if self.processed_pos >= self.window_size:
                self.check_dic_size = self.window_size
            self.write_rem(limit)
            if not (
                self.dic_pos < limit
                and pos < buf_limit
                and self.remain_len < MATCH_SPEC_LEN_START
            ):
                break
        if self.remain_len > MATCH_SPEC_LEN_START:
            self.remain_len = MATCH_SPEC_LEN_START
        return pos

    def _decode_real(self, limit: int, buf, pos: int, buf_limit: int) -> int:
        probs = self.probs
        dic = self.dic
        dic_buf_size = self.dic_buf_size
        dic_pos = self.dic_pos
        processed_pos = self.processed_pos
        check_dic_size = self.check_dic_size
        state = self.state
        rep0, rep1, rep2, rep3 = self.reps
        lc = self.props.lc
        lit_shift = 8 - lc
        pb_mask = (1 << self.props.pb) - 1
        lp_mask = (1 << self.props.lp) - 1
        rng = self.range
        code = self.code
        length = 0

        def bit(index: int) -> int:
            nonlocal rng, code, pos
            if rng < TOP_VALUE:
                rng <<= 8
                code = ((code << 8) | buf[pos]) & _MASK32
                pos += 1
            ttt = probs[index]
            bound = (rng >> NUM_BIT_MODEL_TOTAL_BITS) * ttt
            if code < bound:
                rng = bound
                probs[index] = ttt + ((BIT_MODEL_TOTAL - ttt) >> NUM_MOVE_BITS)
                return 0
            rng -= bound
            code -= bound
            probs[index] = ttt - (ttt >> NUM_MOVE_BITS)
            return 1

        def tree(base: int, top: int) -> int:
            i = 1
            while i < top:
                i = (i << 1) | bit(base + i)
            return i - top

        first = True
        while first or (dic_pos < limit and pos < buf_limit):
            first = False
            pos_state = processed_pos & pb_mask

            if bit(IS_MATCH + (state << NUM_POS_BITS_MAX) + pos_state) == 0:
                prob = LITERAL
                if check_dic_size != 0 or processed_pos != 0:
                    prev = dic[(dic_pos if dic_pos else dic_buf_size) - 1]
                    prob += LIT_PROBS * (((processed_pos & lp_mask) << lc) + (prev >> lit_shift))
                symbol = 1
                if state < NUM_LIT_STATES:
                    while symbol < 0x100:
                        symbol = (symbol << 1) | bit(prob + symbol)
                else:
                    match_byte = dic[dic_pos - rep0 + (dic_buf_size if dic_pos < rep0 else 0)]
                    offs = 0x100
                    while symbol < 0x100:
                        match_byte <<= 1
                        b = match_byte & offs
                        if bit(prob + offs + b + symbol):
                            symbol = (symbol << 1) | 1
                            offs &= b
                        else:
                            symbol <<= 1
                            offs &= ~b
                dic[dic_pos] = symbol & 0xFF
                dic_pos += 1
                processed_pos += 1
                state = LITERAL_NEXT_STATES[state]
                continue

            if bit(IS_REP + state) == 0:
                state += NUM_STATES
                prob = LEN_CODER
            else:
                if check_dic_size == 0 and processed_pos == 0:
                    raise DataError("repeat match before any data")
                if bit(IS_REP_G0 + state) == 0:
                    if bit(IS_REP0_LONG + (state << NUM_POS_BITS_MAX) + pos_state) == 0:
                        dic[dic_pos] = dic[dic_pos - rep0 + (dic_buf_size if dic_pos < rep0 else 0)]
                        dic_pos += 1
                        processed_pos += 1
                        state = 9 if state < NUM_LIT_STATES else 11
                        continue
                else:
                    if bit(IS_REP_G1 + state) == 0:
                        distance = rep1
                    else:
                        if bit(IS_REP_G2 + state) == 0:
                            distance = rep2
                        else:
                            distance = rep3
                            rep3 = rep2
                        rep2 = rep1
                    rep1 = rep0
                    rep0 = distance
                state = 8 if state < NUM_LIT_STATES else 11
                prob = REP_LEN_CODER

            if bit(prob + LEN_CHOICE) == 0:
                base = prob + LEN_LOW + (pos_state << LEN_NUM_LOW_BITS)
                offset = 0
                top = LEN_NUM_LOW_SYMBOLS
            elif bit(prob + LEN_CHOICE2) == 0:
                base = prob + LEN_MID + (pos_state << LEN_NUM_MID_BITS)
                offset = LEN_NUM_LOW_SYMBOLS
                top = LEN_NUM_MID_SYMBOLS
            else:
                base = prob + LEN_HIGH
                offset = LEN_NUM_LOW_SYMBOLS + LEN_NUM_MID_SYMBOLS
                top = LEN_NUM_HIGH_SYMBOLS
            length = tree(base, top) + offset

            if state >= NUM_STATES:
                len_state = min(length, NUM_LEN_TO_POS_STATES - 1)
                distance = tree(POS_SLOT + (len_state << NUM_POS_SLOT_BITS), 1 << NUM_POS_SLOT_BITS)
                if distance >= START_POS_MODEL_INDEX:
                    pos_slot = distance
                    num_direct_bits = (distance >> 1) - 1
                    distance = 2 | (distance & 1)
                    if pos_slot < END_POS_MODEL_INDEX:
                        distance <<= num_direct_bits
                        prob = SPEC_POS + distance - pos_slot - 1
                        mask = 1
                        i = 1
                        for _ in range(num_direct_bits):
                            if bit(prob + i):
                                i = i + i + 1
                                distance |= mask
                            else:
                                i = i + i
                            mask <<= 1
                    else:
                        for _ in range(num_direct_bits - NUM_ALIGN_BITS):
                            if rng < TOP_VALUE:
                                rng <<= 8
                                code = ((code << 8) | buf[pos]) & _MASK32
                                pos += 1
                            rng >>= 1
                            diff = (code - rng) & _MASK32
                            t = _MASK32 if diff >> 31 else 0
                            distance = ((distance << 1) + ((t + 1) & _MASK32)) & _MASK32
                            code = (diff + (rng & t)) & _MASK32
                        distance = (distance << NUM_ALIGN_BITS) & _MASK32
                        i = 1
                        for mask in (1, 2, 4, 8):
                            if bit(ALIGN + i):
                                i = i + i + 1
                                distance |= mask
                            else:
                                i = i + i
                        if distance == _MASK32:
                            length += MATCH_SPEC_LEN_START
                            state -= NUM_STATES
                            break
                rep3 = rep2
                rep2 = rep1
                rep1 = rep0
                rep0 = distance + 1
                if check_dic_size == 0:
                    if distance >= processed_pos:
                        raise DataError("match distance beyond decoded data")
                elif distance >= check_dic_size:
                    raise DataError("match distance beyond dictionary")
                state = NUM_LIT_STATES if state < NUM_STATES + NUM_LIT_STATES else NUM_LIT_STATES + 3

            length += MATCH_MIN_LEN

            if limit == dic_pos:
                raise DataError("match with no room left in the output")

            cur_len = min(limit - dic_pos, length)
            src = dic_pos - rep0 + (dic_buf_size if dic_pos < rep0 else 0)
            processed_pos += cur_len
            length -= cur_len
            if src + cur_len <= dic_buf_size:
                gap = dic_pos - src
                if 0 < gap < cur_len:
                    chunk = bytes(dic[src:dic_pos])
                    repeated = chunk * (cur_len // gap + 1)
                    dic[dic_pos:dic_pos + cur_len] = repeated[:cur_len]
                else:
                    dic[dic_pos:dic_pos + cur_len] = dic[src:src + cur_len]
                dic_pos += cur_len
            else:
                for _ in range(cur_len):
                    dic[dic_pos] = dic[src]
                    dic_pos += 1
                    src += 1
                    if src == dic_buf_size:
                        src = 0

        if rng < TOP_VALUE:
            rng <<= 8
            code = ((code << 8) | buf[pos]) & _MASK32
            pos += 1

        self.range = rng
        self.code = code
        self.remain_len = length
        self.dic_pos = dic_pos
        self.processed_pos = processed_pos
        self.reps = [rep0, rep1, rep2, rep3]
        self.state = state
        return pos

    def try_dummy(self, buf, start: int, end: int) -> DummyResult:
        """Check whether ``buf[start:end]`` holds a whole symbol, without changing state."""
        rng = self.range
        code = self.code
        pos = start
        probs = self.probs
        state = self.state
        props = self.props

        def normalize() -> None:
            nonlocal rng, code, pos
            if rng < TOP_VALUE:
                if pos >= end:
                    raise _InputExhausted
                rng <<= 8
                code = ((code << 8) | buf[pos]) & _MASK32
                pos += 1

        def bit(index: int) -> int:
            nonlocal rng, code
            normalize()
            bound = (rng >> NUM_BIT_MODEL_TOTAL_BITS) * probs[index]
            if code < bound:
                rng = bound
                return 0
            rng -= bound
            code -= bound
            return 1

        def tree(base: int, top: int) -> int:
            i = 1
            while i < top:
                i = (i << 1) | bit(base + i)
            return i - top

        try:
            pos_state = self.processed_pos & ((1 << props.pb) - 1)
            if bit(IS_MATCH + (state << NUM_POS_BITS_MAX) + pos_state) == 0:
                prob = LITERAL
                if self.check_dic_size != 0 or self.processed_pos != 0:
                    dic_pos = self.dic_pos
                    prev = self.dic[(dic_pos if dic_pos else self.dic_buf_size) - 1]
                    prob += LIT_PROBS * (
                        ((self.processed_pos & ((1 << props.lp) - 1)) << props.lc)
                        + (prev >> (8 - props.lc))
                    )
                symbol = 1
                if state < NUM_LIT_STATES:
                    while symbol < 0x100:
                        symbol = (symbol << 1) | bit(prob + symbol)
                else:
                    rep0 = self.reps[0]
                    dic_pos = self.dic_pos
                    match_byte = self.dic[
                        dic_pos - rep0 + (self.dic_buf_size if dic_pos < rep0 else 0)
                    ]
                    offs = 0x100
                    while symbol < 0x100:
                        match_byte <<= 1
                        b = match_byte & offs
                        if bit(prob + offs + b + symbol):
                            symbol = (symbol << 1) | 1
                            offs &= b
                        else:
                            symbol <<= 1
                            offs &= ~b
                result = DummyResult.LIT
            else:
                if bit(IS_REP + state) == 0:
                    state = 0
                    prob = LEN_CODER
                    result = DummyResult.MATCH
                else:
                    result = DummyResult.REP
                    if bit(IS_REP_G0 + state) == 0:
                        if bit(IS_REP0_LONG + (state << NUM_POS_BITS_MAX) + pos_state) == 0:
                            normalize()
                            return DummyResult.REP
                    elif bit(IS_REP_G1 + state):
                        bit(IS_REP_G2 + state)
                    state = NUM_STATES
                    prob = REP_LEN_CODER

                if bit(prob + LEN_CHOICE) == 0:
                    base = prob + LEN_LOW + (pos_state << LEN_NUM_LOW_BITS)
                    offset = 0
                    top = LEN_NUM_LOW_SYMBOLS
                elif bit(prob + LEN_CHOICE2) == 0:
                    base = prob + LEN_MID + (pos_state << LEN_NUM_MID_BITS)
                    offset = LEN_NUM_LOW_SYMBOLS
                    top = LEN_NUM_MID_SYMBOLS
                else:
                    base = prob + LEN_HIGH
                    offset = LEN_NUM_LOW_SYMBOLS + LEN_NUM_MID_SYMBOLS
                    top = LEN_NUM_HIGH_SYMBOLS
                length = tree(base, top) + offset

                if state < 4:
                    len_state = min(length, NUM_LEN_TO_POS_STATES - 1)
                    pos_slot = tree(
                        POS_SLOT + (len_state << NUM_POS_SLOT_BITS), 1 << NUM_POS_SLOT_BITS
                    )
                    if pos_slot >= START_POS_MODEL_INDEX:
                        num_direct_bits = (pos_slot >> 1) - 1
                        if pos_slot < END_POS_MODEL_INDEX:
                            prob = SPEC_POS + ((2 | (pos_slot & 1)) << num_direct_bits) - pos_slot - 1
                        else:
                            for _ in range(num_direct_bits - NUM_ALIGN_BITS):
                                normalize()
                                rng >>= 1
                                diff = (code - rng) & _MASK32
                                keep = ((diff >> 31) - 1) & _MASK32
                                code = (code - (rng & keep)) & _MASK32
                            prob = ALIGN
                            num_direct_bits = NUM_ALIGN_BITS
                        i = 1
                        for _ in range(num_direct_bits):
                            i = (i << 1) | bit(prob + i)
            normalize()
        except _InputExhausted:
            return DummyResult.ERROR
        return result