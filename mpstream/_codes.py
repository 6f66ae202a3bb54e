"""MessagePack format codes, code predicates, and resource limits.

Every encoded value starts with one framing byte.  The fix-prefix families
(positive/negative fixnum, fixstr, fixarray, fixmap) carry a small value or
length in the low bits of that byte; everything else is followed by a
big-endian payload or length prefix.
"""

from __future__ import annotations

# ── Single-byte integers ─────────────────────────────────────
POS_FIXNUM_HIGH: int = 0x7F
NEG_FIXNUM_LOW: int = 0xE0

# ── Scalars ──────────────────────────────────────────────────
NIL: int = 0xC0
NEVER_USED: int = 0xC1
FALSE: int = 0xC2
TRUE: int = 0xC3

FLOAT: int = 0xCA
DOUBLE: int = 0xCB

UINT8: int = 0xCC
UINT16: int = 0xCD
UINT32: int = 0xCE
UINT64: int = 0xCF

INT8: int = 0xD0
INT16: int = 0xD1
INT32: int = 0xD2
INT64: int = 0xD3

# ── Strings and binary ───────────────────────────────────────
FIXSTR_LOW: int = 0xA0
FIXSTR_HIGH: int = 0xBF
FIXSTR_MASK: int = 0x1F
STR8: int = 0xD9
STR16: int = 0xDA
STR32: int = 0xDB

BIN8: int = 0xC4
BIN16: int = 0xC5
BIN32: int = 0xC6

# ── Containers ───────────────────────────────────────────────
FIXARRAY_LOW: int = 0x90
FIXARRAY_HIGH: int = 0x9F
FIXARRAY_MASK: int = 0x0F
ARRAY16: int = 0xDC
ARRAY32: int = 0xDD

FIXMAP_LOW: int = 0x80
FIXMAP_HIGH: int = 0x8F
FIXMAP_MASK: int = 0x0F
MAP16: int = 0xDE
MAP32: int = 0xDF

# ── Extensions ───────────────────────────────────────────────
FIXEXT1: int = 0xD4
FIXEXT2: int = 0xD5
FIXEXT4: int = 0xD6
FIXEXT8: int = 0xD7
FIXEXT16: int = 0xD8
EXT8: int = 0xC7
EXT16: int = 0xC8
EXT32: int = 0xC9

# Payload size of each fixext code.
FIXEXT_SIZES = {FIXEXT1: 1, FIXEXT2: 2, FIXEXT4: 4, FIXEXT8: 8, FIXEXT16: 16}
# Reverse table: exact payload size -> fixext code.
FIXEXT_FOR_SIZE = {size: code for code, size in FIXEXT_SIZES.items()}

# ── Extension IDs with built-in meaning ──────────────────────
TIMESTAMP_EXT_ID: int = -1
INTERNED_STRING_EXT_ID: int = -128

# ── Interned strings ─────────────────────────────────────────
MIN_INTERNED_STRING_LEN: int = 3
MAX_DICT_LEN: int = 65_535

# ── Resource limits ──────────────────────────────────────────
# Length prefixes come from untrusted input, so payloads are read in chunks
# of at most this many bytes rather than allocated up front.
READ_CHUNK: int = 64 * 1024

UINT64_MAX: int = 2**64 - 1
INT64_MIN: int = -(2**63)
INT64_MAX: int = 2**63 - 1
WIDTHS = (8, 16, 32, 64)


def int_bounds(width: int, signed: bool = True):
    """Inclusive (lo, hi) bounds of an integer of the given bit width."""
    if signed:
        return -(1 << (width - 1)), (1 << (width - 1)) - 1
    return 0, (1 << width) - 1


# ── Predicates ───────────────────────────────────────────────

def is_fixed_num(c: int) -> bool:
    return c <= POS_FIXNUM_HIGH or c >= NEG_FIXNUM_LOW


def is_fixed_map(c: int) -> bool:
    return FIXMAP_LOW <= c <= FIXMAP_HIGH


def is_fixed_array(c: int) -> bool:
    return FIXARRAY_LOW <= c <= FIXARRAY_HIGH


def is_fixed_string(c: int) -> bool:
    return FIXSTR_LOW <= c <= FIXSTR_HIGH


def is_string(c: int) -> bool:
    return is_fixed_string(c) or STR8 <= c <= STR32


def is_bin(c: int) -> bool:
    return BIN8 <= c <= BIN32


def is_fixed_ext(c: int) -> bool:
    return FIXEXT1 <= c <= FIXEXT16


def is_ext(c: int) -> bool:
    return is_fixed_ext(c) or EXT8 <= c <= EXT32


def is_array(c: int) -> bool:
    return is_fixed_array(c) or c == ARRAY16 or c == ARRAY32


def is_map(c: int) -> bool:
    return is_fixed_map(c) or c == MAP16 or c == MAP32


def is_int(c: int) -> bool:
    """True for every integer family: fixnums, uint8–64 and int8–64."""
    return is_fixed_num(c) or UINT8 <= c <= INT64
