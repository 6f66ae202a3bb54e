"""Streaming MessagePack encoder.

`Encoder` exposes the primitive writers (one call per wire element) and a
top-level `encode()` that picks a strategy from the runtime type of each
value.  `encode_value()` encodes against a declared annotation instead,
which is how width markers like `Int16` or `Float32` take effect.
"""

from __future__ import annotations

import io
import struct
from functools import partialmethod
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from . import _codes as codes
from ._errors import UnsupportedTypeError, ValueOverflowError
from ._ext import ExtensionRegistry, check_ext_id, default_registry
from ._intern import encode_interned_string

_B = struct.Struct(">B")
_BB = struct.Struct(">BB")
_Bb = struct.Struct(">Bb")
_BH = struct.Struct(">BH")
_Bh = struct.Struct(">Bh")
_BI = struct.Struct(">BI")
_Bi = struct.Struct(">Bi")
_BQ = struct.Struct(">BQ")
_Bq = struct.Struct(">Bq")
_Bf = struct.Struct(">Bf")
_Bd = struct.Struct(">Bd")
_BBb = struct.Struct(">BBb")
_BHb = struct.Struct(">BHb")
_BIb = struct.Struct(">BIb")

_NIL = b"\xc0"
_FALSE = b"\xc2"
_TRUE = b"\xc3"


class Encoder:
    """Writes MessagePack values to a stream.

    `stream` is anything with a ``write(bytes)`` method.  When omitted the
    encoder writes to an internal buffer whose contents `getvalue()`
    returns.

    Options (keyword-only, also settable as attributes):
      sort_map_keys         emit str-keyed maps in byte-lexicographic order
      omit_empty_default    treat every record field as omit-empty
      use_interned_strings  intern every candidate string (ext -128)
      extensions            registry override; None means the default one
    """

    def __init__(self, stream: Any = None, *,
                 sort_map_keys: bool = False,
                 omit_empty_default: bool = False,
                 use_interned_strings: bool = False,
                 extensions: Optional[ExtensionRegistry] = None) -> None:
        self.sort_map_keys = sort_map_keys
        self.omit_empty_default = omit_empty_default
        self.use_interned_strings = use_interned_strings
        self.extensions = extensions
        self._dict: Dict[str, int] = {}
        self.reset(stream)

    def reset(self, stream: Any = None, *,
              seed: Union[Iterable[str], Mapping[str, int], None] = None) -> None:
        """Switch to a new stream and replace the interned-string dictionary.

        `seed` gives the initial dictionary, either as strings in index
        order or as a ``{string: index}`` mapping.
        """
        self._buf: Optional[io.BytesIO] = None
        if stream is None:
            self._buf = io.BytesIO()
            stream = self._buf
        self._write = stream.write
        if seed is None:
            self._dict = {}
        elif isinstance(seed, Mapping):
            if sorted(seed.values()) != list(range(len(seed))):
                raise ValueError("seed indices must be exactly 0..{}".format(len(seed) - 1))
            self._dict = dict(seed)
        else:
            self._dict = {s: i for i, s in enumerate(seed)}

    def getvalue(self) -> bytes:
        if self._buf is None:
            raise ValueError("encoder is writing to a caller-supplied stream")
        return self._buf.getvalue()

    @property
    def dispatcher(self) -> Any:
        reg = self.extensions if self.extensions is not None else default_registry
        return reg.dispatcher

    # ── Top level ──

    def encode(self, *values: Any) -> None:
        """Encode each value according to its runtime type."""
        for v in values:
            t = type(v)
            if t is str:
                self.encode_string(v)
            elif v is None:
                self._write(_NIL)
            elif t is bool:
                self._write(_TRUE if v else _FALSE)
            elif t is int:
                self.encode_integer(v)
            elif t is float:
                self.encode_float64(v)
            elif t is bytes:
                self.encode_bytes(v)
            elif t is object:
                raise UnsupportedTypeError("object", encoding=True)
            else:
                self.dispatcher.encoder_for(t)(self, v)

    def encode_value(self, value: Any, tp: Any) -> None:
        """Encode `value` as the annotation `tp` describes."""
        if value is None:
            self._write(_NIL)
        else:
            self.dispatcher.encoder_for(tp)(self, value)

    def encode_raw(self, data: bytes) -> None:
        """Write already-encoded MessagePack bytes verbatim."""
        self._write(bytes(data))

    # ── Scalars ──

    def encode_nil(self) -> None:
        self._write(_NIL)

    def encode_bool(self, v: bool) -> None:
        self._write(_TRUE if v else _FALSE)

    def encode_int(self, v: int, width: int = 64) -> None:
        """Signed integer, range-checked against `width`, narrowest form."""
        lo, hi = codes.int_bounds(width)
        if not lo <= v <= hi:
            raise ValueOverflowError(v, "int{}".format(width))
        self._encode_signed(v)

    def encode_uint(self, v: int, width: int = 64) -> None:
        """Unsigned integer, range-checked against `width`, narrowest form."""
        lo, hi = codes.int_bounds(width, signed=False)
        if not lo <= v <= hi:
            raise ValueOverflowError(v, "uint{}".format(width))
        self._encode_unsigned(v)

    encode_int8 = partialmethod(encode_int, width=8)
    encode_int16 = partialmethod(encode_int, width=16)
    encode_int32 = partialmethod(encode_int, width=32)
    encode_int64 = partialmethod(encode_int, width=64)
    encode_uint8 = partialmethod(encode_uint, width=8)
    encode_uint16 = partialmethod(encode_uint, width=16)
    encode_uint32 = partialmethod(encode_uint, width=32)
    encode_uint64 = partialmethod(encode_uint, width=64)

    def encode_integer(self, v: int) -> None:
        """Python int: unsigned forms when non-negative, signed otherwise."""
        if v >= 0:
            if v > codes.UINT64_MAX:
                raise ValueOverflowError(v, "uint64")
            self._encode_unsigned(v)
        else:
            if v < codes.INT64_MIN:
                raise ValueOverflowError(v, "int64")
            self._encode_signed(v)

    def _encode_signed(self, v: int) -> None:
        if -32 <= v <= codes.POS_FIXNUM_HIGH:
            self._write(_B.pack(v & 0xFF))
        elif -128 <= v <= 127:
            self._write(_Bb.pack(codes.INT8, v))
        elif -32768 <= v <= 32767:
            self._write(_Bh.pack(codes.INT16, v))
        elif -(1 << 31) <= v < (1 << 31):
            self._write(_Bi.pack(codes.INT32, v))
        else:
            self._write(_Bq.pack(codes.INT64, v))

    def _encode_unsigned(self, v: int) -> None:
        if v <= codes.POS_FIXNUM_HIGH:
            self._write(_B.pack(v))
        elif v <= 0xFF:
            self._write(_BB.pack(codes.UINT8, v))
        elif v <= 0xFFFF:
            self._write(_BH.pack(codes.UINT16, v))
        elif v <= 0xFFFFFFFF:
            self._write(_BI.pack(codes.UINT32, v))
        else:
            self._write(_BQ.pack(codes.UINT64, v))

    def encode_float32(self, v: float) -> None:
        try:
            self._write(_Bf.pack(codes.FLOAT, v))
        except OverflowError:
            raise ValueOverflowError(v, "float32") from None

    def encode_float64(self, v: float) -> None:
        self._write(_Bd.pack(codes.DOUBLE, v))

    # ── Strings and binary ──

    def encode_string(self, s: str) -> None:
        if self.use_interned_strings or self._dict:
            encode_interned_string(self, s, self.use_interned_strings)
        else:
            self._encode_str_raw(s.encode("utf-8", "surrogateescape"))

    def _encode_str_raw(self, raw: bytes) -> None:
        n = len(raw)
        if n < 32:
            self._write(_B.pack(codes.FIXSTR_LOW | n) + raw)
        elif n <= 0xFF:
            self._write(_BB.pack(codes.STR8, n) + raw)
        elif n <= 0xFFFF:
            self._write(_BH.pack(codes.STR16, n) + raw)
        elif n <= 0xFFFFFFFF:
            self._write(_BI.pack(codes.STR32, n))
            self._write(raw)
        else:
            raise ValueOverflowError(n, "str32 length")

    def encode_bytes(self, b: Optional[bytes]) -> None:
        if b is None:
            self._write(_NIL)
            return
        n = len(b)
        if n <= 0xFF:
            self._write(_BB.pack(codes.BIN8, n))
        elif n <= 0xFFFF:
            self._write(_BH.pack(codes.BIN16, n))
        elif n <= 0xFFFFFFFF:
            self._write(_BI.pack(codes.BIN32, n))
        else:
            raise ValueOverflowError(n, "bin32 length")
        self._write(bytes(b))

    # ── Container headers ──

    def encode_array_len(self, n: int) -> None:
        if n < 16:
            self._write(_B.pack(codes.FIXARRAY_LOW | n))
        elif n <= 0xFFFF:
            self._write(_BH.pack(codes.ARRAY16, n))
        elif n <= 0xFFFFFFFF:
            self._write(_BI.pack(codes.ARRAY32, n))
        else:
            raise ValueOverflowError(n, "array32 length")

    def encode_map_len(self, n: int) -> None:
        if n < 16:
            self._write(_B.pack(codes.FIXMAP_LOW | n))
        elif n <= 0xFFFF:
            self._write(_BH.pack(codes.MAP16, n))
        elif n <= 0xFFFFFFFF:
            self._write(_BI.pack(codes.MAP32, n))
        else:
            raise ValueOverflowError(n, "map32 length")

    # ── Extensions ──

    def encode_ext_header(self, ext_id: int, length: int) -> None:
        check_ext_id(ext_id)
        fixed = codes.FIXEXT_FOR_SIZE.get(length)
        if fixed is not None:
            self._write(_Bb.pack(fixed, ext_id))
        elif length <= 0xFF:
            self._write(_BBb.pack(codes.EXT8, length, ext_id))
        elif length <= 0xFFFF:
            self._write(_BHb.pack(codes.EXT16, length, ext_id))
        elif length <= 0xFFFFFFFF:
            self._write(_BIb.pack(codes.EXT32, length, ext_id))
        else:
            raise ValueOverflowError(length, "ext32 length")

    def encode_ext(self, ext_id: int, payload: bytes) -> None:
        payload = bytes(payload)
        self.encode_ext_header(ext_id, len(payload))
        self._write(payload)

    def _encode_ext_with(self, ext_id: int, enc: Any, v: Any) -> None:
        # Runs `enc` against a scratch buffer, then frames the result.
        buf = io.BytesIO()
        saved = self._write
        self._write = buf.write
        try:
            enc(self, v)
        finally:
            self._write = saved
        self.encode_ext(ext_id, buf.getvalue())
