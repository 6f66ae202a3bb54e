"""Timestamp extension (ext id -1) for `datetime.datetime`.

Three payload layouts, chosen by the encoder as the narrowest that fits:

    4 bytes   uint32 seconds                       (no fraction, 0 <= s < 2**32)
    8 bytes   uint64 = nanoseconds << 34 | seconds (0 <= s < 2**34)
   12 bytes   uint32 nanoseconds + int64 seconds   (everything else)

Naive datetimes are taken to be UTC.  Decoded values are aware UTC
datetimes; precision is limited to microseconds by `datetime`.
"""

from __future__ import annotations

import struct
from datetime import datetime, timedelta, timezone

from ._errors import InvalidCodeError

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_U32 = struct.Struct(">I")
_U64 = struct.Struct(">Q")
_U32_I64 = struct.Struct(">Iq")


def encode_timestamp(value: datetime) -> bytes:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    delta = value - _EPOCH
    secs = delta.days * 86400 + delta.seconds
    nsec = delta.microseconds * 1000
    if secs >> 34 == 0:
        data = (nsec << 34) | secs
        if data >> 32 == 0:
            return _U32.pack(data)
        return _U64.pack(data)
    return _U32_I64.pack(nsec, secs)


def decode_timestamp(data: bytes) -> datetime:
    n = len(data)
    if n == 4:
        secs = _U32.unpack(data)[0]
        nsec = 0
    elif n == 8:
        v = _U64.unpack(data)[0]
        nsec = v >> 34
        secs = v & 0x3FFFFFFFF
    elif n == 12:
        nsec, secs = _U32_I64.unpack(data)
    else:
        raise InvalidCodeError(n, "timestamp payload length")
    return _EPOCH + timedelta(seconds=secs, microseconds=nsec // 1000)
