"""Byte source for the decoder.

Wraps either an in-memory buffer or a file-like object with a `read`
method.  Streams are never read past the value being decoded: the only
lookahead is the single byte held by `peek_byte`.
"""

from __future__ import annotations

from typing import Any, List, Optional

from ._codes import READ_CHUNK


class Reader:
    __slots__ = ("_data", "_pos", "_src", "_rec")

    def __init__(self, source: Any = b"") -> None:
        if isinstance(source, (bytes, bytearray, memoryview)):
            self._data = bytes(source)
            self._src = None
        else:
            self._data = b""
            self._src = source
        self._pos = 0
        self._rec: Optional[List[bytes]] = None

    def _pull(self, n: int) -> bytes:
        # Exactly n bytes from the underlying stream, in bounded chunks.
        if self._src is None:
            raise EOFError("msgpack: unexpected end of input")
        parts = []
        need = n
        while need > 0:
            chunk = self._src.read(min(need, READ_CHUNK))
            if not chunk:
                raise EOFError("msgpack: unexpected end of input")
            parts.append(chunk)
            need -= len(chunk)
        return b"".join(parts)

    def read(self, n: int) -> bytes:
        avail = len(self._data) - self._pos
        if n <= avail:
            out = self._data[self._pos:self._pos + n]
            self._pos += n
        else:
            head = self._data[self._pos:]
            self._data = b""
            self._pos = 0
            out = head + self._pull(n - len(head))
        if self._rec is not None:
            self._rec.append(out)
        return out

    def read_byte(self) -> int:
        if self._pos < len(self._data):
            c = self._data[self._pos]
            self._pos += 1
            if self._rec is not None:
                self._rec.append(bytes((c,)))
            return c
        return self.read(1)[0]

    def peek_byte(self) -> int:
        if self._pos >= len(self._data):
            self._data = self._pull(1)
            self._pos = 0
        return self._data[self._pos]

    def skip(self, n: int) -> None:
        """Discard n bytes without keeping them."""
        if self._rec is not None:
            self.read(n)
            return
        avail = len(self._data) - self._pos
        if n <= avail:
            self._pos += n
            return
        n -= avail
        self._data = b""
        self._pos = 0
        if self._src is None:
            raise EOFError("msgpack: unexpected end of input")
        while n > 0:
            chunk = self._src.read(min(n, READ_CHUNK))
            if not chunk:
                raise EOFError("msgpack: unexpected end of input")
            n -= len(chunk)

    # ── Raw capture ──

    def start_capture(self) -> None:
        self._rec = []

    def stop_capture(self) -> bytes:
        rec, self._rec = self._rec, None
        return b"".join(rec or ())
