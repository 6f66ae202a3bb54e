"""Protocols a class can implement to take over its own encoding.

Custom codec: the object writes itself through the encoder's primitive
operations and reads itself back from a decoder.  Decoding creates the
instance with ``cls.__new__(cls)`` and then calls ``__msgpack_decode__``
on it, so ``__init__`` is not run.

Marshal: the object turns itself into a complete MessagePack value
(raw bytes) and restores itself from one.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class CustomEncoder(Protocol):
    def __msgpack_encode__(self, encoder: Any) -> None: ...


@runtime_checkable
class CustomDecoder(Protocol):
    def __msgpack_decode__(self, decoder: Any) -> None: ...


@runtime_checkable
class Marshaler(Protocol):
    def __msgpack_marshal__(self) -> bytes: ...


@runtime_checkable
class Unmarshaler(Protocol):
    def __msgpack_unmarshal__(self, data: bytes) -> None: ...
