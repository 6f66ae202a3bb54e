"""Extension registry: ext ids in [-128, 127] mapped to Python types.

A slot holds the registered type and, optionally, payload functions
``encode(value) -> bytes`` and ``decode(payload) -> value``.  When the
functions are omitted the type's ordinary codec produces and consumes the
payload, so a registered dataclass travels as an ext record whose payload
is its usual map (or array) encoding.

Mutations publish a fresh slot table, so readers never lock.  Each
registry owns the strategy cache compiled against it; a mutation drops
that cache.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, NamedTuple, Optional

from ._codes import INTERNED_STRING_EXT_ID, TIMESTAMP_EXT_ID
from ._dispatch import Dispatcher, type_codecs_generation
from ._errors import DuplicateExtIdError, ValueOverflowError
from ._timestamp import decode_timestamp, encode_timestamp

logger = logging.getLogger(__name__)

ExtEncodeFunc = Callable[[Any], bytes]
ExtDecodeFunc = Callable[[bytes], Any]


class ExtInfo(NamedTuple):
    type: Any
    encode: Optional[ExtEncodeFunc] = None
    decode: Optional[ExtDecodeFunc] = None


def check_ext_id(ext_id: int) -> None:
    if not -128 <= ext_id <= 127:
        raise ValueOverflowError(ext_id, "ext id (int8)")


class ExtensionRegistry:
    """Table of extension slots.

    With ``reject_duplicates=True`` registering an id that is already taken
    raises `DuplicateExtIdError`; otherwise the new slot replaces the old.
    """

    def __init__(self, *, reject_duplicates: bool = False) -> None:
        self.reject_duplicates = reject_duplicates
        self._slots: Dict[int, ExtInfo] = {}
        self._ids: Dict[Any, int] = {}
        self._lock = threading.Lock()
        self._dispatcher: Optional[Dispatcher] = None

    def register(self, ext_id: int, tp: Any,
                 encode: Optional[ExtEncodeFunc] = None,
                 decode: Optional[ExtDecodeFunc] = None) -> None:
        check_ext_id(ext_id)
        if ext_id == INTERNED_STRING_EXT_ID:
            raise ValueError(
                "ext id {} is reserved for interned strings".format(ext_id))
        with self._lock:
            old = self._slots.get(ext_id)
            if old is not None and self.reject_duplicates:
                raise DuplicateExtIdError(ext_id)
            slots = dict(self._slots)
            slots[ext_id] = ExtInfo(tp, encode, decode)
            self._publish(slots)
        if old is not None:
            logger.debug("ext id %d: %r replaced by %r", ext_id, old.type, tp)
        else:
            logger.debug("ext id %d registered for %r", ext_id, tp)

    def unregister(self, ext_id: int) -> None:
        check_ext_id(ext_id)
        with self._lock:
            if ext_id not in self._slots:
                return
            slots = dict(self._slots)
            del slots[ext_id]
            self._publish(slots)
        logger.debug("ext id %d unregistered", ext_id)

    def _publish(self, slots: Dict[int, ExtInfo]) -> None:
        ids = {info.type: ext_id for ext_id, info in slots.items()}
        self._slots, self._ids = slots, ids
        self._dispatcher = None

    def lookup(self, ext_id: int) -> Optional[ExtInfo]:
        return self._slots.get(ext_id)

    def id_for_type(self, tp: Any) -> Optional[int]:
        """Ext id registered for `tp` or its nearest registered base class."""
        ids = self._ids
        if not ids:
            return None
        for klass in getattr(tp, "__mro__", (tp,)):
            ext_id = ids.get(klass)
            if ext_id is not None:
                return ext_id
        return None

    def copy(self) -> "ExtensionRegistry":
        other = ExtensionRegistry(reject_duplicates=self.reject_duplicates)
        other._publish(dict(self._slots))
        return other

    def __contains__(self, ext_id: object) -> bool:
        return ext_id in self._slots

    @property
    def dispatcher(self) -> Dispatcher:
        """Strategy cache compiled against the current slots."""
        d = self._dispatcher
        if d is None or d.generation != type_codecs_generation():
            with self._lock:
                d = self._dispatcher
                if d is None or d.generation != type_codecs_generation():
                    d = Dispatcher(self)
                    self._dispatcher = d
        return d


def _new_default_registry() -> ExtensionRegistry:
    reg = ExtensionRegistry()
    reg.register(TIMESTAMP_EXT_ID, datetime, encode_timestamp, decode_timestamp)
    return reg


# Process-wide registry used by every encoder/decoder without an override.
default_registry = _new_default_registry()


def register_ext(ext_id: int, tp: Any,
                 encode: Optional[ExtEncodeFunc] = None,
                 decode: Optional[ExtDecodeFunc] = None) -> None:
    """Register `tp` under `ext_id` in the default registry."""
    default_registry.register(ext_id, tp, encode, decode)


def unregister_ext(ext_id: int) -> None:
    default_registry.unregister(ext_id)
