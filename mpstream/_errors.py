"""Error categories raised by the encoder and decoder.

Every codec failure is a `MsgpackError` subclass whose `.err` attribute is
one of the ERR_* strings below.  Failures of the underlying stream (short
reads, closed files, OS errors) are not wrapped: they propagate as the
stream raised them.
"""

from __future__ import annotations

from typing import Any

# ── Error codes ──────────────────────────────────────────────
# Grep-friendly, and what the CLI prints in brackets.

ERR_INVALID_CODE: str = "ERR_INVALID_CODE"      # code not valid for the target shape
ERR_UNKNOWN_CODE: str = "ERR_UNKNOWN_CODE"      # byte outside the code table
ERR_OVERFLOW: str = "ERR_OVERFLOW"              # value does not fit the target width
ERR_NOT_SETTABLE: str = "ERR_NOT_SETTABLE"      # decode into an immutable instance
ERR_NULL_DEST: str = "ERR_NULL_DEST"            # decode into None
ERR_UNSUPPORTED: str = "ERR_UNSUPPORTED"        # no codec for the shape
ERR_DUPLICATE_EXT: str = "ERR_DUPLICATE_EXT"    # ext id registered twice
ERR_UNREGISTERED_EXT: str = "ERR_UNREGISTERED_EXT"
ERR_INTERN_INDEX: str = "ERR_INTERN_INDEX"      # interned index past the dictionary
ERR_MISSING_FIELD: str = "ERR_MISSING_FIELD"    # strict mode, required field absent
ERR_ANNOTATION: str = "ERR_ANNOTATION"          # record field annotation not resolvable


class MsgpackError(Exception):
    """Base class for codec errors.

    The `.err` attribute is one of the ERR_* strings above.
    """

    err: str = "ERR_MSGPACK"


class InvalidCodeError(MsgpackError):
    err = ERR_INVALID_CODE

    def __init__(self, code: int, type_name: str) -> None:
        super().__init__(
            "msgpack: invalid code=0x{:02x} decoding {}".format(code, type_name))
        self.code = code
        self.type_name = type_name


class UnknownCodeError(MsgpackError):
    err = ERR_UNKNOWN_CODE

    def __init__(self, code: int) -> None:
        super().__init__("msgpack: unknown code 0x{:02x}".format(code))
        self.code = code


class ValueOverflowError(MsgpackError, OverflowError):
    err = ERR_OVERFLOW

    def __init__(self, value: Any, type_name: str) -> None:
        super().__init__(
            "msgpack: {!r} overflows {}".format(value, type_name))
        self.value = value
        self.type_name = type_name


class NotSettableError(MsgpackError, TypeError):
    err = ERR_NOT_SETTABLE

    def __init__(self, target: Any) -> None:
        super().__init__(
            "msgpack: Decode(nonsettable {})".format(type(target).__name__))
        self.target = target


class NullDestError(MsgpackError, TypeError):
    err = ERR_NULL_DEST

    def __init__(self) -> None:
        super().__init__("msgpack: Decode(None)")


class UnsupportedTypeError(MsgpackError, TypeError):
    """No encoder or decoder exists for `kind`.

    `encoding` tells which direction failed.
    """

    err = ERR_UNSUPPORTED

    def __init__(self, kind: str, encoding: bool) -> None:
        op = "Encode" if encoding else "Decode"
        super().__init__("msgpack: {}(unsupported {})".format(op, kind))
        self.kind = kind
        self.encoding = encoding


class DuplicateExtIdError(MsgpackError):
    err = ERR_DUPLICATE_EXT

    def __init__(self, ext_id: int) -> None:
        super().__init__(
            "msgpack: ext with id {} is already registered".format(ext_id))
        self.ext_id = ext_id


class UnregisteredExtError(MsgpackError):
    err = ERR_UNREGISTERED_EXT

    def __init__(self, ext_id: int) -> None:
        super().__init__("msgpack: unknown ext id={}".format(ext_id))
        self.ext_id = ext_id


class InternIndexError(MsgpackError, IndexError):
    err = ERR_INTERN_INDEX

    def __init__(self, index: int) -> None:
        super().__init__(
            "msgpack: intern string with index={} does not exist".format(index))
        self.index = index


class MissingRequiredFieldError(MsgpackError):
    err = ERR_MISSING_FIELD

    def __init__(self, record: str, name: str) -> None:
        super().__init__(
            "msgpack: Decode({}) missing required field {!r}".format(record, name))
        self.record = record
        self.name = name


class UnresolvedAnnotationError(MsgpackError, TypeError):
    """A record field's string annotation names something not in scope."""

    err = ERR_ANNOTATION

    def __init__(self, record: str, name: str, reason: str) -> None:
        super().__init__(
            "msgpack: cannot resolve annotation of {}.{}: {}".format(record, name, reason))
        self.record = record
        self.name = name
