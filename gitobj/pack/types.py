"""Packed object types and the errors raised while reading packs."""

from __future__ import annotations

from enum import IntEnum


class PackedObjectType(IntEnum):
    """The type of an element stored in a packfile."""

    NONE = 0
    COMMIT = 1
    TREE = 2
    BLOB = 3
    TAG = 4
    OBJ_OFS_DELTA = 6
    OBJ_REF_DELTA = 7

    @classmethod
    def _missing_(cls, value):
        raise ValueError(f"unknown object type: {value}")

    def __str__(self) -> str:
        return _TYPE_NAMES[self]

    def __format__(self, spec: str) -> str:
        return format(str(self), spec)


_TYPE_NAMES = {
    PackedObjectType.NONE: "<none>",
    PackedObjectType.COMMIT: "commit",
    PackedObjectType.TREE: "tree",
    PackedObjectType.BLOB: "blob",
    PackedObjectType.TAG: "tag",
    PackedObjectType.OBJ_OFS_DELTA: "obj_ofs_delta",
    PackedObjectType.OBJ_REF_DELTA: "obj_ref_delta",
}


class PackError(Exception):
    """Base class for errors raised while reading packs and indexes."""

    message = "pack error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(self.message if message is None else message)


class UnsupportedVersionError(PackError):
    """The pack index uses a version that cannot be read."""

    def __init__(self, got: int) -> None:
        self.got = got
        super().__init__(f"unsupported version: {got}")


class NotFoundError(PackError, LookupError):
    """An object is absent from a pack index."""

    message = "object not found in index"


def is_not_found(err: BaseException | None) -> bool:
    """Return whether ``err`` reports an object missing from an index."""
    return isinstance(err, NotFoundError)


class NoSuchObjectError(PackError, LookupError):
    """No storage holds the requested object."""

    def __init__(self, oid: bytes) -> None:
        self.oid = bytes(oid)
        super().__init__(f"no such object: {self.oid.hex()}")


def is_no_such_object(err: BaseException | None) -> bool:
    """Return whether ``err`` reports an object that exists nowhere."""
    return isinstance(err, NoSuchObjectError)


class ShortFanoutError(PackError):
    """The fanout table of an index is truncated."""

    message = "too short fanout table"


class BadPackHeaderError(PackError):
    """A packfile does not start with the expected magic bytes."""

    message = "bad pack header"


class InvalidDeltaError(PackError):
    """Delta instructions are malformed or do not fit their base."""

    message = "invalid delta data"


class UnrecognizedObjectTypeError(PackError):
    """A packed element carries a type that is not defined."""

    message = "unrecognized object type"