import pytest

from gitobj.pack.types import (
    BadPackHeaderError,
    InvalidDeltaError,
    NoSuchObjectError,
    NotFoundError,
    PackedObjectType,
    PackError,
    ShortFanoutError,
    UnrecognizedObjectTypeError,
    UnsupportedVersionError,
    is_no_such_object,
    is_not_found,
)


@pytest.mark.parametrize(
    "typ, expected",
    [
        (PackedObjectType.NONE, "<none>"),
        (PackedObjectType.COMMIT, "commit"),
        (PackedObjectType.TREE, "tree"),
        (PackedObjectType.BLOB, "blob"),
        (PackedObjectType.TAG, "tag"),
        (PackedObjectType.OBJ_OFS_DELTA, "obj_ofs_delta"),
        (PackedObjectType.OBJ_REF_DELTA, "obj_ref_delta"),
    ],
)
def test_packed_object_type_string(typ, expected):
    assert str(typ) == expected
    assert f"{typ}" == expected


def test_unknown_packed_object_type_raises():
    with pytest.raises(ValueError, match="unknown object type: 5"):
        PackedObjectType(5)


def test_packed_object_type_from_value():
    assert PackedObjectType(3) is PackedObjectType.BLOB
    assert PackedObjectType(6) is PackedObjectType.OBJ_OFS_DELTA


def test_unsupported_version_error():
    err = UnsupportedVersionError(3)
    assert str(err) == "unsupported version: 3"
    assert err.got == 3
    assert isinstance(err, PackError)


def test_is_not_found():
    assert is_not_found(NotFoundError())
    assert str(NotFoundError()) == "object not found in index"


def test_is_not_found_for_other_errors():
    assert not is_not_found(PackError("misc"))
    assert not is_not_found(None)


def test_no_such_object_error():
    err = NoSuchObjectError(b"\xde\xca\xf0")
    assert err.oid == b"\xde\xca\xf0"
    assert "decaf0" in str(err)
    assert is_no_such_object(err)
    assert not is_no_such_object(NotFoundError())
    assert not is_not_found(err)


@pytest.mark.parametrize(
    "cls, message",
    [
        (ShortFanoutError, "too short fanout table"),
        (BadPackHeaderError, "bad pack header"),
        (InvalidDeltaError, "invalid delta data"),
        (UnrecognizedObjectTypeError, "unrecognized object type"),
    ],
)
def test_default_messages(cls, message):
    assert str(cls()) == message


def test_custom_message_overrides_default():
    assert str(InvalidDeltaError("invalid delta header")) == "invalid delta header"