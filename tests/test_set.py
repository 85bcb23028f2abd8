import struct
import zlib

import pytest

from gitobj.pack.chain import BytesReaderAt
from gitobj.pack.index import V2, Index
from gitobj.pack.packfile import Packfile
from gitobj.pack.set import (
    DelayedObjectReader,
    PackSet,
    PackStorage,
    open_pack_set,
    open_pack_storage,
)
from gitobj.pack.types import NoSuchObjectError, NotFoundError, PackedObjectType

SHA = "decaf" * 8
DATA = b"Hello, world!\n"


def index_bytes(offsets):
    names = sorted(bytes.fromhex(name) for name in offsets)
    fanout = [sum(1 for n in names if n[0] <= i) for i in range(256)]
    buf = b"\xff\x74\x4f\x63\x00\x00\x00\x02"
    buf += struct.pack(">256I", *fanout)
    buf += b"".join(names)
    buf += bytes(4 * len(names))
    buf += b"".join(struct.pack(">I", offsets[n.hex()]) for n in names)
    return fanout, buf


def index_with(offsets):
    fanout, buf = index_bytes(offsets)
    return Index(V2(20), fanout, BytesReaderAt(buf))


def blob_pack():
    return Packfile(
        BytesReaderAt(b"\x3e" + zlib.compress(DATA)),
        20,
        index=index_with({SHA: 0}),
    )


def test_object_opens_a_packed_object():
    pack_set = PackSet([blob_pack()])

    obj = pack_set.object(bytes.fromhex(SHA))

    assert obj.type is PackedObjectType.BLOB
    assert obj.unpack() == DATA


def test_each_visits_packs_in_order_of_prefix_count():
    p1 = Packfile(
        BytesReaderAt(b""), 20, objects=1,
        index=index_with({"aa" + "00" * 19: 1}),
    )
    p2 = Packfile(
        BytesReaderAt(b""), 20, objects=2,
        index=index_with({"aa" + "11" * 19: 1, "aa" + "22" * 19: 2}),
    )
    p3 = Packfile(
        BytesReaderAt(b""), 20, objects=3,
        index=index_with(
            {"aa" + "33" * 19: 3, "aa" + "44" * 19: 4, "aa" + "55" * 19: 5}
        ),
    )
    pack_set = PackSet([p1, p2, p3])
    visited = []

    def fn(pack):
        visited.append(pack)
        raise NotFoundError()

    with pytest.raises(NoSuchObjectError):
        pack_set.each(bytes.fromhex("aa" + "55" * 19), fn)

    assert [pack.objects for pack in visited] == [3, 2, 1]


def test_each_propagates_other_errors():
    pack_set = PackSet([blob_pack(), blob_pack()])
    calls = []

    def fn(pack):
        calls.append(pack)
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError, match="boom"):
        pack_set.each(bytes.fromhex(SHA), fn)
    assert len(calls) == 1


def test_object_missing_everywhere_raises_no_such_object():
    pack_set = PackSet([blob_pack()])

    with pytest.raises(NoSuchObjectError) as info:
        pack_set.object(bytes.fromhex("de" + "00" * 19))
    assert info.value.oid == bytes.fromhex("de" + "00" * 19)


def test_object_with_other_prefix_raises_no_such_object():
    pack_set = PackSet([blob_pack()])

    with pytest.raises(NoSuchObjectError):
        pack_set.object(bytes.fromhex("01" * 20))


def test_close_closes_packs():
    pack = blob_pack()
    pack_set = PackSet([pack])

    pack_set.close()

    assert pack.source.closed is True
    assert pack.index.source.closed is True


def test_delayed_reader_prefixes_loose_header():
    obj = PackSet([blob_pack()]).object(bytes.fromhex(SHA))
    reader = DelayedObjectReader(obj)

    assert reader.read(4) == b"blob"
    assert reader.read() == b" 14\x00" + DATA


def test_pack_storage_opens_objects():
    storage = PackStorage(PackSet([blob_pack()]))

    with storage.open(bytes.fromhex(SHA)) as reader:
        assert reader.read() == b"blob 14\x00" + DATA
    assert storage.is_compressed() is False


def write_repository(root):
    pack_dir = root / "pack"
    pack_dir.mkdir()
    pack = (
        b"PACK"
        + struct.pack(">II", 2, 1)
        + b"\x3e"
        + zlib.compress(DATA)
    )
    (pack_dir / "pack-x.pack").write_bytes(pack)
    (pack_dir / "pack-x.idx").write_bytes(index_bytes({SHA: 12})[1])
    (pack_dir / "pack-y.pack").write_bytes(b"not a pack at all")


def test_open_pack_storage_reads_from_disk(tmp_path):
    write_repository(tmp_path)

    storage = open_pack_storage(tmp_path, 20)
    try:
        assert storage.open(bytes.fromhex(SHA)).read() == b"blob 14\x00" + DATA
    finally:
        storage.close()


def test_open_pack_set_skips_packs_without_index(tmp_path):
    write_repository(tmp_path)

    with open_pack_set(str(tmp_path), 20) as pack_set:
        assert [pack.objects for pack in pack_set.packs] == [1]
        assert pack_set.packs[0].version == 2


def test_open_pack_set_without_pack_directory(tmp_path):
    pack_set = open_pack_set(tmp_path, 20)

    assert pack_set.packs == []
    with pytest.raises(NoSuchObjectError):
        pack_set.object(bytes.fromhex(SHA))