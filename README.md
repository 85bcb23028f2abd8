# gitobj

Read objects out of Git packfiles, and encode and decode Git tree and tag
objects. Pure Python, using only the standard library.

## Installing

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Reading packed objects

`open_pack_storage` in `gitobj.pack.set` looks in the `pack` directory of
an object database (for example `.git/objects`) and opens every `*.pack`
file that has a matching `*.idx` index. Packs whose index cannot be opened
are skipped.

```python
from gitobj.pack.set import open_pack_storage

storage = open_pack_storage(".git/objects", 20)   # 20 for SHA-1, 32 for SHA-256
try:
    reader = storage.open(bytes.fromhex("..."))
    data = reader.read()   # b"<type> <size>\x00<contents>"
finally:
    storage.close()
```

The object is only unpacked on the first `read`. A lookup for an object
that is in none of the packs raises `NoSuchObjectError` (from
`gitobj.pack.types`); `is_no_such_object` tests for it.

To work at a lower level, `open_pack_set` returns a `PackSet`, whose
`object(name)` gives a `PackedObject`. Its `type` is a `PackedObjectType`
and `unpack()` resolves the delta chain into the object's full contents.
Packs are searched in order of how many objects they hold with the same
first byte as `name`.

A single pack can be read by hand from any source with a
`read_at(size, offset)` method, such as `BytesReaderAt` or `FileReaderAt`
from `gitobj.pack.chain`:

```python
from gitobj.pack.chain import BytesReaderAt
from gitobj.pack.index import decode_index
from gitobj.pack.packfile import decode_packfile

pack = decode_packfile(BytesReaderAt(pack_bytes), 20)
pack.index = decode_index(BytesReaderAt(idx_bytes), 20)
obj = pack.object(name)
```

`decode_index` accepts version 1 and version 2 indexes and raises
`UnsupportedVersionError` for others, `ShortFanoutError` for a truncated
fanout table. `decode_packfile` raises `BadPackHeaderError` if the data
does not start with `PACK`. Malformed delta data raises
`InvalidDeltaError`; `patch` applies a delta to a base directly.

## Several sources at once

`MultiStorage` in `gitobj.storage` tries each storage in turn, moving on to
the next one only when it raises `NoSuchObjectError`. Data from storages
whose `is_compressed()` is true is inflated with `DecompressingReader` on
the way out. `Storage`, `WritableStorage` and `Backend` are abstract base
classes describing what a storage offers.

## Trees and tags

```python
import io
from gitobj.tree import Tree, TreeEntry

tree = Tree([TreeEntry(name="a.dat", oid=b"\x00" * 20, filemode=0o100644)])
buf = io.BytesIO()
tree.encode(buf)

buf.seek(0)
decoded, consumed = Tree.decode(buf, 20)
assert decoded == tree
```

`Tree.merge` replaces entries by name or adds new ones, returning a new
tree in Git's subtree order (`sort_subtree_order`, keyed by
`subtree_name`). `TreeEntry.type()` derives the object type from the file
mode and raises `ValueError` for an unknown mode.

`Tag.decode(reader, size)` returns the tag and `size`, raising `ValueError`
on a malformed header; `Tag.encode(writer)` writes it back and returns the
number of bytes written.

## What it does not do

The package only reads. It does not write packfiles or indexes, has no
storage for loose objects, and `WritableStorage` is an interface with no
implementation here. Commit and blob objects have no encoders or decoders
of their own; packed objects of those types are returned as raw bytes.