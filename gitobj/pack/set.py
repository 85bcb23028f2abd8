"""Object access across all packfiles of an object database."""

from __future__ import annotations

import io
import os
from typing import Callable, Iterable

from gitobj.pack.chain import FileReaderAt, PackedObject
from gitobj.pack.index import decode_index
from gitobj.pack.packfile import Packfile, decode_packfile
from gitobj.pack.types import NoSuchObjectError, NotFoundError

_PACK_SUFFIX = ".pack"


class PackSet:
    """A set of packfiles searched by the leading byte of an object name."""

    def __init__(self, packs: Iterable[Packfile]) -> None:
        self.packs = list(packs)
        self._by_prefix: dict[int, list[Packfile]] = {}
        for prefix in range(256):
            candidates = [
                pack for pack in self.packs if _prefix_count(pack, prefix) > 0
            ]
            if candidates:
                candidates.sort(
                    key=lambda pack: pack.index.fanout[prefix], reverse=True
                )
                self._by_prefix[prefix] = candidates

    def close(self) -> None:
        """Close every packfile, stopping at the first failure."""
        for pack in self.packs:
            pack.close()

    def __enter__(self) -> PackSet:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def object(self, name: bytes) -> PackedObject:
        """Open ``name`` from the first packfile holding it."""
        return self.each(name, lambda pack: pack.object(name))

    def each(
        self, name: bytes, fn: Callable[[Packfile], PackedObject]
    ) -> PackedObject:
        """Call ``fn`` on candidate packs, most likely first, until one succeeds.

        NotFoundError from ``fn`` moves on to the next pack; any other error
        propagates. Raises NoSuchObjectError when no pack yields the object.
        """
        key = name[0] if name else 0
        for pack in self._by_prefix.get(key, []):
            try:
                return fn(pack)
            except NotFoundError:
                continue
        raise NoSuchObjectError(name)


def _prefix_count(pack: Packfile, prefix: int) -> int:
    fanout = pack.index.fanout
    if prefix == 0:
        return fanout[0]
    return fanout[prefix] - fanout[prefix - 1]


def _pack_names(directory: str) -> list[str]:
    try:
        entries = os.listdir(directory)
    except (FileNotFoundError, NotADirectoryError):
        return []
    return sorted(
        entry[: -len(_PACK_SUFFIX)]
        for entry in entries
        if entry.endswith(_PACK_SUFFIX)
    )


def open_pack_set(db: str | os.PathLike, hash_size: int) -> PackSet:
    """Open every packfile under ``<db>/pack`` that has an index beside it."""
    directory = os.path.join(os.fspath(db), "pack")
    packs: list[Packfile] = []
    try:
        for name in _pack_names(directory):
            try:
                idx_file = open(os.path.join(directory, f"{name}.idx"), "rb")
            except OSError:
                # A pack without a usable index is skipped.
                continue
            try:
                pack_file = open(os.path.join(directory, f"{name}.pack"), "rb")
            except OSError:
                idx_file.close()
                raise
            try:
                pack = decode_packfile(FileReaderAt(pack_file), hash_size)
                pack.index = decode_index(FileReaderAt(idx_file), hash_size)
            except BaseException:
                pack_file.close()
                idx_file.close()
                raise
            packs.append(pack)
    except BaseException:
        for pack in packs:
            pack.close()
        raise
    return PackSet(packs)


class DelayedObjectReader:
    """Reads a packed object in loose form, unpacking it on first read."""

    def __init__(self, obj: PackedObject) -> None:
        self.obj = obj
        self._buffer: io.BytesIO | None = None

    def read(self, size: int = -1) -> bytes:
        """Read the header ``<type> <size>\\0`` followed by the contents."""
        if self._buffer is None:
            data = self.obj.unpack()
            header = f"{self.obj.type} {len(data)}\x00".encode()
            self._buffer = io.BytesIO(header + data)
        return self._buffer.read(size)

    def close(self) -> None:
        """Nothing to release; present for a file-like interface."""

    def __enter__(self) -> DelayedObjectReader:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class PackStorage:
    """Read-only object storage backed by a set of packfiles."""

    def __init__(self, packs: PackSet) -> None:
        self.packs = packs

    def open(self, oid: bytes) -> DelayedObjectReader:
        """Return a reader over the object ``oid`` in loose form."""
        return DelayedObjectReader(self.packs.object(oid))

    def close(self) -> None:
        self.packs.close()

    def is_compressed(self) -> bool:
        """Data read from packs is already inflated."""
        return False


def open_pack_storage(root: str | os.PathLike, hash_size: int) -> PackStorage:
    """Open storage over all packfiles in the object database ``root``."""
    return PackStorage(open_pack_set(root, hash_size))