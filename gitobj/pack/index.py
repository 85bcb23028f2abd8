"""Pack index (``.idx``) decoding and object lookup."""

from __future__ import annotations

import struct
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence

from gitobj.pack.bounds import Bounds
from gitobj.pack.chain import ReaderAt
from gitobj.pack.types import (
    NotFoundError,
    ShortFanoutError,
    UnsupportedVersionError,
)

MAX_HASH_SIZE = 32

INDEX_MAGIC_WIDTH = 4
INDEX_VERSION_WIDTH = 4
INDEX_V2_WIDTH = INDEX_MAGIC_WIDTH + INDEX_VERSION_WIDTH
INDEX_V1_WIDTH = 0

INDEX_FANOUT_ENTRIES = 256
INDEX_FANOUT_ENTRY_WIDTH = 4
INDEX_FANOUT_WIDTH = INDEX_FANOUT_ENTRIES * INDEX_FANOUT_ENTRY_WIDTH

INDEX_OFFSET_V1_START = INDEX_V1_WIDTH + INDEX_FANOUT_WIDTH
INDEX_OFFSET_V2_START = INDEX_V2_WIDTH + INDEX_FANOUT_WIDTH

INDEX_OBJECT_CRC_WIDTH = 4
INDEX_OBJECT_SMALL_OFFSET_WIDTH = 4
INDEX_OBJECT_LARGE_OFFSET_WIDTH = 8

INDEX_HEADER = b"\xff\x74\x4f\x63"


def _read_exact(source: ReaderAt, size: int, offset: int) -> bytes:
    data = source.read_at(size, offset)
    if len(data) < size:
        raise EOFError(f"short read of {len(data)} of {size} bytes at {offset}")
    return data


@dataclass(frozen=True)
class IndexEntry:
    """An entry of a pack index: where the object starts in the packfile."""

    pack_offset: int


class IndexVersion(ABC):
    """Layout of one version of the pack index format."""

    def __init__(self, hash_size: int) -> None:
        if not 0 < hash_size <= MAX_HASH_SIZE:
            raise ValueError(f"unsupported hash size: {hash_size}")
        self.hash_size = hash_size

    @abstractmethod
    def name(self, index: Index, at: int) -> bytes:
        """Return the object name stored at position ``at``."""

    @abstractmethod
    def entry(self, index: Index, at: int) -> IndexEntry:
        """Return the full entry stored at position ``at``."""

    @abstractmethod
    def width(self) -> int:
        """Return the number of bytes taken by this version's header."""

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self.hash_size == other.hash_size

    def __hash__(self) -> int:
        return hash((type(self), self.hash_size))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(hash_size={self.hash_size})"


class V1(IndexVersion):
    """Version 1 index: interleaved offsets and names after the fanout."""

    def __init__(self, hash_size: int) -> None:
        super().__init__(hash_size)

    def _entry_offset(self, at: int) -> int:
        return INDEX_OFFSET_V1_START + (
            (self.hash_size + INDEX_OBJECT_SMALL_OFFSET_WIDTH) * at
        )

    def name(self, index: Index, at: int) -> bytes:
        offset = self._entry_offset(at) + INDEX_OBJECT_SMALL_OFFSET_WIDTH
        return index.read_at(self.hash_size, offset)

    def entry(self, index: Index, at: int) -> IndexEntry:
        raw = index.read_at(INDEX_OBJECT_SMALL_OFFSET_WIDTH, self._entry_offset(at))
        (offset,) = struct.unpack(">I", raw)
        return IndexEntry(pack_offset=offset)

    def width(self) -> int:
        return INDEX_V1_WIDTH


class V2(IndexVersion):
    """Version 2 index: separate name, CRC, offset and large-offset tables."""

    def __init__(self, hash_size: int) -> None:
        super().__init__(hash_size)

    def _sha_offset(self, at: int) -> int:
        return INDEX_OFFSET_V2_START + self.hash_size * at

    def _small_offset_offset(self, at: int, total: int) -> int:
        return (
            INDEX_OFFSET_V2_START
            + self.hash_size * total
            + INDEX_OBJECT_CRC_WIDTH * total
            + INDEX_OBJECT_SMALL_OFFSET_WIDTH * at
        )

    def _large_offset_offset(self, at: int, total: int) -> int:
        return (
            INDEX_OFFSET_V2_START
            + self.hash_size * total
            + INDEX_OBJECT_CRC_WIDTH * total
            + INDEX_OBJECT_SMALL_OFFSET_WIDTH * total
            + INDEX_OBJECT_LARGE_OFFSET_WIDTH * at
        )

    def name(self, index: Index, at: int) -> bytes:
        return index.read_at(self.hash_size, self._sha_offset(at))

    def entry(self, index: Index, at: int) -> IndexEntry:
        total = index.count()
        raw = index.read_at(
            INDEX_OBJECT_SMALL_OFFSET_WIDTH, self._small_offset_offset(at, total)
        )
        (location,) = struct.unpack(">I", raw)
        if location & 0x80000000:
            # The low 31 bits index into the table of 8-byte offsets.
            large_at = self._large_offset_offset(location & 0x7FFFFFFF, total)
            raw = index.read_at(INDEX_OBJECT_LARGE_OFFSET_WIDTH, large_at)
            (location,) = struct.unpack(">Q", raw)
        return IndexEntry(pack_offset=location)

    def width(self) -> int:
        return INDEX_V2_WIDTH


class Index:
    """Locations of objects in a packfile, read lazily from ``source``."""

    def __init__(
        self, version: IndexVersion, fanout: Sequence[int], source: ReaderAt
    ) -> None:
        if len(fanout) != INDEX_FANOUT_ENTRIES:
            raise ValueError(
                f"fanout table must have {INDEX_FANOUT_ENTRIES} entries, "
                f"got {len(fanout)}"
            )
        self.version = version
        self.fanout = tuple(fanout)
        self.source = source

    def count(self) -> int:
        """Return the number of objects in the packfile."""
        return self.fanout[255]

    def close(self) -> None:
        """Close the underlying data source if it can be closed."""
        close = getattr(self.source, "close", None)
        if callable(close):
            close()

    def __enter__(self) -> Index:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def read_at(self, size: int, offset: int) -> bytes:
        """Read exactly ``size`` bytes at ``offset``; raise EOFError if short."""
        return _read_exact(self.source, size, offset)

    def _bounds(self, name: bytes) -> Bounds:
        first = name[0]
        left = 0 if first == 0 else self.fanout[first - 1]
        right = self.count() if first == 255 else self.fanout[first + 1]
        return Bounds(left, right)

    def entry(self, name: bytes) -> IndexEntry:
        """Find the entry for object ``name``; raise NotFoundError if absent."""
        if not name:
            raise ValueError("empty object name")
        name = bytes(name)
        last: Bounds | None = None
        bounds = self._bounds(name)

        while bounds.left < bounds.right:
            if last == bounds:
                # No progress: the object is absent or the fanout is corrupt.
                raise NotFoundError()
            last = bounds

            mid = bounds.left + (bounds.right - bounds.left) // 2
            got = self.version.name(self, mid)

            if name == got:
                return self.version.entry(self, mid)
            if name < got:
                bounds = bounds.with_right(mid)
            else:
                bounds = bounds.with_left(mid)

        raise NotFoundError()


def _decode_header(source: ReaderAt, hash_size: int) -> IndexVersion:
    header = _read_exact(source, INDEX_MAGIC_WIDTH, 0)
    if header != INDEX_HEADER:
        return V1(hash_size)
    (version,) = struct.unpack(
        ">I", _read_exact(source, INDEX_VERSION_WIDTH, INDEX_MAGIC_WIDTH)
    )
    if version == 1:
        return V1(hash_size)
    if version == 2:
        return V2(hash_size)
    raise UnsupportedVersionError(version)


def _decode_fanout(source: ReaderAt, offset: int) -> tuple[int, ...]:
    try:
        raw = _read_exact(source, INDEX_FANOUT_WIDTH, offset)
    except EOFError as exc:
        raise ShortFanoutError() from exc
    return struct.unpack(f">{INDEX_FANOUT_ENTRIES}I", raw)


def decode_index(source: ReaderAt, hash_size: int) -> Index:
    """Read the header and fanout table of an index; entries are read lazily."""
    version = _decode_header(source, hash_size)
    fanout = _decode_fanout(source, version.width())
    return Index(version, fanout, source)