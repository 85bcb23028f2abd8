"""Reading objects out of a packfile through its index."""

from __future__ import annotations

import struct
import zlib

from gitobj.pack.chain import (
    Chain,
    ChainBase,
    ChainDelta,
    OffsetReader,
    PackedObject,
    ReaderAt,
)
from gitobj.pack.index import Index
from gitobj.pack.types import (
    BadPackHeaderError,
    NotFoundError,
    PackedObjectType,
    PackError,
    UnrecognizedObjectTypeError,
)

PACK_HEADER = b"PACK"
_PACK_HEADER_WIDTH = 12
_CHUNK_SIZE = 64 * 1024

_BASE_TYPES = frozenset(
    {
        PackedObjectType.COMMIT,
        PackedObjectType.TREE,
        PackedObjectType.BLOB,
        PackedObjectType.TAG,
    }
)
_DELTA_TYPES = frozenset(
    {PackedObjectType.OBJ_OFS_DELTA, PackedObjectType.OBJ_REF_DELTA}
)


def _read_exact(source: ReaderAt, size: int, offset: int) -> bytes:
    data = source.read_at(size, offset)
    if len(data) < size:
        raise EOFError(f"short read of {len(data)} of {size} bytes at {offset}")
    return data


def _inflate(reader: OffsetReader) -> bytes:
    """Inflate one whole zlib stream from ``reader``."""
    inflater = zlib.decompressobj()
    out = bytearray()
    while not inflater.eof:
        chunk = reader.read(_CHUNK_SIZE)
        if not chunk:
            raise EOFError("unexpected end of compressed data")
        out += inflater.decompress(chunk)
    return bytes(out)


class Packfile:
    """Access to the objects stored in one packfile."""

    def __init__(
        self,
        source: ReaderAt,
        hash_size: int,
        version: int = 0,
        objects: int = 0,
        index: Index | None = None,
    ) -> None:
        self.source = source
        self.hash_size = hash_size
        self.version = version
        self.objects = objects
        self.index = index

    def close(self) -> None:
        """Close the index and the packfile data, where they can be closed."""
        try:
            if self.index is not None:
                self.index.close()
        finally:
            close = getattr(self.source, "close", None)
            if callable(close):
                close()

    def __enter__(self) -> Packfile:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def object(self, name: bytes) -> PackedObject:
        """Return the packed object ``name`` without unpacking it.

        Raises NotFoundError if the index does not hold it.
        """
        if self.index is None:
            raise PackError("packfile has no index")
        try:
            entry = self.index.entry(name)
        except NotFoundError:
            raise
        except (EOFError, OSError, ValueError) as exc:
            raise PackError(f"could not load index: {exc}") from exc

        chain = self._find(entry.pack_offset)
        return PackedObject(chain, chain.type)

    def _find(self, offset: int) -> Chain:
        """Return the chain element whose header starts at ``offset``."""
        object_offset = offset
        byte = _read_exact(self.source, 1, offset)[0]

        raw_type = (byte >> 4) & 0x7
        size = byte & 0x0F
        shift = 4
        offset += 1

        while byte & 0x80:
            byte = _read_exact(self.source, 1, offset)[0]
            size |= (byte & 0x7F) << shift
            shift += 7
            offset += 1

        try:
            typ = PackedObjectType(raw_type)
        except ValueError as exc:
            raise UnrecognizedObjectTypeError() from exc

        if typ in _DELTA_TYPES:
            base, offset = self._find_base(typ, offset, object_offset)
            delta = _inflate(OffsetReader(self.source, offset))
            return ChainDelta(base, delta)
        if typ in _BASE_TYPES:
            return ChainBase(self.source, offset, size, typ)
        raise UnrecognizedObjectTypeError()

    def _find_base(
        self, typ: PackedObjectType, offset: int, object_offset: int
    ) -> tuple[Chain, int]:
        """Locate the base of a delta; return it and the offset of the delta data."""
        raw = _read_exact(self.source, self.hash_size, offset)

        if typ is PackedObjectType.OBJ_OFS_DELTA:
            i = 0
            c = raw[i]
            distance = c & 0x7F
            while c & 0x80:
                i += 1
                c = raw[i]
                distance = ((distance + 1) << 7) | (c & 0x7F)
            base_offset = object_offset - distance
            offset += i + 1
        elif typ is PackedObjectType.OBJ_REF_DELTA:
            if self.index is None:
                raise PackError("packfile has no index")
            base_offset = self.index.entry(raw).pack_offset
            offset += self.hash_size
        else:
            raise PackError(f"type {typ} is not deltafied")

        return self._find(base_offset), offset


def decode_packfile(source: ReaderAt, hash_size: int) -> Packfile:
    """Read the header of a packfile; objects are read on demand."""
    header = _read_exact(source, _PACK_HEADER_WIDTH, 0)
    if not header.startswith(PACK_HEADER):
        raise BadPackHeaderError()
    version, objects = struct.unpack(">II", header[4:12])
    return Packfile(source, hash_size, version=version, objects=objects)