"""Random-access readers and delta-base chains of packed objects."""

from __future__ import annotations

import os
import threading
import zlib
from abc import ABC, abstractmethod
from typing import BinaryIO, Protocol

from gitobj.pack.types import InvalidDeltaError, PackedObjectType

_CHUNK_SIZE = 64 * 1024


class ReaderAt(Protocol):
    """Anything that can read bytes at an absolute offset."""

    def read_at(self, size: int, offset: int) -> bytes: ...


class BytesReaderAt:
    """Random access over an in-memory byte string."""

    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self.closed = False

    def read_at(self, size: int, offset: int) -> bytes:
        """Return up to ``size`` bytes at ``offset``; short only at the end."""
        if self.closed:
            raise ValueError("read from closed reader")
        if offset < 0:
            raise ValueError(f"negative offset: {offset}")
        return self._data[offset:offset + size]

    def close(self) -> None:
        self.closed = True


class FileReaderAt:
    """Random access over an open binary file; closing closes the file."""

    def __init__(self, file: BinaryIO) -> None:
        self._file = file
        self._lock = threading.Lock()

    def read_at(self, size: int, offset: int) -> bytes:
        """Return up to ``size`` bytes at ``offset``; short only at the end."""
        if offset < 0:
            raise ValueError(f"negative offset: {offset}")
        with self._lock:
            self._file.seek(offset, os.SEEK_SET)
            return self._file.read(size)

    def close(self) -> None:
        self._file.close()


class OffsetReader:
    """A sequential reader over a ``ReaderAt`` starting at a given offset."""

    def __init__(self, source: ReaderAt, offset: int) -> None:
        self.source = source
        self.offset = offset

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes (all remaining if negative) and advance."""
        if size >= 0:
            data = self.source.read_at(size, self.offset)
            self.offset += len(data)
            return data
        parts = []
        while True:
            chunk = self.read(_CHUNK_SIZE)
            if not chunk:
                return b"".join(parts)
            parts.append(chunk)


class Chain(ABC):
    """One element of a delta-base chain; ``type`` gives its object type."""

    type: PackedObjectType

    @abstractmethod
    def unpack(self) -> bytes:
        """Resolve the chain up to and including this element."""


class ChainBase(Chain):
    """The zlib-compressed base at the root of a delta-base chain."""

    def __init__(
        self, source: ReaderAt, offset: int, size: int, type: PackedObjectType
    ) -> None:
        self.source = source
        self.offset = offset
        self.size = size
        self.type = type

    def unpack(self) -> bytes:
        """Inflate exactly ``size`` bytes of data starting at ``offset``."""
        reader = OffsetReader(self.source, self.offset)
        inflater = zlib.decompressobj()
        out = bytearray()
        while len(out) < self.size and not inflater.eof:
            pending = inflater.unconsumed_tail
            if not pending:
                pending = reader.read(_CHUNK_SIZE)
                if not pending:
                    break
            out += inflater.decompress(pending, self.size - len(out))
        if len(out) < self.size:
            raise EOFError("unexpected end of compressed data")
        return bytes(out)


class ChainDelta(Chain):
    """Delta instructions applied on top of another chain element."""

    def __init__(self, base: Chain, delta: bytes) -> None:
        self.base = base
        self.delta = bytes(delta)

    @property
    def type(self) -> PackedObjectType:
        return self.base.type

    def unpack(self) -> bytes:
        return patch(self.base.unpack(), self.delta)


def patch_delta_header(delta: bytes, pos: int) -> tuple[int, int]:
    """Read one variable-length size at ``pos``; return it and the next position."""
    size = 0
    shift = 0
    while True:
        if pos >= len(delta):
            raise InvalidDeltaError("invalid delta header")
        byte = delta[pos]
        pos += 1
        size |= (byte & 0x7F) << shift
        shift += 7
        if not byte & 0x80:
            return size, pos


_OFFSET_BITS = ((0x01, 0), (0x02, 8), (0x04, 16), (0x08, 24))
_SIZE_BITS = ((0x10, 0), (0x20, 8), (0x40, 16))


def patch(base: bytes, delta: bytes) -> bytes:
    """Apply the delta instructions in ``delta`` to ``base``."""
    src_size, pos = patch_delta_header(delta, 0)
    if src_size != len(base):
        raise InvalidDeltaError()
    dest_size, pos = patch_delta_header(delta, pos)

    dest = bytearray()
    try:
        while pos < len(delta):
            opcode = delta[pos]
            pos += 1
            if opcode & 0x80:
                copy_offset = 0
                for bit, shift in _OFFSET_BITS:
                    if opcode & bit:
                        copy_offset |= delta[pos] << shift
                        pos += 1
                copy_size = 0
                for bit, shift in _SIZE_BITS:
                    if opcode & bit:
                        copy_size |= delta[pos] << shift
                        pos += 1
                if copy_size == 0:
                    copy_size = 0x10000
                if copy_offset + copy_size > len(base):
                    raise InvalidDeltaError()
                dest += base[copy_offset:copy_offset + copy_size]
            elif opcode:
                if pos + opcode > len(delta):
                    raise InvalidDeltaError()
                dest += delta[pos:pos + opcode]
                pos += opcode
            else:
                raise InvalidDeltaError()
    except IndexError as exc:
        raise InvalidDeltaError() from exc

    if len(dest) != dest_size:
        raise InvalidDeltaError()
    return bytes(dest)


class PackedObject:
    """An object found in a packfile, resolved lazily through its chain."""

    def __init__(self, data: Chain, type: PackedObjectType) -> None:
        self.data = data
        self.type = type

    def unpack(self) -> bytes:
        """Resolve the delta-base chain and return the full contents."""
        return self.data.unpack()