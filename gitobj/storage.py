"""Interfaces for object storage and a storage that reads from several."""

from __future__ import annotations

import zlib
from abc import ABC, abstractmethod
from typing import BinaryIO, Protocol

from gitobj.pack.types import NoSuchObjectError

_CHUNK_SIZE = 64 * 1024


class Reader(Protocol):
    """A readable, closeable byte stream."""

    def read(self, size: int = -1) -> bytes: ...

    def close(self) -> None: ...


class Storage(ABC):
    """Read-only access to the objects of an object database."""

    @abstractmethod
    def open(self, oid: bytes) -> Reader:
        """Return a reader over object ``oid``; raise NoSuchObjectError if absent."""

    @abstractmethod
    def close(self) -> None:
        """Release the storage; no further operations are allowed."""

    @abstractmethod
    def is_compressed(self) -> bool:
        """Return whether data read from this storage is zlib-compressed."""

    def __enter__(self) -> Storage:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class WritableStorage(Storage):
    """Storage that can also write new objects."""

    @abstractmethod
    def store(self, oid: bytes, reader: BinaryIO) -> int:
        """Copy ``reader`` to the object ``oid``; fail if it already exists.

        Returns the number of bytes written.
        """


class Backend(ABC):
    """A source of read-only and optionally writable storage."""

    @abstractmethod
    def storage(self) -> tuple[Storage, WritableStorage | None]:
        """Return the read storage and the write storage, if any."""


class DecompressingReader:
    """Inflates a zlib stream read from ``raw``; closing closes ``raw``."""

    def __init__(self, raw: Reader) -> None:
        self.raw = raw
        self._inflater = zlib.decompressobj()
        self._buffer = bytearray()
        # Read the start of the stream now so a bad header is reported early.
        self._fill()

    def _fill(self) -> bool:
        """Inflate one more chunk; return False once the stream has ended."""
        if self._inflater.eof:
            return False
        chunk = self.raw.read(_CHUNK_SIZE)
        if not chunk:
            raise EOFError("unexpected end of compressed data")
        self._buffer += self._inflater.decompress(chunk)
        return True

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` inflated bytes, or all remaining if negative."""
        while (size < 0 or len(self._buffer) < size) and self._fill():
            pass
        if size < 0:
            size = len(self._buffer)
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    def close(self) -> None:
        self.raw.close()

    def __enter__(self) -> DecompressingReader:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class MultiStorage(Storage):
    """Reads objects from the first of several storages that holds them.

    Data from compressed storages is inflated, so reads are never compressed.
    """

    def __init__(self, *args: Storage) -> None:
        self.impls = list(args)

    def open(self, oid: bytes) -> Reader:
        for impl in self.impls:
            try:
                reader = impl.open(oid)
            except NoSuchObjectError:
                continue
            if impl.is_compressed():
                return DecompressingReader(reader)
            return reader
        raise NoSuchObjectError(oid)

    def close(self) -> None:
        """Close every storage, stopping at the first failure."""
        for impl in self.impls:
            impl.close()

    def is_compressed(self) -> bool:
        return False