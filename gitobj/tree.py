"""Git tree objects and the ordering of their entries."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import BinaryIO, Iterable

from gitobj.pack.types import PackedObjectType

# Fixed here rather than taken from the platform, whose values may differ.
S_IFMT = 0o170000
S_IFREG = 0o100000
S_IFDIR = 0o040000
S_IFLNK = 0o120000
S_IFGITLINK = 0o160000

_ENCODING = "utf-8"
_ERRORS = "surrogateescape"
_INT32_MIN = -(1 << 31)
_INT32_MAX = (1 << 31) - 1
_OCTAL = re.compile(r"[+-]?[0-7]+")

_MODE_TYPES = {
    S_IFREG: PackedObjectType.BLOB,
    S_IFDIR: PackedObjectType.TREE,
    S_IFLNK: PackedObjectType.BLOB,
    S_IFGITLINK: PackedObjectType.COMMIT,
}


def _parse_mode(text: str) -> int:
    if not _OCTAL.fullmatch(text):
        return 0
    return max(_INT32_MIN, min(_INT32_MAX, int(text, 8)))


@dataclass
class TreeEntry:
    """One named entry of a tree listing."""

    name: str = ""
    oid: bytes = b""
    filemode: int = 0

    def type(self) -> PackedObjectType:
        """Return the type of object this entry refers to, from its mode."""
        try:
            return _MODE_TYPES[self.filemode & S_IFMT]
        except KeyError:
            raise ValueError(
                f"unknown object type: {self.filemode:o}"
            ) from None

    def is_link(self) -> bool:
        """Return whether the entry is a symbolic link."""
        return self.filemode & S_IFMT == S_IFLNK


def subtree_name(entry: TreeEntry | None) -> str:
    """Return the sort name of ``entry``: ``/`` after subtrees, NUL otherwise."""
    if entry is None:
        return ""
    if entry.type() == PackedObjectType.TREE:
        return entry.name + "/"
    return entry.name + "\x00"


def sort_subtree_order(entries: Iterable[TreeEntry | None]) -> list[TreeEntry | None]:
    """Return the entries sorted bytewise as Git requires when writing trees."""
    return sorted(
        entries, key=lambda entry: subtree_name(entry).encode(_ENCODING, _ERRORS)
    )


@dataclass
class Tree:
    """A Git tree: an ordered list of entries."""

    entries: list[TreeEntry] = field(default_factory=list)

    @classmethod
    def decode(cls, reader: BinaryIO, hash_size: int) -> tuple[Tree, int]:
        """Decode a tree read from ``reader``; return it and the bytes consumed.

        Raises EOFError if an entry is cut short.
        """
        data = reader.read()
        entries: list[TreeEntry] = []
        pos = 0
        while True:
            space = data.find(b" ", pos)
            if space < 0:
                break
            mode = _parse_mode(data[pos:space].decode("ascii", "replace"))
            pos = space + 1

            nul = data.find(b"\x00", pos)
            if nul < 0:
                raise EOFError("unexpected end of tree entry name")
            name = data[pos:nul].decode(_ENCODING, _ERRORS)
            pos = nul + 1

            if pos + hash_size > len(data):
                raise EOFError("unexpected end of tree entry object ID")
            oid = data[pos:pos + hash_size]
            pos += hash_size

            entries.append(TreeEntry(name=name, oid=oid, filemode=mode))
        return cls(entries), pos

    def encode(self, writer: BinaryIO) -> int:
        """Write the tree to ``writer`` and return the number of bytes written."""
        written = 0
        for entry in self.entries:
            data = (
                f"{entry.filemode:o} {entry.name}\x00".encode(_ENCODING, _ERRORS)
                + bytes(entry.oid)
            )
            writer.write(data)
            written += len(data)
        return written

    def merge(self, *args: TreeEntry) -> Tree:
        """Return a copy with entries replaced or added by name, in subtree order."""
        unseen = {other.name: other for other in args}
        entries: list[TreeEntry] = []
        for entry in self.entries:
            other = unseen.pop(entry.name, None)
            if other is not None:
                entries.append(other)
            else:
                entries.append(replace(entry, oid=bytes(entry.oid)))
        entries.extend(unseen.values())
        return Tree(sort_subtree_order(entries))

    def type(self) -> PackedObjectType:
        """Return the object type of trees."""
        return PackedObjectType.TREE