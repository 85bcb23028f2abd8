"""Git tag objects."""

from __future__ import annotations

from dataclasses import dataclass
from typing import BinaryIO

from gitobj.pack.types import PackedObjectType

_ENCODING = "utf-8"
_ERRORS = "surrogateescape"

_NAMED_TYPES = {
    str(kind): kind
    for kind in (
        PackedObjectType.COMMIT,
        PackedObjectType.TREE,
        PackedObjectType.BLOB,
        PackedObjectType.TAG,
    )
}


def _object_type_from_string(text: str) -> PackedObjectType:
    return _NAMED_TYPES.get(text, PackedObjectType.NONE)


def _scan_lines(data: bytes) -> list[bytes]:
    """Split into lines, dropping the final newline and any trailing CR."""
    if not data:
        return []
    lines = data.split(b"\n")
    if lines[-1] == b"":
        lines.pop()
    return [line[:-1] if line.endswith(b"\r") else line for line in lines]


@dataclass
class Tag:
    """An annotated tag pointing at another object."""

    object: bytes = b""
    object_type: PackedObjectType = PackedObjectType.NONE
    name: str = ""
    tagger: str = ""
    message: str = ""

    @classmethod
    def decode(cls, reader: BinaryIO, size: int) -> tuple[Tag, int]:
        """Decode at most ``size`` bytes of a tag; return it and ``size``.

        Raises ValueError on malformed headers.
        """
        tag = cls()
        data = reader.read(size)
        finished_headers = False
        message: list[str] = []

        for raw in _scan_lines(data):
            line = raw.decode(_ENCODING, _ERRORS)
            if finished_headers:
                message.append(line)
                continue
            if not line:
                finished_headers = True
                continue

            key, sep, value = line.partition(" ")
            if not sep:
                raise ValueError(f"invalid tag header: {line}")
            if key == "object":
                try:
                    tag.object = bytes.fromhex(value)
                except ValueError as exc:
                    raise ValueError(f"unable to decode SHA-1: {exc}") from exc
            elif key == "type":
                tag.object_type = _object_type_from_string(value)
            elif key == "tag":
                tag.name = value
            elif key == "tagger":
                tag.tagger = value
            else:
                raise ValueError(f"unknown tag header: {key}")

        tag.message = "\n".join(message)
        return tag, size

    def encode(self, writer: BinaryIO) -> int:
        """Write the tag to ``writer`` and return the number of bytes written."""
        headers = "\n".join(
            [
                f"object {bytes(self.object).hex()}",
                f"type {self.object_type}",
                f"tag {self.name}",
                f"tagger {self.tagger}",
            ]
        )
        data = f"{headers}\n\n{self.message}".encode(_ENCODING, _ERRORS)
        writer.write(data)
        return len(data)

    def type(self) -> PackedObjectType:
        """Return the object type of tags."""
        return PackedObjectType.TAG