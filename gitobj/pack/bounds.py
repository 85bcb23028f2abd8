"""Search window used by binary search over a pack index."""

from __future__ import annotations

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class Bounds:
    """The window of one binary-search step; inclusivity is up to the caller."""

    left: int
    right: int

    def with_left(self, new: int) -> Bounds:
        """Return a copy with ``left`` replaced."""
        return replace(self, left=new)

    def with_right(self, new: int) -> Bounds:
        """Return a copy with ``right`` replaced."""
        return replace(self, right=new)

    def __str__(self) -> str:
        return f"[{self.left},{self.right}]"