"""Opaque identifiers for model elements, instances, tracks and tokens.

Identifiers are 128-bit values generated as UUIDv7, so ids created later
sort after ids created earlier. That keeps log lines and track maps in
creation order without extra bookkeeping.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from uuid_extensions import uuid7


def _new_uuid() -> UUID:
    return uuid7()


@dataclass(frozen=True, order=True)
class Id:
    """Opaque unique identifier.

    Equality is bitwise on the underlying 128-bit value. ``EMPTY_ID`` is the
    well-known value denoting absence.

    Example:
        ```python
        tid = Id()
        print(tid)          # 0190c5e2-5b1e-7c3a-9f44-0d6b8a1e2f11
        print(tid.last(4))  # 2f11
        ```
    """

    value: UUID = field(default_factory=_new_uuid)

    @classmethod
    def new(cls) -> Id:
        """Generate a fresh identifier."""
        return cls()

    @classmethod
    def parse(cls, s: str) -> Id:
        """Parse the hyphenated display form back into an Id.

        Raises:
            ValueError: If s is not a valid UUID string
        """
        return cls(UUID(s.strip()))

    @property
    def is_empty(self) -> bool:
        return self.value.int == 0

    def last(self, n: int) -> str:
        """Return the last n characters of the display form (for logs)."""
        s = str(self)
        if n <= 0:
            return ""
        return s[-n:]

    def __str__(self) -> str:
        return str(self.value)

    def __repr__(self) -> str:
        return f"Id({self.value})"


EMPTY_ID = Id(UUID(int=0))

__all__ = ["Id", "EMPTY_ID"]
