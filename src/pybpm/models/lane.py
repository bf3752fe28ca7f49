"""Lanes: named groupings of nodes within a process.

Lanes are metadata only; the engine never schedules by lane.
"""

from __future__ import annotations

from pybpm.core.identity import Id


class Lane:
    """Named node grouping, optionally nested under a parent lane."""

    def __init__(self, name: str, parent: str = "", *, id: Id | None = None):
        self.id = id or Id()
        self.name = name or f"Lane {self.id}"
        self.parent = parent
        self.node_ids: list[Id] = []
        self.child_lanes: list[Lane] = []

    @property
    def is_empty(self) -> bool:
        return not self.node_ids and not self.child_lanes

    def clone(self) -> Lane:
        ln = Lane(self.name, self.parent, id=self.id)
        ln.node_ids = list(self.node_ids)
        ln.child_lanes = [c.clone() for c in self.child_lanes]
        return ln

    def __repr__(self) -> str:
        return f"Lane({self.name!r}, nodes={len(self.node_ids)})"


__all__ = ["Lane"]
