"""Base class of every process node.

A node belongs to exactly one process. It knows its incoming and outgoing
flows by id; the owning Process (or Snapshot) resolves ids to objects.
"""

from __future__ import annotations

import copy
from enum import Enum
from typing import ClassVar

from pybpm.core.errors import ModelError
from pybpm.core.identity import EMPTY_ID, Id
from pybpm.core.variables import Variable


class ElementKind(Enum):
    ACTIVITY = "ACTIVITY"
    GATEWAY = "GATEWAY"
    EVENT = "EVENT"

    def __str__(self) -> str:
        return self.value


class Node:
    """Process node: activity, gateway or event.

    Attributes:
        id: Node id, kept unchanged in snapshots
        name: Display name, unique within a process
        process_id: Id of the owning process (empty until added)
        lane: Name of the lane the node is placed in ("" for none)
        incoming: Ids of incoming sequence flows in declaration order
        outgoing: Ids of outgoing sequence flows in declaration order
        default_flow: Id of the default outgoing flow, if any
    """

    element_kind: ClassVar[ElementKind]

    def __init__(self, name: str, *, id: Id | None = None):
        name = (name or "").strip()
        if not name:
            raise ModelError("node should have non-empty name")

        self.id = id or Id()
        self.name = name
        self.process_id: Id = EMPTY_ID
        self.lane = ""
        self.incoming: list[Id] = []
        self.outgoing: list[Id] = []
        self.default_flow: Id | None = None

    @property
    def kind_name(self) -> str:
        """Short kind label used in logs and lifecycle events."""
        return type(self).__name__

    @property
    def is_bound(self) -> bool:
        return not self.process_id.is_empty

    def check(self) -> None:
        """Validate node-local structure once flows are linked.

        Raises:
            ModelError: If the node's flows violate its kind's rules
        """

    def clone(self) -> Node:
        """Copy the node for a snapshot.

        Lists and variables are copied; callables, conditions and output
        descriptors are shared.
        """
        n = copy.copy(self)
        for attr, value in vars(n).items():
            if isinstance(value, list):
                setattr(n, attr, [v.copy() if isinstance(v, Variable) else v for v in value])
        return n

    def __repr__(self) -> str:
        return f"{self.kind_name}({self.name!r}, {self.id.last(4)})"


__all__ = ["ElementKind", "Node"]
