"""Sequence flows connecting nodes of one process.

Flows reference their ends by node id, never by object, so a snapshot can
hold nodes and flows in flat maps keyed by id.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pybpm.core.identity import EMPTY_ID, Id
from pybpm.models.expression import Condition


@dataclass
class SequenceFlow:
    """Directed edge from source node to target node.

    The condition is only evaluated when the source is a diverging
    exclusive or inclusive gateway.
    """

    source_id: Id
    target_id: Id
    condition: Condition | None = None
    is_default: bool = False
    name: str = ""
    process_id: Id = EMPTY_ID
    id: Id = field(default_factory=Id)

    @property
    def is_conditional(self) -> bool:
        return self.condition is not None

    def clone(self) -> SequenceFlow:
        return SequenceFlow(
            self.source_id,
            self.target_id,
            self.condition,
            self.is_default,
            self.name,
            self.process_id,
            self.id,
        )

    def __repr__(self) -> str:
        label = f" {self.name!r}" if self.name else ""
        return f"SequenceFlow({self.id.last(4)}{label}: {self.source_id.last(4)} -> {self.target_id.last(4)})"


__all__ = ["SequenceFlow"]
