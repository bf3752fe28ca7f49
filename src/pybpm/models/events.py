"""Start and end events with their trigger definitions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

from pybpm.core.identity import Id
from pybpm.models.node import ElementKind, Node


class EventTrigger(Enum):
    NONE = "NONE"
    MESSAGE = "MESSAGE"
    SIGNAL = "SIGNAL"
    TIMER = "TIMER"
    CONDITIONAL = "CONDITIONAL"
    ERROR = "ERROR"
    TERMINATE = "TERMINATE"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class EventDefinition:
    """Trigger of an event; identified by id across snapshots."""

    trigger: EventTrigger
    name: str = ""
    id: Id = field(default_factory=Id)


class Event(Node):
    element_kind: ClassVar[ElementKind] = ElementKind.EVENT

    def __init__(self, name: str, *definitions: EventDefinition, **kwargs: Any):
        super().__init__(name, **kwargs)
        self.definitions: list[EventDefinition] = list(definitions)


class StartEvent(Event):
    """Entry point of a process.

    Definitions of a start event are the triggers that start new instances
    when the process is registered on a Thresher.
    """


class EndEvent(Event):
    """Terminal node; consumes the arriving token."""


__all__ = ["EventTrigger", "EventDefinition", "Event", "StartEvent", "EndEvent"]
