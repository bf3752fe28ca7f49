"""
Lifecycle event emission.

Instances report their lifecycle through an EventEmitter: a topic name plus
a short JSON description.

Topics:
    INSTANCE_START  {"instance_id", "process_id", "process_name", "events"}
    INSTANCE_END    {"instance_id", "state", "cancelled", "tracks": {track_id: state}}
    NEW_TRACK       {"instance_id", "track_id", "node_name", "node_kind"}

Example:
    ```python
    seen = []
    emitter = EmitterFunc(lambda name, descr: seen.append((name, json.loads(descr))))
    instance = Instance(snapshot, bus, emitter)
    ```
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

INSTANCE_START = "INSTANCE_START"
INSTANCE_END = "INSTANCE_END"
NEW_TRACK = "NEW_TRACK"

logger = logging.getLogger(__name__)


@runtime_checkable
class EventEmitter(Protocol):
    def emit_event(self, name: str, descr: str) -> None: ...


class EmitterFunc:
    """Adapts a plain function to the EventEmitter protocol."""

    def __init__(self, fn: Callable[[str, str], Any]):
        self._fn = fn

    def emit_event(self, name: str, descr: str) -> None:
        self._fn(name, descr)


class LoggingEmitter:
    """Emitter that only logs; used when an instance runs without a Thresher."""

    def emit_event(self, name: str, descr: str) -> None:
        logger.info(f"{name}: {descr}")


def describe(**fields: Any) -> str:
    """JSON description of an event; ids and enums render as strings."""
    return json.dumps(fields, default=str)


__all__ = [
    "INSTANCE_START",
    "INSTANCE_END",
    "NEW_TRACK",
    "EventEmitter",
    "EmitterFunc",
    "LoggingEmitter",
    "describe",
]
