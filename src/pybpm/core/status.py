"""
Status enums for instance, track, step and token tracking.

The first member of every enum is the initial state.
"""

from enum import Enum


class InstanceState(Enum):
    """
    State of a process instance.

    Lifecycle:
    CREATED → PREPARED → RUNNING → ENDED
    CREATED → PREPARED → RUNNING → STOPPING → ENDED  (cancelled)
    """

    CREATED = "CREATED"
    PREPARED = "PREPARED"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"
    """Cancellation observed, waiting for tracks to drain."""

    ENDED = "ENDED"

    def __str__(self) -> str:
        return self.value


class TrackState(Enum):
    """
    State of a single track.

    Lifecycle:
    READY → EXECUTING → (READY | ENDED | ERROR | MERGED)
    """

    READY = "READY"
    EXECUTING = "EXECUTING"

    ENDED = "ENDED"
    """Track reached a node with no further flows."""

    ERROR = "ERROR"
    """Track failed or was cancelled; see Track.error."""

    MERGED = "MERGED"
    """Track was absorbed by a converging gateway (not an error)."""

    @property
    def is_terminal(self) -> bool:
        return self in (TrackState.ENDED, TrackState.ERROR, TrackState.MERGED)

    @property
    def is_live(self) -> bool:
        return self in (TrackState.READY, TrackState.EXECUTING)

    def __str__(self) -> str:
        return self.value


class StepState(Enum):
    """
    State of a step (one node visit) on a track.

    Lifecycle:
    CREATED → STARTED → (ENDED | FAILED)
    """

    CREATED = "CREATED"
    STARTED = "STARTED"
    ENDED = "ENDED"
    FAILED = "FAILED"

    def __str__(self) -> str:
        return self.value


class TokenState(Enum):
    """
    State of an execution token.

    Only ALIVE tokens can be split or joined.
    """

    ALIVE = "ALIVE"
    INACTIVE = "INACTIVE"
    CONSUMED = "CONSUMED"

    def __str__(self) -> str:
        return self.value


__all__ = ["InstanceState", "TrackState", "StepState", "TokenState"]
