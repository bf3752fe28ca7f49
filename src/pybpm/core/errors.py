"""Exception types raised by the pybpm engine.

Error kinds map onto the places they are detected:

- ModelError: malformed process model or snapshot (structural)
- ExecutorNotFoundError: no executor registered for a node kind (dispatch)
- NodeExecutionError: a node failed at run time (I/O, missing variable,
  coercion failure); carries node name and id, cause chained via ``from``
- TokenError: token invariant violation (programmer error, aborts instance)
- InstanceError: instance lifecycle violation or aborted instance

Cancellation is not wrapped: it travels as ``asyncio.CancelledError``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pybpm.core.identity import Id


class BpmError(Exception):
    """Base class for every error raised by pybpm."""


class ModelError(BpmError):
    """Process model is malformed or an operation on it is invalid."""

    def __init__(self, message: str, process_id: Id | None = None):
        self.process_id = process_id
        if process_id is not None:
            message = f"process {process_id}: {message}"
        super().__init__(message)


class SnapshotChangeError(ModelError):
    """Structural mutation attempted on an immutable snapshot."""


class VariableError(BpmError):
    """Variable creation, update or coercion failed."""

    def __init__(self, message: str, name: str = "", var_type: object = None):
        self.name = name
        self.var_type = var_type
        if name:
            message = f"variable '{name}': {message}"
        super().__init__(message)


class MessageError(BpmError):
    """Message definition or envelope is invalid."""


class ExecutorNotFoundError(BpmError):
    """No node executor is registered for the node's kind."""


class NodeExecutionError(BpmError):
    """Execution of a single node failed.

    The underlying error is available as ``__cause__``.
    """

    def __init__(self, message: str, node_name: str, node_id: Id):
        self.node_name = node_name
        self.node_id = node_id
        super().__init__(f"node '{node_name}' [{node_id}]: {message}")


class GatewayError(BpmError):
    """Gateway could not select an outgoing flow or can never open."""


class TokenError(BpmError):
    """Token invariant violated (split or join of a non-alive token)."""


class InstanceError(BpmError):
    """Process instance lifecycle error."""

    def __init__(self, message: str, instance_id: Id | None = None, track_id: Id | None = None):
        self.instance_id = instance_id
        self.track_id = track_id
        prefix = ""
        if instance_id is not None:
            prefix = f"instance {instance_id}"
            if track_id is not None:
                prefix += f" track {track_id}"
            prefix += ": "
        super().__init__(prefix + message)


class BusError(BpmError):
    """Message bus operation failed."""


class ThresherError(BpmError):
    """Engine root operation failed."""


__all__ = [
    "BpmError",
    "ModelError",
    "SnapshotChangeError",
    "VariableError",
    "MessageError",
    "ExecutorNotFoundError",
    "NodeExecutionError",
    "GatewayError",
    "TokenError",
    "InstanceError",
    "BusError",
    "ThresherError",
]
