"""
Node-executor capabilities and track control signals.

Every executor provides ``exec``. The optional capabilities are detected
with isinstance checks against runtime-checkable protocols, so an executor
opts in just by defining the method.

Order within one track tick:

    take_token -> check_in -> prologue -> exec -> epilogue -> check_out
    -> return_tokens (or split of the carrying token)

Example:
    ```python
    class Audit:
        def __init__(self, node):
            self.node = node

        async def prologue(self, env):
            env.logger().info("auditing %s", self.node.name)

        async def exec(self, env):
            return env.snapshot().outgoing(self.node)
    ```
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from pybpm.core.token import Token
    from pybpm.executor.environment import ExecutionEnvironment
    from pybpm.models.flow import SequenceFlow


@runtime_checkable
class NodeExecutor(Protocol):
    async def exec(self, env: ExecutionEnvironment) -> list[SequenceFlow]:
        """Execute the node and return the flows to follow next."""
        ...


@runtime_checkable
class Prologue(Protocol):
    async def prologue(self, env: ExecutionEnvironment) -> None: ...


@runtime_checkable
class Epilogue(Protocol):
    async def epilogue(self, env: ExecutionEnvironment) -> None: ...


@runtime_checkable
class TokenHandler(Protocol):
    """Executor that manages tokens itself instead of the track splitting them."""

    def take_token(self, token: Token) -> None: ...

    def return_tokens(self) -> list[Token]:
        """One token per flow returned by exec."""
        ...


@runtime_checkable
class DataLinker(Protocol):
    """Executor that checks declared data inputs and outputs against the store."""

    def check_in(self, env: ExecutionEnvironment) -> None: ...

    def check_out(self, env: ExecutionEnvironment) -> None: ...


# =============================================================================
# Track Control Signals (Not Errors)
# =============================================================================


class _TrackControl(BaseException):
    """
    Base class for track control signals.

    Like StopIteration, these are control flow, not errors. They inherit from
    BaseException so ``except Exception`` in executor code can't swallow them.
    """


class _TrackMerged(_TrackControl):  # noqa: N818
    """
    Raised by a converging gateway on every arriving track except the one
    that opens it. The track stops in state MERGED.
    """


__all__ = [
    "NodeExecutor",
    "Prologue",
    "Epilogue",
    "TokenHandler",
    "DataLinker",
    "_TrackMerged",
]
