"""Start and end event executors."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pybpm.core.errors import TokenError
from pybpm.models.events import EndEvent, StartEvent

if TYPE_CHECKING:
    from pybpm.core.token import Token
    from pybpm.executor.environment import ExecutionEnvironment
    from pybpm.models.flow import SequenceFlow


class StartEventExecutor:
    def __init__(self, event: StartEvent):
        self.event = event

    async def exec(self, env: ExecutionEnvironment) -> list[SequenceFlow]:
        return env.snapshot().outgoing(self.event)


class EndEventExecutor:
    """Consumes the arriving token; the track ends here."""

    def __init__(self, event: EndEvent):
        self.event = event
        self._token: Token | None = None

    def take_token(self, token: Token) -> None:
        self._token = token

    async def exec(self, env: ExecutionEnvironment) -> list[SequenceFlow]:
        if self._token is None:
            raise TokenError(f"end event '{self.event.name}' got no token")
        self._token.consume()
        env.logger().debug(f"token {self._token.id.last(4)} consumed at '{self.event.name}'")
        return []

    def return_tokens(self) -> list[Token]:
        return []


__all__ = ["StartEventExecutor", "EndEventExecutor"]
