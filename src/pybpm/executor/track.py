"""
Track - one path of execution through a process instance.

A track owns a list of steps. Each step references a node of the snapshot,
the token it carries and the flow it arrived by. The track runs as one
asyncio task and advances one step per tick:

    1. yield to the event loop (cancellation is observed here)
    2. a step that is no longer CREATED is the final one: inactivate its
       token and end
    3. resolve the node's executor
    4. take token (token handlers only)
    5. check_in, prologue, exec, epilogue, check_out
    6. derive next tokens: return_tokens() or split of the carrying token
    7. first next flow continues in this track, the others fork new tracks

State machine:
    READY -> EXECUTING -> READY | ENDED | ERROR | MERGED

Error handling:
    Executor errors end the track in ERROR with a NodeExecutionError chained
    to the cause. A TokenError is a broken engine invariant: it also ends the
    track in ERROR but is re-raised, which aborts the instance. Cancellation
    is recorded as the track's error and re-raised.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from pybpm.core.errors import NodeExecutionError, TokenError
from pybpm.core.identity import Id
from pybpm.core.status import StepState, TrackState
from pybpm.executor.capabilities import (
    DataLinker,
    Epilogue,
    Prologue,
    TokenHandler,
    _TrackMerged,
)
from pybpm.executor.environment import ExecutionEnvironment
from pybpm.models.node import ElementKind

if TYPE_CHECKING:
    from pybpm.core.token import Token
    from pybpm.executor.instance import Instance
    from pybpm.models.flow import SequenceFlow
    from pybpm.models.node import Node


class Step:
    """One node visit of a track."""

    __slots__ = ("node_id", "token", "flow_id", "state")

    def __init__(self, node_id: Id, token: Token, flow_id: Id | None = None):
        self.node_id = node_id
        self.token = token
        self.flow_id = flow_id
        self.state = StepState.CREATED

    def __repr__(self) -> str:
        return f"Step({self.node_id.last(4)}, {self.state}, {self.token!r})"


class Track:
    """Single path of execution of an instance."""

    def __init__(self, instance: Instance, node: Node, token: Token, flow_id: Id | None = None):
        self.id = Id()
        self.instance = instance
        self.state = TrackState.READY
        self.error: BaseException | None = None
        self.steps: list[Step] = [Step(node.id, token, flow_id)]

        self.log = logging.LoggerAdapter(
            instance.log.logger.getChild(f"TR:{self.id.last(4)}"),
            {"instance_id": str(instance.id), "track_id": str(self.id)},
        )

    @property
    def current_step(self) -> Step:
        return self.steps[-1]

    @property
    def node_id(self) -> Id:
        return self.current_step.node_id

    @property
    def token(self) -> Token:
        return self.current_step.token

    @property
    def arrived_by(self) -> Id | None:
        return self.current_step.flow_id

    @property
    def is_live(self) -> bool:
        return self.state.is_live

    async def run(self) -> None:
        """Tick until the track reaches a terminal state."""
        try:
            while await self.tick():
                pass
        except asyncio.CancelledError as e:
            self._fail(e)
            self.log.debug("track cancelled")
            raise

        await self.instance._track_changed()

    async def tick(self) -> bool:
        """
        Execute the current step.

        Returns:
            True if the track has a next step to execute

        Raises:
            TokenError: On token invariant violation
            asyncio.CancelledError: If the instance is cancelled
        """
        await asyncio.sleep(0)

        step = self.current_step
        if step.state != StepState.CREATED:
            step.token.inactivate()
            self.state = TrackState.ENDED
            self.log.debug("track ended")
            return False

        self.state = TrackState.EXECUTING
        node = self.instance.snapshot.node(step.node_id)
        env = ExecutionEnvironment(self, step)

        try:
            flows, tokens = await self._exec(node, step, env)
        except _TrackMerged:
            step.state = StepState.ENDED
            self.state = TrackState.MERGED
            self.log.debug(f"track merged at '{node.name}'")
            return False
        except TokenError as e:
            step.state = StepState.FAILED
            self._fail(e)
            self.log.error(f"token error at '{node.name}' [{node.id}]: {e}")
            raise
        except asyncio.CancelledError:
            step.state = StepState.FAILED
            raise
        except Exception as e:
            step.state = StepState.FAILED
            err = NodeExecutionError(str(e), node.name, node.id)
            err.__cause__ = e
            self._fail(err)
            self.log.error(
                f"node '{node.name}' [{node.id}] failed on instance {self.instance.id} "
                f"track {self.id}: {e!r}"
            )
            return False

        step.state = StepState.ENDED
        self._spawn(flows, tokens)
        self.state = TrackState.READY
        await self.instance._track_changed()
        return True

    async def _exec(
        self, node: Node, step: Step, env: ExecutionEnvironment
    ) -> tuple[list[SequenceFlow], list[Token]]:
        executor = self.instance.registry.get(node, env)
        step.state = StepState.STARTED

        if isinstance(executor, TokenHandler):
            executor.take_token(step.token)
        if isinstance(executor, DataLinker):
            executor.check_in(env)
        if isinstance(executor, Prologue):
            await executor.prologue(env)

        flows = list(await executor.exec(env))

        if isinstance(executor, Epilogue):
            await executor.epilogue(env)
        if isinstance(executor, DataLinker):
            executor.check_out(env)

        if node.element_kind == ElementKind.ACTIVITY:
            flows = _default_first(node, flows)

        if isinstance(executor, TokenHandler):
            tokens = executor.return_tokens()
            if len(tokens) != len(flows):
                raise TokenError(
                    f"node '{node.name}' returned {len(tokens)} tokens for {len(flows)} flows"
                )
        else:
            tokens = step.token.split(len(flows))

        return flows, tokens

    def _spawn(self, flows: list[SequenceFlow], tokens: list[Token]) -> None:
        if not flows:
            return

        snapshot = self.instance.snapshot
        first, rest = flows[0], flows[1:]

        for flow, token in zip(rest, tokens[1:], strict=True):
            track = Track(self.instance, snapshot.node(flow.target_id), token, flow.id)
            self.instance.add_track(track)

        self.steps.append(Step(first.target_id, tokens[0], first.id))

    def _fail(self, e: BaseException) -> None:
        self.current_step.token.inactivate()
        self.error = e
        self.state = TrackState.ERROR

    def __repr__(self) -> str:
        return f"Track({self.id.last(4)}, {self.state}, steps={len(self.steps)})"


def _default_first(node: Node, flows: list[SequenceFlow]) -> list[SequenceFlow]:
    if node.default_flow is None:
        return flows
    for i, f in enumerate(flows):
        if f.id == node.default_flow:
            return [f, *flows[:i], *flows[i + 1 :]]
    return flows


__all__ = ["Track", "Step"]
