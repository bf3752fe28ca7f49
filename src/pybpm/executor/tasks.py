"""
Task executors.

Each executor wraps one task node of a snapshot. Executors raise on
failure; the track wraps the error with the node's name and id.

All task executors are data linkers: declared inputs are checked before the
prologue, declared outputs after the epilogue.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pybpm.bus.base import MessageEnvelope
from pybpm.core.errors import MessageError, VariableError
from pybpm.core.variables import Variable, VarType
from pybpm.models.activities import (
    Operation,
    OutputTask,
    ReceiveTask,
    ScriptTask,
    SendTask,
    ServiceTask,
    StoreTask,
    Task,
    UserTask,
)
from pybpm.models.message import Message, MessageDirection, MessageState, MessageVariable

if TYPE_CHECKING:
    from pybpm.core.varstore import VarStore
    from pybpm.executor.environment import ExecutionEnvironment
    from pybpm.models.flow import SequenceFlow


class TaskExecutor:
    """Base executor: checks data specs and follows all outgoing flows."""

    def __init__(self, task: Task):
        self.task = task

    def check_in(self, env: ExecutionEnvironment) -> None:
        self._check_specs(env.variable_store(), self.task.inputs, "input")

    def check_out(self, env: ExecutionEnvironment) -> None:
        self._check_specs(env.variable_store(), self.task.outputs, "output")

    def _check_specs(self, store: VarStore, specs: list, what: str) -> None:
        for spec in specs:
            v = store.find(spec.name)
            if v is None:
                if spec.optional:
                    continue
                raise VariableError(f"required {what} isn't in the store", spec.name, spec.var_type)
            if v.type != spec.var_type:
                raise VariableError(
                    f"{what} has type {v.type}, expected {spec.var_type}", spec.name, v.type
                )

    async def exec(self, env: ExecutionEnvironment) -> list[SequenceFlow]:
        return env.snapshot().outgoing(self.task)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.task.name!r})"


class PassThroughExecutor(TaskExecutor):
    """Business-rule tasks and call activities: no behavior of their own."""


class StoreTaskExecutor(TaskExecutor):
    """Declares the task's variables in the store.

    Re-declaring a name with the same type just updates it; a different
    type fails the task.
    """

    task: StoreTask

    async def exec(self, env: ExecutionEnvironment) -> list[SequenceFlow]:
        vs = env.variable_store()
        for v in self.task.variables:
            vs.new_var(v)
            env.logger().debug(f"stored {v.name} = {v.as_str()}")

        return await super().exec(env)


class OutputTaskExecutor(TaskExecutor):
    """Writes one ``name = value`` line per listed variable.

    Every line is written while holding the descriptor's lock.
    """

    task: OutputTask

    async def exec(self, env: ExecutionEnvironment) -> list[SequenceFlow]:
        vs = env.variable_store()
        d = self.task.descriptor
        for name in self.task.var_names:
            v = vs.get(name)
            line = f"{name} = {v.as_str()}\n"
            with d.lock:
                d.to.write(line)

        return await super().exec(env)


class SendTaskExecutor(TaskExecutor):
    """Sends the task's message with current store values."""

    task: SendTask

    async def exec(self, env: ExecutionEnvironment) -> list[SequenceFlow]:
        msg = env.snapshot().message(self.task.message_name)
        if not msg.direction & MessageDirection.OUTGOING:
            raise MessageError(f"message '{msg.name}' isn't outgoing")

        vs = env.variable_store()
        values: list[MessageVariable] = []
        for mv in msg.variables:
            v = vs.find(mv.name)
            if v is None:
                if not mv.optional:
                    raise VariableError("required message variable isn't in the store", mv.name)
                v = mv.variable
            elif v.type != mv.variable.type:
                v = Variable(mv.name, mv.variable.type, v.as_type(mv.variable.type), v.precision)
            values.append(MessageVariable(v, mv.optional, mv.item))

        out = msg.outgoing(*values)
        queue = env.message_queue(self.task.queue)
        server = env.service_bus().get_message_server()
        await server.put(env.instance_id(), queue, MessageEnvelope(out.name, out.to_json()))

        env.logger().debug(f"message '{out.name}' sent to queue '{queue}'")
        return await super().exec(env)


class ReceiveTaskExecutor(TaskExecutor):
    """Waits for the task's message on the bus and stores its variables.

    The receiver identity is the node id, so a receive task reads every
    queued message once. Envelopes with other names are skipped.
    """

    task: ReceiveTask

    async def exec(self, env: ExecutionEnvironment) -> list[SequenceFlow]:
        descr = env.snapshot().message(self.task.message_name)
        if not descr.direction & MessageDirection.INCOMING:
            raise MessageError(f"message '{descr.name}' isn't incoming")
        if descr.state != MessageState.CREATED:
            raise MessageError(f"message '{descr.name}' is in state {descr.state}, not CREATED")

        queue = env.message_queue(self.task.queue)
        env.logger().debug(f"waiting for message '{descr.name}' on queue '{queue}'")

        envelope = await self._receive(env, descr.name, queue)
        received = Message.from_json(envelope.data)

        vs = env.variable_store()
        for mv in descr.variables:
            got = received.get(mv.name)
            if got is None:
                if mv.optional:
                    continue
                raise MessageError(
                    f"no required variable '{mv.name}' in the message '{received.name}'"
                )
            vs.new_var(got.variable)

        env.logger().debug(f"message '{descr.name}' received from {envelope.producer_id}")
        return await super().exec(env)

    async def _receive(
        self, env: ExecutionEnvironment, name: str, queue: str
    ) -> MessageEnvelope:
        server = env.service_bus().get_message_server()
        stream = server.get(self.task.id, queue, wait=True)
        try:
            async for envelope in stream:
                if envelope.name == name:
                    return envelope
        finally:
            await stream.aclose()

        raise MessageError(f"message '{name}' isn't found on queue '{queue}'")


class OperationExecutor(TaskExecutor):
    """Service and script tasks: call a Python function with the store.

    The function may be sync or async. It may return a mapping of name to
    Variable (or to a plain int, bool, str, float or datetime), which is
    declared in the store.
    """

    task: ServiceTask | ScriptTask

    @property
    def operation(self) -> Operation:
        if isinstance(self.task, ServiceTask):
            return self.task.operation
        return self.task.script

    async def exec(self, env: ExecutionEnvironment) -> list[SequenceFlow]:
        vs = env.variable_store()
        result = self.operation(vs)
        if inspect.isawaitable(result):
            result = await result

        if result is not None:
            if not isinstance(result, Mapping):
                raise VariableError(
                    f"operation of '{self.task.name}' returned {type(result).__name__}, "
                    "expected a mapping of variables"
                )
            precision = env.config().float_precision
            for name, value in result.items():
                vs.new_var(to_variable(name, value, precision))

        return await super().exec(env)


class UserTaskExecutor(TaskExecutor):
    """Waits until the task is completed through Instance.complete_user_task."""

    task: UserTask

    async def exec(self, env: ExecutionEnvironment) -> list[SequenceFlow]:
        completion = env.user_task_completion(self.task.id)
        timeout = env.config().user_task_timeout

        env.logger().info(f"user task '{self.task.name}' is waiting for completion")
        if timeout is None:
            variables = await completion
        else:
            variables = await asyncio.wait_for(completion, timeout)

        vs = env.variable_store()
        for v in variables:
            vs.new_var(v)

        return await super().exec(env)


def to_variable(name: str, value: Any, precision: int) -> Variable:
    """Variable named name holding value, with the type inferred from it."""
    if isinstance(value, Variable):
        if value.name == name:
            return value
        return Variable(name, value.type, value.value, value.precision)
    if isinstance(value, bool):
        return Variable(name, VarType.BOOL, value)
    if isinstance(value, int):
        return Variable(name, VarType.INT, value)
    if isinstance(value, float):
        return Variable(name, VarType.FLOAT, value, precision)
    if isinstance(value, str):
        return Variable(name, VarType.STRING, value)
    if isinstance(value, datetime):
        return Variable(name, VarType.TIME, value)

    raise VariableError(f"couldn't store value of type {type(value).__name__}", name)


__all__ = [
    "TaskExecutor",
    "PassThroughExecutor",
    "StoreTaskExecutor",
    "OutputTaskExecutor",
    "SendTaskExecutor",
    "ReceiveTaskExecutor",
    "OperationExecutor",
    "UserTaskExecutor",
    "to_variable",
]
