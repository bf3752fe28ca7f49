"""Activities: the task family.

Every task kind the engine executes is a Task subclass carrying only the
fields its executor reads. Tasks may declare data inputs and outputs as
DataSpecs; the engine checks them against the variable store before and
after the task runs.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from threading import Lock
from typing import TYPE_CHECKING, Any, ClassVar, Protocol

from pybpm.core.errors import ModelError
from pybpm.core.identity import Id
from pybpm.core.variables import Variable
from pybpm.models.item import DataSpec
from pybpm.models.node import ElementKind, Node

if TYPE_CHECKING:
    from pybpm.core.varstore import VarStore


class TaskKind(Enum):
    STORE = "STORE"
    SEND = "SEND"
    RECEIVE = "RECEIVE"
    OUTPUT = "OUTPUT"
    SERVICE = "SERVICE"
    USER = "USER"
    BUSINESS_RULE = "BUSINESS_RULE"
    SCRIPT = "SCRIPT"
    CALL = "CALL"
    RECEIVE_INSTANTIATE = "RECEIVE_INSTANTIATE"

    def __str__(self) -> str:
        return self.value


# Result of a service operation or script: None, or new values by name.
OperationResult = Mapping[str, Variable] | None
Operation = Callable[["VarStore"], OperationResult | Awaitable[OperationResult]]


class Task(Node):
    """Base activity with optional data inputs and outputs."""

    element_kind: ClassVar[ElementKind] = ElementKind.ACTIVITY
    task_kind: ClassVar[TaskKind]

    def __init__(
        self,
        name: str,
        *,
        inputs: Iterable[DataSpec] = (),
        outputs: Iterable[DataSpec] = (),
        id: Id | None = None,
    ):
        super().__init__(name, id=id)
        self.inputs: list[DataSpec] = list(inputs)
        self.outputs: list[DataSpec] = list(outputs)

    @property
    def kind(self) -> TaskKind:
        return self.task_kind


class StoreTask(Task):
    """Declares variables in the instance store."""

    task_kind = TaskKind.STORE

    def __init__(self, name: str, *variables: Variable, **kwargs: Any):
        super().__init__(name, **kwargs)
        if not variables:
            raise ModelError(f"store task '{self.name}' should have at least one variable")
        self.variables: list[Variable] = [v.copy() for v in variables]


class TextWriter(Protocol):
    def write(self, s: str, /) -> Any: ...


@dataclass
class OutputDescriptor:
    """Writer plus the lock guarding it.

    The descriptor is shared, never copied: every snapshot of a process
    writes to the same destination under the same lock.
    """

    to: TextWriter
    lock: Lock = field(default_factory=Lock)

    def __copy__(self) -> OutputDescriptor:
        return self

    def __deepcopy__(self, memo: dict) -> OutputDescriptor:
        return self


class OutputTask(Task):
    """Writes ``name = value`` lines for listed variables."""

    task_kind = TaskKind.OUTPUT

    def __init__(self, name: str, descriptor: OutputDescriptor, *var_names: str, **kwargs: Any):
        super().__init__(name, **kwargs)
        if descriptor is None:
            raise ModelError(f"output task '{self.name}' should have an output descriptor")
        if not var_names:
            raise ModelError(f"output task '{self.name}' should list at least one variable")
        self.descriptor = descriptor
        self.var_names: list[str] = list(var_names)


class SendTask(Task):
    """Sends a process message to the bus.

    An empty queue means the instance's default queue.
    """

    task_kind = TaskKind.SEND

    def __init__(self, name: str, message_name: str, queue: str = "", **kwargs: Any):
        super().__init__(name, **kwargs)
        if not message_name:
            raise ModelError(f"send task '{self.name}' should have a message name")
        self.message_name = message_name
        self.queue = queue


class ReceiveTask(Task):
    """Waits for a process message on the bus."""

    task_kind = TaskKind.RECEIVE

    def __init__(
        self,
        name: str,
        message_name: str,
        queue: str = "",
        *,
        instantiate: bool = False,
        **kwargs: Any,
    ):
        super().__init__(name, **kwargs)
        if not message_name:
            raise ModelError(f"receive task '{self.name}' should have a message name")
        self.message_name = message_name
        self.queue = queue
        self.instantiate = instantiate

    @property
    def kind(self) -> TaskKind:
        return TaskKind.RECEIVE_INSTANTIATE if self.instantiate else TaskKind.RECEIVE


class ServiceTask(Task):
    """Calls a Python operation with the variable store.

    The operation may be sync or async. A returned mapping of variables is
    written into the store.
    """

    task_kind = TaskKind.SERVICE

    def __init__(self, name: str, operation: Operation, **kwargs: Any):
        super().__init__(name, **kwargs)
        if not callable(operation):
            raise ModelError(f"service task '{self.name}' should have a callable operation")
        self.operation = operation


class ScriptTask(Task):
    task_kind = TaskKind.SCRIPT

    def __init__(self, name: str, script: Operation, **kwargs: Any):
        super().__init__(name, **kwargs)
        if not callable(script):
            raise ModelError(f"script task '{self.name}' should have a callable script")
        self.script = script


class UserTask(Task):
    """Waits until a user completes it through the running instance."""

    task_kind = TaskKind.USER

    def __init__(self, name: str, *performers: str, **kwargs: Any):
        super().__init__(name, **kwargs)
        self.performers: list[str] = list(performers)


class BusinessRuleTask(Task):
    task_kind = TaskKind.BUSINESS_RULE


class CallActivity(Task):
    task_kind = TaskKind.CALL

    def __init__(self, name: str, called_element: str = "", **kwargs: Any):
        super().__init__(name, **kwargs)
        self.called_element = called_element


__all__ = [
    "TaskKind",
    "Task",
    "StoreTask",
    "OutputDescriptor",
    "OutputTask",
    "SendTask",
    "ReceiveTask",
    "ServiceTask",
    "ScriptTask",
    "UserTask",
    "BusinessRuleTask",
    "CallActivity",
    "Operation",
    "OperationResult",
]
