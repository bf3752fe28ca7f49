"""
Process model for the pybpm engine.

This module contains the immutable input the engine runs:
- Process / Snapshot: node and flow graph with lanes and messages
- Tasks: StoreTask, OutputTask, SendTask, ReceiveTask, ServiceTask, ...
- Gateway: exclusive, inclusive, parallel, event-based, complex
- StartEvent / EndEvent with their EventDefinitions
- SequenceFlow and Condition
- Message with its JSON envelope
"""

from pybpm.models.activities import (
    BusinessRuleTask,
    CallActivity,
    OutputDescriptor,
    OutputTask,
    ReceiveTask,
    ScriptTask,
    SendTask,
    ServiceTask,
    StoreTask,
    Task,
    TaskKind,
    UserTask,
)
from pybpm.models.events import EndEvent, Event, EventDefinition, EventTrigger, StartEvent
from pybpm.models.expression import Condition, ConditionError, var_equals
from pybpm.models.flow import SequenceFlow
from pybpm.models.gateways import (
    Gateway,
    GatewayDirection,
    GatewayKind,
    exclusive,
    inclusive,
    parallel,
)
from pybpm.models.item import DataSpec, ItemDefinition, ItemKind
from pybpm.models.lane import Lane
from pybpm.models.message import (
    Message,
    MessageDirection,
    MessageState,
    MessageVariable,
    optional,
    required,
)
from pybpm.models.node import ElementKind, Node
from pybpm.models.process import Process, Snapshot

__all__ = [
    "Process",
    "Snapshot",
    "Lane",
    "Node",
    "ElementKind",
    "Task",
    "TaskKind",
    "StoreTask",
    "OutputTask",
    "OutputDescriptor",
    "SendTask",
    "ReceiveTask",
    "ServiceTask",
    "ScriptTask",
    "UserTask",
    "BusinessRuleTask",
    "CallActivity",
    "Gateway",
    "GatewayKind",
    "GatewayDirection",
    "exclusive",
    "inclusive",
    "parallel",
    "Event",
    "StartEvent",
    "EndEvent",
    "EventDefinition",
    "EventTrigger",
    "SequenceFlow",
    "Condition",
    "ConditionError",
    "var_equals",
    "ItemDefinition",
    "ItemKind",
    "DataSpec",
    "Message",
    "MessageDirection",
    "MessageState",
    "MessageVariable",
    "required",
    "optional",
]
