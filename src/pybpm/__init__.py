"""
pybpm: BPMN 2.0 execution engine for asyncio

Design Pattern: Façade Pattern
This module provides a simplified interface to the engine, hiding the
details of tracks, tokens and gateway synchronization.

Example:
    ```python
    import asyncio
    from pybpm import Process, StartEvent, StoreTask, EndEvent, Thresher, int_var

    process = Process("counter")
    start = process.add_node(StartEvent("start"))
    store = process.add_node(StoreTask("store", int_var("x", 42)))
    end = process.add_node(EndEvent("end"))
    process.link(start, store)
    process.link(store, end)

    async def main():
        thresher = Thresher()
        handle = thresher.run_process(process.snapshot())
        instance = await handle.wait()
        print(instance.variables.get("x").as_int())
        await thresher.shutdown()

    asyncio.run(main())
    ```
"""

# Core types
from pybpm.core import (
    EMPTY_ID,
    BpmError,
    BusError,
    ExecutorNotFoundError,
    GatewayError,
    Id,
    InstanceError,
    InstanceState,
    MessageError,
    ModelError,
    NodeExecutionError,
    SnapshotChangeError,
    ThresherError,
    Token,
    TokenError,
    TrackState,
    Variable,
    VariableError,
    VarStore,
    VarType,
    bool_var,
    float_var,
    int_var,
    str_var,
    time_var,
)

# Configuration
from pybpm.config import EngineConfig

# Process model
from pybpm.models import (
    BusinessRuleTask,
    CallActivity,
    Condition,
    DataSpec,
    EndEvent,
    EventDefinition,
    EventTrigger,
    Gateway,
    GatewayDirection,
    GatewayKind,
    Message,
    MessageDirection,
    OutputDescriptor,
    OutputTask,
    Process,
    ReceiveTask,
    ScriptTask,
    SendTask,
    SequenceFlow,
    ServiceTask,
    Snapshot,
    StartEvent,
    StoreTask,
    UserTask,
    exclusive,
    inclusive,
    optional,
    parallel,
    required,
    var_equals,
)

# Message bus (Adapter pattern)
from pybpm.bus import InMemoryMessageServer, MessageEnvelope, MessageServer, ServiceBus

# Execution
from pybpm.executor import (
    INSTANCE_END,
    INSTANCE_START,
    NEW_TRACK,
    EmitterFunc,
    EventEmitter,
    ExecutorRegistry,
    Instance,
    InstanceHandle,
    Thresher,
    Track,
)

# Version
__version__ = "0.1.0"

__all__ = [
    # Core types
    "Id",
    "EMPTY_ID",
    "Variable",
    "VarType",
    "VarStore",
    "int_var",
    "bool_var",
    "str_var",
    "float_var",
    "time_var",
    "Token",
    "InstanceState",
    "TrackState",
    # Errors
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
    # Configuration
    "EngineConfig",
    # Process model
    "Process",
    "Snapshot",
    "StartEvent",
    "EndEvent",
    "EventDefinition",
    "EventTrigger",
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
    "SequenceFlow",
    "Condition",
    "var_equals",
    "DataSpec",
    "Message",
    "MessageDirection",
    "required",
    "optional",
    # Message bus
    "ServiceBus",
    "MessageServer",
    "MessageEnvelope",
    "InMemoryMessageServer",
    # Execution
    "Instance",
    "Track",
    "ExecutorRegistry",
    "Thresher",
    "InstanceHandle",
    "EventEmitter",
    "EmitterFunc",
    "INSTANCE_START",
    "INSTANCE_END",
    "NEW_TRACK",
    # Metadata
    "__version__",
]
