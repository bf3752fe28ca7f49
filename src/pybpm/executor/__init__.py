"""
Executor module - Runtime engine for process instances.

This module contains the execution components:
- environment: what a node sees while it executes (ExecutionEnvironment)
- registry: node kind -> executor dispatch (ExecutorRegistry)
- tasks, gateways, events: the node executors
- gatekeeper: converging-gateway synchronization
- track: one path of execution (Track, Step)
- instance: one run of a snapshot (Instance)
- thresher: engine root that starts instances and routes events
- emitter: lifecycle events (INSTANCE_START, INSTANCE_END, NEW_TRACK)
"""

from pybpm.executor.capabilities import DataLinker, Epilogue, NodeExecutor, Prologue, TokenHandler
from pybpm.executor.emitter import (
    INSTANCE_END,
    INSTANCE_START,
    NEW_TRACK,
    EmitterFunc,
    EventEmitter,
    LoggingEmitter,
)
from pybpm.executor.environment import ExecutionEnvironment
from pybpm.executor.gatekeeper import Gatekeeper, GatewayJoin, JoinTicket
from pybpm.executor.instance import Instance
from pybpm.executor.registry import DEFAULT_REGISTRY, ExecutorRegistry
from pybpm.executor.tasks import TaskExecutor
from pybpm.executor.thresher import ALL_EVENTS, EventProcessor, InstanceHandle, Thresher
from pybpm.executor.track import Step, Track

__all__ = [
    # Capabilities
    "NodeExecutor",
    "Prologue",
    "Epilogue",
    "TokenHandler",
    "DataLinker",
    # Runtime
    "ExecutionEnvironment",
    "ExecutorRegistry",
    "DEFAULT_REGISTRY",
    "TaskExecutor",
    "Gatekeeper",
    "GatewayJoin",
    "JoinTicket",
    "Track",
    "Step",
    "Instance",
    # Engine root
    "Thresher",
    "InstanceHandle",
    "EventProcessor",
    "ALL_EVENTS",
    # Lifecycle events
    "EventEmitter",
    "EmitterFunc",
    "LoggingEmitter",
    "INSTANCE_START",
    "INSTANCE_END",
    "NEW_TRACK",
]
