"""
Node-executor registry.

Maps a node class to a factory building the executor for one step. Lookup
walks the node's MRO, so subclasses of registered node classes share their
executor unless registered themselves.

Gateways dispatch on kind and direction: converging (and mixed) gateways get
a ticket on the instance's canonical join, diverging ones a fresh
DivergingGatewayExecutor. Event-based and complex gateways have no executor.

Example:
    ```python
    registry = ExecutorRegistry()
    registry.register(AuditTask, lambda node, env: AuditExecutor(node))
    executor = registry.get(node, env)
    ```
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from pybpm.core.errors import ExecutorNotFoundError
from pybpm.executor.events import EndEventExecutor, StartEventExecutor
from pybpm.executor.gateways import DivergingGatewayExecutor
from pybpm.executor.tasks import (
    OperationExecutor,
    OutputTaskExecutor,
    PassThroughExecutor,
    ReceiveTaskExecutor,
    SendTaskExecutor,
    StoreTaskExecutor,
    UserTaskExecutor,
)
from pybpm.models.activities import (
    BusinessRuleTask,
    CallActivity,
    OutputTask,
    ReceiveTask,
    ScriptTask,
    SendTask,
    ServiceTask,
    StoreTask,
    UserTask,
)
from pybpm.models.events import EndEvent, StartEvent
from pybpm.models.gateways import Gateway, GatewayKind

if TYPE_CHECKING:
    from pybpm.executor.capabilities import NodeExecutor
    from pybpm.executor.environment import ExecutionEnvironment
    from pybpm.models.node import Node

logger = logging.getLogger(__name__)

ExecutorFactory = Callable[["Node", "ExecutionEnvironment"], "NodeExecutor"]

_UNSUPPORTED_GATEWAYS = (GatewayKind.EVENT_BASED, GatewayKind.COMPLEX)


def _gateway_executor(node: Gateway, env: ExecutionEnvironment) -> NodeExecutor:
    if node.kind in _UNSUPPORTED_GATEWAYS:
        raise ExecutorNotFoundError(f"no executor for {node.kind_name} '{node.name}'")
    if node.is_converging:
        return env.gateway_join(node).ticket(env)
    return DivergingGatewayExecutor(node)


def _default_factories() -> dict[type, ExecutorFactory]:
    return {
        StoreTask: lambda n, env: StoreTaskExecutor(n),
        OutputTask: lambda n, env: OutputTaskExecutor(n),
        SendTask: lambda n, env: SendTaskExecutor(n),
        ReceiveTask: lambda n, env: ReceiveTaskExecutor(n),
        ServiceTask: lambda n, env: OperationExecutor(n),
        ScriptTask: lambda n, env: OperationExecutor(n),
        UserTask: lambda n, env: UserTaskExecutor(n),
        BusinessRuleTask: lambda n, env: PassThroughExecutor(n),
        CallActivity: lambda n, env: PassThroughExecutor(n),
        Gateway: _gateway_executor,
        StartEvent: lambda n, env: StartEventExecutor(n),
        EndEvent: lambda n, env: EndEventExecutor(n),
    }


class ExecutorRegistry:
    """Node class -> executor factory."""

    def __init__(self):
        self._factories: dict[type, ExecutorFactory] = _default_factories()

    def register(self, node_type: type[Node], factory: ExecutorFactory) -> None:
        """Register (or replace) the executor factory of node_type."""
        self._factories[node_type] = factory
        logger.debug(f"Registered executor for node type: {node_type.__name__}")

    def supports(self, node: Node) -> bool:
        if isinstance(node, Gateway) and node.kind in _UNSUPPORTED_GATEWAYS:
            return False
        return self._find(type(node)) is not None

    def get(self, node: Node, env: ExecutionEnvironment) -> NodeExecutor:
        """
        Build the executor for node.

        Raises:
            ExecutorNotFoundError: If no executor handles the node's kind
        """
        factory = self._find(type(node))
        if factory is None:
            raise ExecutorNotFoundError(f"no executor for {node.kind_name} '{node.name}'")
        return factory(node, env)

    def _find(self, node_type: type) -> ExecutorFactory | None:
        for cls in node_type.__mro__:
            factory = self._factories.get(cls)
            if factory is not None:
                return factory
        return None


DEFAULT_REGISTRY = ExecutorRegistry()

__all__ = ["ExecutorRegistry", "ExecutorFactory", "DEFAULT_REGISTRY"]
