"""
Execution environment handed to node executors.

A new environment is built for every step a track executes. It is a
read-only view: the instance id, a logger named after the track, the
immutable snapshot, the instance's variable store, the service bus and the
queue-name resolution. The store serializes mutation itself.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pybpm.config import EngineConfig
from pybpm.core.identity import Id

if TYPE_CHECKING:
    from pybpm.bus.base import ServiceBus
    from pybpm.core.variables import Variable
    from pybpm.core.varstore import VarStore
    from pybpm.executor.gatekeeper import GatewayJoin
    from pybpm.executor.track import Step, Track
    from pybpm.models.gateways import Gateway
    from pybpm.models.node import Node
    from pybpm.models.process import Snapshot


class ExecutionEnvironment:
    """Capability bundle for one step of one track."""

    __slots__ = ("_track", "_step")

    def __init__(self, track: Track, step: Step):
        self._track = track
        self._step = step

    def instance_id(self) -> Id:
        return self._track.instance.id

    def track_id(self) -> Id:
        return self._track.id

    def logger(self) -> logging.LoggerAdapter:
        return self._track.log

    def snapshot(self) -> Snapshot:
        return self._track.instance.snapshot

    def variable_store(self) -> VarStore:
        return self._track.instance.variables

    def service_bus(self) -> ServiceBus:
        return self._track.instance.service_bus

    def message_queue(self, given: str = "") -> str:
        """given if non-empty, else the instance's default queue."""
        return given or self._track.instance.message_queue

    def config(self) -> EngineConfig:
        return self._track.instance.config

    def node(self) -> Node:
        return self._track.instance.snapshot.node(self._step.node_id)

    def arrived_by(self) -> Id | None:
        """Id of the flow the track followed into the current node."""
        return self._step.flow_id

    # -------------------------------------------------------------------------
    # Engine services used by built-in executors
    # -------------------------------------------------------------------------

    def gateway_join(self, gateway: Gateway) -> GatewayJoin:
        return self._track.instance.get_gateway_executor(gateway)

    async def user_task_completion(self, node_id: Id) -> list[Variable]:
        """Wait until the user task node_id is completed; returns its variables."""
        return await self._track.instance._wait_user_task(node_id)

    def __repr__(self) -> str:
        return (
            f"ExecutionEnvironment(instance={self.instance_id().last(4)}, "
            f"track={self.track_id().last(4)})"
        )


__all__ = ["ExecutionEnvironment"]
