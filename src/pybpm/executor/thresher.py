"""
Thresher - the engine root.

The Thresher starts instances from snapshots, keeps a handle on every
instance it started and routes fired event definitions to the processors
registered for them. It is also the EventEmitter of the instances it runs:
lifecycle events are logged and fanned out to subscribers.

Event routing:
    register_events(processor, *defs)   processor receives defs when fired
    register_process(snapshot)          start-event definitions of the
                                        snapshot start new instances
    process_event(defn)                 delivers defn to every registration

Usage:
    ```python
    thresher = Thresher()
    thresher.subscribe(INSTANCE_END, lambda name, descr: print(descr))

    handle = thresher.run_process(process.snapshot())
    instance = await handle.wait()

    await thresher.shutdown()
    ```
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from pybpm.bus.base import ServiceBus
from pybpm.config import EngineConfig
from pybpm.core.errors import BpmError, ThresherError
from pybpm.core.identity import Id
from pybpm.executor.instance import Instance
from pybpm.executor.registry import ExecutorRegistry
from pybpm.models.events import EventDefinition, StartEvent
from pybpm.models.process import Snapshot

logger = logging.getLogger(__name__)

ALL_EVENTS = "*"

EventHandler = Callable[[str, str], Any]


@runtime_checkable
class EventProcessor(Protocol):
    """Receiver of fired event definitions."""

    id: Id

    async def process_event(self, defn: EventDefinition) -> None: ...


@dataclass
class _Registration:
    processor: EventProcessor
    definitions: dict[Id, EventDefinition] = field(default_factory=dict)


class InstanceHandle:
    """Handle of an instance running under a Thresher.

    Usage:
        handle = thresher.run_process(snapshot)
        await handle.wait()
    """

    def __init__(self, instance: Instance, task: asyncio.Task):
        self.instance = instance
        self._task = task

    @property
    def id(self) -> Id:
        return self.instance.id

    def is_running(self) -> bool:
        return not self._task.done()

    def cancel(self) -> None:
        """Cancel the instance without waiting for it to drain."""
        self._task.cancel()

    async def wait(self) -> Instance:
        """
        Wait until the instance ended.

        Raises:
            InstanceError: If the instance was aborted
            asyncio.CancelledError: If the instance was cancelled
        """
        await self._task
        return self.instance

    def __repr__(self) -> str:
        return f"InstanceHandle({self.instance!r}, running={self.is_running()})"


class Thresher:
    """Engine root: runs instances and routes events."""

    def __init__(
        self,
        service_bus: ServiceBus | None = None,
        *,
        config: EngineConfig | None = None,
        registry: ExecutorRegistry | None = None,
    ):
        self.id = Id()
        self.config = config or EngineConfig.DEFAULT
        self.registry = registry
        self._owns_bus = service_bus is None
        self.service_bus = service_bus or ServiceBus.in_memory()

        self._lock = threading.Lock()
        self._registrations: dict[Id, _Registration] = {}
        self._snapshots: dict[Id, Snapshot] = {}
        # event definition id -> ids of the processes it starts
        self._initial_events: dict[Id, list[Id]] = {}
        self._instances: dict[Id, list[InstanceHandle]] = {}
        self._subscribers: dict[str, list[EventHandler]] = {}
        self._closed = False

        self.log = logging.LoggerAdapter(
            logger.getChild(f"THR:{self.id.last(4)}"),
            {"thresher_id": str(self.id)},
        )

    # -------------------------------------------------------------------------
    # Lifecycle events
    # -------------------------------------------------------------------------

    def subscribe(self, topic: str, handler: EventHandler) -> None:
        """Call handler(name, descr) for every event named topic (ALL_EVENTS for all)."""
        with self._lock:
            self._subscribers.setdefault(topic, []).append(handler)

    def emit_event(self, name: str, descr: str) -> None:
        self.log.debug(f"{name}: {descr}")

        with self._lock:
            handlers = [*self._subscribers.get(name, ()), *self._subscribers.get(ALL_EVENTS, ())]

        for handler in handlers:
            try:
                handler(name, descr)
            except Exception:
                self.log.exception(f"subscriber of {name} failed")

    # -------------------------------------------------------------------------
    # Event registrations
    # -------------------------------------------------------------------------

    def register_events(self, processor: EventProcessor, *defs: EventDefinition) -> None:
        """
        Register defs to be delivered to processor.

        Definitions are merged with the ones registered before under the
        processor's id.

        Raises:
            ThresherError: If processor or defs are empty
        """
        if processor is None:
            raise ThresherError("empty event processor")
        if not defs:
            raise ThresherError(f"no event definitions to register for processor {processor.id}")

        with self._lock:
            reg = self._registrations.get(processor.id)
            if reg is None:
                reg = _Registration(processor)
                self._registrations[processor.id] = reg
            for d in defs:
                reg.definitions[d.id] = d

        self.log.debug(f"registered {len(defs)} event(s) for processor {processor.id}")

    def unregister_events(self, processor: EventProcessor, *defs: EventDefinition) -> None:
        """Remove defs of processor; without defs all of its registrations are dropped."""
        if processor is None:
            raise ThresherError("empty event processor")

        with self._lock:
            reg = self._registrations.get(processor.id)
            if reg is None:
                return
            if not defs:
                reg.definitions.clear()
            for d in defs:
                reg.definitions.pop(d.id, None)
            if not reg.definitions:
                del self._registrations[processor.id]

    def register_process(self, snapshot: Snapshot) -> None:
        """
        Register snapshot so its start-event definitions start new instances.

        A process is registered once; later snapshots of the same process are
        ignored.

        Raises:
            ThresherError: If snapshot isn't a process snapshot
        """
        if snapshot is None or not snapshot.is_snapshot:
            raise ThresherError("only process snapshots can be registered")

        defs = [d for ev in snapshot.nodes(StartEvent) for d in ev.definitions]

        with self._lock:
            if snapshot.origin_id in self._snapshots:
                self.log.debug(f"process {snapshot.origin_id} is already registered")
                return
            self._snapshots[snapshot.origin_id] = snapshot
            for d in defs:
                pids = self._initial_events.setdefault(d.id, [])
                if snapshot.origin_id not in pids:
                    pids.append(snapshot.origin_id)

        self.log.info(
            f"process '{snapshot.name}' [{snapshot.origin_id}] registered "
            f"with {len(defs)} initial event(s)"
        )

    def start_process(self, process_id: Id, *events: EventDefinition) -> InstanceHandle:
        """
        Run a new instance of the registered process process_id.

        Raises:
            ThresherError: If the process isn't registered
        """
        with self._lock:
            snapshot = self._snapshots.get(process_id)
        if snapshot is None:
            raise ThresherError(f"couldn't find snapshot for process {process_id}")

        return self.run_process(snapshot, *events)

    async def process_event(self, defn: EventDefinition) -> list[InstanceHandle]:
        """
        Deliver a fired event definition.

        Every processor registered for defn receives it; every registered
        process started by defn gets a new instance.

        Returns:
            Handles of the instances started by defn

        Raises:
            ThresherError: If defn isn't registered or a processor failed
        """
        if defn is None:
            raise ThresherError("no event definition")

        with self._lock:
            processors = [
                r.processor for r in self._registrations.values() if defn.id in r.definitions
            ]
            process_ids = list(self._initial_events.get(defn.id, ()))

        if not processors and not process_ids:
            raise ThresherError(f"event definition {defn.id} isn't registered")

        started = [self.start_process(pid, defn) for pid in process_ids]

        results = await asyncio.gather(
            *(p.process_event(defn) for p in processors), return_exceptions=True
        )
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            raise ThresherError(
                f"{len(errors)} processor(s) failed on event {defn.name or defn.id}"
            ) from errors[0]

        return started

    # -------------------------------------------------------------------------
    # Instances
    # -------------------------------------------------------------------------

    def run_process(self, snapshot: Snapshot, *events: EventDefinition) -> InstanceHandle:
        """
        Start a new instance of snapshot and return immediately.

        The instance reports its progress through emitted events; the handle
        allows waiting for it or cancelling it.

        Raises:
            ThresherError: If the Thresher was shut down
            InstanceError: If snapshot isn't a process snapshot
        """
        if self._closed:
            raise ThresherError("thresher is shut down")

        instance = Instance(
            snapshot,
            self.service_bus,
            self,
            config=self.config,
            registry=self.registry,
            events=events,
        )
        task = instance.watch(
            asyncio.create_task(self._run(instance), name=f"instance-{instance.id}")
        )
        handle = InstanceHandle(instance, task)

        with self._lock:
            self._instances.setdefault(snapshot.origin_id, []).append(handle)

        self.log.info(f"new instance {instance.id} of process '{snapshot.name}' started")
        return handle

    async def _run(self, instance: Instance) -> None:
        try:
            await instance.run()
        except asyncio.CancelledError:
            self.log.debug(f"instance {instance.id} cancelled")
            raise
        except BpmError as e:
            self.log.error(f"instance {instance.id} failed: {e}")
            raise

    def instances(self, process_id: Id | None = None) -> list[InstanceHandle]:
        """Handles of the instances started for process_id (all when None)."""
        with self._lock:
            if process_id is not None:
                return list(self._instances.get(process_id, ()))
            return [h for hh in self._instances.values() for h in hh]

    def instance(self, instance_id: Id) -> InstanceHandle:
        for h in self.instances():
            if h.id == instance_id:
                return h
        raise ThresherError(f"instance {instance_id} isn't found")

    async def stop(self, instance_id: Id) -> Instance:
        """
        Cancel a running instance and wait until it drained.

        Raises:
            ThresherError: If the instance isn't found
        """
        handle = self.instance(instance_id)
        handle.cancel()
        await asyncio.gather(handle._task, return_exceptions=True)
        self.log.info(f"instance {instance_id} stopped")
        return handle.instance

    async def shutdown(self) -> None:
        """Cancel all running instances and wait for them."""
        self._closed = True

        handles = [h for h in self.instances() if h.is_running()]
        if handles:
            self.log.info(f"shutting down, cancelling {len(handles)} instance(s)")
        for h in handles:
            h.cancel()
        await asyncio.gather(*(h._task for h in self.instances()), return_exceptions=True)

        if self._owns_bus:
            await self.service_bus.close()

        self.log.info("thresher stopped")

    def __repr__(self) -> str:
        return f"Thresher({self.id.last(4)}, instances={len(self.instances())})"


__all__ = ["Thresher", "InstanceHandle", "EventProcessor", "EventHandler", "ALL_EVENTS"]
