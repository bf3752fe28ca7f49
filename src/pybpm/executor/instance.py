"""
Instance - one run of a process snapshot.

The instance owns the snapshot reference, the variable store, the track
pool, the gatekeeper and the default message queue ``<prefix><process-id>``.
Every track runs as its own asyncio task; run() returns only after all of
them finished.

Lifecycle:
    CREATED -> PREPARED -> RUNNING -> ENDED
                                   -> STOPPING -> ENDED   (cancelled or aborted)

Cancellation: cancelling the task awaiting run() (directly, through
asyncio.timeout, or through Thresher.stop) cancels every track. Each track
records the cancellation as its error; run() emits INSTANCE_END and
re-raises CancelledError. A task cancelled before run() took its first step
is ended by abandon(), which start() and watch() hook up.

Track failures don't stop the instance; it ends regardless and the per-track
results are reported in INSTANCE_END and available through tracks(). A
TokenError is an engine invariant violation and aborts the instance with an
InstanceError.

Usage:
    ```python
    instance = Instance(process.snapshot(), ServiceBus.in_memory())
    await instance.run()
    instance.variables.get("x").as_int()
    ```
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Iterable
from typing import TYPE_CHECKING

from pybpm.config import EngineConfig
from pybpm.core.errors import InstanceError, ModelError, TokenError
from pybpm.core.identity import Id
from pybpm.core.status import InstanceState, TrackState
from pybpm.core.token import Token
from pybpm.core.variables import Variable
from pybpm.core.varstore import VarStore
from pybpm.executor.emitter import (
    INSTANCE_END,
    INSTANCE_START,
    NEW_TRACK,
    EventEmitter,
    LoggingEmitter,
    describe,
)
from pybpm.executor.gatekeeper import Gatekeeper, GatewayJoin
from pybpm.executor.registry import DEFAULT_REGISTRY, ExecutorRegistry
from pybpm.executor.track import Track

if TYPE_CHECKING:
    from pybpm.bus.base import ServiceBus
    from pybpm.models.events import EventDefinition
    from pybpm.models.gateways import Gateway
    from pybpm.models.process import Snapshot

logger = logging.getLogger(__name__)


class Instance:
    """Running instance of a process snapshot.

    Attributes:
        id: Instance id
        snapshot: Immutable process snapshot the instance runs
        variables: Instance variable store
        service_bus: Bus used by send and receive tasks
        message_queue: Default message queue name
        state: Current InstanceState
    """

    def __init__(
        self,
        snapshot: Snapshot,
        service_bus: ServiceBus,
        emitter: EventEmitter | None = None,
        *,
        config: EngineConfig | None = None,
        registry: ExecutorRegistry | None = None,
        variables: Iterable[Variable] = (),
        events: Iterable[EventDefinition] = (),
    ):
        if not snapshot.is_snapshot:
            raise InstanceError("instance should run on a process snapshot")

        self.id = Id()
        self.snapshot = snapshot
        self.service_bus = service_bus
        self.emitter = emitter or LoggingEmitter()
        self.config = config or EngineConfig.DEFAULT
        self.registry = registry or DEFAULT_REGISTRY
        self.variables = VarStore(*variables)
        self.events: list[EventDefinition] = list(events)
        self.message_queue = self.config.queue_name(snapshot.origin_id)
        self.state = InstanceState.CREATED

        self.log = logging.LoggerAdapter(
            logger.getChild(f"INS:{self.id.last(4)}"),
            {"instance_id": str(self.id)},
        )

        self._lock = threading.Lock()
        self._tracks: dict[Id, Track] = {}
        self._tasks: dict[Id, asyncio.Task] = {}
        self._gatekeeper = Gatekeeper(self)
        self._user_tasks: dict[Id, asyncio.Future] = {}

        # Notified whenever a track moves or stops; converging gateways wait on it
        self.state_changed = asyncio.Condition()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def prepare(self) -> None:
        """
        Validate the snapshot and create one track per entry node.

        Raises:
            InstanceError: If the instance isn't CREATED or has no entry nodes
            ModelError: If the snapshot is structurally invalid
        """
        if self.state != InstanceState.CREATED:
            raise InstanceError(f"couldn't prepare instance in state {self.state}", self.id)

        self.snapshot.validate()

        for node in self.snapshot.entry_nodes():
            self.add_track(Track(self, node, Token(self.id)))

        if not self._tracks:
            raise InstanceError(
                f"process '{self.snapshot.name}' has no entry nodes to start tracks from",
                self.id,
            )

        self.state = InstanceState.PREPARED
        self.log.debug(f"instance prepared with {len(self._tracks)} track(s)")

    async def run(self) -> None:
        """
        Run all tracks to completion.

        A CREATED instance is prepared first.

        Raises:
            InstanceError: On invalid state, empty process or abort
            ModelError: If the snapshot is structurally invalid
            asyncio.CancelledError: If the instance was cancelled
        """
        if self.state == InstanceState.CREATED:
            self.prepare()
        if self.state != InstanceState.PREPARED:
            raise InstanceError(f"couldn't run instance in state {self.state}", self.id)

        with self._lock:
            self.state = InstanceState.RUNNING
            for track in self._tracks.values():
                self._start(track)

        self.log.info(f"instance of '{self.snapshot.name}' started")
        self.emitter.emit_event(
            INSTANCE_START,
            describe(
                instance_id=self.id,
                process_id=self.snapshot.origin_id,
                process_name=self.snapshot.name,
                events=[e.name or str(e.id) for e in self.events],
            ),
        )

        cancelled = False
        try:
            await self._wait_tracks()
        except asyncio.CancelledError:
            cancelled = True
            self.log.debug("instance cancelled")
            await self._stop()
            raise
        except TokenError as e:
            self.log.error(f"instance aborted: {e}")
            await self._stop()
            raise InstanceError("instance aborted on token error", self.id) from e
        finally:
            self.state = InstanceState.ENDED
            self._emit_end(cancelled)

    def start(self) -> asyncio.Task:
        """Run the instance in a new task that can be cancelled at any point."""
        return self.watch(asyncio.create_task(self.run(), name=f"instance-{self.id}"))

    def watch(self, task: asyncio.Task) -> asyncio.Task:
        """
        End the instance if task is cancelled before run() got to handle it.

        A task cancelled before its first step never enters run(), so the
        instance would stay CREATED without an INSTANCE_END.
        """
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            self.abandon()

    def abandon(self) -> None:
        """End an instance cancelled before it ran; no-op once ENDED."""
        with self._lock:
            if self.state == InstanceState.ENDED:
                return
            self.state = InstanceState.ENDED
            tracks = list(self._tracks.values())

        for t in tracks:
            if t.is_live:
                t._fail(asyncio.CancelledError())

        self.log.debug("instance cancelled before it started")
        self._emit_end(cancelled=True)

    async def _wait_tracks(self) -> None:
        while True:
            with self._lock:
                pending = [t for t in self._tasks.values() if not t.done()]
            if not pending:
                break

            done, _ = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                if task.cancelled():
                    continue
                exc = task.exception()
                if isinstance(exc, TokenError):
                    raise exc

    async def _stop(self) -> None:
        with self._lock:
            self.state = InstanceState.STOPPING
            tasks = list(self._tasks.values())

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        # Tracks cancelled before their first step never ran their handler
        for t in self.tracks():
            if t.is_live:
                t._fail(asyncio.CancelledError())

    def _emit_end(self, cancelled: bool) -> None:
        tracks = self.tracks()
        errors = sum(1 for t in tracks if t.state == TrackState.ERROR)
        self.log.info(f"instance ended: {len(tracks)} track(s), {errors} failed")
        self.emitter.emit_event(
            INSTANCE_END,
            describe(
                instance_id=self.id,
                state=self.state,
                cancelled=cancelled,
                tracks={str(t.id): str(t.state) for t in tracks},
            ),
        )

    # -------------------------------------------------------------------------
    # Track pool
    # -------------------------------------------------------------------------

    def add_track(self, track: Track) -> None:
        """
        Add track to the pool; a running instance starts it at once.

        Raises:
            InstanceError: If the track belongs to another instance or the
                instance has already ended
        """
        if track.instance is not self:
            raise InstanceError(f"track {track.id} belongs to another instance", self.id)

        with self._lock:
            if self.state in (InstanceState.STOPPING, InstanceState.ENDED):
                raise InstanceError(f"couldn't add track in state {self.state}", self.id)
            self._tracks[track.id] = track
            if self.state == InstanceState.RUNNING:
                self._start(track)

        node = self.snapshot.node(track.node_id)
        self.emitter.emit_event(
            NEW_TRACK,
            describe(
                instance_id=self.id,
                track_id=track.id,
                node_name=node.name,
                node_kind=node.kind_name,
            ),
        )

    def _start(self, track: Track) -> None:
        self._tasks[track.id] = asyncio.create_task(track.run(), name=f"track-{track.id}")

    def tracks(self) -> list[Track]:
        with self._lock:
            return list(self._tracks.values())

    def track(self, track_id: Id) -> Track:
        with self._lock:
            t = self._tracks.get(track_id)
        if t is None:
            raise InstanceError(f"track {track_id} isn't found", self.id)
        return t

    async def _track_changed(self) -> None:
        async with self.state_changed:
            self.state_changed.notify_all()

    def can_deliver(self, flow_id: Id, gateway: Gateway, exclude: set[Id]) -> bool:
        """Check whether any live track outside exclude can still arrive by flow_id."""
        for t in self.tracks():
            if not t.is_live or t.id in exclude:
                continue
            if t.node_id == gateway.id:
                if t.arrived_by == flow_id:
                    return True
                continue
            if self.snapshot.can_reach(t.node_id, flow_id, barrier=gateway.id):
                return True
        return False

    # -------------------------------------------------------------------------
    # Gatekeeper and user tasks
    # -------------------------------------------------------------------------

    def get_gateway_executor(self, gateway: Gateway) -> GatewayJoin:
        """Canonical join of gateway, inserted on first request."""
        if self.snapshot.node(gateway.id) is not gateway:
            raise ModelError(f"gateway '{gateway.name}' isn't part of the snapshot", self.snapshot.id)
        return self._gatekeeper.get(gateway)

    def _user_task_future(self, node_id: Id) -> asyncio.Future:
        with self._lock:
            fut = self._user_tasks.get(node_id)
            if fut is None or (fut.done() and fut.cancelled()):
                fut = asyncio.get_running_loop().create_future()
                self._user_tasks[node_id] = fut
            return fut

    async def _wait_user_task(self, node_id: Id) -> list[Variable]:
        fut = self._user_task_future(node_id)
        try:
            return await fut
        finally:
            # A later visit of the same task waits for a new completion
            with self._lock:
                if self._user_tasks.get(node_id) is fut:
                    del self._user_tasks[node_id]

    def complete_user_task(self, node_id: Id, *variables: Variable) -> None:
        """
        Complete the user task node_id, storing variables.

        Completing a task before its track reached it is allowed; the track
        then continues without waiting. Must be called from the event loop
        running the instance.

        Raises:
            InstanceError: If a completion of the task is already pending
        """
        fut = self._user_task_future(node_id)
        if fut.done():
            raise InstanceError(f"user task {node_id} is already completed", self.id)
        fut.set_result([v.copy() for v in variables])

    def __repr__(self) -> str:
        return f"Instance({self.id.last(4)}, {self.snapshot.name!r}, {self.state})"


__all__ = ["Instance"]
