"""
MessageServer interface - abstract message bus used by Send and Receive tasks.

Design Pattern: Adapter Pattern
MessageServer defines the interface every bus backend implements. The
in-memory, SQLite and Redis servers adapt their storage to it, so executors
depend on the abstraction only.

Semantics:
- put(producer_id, queue, *envelopes) appends envelopes to a named queue.
- get(receiver_id, queue, wait) streams the queue to one receiver. Each
  receiver has its own read position per queue, so every receiver sees every
  envelope exactly once. With wait=False the stream ends after the envelopes
  already queued; with wait=True it waits for new ones until the consumer
  closes it (``aclose()``) or the server is closed.
- Queues are linearizable: envelopes are delivered in put order.
"""

from __future__ import annotations

import base64
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from pybpm.core.errors import BusError
from pybpm.core.identity import Id


@dataclass(frozen=True)
class MessageEnvelope:
    """
    Named payload travelling through the bus.

    Attributes:
        name: Message name (receivers match on it)
        data: Serialized message (the JSON envelope of pybpm.models.Message)
        id: Envelope id
        producer_id: Id of the producing instance (set by put)
        queue: Queue the envelope was put on (set by put)
        registered_at: Time the server accepted the envelope (set by put)
    """

    name: str
    data: bytes
    id: Id = field(default_factory=Id)
    producer_id: str = ""
    queue: str = ""
    registered_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def stamped(self, producer_id: str, queue: str) -> MessageEnvelope:
        return replace(
            self,
            producer_id=producer_id,
            queue=queue,
            registered_at=datetime.now(UTC),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "data": base64.b64encode(self.data).decode("ascii"),
            "producer_id": self.producer_id,
            "queue": self.queue,
            "registered_at": int(self.registered_at.timestamp() * 1000),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> MessageEnvelope:
        return cls(
            name=d["name"],
            data=base64.b64decode(d["data"]),
            id=Id.parse(d["id"]),
            producer_id=d.get("producer_id", ""),
            queue=d.get("queue", ""),
            registered_at=datetime.fromtimestamp(d["registered_at"] / 1000.0, UTC),
        )


class MessageServer(ABC):
    """
    Abstract message server.

    Implementations must be usable from concurrent asyncio tasks.
    """

    @abstractmethod
    async def put(self, producer_id: Id | str, queue: str, *envelopes: MessageEnvelope) -> None:
        """
        Append envelopes to queue.

        Raises:
            BusError: On empty queue name, no envelopes or a closed server
        """
        pass

    @abstractmethod
    def get(
        self, receiver_id: Id | str, queue: str, wait: bool = True
    ) -> AsyncIterator[MessageEnvelope]:
        """
        Stream envelopes of queue not yet seen by receiver_id.

        Implemented as an async generator; the consumer closes it with
        ``aclose()`` once it is done.
        """
        pass

    @abstractmethod
    async def queue_size(self, queue: str) -> int:
        """Number of envelopes ever put on queue."""
        pass

    async def connect(self) -> None:
        """Open backend resources (no-op by default)."""
        return None

    async def close(self) -> None:
        """Release backend resources and end waiting streams."""
        return None

    @staticmethod
    def _check_put(queue: str, envelopes: tuple[MessageEnvelope, ...]) -> None:
        if not queue:
            raise BusError("queue name is empty")
        if not envelopes:
            raise BusError(f"nothing to put on queue '{queue}'")


class ServiceBus:
    """
    Handle to the external services an instance uses.

    Only the message server is needed by the engine.

    Usage:
        bus = ServiceBus.in_memory()
        server = bus.get_message_server()
    """

    def __init__(self, message_server: MessageServer):
        if message_server is None:
            raise BusError("service bus needs a message server")
        self._message_server = message_server

    @classmethod
    def in_memory(cls) -> ServiceBus:
        from pybpm.bus.memory import InMemoryMessageServer

        return cls(InMemoryMessageServer())

    def get_message_server(self) -> MessageServer:
        return self._message_server

    async def close(self) -> None:
        await self._message_server.close()

    def __repr__(self) -> str:
        return f"ServiceBus({self._message_server!r})"
