"""In-memory message server.

Design Pattern: Adapter Pattern
InMemoryMessageServer adapts in-memory lists to the MessageServer interface.

Instance is immediately usable after __init__.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from pybpm.bus.base import MessageEnvelope, MessageServer
from pybpm.core.errors import BusError
from pybpm.core.identity import Id


class InMemoryMessageServer(MessageServer):
    """In-memory message server for tests and single-process engines.

    Usage:
        server = InMemoryMessageServer()
        await server.put(producer_id, "Q", MessageEnvelope("hello", b"{}"))
        async for env in server.get(receiver_id, "Q", wait=False):
            ...
    """

    def __init__(self):
        # Storage: {queue: [envelope, ...]} in put order
        self._queues: dict[str, list[MessageEnvelope]] = {}

        # Read positions: {(receiver_id, queue): index of next envelope}
        self._positions: dict[tuple[str, str], int] = {}

        # Waiting readers are woken on every put and on close
        self._cond = asyncio.Condition()
        self._closed = False

    def __repr__(self) -> str:
        return "InMemoryMessageServer"

    async def put(self, producer_id: Id | str, queue: str, *envelopes: MessageEnvelope) -> None:
        self._check_put(queue, envelopes)

        async with self._cond:
            if self._closed:
                raise BusError("message server is closed")

            q = self._queues.setdefault(queue, [])
            q.extend(env.stamped(str(producer_id), queue) for env in envelopes)
            self._cond.notify_all()

    async def get(
        self, receiver_id: Id | str, queue: str, wait: bool = True
    ) -> AsyncIterator[MessageEnvelope]:
        key = (str(receiver_id), queue)

        while True:
            async with self._cond:
                if wait:
                    await self._cond.wait_for(lambda: self._closed or self._has_unread(key))
                if self._closed:
                    return
                pending = self._queues.get(queue, [])[self._positions.get(key, 0) :]

            for env in pending:
                if self._closed:
                    return
                self._positions[key] = self._positions.get(key, 0) + 1
                yield env

            if not wait:
                return

    async def queue_size(self, queue: str) -> int:
        async with self._cond:
            return len(self._queues.get(queue, []))

    async def close(self) -> None:
        async with self._cond:
            self._closed = True
            self._cond.notify_all()

    async def reset(self) -> None:
        """Clear all queues and read positions (for tests)."""
        async with self._cond:
            self._queues.clear()
            self._positions.clear()

    def _has_unread(self, key: tuple[str, str]) -> bool:
        return self._positions.get(key, 0) < len(self._queues.get(key[1], []))
