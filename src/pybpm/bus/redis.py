"""Redis-based message server.

Lets sender and receiver instances run in different processes or on
different machines.

Data Structures:
- pybpm:mq:{queue} (LIST): JSON-encoded envelopes in put order
- pybpm:mq:pos:{queue} (HASH): receiver id -> index of next unread envelope

Readers poll with LRANGE from their position; RPUSH keeps put order.

Design: Adapter Pattern
Implements MessageServer for Redis, adapting Redis lists to the bus
interface.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator

import redis.asyncio as redis

from pybpm.bus.base import MessageEnvelope, MessageServer
from pybpm.config import EngineConfig
from pybpm.core.errors import BusError
from pybpm.core.identity import Id


class RedisMessageServer(MessageServer):
    """Redis message server using connection pooling.

    Usage:
        server = RedisMessageServer("redis://localhost:6379")
        await server.connect()
        await server.put(producer_id, "Q", MessageEnvelope("hello", b"{}"))
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        max_connections: int = 16,
        poll_interval: float | None = None,
    ):
        self._redis_url = redis_url
        self._max_connections = max_connections
        self._redis: redis.Redis | None = None
        self._closed = False
        self.poll_interval = (
            poll_interval if poll_interval is not None else EngineConfig.from_env().bus_poll_interval
        )

    def __repr__(self) -> str:
        return f"RedisMessageServer({self._redis_url})"

    async def connect(self) -> None:
        """Establish Redis connection pool."""
        self._redis = redis.from_url(
            self._redis_url,
            encoding="utf-8",
            decode_responses=False,
            max_connections=self._max_connections,
        )
        self._closed = False

    async def close(self) -> None:
        """Close Redis connection pool."""
        self._closed = True
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    def _check_connected(self) -> None:
        if self._redis is None:
            raise BusError("Not connected. Call connect() first.")

    @staticmethod
    def _queue_key(queue: str) -> str:
        return f"pybpm:mq:{queue}"

    @staticmethod
    def _positions_key(queue: str) -> str:
        return f"pybpm:mq:pos:{queue}"

    async def put(self, producer_id: Id | str, queue: str, *envelopes: MessageEnvelope) -> None:
        self._check_connected()
        self._check_put(queue, envelopes)

        items = [
            json.dumps(env.stamped(str(producer_id), queue).to_dict()).encode("utf-8")
            for env in envelopes
        ]
        try:
            await self._redis.rpush(self._queue_key(queue), *items)
        except redis.RedisError as e:
            raise BusError(f"Failed to put messages on queue '{queue}': {e}") from e

    async def get(
        self, receiver_id: Id | str, queue: str, wait: bool = True
    ) -> AsyncIterator[MessageEnvelope]:
        self._check_connected()
        receiver = str(receiver_id)
        qkey, pkey = self._queue_key(queue), self._positions_key(queue)
        # close() drops self._redis; the stream keeps its own reference
        client = self._redis

        while not self._closed:
            try:
                raw_pos = await client.hget(pkey, receiver)
                pos = int(raw_pos) if raw_pos is not None else 0
                items = await client.lrange(qkey, pos, -1)
            except redis.RedisError as e:
                if self._closed:
                    return
                raise BusError(f"Failed to read queue '{queue}': {e}") from e

            for raw in items:
                if self._closed:
                    return
                env = MessageEnvelope.from_dict(json.loads(raw))
                pos += 1
                try:
                    await client.hset(pkey, receiver, pos)
                except redis.RedisError as e:
                    if self._closed:
                        return
                    raise BusError(f"Failed to save position on queue '{queue}': {e}") from e
                yield env

            if not wait:
                return

            if not items:
                await asyncio.sleep(self.poll_interval)

    async def queue_size(self, queue: str) -> int:
        self._check_connected()
        return await self._redis.llen(self._queue_key(queue))

    async def reset(self) -> None:
        """Delete all pybpm:mq:* keys, leaving other Redis data untouched."""
        self._check_connected()

        keys = []
        async for key in self._redis.scan_iter(match="pybpm:mq:*"):
            keys.append(key)

        if keys:
            await self._redis.delete(*keys)
