"""SQLite-backed message server.

Design Pattern: Adapter Pattern
SqliteMessageServer adapts a SQLite database to the MessageServer interface.

Implementation details:
- aiosqlite for async operations
- WAL mode for concurrent reads
- envelopes keyed by an autoincrement sequence, which fixes put order
- one row per (receiver, queue) holding the receiver's read position
- readers poll the table; puts through the same server wake them early
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite

from pybpm.bus.base import MessageEnvelope, MessageServer
from pybpm.config import EngineConfig
from pybpm.core.errors import BusError
from pybpm.core.identity import Id


class SqliteMessageServer(MessageServer):
    """SQLite-backed durable message queues.

    After __init__, the server is not yet usable. Call connect() first.

    Usage:
        server = SqliteMessageServer("bus.db")
        await server.connect()
        try:
            await server.put(producer_id, "Q", MessageEnvelope("hello", b"{}"))
        finally:
            await server.close()
    """

    def __init__(self, db_path: str, poll_interval: float | None = None):
        """Initialize the server (connection not opened yet).

        Args:
            db_path: Path to SQLite database file
            poll_interval: Seconds between polls of a waiting reader
                (defaults to EngineConfig.bus_poll_interval)
        """
        self.db_path = db_path
        self.poll_interval = (
            poll_interval if poll_interval is not None else EngineConfig.from_env().bus_poll_interval
        )
        self._connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()  # Serialize access to shared connection
        self._put_notify = asyncio.Event()
        self._closed = False

    @classmethod
    async def in_memory(cls) -> SqliteMessageServer:
        """Create a connected in-memory server for testing."""
        server = cls(":memory:")
        await server.connect()
        return server

    def __repr__(self) -> str:
        if self.db_path == ":memory:":
            return "SqliteMessageServer(in-memory)"
        return f"SqliteMessageServer({self.db_path})"

    async def connect(self) -> None:
        """Open database connection and initialize schema."""
        if self._connection is not None:
            return

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(
            self.db_path,
            timeout=5.0,
            isolation_level=None,
        )

        # In-memory databases report "memory" and don't support WAL
        cursor = await self._connection.execute("PRAGMA journal_mode=WAL")
        result = await cursor.fetchone()
        await cursor.close()
        if result and result[0].upper() not in ("WAL", "MEMORY"):
            raise BusError(f"Failed to enable WAL mode, got: {result[0]}")

        await self._connection.execute("PRAGMA synchronous=NORMAL")
        await self._connection.execute("PRAGMA busy_timeout=5000")
        await self._create_schema()
        await self._connection.commit()
        self._closed = False

    async def _create_schema(self) -> None:
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS bus_messages (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL,
                queue TEXT NOT NULL,
                name TEXT NOT NULL,
                producer_id TEXT NOT NULL,
                data BLOB NOT NULL,
                registered_at INTEGER NOT NULL
            )
        """)

        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_bus_messages_queue
            ON bus_messages(queue, seq)
        """)

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS bus_positions (
                receiver_id TEXT NOT NULL,
                queue TEXT NOT NULL,
                seq INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (receiver_id, queue)
            )
        """)

    async def put(self, producer_id: Id | str, queue: str, *envelopes: MessageEnvelope) -> None:
        self._check_connected()
        self._check_put(queue, envelopes)

        rows = []
        for env in envelopes:
            env = env.stamped(str(producer_id), queue)
            rows.append(
                (
                    str(env.id),
                    queue,
                    env.name,
                    env.producer_id,
                    env.data,
                    int(env.registered_at.timestamp() * 1000),
                )
            )

        async with self._lock:
            try:
                await self._connection.executemany(
                    """
                    INSERT INTO bus_messages (id, queue, name, producer_id, data, registered_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    rows,
                )
                await self._connection.commit()
            except aiosqlite.Error as e:
                raise BusError(f"Failed to put messages on queue '{queue}': {e}") from e

        # Wake waiting readers; they clear the event before re-reading
        self._put_notify.set()

    async def get(
        self, receiver_id: Id | str, queue: str, wait: bool = True
    ) -> AsyncIterator[MessageEnvelope]:
        self._check_connected()
        receiver = str(receiver_id)

        while not self._closed:
            self._put_notify.clear()
            batch = await self._read_unread(receiver, queue)

            for seq, env in batch:
                if self._closed:
                    return
                await self._save_position(receiver, queue, seq)
                yield env

            if not wait:
                return

            if not batch:
                try:
                    await asyncio.wait_for(self._put_notify.wait(), timeout=self.poll_interval)
                except TimeoutError:
                    pass

    async def _read_unread(self, receiver: str, queue: str) -> list[tuple[int, MessageEnvelope]]:
        async with self._lock:
            if self._connection is None:
                return []
            cursor = await self._connection.execute(
                """
                SELECT m.seq, m.id, m.name, m.producer_id, m.data, m.registered_at
                FROM bus_messages m
                WHERE m.queue = ?
                  AND m.seq > COALESCE(
                      (SELECT p.seq FROM bus_positions p
                       WHERE p.receiver_id = ? AND p.queue = ?), 0)
                ORDER BY m.seq ASC
                """,
                (queue, receiver, queue),
            )
            rows = await cursor.fetchall()
            await cursor.close()

        return [
            (
                row[0],
                MessageEnvelope(
                    name=row[2],
                    data=bytes(row[4]),
                    id=Id.parse(row[1]),
                    producer_id=row[3],
                    queue=queue,
                    registered_at=datetime.fromtimestamp(row[5] / 1000.0, UTC),
                ),
            )
            for row in rows
        ]

    async def _save_position(self, receiver: str, queue: str, seq: int) -> None:
        async with self._lock:
            if self._connection is None:
                return
            await self._connection.execute(
                """
                INSERT INTO bus_positions (receiver_id, queue, seq) VALUES (?, ?, ?)
                ON CONFLICT(receiver_id, queue) DO UPDATE SET seq = excluded.seq
                """,
                (receiver, queue, seq),
            )
            await self._connection.commit()

    async def queue_size(self, queue: str) -> int:
        self._check_connected()
        async with self._lock:
            cursor = await self._connection.execute(
                "SELECT COUNT(*) FROM bus_messages WHERE queue = ?", (queue,)
            )
            row = await cursor.fetchone()
            await cursor.close()
        return row[0] if row else 0

    async def reset(self) -> None:
        """Clear all queues and positions (for tests)."""
        self._check_connected()
        async with self._lock:
            await self._connection.execute("DELETE FROM bus_messages")
            await self._connection.execute("DELETE FROM bus_positions")
            await self._connection.commit()

    async def close(self) -> None:
        self._closed = True
        self._put_notify.set()
        # Readers hold the lock while they touch the connection
        async with self._lock:
            if self._connection is not None:
                await self._connection.close()
                self._connection = None

    def _check_connected(self) -> None:
        if self._connection is None:
            raise BusError("Not connected. Call connect() first.")
