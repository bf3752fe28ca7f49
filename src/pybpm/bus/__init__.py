"""Message bus used by Send and Receive tasks.

Provides multiple message servers behind a common interface:
    - MessageServer: Abstract interface
    - InMemoryMessageServer: In-process queues
    - SqliteMessageServer: SQLite-backed durable queues
    - RedisMessageServer: Redis-backed distributed queues

Design: Adapter Pattern + Dependency Inversion (SOLID)
    Executors depend on MessageServer only, so backends can be swapped
    without touching the engine.
"""

from pybpm.bus.base import MessageEnvelope, MessageServer, ServiceBus
from pybpm.bus.memory import InMemoryMessageServer

# Backends with third-party drivers are imported on first use


def __getattr__(name: str):
    """Lazy import of the SQLite and Redis servers."""
    if name == "SqliteMessageServer":
        from pybpm.bus.sqlite import SqliteMessageServer

        return SqliteMessageServer
    elif name == "RedisMessageServer":
        from pybpm.bus.redis import RedisMessageServer

        return RedisMessageServer
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "MessageEnvelope",
    "MessageServer",
    "ServiceBus",
    "InMemoryMessageServer",
    "SqliteMessageServer",
    "RedisMessageServer",
]
