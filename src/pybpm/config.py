"""
Engine configuration.

EngineConfig is an immutable value passed to Thresher and Instance. Defaults
suit tests and single-process use; ``EngineConfig.from_env()`` reads the
``PYBPM_*`` environment variables on top of them.

Environment:
    PYBPM_QUEUE_PREFIX       prefix of default message queue names ("MQ")
    PYBPM_FLOAT_PRECISION    precision of float variables without one (2)
    PYBPM_BUS_POLL_INTERVAL  seconds between polls of SQLite/Redis readers (0.05)
    PYBPM_USER_TASK_TIMEOUT  seconds a user task waits for completion (unset: forever)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, cast


@dataclass(frozen=True)
class EngineConfig:
    """
    Configuration shared by the engine components.

    Examples:
        # Defaults
        config = EngineConfig()

        # From environment
        config = EngineConfig.from_env()

        # Tweaked copy
        config = EngineConfig.DEFAULT.with_user_task_timeout(30.0)
    """

    queue_prefix: str = "MQ"
    """Prefix of an instance's default message queue name.

    The default queue is ``<prefix><process-id>``.
    """

    float_precision: int = 2
    """Precision of float variables created without an explicit one."""

    bus_poll_interval: float = 0.05
    """Seconds a waiting SQLite or Redis reader sleeps between polls."""

    user_task_timeout: float | None = None
    """Seconds a user task waits for completion; None waits until cancelled."""

    if TYPE_CHECKING:
        DEFAULT: EngineConfig
    else:
        DEFAULT = cast("EngineConfig", None)

    @classmethod
    def from_env(cls) -> EngineConfig:
        """
        Build a config from ``PYBPM_*`` environment variables.

        Raises:
            ValueError: If a variable holds an invalid number
        """
        d = cls()
        timeout = os.getenv("PYBPM_USER_TASK_TIMEOUT")
        return cls(
            queue_prefix=os.getenv("PYBPM_QUEUE_PREFIX", d.queue_prefix),
            float_precision=int(os.getenv("PYBPM_FLOAT_PRECISION", d.float_precision)),
            bus_poll_interval=float(os.getenv("PYBPM_BUS_POLL_INTERVAL", d.bus_poll_interval)),
            user_task_timeout=float(timeout) if timeout else None,
        )

    def with_queue_prefix(self, prefix: str) -> EngineConfig:
        return replace(self, queue_prefix=prefix)

    def with_user_task_timeout(self, timeout: float | None) -> EngineConfig:
        return replace(self, user_task_timeout=timeout)

    def queue_name(self, process_id: object) -> str:
        """Default queue name of a process."""
        return f"{self.queue_prefix}{process_id}"


EngineConfig.DEFAULT = EngineConfig()

__all__ = ["EngineConfig"]
