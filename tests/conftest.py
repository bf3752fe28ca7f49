"""
Pytest configuration and fixtures for pybpm tests.

Provides reusable fixtures for message servers, event recording, output
capture and small process builders.
"""

import asyncio
import io
import json
import shutil
import tempfile
from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from pathlib import Path

import pytest
from hypothesis import strategies as st

from pybpm.bus import InMemoryMessageServer, ServiceBus
from pybpm.core import Variable, VarType
from pybpm.core.variables import INT64_MAX, INT64_MIN
from pybpm.executor import EmitterFunc, Instance
from pybpm.models import EndEvent, OutputDescriptor, OutputTask, Process, StartEvent, StoreTask


def pytest_sessionfinish(session, exitstatus):
    """Force cleanup after all tests complete to prevent CI hanging."""
    import os

    # In CI environments only, force exit to prevent hanging
    if os.getenv("CI") or os.getenv("GITHUB_ACTIONS"):
        os._exit(exitstatus)


@pytest.fixture
async def memory_server() -> AsyncGenerator[InMemoryMessageServer, None]:
    """In-memory message server with automatic cleanup."""
    server = InMemoryMessageServer()
    yield server
    await server.close()


@pytest.fixture
async def bus(memory_server: InMemoryMessageServer) -> ServiceBus:
    """Service bus over the in-memory server."""
    return ServiceBus(memory_server)


@pytest.fixture
def temp_db_path():
    """Temporary database file path with automatic cleanup."""
    tmpdir = Path(tempfile.mkdtemp())
    db_path = tmpdir / "bus.db"
    yield db_path
    shutil.rmtree(tmpdir, ignore_errors=True)


class EventRecorder:
    """Collects emitted lifecycle events as (name, decoded payload)."""

    def __init__(self):
        self.events: list[tuple[str, dict]] = []
        self.emitter = EmitterFunc(self._record)

    def _record(self, name: str, descr: str) -> None:
        self.events.append((name, json.loads(descr)))

    def named(self, name: str) -> list[dict]:
        return [d for n, d in self.events if n == name]

    @property
    def names(self) -> list[str]:
        return [n for n, _ in self.events]


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def output() -> io.StringIO:
    """Writer for OutputTask nodes."""
    return io.StringIO()


@pytest.fixture
def descriptor(output: io.StringIO) -> OutputDescriptor:
    return OutputDescriptor(output)


def linear_process(name: str, *nodes) -> Process:
    """Process with nodes linked one after another."""
    p = Process(name)
    for n in nodes:
        p.add_node(n)
    for a, b in zip(nodes, nodes[1:]):
        p.link(a, b)
    return p


def store_output_process(descriptor: OutputDescriptor, value: int = 10) -> Process:
    """start -> store x -> output x -> end"""
    return linear_process(
        "store-output",
        StartEvent("start"),
        StoreTask("store", Variable("x", VarType.INT, value)),
        OutputTask("output", descriptor, "x"),
        EndEvent("end"),
    )


def alive_tokens(instance: Instance) -> int:
    return sum(1 for t in instance.tracks() if t.token.is_alive)


# Hypothesis strategies for property-based testing

names = st.text(
    min_size=1, max_size=20, alphabet=st.characters(whitelist_categories=("Lu", "Ll", "Nd"))
)

timestamps = st.datetimes(
    min_value=datetime(1970, 1, 1),
    max_value=datetime(9000, 1, 1),
    timezones=st.just(UTC),
)


@st.composite
def variable_strategy(draw, name=None):
    """Strategy for generating Variables of every type."""
    var_type = draw(st.sampled_from(list(VarType)))
    name = name or draw(names)
    match var_type:
        case VarType.INT:
            value = draw(st.integers(min_value=INT64_MIN, max_value=INT64_MAX))
        case VarType.BOOL:
            value = draw(st.booleans())
        case VarType.STRING:
            value = draw(st.text(max_size=50))
        case VarType.FLOAT:
            value = draw(st.floats(allow_nan=False, allow_infinity=False))
        case VarType.TIME:
            value = draw(timestamps)
    precision = draw(st.integers(min_value=0, max_value=8))
    return Variable(name, var_type, value, precision)


async def run_process(process: Process, bus: ServiceBus, emitter=None, **kwargs) -> Instance:
    """Run a new instance of process to completion (5s guard)."""
    instance = Instance(process.snapshot(), bus, emitter, **kwargs)
    await asyncio.wait_for(instance.run(), timeout=5.0)
    return instance
