"""End-to-end scenarios over whole processes."""

import asyncio
import io
import time

import pytest

from conftest import alive_tokens, linear_process, run_process, store_output_process
from pybpm.bus import InMemoryMessageServer, ServiceBus
from pybpm.bus.sqlite import SqliteMessageServer
from pybpm.core import InstanceState, ModelError, TrackState, int_var
from pybpm.executor import Instance
from pybpm.models import (
    Condition,
    MessageDirection,
    OutputDescriptor,
    OutputTask,
    Process,
    ReceiveTask,
    SendTask,
    StoreTask,
    exclusive,
    required,
)


def assert_all_terminal(instance):
    assert instance.state == InstanceState.ENDED
    assert all(not t.is_live for t in instance.tracks())
    assert alive_tokens(instance) == 0


async def test_store_then_output(bus, descriptor, output):
    p = store_output_process(descriptor, value=10)

    inst = await run_process(p, bus)

    assert output.getvalue() == "x = 10\n"
    assert len(inst.tracks()) == 1
    assert inst.variables.values() == {"x": 10}
    assert_all_terminal(inst)


def letter_sender() -> Process:
    p = linear_process(
        "sender",
        StoreTask("store", int_var("x", 42)),
        SendTask("send", "letter_X", queue="Q"),
    )
    p.add_message("letter_X", MessageDirection.OUTGOING, required(int_var("x")))
    return p


def letter_receiver(descriptor: OutputDescriptor) -> Process:
    p = linear_process(
        "receiver",
        ReceiveTask("receive", "letter_X", queue="Q"),
        OutputTask("output", descriptor, "x"),
    )
    p.add_message("letter_X", MessageDirection.INCOMING, required(int_var("x")))
    return p


@pytest.fixture(params=["memory", "sqlite"])
async def shared_bus(request):
    """Bus over each local message server."""
    if request.param == "memory":
        server = InMemoryMessageServer()
    else:
        server = SqliteMessageServer(":memory:", poll_interval=0.01)
        await server.connect()
    yield ServiceBus(server)
    await server.close()


@pytest.mark.concurrency
async def test_send_then_receive_across_instances(shared_bus, descriptor, output):
    bus = shared_bus

    receiver = Instance(letter_receiver(descriptor).snapshot(), bus)
    sender = Instance(letter_sender().snapshot(), bus)

    receiving = asyncio.create_task(receiver.run())
    await asyncio.sleep(0.05)
    await asyncio.wait_for(sender.run(), timeout=2.0)
    await asyncio.wait_for(receiving, timeout=2.0)

    assert output.getvalue() == "x = 42\n"
    assert_all_terminal(receiver)
    assert_all_terminal(sender)


async def test_exclusive_diverging_skips_default(bus):
    out_a, out_b = io.StringIO(), io.StringIO()
    p = Process("exclusive")
    store = p.add_node(StoreTask("store", int_var("x", 5)))
    gw = p.add_node(exclusive("gw"))
    a = p.add_node(OutputTask("output_a", OutputDescriptor(out_a), "x"))
    b = p.add_node(OutputTask("output_b", OutputDescriptor(out_b), "x"))
    p.link(store, gw)
    p.link(gw, a, Condition(lambda vs: vs.get("x").as_int() > 3, "x > 3"))
    p.link(gw, b, default=True)

    inst = await run_process(p, bus)

    assert out_a.getvalue() == "x = 5\n"
    assert out_b.getvalue() == ""
    assert_all_terminal(inst)


async def test_forked_parallel_paths(bus):
    p = Process("fork")
    origin = p.add_node(StoreTask("origin", int_var("o", 0)))
    a = p.add_node(StoreTask("store_a", int_var("a", 1)))
    b = p.add_node(StoreTask("store_b", int_var("b", 1)))
    p.link(origin, a)
    p.link(origin, b)

    inst = await run_process(p, bus)

    tracks = inst.tracks()
    assert len(tracks) == 2
    assert all(t.state == TrackState.ENDED for t in tracks)
    assert inst.variables.values() == {"o": 0, "a": 1, "b": 1}
    # both tracks descend from the split of the first token
    first, second = (t.steps[-1].token for t in tracks)
    assert first.prev == second.prev
    assert_all_terminal(inst)


@pytest.mark.concurrency
async def test_cancellation_while_receiving(bus, descriptor, recorder):
    inst = Instance(letter_receiver(descriptor).snapshot(), bus, recorder.emitter)
    run = asyncio.create_task(inst.run())

    await asyncio.sleep(0.1)
    cancelled_at = time.monotonic()
    run.cancel()
    with pytest.raises(asyncio.CancelledError):
        await run

    assert time.monotonic() - cancelled_at < 0.2
    assert inst.state == InstanceState.ENDED
    errors = [t for t in inst.tracks() if t.state == TrackState.ERROR]
    assert len(errors) == 1
    assert isinstance(errors[0].error, asyncio.CancelledError)
    assert recorder.named("INSTANCE_END")[0]["cancelled"] is True


def test_duplicate_lane_is_structural_error():
    p = Process("lanes")
    p.add_lane("L")
    with pytest.raises(ModelError):
        p.add_lane("L")
