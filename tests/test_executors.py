"""Tests for task and event executors."""

import asyncio
from datetime import UTC, datetime

import pytest

from conftest import linear_process, run_process
from pybpm.bus import MessageEnvelope
from pybpm.config import EngineConfig
from pybpm.core import (
    ExecutorNotFoundError,
    InstanceError,
    MessageError,
    NodeExecutionError,
    TokenState,
    TrackState,
    VariableError,
    VarType,
    float_var,
    int_var,
    str_var,
)
from pybpm.executor import ExecutorRegistry, Instance, TaskExecutor
from pybpm.executor.tasks import to_variable
from pybpm.models import (
    BusinessRuleTask,
    CallActivity,
    DataSpec,
    EndEvent,
    Gateway,
    GatewayKind,
    Message,
    MessageDirection,
    OutputTask,
    ReceiveTask,
    ScriptTask,
    SendTask,
    ServiceTask,
    StartEvent,
    StoreTask,
    Task,
    UserTask,
    optional,
    required,
)


def only_track(instance):
    tracks = instance.tracks()
    assert len(tracks) == 1
    return tracks[0]


def failure_cause(track):
    assert track.state == TrackState.ERROR
    assert isinstance(track.error, NodeExecutionError)
    return track.error.__cause__


async def read_queue(bus, queue) -> list[Message]:
    server = bus.get_message_server()
    return [Message.from_json(e.data) async for e in server.get("test-reader", queue, wait=False)]


# ==============================================================================
# Store and output
# ==============================================================================


async def test_store_declares_variables(bus):
    p = linear_process("store", StoreTask("s", int_var("x", 1), str_var("s", "a")))

    inst = await run_process(p, bus)

    assert inst.variables.values() == {"x": 1, "s": "a"}
    assert only_track(inst).state == TrackState.ENDED


async def test_store_redeclare_with_other_type_fails(bus):
    p = linear_process(
        "store",
        StoreTask("first", int_var("x", 1)),
        StoreTask("second", str_var("x", "one")),
    )

    inst = await run_process(p, bus)

    assert isinstance(failure_cause(only_track(inst)), VariableError)
    assert inst.variables.get("x").as_int() == 1


async def test_output_writes_lines(bus, output, descriptor):
    p = linear_process(
        "output",
        StoreTask("s", int_var("x", 3), float_var("f", 2.5)),
        OutputTask("out", descriptor, "x", "f"),
    )

    await run_process(p, bus)

    assert output.getvalue() == "x = 3\nf = 2.50\n"


async def test_output_of_missing_variable_fails(bus, output, descriptor):
    p = linear_process("output", OutputTask("out", descriptor, "nope"))

    inst = await run_process(p, bus)

    assert isinstance(failure_cause(only_track(inst)), VariableError)
    assert output.getvalue() == ""


# ==============================================================================
# Send and receive
# ==============================================================================


def sender(*nodes_before, message_vars, queue="Q"):
    p = linear_process("sender", *nodes_before, SendTask("send", "letter", queue=queue))
    p.add_message("letter", MessageDirection.OUTGOING, *message_vars)
    return p


async def test_send_puts_message_with_store_values(bus):
    p = sender(StoreTask("s", int_var("x", 42)), message_vars=[required(int_var("x"))])

    inst = await run_process(p, bus)

    assert only_track(inst).state == TrackState.ENDED
    [msg] = await read_queue(bus, "Q")
    assert msg.name == "letter"
    assert msg.get("x").variable.as_int() == 42


async def test_send_coerces_to_declared_type(bus):
    p = sender(StoreTask("s", str_var("x", "42")), message_vars=[required(int_var("x"))])

    await run_process(p, bus)

    [msg] = await read_queue(bus, "Q")
    assert msg.get("x").variable.type == VarType.INT
    assert msg.get("x").variable.as_int() == 42


async def test_send_uses_declared_value_for_missing_optional(bus):
    p = sender(
        StoreTask("s", int_var("x", 1)),
        message_vars=[required(int_var("x")), optional(str_var("note", "none"))],
    )

    await run_process(p, bus)

    [msg] = await read_queue(bus, "Q")
    assert msg.get("note").variable.as_str() == "none"


async def test_send_missing_required_variable_fails(bus):
    p = sender(StoreTask("s", int_var("y", 1)), message_vars=[required(int_var("x"))])

    inst = await run_process(p, bus)

    assert isinstance(failure_cause(only_track(inst)), VariableError)
    assert await bus.get_message_server().queue_size("Q") == 0


async def test_send_of_incoming_message_fails(bus):
    p = linear_process("sender", StoreTask("s", int_var("x", 1)), SendTask("send", "letter"))
    p.add_message("letter", MessageDirection.INCOMING, required(int_var("x")))

    inst = await run_process(p, bus)

    assert isinstance(failure_cause(only_track(inst)), MessageError)


async def test_send_uses_default_queue(bus):
    p = sender(StoreTask("s", int_var("x", 1)), message_vars=[required(int_var("x"))], queue="")

    inst = await run_process(p, bus)

    assert inst.message_queue == f"MQ{p.id}"
    assert len(await read_queue(bus, inst.message_queue)) == 1


def receiver(*message_vars, queue="Q"):
    p = linear_process("receiver", ReceiveTask("receive", "letter", queue=queue))
    p.add_message("letter", MessageDirection.INCOMING, *message_vars)
    return p


async def post(bus, queue, msg: Message):
    await bus.get_message_server().put(
        "test-producer", queue, MessageEnvelope(msg.name, msg.to_json())
    )


async def test_receive_stores_message_variables(bus):
    p = receiver(required(int_var("x")), optional(str_var("note")))
    await post(bus, "Q", Message("letter", MessageDirection.OUTGOING, required(int_var("x", 7))))

    inst = await run_process(p, bus)

    assert only_track(inst).state == TrackState.ENDED
    assert inst.variables.get("x").as_int() == 7
    assert "note" not in inst.variables


async def test_receive_skips_other_messages(bus):
    p = receiver(required(int_var("x")))
    await post(bus, "Q", Message("junk", MessageDirection.OUTGOING, required(int_var("x", 1))))
    await post(bus, "Q", Message("letter", MessageDirection.OUTGOING, required(int_var("x", 2))))

    inst = await run_process(p, bus)

    assert inst.variables.get("x").as_int() == 2


async def test_receive_waits_for_late_message(bus):
    p = receiver(required(int_var("x")))
    inst_task = asyncio.create_task(run_process(p, bus))

    await asyncio.sleep(0.05)
    assert not inst_task.done()
    await post(bus, "Q", Message("letter", MessageDirection.OUTGOING, required(int_var("x", 5))))

    inst = await inst_task
    assert inst.variables.get("x").as_int() == 5


async def test_receive_missing_required_variable_fails(bus):
    p = receiver(required(int_var("x")), required(int_var("y")))
    await post(bus, "Q", Message("letter", MessageDirection.OUTGOING, required(int_var("x", 1))))

    inst = await run_process(p, bus)

    assert isinstance(failure_cause(only_track(inst)), MessageError)


async def test_receive_of_outgoing_message_fails(bus):
    p = linear_process("receiver", ReceiveTask("receive", "letter", queue="Q"))
    p.add_message("letter", MessageDirection.OUTGOING, required(int_var("x")))

    inst = await run_process(p, bus)

    assert isinstance(failure_cause(only_track(inst)), MessageError)


# ==============================================================================
# Service and script tasks
# ==============================================================================


async def test_service_task_sync_operation(bus):
    def double(vs):
        return {"y": int_var("y", vs.get("x").as_int() * 2)}

    p = linear_process("svc", StoreTask("s", int_var("x", 4)), ServiceTask("double", double))

    inst = await run_process(p, bus)

    assert inst.variables.get("y").as_int() == 8


async def test_service_task_async_operation_with_plain_values(bus):
    async def fetch(vs):
        await asyncio.sleep(0)
        return {"ok": True, "ratio": 0.5, "label": "done"}

    p = linear_process("svc", ServiceTask("fetch", fetch))

    inst = await run_process(p, bus)

    assert inst.variables.values() == {"ok": True, "ratio": 0.5, "label": "done"}
    assert inst.variables.get("ratio").precision == 2


async def test_service_task_float_precision_follows_config(bus):
    p = linear_process("svc", ServiceTask("f", lambda vs: {"f": 1.0}))

    inst = await run_process(p, bus, config=EngineConfig(float_precision=4))

    assert inst.variables.get("f").as_str() == "1.0000"


async def test_service_task_none_result_changes_nothing(bus):
    calls = []
    p = linear_process("svc", ServiceTask("noop", calls.append))

    inst = await run_process(p, bus)

    assert len(calls) == 1
    assert len(inst.variables) == 0


async def test_service_task_error_fails_track(bus):
    def boom(vs):
        raise RuntimeError("service down")

    p = linear_process("svc", ServiceTask("boom", boom), StoreTask("after", int_var("x", 1)))

    inst = await run_process(p, bus)

    track = only_track(inst)
    cause = failure_cause(track)
    assert isinstance(cause, RuntimeError)
    assert track.error.node_name == "boom"
    assert "x" not in inst.variables
    assert track.token.state == TokenState.INACTIVE


async def test_service_task_non_mapping_result_fails(bus):
    p = linear_process("svc", ServiceTask("bad", lambda vs: 42))

    inst = await run_process(p, bus)

    assert isinstance(failure_cause(only_track(inst)), VariableError)


async def test_script_task(bus):
    p = linear_process(
        "script",
        StoreTask("s", str_var("name", "bpm")),
        ScriptTask("upper", lambda vs: {"name": vs.get("name").as_str().upper()}),
    )

    inst = await run_process(p, bus)

    assert inst.variables.get("name").as_str() == "BPM"


def test_to_variable_infers_types():
    t = datetime(2024, 1, 1, tzinfo=UTC)
    assert to_variable("b", True, 2).type == VarType.BOOL
    assert to_variable("i", 1, 2).type == VarType.INT
    assert to_variable("t", t, 2).type == VarType.TIME
    assert to_variable("renamed", int_var("x", 1), 2).name == "renamed"
    with pytest.raises(VariableError):
        to_variable("l", [1], 2)


# ==============================================================================
# User tasks
# ==============================================================================


async def test_user_task_waits_for_completion(bus):
    approve = UserTask("approve", "manager")
    p = linear_process("user", approve, StoreTask("after", int_var("done", 1)))

    inst = Instance(p.snapshot(), bus)
    run = asyncio.create_task(inst.run())

    await asyncio.sleep(0.05)
    assert not run.done()
    assert "done" not in inst.variables

    inst.complete_user_task(approve.id, str_var("verdict", "yes"))
    await asyncio.wait_for(run, timeout=5.0)

    assert inst.variables.values() == {"verdict": "yes", "done": 1}


async def test_user_task_completed_before_arrival(bus):
    approve = UserTask("approve")
    p = linear_process("user", StoreTask("before", int_var("x", 1)), approve)

    inst = Instance(p.snapshot(), bus)
    inst.complete_user_task(approve.id, int_var("y", 2))
    await asyncio.wait_for(inst.run(), timeout=5.0)

    assert inst.variables.get("y").as_int() == 2


async def test_user_task_double_completion_is_rejected(bus):

    approve = UserTask("approve")
    inst = Instance(linear_process("user", approve).snapshot(), bus)

    inst.complete_user_task(approve.id)
    with pytest.raises(InstanceError):
        inst.complete_user_task(approve.id)


async def test_user_task_timeout_fails_track(bus):
    p = linear_process("user", UserTask("approve"))
    config = EngineConfig.DEFAULT.with_user_task_timeout(0.05)

    inst = await run_process(p, bus, config=config)

    assert isinstance(failure_cause(only_track(inst)), TimeoutError)


# ==============================================================================
# Data specs
# ==============================================================================


async def test_missing_required_input_fails_before_exec(bus):
    calls = []
    p = linear_process(
        "specs",
        ServiceTask("svc", calls.append, inputs=[DataSpec("x", VarType.INT)]),
    )

    inst = await run_process(p, bus)

    assert isinstance(failure_cause(only_track(inst)), VariableError)
    assert calls == []


async def test_optional_input_may_be_missing(bus):
    p = linear_process(
        "specs",
        StoreTask("s", int_var("x", 1), inputs=[DataSpec("y", VarType.INT, optional=True)]),
    )

    inst = await run_process(p, bus)

    assert only_track(inst).state == TrackState.ENDED


async def test_output_type_mismatch_fails(bus):
    p = linear_process(
        "specs",
        StoreTask("s", int_var("x", 1), outputs=[DataSpec("x", VarType.STRING)]),
    )

    inst = await run_process(p, bus)

    assert isinstance(failure_cause(only_track(inst)), VariableError)


# ==============================================================================
# Pass-through, events and registry
# ==============================================================================


async def test_pass_through_tasks(bus):
    p = linear_process(
        "pass",
        StartEvent("start"),
        BusinessRuleTask("rules"),
        CallActivity("call"),
        StoreTask("s", int_var("x", 1)),
        EndEvent("end"),
    )

    inst = await run_process(p, bus)

    track = only_track(inst)
    assert track.state == TrackState.ENDED
    assert len(track.steps) == 5
    assert track.token.state == TokenState.CONSUMED


async def test_event_based_gateway_has_no_executor(bus):
    p = linear_process(
        "events",
        StartEvent("start"),
        Gateway("wait", GatewayKind.EVENT_BASED),
        StoreTask("s", int_var("x", 1)),
    )

    inst = await run_process(p, bus)

    assert isinstance(failure_cause(only_track(inst)), ExecutorNotFoundError)


class AuditTask(Task):
    pass


class AuditExecutor(TaskExecutor):
    async def exec(self, env):
        env.variable_store().new_var(str_var("audited", self.task.name))
        return await super().exec(env)


async def test_custom_executor_registration(bus):
    p = linear_process("audit", AuditTask("audit"))
    registry = ExecutorRegistry()
    node = p.node_by_name("audit")
    assert not registry.supports(node)

    registry.register(AuditTask, lambda n, env: AuditExecutor(n))
    assert registry.supports(node)

    inst = await run_process(p, bus, registry=registry)

    assert inst.variables.get("audited").as_str() == "audit"


async def test_unregistered_node_kind_fails_track(bus):
    p = linear_process("audit", AuditTask("audit"))

    inst = await run_process(p, bus)

    assert isinstance(failure_cause(only_track(inst)), ExecutorNotFoundError)
