"""Tests for the process model and snapshots."""

import io

import pytest

from conftest import linear_process
from pybpm.core import ModelError, SnapshotChangeError, VarStore, int_var
from pybpm.models import (
    Condition,
    ConditionError,
    ElementKind,
    EndEvent,
    Gateway,
    GatewayDirection,
    GatewayKind,
    MessageDirection,
    OutputDescriptor,
    OutputTask,
    Process,
    ReceiveTask,
    StartEvent,
    StoreTask,
    TaskKind,
    exclusive,
    parallel,
    required,
    var_equals,
)


def test_duplicate_lane_is_rejected():
    p = Process("lanes")
    p.add_lane("L")
    with pytest.raises(ModelError):
        p.add_lane("L")


def test_nested_lanes_and_removal():
    p = Process("lanes")
    p.add_lane("outer")
    inner = p.add_lane("inner", parent="outer")
    assert p.lane("outer").child_lanes == [inner]

    with pytest.raises(ModelError):
        p.add_lane("x", parent="missing")
    with pytest.raises(ModelError):
        p.remove_lane("outer")

    p.remove_lane("inner")
    p.remove_lane("outer")
    assert p.lanes == []


def test_lane_with_nodes_cannot_be_removed():
    p = Process("lanes")
    p.add_lane("L")
    p.add_node(StoreTask("s", int_var("x")), lane="L")
    with pytest.raises(ModelError):
        p.remove_lane("L")


def test_add_node_binds_it():
    p = Process("bind")
    s = p.add_node(StoreTask("s", int_var("x")))
    assert s.process_id == p.id

    with pytest.raises(ModelError):
        Process("other").add_node(s)
    with pytest.raises(ModelError):
        p.add_node(StoreTask("s", int_var("y")))
    with pytest.raises(ModelError):
        p.add_node(StoreTask("t", int_var("y")), lane="missing")


def test_link_requires_both_nodes_in_process():
    p = Process("link")
    a = p.add_node(StoreTask("a", int_var("x")))
    stranger = StoreTask("b", int_var("y"))
    with pytest.raises(ModelError):
        p.link(a, stranger)


def test_default_flow_rules():
    p = Process("defaults")
    start = p.add_node(StartEvent("start"))
    gw = p.add_node(exclusive("gw"))
    a = p.add_node(StoreTask("a", int_var("x")))
    b = p.add_node(StoreTask("b", int_var("x")))

    with pytest.raises(ModelError):
        p.link(start, gw, default=True)

    p.link(start, gw)
    f = p.link(gw, a, default=True)
    assert gw.default_flow == f.id and f.is_default

    with pytest.raises(ModelError):
        p.link(gw, b, default=True)


def test_gateway_default_flow_cannot_have_condition():
    p = Process("defaults")
    gw = p.add_node(exclusive("gw"))
    a = p.add_node(StoreTask("a", int_var("x")))
    with pytest.raises(ModelError):
        p.link(gw, a, var_equals("x", 1), default=True)


def test_add_message():
    p = Process("messages")
    m = p.add_message("letter", MessageDirection.OUTGOING, required(int_var("x")))
    assert m.name == "letter"
    assert p.has_messages

    with pytest.raises(ModelError):
        p.add_message("letter", MessageDirection.OUTGOING, required(int_var("x")))
    with pytest.raises(ModelError):
        p.add_message("empty", MessageDirection.OUTGOING)


def test_entry_nodes_skip_gateways():
    p = Process("entries")
    p.add_node(StartEvent("start"))
    p.add_node(StoreTask("loose", int_var("x")))
    p.add_node(parallel("gw"))

    assert [n.name for n in p.entry_nodes()] == ["start", "loose"]


def test_nodes_filter():
    p = linear_process("filter", StartEvent("start"), StoreTask("s", int_var("x")), EndEvent("end"))
    assert [n.name for n in p.nodes(ElementKind.EVENT)] == ["start", "end"]
    assert [n.name for n in p.nodes(StoreTask)] == ["s"]
    assert len(p) == 3


def test_snapshot_copies_and_freezes():
    buf = OutputDescriptor(io.StringIO())
    p = linear_process(
        "snap",
        StartEvent("start"),
        StoreTask("store", int_var("x", 1)),
        OutputTask("out", buf, "x"),
    )
    p.add_lane("L")

    s = p.snapshot()

    assert s.id != p.id
    assert s.origin_id == p.id
    assert s.is_snapshot
    assert s.lanes == ["L"]

    store = s.node_by_name("store")
    assert store is not p.node_by_name("store")
    assert store.id == p.node_by_name("store").id
    assert store.process_id == s.id
    assert all(f.process_id == s.id for f in s.flows)
    assert s.node_by_name("out").descriptor is buf

    # later changes of the process don't leak into the snapshot
    p.add_node(EndEvent("end"))
    assert len(s) == 3

    with pytest.raises(SnapshotChangeError):
        s.add_node(EndEvent("end"))
    with pytest.raises(SnapshotChangeError):
        s.add_lane("M")
    with pytest.raises(SnapshotChangeError):
        s.link(store, s.node_by_name("out"))
    with pytest.raises(SnapshotChangeError):
        s.snapshot()


def test_snapshot_variables_are_copies():
    p = Process("vars")
    store = p.add_node(StoreTask("store", int_var("x", 1)))
    s = p.snapshot()

    store.variables[0].update(2)

    assert s.node(store.id).variables[0].as_int() == 1


def test_validate_gateway_arity():
    p = Process("arity")
    a = p.add_node(StoreTask("a", int_var("x")))
    b = p.add_node(StoreTask("b", int_var("x")))
    c = p.add_node(StoreTask("c", int_var("x")))
    gw = p.add_node(Gateway("join", GatewayKind.PARALLEL, GatewayDirection.CONVERGING))
    p.link(a, gw)
    p.link(b, gw)
    p.link(gw, c)
    p.snapshot().validate()

    d = p.add_node(StoreTask("d", int_var("x")))
    p.link(gw, d)
    with pytest.raises(ModelError):
        p.snapshot().validate()


def test_gateway_direction_is_inferred():
    p = Process("infer")
    a, b, c, d = (p.add_node(StoreTask(n, int_var("x"))) for n in "abcd")
    split = p.add_node(exclusive("split"))
    join = p.add_node(exclusive("join"))
    mixed = p.add_node(exclusive("mixed"))

    p.link(a, split)
    p.link(split, b)
    p.link(split, c)
    p.link(b, join)
    p.link(c, join)
    p.link(join, mixed)
    p.link(d, mixed)
    p.link(mixed, a)
    p.link(mixed, d)

    assert split.flow_direction == GatewayDirection.DIVERGING
    assert join.flow_direction == GatewayDirection.CONVERGING
    assert mixed.flow_direction == GatewayDirection.MIXED
    assert mixed.is_converging and mixed.is_diverging


def test_can_reach_stops_at_barrier():
    p = Process("reach")
    a = p.add_node(StoreTask("a", int_var("x")))
    b = p.add_node(StoreTask("b", int_var("x")))
    gw = p.add_node(exclusive("gw"))
    c = p.add_node(StoreTask("c", int_var("x")))
    p.link(a, b)
    into = p.link(b, gw)
    p.link(gw, c)
    back = p.link(c, a)

    assert p.can_reach(a.id, into.id)
    assert p.can_reach(c.id, into.id)
    assert not p.can_reach(c.id, into.id, barrier=a.id)
    assert p.can_reach(gw.id, back.id)
    assert not p.can_reach(gw.id, back.id, barrier=gw.id)


def test_receive_task_kind():
    assert ReceiveTask("r", "m").kind == TaskKind.RECEIVE
    assert ReceiveTask("r", "m", instantiate=True).kind == TaskKind.RECEIVE_INSTANTIATE


def test_condition_wraps_errors():
    c = Condition(lambda vs: vs.get("missing").as_int() > 1, "missing > 1")
    with pytest.raises(ConditionError):
        c.evaluate(VarStore())
    assert var_equals("x", 1).evaluate(VarStore(int_var("x", 1)))
