"""Tests for message definitions and their JSON envelope."""

import json

import pytest
from hypothesis import given
from hypothesis import strategies as st

from conftest import names, variable_strategy
from pybpm.bus import MessageEnvelope
from pybpm.core import MessageError, int_var, str_var, time_var
from pybpm.models import (
    ItemDefinition,
    ItemKind,
    Message,
    MessageDirection,
    MessageState,
    MessageVariable,
    optional,
    required,
)


def test_message_validation():
    with pytest.raises(MessageError):
        Message("", MessageDirection.OUTGOING, required(int_var("x")))
    with pytest.raises(MessageError):
        Message("m", MessageDirection.OUTGOING)
    with pytest.raises(MessageError):
        Message("m", MessageDirection.OUTGOING, required(int_var("x")), optional(str_var("x")))


def test_message_variables_are_copies():
    m = Message("m", MessageDirection.INCOMING, required(int_var("x", 1)))
    mv = m.get("x")
    mv.variable.update(2)
    assert m.get("x").variable.as_int() == 1
    assert m.get("missing") is None


def test_outgoing_copy_is_sent():
    m = Message("m", MessageDirection.BIDIRECTIONAL, required(int_var("x")))
    out = m.outgoing(required(int_var("x", 5)))

    assert out.state == MessageState.SENT
    assert out.direction == MessageDirection.OUTGOING
    assert out.get("x").variable.as_int() == 5
    assert m.state == MessageState.CREATED


def test_message_variables_carry_item_definition():
    order = ItemDefinition(ItemKind.INFORMATION, "Order")
    m = Message("m", MessageDirection.OUTGOING, required(int_var("x", 1), order))

    assert m.get("x").item == order
    assert m.copy().get("x").item == order
    assert optional(int_var("y")).item == ItemDefinition()

    # items stay on the declaring side of the wire
    got = Message.from_json(m.to_json())
    assert got.get("x").item == ItemDefinition()
    assert "item" not in json.loads(m.to_json())["vars"][0]


def test_wire_format():
    m = Message("letter", MessageDirection.OUTGOING, required(int_var("x", 42)))
    d = json.loads(m.to_json())

    assert d["name"] == "letter"
    assert d["direction"] == 2
    var = d["vars"][0]
    assert var["optional"] is False
    assert var["variable"]["name"] == "x"
    assert var["variable"]["var_type"] == 0
    assert var["variable"]["precision"] == 2
    assert var["variable"]["value"]["int"] == 42
    assert set(var["variable"]["value"]) == {"int", "bool", "string", "float", "time"}


def test_from_json_marks_received():
    m = Message("letter", MessageDirection.OUTGOING, optional(time_var("t")))
    got = Message.from_json(m.to_json())

    assert got.state == MessageState.RECEIVED
    assert got.id == m.id
    assert got == m


@pytest.mark.parametrize(
    "data",
    [
        b"not json",
        b"{}",
        b'{"id": "x", "name": "m", "direction": 1, "vars": []}',
        json.dumps(
            {
                "id": "00000000-0000-0000-0000-000000000001",
                "name": "m",
                "direction": 1,
                "vars": [{"optional": False, "variable": {"name": "x", "var_type": 9}}],
            }
        ).encode(),
    ],
)
def test_from_json_rejects_invalid(data):
    with pytest.raises(MessageError):
        Message.from_json(data)


@pytest.mark.property
@given(
    name=names,
    direction=st.sampled_from(list(MessageDirection)),
    variables=st.lists(
        st.tuples(variable_strategy(), st.booleans()),
        min_size=1,
        max_size=5,
        unique_by=lambda t: t[0].name,
    ),
)
def test_message_json_roundtrip(name, direction, variables):
    """Marshal then unmarshal yields an equal message."""
    m = Message(name, direction, *(MessageVariable(v, opt) for v, opt in variables))

    got = Message.from_json(m.to_json())

    assert got == m
    for mv in m.variables:
        assert got.get(mv.name).variable.precision == mv.variable.precision


def test_envelope_dict_roundtrip():
    env = MessageEnvelope("letter", b"\x00payload").stamped("producer", "Q")
    got = MessageEnvelope.from_dict(env.to_dict())

    assert got.name == "letter"
    assert got.data == b"\x00payload"
    assert got.id == env.id
    assert got.producer_id == "producer"
    assert got.queue == "Q"
    assert abs((got.registered_at - env.registered_at).total_seconds()) < 0.001
