"""Message definitions and their canonical JSON envelope.

A Message is declared on a process with a name, a direction and an ordered
list of payload variables, each flagged optional or required. Declared
messages stay in state CREATED; SendTask builds an outgoing copy carrying
current values (state SENT) and ReceiveTask decodes incoming copies (state
RECEIVED).

Wire format (``Message.to_json``):

    {"id": "<uuid>", "name": "<message-name>", "direction": <u8>,
     "vars": [{"optional": <bool>,
               "variable": {"name": "<string>", "var_type": <u8>,
                            "precision": <int>,
                            "value": {"int": <i64>, "bool": <bool>,
                                      "string": "<str>", "float": <f64>,
                                      "time": "<RFC3339>"}}}]}

Only the value slot matching ``var_type`` is meaningful; the others carry
zero values.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum, IntFlag
from typing import Any

from pybpm.core.errors import MessageError, VariableError
from pybpm.core.identity import Id
from pybpm.core.variables import (
    ZERO_TIME,
    Variable,
    VarType,
    format_rfc3339,
    parse_rfc3339,
)
from pybpm.models.item import ItemDefinition


class MessageDirection(IntFlag):
    INCOMING = 1
    OUTGOING = 2
    BIDIRECTIONAL = INCOMING | OUTGOING


class MessageState(Enum):
    CREATED = "CREATED"
    SENT = "SENT"
    RECEIVED = "RECEIVED"

    def __str__(self) -> str:
        return self.value


@dataclass
class MessageVariable:
    """Payload variable of a message.

    item describes the payload on the declaring side; it isn't part of the
    wire format, decoded variables get the default item.
    """

    variable: Variable
    optional: bool = False
    item: ItemDefinition = ItemDefinition()

    @property
    def name(self) -> str:
        return self.variable.name

    def copy(self) -> MessageVariable:
        return MessageVariable(self.variable.copy(), self.optional, self.item)


def required(v: Variable, item: ItemDefinition = ItemDefinition()) -> MessageVariable:
    return MessageVariable(v, optional=False, item=item)


def optional(v: Variable, item: ItemDefinition = ItemDefinition()) -> MessageVariable:
    return MessageVariable(v, optional=True, item=item)


class Message:
    """Named payload with direction flags.

    Raises:
        MessageError: On empty name, empty or duplicate variable list
    """

    def __init__(
        self,
        name: str,
        direction: MessageDirection,
        *variables: MessageVariable,
        state: MessageState = MessageState.CREATED,
        id: Id | None = None,
    ):
        name = (name or "").strip()
        if not name:
            raise MessageError("message should have non-empty name")
        if not variables:
            raise MessageError(f"message '{name}' should have at least one variable")

        seen: set[str] = set()
        for mv in variables:
            if mv.name in seen:
                raise MessageError(f"variable '{mv.name}' duplicated in message '{name}'")
            seen.add(mv.name)

        self.id = id or Id()
        self.name = name
        self.direction = MessageDirection(direction)
        self.state = state
        self._vars: list[MessageVariable] = [mv.copy() for mv in variables]

    @property
    def variables(self) -> list[MessageVariable]:
        return [mv.copy() for mv in self._vars]

    def get(self, name: str) -> MessageVariable | None:
        for mv in self._vars:
            if mv.name == name:
                return mv.copy()
        return None

    def copy(self) -> Message:
        return Message(self.name, self.direction, *self._vars, state=self.state, id=self.id)

    def outgoing(self, *variables: MessageVariable) -> Message:
        """Build a sent copy of this message carrying the given values."""
        return Message(
            self.name,
            MessageDirection.OUTGOING,
            *variables,
            state=MessageState.SENT,
        )

    # -------------------------------------------------------------------------
    # JSON envelope
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "direction": int(self.direction),
            "vars": [
                {"optional": mv.optional, "variable": _variable_to_dict(mv.variable)}
                for mv in self._vars
            ],
        }

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict()).encode("utf-8")

    @classmethod
    def from_json(cls, data: bytes | str) -> Message:
        """Decode a message envelope; the result is in state RECEIVED.

        Raises:
            MessageError: If data isn't a valid envelope
        """
        try:
            d = json.loads(data)
            vv = [
                MessageVariable(_variable_from_dict(item["variable"]), bool(item["optional"]))
                for item in d["vars"]
            ]
            return cls(
                d["name"],
                MessageDirection(int(d["direction"])),
                *vv,
                state=MessageState.RECEIVED,
                id=Id.parse(d["id"]),
            )
        except (ValueError, KeyError, TypeError, VariableError) as e:
            raise MessageError(f"couldn't unmarshal message: {e}") from e

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Message):
            return NotImplemented
        return (
            self.name == other.name
            and self.direction == other.direction
            and [(mv.optional, mv.variable) for mv in self._vars]
            == [(mv.optional, mv.variable) for mv in other._vars]
        )

    __hash__ = None

    def __repr__(self) -> str:
        return f"Message({self.name!r}, {self.direction!r}, {self.state})"


def _variable_to_dict(v: Variable) -> dict[str, Any]:
    value = {"int": 0, "bool": False, "string": "", "float": 0.0, "time": format_rfc3339(ZERO_TIME)}
    match v.type:
        case VarType.INT:
            value["int"] = v.value
        case VarType.BOOL:
            value["bool"] = v.value
        case VarType.STRING:
            value["string"] = v.value
        case VarType.FLOAT:
            value["float"] = v.value
        case VarType.TIME:
            value["time"] = format_rfc3339(v.value, fractional=True)

    return {"name": v.name, "var_type": int(v.type), "precision": v.precision, "value": value}


def _variable_from_dict(d: dict[str, Any]) -> Variable:
    vt = VarType(int(d["var_type"]))
    raw = d["value"]
    match vt:
        case VarType.INT:
            value = int(raw["int"])
        case VarType.BOOL:
            value = bool(raw["bool"])
        case VarType.STRING:
            value = str(raw["string"])
        case VarType.FLOAT:
            value = float(raw["float"])
        case VarType.TIME:
            value = parse_rfc3339(raw["time"])

    return Variable(d["name"], vt, value, int(d.get("precision", 2)))


__all__ = [
    "Message",
    "MessageVariable",
    "MessageDirection",
    "MessageState",
    "required",
    "optional",
]
