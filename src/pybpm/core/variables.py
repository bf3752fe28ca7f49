"""Typed variant variables.

A Variable is a named holder of a single value of one of five types:
int (64-bit), bool, string, float and timestamp. The declared type is fixed
at creation; updates must supply a value of the declared type, while reads
may ask for any other type and get a coerced value:

- Int <-> Float: direct numeric conversion (float -> int rounds half away
  from zero)
- Bool: non-zero / non-empty / non-zero-time -> True
- String <-> numeric: parsed on read; unparseable input raises VariableError
- Time: int and float are Unix milliseconds; strings use RFC 3339

Design: Tagged Union
    One record keeps the tag and the value; ``as_*`` accessors implement the
    coercion table so callers never switch on the tag themselves.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime, timedelta
from enum import IntEnum
from typing import Any

from pybpm.core.errors import VariableError

DEFAULT_PRECISION = 2

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
ZERO_TIME = datetime(1, 1, 1, tzinfo=UTC)
"""Zero value of the time type (no time set)."""


class VarType(IntEnum):
    """Declared type of a Variable.

    Integer values are the ``var_type`` codes of the message envelope.
    """

    INT = 0
    BOOL = 1
    STRING = 2
    FLOAT = 3
    TIME = 4

    def __str__(self) -> str:
        return self.name.capitalize()


# =============================================================================
# Time helpers
# =============================================================================


def to_unix_milli(t: datetime) -> int:
    """Convert a timestamp to Unix milliseconds (exact, no float rounding)."""
    return (_aware(t) - EPOCH) // timedelta(milliseconds=1)


def from_unix_milli(ms: int) -> datetime:
    """Convert Unix milliseconds to an aware UTC timestamp."""
    return EPOCH + timedelta(milliseconds=ms)


def format_rfc3339(t: datetime, fractional: bool = False) -> str:
    """Format a timestamp as RFC 3339.

    UTC is rendered with the ``Z`` suffix. Sub-second digits are only kept
    when ``fractional`` is set (the envelope keeps them, display does not).
    """
    t = _aware(t)
    if not fractional:
        t = t.replace(microsecond=0)
    s = t.isoformat()
    if s.endswith("+00:00"):
        s = s[:-6] + "Z"
    return s


def parse_rfc3339(s: str) -> datetime:
    """Parse an RFC 3339 timestamp.

    Raises:
        ValueError: If s is not a valid timestamp
    """
    return _aware(datetime.fromisoformat(s.strip()))


def _aware(t: datetime) -> datetime:
    # naive timestamps are taken as UTC
    if t.tzinfo is None:
        return t.replace(tzinfo=UTC)
    return t


def _round_half_away(f: float) -> int:
    if math.isnan(f) or math.isinf(f):
        raise ValueError(f"cannot convert {f} to int")
    return int(math.copysign(math.floor(abs(f) + 0.5), f))


# =============================================================================
# Variable
# =============================================================================


class Variable:
    """Named variant value with a fixed declared type.

    Example:
        ```python
        x = Variable("x", VarType.INT, 10)
        x.as_float()   # 10.0
        x.as_str()     # "10"

        pi = Variable("pi", VarType.FLOAT, 3.14159, precision=3)
        pi.as_str()    # "3.142"
        ```
    """

    __slots__ = ("_name", "_type", "_value", "_precision")

    def __init__(
        self,
        name: str,
        var_type: VarType,
        value: Any = None,
        precision: int = DEFAULT_PRECISION,
    ):
        name = (name or "").strip()
        if not name:
            raise VariableError("variable should have non-empty name")

        self._name = name
        self._type = VarType(var_type)
        self._precision = DEFAULT_PRECISION
        self.precision = precision
        self._value = self._checked(value)

    @property
    def name(self) -> str:
        return self._name

    @property
    def type(self) -> VarType:
        return self._type

    @property
    def value(self) -> Any:
        """Raw value in the declared type."""
        return self._value

    @property
    def precision(self) -> int:
        """Float precision used when rendering the value as a string."""
        return self._precision

    @precision.setter
    def precision(self, p: int) -> None:
        self._precision = p if p >= 0 else DEFAULT_PRECISION

    def update(self, value: Any) -> None:
        """Set a new value of the declared type.

        Raises:
            VariableError: If value isn't of the declared type
        """
        self._value = self._checked(value)

    def copy(self) -> Variable:
        return Variable(self._name, self._type, self._value, self._precision)

    # -------------------------------------------------------------------------
    # Coercing readers
    # -------------------------------------------------------------------------

    def as_int(self) -> int:
        """Integer view of the value.

        Raises:
            VariableError: If a string value can't be parsed as a number
        """
        match self._type:
            case VarType.INT:
                return self._value
            case VarType.BOOL:
                return 1 if self._value else 0
            case VarType.STRING:
                try:
                    return _round_half_away(float(self._value))
                except ValueError as e:
                    raise VariableError(
                        f"cannot convert string {self._value!r} to int", self._name, self._type
                    ) from e
            case VarType.FLOAT:
                try:
                    return _round_half_away(self._value)
                except ValueError as e:
                    raise VariableError(str(e), self._name, self._type) from e
            case VarType.TIME:
                return to_unix_milli(self._value)

    def as_float(self) -> float:
        """Float view of the value.

        Raises:
            VariableError: If a string value can't be parsed as a number
        """
        match self._type:
            case VarType.INT:
                return float(self._value)
            case VarType.BOOL:
                return 1.0 if self._value else 0.0
            case VarType.STRING:
                try:
                    return float(self._value)
                except ValueError as e:
                    raise VariableError(
                        f"cannot convert string {self._value!r} to float", self._name, self._type
                    ) from e
            case VarType.FLOAT:
                return self._value
            case VarType.TIME:
                return float(to_unix_milli(self._value))

    def as_bool(self) -> bool:
        """Boolean view: non-zero, non-empty or non-zero time is True."""
        match self._type:
            case VarType.BOOL:
                return self._value
            case VarType.TIME:
                return self._value != ZERO_TIME
            case _:
                return bool(self._value)

    def as_str(self) -> str:
        """String view: decimal ints, ``true|false``, fixed floats, RFC 3339."""
        match self._type:
            case VarType.INT:
                return str(self._value)
            case VarType.BOOL:
                return "true" if self._value else "false"
            case VarType.STRING:
                return self._value
            case VarType.FLOAT:
                return f"{self._value:.{self._precision}f}"
            case VarType.TIME:
                return format_rfc3339(self._value)

    def as_time(self) -> datetime:
        """Timestamp view (numbers are Unix milliseconds).

        Raises:
            VariableError: If a string value isn't RFC 3339
        """
        match self._type:
            case VarType.INT:
                try:
                    return from_unix_milli(self._value)
                except OverflowError as e:
                    raise VariableError(
                        f"{self._value} is out of time range", self._name, self._type
                    ) from e
            case VarType.BOOL:
                return datetime.now(UTC) if self._value else ZERO_TIME
            case VarType.STRING:
                try:
                    return parse_rfc3339(self._value)
                except ValueError as e:
                    raise VariableError(
                        f"cannot convert string {self._value!r} to time", self._name, self._type
                    ) from e
            case VarType.FLOAT:
                try:
                    return from_unix_milli(_round_half_away(self._value))
                except (ValueError, OverflowError) as e:
                    raise VariableError(str(e), self._name, self._type) from e
            case VarType.TIME:
                return self._value

    def as_type(self, var_type: VarType) -> Any:
        """Value coerced into var_type."""
        match VarType(var_type):
            case VarType.INT:
                return self.as_int()
            case VarType.BOOL:
                return self.as_bool()
            case VarType.STRING:
                return self.as_str()
            case VarType.FLOAT:
                return self.as_float()
            case VarType.TIME:
                return self.as_time()

    # -------------------------------------------------------------------------

    def _checked(self, value: Any) -> Any:
        t = self._type

        if value is None:
            match t:
                case VarType.INT:
                    return 0
                case VarType.BOOL:
                    return False
                case VarType.STRING:
                    return ""
                case VarType.FLOAT:
                    return 0.0
                case VarType.TIME:
                    return datetime.now(UTC)

        match t:
            case VarType.INT:
                if isinstance(value, bool) or not isinstance(value, int):
                    raise VariableError(f"couldn't convert {value!r} to int", self._name, t)
                if not INT64_MIN <= value <= INT64_MAX:
                    raise VariableError(f"{value} is out of int64 range", self._name, t)
                return value
            case VarType.BOOL:
                if not isinstance(value, bool):
                    raise VariableError(f"couldn't convert {value!r} to bool", self._name, t)
                return value
            case VarType.STRING:
                if not isinstance(value, str):
                    raise VariableError(f"couldn't convert {value!r} to string", self._name, t)
                return value
            case VarType.FLOAT:
                if isinstance(value, bool) or not isinstance(value, int | float):
                    raise VariableError(f"couldn't convert {value!r} to float", self._name, t)
                return float(value)
            case VarType.TIME:
                if not isinstance(value, datetime):
                    raise VariableError(f"couldn't convert {value!r} to time", self._name, t)
                return _aware(value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Variable):
            return NotImplemented
        return (
            self._name == other._name
            and self._type == other._type
            and self._precision == other._precision
            and self._value == other._value
        )

    __hash__ = None  # mutable

    def __repr__(self) -> str:
        return f"Variable({self._name!r}, {self._type!s}, {self._value!r})"


# =============================================================================
# Constructors
# =============================================================================


def int_var(name: str, value: int = 0) -> Variable:
    return Variable(name, VarType.INT, value)


def bool_var(name: str, value: bool = False) -> Variable:
    return Variable(name, VarType.BOOL, value)


def str_var(name: str, value: str = "") -> Variable:
    return Variable(name, VarType.STRING, value)


def float_var(name: str, value: float = 0.0, precision: int = DEFAULT_PRECISION) -> Variable:
    return Variable(name, VarType.FLOAT, value, precision)


def time_var(name: str, value: datetime | None = None) -> Variable:
    return Variable(name, VarType.TIME, value)


__all__ = [
    "VarType",
    "Variable",
    "DEFAULT_PRECISION",
    "EPOCH",
    "ZERO_TIME",
    "int_var",
    "bool_var",
    "str_var",
    "float_var",
    "time_var",
    "to_unix_milli",
    "from_unix_milli",
    "format_rfc3339",
    "parse_rfc3339",
]
