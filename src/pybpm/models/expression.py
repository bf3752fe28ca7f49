"""Sequence-flow conditions.

A Condition wraps a Python predicate evaluated against the instance's
variable store. Conditions are immutable and shared between a process model
and its snapshots.

Example:
    ```python
    big = Condition(lambda vs: vs.get("x").as_int() > 3, "x > 3")
    big.evaluate(store)   # True when x > 3
    ```
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from pybpm.core.errors import BpmError

if TYPE_CHECKING:
    from pybpm.core.varstore import VarStore

LANGUAGE = "pybpm:pyexpr"

Predicate = Callable[["VarStore"], bool]


class ConditionError(BpmError):
    """Condition evaluation failed."""


class Condition:
    """Predicate over the variable store guarding a sequence flow."""

    __slots__ = ("_predicate", "_text")

    def __init__(self, predicate: Predicate, text: str = ""):
        if not callable(predicate):
            raise TypeError("condition predicate should be callable")
        self._predicate = predicate
        self._text = text or getattr(predicate, "__name__", "<condition>")

    @property
    def language(self) -> str:
        return LANGUAGE

    @property
    def text(self) -> str:
        """Human-readable form of the condition (for logs)."""
        return self._text

    def evaluate(self, store: VarStore) -> bool:
        """Evaluate the predicate.

        Raises:
            ConditionError: If the predicate raises
        """
        try:
            return bool(self._predicate(store))
        except Exception as e:
            raise ConditionError(f"condition '{self._text}' evaluation failed: {e}") from e

    def __copy__(self) -> Condition:
        return self

    def __deepcopy__(self, memo: dict) -> Condition:
        return self

    def __repr__(self) -> str:
        return f"Condition({self._text!r})"


def var_equals(name: str, value: object) -> Condition:
    """Condition holding when variable name equals value (after coercion)."""

    def _eq(vs: VarStore) -> bool:
        v = vs.get(name)
        return v.as_type(v.type) == value

    return Condition(_eq, f"{name} == {value!r}")


__all__ = ["Condition", "ConditionError", "LANGUAGE", "var_equals"]
