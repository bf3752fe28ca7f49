"""Per-instance variable store.

Maps variable names to Variables. A name is bound to one type for the
lifetime of the store: re-declaring it with the same type updates the value,
re-declaring it with another type fails.

All operations are serialized by an internal lock and return copies, so
readers never observe a half-updated variable.
"""

from __future__ import annotations

from collections.abc import Iterator
from threading import Lock
from typing import Any

from pybpm.core.errors import VariableError
from pybpm.core.variables import Variable, VarType


class VarStore:
    """Thread-safe mapping from name to Variable.

    Usage:
        ```python
        vs = VarStore()
        vs.new_var(Variable("x", VarType.INT, 10))
        vs.get("x").as_int()   # 10
        vs.update("x", 11)
        ```
    """

    def __init__(self, *variables: Variable):
        self._vars: dict[str, Variable] = {}
        self._lock = Lock()

        for v in variables:
            self.new_var(v)

    def new_var(self, v: Variable) -> Variable:
        """Declare v in the store.

        Re-declaring an existing name of the same type updates its value and
        precision. Returns a copy of the stored variable.

        Raises:
            VariableError: If the name exists with a different type
        """
        with self._lock:
            existing = self._vars.get(v.name)
            if existing is None:
                stored = v.copy()
                self._vars[v.name] = stored
                return stored.copy()

            if existing.type != v.type:
                raise VariableError(
                    f"already exists as {existing.type}, couldn't re-declare as {v.type}",
                    v.name,
                    v.type,
                )

            existing.update(v.value)
            existing.precision = v.precision
            return existing.copy()

    def get(self, name: str) -> Variable:
        """Return a copy of the variable.

        Raises:
            VariableError: If there is no such variable
        """
        with self._lock:
            v = self._vars.get(name)
            if v is None:
                raise VariableError("isn't found in the store", name)
            return v.copy()

    def find(self, name: str) -> Variable | None:
        """Return a copy of the variable or None."""
        with self._lock:
            v = self._vars.get(name)
            return v.copy() if v is not None else None

    def update(self, name: str, value: Any) -> Variable:
        """Set a new value for an existing variable.

        Raises:
            VariableError: If the variable is missing or value has wrong type
        """
        with self._lock:
            v = self._vars.get(name)
            if v is None:
                raise VariableError("isn't found in the store", name)
            v.update(value)
            return v.copy()

    def delete(self, name: str) -> None:
        with self._lock:
            if self._vars.pop(name, None) is None:
                raise VariableError("isn't found in the store", name)

    def check(self, name: str, var_type: VarType | None = None) -> bool:
        """Check the variable exists (and has var_type when given)."""
        with self._lock:
            v = self._vars.get(name)
            if v is None:
                return False
            return var_type is None or v.type == var_type

    def names(self) -> list[str]:
        with self._lock:
            return list(self._vars)

    def values(self) -> dict[str, Any]:
        """Snapshot of raw values keyed by name."""
        with self._lock:
            return {n: v.value for n, v in self._vars.items()}

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._vars

    def __len__(self) -> int:
        with self._lock:
            return len(self._vars)

    def __iter__(self) -> Iterator[Variable]:
        with self._lock:
            vv = [v.copy() for v in self._vars.values()]
        return iter(vv)

    def __repr__(self) -> str:
        return f"VarStore({sorted(self.names())})"


__all__ = ["VarStore"]
