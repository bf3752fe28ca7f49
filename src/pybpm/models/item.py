"""Item definitions and data specifications.

ItemDefinition describes the payload of messages, data inputs, data outputs
and properties. DataSpec declares a single named, typed data input or output
of a task; the engine checks declared specs against the variable store
before and after the task runs.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pybpm.core.variables import VarType


class ItemKind(Enum):
    PHYSICAL = "PHYSICAL"
    INFORMATION = "INFORMATION"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ItemDefinition:
    """Payload descriptor."""

    kind: ItemKind = ItemKind.INFORMATION
    structure: str = ""
    is_collection: bool = False


@dataclass(frozen=True)
class DataSpec:
    """Named, typed data input or output of a task."""

    name: str
    var_type: VarType
    optional: bool = False
    item: ItemDefinition = ItemDefinition()


__all__ = ["ItemKind", "ItemDefinition", "DataSpec"]
