"""
Core types for the pybpm engine.

This module contains the fundamental types used throughout pybpm:
- Id: Opaque unique identifier
- Variable / VarType: Typed variant values with coercions
- VarStore: Per-instance variable store
- Token: Execution marker with provenance
- InstanceState, TrackState, StepState, TokenState: Lifecycle enums
- Error types (BpmError and subclasses)
"""

from pybpm.core.errors import (
    BpmError,
    BusError,
    ExecutorNotFoundError,
    GatewayError,
    InstanceError,
    MessageError,
    ModelError,
    NodeExecutionError,
    SnapshotChangeError,
    ThresherError,
    TokenError,
    VariableError,
)
from pybpm.core.identity import EMPTY_ID, Id
from pybpm.core.status import InstanceState, StepState, TokenState, TrackState
from pybpm.core.token import Token
from pybpm.core.variables import (
    DEFAULT_PRECISION,
    ZERO_TIME,
    Variable,
    VarType,
    bool_var,
    float_var,
    format_rfc3339,
    from_unix_milli,
    int_var,
    parse_rfc3339,
    str_var,
    time_var,
    to_unix_milli,
)
from pybpm.core.varstore import VarStore

__all__ = [
    "Id",
    "EMPTY_ID",
    "Variable",
    "VarType",
    "VarStore",
    "DEFAULT_PRECISION",
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
    "Token",
    "InstanceState",
    "TrackState",
    "StepState",
    "TokenState",
    "BpmError",
    "ModelError",
    "SnapshotChangeError",
    "VariableError",
    "MessageError",
    "ExecutorNotFoundError",
    "NodeExecutionError",
    "GatewayError",
    "TokenError",
    "InstanceError",
    "BusError",
    "ThresherError",
]
