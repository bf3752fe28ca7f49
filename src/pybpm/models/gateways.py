"""Gateways: branching and merging points of a process.

Direction semantics:
    DIVERGING   1 incoming, n outgoing
    CONVERGING  n incoming, 1 outgoing
    MIXED       n incoming, m outgoing (merges, then splits)
    UNSPECIFIED inferred from the linked flows
"""

from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar

from pybpm.core.errors import ModelError
from pybpm.models.node import ElementKind, Node


class GatewayKind(Enum):
    EXCLUSIVE = "EXCLUSIVE"
    INCLUSIVE = "INCLUSIVE"
    PARALLEL = "PARALLEL"
    EVENT_BASED = "EVENT_BASED"
    COMPLEX = "COMPLEX"

    def __str__(self) -> str:
        return self.value


class GatewayDirection(Enum):
    UNSPECIFIED = "UNSPECIFIED"
    CONVERGING = "CONVERGING"
    DIVERGING = "DIVERGING"
    MIXED = "MIXED"

    def __str__(self) -> str:
        return self.value


class Gateway(Node):
    """Gateway node of a given kind and direction."""

    element_kind: ClassVar[ElementKind] = ElementKind.GATEWAY

    def __init__(
        self,
        name: str,
        kind: GatewayKind,
        direction: GatewayDirection = GatewayDirection.UNSPECIFIED,
        **kwargs: Any,
    ):
        super().__init__(name, **kwargs)
        self.kind = GatewayKind(kind)
        self.direction = GatewayDirection(direction)

    @property
    def kind_name(self) -> str:
        return self.kind.name.title().replace("_", "") + "Gateway"

    @property
    def flow_direction(self) -> GatewayDirection:
        """Declared direction, or the one implied by the linked flows."""
        if self.direction != GatewayDirection.UNSPECIFIED:
            return self.direction

        n_in, n_out = len(self.incoming), len(self.outgoing)
        if n_in > 1 and n_out > 1:
            return GatewayDirection.MIXED
        if n_in > 1:
            return GatewayDirection.CONVERGING
        return GatewayDirection.DIVERGING

    @property
    def is_converging(self) -> bool:
        return self.flow_direction in (GatewayDirection.CONVERGING, GatewayDirection.MIXED)

    @property
    def is_diverging(self) -> bool:
        return self.flow_direction in (GatewayDirection.DIVERGING, GatewayDirection.MIXED)

    def check(self) -> None:
        n_in, n_out = len(self.incoming), len(self.outgoing)
        match self.flow_direction:
            case GatewayDirection.CONVERGING:
                if n_out != 1:
                    raise ModelError(
                        f"converging gateway '{self.name}' should have exactly one "
                        f"outgoing flow, has {n_out}",
                        self.process_id,
                    )
                if n_in < 1:
                    raise ModelError(
                        f"converging gateway '{self.name}' has no incoming flows",
                        self.process_id,
                    )
            case GatewayDirection.DIVERGING:
                if n_in != 1:
                    raise ModelError(
                        f"diverging gateway '{self.name}' should have exactly one "
                        f"incoming flow, has {n_in}",
                        self.process_id,
                    )
                if n_out < 1:
                    raise ModelError(
                        f"diverging gateway '{self.name}' has no outgoing flows",
                        self.process_id,
                    )
            case GatewayDirection.MIXED:
                if n_in < 1 or n_out < 1:
                    raise ModelError(
                        f"mixed gateway '{self.name}' should have incoming and outgoing flows",
                        self.process_id,
                    )

        if self.default_flow is not None and self.kind == GatewayKind.PARALLEL:
            raise ModelError(
                f"parallel gateway '{self.name}' can't have a default flow", self.process_id
            )


def exclusive(name: str, direction: GatewayDirection = GatewayDirection.UNSPECIFIED) -> Gateway:
    return Gateway(name, GatewayKind.EXCLUSIVE, direction)


def inclusive(name: str, direction: GatewayDirection = GatewayDirection.UNSPECIFIED) -> Gateway:
    return Gateway(name, GatewayKind.INCLUSIVE, direction)


def parallel(name: str, direction: GatewayDirection = GatewayDirection.UNSPECIFIED) -> Gateway:
    return Gateway(name, GatewayKind.PARALLEL, direction)


__all__ = [
    "GatewayKind",
    "GatewayDirection",
    "Gateway",
    "exclusive",
    "inclusive",
    "parallel",
]
