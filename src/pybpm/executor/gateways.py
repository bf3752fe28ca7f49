"""
Diverging gateway executors.

Flow selection by gateway kind:
    EXCLUSIVE  first flow (declaration order) whose condition holds, else the
               default flow
    INCLUSIVE  every flow whose condition holds, else the default flow
    PARALLEL   every outgoing flow, conditions ignored

A flow without a condition counts as satisfied. The default flow is never
evaluated as a condition. When nothing is selected and there is no default
flow the gateway fails.

Converging gateways are handled by the gatekeeper (pybpm.executor.gatekeeper).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pybpm.core.errors import GatewayError
from pybpm.models.gateways import Gateway, GatewayKind

if TYPE_CHECKING:
    from pybpm.executor.environment import ExecutionEnvironment
    from pybpm.models.flow import SequenceFlow


def select_flows(gateway: Gateway, env: ExecutionEnvironment) -> list[SequenceFlow]:
    """
    Choose the outgoing flows of a diverging gateway.

    Raises:
        GatewayError: If no flow can be selected
        ConditionError: If a condition fails to evaluate
    """
    snapshot = env.snapshot()
    outgoing = snapshot.outgoing(gateway)

    if gateway.kind == GatewayKind.PARALLEL:
        return outgoing

    vs = env.variable_store()
    default = None
    selected: list[SequenceFlow] = []
    for f in outgoing:
        if f.id == gateway.default_flow:
            default = f
            continue
        if f.condition is None or f.condition.evaluate(vs):
            selected.append(f)
            if gateway.kind == GatewayKind.EXCLUSIVE:
                break

    if selected:
        return selected
    if default is not None:
        return [default]

    raise GatewayError(
        f"{gateway.kind_name} '{gateway.name}' has no satisfied conditions and no default flow"
    )


class DivergingGatewayExecutor:
    """Splits the arriving track over the selected flows."""

    def __init__(self, gateway: Gateway):
        self.gateway = gateway

    async def exec(self, env: ExecutionEnvironment) -> list[SequenceFlow]:
        flows = select_flows(self.gateway, env)
        env.logger().debug(
            f"{self.gateway.kind_name} '{self.gateway.name}' selected "
            f"{len(flows)} of {len(self.gateway.outgoing)} flows"
        )
        return flows

    def __repr__(self) -> str:
        return f"DivergingGatewayExecutor({self.gateway.name!r})"


__all__ = ["select_flows", "DivergingGatewayExecutor"]
