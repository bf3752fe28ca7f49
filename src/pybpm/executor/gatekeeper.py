"""
Converging-gateway synchronization.

The Gatekeeper maps gateway id to the one canonical GatewayJoin of the
instance. Every track arriving at a converging gateway gets a JoinTicket on
that shared join, so all arrivals meet at the same barrier.

Open conditions:
    EXCLUSIVE  every arrival opens the gateway alone; nothing is merged
    PARALLEL   one arrival on every incoming flow; fails with GatewayError
               when a missing flow can no longer be reached by any live track
    INCLUSIVE  at least one arrival, and no live track outside the gateway
               can still reach an incoming flow that has not delivered

When the condition holds, the ticket that observes it opens the gateway: its
token absorbs the tokens of the other tickets in the group and its track
continues on the outgoing flow. The other tracks end in state MERGED.

Design: Mixed gateways converge first; the opening track then diverges
using the gateway's flow selection.
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import TYPE_CHECKING

from pybpm.core.errors import GatewayError
from pybpm.core.identity import Id
from pybpm.executor.capabilities import _TrackMerged
from pybpm.executor.gateways import select_flows
from pybpm.models.gateways import Gateway, GatewayKind

if TYPE_CHECKING:
    from pybpm.core.token import Token
    from pybpm.executor.environment import ExecutionEnvironment
    from pybpm.executor.instance import Instance
    from pybpm.models.flow import SequenceFlow


class TicketState(Enum):
    WAITING = "WAITING"
    OPENED = "OPENED"
    MERGED = "MERGED"

    def __str__(self) -> str:
        return self.value


class JoinTicket:
    """One track's arrival at a converging gateway (a token handler)."""

    def __init__(self, join: GatewayJoin, track_id: Id, flow_id: Id | None):
        self.join = join
        self.track_id = track_id
        self.flow_id = flow_id
        self.state = TicketState.WAITING
        self.token: Token | None = None
        self._flows: list[SequenceFlow] = []

    def take_token(self, token: Token) -> None:
        self.token = token

    async def exec(self, env: ExecutionEnvironment) -> list[SequenceFlow]:
        await self.join.arrive(self)
        if self.state == TicketState.MERGED:
            raise _TrackMerged()

        gw = self.join.gateway
        if gw.is_diverging:
            self._flows = select_flows(gw, env)
        else:
            self._flows = env.snapshot().outgoing(gw)

        return self._flows

    def return_tokens(self) -> list[Token]:
        if len(self._flows) == 1:
            return [self.token]
        return self.token.split(len(self._flows))

    def __repr__(self) -> str:
        return f"JoinTicket({self.join.gateway.name!r}, track={self.track_id.last(4)}, {self.state})"


class GatewayJoin:
    """Canonical executor of one converging gateway within one instance."""

    def __init__(self, gateway: Gateway, instance: Instance):
        self.gateway = gateway
        self.opened = 0
        self._instance = instance
        self._waiting: list[JoinTicket] = []

    def ticket(self, env: ExecutionEnvironment) -> JoinTicket:
        return JoinTicket(self, env.track_id(), env.arrived_by())

    @property
    def waiting(self) -> int:
        return len(self._waiting)

    async def arrive(self, ticket: JoinTicket) -> None:
        """
        Register ticket and wait until it opens the gateway or gets merged.

        Raises:
            GatewayError: If the gateway can never open
            TokenError: If the group's tokens can't be joined
        """
        if ticket.flow_id not in self.gateway.incoming:
            raise GatewayError(
                f"track {ticket.track_id} arrived at '{self.gateway.name}' "
                "by a flow that isn't incoming"
            )

        if self.gateway.kind == GatewayKind.EXCLUSIVE:
            ticket.state = TicketState.OPENED
            self.opened += 1
            return

        cond = self._instance.state_changed
        async with cond:
            self._waiting.append(ticket)
            try:
                while ticket.state == TicketState.WAITING:
                    group = self._ready_group()
                    if group is not None:
                        if ticket in group:
                            self._open(ticket, group)
                            cond.notify_all()
                            break
                        # the group's members must re-check
                        cond.notify_all()
                    await cond.wait()
            except BaseException:
                if ticket in self._waiting:
                    self._waiting.remove(ticket)
                    cond.notify_all()
                raise

    def _ready_group(self) -> list[JoinTicket] | None:
        first: dict[Id, JoinTicket] = {}
        for t in self._waiting:
            first.setdefault(t.flow_id, t)

        missing = [fid for fid in self.gateway.incoming if fid not in first]
        if not missing:
            return list(first.values())

        waiting_tracks = {t.track_id for t in self._waiting}
        unreachable = [
            fid
            for fid in missing
            if not self._instance.can_deliver(fid, self.gateway, exclude=waiting_tracks)
        ]

        if self.gateway.kind == GatewayKind.PARALLEL:
            if unreachable:
                raise GatewayError(
                    f"{self.gateway.kind_name} '{self.gateway.name}' can't open: "
                    f"{len(unreachable)} incoming flow(s) can't be reached by any track"
                )
            return None

        if len(unreachable) == len(missing):
            return list(first.values())
        return None

    def _open(self, opener: JoinTicket, group: list[JoinTicket]) -> None:
        others = [t for t in group if t is not opener]
        opener.token.join(*(t.token for t in others))

        for t in others:
            t.state = TicketState.MERGED
        opener.state = TicketState.OPENED

        self._waiting = [t for t in self._waiting if t not in group]
        self.opened += 1

    def __repr__(self) -> str:
        return f"GatewayJoin({self.gateway.name!r}, waiting={len(self._waiting)})"


class Gatekeeper:
    """Per-instance map from gateway id to its canonical GatewayJoin."""

    def __init__(self, instance: Instance):
        self._instance = instance
        self._joins: dict[Id, GatewayJoin] = {}
        self._lock = threading.Lock()

    def get(self, gateway: Gateway) -> GatewayJoin:
        """Return the join of gateway, inserting it on first arrival."""
        with self._lock:
            join = self._joins.get(gateway.id)
            if join is None:
                join = GatewayJoin(gateway, self._instance)
                self._joins[gateway.id] = join
            return join

    def __contains__(self, gateway_id: object) -> bool:
        with self._lock:
            return gateway_id in self._joins

    def __len__(self) -> int:
        with self._lock:
            return len(self._joins)


__all__ = ["Gatekeeper", "GatewayJoin", "JoinTicket", "TicketState"]
