"""Execution tokens with provenance.

Tokens are created at entry nodes, split when a node fans out and joined
when a converging gateway merges tracks. Every token remembers the ids of
the tokens it was derived from, so the path of execution can be traced
across splits and joins.

Accounting: split(n) turns one alive token into n alive ones (+n-1);
joining k others into a token turns k alive tokens inactive (-k).
"""

from __future__ import annotations

from pybpm.core.errors import TokenError
from pybpm.core.identity import Id
from pybpm.core.status import TokenState


class Token:
    """Execution marker carried by a track step."""

    __slots__ = ("id", "instance_id", "_state", "prev")

    def __init__(self, instance_id: Id, prev: set[Id] | None = None):
        self.id = Id()
        self.instance_id = instance_id
        self._state = TokenState.ALIVE
        self.prev: set[Id] = set(prev) if prev else set()

    @property
    def state(self) -> TokenState:
        return self._state

    @property
    def is_alive(self) -> bool:
        return self._state == TokenState.ALIVE

    def split(self, n: int) -> list[Token]:
        """Inactivate this token and return n alive children.

        split(0) just inactivates the token.

        Raises:
            TokenError: If the token isn't alive or n is negative
        """
        self._check_alive("split")
        if n < 0:
            raise TokenError(f"couldn't split token {self.id} into {n} tokens")

        self._state = TokenState.INACTIVE
        return [Token(self.instance_id, {self.id}) for _ in range(n)]

    def join(self, *others: Token) -> Token:
        """Absorb others into this token.

        Others become inactive; their ids and provenance are added to this
        token's provenance.

        Raises:
            TokenError: If this or any other token isn't alive
        """
        self._check_alive("join")
        for o in others:
            if o is self:
                raise TokenError(f"token {self.id} couldn't join itself")
            o._check_alive("be joined")

        for o in others:
            o._state = TokenState.INACTIVE
            self.prev.add(o.id)
            self.prev |= o.prev

        return self

    def inactivate(self) -> None:
        """Mark the token inactive (no-op if it is not alive)."""
        if self._state == TokenState.ALIVE:
            self._state = TokenState.INACTIVE

    def consume(self) -> None:
        """Consume the token at a terminal node.

        Raises:
            TokenError: If the token isn't alive
        """
        self._check_alive("consume")
        self._state = TokenState.CONSUMED

    def _check_alive(self, op: str) -> None:
        if self._state != TokenState.ALIVE:
            raise TokenError(f"couldn't {op} token {self.id} in state {self._state}")

    def __repr__(self) -> str:
        return f"Token({self.id.last(8)}, {self._state})"


__all__ = ["Token"]
