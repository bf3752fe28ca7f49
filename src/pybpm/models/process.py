"""Process model and its immutable snapshot.

Nodes and flows are held in flat maps keyed by id; flows reference nodes by
id and nodes reference flows by id, so there are no object cycles between
them.

Design:
    A Process is built up with add_lane / add_message / add_node / link.
    snapshot() copies it into a Snapshot with a fresh id. The snapshot
    keeps node, flow and lane ids, binds every copied node and flow to its
    own id and remembers the origin process id. Every mutating operation on
    a Snapshot raises SnapshotChangeError.

Usage:
    ```python
    p = Process("order")
    p.add_lane("L")
    store = p.add_node(StoreTask("store", int_var("x", 10)), lane="L")
    out = p.add_node(OutputTask("out", OutputDescriptor(buf), "x"), lane="L")
    p.link(store, out)

    s = p.snapshot()
    s.validate()
    s.entry_nodes()   # [store]
    ```
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator

from pybpm.core.errors import MessageError, ModelError, SnapshotChangeError
from pybpm.core.identity import Id
from pybpm.models.activities import Task
from pybpm.models.expression import Condition
from pybpm.models.flow import SequenceFlow
from pybpm.models.gateways import Gateway
from pybpm.models.lane import Lane
from pybpm.models.message import Message, MessageDirection, MessageVariable
from pybpm.models.node import ElementKind, Node


class Process:
    """Mutable process model."""

    def __init__(self, name: str, version: str = "0.1.0", *, id: Id | None = None):
        name = (name or "").strip()
        if not name:
            raise ModelError("process should have non-empty name")

        self.id = id or Id()
        self.name = name
        self.version = version

        self._nodes: dict[Id, Node] = {}
        self._flows: dict[Id, SequenceFlow] = {}
        self._lanes: dict[str, Lane] = {}
        self._messages: dict[str, Message] = {}

    @property
    def is_snapshot(self) -> bool:
        return False

    def _check_mutable(self, op: str) -> None:
        """Hook for Snapshot, which rejects every mutation."""

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    def add_lane(self, name: str, parent: str | None = None) -> Lane:
        """Add a lane, nested under parent when given.

        Lane names are unique across the whole process, nested lanes
        included. An empty name gets a generated one.

        Raises:
            ModelError: On duplicate name or unknown parent
        """
        self._check_mutable("add lane")

        name = (name or "").strip()
        if name and name in self._lanes:
            raise ModelError(f"lane '{name}' already exists", self.id)

        parent_lane = None
        if parent:
            parent_lane = self._lanes.get(parent)
            if parent_lane is None:
                raise ModelError(f"parent lane '{parent}' isn't found", self.id)

        lane = Lane(name, parent or "")
        self._lanes[lane.name] = lane
        if parent_lane is not None:
            parent_lane.child_lanes.append(lane)

        return lane

    def remove_lane(self, name: str) -> None:
        """Remove an empty lane.

        Raises:
            ModelError: If the lane is missing or still holds nodes or lanes
        """
        self._check_mutable("remove lane")

        name = (name or "").strip()
        lane = self._lanes.get(name)
        if lane is None:
            raise ModelError(f"lane '{name}' isn't found", self.id)
        if not lane.is_empty:
            raise ModelError(f"couldn't remove non-empty lane '{name}'", self.id)

        del self._lanes[name]
        if lane.parent:
            parent = self._lanes[lane.parent]
            parent.child_lanes = [c for c in parent.child_lanes if c is not lane]

    def add_message(
        self,
        name: str,
        direction: MessageDirection,
        *variables: MessageVariable,
    ) -> Message:
        """Declare a process message.

        Raises:
            ModelError: On duplicate name or an invalid message
        """
        self._check_mutable("add message")

        name = (name or "").strip()
        if name in self._messages:
            raise ModelError(f"message '{name}' already exists", self.id)

        try:
            m = Message(name, direction, *variables)
        except MessageError as e:
            raise ModelError(f"couldn't register message '{name}': {e}", self.id) from e

        self._messages[m.name] = m
        return m.copy()

    def add_node(self, node: Node, lane: str | None = None) -> Node:
        """Bind node to this process, placing it on lane when given.

        Raises:
            ModelError: If the node is bound elsewhere, its id or name is
                taken, or the lane is unknown
        """
        self._check_mutable("add node")

        if node.is_bound:
            raise ModelError(
                f"node '{node.name}' already belongs to process {node.process_id}", self.id
            )
        if node.id in self._nodes:
            raise ModelError(f"node with id {node.id} already exists", self.id)
        if any(n.name == node.name for n in self._nodes.values()):
            raise ModelError(f"node '{node.name}' already exists", self.id)

        ln = None
        if lane:
            ln = self._lanes.get(lane)
            if ln is None:
                raise ModelError(f"lane '{lane}' isn't found", self.id)

        node.process_id = self.id
        self._nodes[node.id] = node
        if ln is not None:
            node.lane = ln.name
            ln.node_ids.append(node.id)

        return node

    def link(
        self,
        source: Node,
        target: Node,
        condition: Condition | None = None,
        *,
        default: bool = False,
        name: str = "",
    ) -> SequenceFlow:
        """Connect source to target with a new sequence flow.

        Raises:
            ModelError: If either node isn't part of this process, or the
                default flow is invalid
        """
        self._check_mutable("link nodes")

        for n in (source, target):
            if self._nodes.get(n.id) is not n:
                raise ModelError(f"node '{n.name}' isn't bound to the process", self.id)

        if default:
            if source.element_kind not in (ElementKind.ACTIVITY, ElementKind.GATEWAY):
                raise ModelError(
                    f"only activities and gateways have default flows, '{source.name}' "
                    f"is {source.element_kind}",
                    self.id,
                )
            if source.default_flow is not None:
                raise ModelError(f"node '{source.name}' already has a default flow", self.id)
            if condition is not None and isinstance(source, Gateway):
                raise ModelError(
                    f"default flow of gateway '{source.name}' can't have a condition", self.id
                )

        flow = SequenceFlow(
            source.id,
            target.id,
            condition=condition,
            is_default=default,
            name=name,
            process_id=self.id,
        )

        self._flows[flow.id] = flow
        source.outgoing.append(flow.id)
        target.incoming.append(flow.id)
        if default:
            source.default_flow = flow.id

        return flow

    def link_named(
        self,
        source_name: str,
        target_name: str,
        condition: Condition | None = None,
        *,
        default: bool = False,
        name: str = "",
    ) -> SequenceFlow:
        return self.link(
            self.node_by_name(source_name),
            self.node_by_name(target_name),
            condition,
            default=default,
            name=name,
        )

    def snapshot(self) -> Snapshot:
        """Immutable copy of the process for running instances."""
        self._check_mutable("snapshot")
        return Snapshot(self)

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def node(self, node_id: Id) -> Node:
        """
        Raises:
            ModelError: If there is no such node
        """
        n = self._nodes.get(node_id)
        if n is None:
            raise ModelError(f"node {node_id} isn't found", self.id)
        return n

    def node_by_name(self, name: str) -> Node:
        for n in self._nodes.values():
            if n.name == name:
                return n
        raise ModelError(f"node '{name}' isn't found", self.id)

    def nodes(self, kind: ElementKind | type[Node] | None = None) -> list[Node]:
        """Nodes in insertion order, filtered by element kind or class."""
        if kind is None:
            return list(self._nodes.values())
        if isinstance(kind, ElementKind):
            return [n for n in self._nodes.values() if n.element_kind == kind]
        return [n for n in self._nodes.values() if isinstance(n, kind)]

    def flow(self, flow_id: Id) -> SequenceFlow:
        f = self._flows.get(flow_id)
        if f is None:
            raise ModelError(f"sequence flow {flow_id} isn't found", self.id)
        return f

    @property
    def flows(self) -> list[SequenceFlow]:
        return list(self._flows.values())

    def incoming(self, node: Node) -> list[SequenceFlow]:
        return [self.flow(fid) for fid in node.incoming]

    def outgoing(self, node: Node) -> list[SequenceFlow]:
        return [self.flow(fid) for fid in node.outgoing]

    def message(self, name: str) -> Message:
        """Copy of the declared message.

        Raises:
            ModelError: If there is no such message
        """
        m = self._messages.get(name)
        if m is None:
            raise ModelError(f"message '{name}' isn't found", self.id)
        return m.copy()

    @property
    def messages(self) -> list[Message]:
        return [m.copy() for m in self._messages.values()]

    @property
    def has_messages(self) -> bool:
        return bool(self._messages)

    @property
    def lanes(self) -> list[str]:
        return list(self._lanes)

    def lane(self, name: str) -> Lane:
        ln = self._lanes.get(name)
        if ln is None:
            raise ModelError(f"lane '{name}' isn't found", self.id)
        return ln

    def entry_nodes(self) -> list[Node]:
        """Non-gateway nodes without incoming flows."""
        return [
            n
            for n in self._nodes.values()
            if not n.incoming and n.element_kind != ElementKind.GATEWAY
        ]

    # -------------------------------------------------------------------------
    # Structure checks
    # -------------------------------------------------------------------------

    def validate(self) -> None:
        """Check structural invariants of the graph.

        Every node and flow must belong to this process, every flow must
        connect nodes of this process, and every node must pass its own
        check (gateway arity, default flows).

        Raises:
            ModelError: On the first violation found
        """
        for n in self._nodes.values():
            if n.process_id != self.id:
                raise ModelError(f"node '{n.name}' belongs to process {n.process_id}", self.id)

        for f in self._flows.values():
            if f.process_id != self.id:
                raise ModelError(f"flow {f.id} belongs to process {f.process_id}", self.id)
            for end in (f.source_id, f.target_id):
                if end not in self._nodes:
                    raise ModelError(f"flow {f.id} references unknown node {end}", self.id)

        for n in self._nodes.values():
            n.check()
            if isinstance(n, Task | Gateway) and n.default_flow is not None:
                if n.default_flow not in n.outgoing:
                    raise ModelError(
                        f"default flow of '{n.name}' isn't one of its outgoing flows", self.id
                    )

    def can_reach(self, node_id: Id, flow_id: Id, *, barrier: Id | None = None) -> bool:
        """Check whether a token at node_id can still travel along flow_id.

        Paths are not followed through the barrier node (the gateway asking),
        so the answer covers only tokens that reach flow_id before passing
        the barrier again.
        """
        target = self.flow(flow_id)
        seen: set[Id] = set()
        queue = deque([node_id])
        while queue:
            nid = queue.popleft()
            if nid == target.source_id:
                return True
            if nid in seen or nid == barrier:
                continue
            seen.add(nid)
            n = self._nodes.get(nid)
            if n is None:
                continue
            queue.extend(self._flows[fid].target_id for fid in n.outgoing)

        return False

    def __iter__(self) -> Iterator[Node]:
        return iter(list(self._nodes.values()))

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, {self.id.last(4)})"


class Snapshot(Process):
    """Immutable copy of a Process.

    Attributes:
        origin_id: Id of the process the snapshot was taken from
    """

    def __init__(self, origin: Process):
        super().__init__(origin.name, origin.version)
        self.origin_id = origin.id

        for n in origin._nodes.values():
            c = n.clone()
            c.process_id = self.id
            self._nodes[c.id] = c

        for f in origin._flows.values():
            c = f.clone()
            c.process_id = self.id
            self._flows[c.id] = c

        for name, m in origin._messages.items():
            self._messages[name] = m.copy()

        for ln in origin._lanes.values():
            if not ln.parent:
                self._add_lane_tree(ln.clone())

    def _add_lane_tree(self, lane: Lane) -> None:
        self._lanes[lane.name] = lane
        for c in lane.child_lanes:
            self._add_lane_tree(c)

    @property
    def is_snapshot(self) -> bool:
        return True

    def _check_mutable(self, op: str) -> None:
        raise SnapshotChangeError(f"couldn't {op} on a snapshot", self.id)


__all__ = ["Process", "Snapshot"]
