"""Read-only view over a workflow graph.

A :class:`GraphView` is built either from an instance's started snapshot or,
for instances created before snapshots existed, from the live template
tables. Callers never need to know which.
"""

from __future__ import annotations

from collections import deque
from typing import Dict, Iterable, List, Optional, Set

from .constants import REJECTED
from .errors import NotFoundError, TemplateInvalidError
from .models import StartedSnapshot, WorkflowConnection, WorkflowNode


class GraphView:
    def __init__(
        self,
        nodes: Iterable[WorkflowNode],
        connections: Iterable[WorkflowConnection],
        template_name: Optional[str] = None,
        from_snapshot: bool = True,
    ) -> None:
        self.nodes: List[WorkflowNode] = list(nodes)
        self.connections: List[WorkflowConnection] = list(connections)
        self.template_name = template_name
        self.from_snapshot = from_snapshot
        self._by_id: Dict[str, WorkflowNode] = {n.id: n for n in self.nodes}
        self._outgoing: Dict[str, List[WorkflowConnection]] = {}
        self._incoming: Dict[str, List[WorkflowConnection]] = {}
        for conn in self.connections:
            self._outgoing.setdefault(conn.from_node_id, []).append(conn)
            self._incoming.setdefault(conn.to_node_id, []).append(conn)

    @classmethod
    def from_snapshot(cls, snapshot: StartedSnapshot) -> "GraphView":
        return cls(
            snapshot.nodes,
            snapshot.connections,
            template_name=snapshot.template_name,
            from_snapshot=True,
        )

    # ------------------------------------------------------------------
    # Nodes
    def get(self, node_id: Optional[str]) -> Optional[WorkflowNode]:
        if node_id is None:
            return None
        return self._by_id.get(node_id)

    def node(self, node_id: str) -> WorkflowNode:
        node = self._by_id.get(node_id)
        if node is None:
            raise NotFoundError("Workflow node not found")
        return node

    def start_node(self) -> WorkflowNode:
        starts = [n for n in self.nodes if n.node_type == "start"]
        if len(starts) != 1:
            raise TemplateInvalidError(
                f"Workflow must have exactly one start node, found {len(starts)}"
            )
        return starts[0]

    def nodes_of_type(self, node_type: str) -> List[WorkflowNode]:
        return [n for n in self.nodes if n.node_type == node_type]

    # ------------------------------------------------------------------
    # Edges
    def outgoing(self, node_id: str) -> List[WorkflowConnection]:
        return list(self._outgoing.get(node_id, []))

    def incoming(self, node_id: str) -> List[WorkflowConnection]:
        return list(self._incoming.get(node_id, []))

    def decision_edges(self, node_id: str) -> List[WorkflowConnection]:
        return [c for c in self.outgoing(node_id) if c.is_decision_edge]

    def plain_edges(self, node_id: str) -> List[WorkflowConnection]:
        return [c for c in self.outgoing(node_id) if c.is_plain]

    def form_edges(self, node_id: str) -> List[WorkflowConnection]:
        return [c for c in self.outgoing(node_id) if c.is_form_edge]

    def reachable(
        self, node_id: str, stop_at_sync: bool = True, follow_rejections: bool = True
    ) -> Set[str]:
        """Node ids reachable from ``node_id`` (inclusive).

        With ``stop_at_sync`` the walk does not continue past sync nodes,
        which is where a forked branch ends. ``follow_rejections=False``
        ignores edges taken on a rejected decision.
        """
        seen: Set[str] = {node_id}
        queue = deque([node_id])
        while queue:
            current = queue.popleft()
            node = self.get(current)
            if stop_at_sync and current != node_id and node and node.node_type == "sync":
                continue
            for conn in self._outgoing.get(current, []):
                if not follow_rejections and conn.decision == REJECTED:
                    continue
                if conn.to_node_id not in seen:
                    seen.add(conn.to_node_id)
                    queue.append(conn.to_node_id)
        return seen


__all__ = ["GraphView"]
