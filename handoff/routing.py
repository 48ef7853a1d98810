"""Edge selection for the transition engine."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .constants import (
    ALL_APPROVED,
    ANY_REJECTED,
    APPROVED,
    MAX_CONDITIONAL_HOPS,
    REJECTED,
)
from .errors import AmbiguousRoutingError
from .forms import evaluate_condition
from .graph import GraphView
from .models import WorkflowConnection, WorkflowNode

logger = logging.getLogger(__name__)

_SYNC_OUTCOMES = {
    ALL_APPROVED: {ALL_APPROVED, APPROVED},
    ANY_REJECTED: {ANY_REJECTED, REJECTED},
}
_SYNC_LABELS = {ALL_APPROVED, APPROVED, ANY_REJECTED, REJECTED}


class Route(BaseModel):
    """One resolved next node and the conditional nodes crossed to reach it."""

    edge: WorkflowConnection
    target: WorkflowNode
    via: List[WorkflowNode] = Field(default_factory=list)

    @property
    def decision(self) -> Optional[str]:
        return self.edge.decision


def approval_routes(graph: GraphView, node: WorkflowNode) -> Dict[str, WorkflowConnection]:
    """Map each decision an approval node supports to its single edge."""
    routes: Dict[str, WorkflowConnection] = {}
    for edge in graph.decision_edges(node.id):
        decision = edge.decision
        if decision in routes:
            raise AmbiguousRoutingError(
                f"Approval '{node.display_name}' has more than one '{decision}' path"
            )
        routes[decision] = edge
    return routes


def allowed_decisions(graph: GraphView, node: WorkflowNode) -> List[str]:
    if node.node_type != "approval":
        return []
    routes = approval_routes(graph, node)
    if routes:
        return list(routes)
    if graph.plain_edges(node.id):
        return [APPROVED]
    return []


def _sync_label(edge: WorkflowConnection) -> Optional[str]:
    for candidate in (edge.decision, edge.label):
        if candidate and candidate.strip().lower() in _SYNC_LABELS:
            return candidate.strip().lower()
    return None


def initial_edges(
    graph: GraphView,
    node: WorkflowNode,
    decision: Optional[str] = None,
    aggregate: Optional[str] = None,
) -> List[WorkflowConnection]:
    """Outgoing edges taken when ``node`` is completed."""

    if node.node_type == "approval":
        routes = approval_routes(graph, node)
        if routes:
            edge = routes.get(decision or "")
            if edge is None:
                raise AmbiguousRoutingError(
                    f"No path for decision '{decision}' from '{node.display_name}'"
                )
            return [edge]
        if decision not in (None, APPROVED):
            raise AmbiguousRoutingError(
                f"No path for decision '{decision}' from '{node.display_name}'"
            )
        return graph.plain_edges(node.id)

    if node.node_type == "sync":
        outgoing = graph.outgoing(node.id)
        labelled = [e for e in outgoing if _sync_label(e)]
        if labelled:
            wanted = _SYNC_OUTCOMES.get(aggregate or "", set())
            chosen = [e for e in labelled if _sync_label(e) in wanted]
            if chosen:
                logger.debug(f"Sync {node.id} routed by aggregate {aggregate}")
                return chosen
            return [e for e in outgoing if not _sync_label(e) and e.is_plain]
        return graph.plain_edges(node.id)

    return graph.plain_edges(node.id)


def _pass_conditional(
    graph: GraphView,
    node: WorkflowNode,
    decision: Optional[str],
    form_data: Dict[str, Any],
) -> WorkflowConnection:
    for edge in graph.form_edges(node.id):
        if evaluate_condition(edge.condition, form_data):
            logger.debug(f"Conditional {node.id} matched edge {edge.id}")
            return edge
    plain = graph.plain_edges(node.id)
    if plain:
        return plain[0]
    if decision:
        for edge in graph.decision_edges(node.id):
            if edge.decision == decision:
                return edge
    raise AmbiguousRoutingError(
        f"No condition matched at '{node.display_name}' and it has no default path"
    )


def resolve_routes(
    graph: GraphView,
    node: WorkflowNode,
    decision: Optional[str] = None,
    form_data: Optional[Dict[str, Any]] = None,
    aggregate: Optional[str] = None,
    max_hops: int = MAX_CONDITIONAL_HOPS,
) -> List[Route]:
    """Resolve the next nodes reached by completing ``node``.

    Conditional nodes are never stopped at; their edges are evaluated
    against ``form_data`` until a non-conditional node is reached.
    """
    form_data = form_data or {}
    edges = initial_edges(graph, node, decision, aggregate)
    if not edges:
        if node.node_type == "end":
            return []
        raise AmbiguousRoutingError(f"No outgoing path from '{node.display_name}'")

    routes: List[Route] = []
    for edge in edges:
        target = graph.node(edge.to_node_id)
        via: List[WorkflowNode] = []
        first_edge = edge
        while target.node_type == "conditional":
            if len(via) >= max_hops:
                raise AmbiguousRoutingError(
                    f"Conditional routing exceeded {max_hops} hops"
                )
            via.append(target)
            edge = _pass_conditional(graph, target, decision, form_data)
            target = graph.node(edge.to_node_id)
        routes.append(Route(edge=first_edge, target=target, via=via))
    return routes


__all__ = [
    "Route",
    "approval_routes",
    "allowed_decisions",
    "initial_edges",
    "resolve_routes",
]
