"""Structural checks for template graphs."""

from __future__ import annotations

from typing import Dict, Iterable, List, Literal, Optional, Set

from pydantic import BaseModel, Field

from .constants import APPROVED, REJECTED
from .errors import TemplateInvalidError
from .models import WorkflowConnection, WorkflowNode


class ValidationIssue(BaseModel):
    severity: Literal["error", "warning"] = "error"
    code: str
    message: str
    node_id: Optional[str] = None
    connection_id: Optional[str] = None


class ValidationReport(BaseModel):
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def error(self, code: str, message: str, **kwargs) -> None:
        self.errors.append(ValidationIssue(code=code, message=message, **kwargs))

    def warn(self, code: str, message: str, **kwargs) -> None:
        self.warnings.append(
            ValidationIssue(severity="warning", code=code, message=message, **kwargs)
        )

    def raise_for_errors(self) -> None:
        if self.errors:
            messages = [issue.message for issue in self.errors]
            raise TemplateInvalidError("; ".join(messages), issues=messages)


def _label(node: WorkflowNode) -> str:
    return node.label or node.node_type


def _check_approvals(
    report: ValidationReport,
    node: WorkflowNode,
    outgoing: List[WorkflowConnection],
) -> None:
    label = _label(node)
    if not outgoing:
        report.error(
            "APPROVAL_NO_EDGES",
            f'Approval node "{label}" has no outgoing connections',
            node_id=node.id,
        )
        return

    decision_edges = [e for e in outgoing if e.is_decision_edge]
    seen: Set[str] = set()
    for edge in decision_edges:
        if edge.decision in seen:
            report.error(
                "APPROVAL_DUPLICATE_DECISION",
                f'Approval node "{label}" has more than one "{edge.decision}" path',
                node_id=node.id,
                connection_id=edge.id,
            )
        seen.add(edge.decision)
        if edge.decision == REJECTED and edge.to_node_id == node.id:
            report.error(
                "APPROVAL_SELF_REJECTION",
                f'Approval node "{label}" rejects back onto itself',
                node_id=node.id,
                connection_id=edge.id,
            )

    if decision_edges and len(decision_edges) != len(outgoing):
        report.error(
            "APPROVAL_MIXED_EDGES",
            f'Approval node "{label}" mixes decision paths with unlabelled paths',
            node_id=node.id,
        )
    if len(outgoing) > 1 and APPROVED not in seen:
        report.error(
            "APPROVAL_NO_APPROVED_PATH",
            f'Approval node "{label}" has no "approved" path configured',
            node_id=node.id,
        )


def _check_conditional(
    report: ValidationReport,
    node: WorkflowNode,
    outgoing: List[WorkflowConnection],
) -> None:
    label = _label(node)
    if not outgoing:
        report.warn(
            "CONDITIONAL_NO_OUTPUT",
            f'Conditional node "{label}" has no outgoing connections',
            node_id=node.id,
        )
        return
    conditioned = [e for e in outgoing if not e.is_plain]
    has_default = any(e.is_plain for e in outgoing)
    if not conditioned:
        report.warn(
            "CONDITIONAL_NO_CONDITIONS",
            f'Conditional node "{label}" has no condition-based edges',
            node_id=node.id,
        )
    elif not has_default and len(conditioned) < 2:
        report.warn(
            "CONDITIONAL_MISSING_DEFAULT",
            f'Conditional node "{label}" may not handle all cases; add a default path',
            node_id=node.id,
        )


def _find_cycle(
    nodes: List[WorkflowNode], outgoing: Dict[str, List[WorkflowConnection]]
) -> Optional[List[str]]:
    """Return the first cycle not closed by a rejection edge, as node ids."""
    visited: Set[str] = set()
    on_stack: Set[str] = set()
    path: List[str] = []

    def visit(node_id: str) -> Optional[List[str]]:
        visited.add(node_id)
        on_stack.add(node_id)
        path.append(node_id)
        for edge in outgoing.get(node_id, []):
            if edge.decision == REJECTED:
                continue
            target = edge.to_node_id
            if target not in visited:
                found = visit(target)
                if found:
                    return found
            elif target in on_stack:
                return path[path.index(target):]
        path.pop()
        on_stack.discard(node_id)
        return None

    for node in nodes:
        if node.id not in visited:
            found = visit(node.id)
            if found:
                return found
    return None


def validate_template(
    nodes: Iterable[WorkflowNode],
    connections: Iterable[WorkflowConnection],
    role_user_counts: Optional[Dict[str, int]] = None,
) -> ValidationReport:
    """Check a template graph before it is started or saved.

    ``role_user_counts`` maps role ids to the number of users holding them;
    when given, role and approval nodes gated on an empty role are errors.
    """
    nodes = list(nodes)
    connections = list(connections)
    report = ValidationReport()

    if not nodes:
        report.error("NO_NODES", "Workflow must have at least one node")
        return report

    starts = [n for n in nodes if n.node_type == "start"]
    if not starts:
        report.error("NO_START", "Workflow must have a Start node")
    elif len(starts) > 1:
        report.error("MULTIPLE_STARTS", "Workflow can only have one Start node")
    if not any(n.node_type == "end" for n in nodes):
        report.error("NO_END", "Workflow must have at least one End node")

    by_id = {n.id: n for n in nodes}
    outgoing: Dict[str, List[WorkflowConnection]] = {}
    incoming: Dict[str, List[WorkflowConnection]] = {}
    for conn in connections:
        if conn.from_node_id not in by_id or conn.to_node_id not in by_id:
            report.error(
                "DANGLING_CONNECTION",
                f"Connection {conn.id} references a node that does not exist",
                connection_id=conn.id,
            )
            continue
        outgoing.setdefault(conn.from_node_id, []).append(conn)
        incoming.setdefault(conn.to_node_id, []).append(conn)

    for node in nodes:
        outs = outgoing.get(node.id, [])
        ins = incoming.get(node.id, [])
        if node.node_type == "start":
            orphaned = not outs
        elif node.node_type == "end":
            orphaned = not ins
        else:
            orphaned = not outs and not ins
        if orphaned:
            report.warn(
                "ORPHANED_NODE",
                f'Node "{_label(node)}" is not connected to the workflow',
                node_id=node.id,
            )

        if node.node_type == "approval":
            _check_approvals(report, node, outs)
        elif node.node_type == "conditional":
            _check_conditional(report, node, outs)
        elif node.node_type == "sync" and len(ins) < 2:
            report.warn(
                "SYNC_SINGLE_INPUT",
                f'Sync node "{_label(node)}" has fewer than two incoming paths',
                node_id=node.id,
            )

        if role_user_counts is not None and node.node_type in ("role", "approval"):
            role_id = node.entity_ref
            if role_id in role_user_counts and role_user_counts[role_id] == 0:
                code = "ROLE_NO_USERS" if node.node_type == "role" else "APPROVAL_ROLE_NO_USERS"
                report.error(
                    code,
                    f'No users hold the role required by "{_label(node)}"',
                    node_id=node.id,
                )

    cycle = _find_cycle(nodes, outgoing)
    if cycle:
        labels = [_label(by_id[i]) for i in cycle]
        report.error(
            "CYCLE_DETECTED",
            f"Workflow contains a cycle: {' -> '.join(labels)} -> {labels[0]}. "
            "Cycles are only allowed via rejection paths.",
            node_id=cycle[0],
        )
    return report


__all__ = ["ValidationIssue", "ValidationReport", "validate_template"]
