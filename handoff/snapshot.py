"""Captures template graphs at start time and resolves an instance's graph."""

from __future__ import annotations

import logging
from typing import Optional, Tuple

from .db.store import TemplateStore
from .errors import NotFoundError, TemplateInvalidError
from .graph import GraphView
from .models import StartedSnapshot, WorkflowTemplate, utcnow
from .persistence.models import WorkflowInstance
from .validation import validate_template

logger = logging.getLogger(__name__)


async def capture_snapshot(
    store: TemplateStore, template_id: str
) -> Tuple[WorkflowTemplate, StartedSnapshot]:
    """Deep-copy a template's current graph into a validated snapshot."""

    template = await store.get_template(template_id)
    if template is None:
        raise NotFoundError("Workflow template not found")
    if not template.is_active:
        raise TemplateInvalidError(f"Workflow template '{template.name}' is not active")

    nodes = [n.model_copy(deep=True) for n in await store.list_nodes(template_id)]
    connections = [
        c.model_copy(deep=True) for c in await store.list_connections(template_id)
    ]
    report = validate_template(nodes, connections)
    for warning in report.warnings:
        logger.debug(f"Template {template_id}: {warning.code} {warning.message}")
    report.raise_for_errors()

    snapshot = StartedSnapshot(
        nodes=nodes,
        connections=connections,
        template_name=template.name,
        captured_at=utcnow(),
    )
    return template, snapshot


async def load_graph(
    instance: WorkflowInstance, store: Optional[TemplateStore] = None
) -> GraphView:
    """Graph an instance runs on: its snapshot, else the live template."""

    if instance.started_snapshot is not None:
        return GraphView.from_snapshot(instance.started_snapshot)

    logger.warning(
        f"Instance {instance.id} has no started snapshot; reading live template {instance.template_id}"
    )
    if store is None:
        raise NotFoundError("Workflow template not found")
    template = await store.get_template(instance.template_id)
    return GraphView(
        await store.list_nodes(instance.template_id),
        await store.list_connections(instance.template_id),
        template_name=template.name if template else None,
        from_snapshot=False,
    )


__all__ = ["capture_snapshot", "load_graph"]
