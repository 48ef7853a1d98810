"""Template store abstraction and its in-memory implementation."""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Protocol

from ..errors import NotFoundError, TemplateInvalidError
from ..models import WorkflowConnection, WorkflowNode, WorkflowTemplate


class TemplateStore(Protocol):
    """Live, mutable template definitions."""

    async def get_template(self, template_id: str) -> Optional[WorkflowTemplate]:
        """Retrieve a template by id."""

    async def list_templates(self) -> list[WorkflowTemplate]:
        """Return all templates."""

    async def list_nodes(self, template_id: str) -> list[WorkflowNode]:
        """Nodes of a template."""

    async def list_connections(self, template_id: str) -> list[WorkflowConnection]:
        """Connections of a template."""

    async def save_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        """Insert or update a template."""

    async def save_node(self, node: WorkflowNode) -> WorkflowNode:
        """Insert or update a node."""

    async def delete_node(self, node_id: str) -> bool:
        """Delete a node and the connections touching it."""

    async def save_connection(self, connection: WorkflowConnection) -> WorkflowConnection:
        """Insert or update a connection.

        Raises :class:`~handoff.errors.TemplateInvalidError` when an approval
        node would get a second path for the same decision.
        """

    async def delete_connection(self, connection_id: str) -> bool:
        """Delete a connection."""


def check_connection(
    connection: WorkflowConnection,
    nodes: Iterable[WorkflowNode],
    existing: Iterable[WorkflowConnection],
) -> None:
    """Reject a connection that breaks the template graph on save."""

    by_id = {n.id: n for n in nodes}
    source = by_id.get(connection.from_node_id)
    if source is None or connection.to_node_id not in by_id:
        raise NotFoundError("Workflow node not found")
    if source.node_type != "approval" or connection.decision is None:
        return
    for other in existing:
        if (
            other.id != connection.id
            and other.from_node_id == connection.from_node_id
            and other.decision == connection.decision
        ):
            raise TemplateInvalidError(
                f'Approval node "{source.display_name}" already has a '
                f'"{connection.decision}" path',
                issues=["APPROVAL_DUPLICATE_DECISION"],
            )


class InMemoryTemplateStore(TemplateStore):
    """Keep templates in local memory. Returned objects are copies."""

    def __init__(self) -> None:
        self._templates: Dict[str, WorkflowTemplate] = {}
        self._nodes: Dict[str, WorkflowNode] = {}
        self._connections: Dict[str, WorkflowConnection] = {}

    async def get_template(self, template_id: str) -> Optional[WorkflowTemplate]:
        template = self._templates.get(template_id)
        return template.model_copy(deep=True) if template else None

    async def list_templates(self) -> list[WorkflowTemplate]:
        return [t.model_copy(deep=True) for t in self._templates.values()]

    async def list_nodes(self, template_id: str) -> list[WorkflowNode]:
        return [
            n.model_copy(deep=True)
            for n in self._nodes.values()
            if n.template_id == template_id
        ]

    async def list_connections(self, template_id: str) -> list[WorkflowConnection]:
        return [
            c.model_copy(deep=True)
            for c in self._connections.values()
            if c.template_id == template_id
        ]

    async def save_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        self._templates[template.id] = template.model_copy(deep=True)
        return template

    async def save_node(self, node: WorkflowNode) -> WorkflowNode:
        if node.template_id not in self._templates:
            raise NotFoundError("Workflow template not found")
        self._nodes[node.id] = node.model_copy(deep=True)
        return node

    async def delete_node(self, node_id: str) -> bool:
        if self._nodes.pop(node_id, None) is None:
            return False
        self._connections = {
            k: c
            for k, c in self._connections.items()
            if c.from_node_id != node_id and c.to_node_id != node_id
        }
        return True

    async def save_connection(self, connection: WorkflowConnection) -> WorkflowConnection:
        check_connection(
            connection,
            await self.list_nodes(connection.template_id),
            await self.list_connections(connection.template_id),
        )
        self._connections[connection.id] = connection.model_copy(deep=True)
        return connection

    async def delete_connection(self, connection_id: str) -> bool:
        return self._connections.pop(connection_id, None) is not None


__all__ = ["TemplateStore", "InMemoryTemplateStore", "check_connection"]
