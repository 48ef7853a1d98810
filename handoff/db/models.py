from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from ..models import utcnow


class TemplateRow(SQLModel, table=True):
    """A workflow template as edited by administrators."""

    __tablename__ = "workflow_templates"

    id: str = Field(primary_key=True)
    name: str
    description: Optional[str] = None
    is_active: bool = Field(default=True)
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class NodeRow(SQLModel, table=True):
    """A node of a template graph; ``settings`` holds the typed payload."""

    __tablename__ = "workflow_nodes"

    id: str = Field(primary_key=True)
    template_id: str = Field(foreign_key="workflow_templates.id", index=True)
    node_type: str
    label: str = ""
    entity_id: Optional[str] = None
    settings: dict = Field(default_factory=dict, sa_column=Column(JSON))


class ConnectionRow(SQLModel, table=True):
    __tablename__ = "workflow_connections"

    id: str = Field(primary_key=True)
    template_id: str = Field(foreign_key="workflow_templates.id", index=True)
    from_node_id: str = Field(foreign_key="workflow_nodes.id")
    to_node_id: str = Field(foreign_key="workflow_nodes.id")
    label: Optional[str] = None
    condition: Optional[dict] = Field(default=None, sa_column=Column(JSON))
