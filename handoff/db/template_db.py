from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import delete, or_
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlmodel import SQLModel, select

from ..errors import NotFoundError
from ..models import WorkflowConnection, WorkflowNode, WorkflowTemplate, utcnow
from .models import ConnectionRow, NodeRow, TemplateRow
from .store import TemplateStore, check_connection

logger = logging.getLogger(__name__)


def _node(row: NodeRow) -> WorkflowNode:
    return WorkflowNode(
        id=row.id,
        template_id=row.template_id,
        node_type=row.node_type,
        label=row.label,
        entity_id=row.entity_id,
        settings=dict(row.settings or {}),
    )


def _connection(row: ConnectionRow) -> WorkflowConnection:
    return WorkflowConnection(
        id=row.id,
        template_id=row.template_id,
        from_node_id=row.from_node_id,
        to_node_id=row.to_node_id,
        label=row.label,
        condition=row.condition,
    )


def _template(row: TemplateRow) -> WorkflowTemplate:
    return WorkflowTemplate(
        id=row.id,
        name=row.name,
        description=row.description,
        is_active=row.is_active,
        created_by=row.created_by,
    )


class TemplateDB(TemplateStore):
    """Template store backed by SQLModel on an async SQLAlchemy engine."""

    def __init__(self, database_url: str) -> None:
        connect_args = {}
        if database_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine = create_async_engine(
            database_url, echo=False, future=True, connect_args=connect_args
        )

    async def init_db(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with AsyncSession(self.engine, expire_on_commit=False) as session:
            yield session

    async def dispose(self) -> None:
        await self.engine.dispose()

    # ------------------------------------------------------------------
    async def get_template(self, template_id: str) -> Optional[WorkflowTemplate]:
        async with self.session() as session:
            row = await session.get(TemplateRow, template_id)
            return _template(row) if row else None

    async def list_templates(self) -> list[WorkflowTemplate]:
        async with self.session() as session:
            result = await session.execute(select(TemplateRow).order_by(TemplateRow.name))
            return [_template(r) for r in result.scalars().all()]

    async def list_nodes(self, template_id: str) -> list[WorkflowNode]:
        async with self.session() as session:
            result = await session.execute(
                select(NodeRow).where(NodeRow.template_id == template_id)
            )
            return [_node(r) for r in result.scalars().all()]

    async def list_connections(self, template_id: str) -> list[WorkflowConnection]:
        async with self.session() as session:
            result = await session.execute(
                select(ConnectionRow).where(ConnectionRow.template_id == template_id)
            )
            return [_connection(r) for r in result.scalars().all()]

    async def save_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        async with self.session() as session:
            row = await session.get(TemplateRow, template.id)
            if row is None:
                row = TemplateRow(id=template.id, name=template.name)
            row.name = template.name
            row.description = template.description
            row.is_active = template.is_active
            row.created_by = template.created_by
            row.updated_at = utcnow()
            session.add(row)
            await session.commit()
        return template

    async def save_node(self, node: WorkflowNode) -> WorkflowNode:
        async with self.session() as session:
            if await session.get(TemplateRow, node.template_id) is None:
                raise NotFoundError("Workflow template not found")
            row = NodeRow(
                id=node.id,
                template_id=node.template_id,
                node_type=node.node_type,
                label=node.label,
                entity_id=node.entity_id,
                settings=node.settings.model_dump(mode="json", by_alias=True),
            )
            await session.merge(row)
            await session.commit()
        return node

    async def delete_node(self, node_id: str) -> bool:
        async with self.session() as session:
            row = await session.get(NodeRow, node_id)
            if row is None:
                return False
            await session.execute(
                delete(ConnectionRow).where(
                    or_(
                        ConnectionRow.from_node_id == node_id,
                        ConnectionRow.to_node_id == node_id,
                    )
                )
            )
            await session.delete(row)
            await session.commit()
        logger.info(f"Deleted node {node_id} and its connections")
        return True

    async def save_connection(self, connection: WorkflowConnection) -> WorkflowConnection:
        check_connection(
            connection,
            await self.list_nodes(connection.template_id),
            await self.list_connections(connection.template_id),
        )
        condition = (
            connection.condition.model_dump(mode="json", by_alias=True, exclude_none=True)
            if connection.condition
            else None
        )
        async with self.session() as session:
            await session.merge(
                ConnectionRow(
                    id=connection.id,
                    template_id=connection.template_id,
                    from_node_id=connection.from_node_id,
                    to_node_id=connection.to_node_id,
                    label=connection.label,
                    condition=condition,
                )
            )
            await session.commit()
        return connection

    async def delete_connection(self, connection_id: str) -> bool:
        async with self.session() as session:
            row = await session.get(ConnectionRow, connection_id)
            if row is None:
                return False
            await session.delete(row)
            await session.commit()
        return True
