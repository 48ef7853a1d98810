"""PostgreSQL implementation of the workflow repository."""

from __future__ import annotations

import json
from typing import Any, Optional

import asyncpg

from ..errors import ConflictError
from ..models import StartedSnapshot
from .models import (
    Transition,
    WorkflowActiveStep,
    WorkflowApproval,
    WorkflowHistory,
    WorkflowInstance,
    WorkflowNodeAssignment,
)
from .repository import WorkflowRepository

_INSTANCE_COLUMNS = (
    "id, template_id, project_id, current_node_id, status, started_snapshot, "
    "started_by, started_at, completed_at, updated_at"
)
_STEP_COLUMNS = (
    "id, workflow_instance_id, node_id, branch_id, status, assigned_user_id, "
    "activated_at, completed_at"
)


def _affected(status: str) -> int:
    # asyncpg returns the command tag, e.g. "UPDATE 1"
    try:
        return int(status.rsplit(" ", 1)[-1])
    except ValueError:
        return 0


def _json(value: Any) -> Any:
    if isinstance(value, str):
        return json.loads(value)
    return value


class PostgresWorkflowRepository(WorkflowRepository):
    """Persist workflow state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_instances (
                id TEXT PRIMARY KEY,
                template_id TEXT NOT NULL,
                project_id TEXT NOT NULL,
                current_node_id TEXT,
                status TEXT NOT NULL,
                started_snapshot JSONB,
                started_by TEXT,
                started_at TIMESTAMPTZ NOT NULL,
                completed_at TIMESTAMPTZ,
                updated_at TIMESTAMPTZ NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_active_steps (
                id TEXT PRIMARY KEY,
                workflow_instance_id TEXT NOT NULL
                    REFERENCES workflow_instances(id) ON DELETE CASCADE,
                node_id TEXT NOT NULL,
                branch_id TEXT NOT NULL,
                status TEXT NOT NULL,
                assigned_user_id TEXT,
                activated_at TIMESTAMPTZ NOT NULL,
                completed_at TIMESTAMPTZ
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_node_assignments (
                id TEXT PRIMARY KEY,
                workflow_instance_id TEXT NOT NULL
                    REFERENCES workflow_instances(id) ON DELETE CASCADE,
                node_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                assigned_by TEXT,
                assigned_at TIMESTAMPTZ NOT NULL,
                UNIQUE (workflow_instance_id, node_id, user_id)
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_approvals (
                id TEXT PRIMARY KEY,
                workflow_instance_id TEXT NOT NULL
                    REFERENCES workflow_instances(id) ON DELETE CASCADE,
                node_id TEXT NOT NULL,
                decision TEXT NOT NULL,
                approver_user_id TEXT,
                feedback TEXT,
                branch_id TEXT NOT NULL,
                active_step_id TEXT,
                created_at TIMESTAMPTZ NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_history (
                id BIGSERIAL PRIMARY KEY,
                workflow_instance_id TEXT NOT NULL
                    REFERENCES workflow_instances(id) ON DELETE CASCADE,
                from_node_id TEXT,
                to_node_id TEXT,
                handed_off_at TIMESTAMPTZ NOT NULL,
                handed_off_by TEXT,
                branch_id TEXT,
                decision TEXT,
                feedback TEXT,
                notes TEXT,
                form_response_id TEXT
            )
            """
        )

    # ------------------------------------------------------------------
    async def _write_rows(self, conn: asyncpg.Connection, t: Transition) -> None:
        for step in t.new_steps:
            await conn.execute(
                f"INSERT INTO workflow_active_steps ({_STEP_COLUMNS}) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)",
                step.id,
                step.workflow_instance_id,
                step.node_id,
                step.branch_id,
                step.status,
                step.assigned_user_id,
                step.activated_at,
                step.completed_at,
            )
        for a in t.approvals:
            await conn.execute(
                """
                INSERT INTO workflow_approvals
                    (id, workflow_instance_id, node_id, decision, approver_user_id,
                     feedback, branch_id, active_step_id, created_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                """,
                a.id,
                a.workflow_instance_id,
                a.node_id,
                a.decision,
                a.approver_user_id,
                a.feedback,
                a.branch_id,
                a.active_step_id,
                a.created_at,
            )
        for h in t.history:
            await conn.execute(
                """
                INSERT INTO workflow_history
                    (workflow_instance_id, from_node_id, to_node_id, handed_off_at,
                     handed_off_by, branch_id, decision, feedback, notes, form_response_id)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
                """,
                h.workflow_instance_id,
                h.from_node_id,
                h.to_node_id,
                h.handed_off_at,
                h.handed_off_by,
                h.branch_id,
                h.decision,
                h.feedback,
                h.notes,
                h.form_response_id,
            )
        for a in t.node_assignments:
            await self._insert_assignment(conn, a)

    @staticmethod
    async def _insert_assignment(
        conn: asyncpg.Connection, a: WorkflowNodeAssignment
    ) -> None:
        await conn.execute(
            """
            INSERT INTO workflow_node_assignments
                (id, workflow_instance_id, node_id, user_id, assigned_by, assigned_at)
            VALUES ($1, $2, $3, $4, $5, $6)
            ON CONFLICT (workflow_instance_id, node_id, user_id) DO NOTHING
            """,
            a.id,
            a.workflow_instance_id,
            a.node_id,
            a.user_id,
            a.assigned_by,
            a.assigned_at,
        )

    @staticmethod
    def _instance(row: asyncpg.Record) -> WorkflowInstance:
        snapshot = _json(row["started_snapshot"])
        return WorkflowInstance(
            id=row["id"],
            template_id=row["template_id"],
            project_id=row["project_id"],
            current_node_id=row["current_node_id"],
            status=row["status"],
            started_snapshot=StartedSnapshot.model_validate(snapshot) if snapshot else None,
            started_by=row["started_by"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            updated_at=row["updated_at"],
        )

    # ------------------------------------------------------------------
    async def create_instance(
        self, instance: WorkflowInstance, transition: Transition
    ) -> None:
        conn = await self._connect()
        try:
            async with conn.transaction():
                await conn.execute(
                    f"INSERT INTO workflow_instances ({_INSTANCE_COLUMNS}) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)",
                    instance.id,
                    instance.template_id,
                    instance.project_id,
                    transition.current_node_id,
                    transition.status,
                    instance.started_snapshot.model_dump_json(by_alias=True)
                    if instance.started_snapshot
                    else None,
                    instance.started_by,
                    instance.started_at,
                    transition.completed_at,
                    transition.updated_at,
                )
                await self._write_rows(conn, transition)
        finally:
            await conn.close()

    async def apply_transition(self, transition: Transition) -> None:
        conn = await self._connect()
        try:
            async with conn.transaction():
                status = await conn.execute(
                    """
                    UPDATE workflow_instances
                    SET updated_at = $1, status = $2, current_node_id = $3, completed_at = $4
                    WHERE id = $5 AND updated_at = $6
                    """,
                    transition.updated_at,
                    transition.status,
                    transition.current_node_id,
                    transition.completed_at,
                    transition.instance_id,
                    transition.expected_updated_at,
                )
                if _affected(status) != 1:
                    raise ConflictError()
                for closure in transition.close_steps:
                    status = await conn.execute(
                        """
                        UPDATE workflow_active_steps
                        SET status = $1, completed_at = $2
                        WHERE id = $3 AND workflow_instance_id = $4 AND status = $5
                        """,
                        closure.status,
                        closure.completed_at,
                        closure.step_id,
                        transition.instance_id,
                        closure.expected_status,
                    )
                    if _affected(status) != 1:
                        raise ConflictError()
                await self._write_rows(conn, transition)
        finally:
            await conn.close()

    async def get_instance(self, instance_id: str) -> Optional[WorkflowInstance]:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_INSTANCE_COLUMNS} FROM workflow_instances WHERE id = $1",
                instance_id,
            )
        finally:
            await conn.close()
        return self._instance(row) if row else None

    async def list_instances(
        self, project_id: Optional[str] = None, status: Optional[str] = None
    ) -> list[WorkflowInstance]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"""
                SELECT {_INSTANCE_COLUMNS} FROM workflow_instances
                WHERE ($1::text IS NULL OR project_id = $1)
                  AND ($2::text IS NULL OR status = $2)
                ORDER BY started_at DESC
                """,
                project_id,
                status,
            )
        finally:
            await conn.close()
        return [self._instance(r) for r in rows]

    async def get_step(self, step_id: str) -> Optional[WorkflowActiveStep]:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_STEP_COLUMNS} FROM workflow_active_steps WHERE id = $1",
                step_id,
            )
        finally:
            await conn.close()
        return WorkflowActiveStep(**dict(row)) if row else None

    async def list_steps(self, instance_id: str) -> list[WorkflowActiveStep]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"SELECT {_STEP_COLUMNS} FROM workflow_active_steps WHERE workflow_instance_id = $1 ORDER BY activated_at",
                instance_id,
            )
        finally:
            await conn.close()
        return [WorkflowActiveStep(**dict(r)) for r in rows]

    async def list_history(self, instance_id: str) -> list[WorkflowHistory]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                """
                SELECT id, workflow_instance_id, from_node_id, to_node_id, handed_off_at,
                       handed_off_by, branch_id, decision, feedback, notes, form_response_id
                FROM workflow_history WHERE workflow_instance_id = $1
                ORDER BY handed_off_at, id
                """,
                instance_id,
            )
        finally:
            await conn.close()
        return [WorkflowHistory(**dict(r)) for r in rows]

    async def list_approvals(self, instance_id: str) -> list[WorkflowApproval]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                """
                SELECT id, workflow_instance_id, node_id, decision, approver_user_id,
                       feedback, branch_id, active_step_id, created_at
                FROM workflow_approvals WHERE workflow_instance_id = $1
                ORDER BY created_at
                """,
                instance_id,
            )
        finally:
            await conn.close()
        return [WorkflowApproval(**dict(r)) for r in rows]

    async def list_node_assignments(
        self, instance_id: str
    ) -> list[WorkflowNodeAssignment]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                """
                SELECT id, workflow_instance_id, node_id, user_id, assigned_by, assigned_at
                FROM workflow_node_assignments WHERE workflow_instance_id = $1
                ORDER BY assigned_at
                """,
                instance_id,
            )
        finally:
            await conn.close()
        return [WorkflowNodeAssignment(**dict(r)) for r in rows]

    async def add_node_assignment(self, assignment: WorkflowNodeAssignment) -> None:
        conn = await self._connect()
        try:
            await self._insert_assignment(conn, assignment)
        finally:
            await conn.close()

    async def delete_instance(self, instance_id: str) -> bool:
        conn = await self._connect()
        try:
            status = await conn.execute(
                "DELETE FROM workflow_instances WHERE id = $1", instance_id
            )
        finally:
            await conn.close()
        return _affected(status) == 1
