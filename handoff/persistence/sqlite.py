"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

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
_HISTORY_COLUMNS = (
    "id, workflow_instance_id, from_node_id, to_node_id, handed_off_at, handed_off_by, "
    "branch_id, decision, feedback, notes, form_response_id"
)


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat(timespec="microseconds") if value else None


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist workflow state using SQLite.

    Transitions run inside ``BEGIN IMMEDIATE`` so the fenced updates and the
    inserts that follow them commit or roll back together.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(
            self.db_path, check_same_thread=False, isolation_level=None
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS workflow_instances (
                id TEXT PRIMARY KEY,
                template_id TEXT NOT NULL,
                project_id TEXT NOT NULL,
                current_node_id TEXT,
                status TEXT NOT NULL,
                started_snapshot TEXT,
                started_by TEXT,
                started_at TEXT NOT NULL,
                completed_at TEXT,
                updated_at TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS workflow_active_steps (
                id TEXT PRIMARY KEY,
                workflow_instance_id TEXT NOT NULL
                    REFERENCES workflow_instances(id) ON DELETE CASCADE,
                node_id TEXT NOT NULL,
                branch_id TEXT NOT NULL,
                status TEXT NOT NULL,
                assigned_user_id TEXT,
                activated_at TEXT NOT NULL,
                completed_at TEXT
            );
            CREATE TABLE IF NOT EXISTS workflow_node_assignments (
                id TEXT PRIMARY KEY,
                workflow_instance_id TEXT NOT NULL
                    REFERENCES workflow_instances(id) ON DELETE CASCADE,
                node_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                assigned_by TEXT,
                assigned_at TEXT NOT NULL,
                UNIQUE (workflow_instance_id, node_id, user_id)
            );
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
                created_at TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS workflow_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                workflow_instance_id TEXT NOT NULL
                    REFERENCES workflow_instances(id) ON DELETE CASCADE,
                from_node_id TEXT,
                to_node_id TEXT,
                handed_off_at TEXT NOT NULL,
                handed_off_by TEXT,
                branch_id TEXT,
                decision TEXT,
                feedback TEXT,
                notes TEXT,
                form_response_id TEXT
            );
            CREATE INDEX IF NOT EXISTS idx_steps_instance
                ON workflow_active_steps (workflow_instance_id);
            CREATE INDEX IF NOT EXISTS idx_history_instance
                ON workflow_history (workflow_instance_id, handed_off_at, id);
            """
        )

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        with self._lock:
            cur = self._conn.execute(query, params)
            return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            return self._conn.execute(query, params).fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(query, params).fetchall()

    def _insert_assignment(self, cur: sqlite3.Cursor, a: WorkflowNodeAssignment) -> None:
        cur.execute(
            """
            INSERT OR IGNORE INTO workflow_node_assignments
                (id, workflow_instance_id, node_id, user_id, assigned_by, assigned_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (a.id, a.workflow_instance_id, a.node_id, a.user_id, a.assigned_by, _ts(a.assigned_at)),
        )

    def _write_rows(self, cur: sqlite3.Cursor, t: Transition) -> None:
        for step in t.new_steps:
            cur.execute(
                f"INSERT INTO workflow_active_steps ({_STEP_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    step.id,
                    step.workflow_instance_id,
                    step.node_id,
                    step.branch_id,
                    step.status,
                    step.assigned_user_id,
                    _ts(step.activated_at),
                    _ts(step.completed_at),
                ),
            )
        for a in t.approvals:
            cur.execute(
                """
                INSERT INTO workflow_approvals
                    (id, workflow_instance_id, node_id, decision, approver_user_id,
                     feedback, branch_id, active_step_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    a.id,
                    a.workflow_instance_id,
                    a.node_id,
                    a.decision,
                    a.approver_user_id,
                    a.feedback,
                    a.branch_id,
                    a.active_step_id,
                    _ts(a.created_at),
                ),
            )
        for h in t.history:
            cur.execute(
                """
                INSERT INTO workflow_history
                    (workflow_instance_id, from_node_id, to_node_id, handed_off_at,
                     handed_off_by, branch_id, decision, feedback, notes, form_response_id)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    h.workflow_instance_id,
                    h.from_node_id,
                    h.to_node_id,
                    _ts(h.handed_off_at),
                    h.handed_off_by,
                    h.branch_id,
                    h.decision,
                    h.feedback,
                    h.notes,
                    h.form_response_id,
                ),
            )
        for a in t.node_assignments:
            self._insert_assignment(cur, a)

    def _run_in_transaction(self, work) -> None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            try:
                work(cur)
            except BaseException:
                cur.execute("ROLLBACK")
                raise
            cur.execute("COMMIT")

    def _create(self, instance: WorkflowInstance, t: Transition) -> None:
        def work(cur: sqlite3.Cursor) -> None:
            cur.execute(
                f"INSERT INTO workflow_instances ({_INSTANCE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    instance.id,
                    instance.template_id,
                    instance.project_id,
                    t.current_node_id,
                    t.status,
                    instance.started_snapshot.model_dump_json(by_alias=True)
                    if instance.started_snapshot
                    else None,
                    instance.started_by,
                    _ts(instance.started_at),
                    _ts(t.completed_at),
                    _ts(t.updated_at),
                ),
            )
            self._write_rows(cur, t)

        self._run_in_transaction(work)

    def _apply(self, t: Transition) -> None:
        def work(cur: sqlite3.Cursor) -> None:
            cur.execute(
                """
                UPDATE workflow_instances
                SET updated_at = ?, status = ?, current_node_id = ?, completed_at = ?
                WHERE id = ? AND updated_at = ?
                """,
                (
                    _ts(t.updated_at),
                    t.status,
                    t.current_node_id,
                    _ts(t.completed_at),
                    t.instance_id,
                    _ts(t.expected_updated_at),
                ),
            )
            if cur.rowcount != 1:
                raise ConflictError()
            for closure in t.close_steps:
                cur.execute(
                    """
                    UPDATE workflow_active_steps
                    SET status = ?, completed_at = ?
                    WHERE id = ? AND workflow_instance_id = ? AND status = ?
                    """,
                    (
                        closure.status,
                        _ts(closure.completed_at),
                        closure.step_id,
                        t.instance_id,
                        closure.expected_status,
                    ),
                )
                if cur.rowcount != 1:
                    raise ConflictError()
            self._write_rows(cur, t)

        self._run_in_transaction(work)

    # ------------------------------------------------------------------
    # Row mapping
    @staticmethod
    def _instance(row: sqlite3.Row) -> WorkflowInstance:
        snapshot = row["started_snapshot"]
        return WorkflowInstance(
            id=row["id"],
            template_id=row["template_id"],
            project_id=row["project_id"],
            current_node_id=row["current_node_id"],
            status=row["status"],
            started_snapshot=StartedSnapshot.model_validate(json.loads(snapshot))
            if snapshot
            else None,
            started_by=row["started_by"],
            started_at=_dt(row["started_at"]),
            completed_at=_dt(row["completed_at"]),
            updated_at=_dt(row["updated_at"]),
        )

    @staticmethod
    def _step(row: sqlite3.Row) -> WorkflowActiveStep:
        return WorkflowActiveStep(
            id=row["id"],
            workflow_instance_id=row["workflow_instance_id"],
            node_id=row["node_id"],
            branch_id=row["branch_id"],
            status=row["status"],
            assigned_user_id=row["assigned_user_id"],
            activated_at=_dt(row["activated_at"]),
            completed_at=_dt(row["completed_at"]),
        )

    # ------------------------------------------------------------------
    # Repository API
    async def create_instance(
        self, instance: WorkflowInstance, transition: Transition
    ) -> None:
        await asyncio.to_thread(self._create, instance, transition)

    async def apply_transition(self, transition: Transition) -> None:
        await asyncio.to_thread(self._apply, transition)

    async def get_instance(self, instance_id: str) -> Optional[WorkflowInstance]:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_INSTANCE_COLUMNS} FROM workflow_instances WHERE id = ?",
            instance_id,
        )
        return self._instance(row) if row else None

    async def list_instances(
        self, project_id: Optional[str] = None, status: Optional[str] = None
    ) -> list[WorkflowInstance]:
        query = f"SELECT {_INSTANCE_COLUMNS} FROM workflow_instances WHERE 1 = 1"
        params: list[Any] = []
        if project_id is not None:
            query += " AND project_id = ?"
            params.append(project_id)
        if status is not None:
            query += " AND status = ?"
            params.append(status)
        query += " ORDER BY started_at DESC"
        rows = await asyncio.to_thread(self._fetchall, query, *params)
        return [self._instance(r) for r in rows]

    async def get_step(self, step_id: str) -> Optional[WorkflowActiveStep]:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_STEP_COLUMNS} FROM workflow_active_steps WHERE id = ?",
            step_id,
        )
        return self._step(row) if row else None

    async def list_steps(self, instance_id: str) -> list[WorkflowActiveStep]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_STEP_COLUMNS} FROM workflow_active_steps WHERE workflow_instance_id = ? ORDER BY activated_at, rowid",
            instance_id,
        )
        return [self._step(r) for r in rows]

    async def list_history(self, instance_id: str) -> list[WorkflowHistory]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_HISTORY_COLUMNS} FROM workflow_history WHERE workflow_instance_id = ? ORDER BY handed_off_at, id",
            instance_id,
        )
        return [
            WorkflowHistory(
                id=r["id"],
                workflow_instance_id=r["workflow_instance_id"],
                from_node_id=r["from_node_id"],
                to_node_id=r["to_node_id"],
                handed_off_at=_dt(r["handed_off_at"]),
                handed_off_by=r["handed_off_by"],
                branch_id=r["branch_id"],
                decision=r["decision"],
                feedback=r["feedback"],
                notes=r["notes"],
                form_response_id=r["form_response_id"],
            )
            for r in rows
        ]

    async def list_approvals(self, instance_id: str) -> list[WorkflowApproval]:
        rows = await asyncio.to_thread(
            self._fetchall,
            """
            SELECT id, workflow_instance_id, node_id, decision, approver_user_id,
                   feedback, branch_id, active_step_id, created_at
            FROM workflow_approvals WHERE workflow_instance_id = ? ORDER BY created_at, rowid
            """,
            instance_id,
        )
        return [
            WorkflowApproval(
                id=r["id"],
                workflow_instance_id=r["workflow_instance_id"],
                node_id=r["node_id"],
                decision=r["decision"],
                approver_user_id=r["approver_user_id"],
                feedback=r["feedback"],
                branch_id=r["branch_id"],
                active_step_id=r["active_step_id"],
                created_at=_dt(r["created_at"]),
            )
            for r in rows
        ]

    async def list_node_assignments(
        self, instance_id: str
    ) -> list[WorkflowNodeAssignment]:
        rows = await asyncio.to_thread(
            self._fetchall,
            """
            SELECT id, workflow_instance_id, node_id, user_id, assigned_by, assigned_at
            FROM workflow_node_assignments WHERE workflow_instance_id = ? ORDER BY assigned_at, rowid
            """,
            instance_id,
        )
        return [
            WorkflowNodeAssignment(
                id=r["id"],
                workflow_instance_id=r["workflow_instance_id"],
                node_id=r["node_id"],
                user_id=r["user_id"],
                assigned_by=r["assigned_by"],
                assigned_at=_dt(r["assigned_at"]),
            )
            for r in rows
        ]

    async def add_node_assignment(self, assignment: WorkflowNodeAssignment) -> None:
        await asyncio.to_thread(
            self._run_in_transaction,
            lambda cur: self._insert_assignment(cur, assignment),
        )

    async def delete_instance(self, instance_id: str) -> bool:
        count = await asyncio.to_thread(
            self._execute, "DELETE FROM workflow_instances WHERE id = ?", instance_id
        )
        return count == 1
