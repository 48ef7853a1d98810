"""In-memory implementation of the workflow repository."""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

from ..errors import ConflictError
from .models import (
    Transition,
    WorkflowActiveStep,
    WorkflowApproval,
    WorkflowHistory,
    WorkflowInstance,
    WorkflowNodeAssignment,
)
from .repository import WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store workflow state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Callers always receive copies.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._instances: Dict[str, WorkflowInstance] = {}
        self._steps: Dict[str, WorkflowActiveStep] = {}
        self._approvals: List[WorkflowApproval] = []
        self._history: List[WorkflowHistory] = []
        self._assignments: List[WorkflowNodeAssignment] = []
        self._history_id = 0

    # ------------------------------------------------------------------
    def _write(self, transition: Transition) -> None:
        instance = self._instances[transition.instance_id]
        instance.updated_at = transition.updated_at
        instance.status = transition.status
        instance.current_node_id = transition.current_node_id
        instance.completed_at = transition.completed_at

        for closure in transition.close_steps:
            step = self._steps[closure.step_id]
            step.status = closure.status
            step.completed_at = closure.completed_at
        for step in transition.new_steps:
            self._steps[step.id] = step.model_copy(deep=True)
        self._approvals.extend(a.model_copy(deep=True) for a in transition.approvals)
        for entry in transition.history:
            self._history_id += 1
            row = entry.model_copy(deep=True)
            row.id = self._history_id
            self._history.append(row)
        for assignment in transition.node_assignments:
            self._add_assignment(assignment)

    def _add_assignment(self, assignment: WorkflowNodeAssignment) -> None:
        for existing in self._assignments:
            if (
                existing.workflow_instance_id == assignment.workflow_instance_id
                and existing.node_id == assignment.node_id
                and existing.user_id == assignment.user_id
            ):
                return
        self._assignments.append(assignment.model_copy(deep=True))

    # ------------------------------------------------------------------
    async def create_instance(
        self, instance: WorkflowInstance, transition: Transition
    ) -> None:
        async with self._lock:
            if instance.id in self._instances:
                raise ConflictError("Workflow instance already exists")
            self._instances[instance.id] = instance.model_copy(deep=True)
            self._write(transition)

    async def apply_transition(self, transition: Transition) -> None:
        async with self._lock:
            instance = self._instances.get(transition.instance_id)
            if instance is None or instance.updated_at != transition.expected_updated_at:
                raise ConflictError()
            for closure in transition.close_steps:
                step = self._steps.get(closure.step_id)
                if step is None or step.status != closure.expected_status:
                    raise ConflictError()
            self._write(transition)

    async def get_instance(self, instance_id: str) -> Optional[WorkflowInstance]:
        instance = self._instances.get(instance_id)
        return instance.model_copy(deep=True) if instance else None

    async def list_instances(
        self, project_id: Optional[str] = None, status: Optional[str] = None
    ) -> list[WorkflowInstance]:
        instances = [
            i.model_copy(deep=True)
            for i in self._instances.values()
            if (project_id is None or i.project_id == project_id)
            and (status is None or i.status == status)
        ]
        return sorted(instances, key=lambda i: i.started_at, reverse=True)

    async def get_step(self, step_id: str) -> Optional[WorkflowActiveStep]:
        step = self._steps.get(step_id)
        return step.model_copy(deep=True) if step else None

    async def list_steps(self, instance_id: str) -> list[WorkflowActiveStep]:
        steps = [
            s.model_copy(deep=True)
            for s in self._steps.values()
            if s.workflow_instance_id == instance_id
        ]
        return sorted(steps, key=lambda s: s.activated_at)

    async def list_history(self, instance_id: str) -> list[WorkflowHistory]:
        rows = [
            h.model_copy(deep=True)
            for h in self._history
            if h.workflow_instance_id == instance_id
        ]
        return sorted(rows, key=lambda h: (h.handed_off_at, h.id))

    async def list_approvals(self, instance_id: str) -> list[WorkflowApproval]:
        return [
            a.model_copy(deep=True)
            for a in self._approvals
            if a.workflow_instance_id == instance_id
        ]

    async def list_node_assignments(
        self, instance_id: str
    ) -> list[WorkflowNodeAssignment]:
        return [
            a.model_copy(deep=True)
            for a in self._assignments
            if a.workflow_instance_id == instance_id
        ]

    async def add_node_assignment(self, assignment: WorkflowNodeAssignment) -> None:
        async with self._lock:
            self._add_assignment(assignment)

    async def delete_instance(self, instance_id: str) -> bool:
        async with self._lock:
            if self._instances.pop(instance_id, None) is None:
                return False
            self._steps = {
                k: s for k, s in self._steps.items() if s.workflow_instance_id != instance_id
            }
            self._approvals = [
                a for a in self._approvals if a.workflow_instance_id != instance_id
            ]
            self._history = [
                h for h in self._history if h.workflow_instance_id != instance_id
            ]
            self._assignments = [
                a for a in self._assignments if a.workflow_instance_id != instance_id
            ]
            return True
