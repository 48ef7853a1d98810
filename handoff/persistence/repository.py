"""Repository abstraction for workflow instance persistence."""

from __future__ import annotations

from typing import Optional, Protocol

from .models import (
    Transition,
    WorkflowActiveStep,
    WorkflowApproval,
    WorkflowHistory,
    WorkflowInstance,
    WorkflowNodeAssignment,
)


class WorkflowRepository(Protocol):
    """Protocol for workflow state persistence backends."""

    async def create_instance(
        self, instance: WorkflowInstance, transition: Transition
    ) -> None:
        """Insert a new instance together with its first transition."""

    async def apply_transition(self, transition: Transition) -> None:
        """Commit a transition atomically.

        Raises :class:`~handoff.errors.ConflictError` when the instance
        version or any closed step no longer matches what was observed.
        """

    async def get_instance(self, instance_id: str) -> Optional[WorkflowInstance]:
        """Retrieve the instance by id."""

    async def list_instances(
        self, project_id: Optional[str] = None, status: Optional[str] = None
    ) -> list[WorkflowInstance]:
        """Return persisted instances, newest first."""

    async def get_step(self, step_id: str) -> Optional[WorkflowActiveStep]:
        """Retrieve an active step by id."""

    async def list_steps(self, instance_id: str) -> list[WorkflowActiveStep]:
        """Steps of an instance in activation order."""

    async def list_history(self, instance_id: str) -> list[WorkflowHistory]:
        """History rows ordered by ``handed_off_at`` then insertion id."""

    async def list_approvals(self, instance_id: str) -> list[WorkflowApproval]:
        """Approvals of an instance in creation order."""

    async def list_node_assignments(
        self, instance_id: str
    ) -> list[WorkflowNodeAssignment]:
        """Pipeline reservations of an instance."""

    async def add_node_assignment(self, assignment: WorkflowNodeAssignment) -> None:
        """Store a reservation; a duplicate (instance, node, user) is ignored."""

    async def delete_instance(self, instance_id: str) -> bool:
        """Delete an instance and everything recorded for it."""
