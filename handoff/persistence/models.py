"""Data models for persisted workflow instance state."""

from __future__ import annotations

import json
import uuid
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from ..branches import BranchId
from ..constants import INLINE_FORM_NOTE, ROOT_BRANCH
from ..models import StartedSnapshot, utcnow

InstanceStatus = Literal["active", "completed", "cancelled"]
StepStatus = Literal["active", "waiting", "completed", "cancelled"]

OPEN_STEP_STATUSES = ("active", "waiting")


def _new_id() -> str:
    return str(uuid.uuid4())


class WorkflowInstance(BaseModel):
    """A template launched against a project."""

    id: str = Field(default_factory=_new_id)
    template_id: str
    project_id: str
    current_node_id: Optional[str] = None
    status: InstanceStatus = "active"
    started_snapshot: Optional[StartedSnapshot] = None
    started_by: Optional[str] = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class WorkflowActiveStep(BaseModel):
    """One thread of execution positioned at a node."""

    id: str = Field(default_factory=_new_id)
    workflow_instance_id: str
    node_id: str
    branch_id: str = ROOT_BRANCH
    status: StepStatus = "active"
    assigned_user_id: Optional[str] = None
    activated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def branch(self) -> BranchId:
        return BranchId.parse(self.branch_id)

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STEP_STATUSES


class WorkflowNodeAssignment(BaseModel):
    """Forward reservation of a user to a node of one instance."""

    id: str = Field(default_factory=_new_id)
    workflow_instance_id: str
    node_id: str
    user_id: str
    assigned_by: Optional[str] = None
    assigned_at: datetime = Field(default_factory=utcnow)


class WorkflowApproval(BaseModel):
    id: str = Field(default_factory=_new_id)
    workflow_instance_id: str
    node_id: str
    decision: str
    approver_user_id: Optional[str] = None
    feedback: Optional[str] = None
    branch_id: str = ROOT_BRANCH
    active_step_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class WorkflowHistory(BaseModel):
    """Append-only audit row. ``id`` is assigned by the repository."""

    id: Optional[int] = None
    workflow_instance_id: str
    from_node_id: Optional[str] = None
    to_node_id: Optional[str] = None
    handed_off_at: datetime = Field(default_factory=utcnow)
    handed_off_by: Optional[str] = None
    branch_id: Optional[str] = None
    decision: Optional[str] = None
    feedback: Optional[str] = None
    notes: Optional[str] = None
    form_response_id: Optional[str] = None

    @property
    def form_payload(self) -> Optional[Dict[str, Any]]:
        """Structured form submission stored in ``notes``, if any."""
        if not self.notes or not self.notes.startswith("{"):
            return None
        try:
            data = json.loads(self.notes)
        except ValueError:
            return None
        if isinstance(data, dict) and data.get("type") == INLINE_FORM_NOTE:
            payload = data.get("data")
            if isinstance(payload, dict):
                return payload
        return None


class StepClosure(BaseModel):
    """Fenced status change of an existing step."""

    step_id: str
    expected_status: StepStatus = "active"
    status: StepStatus = "completed"
    completed_at: Optional[datetime] = Field(default_factory=utcnow)


class Transition(BaseModel):
    """Everything one committed action writes, applied atomically.

    The instance row is updated only while its ``updated_at`` still equals
    ``expected_updated_at`` and each closed step still has its expected
    status; otherwise nothing is written.
    """

    instance_id: str
    expected_updated_at: datetime
    updated_at: datetime
    status: InstanceStatus = "active"
    current_node_id: Optional[str] = None
    completed_at: Optional[datetime] = None
    close_steps: List[StepClosure] = Field(default_factory=list)
    new_steps: List[WorkflowActiveStep] = Field(default_factory=list)
    approvals: List[WorkflowApproval] = Field(default_factory=list)
    history: List[WorkflowHistory] = Field(default_factory=list)
    node_assignments: List[WorkflowNodeAssignment] = Field(default_factory=list)


__all__ = [
    "InstanceStatus",
    "StepStatus",
    "OPEN_STEP_STATUSES",
    "WorkflowInstance",
    "WorkflowActiveStep",
    "WorkflowNodeAssignment",
    "WorkflowApproval",
    "WorkflowHistory",
    "StepClosure",
    "Transition",
]
