"""Request and response contracts exposed by the workflow engine."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .branches import SiblingStatus
from .models import FormField, WorkflowNode
from .persistence.models import WorkflowActiveStep, WorkflowInstance


class ProgressAction(BaseModel):
    """What a user submits against an active step."""

    decision: Optional[str] = None
    feedback: Optional[str] = None
    form_data: Optional[Dict[str, Any]] = None
    form_response_id: Optional[str] = None
    assigned_user_id: Optional[str] = None
    assignments: Dict[str, str] = Field(
        default_factory=dict, description="Next node id -> user id"
    )
    expected_updated_at: Optional[datetime] = Field(
        default=None, description="Instance version the caller last saw"
    )

    def assignee_for(self, node_id: str) -> Optional[str]:
        return self.assignments.get(node_id) or self.assigned_user_id


class ProgressResult(BaseModel):
    success: bool = True
    error: Optional[str] = None
    error_code: Optional[str] = None
    instance: Optional[WorkflowInstance] = None
    new_steps: List[WorkflowActiveStep] = Field(default_factory=list)
    waiting_at_sync: bool = False
    completed: bool = False


class NextNodePreview(BaseModel):
    node_id: str
    label: str
    node_type: str
    decision: Optional[str] = None
    requires_assignment: bool = False


class RequiredAssignment(BaseModel):
    """A downstream node that needs an actor chosen before progressing."""

    node_id: str
    label: str
    node_type: str
    eligible_user_ids: List[str] = Field(default_factory=list)
    decision: Optional[str] = None


class CarriedForm(BaseModel):
    """Form data captured earlier in the instance and shown at this node."""

    source_node_id: Optional[str] = None
    form_name: Optional[str] = None
    fields: List[FormField] = Field(default_factory=list)
    responses: Dict[str, Any] = Field(default_factory=dict)
    mode: Literal["prefill", "read_only"] = "read_only"
    submitted_at: Optional[datetime] = None
    submitted_by: Optional[str] = None


class ActionableView(BaseModel):
    """Everything a caller needs to render and submit the next action."""

    instance: WorkflowInstance
    active_step: Optional[WorkflowActiveStep] = None
    node: Optional[WorkflowNode] = None
    can_act: bool = False
    reason: Optional[str] = None
    allowed_decisions: List[str] = Field(default_factory=list)
    next_node_preview: List[NextNodePreview] = Field(default_factory=list)
    required_assignments: List[RequiredAssignment] = Field(default_factory=list)
    is_pipeline: bool = False
    pipeline_step_name: Optional[str] = None
    carried_form: Optional[CarriedForm] = None
    siblings: List[SiblingStatus] = Field(default_factory=list)


__all__ = [
    "ProgressAction",
    "ProgressResult",
    "NextNodePreview",
    "RequiredAssignment",
    "CarriedForm",
    "ActionableView",
    "SiblingStatus",
]
