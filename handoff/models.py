"""Template graph models: templates, typed nodes and connections."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .constants import APPROVAL_DECISION_CONDITION

NodeType = Literal[
    "start", "role", "department", "approval", "form", "conditional", "sync", "end"
]
FieldType = Literal[
    "text",
    "number",
    "date",
    "dropdown",
    "multiselect",
    "file",
    "textarea",
    "email",
    "checkbox",
    "url",
]


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _CamelModel(BaseModel):
    """Accepts both snake_case and the camelCase keys the editor stores."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


# ----------------------------------------------------------------------
# Form fields


class FieldValidation(_CamelModel):
    min: Optional[float] = None
    max: Optional[float] = None
    pattern: Optional[str] = None
    message: Optional[str] = None


class FieldConditional(_CamelModel):
    """Show the field only when ``show_if`` equals ``equals``."""

    show_if: str
    equals: Any = None


class FormField(_CamelModel):
    id: str
    type: FieldType = "text"
    label: str = ""
    required: bool = False
    placeholder: Optional[str] = None
    options: List[str] = Field(default_factory=list)
    default_value: Any = None
    validation: Optional[FieldValidation] = None
    conditional: Optional[FieldConditional] = None

    @field_validator("type", mode="before")
    @classmethod
    def _normalise_type(cls, v: Any) -> Any:
        if v == "select":
            return "dropdown"
        return v

    @property
    def display_name(self) -> str:
        return self.label or self.id


# ----------------------------------------------------------------------
# Node settings, one variant per node type


class StartSettings(_CamelModel):
    kind: Literal["start"] = Field(default="start", alias="kind")


class EndSettings(_CamelModel):
    kind: Literal["end"] = Field(default="end", alias="kind")


class SyncSettings(_CamelModel):
    kind: Literal["sync"] = Field(default="sync", alias="kind")


class ConditionalSettings(_CamelModel):
    kind: Literal["conditional"] = Field(default="conditional", alias="kind")


class RoleSettings(_CamelModel):
    kind: Literal["role"] = Field(default="role", alias="kind")
    role_id: Optional[str] = None
    role_name: Optional[str] = None


class DepartmentSettings(_CamelModel):
    kind: Literal["department"] = Field(default="department", alias="kind")
    department_id: Optional[str] = None
    department_name: Optional[str] = None


class ApprovalSettings(_CamelModel):
    kind: Literal["approval"] = Field(default="approval", alias="kind")
    approver_role_id: Optional[str] = None
    approver_role_name: Optional[str] = None


class FormSettings(_CamelModel):
    kind: Literal["form"] = Field(default="form", alias="kind")
    form_name: Optional[str] = None
    form_description: Optional[str] = None
    form_fields: List[FormField] = Field(default_factory=list)

    @property
    def fields(self) -> List[FormField]:
        return self.form_fields


NodeSettings = Annotated[
    Union[
        StartSettings,
        EndSettings,
        SyncSettings,
        ConditionalSettings,
        RoleSettings,
        DepartmentSettings,
        ApprovalSettings,
        FormSettings,
    ],
    Field(discriminator="kind"),
]


# ----------------------------------------------------------------------
# Graph


class WorkflowTemplate(BaseModel):
    """Reusable blueprint; only its snapshot drives running instances."""

    id: str = Field(default_factory=_new_id)
    name: str
    description: Optional[str] = None
    is_active: bool = True
    created_by: Optional[str] = None


class WorkflowNode(BaseModel):
    id: str = Field(default_factory=_new_id)
    template_id: str
    node_type: NodeType
    label: str = ""
    entity_id: Optional[str] = None
    settings: NodeSettings

    @model_validator(mode="before")
    @classmethod
    def _tag_settings(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        node_type = data.get("node_type")
        settings = data.get("settings")
        if isinstance(settings, BaseModel):
            return data
        settings = dict(settings or {})
        settings.setdefault("kind", node_type)
        return {**data, "settings": settings}

    @model_validator(mode="after")
    def _check_settings_kind(self) -> "WorkflowNode":
        if self.settings.kind != self.node_type:
            raise ValueError(
                f"settings of kind '{self.settings.kind}' do not match node type '{self.node_type}'"
            )
        return self

    @property
    def form_fields(self) -> List[FormField]:
        if isinstance(self.settings, FormSettings):
            return self.settings.form_fields
        return []

    @property
    def display_name(self) -> str:
        return self.label or self.node_type

    @property
    def entity_ref(self) -> Optional[str]:
        """Role or department id this node is gated on, if any."""
        if self.entity_id:
            return self.entity_id
        settings = self.settings
        if isinstance(settings, RoleSettings):
            return settings.role_id
        if isinstance(settings, ApprovalSettings):
            return settings.approver_role_id
        if isinstance(settings, DepartmentSettings):
            return settings.department_id
        return None


class ConnectionCondition(_CamelModel):
    """Edge condition.

    Approval routing uses ``decision``/``condition_value``; conditional
    nodes use the form fields ``source_form_field_id``, ``value`` and
    ``value2`` together with ``condition_type`` as the operator.
    """

    condition_type: Optional[str] = None
    condition_value: Optional[str] = None
    decision: Optional[str] = None
    source_form_field_id: Optional[str] = None
    value: Any = None
    value2: Any = None

    @property
    def decision_value(self) -> Optional[str]:
        if self.decision:
            return self.decision
        if self.condition_type == APPROVAL_DECISION_CONDITION or not self.source_form_field_id:
            return self.condition_value
        return None

    @property
    def is_form_condition(self) -> bool:
        return bool(self.source_form_field_id and self.condition_type)


class WorkflowConnection(BaseModel):
    id: str = Field(default_factory=_new_id)
    template_id: str
    from_node_id: str
    to_node_id: str
    label: Optional[str] = None
    condition: Optional[ConnectionCondition] = None

    @property
    def decision(self) -> Optional[str]:
        return self.condition.decision_value if self.condition else None

    @property
    def is_decision_edge(self) -> bool:
        return self.decision is not None

    @property
    def is_form_edge(self) -> bool:
        return bool(self.condition and self.condition.is_form_condition)

    @property
    def is_plain(self) -> bool:
        return not self.is_decision_edge and not self.is_form_edge


class StartedSnapshot(BaseModel):
    """Immutable copy of a template graph taken when an instance starts."""

    nodes: List[WorkflowNode] = Field(default_factory=list)
    connections: List[WorkflowConnection] = Field(default_factory=list)
    template_name: Optional[str] = None
    captured_at: datetime = Field(default_factory=utcnow)

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


__all__ = [
    "NodeType",
    "FieldType",
    "FieldValidation",
    "FieldConditional",
    "FormField",
    "StartSettings",
    "EndSettings",
    "SyncSettings",
    "ConditionalSettings",
    "RoleSettings",
    "DepartmentSettings",
    "ApprovalSettings",
    "FormSettings",
    "NodeSettings",
    "WorkflowTemplate",
    "WorkflowNode",
    "ConnectionCondition",
    "WorkflowConnection",
    "StartedSnapshot",
    "utcnow",
]
