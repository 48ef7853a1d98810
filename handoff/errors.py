"""Error taxonomy for the workflow engine.

Every failure surfaced by :class:`~handoff.engine.WorkflowEngine` is one of
these. None of them is retried by the engine; callers reload and resubmit.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class WorkflowError(Exception):
    """Base class for engine errors."""

    code = "workflow_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "error": self.message}


class ValidationError(WorkflowError):
    """The submitted action is malformed for the current node."""

    code = "validation_error"

    def __init__(
        self, message: str, field_errors: Optional[Dict[str, str]] = None
    ) -> None:
        super().__init__(message)
        self.field_errors: Dict[str, str] = dict(field_errors or {})

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.field_errors:
            data["field_errors"] = dict(self.field_errors)
        return data


class PermissionDeniedError(WorkflowError):
    """The user may not act on the step."""

    code = "permission_denied"


class ConflictError(WorkflowError):
    """The caller acted on stale data; reload and retry."""

    code = "conflict"

    def __init__(self, message: str = "Workflow was updated by someone else, reload and retry") -> None:
        super().__init__(message)


class NotFoundError(WorkflowError):
    """Instance, node or active step does not exist."""

    code = "not_found"


class AmbiguousRoutingError(WorkflowError):
    """Outgoing edges do not map the action to exactly one route."""

    code = "ambiguous_routing"


class TemplateInvalidError(WorkflowError):
    """The template graph violates a structural invariant."""

    code = "template_invalid"

    def __init__(self, message: str, issues: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.issues: List[str] = list(issues or [])


__all__ = [
    "WorkflowError",
    "ValidationError",
    "PermissionDeniedError",
    "ConflictError",
    "NotFoundError",
    "AmbiguousRoutingError",
    "TemplateInvalidError",
]
