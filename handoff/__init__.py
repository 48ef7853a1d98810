"""Handoff: human workflow execution with approvals, forms and parallel branches."""

from .config import EngineConfig, HandoffConfig, load_config
from .contracts import ActionableView, ProgressAction, ProgressResult
from .db import InMemoryTemplateStore, TemplateDB
from .engine import WorkflowEngine
from .errors import (
    AmbiguousRoutingError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    TemplateInvalidError,
    ValidationError,
    WorkflowError,
)
from .persistence import get_repository
from .security import InMemoryDirectory

__version__ = "0.1.0"
__all__ = [
    "WorkflowEngine",
    "ProgressAction",
    "ProgressResult",
    "ActionableView",
    "EngineConfig",
    "HandoffConfig",
    "load_config",
    "get_repository",
    "InMemoryTemplateStore",
    "TemplateDB",
    "InMemoryDirectory",
    "WorkflowError",
    "ValidationError",
    "PermissionDeniedError",
    "ConflictError",
    "NotFoundError",
    "AmbiguousRoutingError",
    "TemplateInvalidError",
]
