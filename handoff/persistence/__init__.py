"""Persistence layer for handoff workflow instances."""

from __future__ import annotations

from typing import Optional

from ..config import HandoffConfig, load_config
from .inmemory import InMemoryWorkflowRepository
from .models import (
    StepClosure,
    Transition,
    WorkflowActiveStep,
    WorkflowApproval,
    WorkflowHistory,
    WorkflowInstance,
    WorkflowNodeAssignment,
)
from .postgres import PostgresWorkflowRepository
from .repository import WorkflowRepository
from .sqlite import SQLiteWorkflowRepository

_repository_instance: WorkflowRepository | None = None


def _postgres_dsn(url: str) -> str:
    # asyncpg does not understand SQLAlchemy driver suffixes
    scheme, sep, rest = url.partition("://")
    return f"{scheme.split('+', 1)[0]}{sep}{rest}"


def _build_repository(database_url: str) -> WorkflowRepository:
    scheme = database_url.partition("://")[0].split("+", 1)[0]
    if scheme == "sqlite":
        return SQLiteWorkflowRepository(database_url.split("://", 1)[1])
    if scheme in ("postgres", "postgresql"):
        return PostgresWorkflowRepository(_postgres_dsn(database_url))
    raise ValueError(f"Unsupported database backend: {database_url}")


def get_repository(
    database_url: Optional[str] = None, config: Optional[HandoffConfig] = None
) -> WorkflowRepository:
    """Return the process-wide workflow repository.

    An explicit ``database_url`` or ``config`` always builds a fresh
    repository; otherwise the one built earlier is reused. The URL comes
    from configuration when not given (``HANDOFF_DATABASE_URL`` and
    ``DATABASE_URL`` override the YAML file). ``sqlite://PATH`` and
    ``postgresql://...`` are supported; with no URL at all the instances
    live in memory.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    url = database_url or (config or load_config()).database_url
    _repository_instance = _build_repository(url) if url else InMemoryWorkflowRepository()
    return _repository_instance


__all__ = [
    "StepClosure",
    "Transition",
    "WorkflowActiveStep",
    "WorkflowApproval",
    "WorkflowHistory",
    "WorkflowInstance",
    "WorkflowNodeAssignment",
    "WorkflowRepository",
    "InMemoryWorkflowRepository",
    "SQLiteWorkflowRepository",
    "PostgresWorkflowRepository",
    "get_repository",
]
