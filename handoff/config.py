from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from .constants import MAX_CONDITIONAL_HOPS, ROOT_BRANCH


class EngineConfig(BaseModel):
    """Behavioural switches for the transition engine."""

    root_branch: str = ROOT_BRANCH
    max_conditional_hops: int = Field(default=MAX_CONDITIONAL_HOPS, ge=1)
    require_project_assignment: bool = True


class HandoffConfig(BaseModel):
    """Top-level configuration model."""

    engine: EngineConfig = EngineConfig()
    database_url: Optional[str] = None
    template_database_url: Optional[str] = None


def load_config(path: Optional[str] = None) -> HandoffConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to HANDOFF_CONFIG env
            variable or 'handoff.yaml' in the current directory.
    """

    config_path = path or os.getenv("HANDOFF_CONFIG", "handoff.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = HandoffConfig(**data)
    else:
        config = HandoffConfig()

    env_db_url = os.getenv("HANDOFF_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_template_url = os.getenv("HANDOFF_TEMPLATE_DATABASE_URL")
    if env_template_url:
        config.template_database_url = env_template_url
    return config
