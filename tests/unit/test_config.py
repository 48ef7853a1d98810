"""Tests for configuration loading."""

import pytest
from pydantic import ValidationError

from handoff.config import EngineConfig, load_config


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
engine:
  root_branch: trunk
  max_conditional_hops: 4
  require_project_assignment: false
database_url: sqlite:///tmp/handoff.db
"""
    )
    monkeypatch.setenv("HANDOFF_CONFIG", str(config_path))
    monkeypatch.delenv("HANDOFF_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    config = load_config()
    assert config.engine.root_branch == "trunk"
    assert config.engine.max_conditional_hops == 4
    assert config.engine.require_project_assignment is False
    assert config.database_url == "sqlite:///tmp/handoff.db"


def test_env_overrides_database_urls(tmp_path, monkeypatch):
    monkeypatch.setenv("HANDOFF_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.delenv("HANDOFF_DATABASE_URL", raising=False)
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/db")
    monkeypatch.setenv("HANDOFF_TEMPLATE_DATABASE_URL", "sqlite+aiosqlite:///t.db")

    config = load_config()
    assert config.database_url == "postgresql://localhost/db"
    assert config.template_database_url == "sqlite+aiosqlite:///t.db"
    assert config.engine == EngineConfig()


def test_hop_limit_must_be_positive():
    with pytest.raises(ValidationError):
        EngineConfig(max_conditional_hops=0)
