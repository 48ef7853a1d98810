"""Shared helpers for building template graphs and engines in tests."""

from typing import Dict, List, Optional

import pytest

import handoff.persistence as persistence
from handoff.db import InMemoryTemplateStore
from handoff.engine import WorkflowEngine
from handoff.models import (
    ConnectionCondition,
    WorkflowConnection,
    WorkflowNode,
    WorkflowTemplate,
)
from handoff.persistence import InMemoryWorkflowRepository
from handoff.security import InMemoryDirectory


class GraphBuilder:
    """Collects nodes and connections of one template."""

    def __init__(self, name: str = "Test workflow", template_id: Optional[str] = None):
        self.template = WorkflowTemplate(name=name)
        if template_id:
            self.template.id = template_id
        self.nodes: Dict[str, WorkflowNode] = {}
        self.connections: List[WorkflowConnection] = []

    def node(self, node_id: str, node_type: str, label: Optional[str] = None, **settings) -> str:
        self.nodes[node_id] = WorkflowNode(
            id=node_id,
            template_id=self.template.id,
            node_type=node_type,
            label=label or node_id,
            settings=settings,
        )
        return node_id

    def connect(
        self,
        from_id: str,
        to_id: str,
        decision: Optional[str] = None,
        label: Optional[str] = None,
        **condition,
    ) -> WorkflowConnection:
        if decision:
            cond = ConnectionCondition(
                condition_type="approval_decision", condition_value=decision
            )
        elif condition:
            cond = ConnectionCondition(**condition)
        else:
            cond = None
        connection = WorkflowConnection(
            id=f"{from_id}-{to_id}-{len(self.connections)}",
            template_id=self.template.id,
            from_node_id=from_id,
            to_node_id=to_id,
            label=label,
            condition=cond,
        )
        self.connections.append(connection)
        return connection

    async def save(self, store) -> str:
        await store.save_template(self.template)
        for node in self.nodes.values():
            await store.save_node(node)
        for connection in self.connections:
            await store.save_connection(connection)
        return self.template.id


@pytest.fixture
def builder():
    return GraphBuilder()


@pytest.fixture
def directory():
    """Directory with one user per role, all on project ``p1``."""

    d = InMemoryDirectory()
    d.add_role("writer", department_id="ops", name="Writer")
    d.add_role("reviewer", department_id="ops", name="Reviewer")
    d.add_role("legal", department_id="legal-dept", name="Legal")
    d.add_role("finance", department_id="money", name="Finance")
    d.add_role("admin", name="Superadmin")
    d.add_user("alice", roles=["writer"], projects=["p1"])
    d.add_user("bob", roles=["reviewer"], projects=["p1"])
    d.add_user("carol", roles=["legal"], projects=["p1"])
    d.add_user("dave", roles=["finance"], projects=["p1"])
    d.add_user("root", roles=["admin"])
    return d


@pytest.fixture
def store():
    return InMemoryTemplateStore()


@pytest.fixture
def repo():
    repository = InMemoryWorkflowRepository()
    persistence._repository_instance = repository
    yield repository
    persistence._repository_instance = None


@pytest.fixture
def engine(repo, store, directory):
    return WorkflowEngine(directory, repository=repo, templates=store)
