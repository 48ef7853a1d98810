import pytest

from handoff.config import EngineConfig
from handoff.graph import GraphView
from handoff.persistence.models import (
    WorkflowActiveStep,
    WorkflowInstance,
    WorkflowNodeAssignment,
)
from handoff.security import AccessEvaluator


@pytest.fixture
def graph(builder):
    builder.node("draft", "role", role_id="writer")
    builder.node("legal", "department", department_id="legal-dept")
    builder.node("review", "approval", approver_role_id="reviewer")
    builder.node("notes", "role")
    return GraphView(builder.nodes.values(), builder.connections)


@pytest.fixture
def instance():
    return WorkflowInstance(template_id="t1", project_id="p1")


def _step(instance, node_id, assigned=None):
    return WorkflowActiveStep(
        workflow_instance_id=instance.id, node_id=node_id, assigned_user_id=assigned
    )


@pytest.mark.asyncio
async def test_superadmin_bypasses_project(directory, graph, instance):
    evaluator = AccessEvaluator(directory)
    decision = await evaluator.can_act("root", instance, _step(instance, "draft"), graph)
    assert decision.allowed
    assert decision.rule == "superadmin"


@pytest.mark.asyncio
async def test_project_membership_required(directory, graph, instance):
    directory.add_user("eve", roles=["writer"])
    evaluator = AccessEvaluator(directory)
    decision = await evaluator.can_act("eve", instance, _step(instance, "draft"), graph)
    assert not decision.allowed
    assert decision.rule == "project"

    relaxed = AccessEvaluator(directory, EngineConfig(require_project_assignment=False))
    decision = await relaxed.can_act("eve", instance, _step(instance, "draft"), graph)
    assert decision.allowed


@pytest.mark.asyncio
async def test_role_and_department_gates(directory, graph, instance):
    evaluator = AccessEvaluator(directory)
    assert (await evaluator.can_act("alice", instance, _step(instance, "draft"), graph)).allowed
    denied = await evaluator.can_act("bob", instance, _step(instance, "draft"), graph)
    assert not denied.allowed
    assert denied.rule == "entity"

    assert (await evaluator.can_act("carol", instance, _step(instance, "legal"), graph)).allowed
    assert not (await evaluator.can_act("dave", instance, _step(instance, "legal"), graph)).allowed
    assert (await evaluator.can_act("bob", instance, _step(instance, "review"), graph)).allowed


@pytest.mark.asyncio
async def test_node_without_entity_is_open_to_project(directory, graph, instance):
    evaluator = AccessEvaluator(directory)
    decision = await evaluator.can_act("dave", instance, _step(instance, "notes"), graph)
    assert decision.allowed
    assert decision.rule == "open_node"


@pytest.mark.asyncio
async def test_explicit_assignments_override_role(directory, graph, instance):
    evaluator = AccessEvaluator(directory)
    step = _step(instance, "draft", assigned="dave")
    assert (await evaluator.can_act("dave", instance, step, graph)).rule == "assigned_user"

    reservation = WorkflowNodeAssignment(
        workflow_instance_id=instance.id, node_id="draft", user_id="bob"
    )
    decision = await evaluator.can_act(
        "bob", instance, _step(instance, "draft"), graph, [reservation]
    )
    assert decision.allowed
    assert decision.rule == "node_assignment"


@pytest.mark.asyncio
async def test_pipeline_user_is_told_about_upcoming_step(directory, graph, instance):
    evaluator = AccessEvaluator(directory)
    reservation = WorkflowNodeAssignment(
        workflow_instance_id=instance.id, node_id="review", user_id="dave"
    )
    decision = await evaluator.can_act(
        "dave", instance, _step(instance, "draft"), graph, [reservation], ["draft"]
    )
    assert not decision.allowed
    assert decision.is_pipeline
    assert decision.pipeline_step_name == "review"

    # once the reserved node is open it is no longer "upcoming"
    decision = await evaluator.can_act(
        "dave", instance, _step(instance, "draft"), graph, [reservation], ["draft", "review"]
    )
    assert not decision.is_pipeline


@pytest.mark.asyncio
async def test_eligible_users(directory, graph):
    evaluator = AccessEvaluator(directory)
    assert await evaluator.eligible_users(graph.node("draft")) == ["alice"]
    assert await evaluator.eligible_users(graph.node("legal")) == ["carol"]
    assert await evaluator.eligible_users(graph.node("notes")) is None
