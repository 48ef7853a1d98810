"""End-to-end runs of a draft/review workflow with a rejection loop."""

import pytest

from handoff.contracts import ProgressAction
from handoff.engine import WorkflowEngine
from handoff.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    TemplateInvalidError,
    ValidationError,
)
from handoff.persistence import SQLiteWorkflowRepository


def _review_template(builder):
    builder.node("start", "start")
    builder.node("draft", "role", label="Draft", role_id="writer")
    builder.node("review", "approval", label="Review", approver_role_id="reviewer")
    builder.node("end", "end", label="Done")
    builder.connect("start", "draft")
    builder.connect("draft", "review")
    builder.connect("review", "end", decision="approved")
    builder.connect("review", "draft", decision="rejected")
    return builder


async def _open_step(engine, instance_id, node_id):
    steps = await engine.list_active_steps(instance_id)
    matches = [s for s in steps if s.node_id == node_id and s.status == "active"]
    assert len(matches) == 1, steps
    return matches[0]


@pytest.mark.asyncio
async def test_rejection_loop_then_completion(engine, store, builder):
    template_id = await _review_template(builder).save(store)
    instance = await engine.start_instance(template_id, "p1", started_by="alice")
    assert instance.status == "active"
    assert instance.current_node_id == "draft"

    draft = await _open_step(engine, instance.id, "draft")
    assert draft.branch_id == "main"
    result = await engine.progress(instance.id, draft.id, "alice", ProgressAction())
    assert result.success
    assert [s.node_id for s in result.new_steps] == ["review"]

    view = await engine.load_actionable(instance.id, "bob")
    assert view.can_act
    assert view.allowed_decisions == ["approved", "rejected"]
    previews = {p.decision: p.node_id for p in view.next_node_preview}
    assert previews == {"approved": "end", "rejected": "draft"}
    assert [r.node_id for r in view.required_assignments] == ["draft"]
    assert view.required_assignments[0].eligible_user_ids == ["alice"]

    review = view.active_step
    with pytest.raises(ValidationError):
        await engine.progress(instance.id, review.id, "bob", ProgressAction())
    with pytest.raises(ValidationError):
        # going back to a role node needs someone chosen
        await engine.progress(
            instance.id, review.id, "bob", ProgressAction(decision="rejected")
        )
    await engine.progress(
        instance.id,
        review.id,
        "bob",
        ProgressAction(decision="rejected", feedback="Needs work", assigned_user_id="alice"),
    )

    redo = await _open_step(engine, instance.id, "draft")
    assert redo.assigned_user_id == "alice"
    await engine.progress(instance.id, redo.id, "alice", ProgressAction())
    review = await _open_step(engine, instance.id, "review")
    result = await engine.progress(
        instance.id, review.id, "bob", ProgressAction(decision="approved")
    )
    assert result.completed
    assert result.instance.status == "completed"
    assert result.instance.current_node_id == "end"
    assert result.instance.completed_at is not None

    history = await engine.history(instance.id)
    assert [(h.from_node_id, h.to_node_id) for h in history] == [
        ("start", "draft"),
        ("draft", "review"),
        ("review", "draft"),
        ("draft", "review"),
        ("review", "end"),
    ]
    assert history[0].notes == "Workflow started"
    assert history[2].decision == "rejected"
    assert history[2].feedback == "Needs work"
    assert history[2].handed_off_by == "bob"

    approvals = await engine.repository.list_approvals(instance.id)
    assert [a.decision for a in approvals] == ["rejected", "approved"]
    assert await engine.list_active_steps(instance.id) == []

    done = await engine.load_actionable(instance.id, "bob")
    assert not done.can_act
    assert done.active_step is None
    with pytest.raises(ConflictError):
        await engine.progress(
            instance.id, review.id, "bob", ProgressAction(decision="approved")
        )


@pytest.mark.asyncio
async def test_snapshot_is_used_after_template_changes(engine, store, builder):
    template_id = await _review_template(builder).save(store)
    instance = await engine.start_instance(template_id, "p1", started_by="alice")

    await store.delete_node("review")
    builder.node("other", "end")
    await store.save_node(builder.nodes["other"])
    await store.save_connection(builder.connect("draft", "other"))

    draft = await _open_step(engine, instance.id, "draft")
    result = await engine.progress(instance.id, draft.id, "alice", ProgressAction())
    assert [s.node_id for s in result.new_steps] == ["review"]

    stored = await engine.repository.get_instance(instance.id)
    assert {n.id for n in stored.started_snapshot.nodes} == {"start", "draft", "review", "end"}


@pytest.mark.asyncio
async def test_stale_and_repeated_submissions_conflict(engine, store, builder):
    template_id = await _review_template(builder).save(store)
    instance = await engine.start_instance(template_id, "p1", started_by="alice")
    draft = await _open_step(engine, instance.id, "draft")

    await engine.progress(
        instance.id, draft.id, "alice", ProgressAction(expected_updated_at=instance.updated_at)
    )
    # same step again
    with pytest.raises(ConflictError):
        await engine.progress(instance.id, draft.id, "alice", ProgressAction())

    review = await _open_step(engine, instance.id, "review")
    with pytest.raises(ConflictError):
        await engine.progress(
            instance.id,
            review.id,
            "bob",
            ProgressAction(decision="approved", expected_updated_at=instance.updated_at),
        )
    current = await engine.repository.get_instance(instance.id)
    assert current.updated_at > instance.updated_at
    assert current.current_node_id == "review"


@pytest.mark.asyncio
async def test_permission_and_lookup_errors(engine, store, builder):
    template_id = await _review_template(builder).save(store)
    instance = await engine.start_instance(template_id, "p1", started_by="alice")
    draft = await _open_step(engine, instance.id, "draft")

    with pytest.raises(PermissionDeniedError):
        await engine.progress(instance.id, draft.id, "dave", ProgressAction())
    result = await engine.try_progress(instance.id, draft.id, "dave", ProgressAction())
    assert not result.success
    assert result.error_code == "permission_denied"

    with pytest.raises(NotFoundError):
        await engine.progress("missing", draft.id, "alice", ProgressAction())
    with pytest.raises(NotFoundError):
        await engine.progress(instance.id, "missing", "alice", ProgressAction())
    with pytest.raises(ValidationError):
        await engine.progress(
            instance.id, draft.id, "alice", ProgressAction(form_data={"x": 1})
        )

    # superadmins act anywhere
    result = await engine.progress(instance.id, draft.id, "root", ProgressAction())
    assert result.success


@pytest.mark.asyncio
async def test_pipeline_user_waits_for_reserved_step(engine, store, builder):
    template_id = await _review_template(builder).save(store)
    with pytest.raises(NotFoundError):
        await engine.start_instance(template_id, "p1", node_assignments={"ghost": "carol"})

    instance = await engine.start_instance(
        template_id, "p1", started_by="alice", node_assignments={"review": "carol"}
    )
    view = await engine.load_actionable(instance.id, "carol")
    assert not view.can_act
    assert view.is_pipeline
    assert view.pipeline_step_name == "Review"

    draft = await _open_step(engine, instance.id, "draft")
    await engine.progress(instance.id, draft.id, "alice", ProgressAction())

    view = await engine.load_actionable(instance.id, "carol")
    assert view.can_act
    assert view.node.id == "review"
    result = await engine.progress(
        instance.id, view.active_step.id, "carol", ProgressAction(decision="approved")
    )
    assert result.completed


@pytest.mark.asyncio
async def test_start_requires_active_valid_template(engine, store, builder):
    with pytest.raises(NotFoundError):
        await engine.start_instance("missing", "p1")

    builder.node("start", "start")
    template_id = await builder.save(store)
    with pytest.raises(TemplateInvalidError):
        await engine.start_instance(template_id, "p1")


@pytest.mark.asyncio
async def test_cancel_assign_and_delete(engine, store, builder, directory):
    template_id = await _review_template(builder).save(store)
    instance = await engine.start_instance(template_id, "p1", started_by="alice")

    assignment = await engine.assign_node(instance.id, "review", "dave", assigned_by="alice")
    assert assignment.node_id == "review"
    assert [a.user_id for a in await engine.repository.list_node_assignments(instance.id)] == [
        "dave"
    ]
    with pytest.raises(NotFoundError):
        await engine.assign_node(instance.id, "ghost", "dave")

    with pytest.raises(PermissionDeniedError):
        await engine.cancel_instance(instance.id, "bob")
    cancelled = await engine.cancel_instance(instance.id, "alice", reason="no longer needed")
    assert cancelled.status == "cancelled"
    steps = await engine.repository.list_steps(instance.id)
    assert {s.status for s in steps if s.node_id == "draft"} == {"cancelled"}
    history = await engine.history(instance.id)
    assert history[-1].notes == "Workflow cancelled: no longer needed"

    draft = next(s for s in steps if s.node_id == "draft")
    with pytest.raises(ConflictError):
        await engine.progress(instance.id, draft.id, "alice", ProgressAction())
    with pytest.raises(ConflictError):
        await engine.cancel_instance(instance.id, "alice")

    await engine.delete_instance(instance.id)
    with pytest.raises(NotFoundError):
        await engine.delete_instance(instance.id)


@pytest.mark.asyncio
async def test_linear_flow_on_sqlite(tmp_path, store, builder, directory):
    repo = SQLiteWorkflowRepository(tmp_path / "wf.db")
    engine = WorkflowEngine(directory, repository=repo, templates=store)
    template_id = await _review_template(builder).save(store)

    instance = await engine.start_instance(template_id, "p1", started_by="alice")
    draft = await _open_step(engine, instance.id, "draft")
    await engine.progress(instance.id, draft.id, "alice", ProgressAction())
    review = await _open_step(engine, instance.id, "review")
    result = await engine.progress(
        instance.id, review.id, "bob", ProgressAction(decision="approved")
    )
    assert result.completed
    stored = await repo.get_instance(instance.id)
    assert stored.status == "completed"
    assert len(await repo.list_history(instance.id)) == 3
