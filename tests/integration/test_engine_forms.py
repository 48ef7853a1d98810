"""Inline forms: validation, carry-forward and conditional routing."""

import pytest

from handoff.contracts import ProgressAction
from handoff.errors import ValidationError

INTAKE_FIELDS = [
    {"id": "client", "type": "text", "label": "Client", "required": True},
    {"id": "budget", "type": "number", "label": "Budget", "validation": {"min": 1}},
]


def _intake_review(builder):
    builder.node("start", "start")
    builder.node("intake", "form", label="Intake", formName="Client intake", formFields=INTAKE_FIELDS)
    builder.node("review", "approval", label="Review", approver_role_id="reviewer")
    builder.node("end", "end")
    builder.connect("start", "intake")
    builder.connect("intake", "review")
    builder.connect("review", "end", decision="approved")
    builder.connect("review", "intake", decision="rejected")
    return builder


def _budget_router(builder):
    builder.node("start", "start")
    builder.node("intake", "form", label="Intake", formFields=INTAKE_FIELDS)
    builder.node("route", "conditional", label="By budget")
    builder.node("big", "approval", label="Finance sign-off", approver_role_id="finance")
    builder.node("small", "role", label="Handle", role_id="writer")
    builder.node("end", "end")
    builder.connect("start", "intake")
    builder.connect("intake", "route")
    builder.connect(
        "route", "big",
        condition_type="greater_than", source_form_field_id="budget", value=1000,
    )
    builder.connect("route", "small")
    builder.connect("big", "end", decision="approved")
    builder.connect("big", "intake", decision="rejected")
    builder.connect("small", "end")
    return builder


async def _intake_step(engine, instance_id):
    steps = await engine.list_active_steps(instance_id)
    return next(s for s in steps if s.node_id == "intake")


@pytest.mark.asyncio
async def test_invalid_submission_is_rejected(engine, store, builder):
    template_id = await _intake_review(builder).save(store)
    instance = await engine.start_instance(template_id, "p1", started_by="alice")
    intake = await _intake_step(engine, instance.id)

    with pytest.raises(ValidationError) as exc:
        await engine.progress(
            instance.id, intake.id, "alice", ProgressAction(form_data={"budget": 0})
        )
    assert exc.value.field_errors == {
        "client": "Client is required",
        "budget": "Budget must be at least 1",
    }
    assert len(await engine.history(instance.id)) == 1


@pytest.mark.asyncio
async def test_form_carries_forward(engine, store, builder):
    template_id = await _intake_review(builder).save(store)
    instance = await engine.start_instance(template_id, "p1", started_by="alice")
    intake = await _intake_step(engine, instance.id)

    await engine.progress(
        instance.id,
        intake.id,
        "alice",
        ProgressAction(form_data={"client": "Acme", "budget": 300}, form_response_id="resp-1"),
    )
    history = await engine.history(instance.id)
    assert history[-1].form_payload["formName"] == "Client intake"
    assert history[-1].form_response_id == "resp-1"

    view = await engine.load_actionable(instance.id, "bob")
    carried = view.carried_form
    assert carried.mode == "read_only"
    assert carried.source_node_id == "intake"
    assert carried.responses == {"client": "Acme", "budget": 300}
    assert carried.submitted_by == "alice"
    assert [f.id for f in carried.fields] == ["client", "budget"]

    await engine.progress(
        instance.id, view.active_step.id, "bob", ProgressAction(decision="rejected")
    )
    view = await engine.load_actionable(instance.id, "alice")
    assert view.node.id == "intake"
    assert view.carried_form.mode == "prefill"
    assert view.carried_form.responses["client"] == "Acme"


@pytest.mark.asyncio
async def test_conditional_routes_on_submitted_values(engine, store, builder):
    template_id = await _budget_router(builder).save(store)
    instance = await engine.start_instance(template_id, "p1", started_by="alice")
    intake = await _intake_step(engine, instance.id)

    result = await engine.progress(
        instance.id,
        intake.id,
        "alice",
        ProgressAction(form_data={"client": "Acme", "budget": 5000}),
    )
    assert [s.node_id for s in result.new_steps] == ["big"]
    history = await engine.history(instance.id)
    assert [(h.from_node_id, h.to_node_id) for h in history[-2:]] == [
        ("intake", "route"),
        ("route", "big"),
    ]
    assert history[-2].form_payload is not None
    assert history[-1].notes == "Routed by condition"

    await engine.progress(
        instance.id, result.new_steps[0].id, "dave", ProgressAction(decision="rejected")
    )
    intake = await _intake_step(engine, instance.id)
    # the small path needs someone picked to handle it
    with pytest.raises(ValidationError):
        await engine.progress(
            instance.id,
            intake.id,
            "alice",
            ProgressAction(form_data={"client": "Acme", "budget": 10}),
        )
    result = await engine.progress(
        instance.id,
        intake.id,
        "alice",
        ProgressAction(form_data={"client": "Acme", "budget": 10}, assigned_user_id="alice"),
    )
    assert [(s.node_id, s.assigned_user_id) for s in result.new_steps] == [("small", "alice")]


@pytest.mark.asyncio
async def test_preview_looks_past_conditional_nodes(engine, store, builder):
    builder.node("start", "start")
    builder.node("write", "role", label="Write", role_id="writer")
    builder.node("route", "conditional", label="Route")
    builder.node("check", "role", label="Check", role_id="reviewer")
    builder.node("end", "end")
    builder.connect("start", "write")
    builder.connect("write", "route")
    builder.connect("route", "check")
    builder.connect("check", "end")
    template_id = await builder.save(store)
    instance = await engine.start_instance(template_id, "p1", started_by="alice")

    view = await engine.load_actionable(instance.id, "alice")
    assert [(p.node_id, p.requires_assignment) for p in view.next_node_preview] == [
        ("check", True)
    ]
    assert [(r.node_id, r.eligible_user_ids) for r in view.required_assignments] == [
        ("check", ["bob"])
    ]

    step = view.active_step
    refused = await engine.try_progress(instance.id, step.id, "alice", ProgressAction())
    assert not refused.success
    assert refused.error_code == "validation_error"

    result = await engine.progress(
        instance.id, step.id, "alice", ProgressAction(assigned_user_id="bob")
    )
    assert [(s.node_id, s.assigned_user_id) for s in result.new_steps] == [("check", "bob")]
