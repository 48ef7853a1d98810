from datetime import datetime, timedelta, timezone

from handoff.branches import BranchCorrelator, BranchId, next_fork_token
from handoff.persistence.models import WorkflowActiveStep, WorkflowApproval

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _step(node_id, branch_id, status="active", minutes=0):
    return WorkflowActiveStep(
        workflow_instance_id="inst",
        node_id=node_id,
        branch_id=branch_id,
        status=status,
        activated_at=T0 + timedelta(minutes=minutes),
    )


def _approval(branch_id, decision, minutes=0):
    return WorkflowApproval(
        workflow_instance_id="inst",
        node_id="review",
        decision=decision,
        branch_id=branch_id,
        created_at=T0 + timedelta(minutes=minutes),
    )


def test_parse_root_and_forked_branch_ids():
    root = BranchId.parse("main")
    assert root.base == "main"
    assert not root.is_fork

    forked = BranchId.parse("main-1_1700000000000")
    assert forked.base == "main"
    assert forked.index == 1
    assert forked.token == "1700000000000"
    assert forked.format() == "main-1_1700000000000"


def test_parse_nested_branch_keeps_parent_as_base():
    nested = BranchId.parse("main-1_17-0_18")
    assert nested.base == "main-1_17"
    assert nested.index == 0
    assert nested.token == "18"
    assert nested.is_within("main-1_17")
    assert nested.is_within("main")
    assert not nested.is_within("main-0_17")


def test_parse_ignores_underscores_without_fork_suffix():
    assert BranchId.parse("my_branch").base == "my_branch"
    assert not BranchId.parse("my_branch").is_fork


def test_child_builds_fork_ids():
    child = BranchId.root().child(2, "99")
    assert str(child) == "main-2_99"
    assert str(child.child(0, "100")) == "main-2_99-0_100"


def test_next_fork_token_skips_used_tokens():
    now = datetime.fromtimestamp(1700000000, tz=timezone.utc)
    token = next_fork_token("main", [], now)
    assert token == "1700000000000"

    steps = [_step("a", "main-0_1700000000000"), _step("b", "main-1_1700000000000")]
    assert next_fork_token("main", steps, now) == "1700000000001"
    # tokens of other bases do not collide
    assert next_fork_token("main-0_5", steps, now) == "1700000000000"


def test_all_siblings_completed_ignores_the_step_itself():
    correlator = BranchCorrelator()
    mine = _step("legal", "main-0_5")
    other = _step("finance", "main-1_5")
    assert not correlator.all_siblings_completed(mine, [mine, other])

    other.status = "waiting"
    assert correlator.all_siblings_completed(mine, [mine, other])


def test_all_siblings_completed_sees_nested_active_work():
    correlator = BranchCorrelator()
    mine = _step("legal", "main-0_5")
    nested = _step("deep", "main-1_5-0_6")
    parked = _step("sync", "main-1_5", status="waiting")
    assert not correlator.all_siblings_completed(mine, [mine, nested, parked])


def test_non_fork_step_has_no_siblings():
    correlator = BranchCorrelator()
    step = _step("a", "main")
    assert correlator.all_siblings_completed(step, [step, _step("b", "main-0_1")])
    assert correlator.siblings_of(step, [step]) == []
    assert correlator.sibling_statuses(step, [step]) == []


def test_sibling_statuses_report_latest_step_and_decision():
    correlator = BranchCorrelator()
    mine = _step("legal", "main-0_5")
    older = _step("finance", "main-1_5", status="completed", minutes=1)
    newer = _step("finance-approval", "main-1_5", minutes=2)
    approvals = [_approval("main-1_5", "approved", minutes=1)]

    statuses = correlator.sibling_statuses(mine, [mine, older, newer], approvals)
    assert len(statuses) == 1
    assert statuses[0].branch_id == "main-1_5"
    assert statuses[0].node_id == "finance-approval"
    assert statuses[0].status == "active"
    assert statuses[0].decision == "approved"


def test_aggregate_decision():
    correlator = BranchCorrelator()
    mine = _step("sync", "main-0_5", status="waiting")
    sibling = _step("sync", "main-1_5", status="waiting")
    steps = [mine, sibling]

    assert correlator.aggregate_decision(mine, steps, []) == "no_approvals"
    approvals = [_approval("main-0_5", "approved"), _approval("main-1_5", "approved")]
    assert correlator.aggregate_decision(mine, steps, approvals) == "all_approved"
    approvals.append(_approval("main-1_5", "rejected", minutes=1))
    assert correlator.aggregate_decision(mine, steps, approvals) == "any_rejected"


def test_aggregate_decision_uses_latest_decision_per_branch():
    correlator = BranchCorrelator()
    mine = _step("sync", "main-0_5", status="waiting")
    sibling = _step("sync", "main-1_5", status="waiting")
    approvals = [
        _approval("main-0_5", "approved"),
        _approval("main-1_5", "rejected", minutes=1),
        _approval("main-1_5", "approved", minutes=2),
    ]
    assert correlator.aggregate_decision(mine, [mine, sibling], approvals) == "all_approved"


def test_fork_steps_collects_every_branch_of_the_fork():
    correlator = BranchCorrelator()
    mine = _step("legal", "main-0_5")
    sibling = _step("finance", "main-1_5")
    nested = _step("deep", "main-1_5-0_6")
    unrelated = _step("x", "main-0_9")
    found = correlator.fork_steps(mine, [mine, sibling, nested, unrelated])
    assert {s.node_id for s in found} == {"finance", "deep"}


def test_all_siblings_completed_checks_every_enclosing_fork():
    correlator = BranchCorrelator()
    mine = _step("join", "main-0_5-1_6", status="waiting")
    inner = _step("join", "main-0_5-0_6", status="waiting")
    outer = _step("budget", "main-1_5")
    steps = [mine, inner, outer]
    assert not correlator.all_siblings_completed(mine, steps)
    # work that can no longer reach the join does not hold it
    assert correlator.all_siblings_completed(
        mine, steps, can_reach=lambda node_id: node_id != "budget"
    )
    outer.status = "completed"
    assert correlator.all_siblings_completed(mine, steps)


def test_joined_fork_is_the_outermost_fork_parked_at_the_node():
    correlator = BranchCorrelator()
    style = _step("join", "main-0_5-0_6", status="waiting")
    cost = _step("join", "main-0_5-1_6", status="waiting")
    assert correlator.joined_fork(cost, [style, cost]) == BranchId.parse("main-0_5-1_6")

    budget = _step("join", "main-1_5", status="waiting")
    assert correlator.joined_fork(budget, [style, cost, budget]) == BranchId.parse("main-1_5")
    assert correlator.joined_fork(cost, [style, cost, budget]) == BranchId.parse("main-0_5")

    elsewhere = _step("other", "main-1_5", status="waiting")
    assert correlator.joined_fork(cost, [cost, elsewhere]) is None


def test_aggregate_decision_over_an_enclosing_fork():
    correlator = BranchCorrelator()
    budget = _step("join", "main-1_5", status="waiting")
    style = _step("join", "main-0_5-0_6", status="waiting")
    steps = [budget, style]
    approvals = [_approval("main-1_5", "approved"), _approval("main-0_5-0_6", "rejected")]
    outer = BranchId.parse("main-1_5")
    assert correlator.aggregate_decision(budget, steps, approvals, fork=outer) == "any_rejected"
    assert correlator.aggregate_decision(style, steps, approvals) == "any_rejected"
