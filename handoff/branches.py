"""Branch identifiers and sibling correlation for parallel execution.

Branch ids are stored as ``{base}-{index}_{token}`` strings, e.g.
``main-0_1700000000000``. Forks nest: a branch forked from
``main-1_17`` is ``main-1_17-0_18``. Every fork shares one token across
its siblings, which is all the correlator needs to find them.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict

from .constants import (
    ALL_APPROVED,
    ANY_REJECTED,
    APPROVED,
    NO_APPROVALS,
    REJECTED,
    ROOT_BRANCH,
)

if TYPE_CHECKING:
    from .persistence.models import WorkflowActiveStep, WorkflowApproval

logger = logging.getLogger(__name__)


class BranchId(BaseModel):
    """Parsed form of a ``branch_id`` string."""

    model_config = ConfigDict(frozen=True)

    base: str
    index: Optional[int] = None
    token: Optional[str] = None

    @classmethod
    def parse(cls, raw: str) -> "BranchId":
        head, sep, token = raw.rpartition("_")
        if sep and token:
            base, dash, index = head.rpartition("-")
            if dash and base and index.isdigit():
                return cls(base=base, index=int(index), token=token)
        return cls(base=raw)

    @classmethod
    def root(cls, name: str = ROOT_BRANCH) -> "BranchId":
        return cls(base=name)

    def format(self) -> str:
        if self.index is None:
            return self.base
        return f"{self.base}-{self.index}_{self.token}"

    def __str__(self) -> str:
        return self.format()

    @property
    def is_fork(self) -> bool:
        return self.index is not None

    def child(self, index: int, token: str) -> "BranchId":
        return BranchId(base=self.format(), index=index, token=token)

    def is_within(self, other: "BranchId | str") -> bool:
        """True when this branch equals ``other`` or is nested inside it."""
        outer = str(other)
        mine = self.format()
        return mine == outer or mine.startswith(outer + "-")

    def same_fork(self, other: "BranchId") -> bool:
        return (
            self.is_fork
            and other.is_fork
            and self.base == other.base
            and self.token == other.token
        )


class SiblingStatus(BaseModel):
    """Read-only summary of one parallel sibling branch."""

    branch_id: str
    node_id: Optional[str] = None
    status: str
    decision: Optional[str] = None
    assigned_user_id: Optional[str] = None


def next_fork_token(
    base: BranchId | str, steps: Iterable["WorkflowActiveStep"], now: datetime
) -> str:
    """Millisecond token for a new fork off ``base``, unique within the instance."""
    base_str = str(base)
    used = set()
    for step in steps:
        parsed = step.branch
        if parsed.is_fork and parsed.base == base_str:
            used.add(parsed.token)
    value = int(now.timestamp() * 1000)
    while str(value) in used:
        value += 1
    return str(value)


class BranchCorrelator:
    """Answers sibling questions for steps of a single instance."""

    def _fork_branches(
        self, branch: BranchId, steps: Iterable["WorkflowActiveStep"], instance_id: str
    ) -> Dict[int, BranchId]:
        found: Dict[int, BranchId] = {branch.index: branch}
        for other in steps:
            if other.workflow_instance_id != instance_id:
                continue
            # nested branches carry the sibling branch as a prefix of their base
            for candidate in _branch_and_ancestors(other.branch):
                if candidate.same_fork(branch):
                    found.setdefault(candidate.index, candidate)
        return found

    def _fork_members(
        self,
        fork: BranchId,
        steps: List["WorkflowActiveStep"],
        instance_id: str,
    ) -> List["WorkflowActiveStep"]:
        branches = list(self._fork_branches(fork, steps, instance_id).values())
        return [
            s
            for s in steps
            if s.workflow_instance_id == instance_id
            and any(s.branch.is_within(b) for b in branches)
        ]

    def fork_steps(
        self,
        step: "WorkflowActiveStep",
        steps: Iterable["WorkflowActiveStep"],
        fork: Optional[BranchId] = None,
    ) -> List["WorkflowActiveStep"]:
        """Every other step in any branch of a fork, nested ones included.

        ``fork`` is one branch of an enclosing fork of ``step``; it defaults
        to ``step``'s own branch.
        """
        fork = fork or step.branch
        if not fork.is_fork:
            return []
        members = self._fork_members(fork, list(steps), step.workflow_instance_id)
        return [s for s in members if s.id != step.id]

    def siblings_of(
        self, step: "WorkflowActiveStep", steps: Iterable["WorkflowActiveStep"]
    ) -> List["WorkflowActiveStep"]:
        branch = step.branch
        if not branch.is_fork:
            return []
        return [
            other
            for other in steps
            if other.id != step.id
            and other.workflow_instance_id == step.workflow_instance_id
            and other.branch.same_fork(branch)
            and other.branch.index != branch.index
        ]

    def all_siblings_completed(
        self,
        step: "WorkflowActiveStep",
        steps: Iterable["WorkflowActiveStep"],
        can_reach: Optional[Callable[[str], bool]] = None,
    ) -> bool:
        """True when no branch of any fork enclosing ``step`` still has active work.

        Every fork level of ``step``'s branch is checked, not only the
        innermost one. With ``can_reach`` only active steps whose node can
        still lead to the join count. Steps parked at a sync (``waiting``)
        count as done; ``step`` itself is ignored.
        """
        steps = list(steps)
        for fork in _branch_and_ancestors(step.branch):
            if not fork.is_fork:
                continue
            for other in self._fork_members(fork, steps, step.workflow_instance_id):
                if other.id == step.id or other.status != "active":
                    continue
                if can_reach is not None and not can_reach(other.node_id):
                    continue
                logger.debug(
                    f"Branch {other.branch_id} still active at node {other.node_id}"
                )
                return False
        return True

    def joined_fork(
        self, step: "WorkflowActiveStep", steps: Iterable["WorkflowActiveStep"]
    ) -> Optional[BranchId]:
        """Outermost fork of ``step`` with another branch parked at the same node.

        Returns the branch of that fork which contains ``step``, or ``None``
        when no other branch of any enclosing fork waits at ``step.node_id``.
        """
        steps = list(steps)
        joined: Optional[BranchId] = None
        for fork in _branch_and_ancestors(step.branch):
            if not fork.is_fork:
                continue
            for other in self._fork_members(fork, steps, step.workflow_instance_id):
                if (
                    other.id != step.id
                    and other.status == "waiting"
                    and other.node_id == step.node_id
                    and not other.branch.is_within(fork)
                ):
                    joined = fork
                    break
        return joined

    def sibling_statuses(
        self,
        step: "WorkflowActiveStep",
        steps: Iterable["WorkflowActiveStep"],
        approvals: Iterable["WorkflowApproval"] = (),
    ) -> List[SiblingStatus]:
        branch = step.branch
        if not branch.is_fork:
            return []
        steps = list(steps)
        approvals = list(approvals)
        result: List[SiblingStatus] = []
        forks = self._fork_branches(branch, steps, step.workflow_instance_id)
        for index, sibling in sorted(forks.items()):
            if index == branch.index:
                continue
            members = [s for s in steps if s.branch.is_within(sibling)]
            latest = max(members, key=lambda s: s.activated_at, default=None)
            decision = _latest_decision(approvals, sibling)
            result.append(
                SiblingStatus(
                    branch_id=sibling.format(),
                    node_id=latest.node_id if latest else None,
                    status=latest.status if latest else "unknown",
                    decision=decision,
                    assigned_user_id=latest.assigned_user_id if latest else None,
                )
            )
        return result

    def aggregate_decision(
        self,
        step: "WorkflowActiveStep",
        steps: Iterable["WorkflowActiveStep"],
        approvals: Iterable["WorkflowApproval"],
        fork: Optional[BranchId] = None,
    ) -> str:
        """Combine the latest decision of every branch of a fork (``step``'s included).

        ``fork`` selects an enclosing fork and defaults to ``step``'s own
        branch. Any rejection wins; unanimous approval is ``all_approved``;
        branches without approvals, or with other decisions only, give
        ``no_approvals``.
        """
        approvals = list(approvals)
        fork = fork or step.branch
        if fork.is_fork:
            scopes = list(
                self._fork_branches(fork, steps, step.workflow_instance_id).values()
            )
        else:
            scopes = [fork]
        decisions = [
            d for d in (_latest_decision(approvals, scope) for scope in scopes) if d
        ]
        if not decisions:
            return NO_APPROVALS
        if REJECTED in decisions:
            return ANY_REJECTED
        if all(d == APPROVED for d in decisions):
            return ALL_APPROVED
        return NO_APPROVALS


def _branch_and_ancestors(branch: BranchId) -> List[BranchId]:
    chain = [branch]
    current = branch
    while current.is_fork:
        current = BranchId.parse(current.base)
        chain.append(current)
    return chain


def _latest_decision(
    approvals: Iterable["WorkflowApproval"], scope: BranchId
) -> Optional[str]:
    latest = None
    for approval in approvals:
        if not BranchId.parse(approval.branch_id).is_within(scope):
            continue
        if latest is None or approval.created_at >= latest.created_at:
            latest = approval
    return latest.decision if latest else None


__all__ = [
    "BranchId",
    "BranchCorrelator",
    "SiblingStatus",
    "next_fork_token",
]
