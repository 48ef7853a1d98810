"""Shared constants for handoff."""

ROOT_BRANCH = "main"
MAX_CONDITIONAL_HOPS = 10

APPROVED = "approved"
REJECTED = "rejected"
ALL_APPROVED = "all_approved"
ANY_REJECTED = "any_rejected"
NO_APPROVALS = "no_approvals"

APPROVAL_DECISION_CONDITION = "approval_decision"
INLINE_FORM_NOTE = "inline_form"
