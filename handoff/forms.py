"""Inline form handling: submission validation, conditions and carry-forward."""

from __future__ import annotations

import json
import logging
import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .constants import INLINE_FORM_NOTE
from .contracts import CarriedForm
from .errors import ValidationError
from .graph import GraphView
from .models import ConnectionCondition, FormField, FormSettings, WorkflowNode
from .persistence.models import WorkflowHistory

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
URL_RE = re.compile(r"^https?://\S+$", re.IGNORECASE)


def _is_blank(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, (list, tuple)) and not value)


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if value is None:
        return None
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def _to_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not value:
        return None
    text = str(value).strip().replace("Z", "+00:00")
    try:
        return datetime.fromisoformat(text).replace(tzinfo=None)
    except ValueError:
        return None


def _fmt_number(value: float) -> str:
    return f"{value:g}"


# ----------------------------------------------------------------------
# Visibility and validation


def is_field_visible(field: FormField, data: Dict[str, Any]) -> bool:
    if field.conditional is None:
        return True
    return data.get(field.conditional.show_if) == field.conditional.equals


def _check_value(field: FormField, value: Any) -> Optional[str]:
    name = field.display_name
    kind = field.type
    if kind == "email":
        if not EMAIL_RE.match(str(value)):
            return f"{name} must be a valid email address"
    elif kind == "url":
        if not URL_RE.match(str(value)):
            return f"{name} must be a valid URL"
    elif kind == "number":
        number = _to_number(value)
        if number is None:
            return f"{name} must be a number"
        rules = field.validation
        if rules and rules.min is not None and number < rules.min:
            return f"{name} must be at least {_fmt_number(rules.min)}"
        if rules and rules.max is not None and number > rules.max:
            return f"{name} must be at most {_fmt_number(rules.max)}"
    elif kind == "date":
        if _to_datetime(value) is None:
            return f"{name} must be a valid date"
    elif kind == "dropdown":
        if field.options and str(value) not in field.options:
            return f"{name} must be one of: {', '.join(field.options)}"
    elif kind == "multiselect":
        if not isinstance(value, (list, tuple)):
            return f"{name} must be a list of options"
        if field.options:
            unknown = [v for v in value if str(v) not in field.options]
            if unknown:
                return f"{name} contains unknown options: {', '.join(map(str, unknown))}"
    elif kind == "checkbox":
        if not isinstance(value, bool) and str(value).lower() not in ("true", "false", "yes", "no"):
            return f"{name} must be checked or unchecked"

    rules = field.validation
    if rules and rules.pattern and kind in ("text", "textarea", "email", "url"):
        if not re.search(rules.pattern, str(value)):
            return rules.message or f"{name} has an invalid format"
    return None


def validate_form_submission(
    fields: Sequence[FormField], data: Optional[Dict[str, Any]]
) -> Dict[str, str]:
    """Return ``{field_id: message}`` for every invalid visible field."""

    data = data or {}
    errors: Dict[str, str] = {}
    for field in fields:
        if not is_field_visible(field, data):
            continue
        value = data.get(field.id)
        if _is_blank(value):
            if field.required:
                errors[field.id] = f"{field.display_name} is required"
            continue
        message = _check_value(field, value)
        if message:
            errors[field.id] = message
    return errors


def ensure_valid_submission(node: WorkflowNode, data: Optional[Dict[str, Any]]) -> None:
    errors = validate_form_submission(node.form_fields, data)
    if errors:
        first = next(iter(errors.values()))
        raise ValidationError(first, field_errors=errors)


# ----------------------------------------------------------------------
# Conditional edges


def evaluate_condition(condition: ConnectionCondition, data: Dict[str, Any]) -> bool:
    """Evaluate a form condition from a conditional node's edge.

    Text comparisons ignore case. Unknown operators never match.
    """
    if not condition.source_form_field_id or not condition.condition_type:
        return False

    value = data.get(condition.source_form_field_id)
    expected = condition.value
    field_str = "" if value is None else str(value).lower()
    expected_str = "" if expected is None else str(expected).lower()
    op = condition.condition_type

    if op == "equals":
        return field_str == expected_str
    if op == "contains":
        return expected_str in field_str
    if op == "starts_with":
        return field_str.startswith(expected_str)
    if op == "ends_with":
        return field_str.endswith(expected_str)
    if op == "is_empty":
        return _is_blank(value)
    if op == "is_not_empty":
        return not _is_blank(value)
    if op in ("greater_than", "less_than", "greater_or_equal", "less_or_equal", "between"):
        left = _to_number(value)
        right = _to_number(expected)
        if left is None or right is None:
            return False
        if op == "greater_than":
            return left > right
        if op == "less_than":
            return left < right
        if op == "greater_or_equal":
            return left >= right
        if op == "less_or_equal":
            return left <= right
        upper = _to_number(condition.value2)
        return upper is not None and right <= left <= upper
    if op in ("before", "after"):
        left_dt = _to_datetime(value)
        right_dt = _to_datetime(expected)
        if left_dt is None or right_dt is None:
            return False
        return left_dt < right_dt if op == "before" else left_dt > right_dt
    if op == "is_checked":
        return value is True or field_str in ("true", "yes")
    if op == "is_not_checked":
        return value is False or field_str in ("false", "no") or not value

    logger.warning(f"Unknown condition type: {op}")
    return False


# ----------------------------------------------------------------------
# History payloads


def build_form_note(node: WorkflowNode, data: Dict[str, Any]) -> str:
    """Serialise a form submission for the history ``notes`` column."""
    settings = node.settings
    form_name = settings.form_name if isinstance(settings, FormSettings) else None
    return json.dumps(
        {
            "type": INLINE_FORM_NOTE,
            "data": {
                "formName": form_name or node.label,
                "fields": [
                    f.model_dump(mode="json", by_alias=True, exclude_none=True)
                    for f in node.form_fields
                ],
                "responses": data,
            },
        },
        default=str,
    )


def _carried(entry: WorkflowHistory, mode: str) -> CarriedForm:
    payload = entry.form_payload or {}
    fields: List[FormField] = []
    for raw in payload.get("fields") or []:
        if isinstance(raw, dict) and raw.get("id"):
            fields.append(FormField.model_validate(raw))
    return CarriedForm(
        source_node_id=entry.from_node_id,
        form_name=payload.get("formName"),
        fields=fields,
        responses=dict(payload.get("responses") or {}),
        mode=mode,
        submitted_at=entry.handed_off_at,
        submitted_by=entry.handed_off_by,
    )


def find_carried_form(
    node: WorkflowNode, history: Iterable[WorkflowHistory], graph: GraphView
) -> Optional[CarriedForm]:
    """Find the submission a node should show.

    A form node gets its own latest submission back as editable defaults.
    Any other node gets the submission handed to it, else the latest one
    made at any form node, read-only.
    """
    entries = [h for h in history if h.form_payload is not None]
    if not entries:
        return None
    entries.reverse()

    if node.node_type == "form":
        for entry in entries:
            if entry.from_node_id == node.id:
                return _carried(entry, "prefill")
        return None

    for entry in entries:
        if entry.to_node_id == node.id:
            return _carried(entry, "read_only")
    for entry in entries:
        source = graph.get(entry.from_node_id)
        if source is not None and source.node_type == "form":
            return _carried(entry, "read_only")
    return None


def latest_form_responses(history: Iterable[WorkflowHistory]) -> Dict[str, Any]:
    for entry in reversed(list(history)):
        payload = entry.form_payload
        if payload is not None:
            return dict(payload.get("responses") or {})
    return {}


__all__ = [
    "is_field_visible",
    "validate_form_submission",
    "ensure_valid_submission",
    "evaluate_condition",
    "build_form_note",
    "find_carried_form",
    "latest_form_responses",
]
