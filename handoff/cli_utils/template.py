"""Utility functions to read template definition files for the CLI."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple

import yaml

from handoff.models import WorkflowConnection, WorkflowNode, WorkflowTemplate
from handoff.validation import ValidationReport

TEMPLATE_SUFFIXES = (".yaml", ".yml", ".json")

TemplateDefinition = Tuple[WorkflowTemplate, List[WorkflowNode], List[WorkflowConnection]]


def _read_document(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if path.suffix == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a template mapping")
    return data


def load_template_file(path: Path) -> TemplateDefinition:
    """Parse a YAML or JSON template definition.

    The document holds a ``template`` mapping plus ``nodes`` and
    ``connections`` lists; their ``template_id`` defaults to the template's.
    """

    data = _read_document(path)
    template = WorkflowTemplate(**(data.get("template") or {"name": path.stem}))
    nodes = [
        WorkflowNode(**{"template_id": template.id, **item})
        for item in data.get("nodes") or []
    ]
    connections = [
        WorkflowConnection(**{"template_id": template.id, **item})
        for item in data.get("connections") or []
    ]
    return template, nodes, connections


def _iter_template_files(path: Path) -> Iterable[Path]:
    if path.is_file():
        yield path
        return
    for candidate in sorted(path.rglob("*")):
        if candidate.is_file() and candidate.suffix in TEMPLATE_SUFFIXES:
            yield candidate


def iter_template_files(path: Path) -> List[Path]:
    """Template files under ``path`` (or ``path`` itself), sorted."""

    return list(_iter_template_files(path))


def format_report(report: ValidationReport) -> List[str]:
    lines = []
    for issue in report.errors + report.warnings:
        where = f" [{issue.node_id or issue.connection_id}]" if (
            issue.node_id or issue.connection_id
        ) else ""
        lines.append(f"{issue.severity.upper()} {issue.code}{where}: {issue.message}")
    return lines
