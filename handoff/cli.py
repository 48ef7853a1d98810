"""Command line interface for inspecting handoff workflows."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer

from handoff.cli_utils.template import (
    format_report,
    iter_template_files,
    load_template_file,
)
from handoff.config import load_config
from handoff.db import TemplateDB
from handoff.errors import WorkflowError
from handoff.persistence import get_repository
from handoff.validation import validate_template

app = typer.Typer(help="CLI for handoff workflows")

# Command groups
instance_app = typer.Typer(help="Commands for inspecting workflow instances")
template_app = typer.Typer(help="Commands for managing workflow templates")

app.add_typer(instance_app, name="instance")
app.add_typer(template_app, name="template")


@app.callback()
def main() -> None:
    """Handoff CLI entry point."""
    pass


@instance_app.command("list")
def instance_list(
    project: Optional[str] = typer.Option(None, help="Only show this project"),
    status: Optional[str] = typer.Option(None, help="active, completed or cancelled"),
) -> None:
    """
    List workflow instances with their status.

    Example:
        handoff instance list --status active
        # Output: 6f1c...    onboarding    proj-1    active
    """
    repo = get_repository()
    instances = asyncio.run(repo.list_instances(project_id=project, status=status))
    if not instances:
        typer.echo("No instances found")
        return
    for inst in instances:
        typer.echo(f"{inst.id}\t{inst.template_id}\t{inst.project_id}\t{inst.status}")


@instance_app.command("show")
def instance_show(instance_id: str) -> None:
    """
    Show an instance and its open steps.

    Example:
        handoff instance show 6f1c...
        # Output: Instance 6f1c...: active
        #         - review [main]: active (assigned to u2)
    """
    repo = get_repository()
    inst = asyncio.run(repo.get_instance(instance_id))
    if inst is None:
        typer.echo("Instance not found")
        raise typer.Exit(code=1)
    steps = asyncio.run(repo.list_steps(instance_id))

    typer.echo(f"Instance {inst.id}: {inst.status}")
    template_name = inst.started_snapshot.template_name if inst.started_snapshot else None
    typer.echo(f"Template: {template_name or inst.template_id}")
    typer.echo(f"Project: {inst.project_id}")
    if inst.current_node_id:
        typer.echo(f"Current node: {inst.current_node_id}")
    for step in steps:
        if not step.is_open:
            continue
        typer.echo(
            f"- {step.node_id} [{step.branch_id}]: {step.status}"
            + (f" (assigned to {step.assigned_user_id})" if step.assigned_user_id else "")
        )


@instance_app.command("history")
def instance_history(instance_id: str) -> None:
    """Print the handoff history of an instance, oldest first."""

    repo = get_repository()
    if asyncio.run(repo.get_instance(instance_id)) is None:
        typer.echo("Instance not found")
        raise typer.Exit(code=1)
    rows = asyncio.run(repo.list_history(instance_id))
    if not rows:
        typer.echo("No history recorded")
        return
    for row in rows:
        line = f"{row.handed_off_at.isoformat()}\t{row.from_node_id or '-'} -> {row.to_node_id or '-'}"
        if row.decision:
            line += f"\t{row.decision}"
        if row.handed_off_by:
            line += f"\tby {row.handed_off_by}"
        typer.echo(line)


@instance_app.command("delete")
def instance_delete(
    instance_id: str,
    yes: bool = typer.Option(False, "--yes", help="Do not ask for confirmation"),
) -> None:
    """Delete an instance together with its steps and history."""

    if not yes:
        typer.confirm(f"Delete instance {instance_id}?", abort=True)
    repo = get_repository()
    if not asyncio.run(repo.delete_instance(instance_id)):
        typer.echo("Instance not found")
        raise typer.Exit(code=1)
    typer.echo(f"Deleted instance {instance_id}")


@template_app.command("check")
def template_check(path: Path) -> None:
    """
    Validate template definition files.

    Accepts a YAML/JSON file or a directory of them. Exits with code 1
    when any template has errors; warnings are printed but do not fail.

    Example:
        handoff template check ./templates
        # Output: onboarding.yaml: OK (1 warning)
        #         WARNING ORPHANED_NODE [notes]: Node "Notes" is not connected
    """
    if not path.exists():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    failed = False
    files = iter_template_files(path)
    if not files:
        typer.echo("No template files found.")
        return
    for file in files:
        try:
            _, nodes, connections = load_template_file(file)
        except (ValueError, OSError) as exc:
            typer.secho(f"{file.name}: cannot be read: {exc}", fg=typer.colors.RED)
            failed = True
            continue
        report = validate_template(nodes, connections)
        if report.is_valid:
            suffix = f" ({len(report.warnings)} warning(s))" if report.warnings else ""
            typer.echo(f"{file.name}: OK{suffix}")
        else:
            typer.secho(f"{file.name}: INVALID", fg=typer.colors.RED)
            failed = True
        for line in format_report(report):
            typer.echo(f"  {line}")
    if failed:
        raise typer.Exit(code=1)


@template_app.command("import")
def template_import(
    path: Path,
    database_url: Optional[str] = typer.Option(
        None, help="SQLAlchemy URL of the template database"
    ),
) -> None:
    """
    Store a template definition file in the template database.

    Example:
        handoff template import onboarding.yaml --database-url sqlite+aiosqlite:///templates.db
    """
    url = database_url or load_config().template_database_url
    if not url:
        typer.secho("No template database configured", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    template, nodes, connections = load_template_file(path)

    async def _store() -> None:
        validate_template(nodes, connections).raise_for_errors()
        db = TemplateDB(url)
        try:
            await db.init_db()
            await db.save_template(template)
            for node in nodes:
                await db.save_node(node)
            for connection in connections:
                await db.save_connection(connection)
        finally:
            await db.dispose()

    try:
        asyncio.run(_store())
    except WorkflowError as exc:
        typer.secho(f"Import failed: {exc.message}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Imported template {template.id} ({len(nodes)} nodes)")


@template_app.command("list")
def template_list(
    database_url: Optional[str] = typer.Option(
        None, help="SQLAlchemy URL of the template database"
    ),
) -> None:
    """List templates stored in the template database."""

    url = database_url or load_config().template_database_url
    if not url:
        typer.secho("No template database configured", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    async def _list():
        db = TemplateDB(url)
        try:
            await db.init_db()
            return await db.list_templates()
        finally:
            await db.dispose()

    templates = asyncio.run(_list())
    if not templates:
        typer.echo("No templates found")
        return
    for template in templates:
        state = "active" if template.is_active else "inactive"
        typer.echo(f"{template.id}\t{template.name}\t{state}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
