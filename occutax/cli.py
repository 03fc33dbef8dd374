"""Occupation taxonomy CLI.

Commands:
- init: Create the schema and install audit triggers
- install-audit: (Re)install audit triggers on an existing schema
- serve: Run the HTTP API
- tree: Show root groups or the children of one node
- assign-parent: Link an occupation under a group or occupation
- merge: Merge one occupation into another
- audit-log: Show recent audit rows
- stats: Show audit and coverage statistics
"""

from __future__ import annotations

import asyncio
import getpass
import json

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from occutax.audit.context import audited_session
from occutax.audit.queries import audit_stats, list_audit_logs
from occutax.audit.triggers import install_audit_triggers
from occutax.config import get_config
from occutax.core.errors import TaxonomyError
from occutax.core.logging import configure_logging
from occutax.db.connection import close_db, get_engine, get_session, init_db
from occutax.graph import merge as merge_ops
from occutax.graph import relationships
from occutax.models import AuditContext, AuditFilters
from occutax.reporting.dashboard_metrics import compute_dashboard_metrics

app = typer.Typer(
    name="occutax",
    help="Occupation taxonomy - hierarchy integrity and audit trail",
    no_args_is_help=True,
)

console = Console()


def _cli_context() -> AuditContext:
    return AuditContext(user_id=getpass.getuser(), user_agent="occutax-cli")


def _run(coro):
    """Run a coroutine, then dispose the engine; taxonomy errors exit with code 1."""

    async def _wrapped():
        try:
            return await coro
        finally:
            await close_db()

    try:
        return asyncio.run(_wrapped())
    except TaxonomyError as exc:
        console.print(f"[bold red]✗ {exc.code}:[/bold red] {exc.message}")
        raise typer.Exit(code=1) from exc


@app.callback()
def main():
    configure_logging()


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema and audit triggers."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")
    if drop:
        console.print("[yellow]Dropping existing tables...[/yellow]")

    _run(init_db(drop=drop, audit=config.audit.enabled))
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command(name="install-audit")
def install_audit():
    """Install (or replace) the audit triggers on every audited table."""

    async def _install():
        async with get_engine().begin() as conn:
            return await conn.run_sync(install_audit_triggers)

    count = _run(_install())
    console.print(f"[bold green]✓[/bold green] {count} audit triggers installed")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind"),
    port: int = typer.Option(8001, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload (dev only)"),
):
    """Run the taxonomy HTTP API."""
    import uvicorn

    typer.echo(f"Starting taxonomy API on http://{host}:{port}")
    uvicorn.run("occutax.web.app:app", host=host, port=port, reload=reload, workers=1)


@app.command()
def tree(
    entity_type: str | None = typer.Argument(None, help="occupation or group"),
    entity_id: int | None = typer.Argument(None, help="Node id"),
):
    """Show root groups, or the direct children of one node."""
    if (entity_type is None) != (entity_id is None):
        raise typer.BadParameter("Give both TYPE and ID, or neither")

    async def _tree():
        async with get_session() as session:
            if entity_type is None:
                return await relationships.get_roots(session)
            return await relationships.get_children(session, entity_type, entity_id)

    nodes = _run(_tree())
    if not nodes:
        console.print("[yellow]No nodes found[/yellow]")
        return

    title = "Roots" if entity_type is None else f"Children of {entity_type}:{entity_id}"
    table = Table(title=title)
    table.add_column("Type", style="cyan")
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Children", justify="right")
    for node in nodes:
        table.add_row(node.type.value, str(node.id), node.name, str(node.child_count))
    console.print(table)


@app.command(name="assign-parent")
def assign_parent(
    child_id: int = typer.Argument(..., help="Occupation id"),
    parent_type: str = typer.Argument(..., help="occupation or group"),
    parent_id: int = typer.Argument(..., help="Parent id"),
):
    """Place an occupation under a parent."""

    async def _assign():
        async with audited_session(_cli_context()) as session:
            return await relationships.assign_parent(session, child_id, parent_type, parent_id)

    result = _run(_assign())
    marker = "[bold green]✓[/bold green]" if result.created else "[yellow]=[/yellow]"
    console.print(f"{marker} {result.message}")


@app.command()
def merge(
    source_id: int = typer.Argument(..., help="Occupation to merge away"),
    target_id: int = typer.Argument(..., help="Occupation that survives"),
):
    """Merge SOURCE into TARGET (labels become synonyms of TARGET)."""

    async def _merge():
        async with audited_session(_cli_context()) as session:
            return await merge_ops.merge_occupations(session, source_id, target_id)

    result = _run(_merge())
    console.print(f"[bold green]✓[/bold green] Occupation {source_id} merged into {target_id}")
    console.print(f"  Synonyms created: {len(result.synonyms_created)}")
    console.print(f"  Synonyms linked: {result.synonyms_linked}")
    console.print(f"  Relationships removed: {result.relationships_removed}")


@app.command(name="audit-log")
def audit_log(
    table_name: str | None = typer.Option(None, "--table", help="Filter by table"),
    operation: str | None = typer.Option(None, "--operation", help="INSERT, UPDATE or DELETE"),
    user_id: str | None = typer.Option(None, "--user", help="Filter by acting user"),
    record_id: str | None = typer.Option(None, "--record", help="Filter by record id"),
    page: int = typer.Option(1, help="Page number"),
    limit: int = typer.Option(20, help="Rows per page"),
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON"),
):
    """Show audit rows, newest first."""
    try:
        filters = AuditFilters(
            table_name=table_name, operation=operation, user_id=user_id, record_id=record_id
        )
    except ValidationError as exc:
        raise typer.BadParameter(f"Invalid operation '{operation}'") from exc

    async def _list():
        async with get_session() as session:
            return await list_audit_logs(session, filters, page=page, limit=limit)

    result = _run(_list())
    if as_json:
        typer.echo(json.dumps(result.model_dump(mode="json", by_alias=True), indent=2))
        return

    pages = max(result.total_pages, 1)
    table = Table(title=f"Audit log (page {result.page}/{pages}, {result.total} rows)")
    table.add_column("When", style="dim")
    table.add_column("Table", style="cyan")
    table.add_column("Record", justify="right")
    table.add_column("Op")
    table.add_column("User")
    for entry in result.data:
        table.add_row(
            entry.timestamp.isoformat(timespec="seconds"),
            entry.table_name,
            entry.record_id,
            entry.operation.value,
            entry.user_id or "-",
        )
    console.print(table)


@app.command()
def stats(
    days: int | None = typer.Option(None, help="Recent activity window in days"),
):
    """Show audit totals and taxonomy coverage."""
    days = days or get_config().audit.recent_activity_days

    async def _stats():
        async with get_session() as session:
            return await audit_stats(session, days=days), await compute_dashboard_metrics(session)

    audit, metrics = _run(_stats())

    table = Table(title="Taxonomy Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Occupations", str(metrics.total_occupations))
    table.add_row("Synonyms", str(metrics.total_synonyms))
    table.add_row("Groups", str(metrics.total_groups))
    table.add_row("Sources", str(metrics.total_sources))
    table.add_row("Unlinked occupations", str(metrics.unlinked_occupations))
    table.add_row("Avg synonyms/occupation", f"{metrics.avg_synonyms_per_occupation:.2f}")
    table.add_row("Audit rows", str(audit.total))
    console.print(table)

    if audit.by_table:
        by_table = Table(title="Audit rows by table")
        by_table.add_column("Table", style="cyan")
        by_table.add_column("Rows", justify="right")
        for bucket in audit.by_table:
            by_table.add_row(bucket.key, str(bucket.count))
        console.print(by_table)

    if audit.recent_activity:
        console.print(f"\n[bold]Last {days} days:[/bold]")
        for bucket in audit.recent_activity:
            console.print(f"  {bucket.key}: {bucket.count}")


if __name__ == "__main__":
    app()
