"""promptbench runs / export / cleanup -- query and export stored runs."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from promptbench.cli.common import console, current_user, fail, load_context
from promptbench.cli.output import (
    output_json,
    render_comparison,
    render_run_detail,
    render_runs,
)
from promptbench.storage.export import (
    export_runs_csv,
    export_runs_json,
    group_runs_for_comparison,
)

runs_app = typer.Typer(help="Inspect stored runs.", no_args_is_help=True)


class ExportFormat(str, Enum):
    json = "json"
    csv = "csv"


@runs_app.command("list")
def list_runs(
    ctx: typer.Context,
    test_id: Optional[str] = typer.Option(None, "--test", "-t", help="Only runs of this test"),
    limit: int = typer.Option(50, "--limit", help="Maximum runs to show"),
    offset: int = typer.Option(0, "--offset", help="Skip this many newest runs"),
    format_json: bool = typer.Option(False, "--json", help="Output pure JSON to stdout"),
) -> None:
    """List stored runs, newest first."""
    context = load_context()
    user_id = current_user(ctx, context)
    runs = context.store.list_runs(user_id, test_id=test_id, limit=limit, offset=offset)
    if format_json:
        output_json(runs)
        return
    if not runs:
        console.print("[yellow]No runs found.[/yellow]")
        return
    names = {t.id: t.name for t in context.store.list_tests(user_id)}
    render_runs(runs, names, Console())


@runs_app.command("show")
def show_run(
    ctx: typer.Context,
    run_id: str = typer.Argument(..., help="Stored run ID"),
    format_json: bool = typer.Option(False, "--json", help="Output pure JSON to stdout"),
) -> None:
    """Show every field of one stored run."""
    context = load_context()
    run = context.store.get_run(run_id, current_user(ctx, context))
    if run is None:
        fail(f"Run not found: {run_id}")
    if format_json:
        output_json(run)
    else:
        render_run_detail(run, Console())


@runs_app.command("remove")
def remove_run(ctx: typer.Context, run_id: str = typer.Argument(..., help="Stored run ID")) -> None:
    """Delete a stored run."""
    context = load_context()
    if not context.store.delete_run(run_id, current_user(ctx, context)):
        fail(f"Run not found: {run_id}")
    Console().print(f"Removed run {run_id}")


@runs_app.command("compare")
def compare_runs(
    ctx: typer.Context,
    test_id: str = typer.Argument(..., help="Stored test ID"),
    per_model: int = typer.Option(5, "--per-model", help="Latest runs per model to include"),
) -> None:
    """Compare the latest finished runs of a test across models."""
    context = load_context()
    user_id = current_user(ctx, context)
    if context.store.get_test(test_id, user_id) is None:
        fail(f"Test not found: {test_id}")
    grouped = group_runs_for_comparison(
        context.store.list_runs(user_id, test_id=test_id), runs_per_model=per_model
    )
    if not grouped:
        console.print("[yellow]No completed or failed runs for this test yet.[/yellow]")
        return
    render_comparison(grouped, Console())


def export(
    ctx: typer.Context,
    export_format: ExportFormat = typer.Option(ExportFormat.json, "--format", "-f", help="json or csv"),
    test_id: Optional[str] = typer.Option(None, "--test", "-t", help="Only runs of this test"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to file instead of stdout"),
) -> None:
    """Export stored runs as JSON or CSV."""
    context = load_context()
    user_id = current_user(ctx, context)
    runs = context.store.list_runs(user_id, test_id=test_id)
    tests = context.store.list_tests(user_id)
    if export_format is ExportFormat.json:
        content = export_runs_json(runs, tests)
    else:
        content = export_runs_csv(runs, tests)

    if output is None:
        typer.echo(content)
    else:
        output.write_text(content + "\n", encoding="utf-8")
        console.print(f"Exported {len(runs)} run(s) to {output}")


def cleanup() -> None:
    """Delete expired rate-limit windows."""
    context = load_context()
    removed = context.rate_limiter.cleanup()
    Console().print(f"Removed {removed} expired rate limit window(s)")
