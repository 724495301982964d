"""promptbench tests -- add, list, show and remove stored test definitions.

Test definitions are authored as YAML files::

    name: capital-city
    prompt: "What is the capital of {{ country }}?"
    variables:
      country: France
    expected_contains: Paris
"""

from __future__ import annotations

from pathlib import Path

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console

from promptbench.cli.common import console, current_user, fail, load_context
from promptbench.cli.output import render_test_detail, render_tests
from promptbench.models.records import TestDefinitionFile

tests_app = typer.Typer(help="Manage stored prompt tests.", no_args_is_help=True)


def _load_definition_file(path: Path) -> TestDefinitionFile:
    if not path.exists():
        fail(f"File not found: {path}")
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        fail(f"Invalid YAML in {path}: {exc}")
    if not isinstance(raw, dict):
        fail(f"{path} must contain a YAML mapping")
    try:
        return TestDefinitionFile.model_validate(raw)
    except ValidationError as exc:
        fail(f"Invalid test definition in {path}:\n{exc}")


@tests_app.command("add")
def add_test(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Path to a test definition YAML file"),
) -> None:
    """Store a test definition from a YAML file."""
    definition_file = _load_definition_file(path)
    context = load_context()
    test = definition_file.to_definition(current_user(ctx, context))
    context.store.save_test(test)
    Console().print(f"[green]Stored[/green] test [bold]{test.id}[/bold] ({test.name})")


@tests_app.command("list")
def list_tests(ctx: typer.Context) -> None:
    """List stored tests."""
    context = load_context()
    tests = context.store.list_tests(current_user(ctx, context))
    if not tests:
        console.print("[yellow]No tests stored. Add one with `promptbench tests add`.[/yellow]")
        return
    render_tests(tests, Console())


@tests_app.command("show")
def show_test(ctx: typer.Context, test_id: str = typer.Argument(..., help="Stored test ID")) -> None:
    """Show one stored test."""
    context = load_context()
    test = context.store.get_test(test_id, current_user(ctx, context))
    if test is None:
        fail(f"Test not found: {test_id}")
    render_test_detail(test, Console())


@tests_app.command("remove")
def remove_test(ctx: typer.Context, test_id: str = typer.Argument(..., help="Stored test ID")) -> None:
    """Delete a stored test. Its runs are kept."""
    context = load_context()
    if not context.store.delete_test(test_id, current_user(ctx, context)):
        fail(f"Test not found: {test_id}")
    Console().print(f"Removed test {test_id}")
