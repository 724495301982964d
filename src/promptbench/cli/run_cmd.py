"""promptbench run / adhoc / rerun -- execute prompts against providers.

Builds the AppContext, hands the request to TestRunner, renders the
per-attempt results (or raw JSON with --json), and exits 1 when any
attempt failed.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import typer
from pydantic import ValidationError
from rich.console import Console

from promptbench.cli.common import current_user, fail, load_context, parse_variables
from promptbench.cli.output import output_json, render_results
from promptbench.execution.runner import (
    CredentialInactiveError,
    NotRerunnableError,
    RateLimitExceededError,
    RunNotFoundError,
    RunOptions,
    TestNotFoundError,
)
from promptbench.models.records import ModelSelection, RunResult, RunStatus


def _parse_selections(values: list[str]) -> list[ModelSelection]:
    selections = []
    for value in values:
        try:
            selections.append(ModelSelection.parse(value))
        except ValueError as exc:
            fail(str(exc))
    return selections


def _report(results: Sequence[RunResult], format_json: bool) -> None:
    if format_json:
        output_json(results)
    else:
        render_results(results, Console())
    if any(r.status == RunStatus.failed for r in results):
        raise typer.Exit(code=1)


def run(
    ctx: typer.Context,
    test_id: str = typer.Argument(..., help="ID of the stored test to run"),
    models: list[str] = typer.Option(
        ..., "-m", "--model", help="provider:model:key-id (repeatable)"
    ),
    variables: list[str] = typer.Option([], "--var", help="Variable override key=value (repeatable)"),
    batch: int = typer.Option(1, "--batch", "-n", help="Repetitions per model (1-10)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Estimate tokens and cost without calling providers"),
    format_json: bool = typer.Option(False, "--json", help="Output pure JSON to stdout"),
) -> None:
    """Run a stored test against one or more models."""
    context = load_context()
    try:
        options = RunOptions(
            test_id=test_id,
            selections=_parse_selections(models),
            variables=parse_variables(variables),
            batch_count=batch,
            is_dry_run=dry_run,
            user_id=current_user(ctx, context),
        )
    except ValidationError as exc:
        fail(f"Invalid run options:\n{exc}")

    try:
        results = asyncio.run(context.runner.run_test(options))
    except (RateLimitExceededError, TestNotFoundError) as exc:
        fail(str(exc))

    _report(results, format_json)


def adhoc(
    ctx: typer.Context,
    prompt: str = typer.Argument(..., help="Prompt text to send"),
    model: str = typer.Option(..., "-m", "--model", help="provider:model:key-id"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Estimate tokens and cost without calling the provider"),
    format_json: bool = typer.Option(False, "--json", help="Output pure JSON to stdout"),
) -> None:
    """Run a one-off prompt that is not stored as a test."""
    context = load_context()
    selection = _parse_selections([model])[0]
    try:
        result = asyncio.run(
            context.runner.run_adhoc_prompt(
                current_user(ctx, context), prompt, selection, is_dry_run=dry_run
            )
        )
    except (RateLimitExceededError, ValueError) as exc:
        fail(str(exc))

    _report([result], format_json)


def rerun(
    ctx: typer.Context,
    run_id: str = typer.Argument(..., help="ID of the run to repeat"),
    format_json: bool = typer.Option(False, "--json", help="Output pure JSON to stdout"),
) -> None:
    """Repeat a stored run with its original model, key and variables."""
    context = load_context()
    try:
        results = asyncio.run(context.runner.rerun_from_run(run_id, current_user(ctx, context)))
    except (
        RunNotFoundError,
        CredentialInactiveError,
        NotRerunnableError,
        RateLimitExceededError,
        TestNotFoundError,
    ) as exc:
        fail(str(exc))

    _report(results, format_json)
