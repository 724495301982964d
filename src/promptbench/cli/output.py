"""Rich terminal output layer for runs, keys, tests and comparisons.

Tables go to stdout; JSON output is written raw (no markup) for scripting.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Sequence

from pydantic import BaseModel
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from promptbench.models.records import (
    RunRecord,
    RunResult,
    RunStatus,
    StoredCredential,
    TestDefinition,
)

# Status styling: status value -> Rich markup style
_STATUS_STYLES: dict[str, str] = {
    "completed": "green",
    "failed": "red",
    "dry_run": "cyan",
    "running": "yellow",
    "pending": "dim",
}

OUTPUT_PREVIEW_LENGTH = 80


def _status(status: RunStatus) -> str:
    style = _STATUS_STYLES.get(status.value, "white")
    return f"[{style}]{status.value}[/{style}]"


def _passed(passed: bool | None) -> str:
    if passed is None:
        return "[dim]-[/dim]"
    return "[green]✓[/green]" if passed else "[red]✗[/red]"


def _cost(cost: float | None, estimated: bool = False) -> str:
    if cost is None:
        return "-"
    return f"{'~' if estimated else ''}${cost:.6f}"


def _optional(value: int | None, suffix: str = "") -> str:
    return "-" if value is None else f"{value}{suffix}"


def _preview(text: str | None) -> str:
    if not text:
        return ""
    flat = " ".join(text.split())
    if len(flat) > OUTPUT_PREVIEW_LENGTH:
        flat = flat[: OUTPUT_PREVIEW_LENGTH - 3] + "..."
    return escape(flat)


def output_json(payload: BaseModel | Sequence[BaseModel]) -> None:
    """Write one model or a list of models as pure JSON to stdout."""
    if isinstance(payload, BaseModel):
        sys.stdout.write(payload.model_dump_json(indent=2))
    else:
        sys.stdout.write(
            json.dumps([item.model_dump(mode="json") for item in payload], indent=2, ensure_ascii=False)
        )
    sys.stdout.write("\n")


def render_results(results: Sequence[RunResult], console: Console) -> None:
    """Render the per-attempt results of one run/adhoc/rerun call."""
    table = Table(box=box.SIMPLE_HEAD, title="Run results")
    table.add_column("Run", style="dim")
    table.add_column("Model")
    table.add_column("Status")
    table.add_column("Passed", justify="center")
    table.add_column("Latency", justify="right")
    table.add_column("Tokens in/out", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Output / error")

    for result in results:
        detail = result.error_message or result.validation_notes or _preview(result.output)
        table.add_row(
            result.id or "-",
            f"{result.provider}/{result.model}",
            _status(result.status),
            _passed(result.passed),
            _optional(result.latency_ms, " ms"),
            f"{_optional(result.input_tokens)}/{_optional(result.output_tokens)}",
            _cost(result.estimated_cost),
            _preview(detail),
        )

    console.print(table)

    total = sum(r.estimated_cost or 0.0 for r in results)
    failed = sum(1 for r in results if r.status == RunStatus.failed)
    console.print(
        f"[bold]{len(results)}[/bold] run(s), [red]{failed}[/red] failed, "
        f"estimated total [bold]${total:.6f}[/bold]"
    )


def render_runs(runs: Sequence[RunRecord], test_names: dict[str, str], console: Console) -> None:
    """Render a list of stored runs, newest first."""
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("Run", style="dim")
    table.add_column("Test")
    table.add_column("Model")
    table.add_column("Status")
    table.add_column("Passed", justify="center")
    table.add_column("Latency", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Created")

    for run in runs:
        table.add_row(
            run.id,
            escape(test_names.get(run.test_id, run.test_id)) if run.test_id else "[dim]ad-hoc[/dim]",
            f"{run.provider}/{run.model}",
            _status(run.status),
            _passed(run.passed),
            _optional(run.latency_ms, " ms"),
            _cost(run.estimated_cost, run.cost_estimated),
            run.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        )

    console.print(table)


def render_run_detail(run: RunRecord, console: Console) -> None:
    """Render every field of one stored run."""
    table = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
    table.add_column("Key", style="bold")
    table.add_column("Value")

    table.add_row("Run", run.id)
    table.add_row("Test", run.test_id or "ad-hoc")
    table.add_row("Model", f"{run.provider}/{run.model}")
    table.add_row("Key", run.api_key_id)
    table.add_row("Status", _status(run.status))
    if run.batch_id:
        table.add_row("Batch", f"{run.batch_id} #{run.batch_index}")
    if run.variables:
        table.add_row("Variables", escape(", ".join(f"{k}={v}" for k, v in run.variables.items())))
    table.add_row("Latency", _optional(run.latency_ms, " ms"))
    tokens = f"in={_optional(run.input_tokens)} out={_optional(run.output_tokens)}"
    if run.tokens_estimated:
        tokens += " [dim](estimated)[/dim]"
    table.add_row("Tokens", tokens)
    table.add_row("Cost", _cost(run.estimated_cost, run.cost_estimated))
    table.add_row("Passed", _passed(run.passed))
    if run.validation_notes:
        table.add_row("Validation", escape(run.validation_notes))
    if run.error_message:
        table.add_row("Error", f"[red]{escape(run.error_message)}[/red]")
    table.add_row("Created", run.created_at.isoformat())
    if run.completed_at:
        table.add_row("Completed", run.completed_at.isoformat())

    console.print(table)
    console.print("[bold]Prompt[/bold]")
    console.print(run.prompt, markup=False)
    if run.output is not None:
        console.print("[bold]Output[/bold]")
        console.print(run.output, markup=False)


def render_keys(keys: Sequence[StoredCredential], console: Console) -> None:
    """Render stored credentials. Only the last four characters are shown."""
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("Key", style="dim")
    table.add_column("Provider")
    table.add_column("Label")
    table.add_column("Secret")
    table.add_column("Base URL")
    table.add_column("Active", justify="center")
    table.add_column("Last tested")

    for key in keys:
        table.add_row(
            key.id,
            key.provider,
            escape(key.label),
            f"****{key.last_four}",
            key.base_url or "",
            "[green]yes[/green]" if key.is_active else "[red]no[/red]",
            key.last_tested_at.strftime("%Y-%m-%d %H:%M") if key.last_tested_at else "-",
        )

    console.print(table)


def render_tests(tests: Sequence[TestDefinition], console: Console) -> None:
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("Test", style="dim")
    table.add_column("Name")
    table.add_column("Variables")
    table.add_column("Rules")
    table.add_column("Created")

    for test in tests:
        rules = []
        if test.expected_contains:
            rules.append("contains")
        if test.json_schema:
            rules.append("json_schema")
        table.add_row(
            test.id,
            escape(test.name),
            ", ".join(test.default_variables) or "-",
            ", ".join(rules) or "-",
            test.created_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


def render_test_detail(test: TestDefinition, console: Console) -> None:
    console.print(f"[bold]Test:[/bold] {test.id}  [bold]Name:[/bold] {escape(test.name)}")
    if test.description:
        console.print(test.description, markup=False)
    console.print("[bold]Prompt template[/bold]")
    console.print(test.prompt_template, markup=False)
    if test.default_variables:
        console.print("[bold]Default variables[/bold]")
        for key, value in test.default_variables.items():
            console.print(f"  {key} = {value}", markup=False)
    if test.expected_contains:
        console.print(f"[bold]Expected contains:[/bold] {escape(test.expected_contains)}")
    if test.json_schema:
        console.print("[bold]JSON schema[/bold]")
        console.print(test.json_schema, markup=False)


def render_comparison(grouped: dict[str, list[RunRecord]], console: Console) -> None:
    """Render per-model aggregates and the latest runs for each model."""
    table = Table(box=box.SIMPLE_HEAD, title="Model comparison")
    table.add_column("Model")
    table.add_column("Runs", justify="right")
    table.add_column("Pass rate", justify="right")
    table.add_column("Avg latency", justify="right")
    table.add_column("Avg cost", justify="right")
    table.add_column("Latest output")

    for label, runs in grouped.items():
        validated = [r for r in runs if r.passed is not None]
        latencies = [r.latency_ms for r in runs if r.latency_ms is not None]
        costs = [r.estimated_cost for r in runs if r.estimated_cost is not None]
        pass_rate = (
            f"{sum(1 for r in validated if r.passed) / len(validated):.0%}" if validated else "-"
        )
        table.add_row(
            label,
            str(len(runs)),
            pass_rate,
            f"{sum(latencies) / len(latencies):.0f} ms" if latencies else "-",
            f"${sum(costs) / len(costs):.6f}" if costs else "-",
            _preview(runs[0].output or runs[0].error_message),
        )

    console.print(table)
