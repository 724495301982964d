"""promptbench CLI entry point."""

import logging
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from promptbench import __version__
from promptbench.adapters.registry import BUILTIN_ADAPTERS
from promptbench.cli.keys_cmd import keys_app
from promptbench.cli.run_cmd import adhoc, rerun, run
from promptbench.cli.runs_cmd import cleanup, export, runs_app
from promptbench.cli.tests_cmd import tests_app
from promptbench.execution.cost import PROVIDER_PRICING

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

app = typer.Typer(
    name="promptbench",
    help="Run prompt tests across AI providers and compare cost, latency and quality",
    no_args_is_help=True,
)

# Register subcommands
app.command()(run)
app.command()(adhoc)
app.command()(rerun)
app.command()(export)
app.command()(cleanup)
app.add_typer(keys_app, name="keys")
app.add_typer(tests_app, name="tests")
app.add_typer(runs_app, name="runs")


@app.command()
def providers() -> None:
    """List supported providers and their default models."""
    table = Table(title="Providers")
    table.add_column("Name", style="bold")
    table.add_column("Display name")
    table.add_column("Default model")
    table.add_column("Priced models")
    for adapter_cls in BUILTIN_ADAPTERS:
        pricing = PROVIDER_PRICING.get(adapter_cls.name)
        table.add_row(
            adapter_cls.name,
            adapter_cls.display_name,
            adapter_cls.default_model,
            str(len(pricing.models)) if pricing else "-",
        )
    Console().print(table)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"promptbench {__version__}")
        raise typer.Exit()


def configure_logging(level: str) -> None:
    """Send log records to stderr through Rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main(
    ctx: typer.Context,
    user: Optional[str] = typer.Option(
        None, "--user", "-u", envvar="PROMPTBENCH_USER", help="User id to act as (default: config default_user)."
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="DEBUG, INFO, WARNING or ERROR."),
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """Run prompt tests across AI providers and compare cost, latency and quality."""
    level = log_level.upper()
    if level not in LOG_LEVELS:
        raise typer.BadParameter(f"must be one of {', '.join(LOG_LEVELS)}", param_hint="--log-level")
    configure_logging(level)
    ctx.obj = {"user": user}
