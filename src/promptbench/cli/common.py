"""Helpers shared by the promptbench subcommands."""

from __future__ import annotations

from typing import NoReturn

import typer
from pydantic import ValidationError
from rich.console import Console

from promptbench.context import AppContext
from promptbench.credentials.codec import EncryptionConfigError
from promptbench.models.config import ProjectConfig

console = Console(stderr=True)


def fail(message: str) -> NoReturn:
    """Print a red error to stderr and exit with code 1."""
    console.print(f"[bold red]Error:[/bold red] {message}")
    raise typer.Exit(code=1)


def load_context() -> AppContext:
    """Build the AppContext, turning startup errors into a clean exit."""
    try:
        return AppContext.create()
    except EncryptionConfigError as exc:
        fail(str(exc))
    except ValidationError as exc:
        fail(f"Invalid promptbench.yaml:\n{exc}")
    except (ImportError, TypeError, ValueError) as exc:
        fail(f"Could not load custom adapter: {exc}")


def current_user(ctx: typer.Context, context: AppContext | None = None) -> str:
    """User id from --user, else the configured default."""
    user = (ctx.obj or {}).get("user")
    if user:
        return user
    config = context.config if context is not None else ProjectConfig()
    return config.default_user


def parse_variables(pairs: list[str]) -> dict[str, str]:
    """Parse repeated --var key=value options."""
    variables: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            fail(f"Invalid variable '{pair}'. Expected key=value.")
        variables[key.strip()] = value
    return variables
