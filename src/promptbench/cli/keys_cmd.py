"""promptbench keys -- manage encrypted provider API keys."""

from __future__ import annotations

import asyncio
from typing import Optional

import typer
from rich.console import Console

from promptbench.adapters.registry import UnknownProviderError
from promptbench.cli.common import console, current_user, fail, load_context
from promptbench.cli.output import render_keys
from promptbench.credentials.codec import SecretDecryptionError
from promptbench.credentials.service import CredentialNotFoundError

keys_app = typer.Typer(help="Manage stored provider API keys.", no_args_is_help=True)


@keys_app.command("add")
def add_key(
    ctx: typer.Context,
    provider: str = typer.Argument(..., help="Provider name (see `promptbench providers`)"),
    api_key: str = typer.Option(
        ..., "--api-key", prompt="API key", hide_input=True, help="Secret API key"
    ),
    label: str = typer.Option("", "--label", "-l", help="Display label"),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Custom endpoint (required for local)"),
) -> None:
    """Encrypt and store a provider API key."""
    context = load_context()
    try:
        credential = context.keys.add_key(
            current_user(ctx, context), provider, api_key, label=label, base_url=base_url
        )
    except (UnknownProviderError, ValueError) as exc:
        fail(str(exc))

    Console().print(
        f"[green]Stored[/green] {credential.provider} key [bold]{credential.id}[/bold] "
        f"(****{credential.last_four})"
    )


@keys_app.command("list")
def list_keys(ctx: typer.Context) -> None:
    """List stored keys (only the last four characters are shown)."""
    context = load_context()
    keys = context.keys.list_keys(current_user(ctx, context))
    if not keys:
        console.print("[yellow]No keys stored. Add one with `promptbench keys add`.[/yellow]")
        return
    render_keys(keys, Console())


@keys_app.command("test")
def test_key(
    ctx: typer.Context,
    key_id: str = typer.Argument(..., help="Stored key ID"),
) -> None:
    """Check a stored key against its provider."""
    context = load_context()
    result = asyncio.run(context.keys.test_key(key_id, current_user(ctx, context)))
    latency = f" ({result.latency_ms} ms)" if result.latency_ms is not None else ""
    if result.success:
        Console().print(f"[green]✓[/green] {result.message}{latency}")
    else:
        fail(f"{result.message}{latency}")


def _set_active(ctx: typer.Context, key_id: str, active: bool) -> None:
    context = load_context()
    try:
        context.keys.set_active(key_id, current_user(ctx, context), active)
    except CredentialNotFoundError as exc:
        fail(str(exc))
    Console().print(f"Key {key_id} {'enabled' if active else 'disabled'}")


@keys_app.command("enable")
def enable_key(ctx: typer.Context, key_id: str = typer.Argument(..., help="Stored key ID")) -> None:
    """Allow a key to be used for new runs."""
    _set_active(ctx, key_id, True)


@keys_app.command("disable")
def disable_key(ctx: typer.Context, key_id: str = typer.Argument(..., help="Stored key ID")) -> None:
    """Block a key from new runs without deleting it."""
    _set_active(ctx, key_id, False)


@keys_app.command("remove")
def remove_key(ctx: typer.Context, key_id: str = typer.Argument(..., help="Stored key ID")) -> None:
    """Delete a stored key."""
    context = load_context()
    if not context.keys.delete_key(key_id, current_user(ctx, context)):
        fail(f"API key not found: {key_id}")
    Console().print(f"Removed key {key_id}")


@keys_app.command("models")
def key_models(ctx: typer.Context, key_id: str = typer.Argument(..., help="Stored key ID")) -> None:
    """List models available to a stored key."""
    context = load_context()
    try:
        models = asyncio.run(context.keys.fetch_models_for_key(key_id, current_user(ctx, context)))
    except (CredentialNotFoundError, UnknownProviderError, SecretDecryptionError) as exc:
        fail(str(exc))
    out = Console()
    for model in models:
        out.print(model, markup=False)
