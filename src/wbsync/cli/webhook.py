"""Webhook management CLI commands.

Registers the portfolio sheet webhook against this service's public
callback URL, and lists or deletes existing webhooks.
"""

from __future__ import annotations

import asyncio
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from wbsync.errors import WbsyncError
from wbsync.smartsheet.models import Webhook
from wbsync.smartsheet.webhooks import ensure_webhook

app = typer.Typer(help="Webhook management commands")
console = Console()


@app.command()
def register() -> None:
    """Register (or re-enable) the portfolio sheet webhook."""
    from wbsync.main import get_app_context

    ctx = get_app_context()
    config = ctx.config

    async def _register() -> Webhook | None:
        async with ctx.smartsheet_client() as client:
            return await ensure_webhook(
                client,
                config.smartsheet.portfolio_sheet_id,
                config.web.webhook_callback_url,
                config.smartsheet.webhook_name,
            )

    try:
        hook = asyncio.run(_register())
    except WbsyncError as e:
        console.print(f"[red]Webhook registration failed:[/red] {e}")
        raise typer.Exit(code=1) from e

    if hook is None:
        console.print(
            f"[yellow]Callback URL is not public, nothing registered:[/yellow] "
            f"{config.web.webhook_callback_url}"
        )
        raise typer.Exit(code=1)

    console.print(f"[green]Webhook active:[/green] {hook.id} ({hook.status or 'unknown'})")


@app.command("list")
def list_webhooks() -> None:
    """List webhooks owned by the configured access token."""
    from wbsync.main import get_app_context

    ctx = get_app_context()

    async def _list() -> list[Webhook]:
        async with ctx.smartsheet_client() as client:
            return await client.list_webhooks()

    try:
        hooks = asyncio.run(_list())
    except WbsyncError as e:
        console.print(f"[red]Error listing webhooks:[/red] {e}")
        raise typer.Exit(code=1) from e

    if not hooks:
        console.print("[yellow]No webhooks found[/yellow]")
        return

    table = Table(title="Webhooks")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Sheet")
    table.add_column("Callback URL")
    table.add_column("Enabled")
    table.add_column("Status")

    for hook in hooks:
        table.add_row(
            str(hook.id),
            hook.name or "-",
            str(hook.scope_object_id),
            hook.callback_url or "-",
            "[green]yes[/green]" if hook.enabled else "[red]no[/red]",
            hook.status or "-",
        )

    console.print(table)


@app.command()
def delete(
    webhook_id: Annotated[int, typer.Argument(help="Webhook ID")],
) -> None:
    """Delete a webhook."""
    from wbsync.main import get_app_context

    ctx = get_app_context()

    async def _delete() -> None:
        async with ctx.smartsheet_client() as client:
            await client.delete_webhook(webhook_id)

    try:
        asyncio.run(_delete())
    except WbsyncError as e:
        console.print(f"[red]Error deleting webhook:[/red] {e}")
        raise typer.Exit(code=1) from e

    console.print(f"[green]Deleted webhook[/green] {webhook_id}")
