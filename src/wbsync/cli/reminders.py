"""Reminder CLI commands."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.panel import Panel

from wbsync.notifications.reminders import ReminderRunResult, ReminderScheduler
from wbsync.notifications.sender import WebhookNotificationSender

app = typer.Typer(help="Reminder commands")
console = Console()


@app.command()
def run() -> None:
    """Send weekly reminders and escalations for stale projects."""
    from wbsync.main import get_app_context

    ctx = get_app_context()

    async def _run() -> ReminderRunResult:
        sender = WebhookNotificationSender(ctx.config.reminders)
        try:
            scheduler = ReminderScheduler(ctx.session_factory, sender, ctx.config.reminders)
            return await scheduler.run()
        finally:
            await sender.close()

    result = asyncio.run(_run())

    console.print(
        Panel(
            f"[bold]Stale projects:[/bold] {result.stale_projects}\n"
            f"[bold]Reminders sent:[/bold] {result.reminders_sent}\n"
            f"[bold]Escalations sent:[/bold] {result.escalations_sent}",
            title="Reminders",
            border_style="green" if not result.failures else "yellow",
        )
    )

    if result.failures:
        console.print(f"[red]Failed recipients:[/red] {', '.join(result.failures)}")
        raise typer.Exit(code=1)
