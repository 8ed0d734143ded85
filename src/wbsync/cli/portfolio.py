"""Portfolio CLI commands."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from wbsync.errors import WbsyncError
from wbsync.sync.portfolio import PollSummary, PortfolioReconciler

app = typer.Typer(help="Portfolio reconciliation commands")
console = Console()


@app.command()
def poll() -> None:
    """Reconcile every portfolio row, provisioning newly approved projects.

    This is the fallback for missed or unregistered webhooks.
    """
    from wbsync.main import get_app_context

    ctx = get_app_context()

    async def _poll() -> PollSummary:
        async with ctx.smartsheet_client() as client:
            reconciler = PortfolioReconciler(
                client,
                ctx.session_factory,
                ctx.config.smartsheet,
                ctx.config.web.app_base_url,
            )
            return await reconciler.poll_portfolio()

    try:
        summary = asyncio.run(_poll())
    except WbsyncError as e:
        console.print(f"[red]Portfolio poll failed:[/red] {e}")
        raise typer.Exit(code=1) from e

    console.print(
        Panel(
            f"[bold]Rows checked:[/bold] {summary.checked}\n"
            f"[bold]Provisioned:[/bold] {summary.provisioned}\n"
            f"[bold]Pending approval:[/bold] {summary.pending_approval}\n"
            f"[bold]Skipped:[/bold] {summary.skipped}\n"
            f"[bold]Errors:[/bold] {summary.errors}",
            title="Portfolio Poll",
            border_style="green" if summary.errors == 0 else "yellow",
        )
    )

    if summary.failures:
        table = Table(title="Failures")
        table.add_column("Row", style="dim")
        table.add_column("Error", style="red")
        for failure in summary.failures:
            table.add_row(str(failure.get("row_id")), str(failure.get("error")))
        console.print(table)
        raise typer.Exit(code=1)
