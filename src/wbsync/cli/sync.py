"""WBS sync CLI commands.

Runs the WBS sync engine against Smartsheet from the command line, which is
how scheduled (cron) syncs are driven.
"""

from __future__ import annotations

import asyncio
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from wbsync.errors import WbsyncError
from wbsync.sync.wbs import BatchSyncResult, DiscoveredSheet, WbsSyncEngine

app = typer.Typer(help="WBS sync commands")
console = Console()


@app.command()
def run(
    folder_id: Annotated[
        Optional[int],
        typer.Option("--folder-id", "-f", help="Folder to search (default: WBS parent folder)"),
    ] = None,
) -> None:
    """Discover WBS sheets and mirror their rows into the task cache.

    Exits with code 1 when any sheet failed; the other sheets are still synced.
    """
    from wbsync.main import get_app_context

    ctx = get_app_context()

    async def _run() -> BatchSyncResult:
        async with ctx.smartsheet_client() as client:
            engine = WbsSyncEngine(
                client,
                ctx.session_factory,
                ctx.config.smartsheet,
                ctx.config.web.app_base_url,
            )
            return await engine.sync_all(folder_id)

    try:
        batch = asyncio.run(_run())
    except WbsyncError as e:
        console.print(f"[red]Sync failed:[/red] {e}")
        raise typer.Exit(code=1) from e

    table = Table(title="WBS Sync")
    table.add_column("Sheet", style="cyan")
    table.add_column("Project", style="bold")
    table.add_column("Rows", justify="right")
    table.add_column("Created", justify="right")
    table.add_column("Updated", justify="right")
    table.add_column("Result")

    for result in batch.results:
        outcome = "[green]ok[/green]" if result.success else f"[red]{result.error}[/red]"
        table.add_row(
            result.sheet_name or str(result.sheet_id),
            result.project_code or "-",
            str(result.rows_synced),
            str(result.created),
            str(result.updated),
            outcome,
        )

    console.print(table)
    console.print(
        f"\n[dim]{batch.total_synced}/{batch.total_sheets} sheets synced, "
        f"{batch.total_rows} rows[/dim]"
    )

    if not batch.success:
        raise typer.Exit(code=1)


@app.command()
def discover(
    folder_id: Annotated[
        Optional[int],
        typer.Option("--folder-id", "-f", help="Folder to search (default: WBS parent folder)"),
    ] = None,
) -> None:
    """List the WBS sheets a sync run would pick up."""
    from wbsync.main import get_app_context

    ctx = get_app_context()

    async def _discover() -> list[DiscoveredSheet]:
        async with ctx.smartsheet_client() as client:
            engine = WbsSyncEngine(client, ctx.session_factory, ctx.config.smartsheet)
            return await engine.discover_sheets(folder_id)

    try:
        sheets = asyncio.run(_discover())
    except WbsyncError as e:
        console.print(f"[red]Discovery failed:[/red] {e}")
        raise typer.Exit(code=1) from e

    if not sheets:
        console.print("[yellow]No WBS sheets found[/yellow]")
        return

    table = Table(title="WBS Sheets")
    table.add_column("Sheet ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Folder")
    table.add_column("Project", style="bold")

    for sheet in sheets:
        table.add_row(
            str(sheet.id),
            sheet.name,
            sheet.folder_name or "-",
            sheet.project_code or "[yellow]unknown[/yellow]",
        )

    console.print(table)
    console.print(f"\n[dim]Total: {len(sheets)} sheet(s)[/dim]")
