"""Main CLI entry point for wbsync.

This module provides the main Typer application with sub-commands for WBS
sync runs, portfolio polling, reminders and webhook management.

Usage:
    wbsync serve --port 8000
    wbsync sync run
    wbsync sync discover --folder-id 4414766191011716
    wbsync portfolio poll
    wbsync reminders run
    wbsync webhook register
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console

from wbsync.cli import portfolio as portfolio_cli
from wbsync.cli import reminders as reminders_cli
from wbsync.cli import sync as sync_cli
from wbsync.cli import webhook as webhook_cli
from wbsync.config import WbsyncConfig, load_config
from wbsync.database.connection import get_engine, get_session_factory
from wbsync.logging import setup_logging
from wbsync.smartsheet.client import SmartsheetClient

app = typer.Typer(
    name="wbsync",
    help="wbsync: Smartsheet portfolio and WBS synchronisation",
    no_args_is_help=True,
)

app.add_typer(sync_cli.app, name="sync", help="Sync WBS sheets into the task cache")
app.add_typer(portfolio_cli.app, name="portfolio", help="Reconcile the portfolio sheet")
app.add_typer(reminders_cli.app, name="reminders", help="Send stale-project reminders")
app.add_typer(webhook_cli.app, name="webhook", help="Manage the portfolio webhook")

console = Console()


class AppContext:
    """Application context shared across CLI commands.

    Attributes:
        config: Loaded wbsync configuration
        engine: Async SQLAlchemy engine
        session_factory: Factory for creating database sessions
    """

    def __init__(self, config: WbsyncConfig):
        self.config = config
        self.engine = get_engine(config.database)
        self.session_factory = get_session_factory(self.engine)

    def smartsheet_client(self) -> SmartsheetClient:
        """New Smartsheet client; use it as an async context manager."""
        return SmartsheetClient(self.config.smartsheet)


_app_context: AppContext | None = None


def get_app_context() -> AppContext:
    """Get the shared application context.

    Raises:
        RuntimeError: If context has not been initialized
    """
    if _app_context is None:
        raise RuntimeError("Application context not initialized. Call initialize_context first.")
    return _app_context


def initialize_context(config: WbsyncConfig) -> AppContext:
    """Initialize the global application context."""
    global _app_context
    _app_context = AppContext(config)
    return _app_context


@app.command()
def serve(
    host: Annotated[
        Optional[str],
        typer.Option("--host", "-h", help="Host to bind to (default from config)"),
    ] = None,
    port: Annotated[
        Optional[int],
        typer.Option("--port", "-p", help="Port to bind to (default from config)"),
    ] = None,
) -> None:
    """Start the wbsync web server (webhook callback and REST API)."""
    import uvicorn

    from wbsync.web.app import create_app

    config = get_app_context().config
    bind_host = host or config.web.host
    bind_port = port or config.web.port

    console.print("[bold cyan]Starting wbsync web server[/bold cyan]")
    console.print(f"[dim]Host:[/dim] {bind_host}")
    console.print(f"[dim]Port:[/dim] {bind_port}")
    console.print(f"[dim]Webhook callback:[/dim] {config.web.webhook_callback_url}")
    console.print()

    uvicorn.run(
        create_app(config),
        host=bind_host,
        port=bind_port,
        log_level="info",
    )


@app.callback()
def main_callback(
    config_path: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file (TOML format)",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Load configuration, configure logging and initialize the context."""
    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading configuration:[/red] {e}")
        raise typer.Exit(code=1) from e

    if verbose:
        config.logging.level = "DEBUG"
    setup_logging(config.logging)

    initialize_context(config)

    if verbose:
        console.print("[dim]Debug logging enabled[/dim]")


if __name__ == "__main__":
    app()
