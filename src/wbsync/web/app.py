"""FastAPI application factory for wbsync.

This module provides the main application factory function that creates
and configures a FastAPI application with:
- CORS middleware for cross-origin requests
- Request logging middleware with correlation IDs
- Database and Smartsheet client lifecycle management
- Structured error responses for the wbsync error taxonomy
- Health, webhook, portfolio, project and WBS routes

Example usage:
    >>> from wbsync.config import WbsyncConfig
    >>> from wbsync.web.app import create_app
    >>>
    >>> app = create_app(WbsyncConfig())
    >>>
    >>> import uvicorn
    >>> uvicorn.run(app, host="0.0.0.0", port=8000)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from wbsync import __version__
from wbsync.config import WbsyncConfig
from wbsync.database.connection import get_engine, get_session_factory
from wbsync.errors import WbsyncError
from wbsync.logging import get_logger
from wbsync.smartsheet.client import SmartsheetClient
from wbsync.smartsheet.webhooks import ensure_webhook
from wbsync.web.middleware import RequestLoggingMiddleware
from wbsync.web.routes.health import create_health_router
from wbsync.web.routes.portfolio import create_portfolio_router
from wbsync.web.routes.projects import create_projects_router
from wbsync.web.routes.wbs import create_wbs_router
from wbsync.web.routes.webhooks import create_webhooks_router

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = get_logger(__name__)

APP_VERSION = __version__

# HTTP status per error classification
ERROR_STATUS_CODES = {
    "remote_service_error": 502,
    "data_integrity_error": 409,
    "validation_error": 422,
    "not_found": 404,
}


async def wbsync_error_handler(request: Request, exc: WbsyncError) -> JSONResponse:
    """Render a WbsyncError as ``{"error": <classification>, "detail": <message>}``."""
    status_code = ERROR_STATUS_CODES.get(exc.classification, 500)
    log = logger.warning if status_code < 500 else logger.error
    log(
        "request_error",
        path=request.url.path,
        classification=exc.classification,
        status_code=status_code,
        error=str(exc),
    )
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.classification, "detail": str(exc)},
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage database pool and Smartsheet client lifecycle.

    An injected Smartsheet client is used as-is and left open on shutdown;
    otherwise one is created from config and closed here. Webhook
    registration at startup is optional and never fatal.
    """
    config: WbsyncConfig = app.state.config

    logger.info("app_startup_begin", host=config.web.host, port=config.web.port)

    engine = get_engine(config.database)
    app.state.engine = engine
    app.state.session_factory = get_session_factory(engine)

    owned_client: SmartsheetClient | None = None
    if app.state.smartsheet_client is None:
        owned_client = SmartsheetClient(config.smartsheet)
        owned_client.open()
        app.state.smartsheet_client = owned_client

    if config.smartsheet.auto_register_webhook:
        try:
            await ensure_webhook(
                app.state.smartsheet_client,
                config.smartsheet.portfolio_sheet_id,
                config.web.webhook_callback_url,
                config.smartsheet.webhook_name,
                events=("*.*",),
            )
        except WbsyncError as exc:
            logger.error("webhook_registration_failed", error=str(exc))

    yield

    logger.info("app_shutdown_begin")
    if owned_client is not None:
        await owned_client.close()
        app.state.smartsheet_client = None
    await engine.dispose()
    logger.info("database_pool_disposed")


def create_app(
    config: WbsyncConfig | None = None,
    smartsheet_client: SmartsheetClient | None = None,
) -> FastAPI:
    """Create and configure a FastAPI application.

    Args:
        config: Optional WbsyncConfig. If None, creates default config.
        smartsheet_client: Optional pre-built client (e.g. a test double).

    Returns:
        Configured FastAPI application instance.
    """
    if config is None:
        config = WbsyncConfig()

    app = FastAPI(
        title="wbsync",
        version=APP_VERSION,
        description="Smartsheet portfolio and WBS synchronisation service",
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.smartsheet_client = smartsheet_client

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.web.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(WbsyncError, wbsync_error_handler)  # type: ignore[arg-type]

    app.include_router(create_health_router())
    app.include_router(create_webhooks_router())
    app.include_router(create_portfolio_router())
    app.include_router(create_projects_router())
    app.include_router(create_wbs_router())

    logger.info(
        "app_created",
        cors_origins=config.web.cors_origins,
        version=APP_VERSION,
    )

    return app
