"""FastAPI dependencies resolving shared objects from ``app.state``.

The lifespan (or a test) places the config, session factory and Smartsheet
client on ``app.state``; the reconciler and sync engine are cheap views over
those and are built per request.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Depends, HTTPException, Request
from fastapi import status as http_status

from wbsync.config import WbsyncConfig
from wbsync.smartsheet.client import SmartsheetClient
from wbsync.sync.portfolio import PortfolioReconciler
from wbsync.sync.wbs import WbsSyncEngine

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


def get_config(request: Request) -> WbsyncConfig:
    return request.app.state.config  # type: ignore[no-any-return]


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    """Dependency that retrieves session factory from app state."""
    return request.app.state.session_factory  # type: ignore[no-any-return]


def get_optional_client(request: Request) -> SmartsheetClient | None:
    """Smartsheet client if one is configured, else None."""
    return getattr(request.app.state, "smartsheet_client", None)


def get_smartsheet_client(request: Request) -> SmartsheetClient:
    """Smartsheet client, or 503 when the service runs without one."""
    client = get_optional_client(request)
    if client is None:
        raise HTTPException(
            status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Smartsheet client is not configured",
        )
    return client


def get_reconciler(
    request: Request,
    client: SmartsheetClient = Depends(get_smartsheet_client),  # noqa: B008
) -> PortfolioReconciler:
    config = get_config(request)
    return PortfolioReconciler(
        client,
        get_session_factory(request),
        config.smartsheet,
        config.web.app_base_url,
    )


def get_sync_engine(
    request: Request,
    client: SmartsheetClient = Depends(get_smartsheet_client),  # noqa: B008
) -> WbsSyncEngine:
    config = get_config(request)
    return WbsSyncEngine(
        client,
        get_session_factory(request),
        config.smartsheet,
        config.web.app_base_url,
    )


def get_actor(request: Request) -> str:
    """Caller identity for audit entries, taken from ``X-Actor``."""
    return request.headers.get("X-Actor") or "api"
