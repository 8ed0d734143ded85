"""Pytest fixtures for integration tests.

Provides async database fixtures for testing query functions, the
reconciler and the sync engine against an in-memory SQLite database.
While the production system uses PostgreSQL, these tests use SQLite for
fast, isolated testing of query logic.

Remote calls are replaced by an ``AsyncMock`` constrained to the
SmartsheetClient interface, or by respx routes where the HTTP layer
itself is under test.
"""

from __future__ import annotations

from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from wbsync.config import SmartsheetConfig, WbsyncConfig, WebConfig
from wbsync.database.models.base import Base
from wbsync.smartsheet.client import SmartsheetClient
from wbsync.web.app import create_app


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio as the async backend for pytest-asyncio.

    Returns:
        The name of the async backend to use.
    """
    return "asyncio"


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create an in-memory SQLite async engine for testing.

    Yields:
        Configured AsyncEngine instance using in-memory SQLite.
    """
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(
    engine: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to the test engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a new async database session for each test.

    The session is rolled back after the test completes.
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def smartsheet_config() -> SmartsheetConfig:
    """Smartsheet settings with fixed ids and no retry delay."""
    return SmartsheetConfig(
        access_token="test-token",
        base_url="https://api.smartsheet.test/2.0",
        retry_backoff_seconds=0,
        portfolio_sheet_id=1000,
        wbs_template_folder_id=2000,
        wbs_parent_folder_id=3000,
    )


@pytest.fixture
def app_config(smartsheet_config: SmartsheetConfig) -> WbsyncConfig:
    return WbsyncConfig(
        smartsheet=smartsheet_config,
        web=WebConfig(app_base_url="https://wbs.example.com"),
    )


@pytest.fixture
def mock_client() -> AsyncMock:
    """AsyncMock constrained to the SmartsheetClient interface."""
    return AsyncMock(spec=SmartsheetClient)


@pytest.fixture
def app(
    app_config: WbsyncConfig,
    mock_client: AsyncMock,
    session_factory: async_sessionmaker[AsyncSession],
) -> FastAPI:
    """App wired to the test database and mock client.

    ASGITransport does not run the lifespan, so state is set directly.
    """
    application = create_app(app_config, smartsheet_client=mock_client)
    application.state.session_factory = session_factory
    return application


@pytest_asyncio.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
