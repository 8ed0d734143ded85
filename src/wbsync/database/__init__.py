"""Database layer for wbsync.

This module handles database connections, session management, and provides
the SQLAlchemy async engine configuration.

Public API:
    get_engine: Create an AsyncEngine from DatabaseConfig.
    get_session_factory: Create an async_sessionmaker from an engine.
    Base: SQLAlchemy declarative base for all models.
"""

from wbsync.database.connection import get_engine, get_session_factory
from wbsync.database.models import (
    ApprovalStatus,
    AuditEntry,
    Base,
    Project,
    ProjectStatus,
    ProvisioningState,
    TimestampMixin,
    WbsTask,
)

__all__ = [
    "get_engine",
    "get_session_factory",
    "Base",
    "TimestampMixin",
    "Project",
    "ProjectStatus",
    "ApprovalStatus",
    "ProvisioningState",
    "WbsTask",
    "AuditEntry",
]
