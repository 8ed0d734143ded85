"""SQLAlchemy ORM models for wbsync.

This module defines the database schema: projects, the WBS task cache, and
the audit log.

All models use SQLAlchemy 2.0 declarative style with Mapped[] type annotations.
"""

from wbsync.database.models.audit import AuditEntry
from wbsync.database.models.base import Base, TimestampMixin
from wbsync.database.models.project import (
    ApprovalStatus,
    Project,
    ProjectStatus,
    ProvisioningState,
)
from wbsync.database.models.wbs_task import WbsTask

__all__ = [
    "Base",
    "TimestampMixin",
    "Project",
    "ProjectStatus",
    "ApprovalStatus",
    "ProvisioningState",
    "WbsTask",
    "AuditEntry",
]
