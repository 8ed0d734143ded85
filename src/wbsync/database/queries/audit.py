"""Audit log query functions for wbsync."""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wbsync.database.models.audit import AuditEntry

logger = structlog.get_logger(__name__)

SYSTEM_ACTOR = "system"


async def record_audit(
    session: AsyncSession,
    action: str,
    target_type: str,
    target_id: str,
    actor: str = SYSTEM_ACTOR,
    payload: dict[str, Any] | None = None,
) -> AuditEntry:
    """Append an audit entry.

    Args:
        session: Active async database session.
        action: Action name, e.g. ``project.created``.
        target_type: Kind of entity acted on.
        target_id: Identifier of the entity acted on.
        actor: Who performed the action.
        payload: Optional JSON-serialisable detail.

    Returns:
        The persisted AuditEntry.
    """
    entry = AuditEntry(
        actor=actor,
        action=action,
        target_type=target_type,
        target_id=target_id,
        payload=payload,
    )
    session.add(entry)
    await session.commit()

    logger.debug(
        "audit_recorded",
        action=action,
        target_type=target_type,
        target_id=target_id,
        actor=actor,
    )
    return entry


async def list_audit(
    session: AsyncSession,
    target_type: str | None = None,
    target_id: str | None = None,
    limit: int = 100,
) -> list[AuditEntry]:
    """List audit entries, newest first."""
    stmt = select(AuditEntry)
    if target_type is not None:
        stmt = stmt.where(AuditEntry.target_type == target_type)
    if target_id is not None:
        stmt = stmt.where(AuditEntry.target_id == target_id)
    stmt = stmt.order_by(AuditEntry.created_at.desc()).limit(limit)

    result = await session.execute(stmt)
    return list(result.scalars().all())
