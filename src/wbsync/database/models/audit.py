"""Audit log model for wbsync.

An append-only record of who did what to which entity.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import Text
from sqlalchemy.orm import Mapped, mapped_column

from wbsync.database.models.base import Base, JSONType, TimestampMixin


class AuditEntry(TimestampMixin, Base):
    """A single audited action.

    Attributes:
        actor: Identity that performed the action (user or ``system``).
        action: Action name, e.g. ``project.created``.
        target_type: Kind of entity acted on, e.g. ``project``.
        target_id: Identifier of the entity acted on.
        payload: Free-form JSON detail.
    """

    __tablename__ = "audit"

    actor: Mapped[str] = mapped_column(Text, nullable=False)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    target_type: Mapped[str] = mapped_column(Text, nullable=False)
    target_id: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
