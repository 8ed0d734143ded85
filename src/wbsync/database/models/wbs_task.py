"""WBS task cache model for wbsync.

Each WbsTask mirrors one row of a project's remote WBS sheet. Tasks form a
forest per project through the self-referential ``parent_id``; the
``order_index`` column orders siblings and drives WBS code derivation.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from wbsync.database.models.base import Base, TimestampMixin
from wbsync.database.models.project import ProjectStatus


class WbsTask(TimestampMixin, Base):
    """Local mirror of one WBS sheet row.

    Attributes:
        id: UUID primary key (from TimestampMixin).
        project_id: Owning project.
        remote_row_id: Smartsheet row id; the join key for syncs.
        parent_id: Parent task in the same project, None for top level.
        name: Task name.
        description: Optional description.
        owner_last_name: Last name of the assignee.
        approver_last_name: Last name of the approver.
        status: Task status.
        start_date: Planned start.
        end_date: Planned end.
        at_risk: Risk flag from the sheet.
        budget: Budget as text, as entered on the sheet.
        actual: Actual spend as text.
        variance: Variance as text.
        notes: Free-form notes.
        order_index: 1-based sort key among siblings.
        last_synced_at: Last time this row matched the remote sheet.
    """

    __tablename__ = "wbs_cache"
    __table_args__ = (
        UniqueConstraint("project_id", "remote_row_id", name="uq_wbs_cache_project_row"),
    )

    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    remote_row_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    parent_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("wbs_cache.id", ondelete="SET NULL"),
        nullable=True,
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    owner_last_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    approver_last_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[ProjectStatus] = mapped_column(
        default=ProjectStatus.not_started,
        nullable=False,
    )
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    at_risk: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    budget: Mapped[str | None] = mapped_column(Text, nullable=True)
    actual: Mapped[str | None] = mapped_column(Text, nullable=True)
    variance: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    order_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_synced_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
