"""Project model for wbsync.

Defines the Project table and its status enums. A project is identified by
its human-readable code (``LETTERS-DDDD``) and may be mirrored remotely as a
WBS folder holding a WBS sheet.

Whether the remote structure exists is tracked explicitly by
``provisioning_state`` rather than inferred from nullable id columns; the
folder and sheet columns are only written by the provisioning transitions in
``wbsync.database.queries.project``.
"""

from __future__ import annotations

import enum
import re
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from wbsync.database.models.base import Base, TimestampMixin

PROJECT_CODE_PATTERN = re.compile(r"^[A-Z]+-\d{4}$")


class ProjectStatus(enum.Enum):
    """Lifecycle status for a project or WBS task.

    States:
        not_started: No work recorded yet.
        in_progress: Work underway.
        at_risk: Underway but flagged as likely to slip.
        blocked: Cannot progress until an external issue is resolved.
        complete: Finished.
        on_hold: Deliberately paused.
    """

    not_started = "Not_Started"
    in_progress = "In_Progress"
    at_risk = "At_Risk"
    blocked = "Blocked"
    complete = "Complete"
    on_hold = "On_Hold"


class ApprovalStatus(enum.Enum):
    """Approval decision recorded on the portfolio sheet."""

    pending_approval = "Pending_Approval"
    approved = "Approved"
    denied = "Denied"


class ProvisioningState(enum.Enum):
    """Whether the project's remote WBS folder/sheet pair exists.

    States:
        unprovisioned: No remote structure has been created.
        provisioning: A template copy is in flight (or crashed mid-way).
        provisioned: Folder and sheet ids are recorded; terminal.
    """

    unprovisioned = "unprovisioned"
    provisioning = "provisioning"
    provisioned = "provisioned"


class Project(TimestampMixin, Base):
    """A unit of work tracked locally and optionally mirrored remotely.

    Attributes:
        id: UUID primary key (from TimestampMixin).
        project_code: Unique human-readable code, e.g. ``P-0007``.
        title: Project name.
        description: Optional free-form description.
        category: Optional portfolio category.
        status: Lifecycle status.
        approval_status: Portfolio approval decision.
        provisioning_state: Explicit state of the remote WBS structure.
        portfolio_row_id: Remote row id on the portfolio sheet.
        wbs_folder_id: Remote id of the project's WBS folder.
        wbs_sheet_id: Remote id of the project's WBS sheet.
        wbs_sheet_url: Permalink of the WBS sheet.
        wbs_app_url: Link to this service's WBS page for the project.
        assignee: Identity of the person doing the work.
        approver: Identity of the person approving the work.
        last_update_at: When the project was last touched by a sync.
    """

    __tablename__ = "projects"

    project_code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[ProjectStatus] = mapped_column(
        default=ProjectStatus.not_started,
        nullable=False,
    )
    approval_status: Mapped[ApprovalStatus] = mapped_column(
        default=ApprovalStatus.pending_approval,
        nullable=False,
    )
    provisioning_state: Mapped[ProvisioningState] = mapped_column(
        default=ProvisioningState.unprovisioned,
        nullable=False,
    )
    portfolio_row_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    wbs_folder_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    wbs_sheet_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    wbs_sheet_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    wbs_app_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    assignee: Mapped[str | None] = mapped_column(Text, nullable=True)
    approver: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_update_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    @property
    def is_provisioned(self) -> bool:
        """True once the remote folder/sheet pair has been recorded."""
        return self.provisioning_state == ProvisioningState.provisioned
