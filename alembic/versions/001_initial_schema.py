"""Initial schema for wbsync.

Creates the projects table, the WBS task cache (wbs_cache) and the audit
log, plus the enum types shared by project and task status columns.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Enum columns store member names
PROJECT_STATUS = ("not_started", "in_progress", "at_risk", "blocked", "complete", "on_hold")
APPROVAL_STATUS = ("pending_approval", "approved", "denied")
PROVISIONING_STATE = ("unprovisioned", "provisioning", "provisioned")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    sa.Enum(*PROJECT_STATUS, name="projectstatus").create(bind, checkfirst=True)
    sa.Enum(*APPROVAL_STATUS, name="approvalstatus").create(bind, checkfirst=True)
    sa.Enum(*PROVISIONING_STATE, name="provisioningstate").create(bind, checkfirst=True)

    project_status = sa.Enum(*PROJECT_STATUS, name="projectstatus", create_type=False)

    op.create_table(
        "projects",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("project_code", sa.Text(), nullable=False, unique=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.Text(), nullable=True),
        sa.Column("status", project_status, nullable=False),
        sa.Column(
            "approval_status",
            sa.Enum(*APPROVAL_STATUS, name="approvalstatus", create_type=False),
            nullable=False,
        ),
        sa.Column(
            "provisioning_state",
            sa.Enum(*PROVISIONING_STATE, name="provisioningstate", create_type=False),
            nullable=False,
        ),
        sa.Column("portfolio_row_id", sa.BigInteger(), nullable=True),
        sa.Column("wbs_folder_id", sa.BigInteger(), nullable=True),
        sa.Column("wbs_sheet_id", sa.BigInteger(), nullable=True),
        sa.Column("wbs_sheet_url", sa.Text(), nullable=True),
        sa.Column("wbs_app_url", sa.Text(), nullable=True),
        sa.Column("assignee", sa.Text(), nullable=True),
        sa.Column("approver", sa.Text(), nullable=True),
        sa.Column("last_update_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "wbs_cache",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "project_id",
            sa.Uuid(),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("remote_row_id", sa.BigInteger(), nullable=True),
        sa.Column(
            "parent_id",
            sa.Uuid(),
            sa.ForeignKey("wbs_cache.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("owner_last_name", sa.Text(), nullable=True),
        sa.Column("approver_last_name", sa.Text(), nullable=True),
        sa.Column("status", project_status, nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("at_risk", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("budget", sa.Text(), nullable=True),
        sa.Column("actual", sa.Text(), nullable=True),
        sa.Column("variance", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("project_id", "remote_row_id", name="uq_wbs_cache_project_row"),
    )
    op.create_index("ix_wbs_cache_project_id", "wbs_cache", ["project_id"])

    op.create_table(
        "audit",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("actor", sa.Text(), nullable=False),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("target_type", sa.Text(), nullable=False),
        sa.Column("target_id", sa.Text(), nullable=False),
        sa.Column("payload", sa.JSON().with_variant(JSONB(), "postgresql"), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_audit_target", "audit", ["target_type", "target_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_target", table_name="audit")
    op.drop_table("audit")
    op.drop_index("ix_wbs_cache_project_id", table_name="wbs_cache")
    op.drop_table("wbs_cache")
    op.drop_table("projects")

    bind = op.get_bind()
    sa.Enum(name="provisioningstate").drop(bind, checkfirst=True)
    sa.Enum(name="approvalstatus").drop(bind, checkfirst=True)
    sa.Enum(name="projectstatus").drop(bind, checkfirst=True)
