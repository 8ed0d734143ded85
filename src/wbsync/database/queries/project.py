"""Project query functions for wbsync.

Provides async functions for creating, reading, updating, and deleting
Project records, plus the provisioning state transitions. The transitions
are the only functions that write the remote folder/sheet columns.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from wbsync.database.models.base import utcnow
from wbsync.database.models.project import (
    PROJECT_CODE_PATTERN,
    ApprovalStatus,
    Project,
    ProjectStatus,
    ProvisioningState,
)
from wbsync.errors import DataIntegrityError, NotFoundError, ValidationError

logger = structlog.get_logger(__name__)

# Columns owned by the provisioning transitions
PROVISIONING_FIELDS = frozenset(
    {"provisioning_state", "wbs_folder_id", "wbs_sheet_id", "wbs_sheet_url", "wbs_app_url"}
)


def validate_project_code(project_code: str) -> str:
    """Check a project code has the ``LETTERS-DDDD`` shape.

    Raises:
        ValidationError: If the code is malformed.
    """
    code = project_code.strip()
    if not PROJECT_CODE_PATTERN.match(code):
        raise ValidationError(
            f"Invalid project code {project_code!r}: expected LETTERS-DDDD, e.g. P-0007"
        )
    return code


async def create_project(
    session: AsyncSession,
    project_code: str,
    title: str,
    description: str | None = None,
    category: str | None = None,
    status: ProjectStatus = ProjectStatus.not_started,
    approval_status: ApprovalStatus = ApprovalStatus.pending_approval,
    portfolio_row_id: int | None = None,
    assignee: str | None = None,
    approver: str | None = None,
) -> Project:
    """Create a new project.

    Args:
        session: Active async database session.
        project_code: Unique ``LETTERS-DDDD`` code.
        title: Project name.
        description: Optional description.
        category: Optional portfolio category.
        status: Initial lifecycle status.
        approval_status: Initial approval decision.
        portfolio_row_id: Remote portfolio row id, if known.
        assignee: Identity of the assignee.
        approver: Identity of the approver.

    Returns:
        The newly created Project instance.

    Raises:
        ValidationError: If the code is malformed or already taken.
    """
    code = validate_project_code(project_code)
    if not title or not title.strip():
        raise ValidationError("Project title must not be empty")

    existing = await get_project_by_code(session, code)
    if existing is not None:
        raise ValidationError(f"Project {code} already exists")

    project = Project(
        project_code=code,
        title=title.strip(),
        description=description,
        category=category,
        status=status,
        approval_status=approval_status,
        provisioning_state=ProvisioningState.unprovisioned,
        portfolio_row_id=portfolio_row_id,
        assignee=assignee,
        approver=approver,
        last_update_at=utcnow(),
    )
    session.add(project)
    await session.commit()

    logger.info(
        "project_created",
        project_id=str(project.id),
        project_code=code,
        status=project.status.value,
    )

    return project


async def get_project(
    session: AsyncSession,
    project_id: UUID,
) -> Project | None:
    """Retrieve a project by ID."""
    stmt = select(Project).where(Project.id == project_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_project_by_code(
    session: AsyncSession,
    project_code: str,
) -> Project | None:
    """Retrieve a project by its unique code."""
    stmt = select(Project).where(Project.project_code == project_code)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def require_project(
    session: AsyncSession,
    project_id: UUID,
) -> Project:
    """Retrieve a project by ID, raising when it does not exist.

    Raises:
        NotFoundError: If no project has this id.
    """
    project = await get_project(session, project_id)
    if project is None:
        raise NotFoundError(f"Project {project_id} not found")
    return project


async def list_projects(
    session: AsyncSession,
    status_filter: ProjectStatus | None = None,
    provisioning_filter: ProvisioningState | None = None,
) -> list[Project]:
    """List projects, optionally filtered by status or provisioning state.

    Args:
        session: Active async database session.
        status_filter: Optional lifecycle status to filter by.
        provisioning_filter: Optional provisioning state to filter by.

    Returns:
        Matching projects ordered by project code.
    """
    stmt = select(Project)

    if status_filter is not None:
        stmt = stmt.where(Project.status == status_filter)
    if provisioning_filter is not None:
        stmt = stmt.where(Project.provisioning_state == provisioning_filter)

    stmt = stmt.order_by(Project.project_code.asc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def update_project(
    session: AsyncSession,
    project_id: UUID,
    **updates: Any,
) -> Project:
    """Update a project's descriptive fields.

    Provisioning columns cannot be written here; use the provisioning
    transitions instead.

    Raises:
        NotFoundError: If project not found.
        ValidationError: If a provisioning column or unknown field is given.
    """
    forbidden = PROVISIONING_FIELDS.intersection(updates)
    if forbidden:
        raise ValidationError(
            f"Fields {sorted(forbidden)} are managed by provisioning and cannot be updated"
        )
    if "project_code" in updates:
        updates["project_code"] = validate_project_code(updates["project_code"])

    project = await require_project(session, project_id)

    for field_name, value in updates.items():
        if not hasattr(Project, field_name):
            raise ValidationError(f"Unknown project field: {field_name}")
        setattr(project, field_name, value)
    project.last_update_at = utcnow()
    await session.commit()

    logger.info(
        "project_updated",
        project_id=str(project_id),
        fields_updated=list(updates.keys()),
    )

    return project


async def delete_project(
    session: AsyncSession,
    project_id: UUID,
) -> bool:
    """Delete a project.

    Returns:
        True if the project was deleted, False if not found.
    """
    stmt = delete(Project).where(Project.id == project_id)
    result = await session.execute(stmt)
    await session.commit()

    deleted = result.rowcount > 0

    if deleted:
        logger.info("project_deleted", project_id=str(project_id))
    else:
        logger.warning("project_not_found", project_id=str(project_id))

    return deleted


async def begin_provisioning(
    session: AsyncSession,
    project: Project,
) -> Project:
    """Move a project from unprovisioned to provisioning.

    A project left in ``provisioning`` by an interrupted run may re-enter;
    the remote duplicate-folder check guards against a second copy.

    Raises:
        DataIntegrityError: If the project is already provisioned.
    """
    if project.provisioning_state == ProvisioningState.provisioned:
        raise DataIntegrityError(
            f"Project {project.project_code} is already provisioned"
        )
    previous = project.provisioning_state
    project.provisioning_state = ProvisioningState.provisioning
    await session.commit()

    logger.info(
        "provisioning_started",
        project_code=project.project_code,
        previous_state=previous.value,
    )
    return project


async def abort_provisioning(
    session: AsyncSession,
    project: Project,
) -> Project:
    """Return a provisioning project to unprovisioned after a failed run."""
    if project.provisioning_state != ProvisioningState.provisioning:
        return project
    project.provisioning_state = ProvisioningState.unprovisioned
    await session.commit()

    logger.warning("provisioning_aborted", project_code=project.project_code)
    return project


async def complete_provisioning(
    session: AsyncSession,
    project: Project,
    folder_id: int | None,
    sheet_id: int,
    sheet_url: str | None,
    app_url: str | None = None,
) -> Project:
    """Record the remote folder/sheet pair and mark the project provisioned.

    This is a one-way transition: an already provisioned project is never
    re-pointed at a different sheet.

    Raises:
        DataIntegrityError: If the project is already provisioned.
    """
    if project.provisioning_state == ProvisioningState.provisioned:
        raise DataIntegrityError(
            f"Project {project.project_code} is already provisioned "
            f"with sheet {project.wbs_sheet_id}"
        )
    project.wbs_folder_id = folder_id
    project.wbs_sheet_id = sheet_id
    project.wbs_sheet_url = sheet_url
    project.wbs_app_url = app_url
    project.provisioning_state = ProvisioningState.provisioned
    project.last_update_at = utcnow()
    await session.commit()

    logger.info(
        "provisioning_completed",
        project_code=project.project_code,
        folder_id=folder_id,
        sheet_id=sheet_id,
    )
    return project
