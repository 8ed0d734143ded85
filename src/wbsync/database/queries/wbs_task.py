"""WBS task cache query functions for wbsync.

Provides async functions for reading and mutating the local mirror of a
project's WBS sheet. ``upsert_synced_task`` flushes without committing so a
sheet sync can keep all of its rows in one transaction.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from wbsync.database.models.base import as_utc, utcnow
from wbsync.database.models.project import ProjectStatus
from wbsync.database.models.wbs_task import WbsTask
from wbsync.errors import DataIntegrityError, NotFoundError, ValidationError
from wbsync.wbs.codes import next_order_index

logger = structlog.get_logger(__name__)

# Fields a caller may change on an existing task
MUTABLE_TASK_FIELDS = frozenset(
    {
        "name",
        "description",
        "owner_last_name",
        "approver_last_name",
        "status",
        "start_date",
        "end_date",
        "at_risk",
        "budget",
        "actual",
        "variance",
        "notes",
        "order_index",
        "parent_id",
    }
)


async def list_project_tasks(
    session: AsyncSession,
    project_id: UUID,
) -> list[WbsTask]:
    """Load the full task set of a project.

    Returns:
        Tasks ordered by order_index then creation time.
    """
    stmt = (
        select(WbsTask)
        .where(WbsTask.project_id == project_id)
        .order_by(WbsTask.order_index.asc(), WbsTask.created_at.asc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_task(
    session: AsyncSession,
    task_id: UUID,
) -> WbsTask | None:
    """Retrieve a task by ID."""
    stmt = select(WbsTask).where(WbsTask.id == task_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_task_by_remote_row(
    session: AsyncSession,
    project_id: UUID,
    remote_row_id: int,
) -> WbsTask | None:
    """Retrieve the task mirroring a given remote row of a project."""
    stmt = select(WbsTask).where(
        WbsTask.project_id == project_id,
        WbsTask.remote_row_id == remote_row_id,
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def _check_parent(
    session: AsyncSession,
    project_id: UUID,
    parent_id: UUID | None,
    task_id: UUID | None = None,
) -> WbsTask | None:
    """Ensure a parent reference stays inside the project and acyclic."""
    if parent_id is None:
        return None

    parent = await get_task(session, parent_id)
    if parent is None or parent.project_id != project_id:
        raise ValidationError(
            f"Parent task {parent_id} does not belong to project {project_id}"
        )

    # Walk up from the new parent; meeting the task itself means a cycle
    if task_id is not None:
        seen: set[UUID] = set()
        cursor: WbsTask | None = parent
        while cursor is not None:
            if cursor.id == task_id:
                raise DataIntegrityError(
                    f"Moving task {task_id} under {parent_id} would create a cycle"
                )
            if cursor.id in seen:
                raise DataIntegrityError(f"Task tree of project {project_id} has a cycle")
            seen.add(cursor.id)
            cursor = await get_task(session, cursor.parent_id) if cursor.parent_id else None

    return parent


async def create_task(
    session: AsyncSession,
    project_id: UUID,
    name: str,
    order_index: int,
    parent_id: UUID | None = None,
    remote_row_id: int | None = None,
    description: str | None = None,
    owner_last_name: str | None = None,
    approver_last_name: str | None = None,
    status: ProjectStatus = ProjectStatus.not_started,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    budget: str | None = None,
    notes: str | None = None,
) -> WbsTask:
    """Create a new cached task.

    Args:
        session: Active async database session.
        project_id: Owning project.
        name: Task name, must not be blank.
        order_index: Sort key among siblings.
        parent_id: Parent task in the same project.
        remote_row_id: Remote row id when the task already exists remotely.
        description: Optional description.
        owner_last_name: Assignee last name.
        approver_last_name: Approver last name.
        status: Initial status.
        start_date: Planned start.
        end_date: Planned end.
        budget: Budget text.
        notes: Free-form notes.

    Returns:
        The newly created WbsTask.

    Raises:
        ValidationError: If the name is blank or the parent is foreign.
    """
    if not name or not name.strip():
        raise ValidationError("Task name must not be empty")
    if start_date and end_date and end_date < start_date:
        raise ValidationError("Task end date is before its start date")

    await _check_parent(session, project_id, parent_id)

    task = WbsTask(
        project_id=project_id,
        parent_id=parent_id,
        remote_row_id=remote_row_id,
        name=name.strip(),
        description=description,
        owner_last_name=owner_last_name,
        approver_last_name=approver_last_name,
        status=status,
        start_date=start_date,
        end_date=end_date,
        at_risk=status == ProjectStatus.at_risk,
        budget=budget,
        notes=notes,
        order_index=order_index,
    )
    session.add(task)
    await session.commit()

    logger.info(
        "wbs_task_created",
        task_id=str(task.id),
        project_id=str(project_id),
        parent_id=str(parent_id) if parent_id else None,
        order_index=order_index,
    )

    return task


async def update_task(
    session: AsyncSession,
    task_id: UUID,
    **updates: Any,
) -> WbsTask:
    """Update a cached task.

    Moving a task to another parent makes it that parent's last child
    unless an explicit ``order_index`` is given.

    Raises:
        NotFoundError: If the task does not exist.
        ValidationError: If an unknown field, a blank name or an inverted
            date range is given.
        DataIntegrityError: If a parent change would create a cycle.
    """
    unknown = set(updates) - MUTABLE_TASK_FIELDS
    if unknown:
        raise ValidationError(f"Unknown or read-only task fields: {sorted(unknown)}")
    if "name" in updates and not (updates["name"] or "").strip():
        raise ValidationError("Task name must not be empty")

    task = await get_task(session, task_id)
    if task is None:
        raise NotFoundError(f"Task {task_id} not found")

    start_date = as_utc(updates.get("start_date", task.start_date))
    end_date = as_utc(updates.get("end_date", task.end_date))
    if start_date and end_date and end_date < start_date:
        raise ValidationError("Task end date is before its start date")

    if "parent_id" in updates and updates["parent_id"] != task.parent_id:
        await _check_parent(session, task.project_id, updates["parent_id"], task.id)
        if "order_index" not in updates:
            # A moved task becomes the last child of its new parent
            siblings = [
                t for t in await list_project_tasks(session, task.project_id) if t.id != task.id
            ]
            updates["order_index"] = next_order_index(siblings, updates["parent_id"])

    for field_name, value in updates.items():
        setattr(task, field_name, value)
    if "status" in updates:
        task.at_risk = task.status == ProjectStatus.at_risk
    await session.commit()

    logger.info(
        "wbs_task_updated",
        task_id=str(task_id),
        fields_updated=list(updates.keys()),
    )

    return task


async def mark_task_synced(
    session: AsyncSession,
    task: WbsTask,
    remote_row_id: int | None = None,
) -> WbsTask:
    """Record that a task now matches its remote row."""
    if remote_row_id is not None:
        task.remote_row_id = remote_row_id
    task.last_synced_at = utcnow()
    await session.commit()
    return task


async def upsert_synced_task(
    session: AsyncSession,
    project_id: UUID,
    remote_row_id: int,
    fields: dict[str, Any],
    synced_at: datetime,
) -> tuple[WbsTask, bool]:
    """Create or update the task mirroring a remote row, without committing.

    Args:
        session: Session holding the caller's open transaction.
        project_id: Owning project.
        remote_row_id: Join key on the remote sheet.
        fields: Column values mapped to WbsTask attribute names.
        synced_at: Timestamp recorded as last_synced_at.

    Returns:
        Tuple of (task, created).
    """
    task = await get_task_by_remote_row(session, project_id, remote_row_id)
    created = task is None
    if task is None:
        task = WbsTask(project_id=project_id, remote_row_id=remote_row_id, name="")
        session.add(task)

    for field_name, value in fields.items():
        setattr(task, field_name, value)
    task.last_synced_at = synced_at
    await session.flush()

    return task, created


async def clear_project_tasks(
    session: AsyncSession,
    project_id: UUID,
) -> int:
    """Delete every cached task of a project.

    Returns:
        Number of rows removed.
    """
    # Detach children first so the self-reference never blocks the delete
    tasks = await list_project_tasks(session, project_id)
    for task in tasks:
        task.parent_id = None
    await session.flush()

    stmt = delete(WbsTask).where(WbsTask.project_id == project_id)
    result = await session.execute(stmt)
    await session.commit()

    logger.info("wbs_cache_cleared", project_id=str(project_id), removed=result.rowcount)
    return result.rowcount
