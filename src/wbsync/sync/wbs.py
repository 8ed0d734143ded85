"""Bulk synchronisation of remote WBS sheets into the local task cache.

Sheets are discovered under the WBS parent folder, each project's code is
inferred from its folder (``WBS (#P-0010)``) or sheet name, and every row is
mirrored into ``wbs_cache`` keyed by its remote row id. Sheets are processed
sequentially and independently: one sheet's failure is recorded in the batch
result and never stops the rest.
"""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from pydantic import ValidationError as PayloadValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wbsync.config import SmartsheetConfig
from wbsync.database.models.base import utcnow
from wbsync.database.models.project import Project, ProjectStatus
from wbsync.database.models.wbs_task import WbsTask
from wbsync.database.queries.project import (
    complete_provisioning,
    create_project,
    get_project_by_code,
    require_project,
)
from wbsync.database.queries.wbs_task import list_project_tasks, upsert_synced_task
from wbsync.errors import DataIntegrityError, RemoteServiceError, ValidationError, WbsyncError
from wbsync.logging import bind_sync_context, clear_sync_context, get_logger
from wbsync.smartsheet.accessor import WbsColumn, get_cell_text, get_cell_value
from wbsync.smartsheet.client import SmartsheetClient
from wbsync.smartsheet.models import Column, Row, Sheet
from wbsync.sync.fields import (
    extract_last_name,
    parse_date,
    parse_flag,
    status_from_label,
    text_or_none,
)

logger = get_logger(__name__)

WBS_NAME_PATTERNS = (
    re.compile(r"WBS\s*\(#?[A-Z]+-\d+\)", re.IGNORECASE),
    re.compile(r"^[A-Z]+-\d+.*WBS", re.IGNORECASE),
    re.compile(r"Work\s*Breakdown\s*Schedule.*[A-Z]+-\d+", re.IGNORECASE),
)

PROJECT_CODE_PATTERNS = (
    re.compile(r"\(#?([A-Z]+-\d+)\)"),
    re.compile(r"^([A-Z]+-\d+)"),
    re.compile(r"\b([A-Z]+-\d+)\b"),
)

_SKIPPED_NAME_MARKERS = ("template", "save as")


def is_wbs_name(name: str) -> bool:
    """True for sheet or folder names that denote a project WBS.

    Templates and "Save As" copies never count.
    """
    lowered = name.lower()
    if any(marker in lowered for marker in _SKIPPED_NAME_MARKERS):
        return False
    return any(pattern.search(name) for pattern in WBS_NAME_PATTERNS)


def extract_project_code(name: str | None) -> str | None:
    """Derive a project code such as ``P-0010`` from a folder or sheet name."""
    if not name:
        return None
    for pattern in PROJECT_CODE_PATTERNS:
        match = pattern.search(name)
        if match:
            return match.group(1)
    return None


@dataclass
class DiscoveredSheet:
    """A WBS sheet found during discovery, with its containing folder."""

    id: int
    name: str
    permalink: str | None = None
    folder_id: int | None = None
    folder_name: str | None = None

    @property
    def project_code(self) -> str | None:
        return extract_project_code(self.folder_name) or extract_project_code(self.name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "permalink": self.permalink,
            "folder_id": self.folder_id,
            "folder_name": self.folder_name,
            "project_code": self.project_code,
        }


@dataclass
class SheetSyncResult:
    """Outcome of mirroring one sheet."""

    sheet_id: int
    project_code: str | None
    sheet_name: str | None = None
    success: bool = False
    rows_synced: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sheet_id": self.sheet_id,
            "sheet_name": self.sheet_name,
            "project_code": self.project_code,
            "success": self.success,
            "rows_synced": self.rows_synced,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "error": self.error,
        }


@dataclass
class BatchSyncResult:
    """Aggregate of a batch run; partial results are always kept."""

    results: list[SheetSyncResult] = field(default_factory=list)

    @property
    def total_sheets(self) -> int:
        return len(self.results)

    @property
    def total_synced(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def total_errors(self) -> int:
        return sum(1 for result in self.results if not result.success)

    @property
    def total_rows(self) -> int:
        return sum(result.rows_synced for result in self.results)

    @property
    def success(self) -> bool:
        return self.total_errors == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "total_sheets": self.total_sheets,
            "total_synced": self.total_synced,
            "total_errors": self.total_errors,
            "total_rows": self.total_rows,
            "results": [result.to_dict() for result in self.results],
        }


def row_to_task_fields(row: Row, columns: list[Column]) -> dict[str, Any]:
    """Map a WBS row's cells to WbsTask attributes by column title.

    Columns the sheet lacks yield None; the tree position is set by the caller.
    """
    status = status_from_label(get_cell_value(row, columns, WbsColumn.STATUS))
    return {
        "name": get_cell_text(row, columns, WbsColumn.NAME),
        "description": get_cell_text(row, columns, WbsColumn.DESCRIPTION),
        "owner_last_name": extract_last_name(get_cell_value(row, columns, WbsColumn.ASSIGNED_TO)),
        "approver_last_name": extract_last_name(get_cell_value(row, columns, WbsColumn.APPROVER)),
        "status": status,
        "start_date": parse_date(get_cell_value(row, columns, WbsColumn.START_DATE)),
        "end_date": parse_date(get_cell_value(row, columns, WbsColumn.END_DATE)),
        "at_risk": parse_flag(get_cell_value(row, columns, WbsColumn.AT_RISK))
        or status == ProjectStatus.at_risk,
        "budget": text_or_none(get_cell_value(row, columns, WbsColumn.BUDGET)),
        "actual": text_or_none(get_cell_value(row, columns, WbsColumn.ACTUAL)),
        "variance": text_or_none(get_cell_value(row, columns, WbsColumn.VARIANCE)),
        "notes": text_or_none(get_cell_value(row, columns, WbsColumn.NOTES)),
    }


class WbsSyncEngine:
    """Mirrors remote WBS sheets into the local task cache.

    Attributes:
        client: Smartsheet client used for discovery and sheet reads
        session_factory: Factory for database sessions
        config: Smartsheet ids (WBS parent folder)
        app_base_url: Public URL of this service, recorded on linked projects
    """

    def __init__(
        self,
        client: SmartsheetClient,
        session_factory: async_sessionmaker[AsyncSession],
        config: SmartsheetConfig,
        app_base_url: str | None = None,
    ) -> None:
        self.client = client
        self.session_factory = session_factory
        self.config = config
        self.app_base_url = app_base_url.rstrip("/") if app_base_url else None

    async def discover_sheets(self, folder_id: int | None = None) -> list[DiscoveredSheet]:
        """List WBS sheets under a folder.

        A sheet counts when its own name is a WBS name or when it sits in a
        WBS-named folder. WBS-named subfolders are searched recursively; a
        subfolder that cannot be read is logged and skipped.

        Raises:
            RemoteServiceError: If the starting folder cannot be read.
        """
        root_id = folder_id if folder_id is not None else self.config.wbs_parent_folder_id
        discovered: list[DiscoveredSheet] = []
        await self._discover_in(root_id, discovered, is_root=True)

        logger.info("wbs_sheets_discovered", folder_id=root_id, count=len(discovered))
        return discovered

    async def _discover_in(
        self,
        folder_id: int,
        discovered: list[DiscoveredSheet],
        is_root: bool = False,
    ) -> None:
        try:
            folder = await self.client.get_folder(folder_id)
        except RemoteServiceError as e:
            if is_root:
                raise
            logger.warning("wbs_folder_unreadable", folder_id=folder_id, error=str(e))
            return

        in_wbs_folder = is_wbs_name(folder.name)
        for sheet in folder.sheets:
            lowered = sheet.name.lower()
            if any(marker in lowered for marker in _SKIPPED_NAME_MARKERS):
                continue
            if in_wbs_folder or is_wbs_name(sheet.name):
                discovered.append(
                    DiscoveredSheet(
                        id=sheet.id,
                        name=sheet.name,
                        permalink=sheet.permalink,
                        folder_id=folder.id,
                        folder_name=folder.name,
                    )
                )

        for subfolder in folder.folders:
            if is_wbs_name(subfolder.name):
                await self._discover_in(subfolder.id, discovered)

    async def sync_all(self, folder_id: int | None = None) -> BatchSyncResult:
        """Discover and sync every WBS sheet, sequentially.

        Raises:
            RemoteServiceError: Only if discovery itself fails.
        """
        sheets = await self.discover_sheets(folder_id)
        batch = BatchSyncResult()

        for discovered in sheets:
            result = await self.sync_one(
                discovered.id,
                discovered.project_code,
                sheet_name=discovered.name,
                folder_id=discovered.folder_id,
            )
            batch.results.append(result)

        logger.info(
            "wbs_batch_sync_completed",
            total_sheets=batch.total_sheets,
            total_synced=batch.total_synced,
            total_errors=batch.total_errors,
        )
        return batch

    async def sync_project(self, project_id: UUID) -> SheetSyncResult:
        """Sync the WBS sheet linked to one project.

        Raises:
            NotFoundError: If the project does not exist.
            ValidationError: If the project has no linked WBS sheet.
        """
        async with self.session_factory() as session:
            project = await require_project(session, project_id)
            if project.wbs_sheet_id is None:
                raise ValidationError(
                    f"Project {project.project_code} has no linked WBS sheet"
                )
            sheet_id = project.wbs_sheet_id
            project_code = project.project_code

        return await self.sync_one(sheet_id, project_code)

    async def sync_one(
        self,
        sheet_id: int,
        project_code: str | None,
        sheet_name: str | None = None,
        folder_id: int | None = None,
    ) -> SheetSyncResult:
        """Mirror one sheet into the cache of its project.

        Rows are created or updated by remote row id and committed together;
        any failure rolls the sheet back and is returned, not raised.
        """
        result = SheetSyncResult(sheet_id=sheet_id, project_code=project_code, sheet_name=sheet_name)
        bind_sync_context(project_code=project_code, sheet_id=sheet_id)
        try:
            if not project_code:
                raise ValidationError(f"No project code could be derived for sheet {sheet_id}")

            sheet = await self.client.get_sheet(sheet_id)
            result.sheet_name = sheet.name or sheet_name

            async with self.session_factory() as session:
                project = await self._resolve_project(session, project_code, sheet, folder_id)
                try:
                    await self._mirror_rows(session, project, sheet, result)
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

            result.success = True
            logger.info(
                "wbs_sheet_synced",
                rows_synced=result.rows_synced,
                created=result.created,
                updated=result.updated,
                skipped=result.skipped,
            )
        except (WbsyncError, SQLAlchemyError, PayloadValidationError) as e:
            self._record_failure(result, e)
            logger.error("wbs_sheet_sync_failed", error=str(e), error_type=type(e).__name__)
        except Exception as e:
            self._record_failure(result, e)
            logger.exception("wbs_sheet_sync_crashed", error_type=type(e).__name__)
        finally:
            clear_sync_context()

        return result

    @staticmethod
    def _record_failure(result: SheetSyncResult, error: Exception) -> None:
        result.success = False
        result.rows_synced = result.created = result.updated = 0
        result.error = str(error) or type(error).__name__

    async def _resolve_project(
        self,
        session: AsyncSession,
        project_code: str,
        sheet: Sheet,
        folder_id: int | None,
    ) -> Project:
        """Find or create the project and make sure this sheet is its WBS sheet."""
        project = await get_project_by_code(session, project_code)
        if project is None:
            project = await create_project(
                session,
                project_code,
                title=f"Project {project_code}",
                description=f"Created from WBS sheet {sheet.name!r}",
            )
            logger.info("project_auto_created", project_id=str(project.id))

        if project.wbs_sheet_id is None:
            app_url = f"{self.app_base_url}/projects/{project.id}/wbs" if self.app_base_url else None
            await complete_provisioning(
                session,
                project,
                folder_id=folder_id,
                sheet_id=sheet.id,
                sheet_url=sheet.permalink,
                app_url=app_url,
            )
        elif project.wbs_sheet_id != sheet.id:
            raise DataIntegrityError(
                f"Project {project_code} is linked to sheet {project.wbs_sheet_id}, "
                f"not {sheet.id}"
            )
        return project

    async def _mirror_rows(
        self,
        session: AsyncSession,
        project: Project,
        sheet: Sheet,
        result: SheetSyncResult,
    ) -> None:
        """Upsert every named row, deriving parent and sibling order from the sheet.

        Local-only tasks keep their relative order and are renumbered after
        the remote rows of their sibling group.
        """
        synced_at = utcnow()
        tasks_by_row: dict[int, WbsTask] = {}
        sibling_counts: dict[UUID | None, int] = defaultdict(int)

        for row in sheet.rows:
            if row.id is None:
                continue
            fields = row_to_task_fields(row, sheet.columns)
            if not fields["name"]:
                result.skipped += 1
                continue

            parent = tasks_by_row.get(row.parent_id) if row.parent_id is not None else None
            if row.parent_id is not None and parent is None:
                logger.warning("wbs_row_parent_unresolved", row_id=row.id, parent_row_id=row.parent_id)
            parent_id = parent.id if parent is not None else None

            sibling_counts[parent_id] += 1
            fields["parent_id"] = parent_id
            fields["order_index"] = sibling_counts[parent_id]

            task, created = await upsert_synced_task(session, project.id, row.id, fields, synced_at)
            tasks_by_row[row.id] = task
            result.rows_synced += 1
            if created:
                result.created += 1
            else:
                result.updated += 1

        # Cached tasks without a row on this sheet follow the remote siblings
        mirrored = {task.id for task in tasks_by_row.values()}
        for task in await list_project_tasks(session, project.id):
            if task.id not in mirrored:
                sibling_counts[task.parent_id] += 1
                task.order_index = sibling_counts[task.parent_id]

        project.last_update_at = synced_at
