"""Portfolio reconciliation and WBS provisioning.

Consumes row-update notifications for the portfolio sheet and provisions a
WBS folder (copied from the template folder) for each newly approved
project. Two guards make repeated or out-of-order deliveries safe:

1. a remote folder named ``WBS (#<code>)`` already exists under the WBS
   parent folder (compared case-insensitively);
2. the local project is already provisioned.

Nothing serialises concurrent deliveries between guard 1 and the folder
copy; with human-paced approvals this window is accepted.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError as PayloadValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wbsync.config import SmartsheetConfig
from wbsync.database.models.project import (
    PROJECT_CODE_PATTERN,
    ApprovalStatus,
    Project,
)
from wbsync.database.queries.audit import record_audit
from wbsync.database.queries.project import (
    abort_provisioning,
    begin_provisioning,
    complete_provisioning,
    create_project,
    get_project_by_code,
    update_project,
)
from wbsync.errors import DataIntegrityError, RemoteServiceError, WbsyncError
from wbsync.logging import bind_sync_context, clear_sync_context, get_logger
from wbsync.smartsheet.accessor import (
    APPROVED,
    PortfolioColumn,
    WbsColumn,
    build_cells,
    find_column_by_title,
    get_cell_text,
    make_cell,
    make_hyperlink_cell,
)
from wbsync.smartsheet.client import SmartsheetClient
from wbsync.smartsheet.models import Row, Sheet, SheetSummary, WebhookCallback
from wbsync.sync.fields import status_from_label

logger = get_logger(__name__)

HANDSHAKE_FIELD = "smartsheetHookResponse"
WBS_SHEET_NAME = "Work Breakdown Schedule"


class ReconcileOutcome(str, enum.Enum):
    """What reconciling one portfolio row did."""

    ROW_NOT_FOUND = "row_not_found"
    NOT_APPROVED = "not_approved"
    MISSING_PROJECT_CODE = "missing_project_code"
    INVALID_PROJECT_CODE = "invalid_project_code"
    DUPLICATE_FOLDER = "duplicate_folder"
    ALREADY_PROVISIONED = "already_provisioned"
    PROVISIONED = "provisioned"


@dataclass
class ReconcileResult:
    """Outcome of reconciling a single portfolio row."""

    row_id: int
    outcome: ReconcileOutcome
    project_code: str | None = None
    folder_id: int | None = None
    sheet_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "row_id": self.row_id,
            "outcome": self.outcome.value,
            "project_code": self.project_code,
            "folder_id": self.folder_id,
            "sheet_id": self.sheet_id,
        }


@dataclass
class PollSummary:
    """Totals of one polling pass over the portfolio sheet."""

    checked: int = 0
    provisioned: int = 0
    pending_approval: int = 0
    skipped: int = 0
    errors: int = 0
    results: list[ReconcileResult] = field(default_factory=list)
    failures: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "checked": self.checked,
            "provisioned": self.provisioned,
            "pending_approval": self.pending_approval,
            "skipped": self.skipped,
            "errors": self.errors,
            "results": [result.to_dict() for result in self.results],
            "failures": self.failures,
        }


def handshake_response(challenge: str) -> dict[str, str]:
    """Echo a verification challenge back unmodified."""
    return {HANDSHAKE_FIELD: challenge}


def wbs_folder_name(project_code: str) -> str:
    return f"WBS (#{project_code})"


def find_wbs_sheet(sheets: list[SheetSummary]) -> SheetSummary | None:
    """Pick the WBS sheet inside a copied folder by name."""
    for sheet in sheets:
        if sheet.name == WBS_SHEET_NAME:
            return sheet
    for sheet in sheets:
        if "work breakdown" in sheet.name.lower():
            return sheet
    return None


class PortfolioReconciler:
    """Drives WBS provisioning from portfolio sheet approvals.

    Attributes:
        client: Smartsheet client used for every remote call
        session_factory: Factory for database sessions
        config: Smartsheet ids (portfolio sheet, template and parent folders)
        app_base_url: Public URL of this service, used for the WBS App Link
    """

    def __init__(
        self,
        client: SmartsheetClient,
        session_factory: async_sessionmaker[AsyncSession],
        config: SmartsheetConfig,
        app_base_url: str,
    ) -> None:
        self.client = client
        self.session_factory = session_factory
        self.config = config
        self.app_base_url = app_base_url.rstrip("/")

    async def handle_webhook_payload(self, payload: Any) -> list[ReconcileResult]:
        """Reconcile every row-update event in a webhook callback.

        Only ``row``/``updated`` events scoped to the portfolio sheet are
        acted on; row creation is ignored so a project's initial, unapproved
        insert never triggers work. Never raises: the sender cannot be asked
        to fix and resend, so failures are logged and dropped.

        Returns:
            Results for the rows that were reconciled without error.
        """
        try:
            callback = WebhookCallback.model_validate(payload)
        except PayloadValidationError as e:
            logger.warning("webhook_payload_malformed", error=str(e))
            return []

        if callback.scope_object_id != self.config.portfolio_sheet_id:
            logger.info(
                "webhook_scope_ignored",
                scope_object_id=callback.scope_object_id,
                webhook_id=callback.webhook_id,
            )
            return []

        results: list[ReconcileResult] = []
        for event in callback.events:
            row_id = event.target_row_id
            if event.object_type != "row" or event.event_type != "updated" or row_id is None:
                logger.debug(
                    "webhook_event_ignored",
                    object_type=event.object_type,
                    event_type=event.event_type,
                )
                continue
            try:
                results.append(await self.reconcile_row(row_id))
            except Exception:
                logger.exception("portfolio_row_reconcile_failed", row_id=row_id)

        return results

    async def reconcile_row(self, row_id: int, sheet: Sheet | None = None) -> ReconcileResult:
        """Bring one portfolio row's project to its target provisioning state.

        Args:
            row_id: Portfolio row id.
            sheet: Already loaded portfolio sheet, to avoid a re-fetch.

        Raises:
            RemoteServiceError: If a remote call before the folder copy fails.
            DataIntegrityError: If the copied folder holds no WBS sheet.
        """
        if sheet is None:
            sheet = await self.client.get_sheet(self.config.portfolio_sheet_id)

        row = sheet.find_row(row_id)
        if row is None:
            logger.warning("portfolio_row_not_found", row_id=row_id)
            return ReconcileResult(row_id, ReconcileOutcome.ROW_NOT_FOUND)

        approval = get_cell_text(row, sheet.columns, PortfolioColumn.APPROVAL_STATUS)
        project_code = get_cell_text(row, sheet.columns, PortfolioColumn.PROJECT_CODE)

        if approval != APPROVED:
            logger.info("portfolio_row_ignored", row_id=row_id, approval_status=approval)
            return ReconcileResult(row_id, ReconcileOutcome.NOT_APPROVED, project_code)

        if not project_code:
            logger.info("portfolio_row_missing_code", row_id=row_id)
            return ReconcileResult(row_id, ReconcileOutcome.MISSING_PROJECT_CODE)

        if not PROJECT_CODE_PATTERN.match(project_code):
            logger.warning(
                "portfolio_row_invalid_code", row_id=row_id, project_code=project_code
            )
            return ReconcileResult(row_id, ReconcileOutcome.INVALID_PROJECT_CODE, project_code)

        bind_sync_context(project_code=project_code)
        try:
            return await self._reconcile_approved(sheet, row, row_id, project_code)
        finally:
            clear_sync_context()

    async def _reconcile_approved(
        self,
        sheet: Sheet,
        row: Row,
        row_id: int,
        project_code: str,
    ) -> ReconcileResult:
        folder_name = wbs_folder_name(project_code)

        parent = await self.client.get_folder(self.config.wbs_parent_folder_id)
        existing = next(
            (f for f in parent.folders if f.name.lower() == folder_name.lower()),
            None,
        )
        if existing is not None:
            logger.info("wbs_folder_exists", folder_id=existing.id, folder_name=existing.name)
            return ReconcileResult(
                row_id, ReconcileOutcome.DUPLICATE_FOLDER, project_code, folder_id=existing.id
            )

        async with self.session_factory() as session:
            project = await self._upsert_project(session, sheet, row, project_code)

            if project.is_provisioned or project.wbs_sheet_id is not None:
                logger.info("project_already_provisioned", sheet_id=project.wbs_sheet_id)
                return ReconcileResult(
                    row_id,
                    ReconcileOutcome.ALREADY_PROVISIONED,
                    project_code,
                    folder_id=project.wbs_folder_id,
                    sheet_id=project.wbs_sheet_id,
                )

            return await self._provision(session, sheet, row_id, project, folder_name)

    async def _upsert_project(
        self,
        session: AsyncSession,
        sheet: Sheet,
        row: Row,
        project_code: str,
    ) -> Project:
        """Create or refresh the local project from the portfolio row."""
        columns = sheet.columns
        fields: dict[str, Any] = {
            "title": get_cell_text(row, columns, PortfolioColumn.PROJECT_NAME),
            "description": get_cell_text(row, columns, PortfolioColumn.DESCRIPTION),
            "category": get_cell_text(row, columns, PortfolioColumn.CATEGORY),
            "assignee": get_cell_text(row, columns, PortfolioColumn.ASSIGNED_TO),
            "approver": get_cell_text(row, columns, PortfolioColumn.APPROVED_BY),
        }
        status_label = get_cell_text(row, columns, PortfolioColumn.STATUS)
        if status_label is not None:
            fields["status"] = status_from_label(status_label)
        fields = {key: value for key, value in fields.items() if value is not None}

        project = await get_project_by_code(session, project_code)
        if project is None:
            fields.setdefault("title", project_code)
            return await create_project(
                session,
                project_code,
                approval_status=ApprovalStatus.approved,
                portfolio_row_id=row.id,
                **fields,
            )

        return await update_project(
            session,
            project.id,
            approval_status=ApprovalStatus.approved,
            portfolio_row_id=row.id,
            **fields,
        )

    async def _provision(
        self,
        session: AsyncSession,
        portfolio: Sheet,
        row_id: int,
        project: Project,
        folder_name: str,
    ) -> ReconcileResult:
        """Copy the template folder and record the new folder/sheet pair.

        Local state only reaches ``provisioned`` once the ids are known.
        Link and code writes after the copy are best-effort.
        """
        await begin_provisioning(session, project)

        try:
            folder = await self.client.copy_folder(
                self.config.wbs_template_folder_id,
                self.config.wbs_parent_folder_id,
                folder_name,
            )
            logger.info("wbs_folder_copied", folder_id=folder.id, folder_name=folder_name)

            contents = await self.client.get_folder(folder.id)
            wbs_sheet = find_wbs_sheet(contents.sheets)
            if wbs_sheet is None:
                raise DataIntegrityError(
                    f"Copied folder {folder.id} ({folder_name}) holds no "
                    f"{WBS_SHEET_NAME!r} sheet"
                )
        except WbsyncError:
            # The copied folder, if any, stays: the duplicate guard makes re-runs safe
            await abort_provisioning(session, project)
            raise

        bind_sync_context(sheet_id=wbs_sheet.id)
        app_url = f"{self.app_base_url}/projects/{project.id}/wbs"

        await self._write_project_code(wbs_sheet.id, project.project_code)
        await self._patch_portfolio_links(portfolio, row_id, wbs_sheet.permalink, app_url)

        await complete_provisioning(
            session,
            project,
            folder_id=folder.id,
            sheet_id=wbs_sheet.id,
            sheet_url=wbs_sheet.permalink,
            app_url=app_url,
        )
        await record_audit(
            session,
            action="project.provisioned",
            target_type="project",
            target_id=str(project.id),
            payload={
                "project_code": project.project_code,
                "folder_id": folder.id,
                "sheet_id": wbs_sheet.id,
                "portfolio_row_id": row_id,
            },
        )

        return ReconcileResult(
            row_id,
            ReconcileOutcome.PROVISIONED,
            project.project_code,
            folder_id=folder.id,
            sheet_id=wbs_sheet.id,
        )

    async def _write_project_code(self, sheet_id: int, project_code: str) -> bool:
        """Put the project code in the first row's Name cell of a new WBS sheet."""
        try:
            sheet = await self.client.get_sheet(sheet_id)
            if not sheet.rows or sheet.rows[0].id is None:
                logger.warning("wbs_sheet_empty", sheet_id=sheet_id)
                return False
            cells = build_cells(sheet.columns, {WbsColumn.NAME: project_code})
            if not cells:
                logger.warning("wbs_name_column_missing", sheet_id=sheet_id)
                return False
            await self.client.update_rows(sheet_id, [Row(id=sheet.rows[0].id, cells=cells)])
        except RemoteServiceError as e:
            logger.warning("wbs_project_code_write_failed", sheet_id=sheet_id, error=str(e))
            return False
        return True

    async def _patch_portfolio_links(
        self,
        portfolio: Sheet,
        row_id: int,
        sheet_url: str | None,
        app_url: str,
    ) -> bool:
        """Write the Project Plan hyperlink and WBS App Link on the portfolio row."""
        cells = []
        plan_column = find_column_by_title(portfolio.columns, PortfolioColumn.PROJECT_PLAN)
        if plan_column is not None and sheet_url:
            cells.append(make_hyperlink_cell(plan_column.id, sheet_url, WBS_SHEET_NAME))
        app_column = find_column_by_title(portfolio.columns, PortfolioColumn.WBS_APP_LINK)
        if app_column is not None:
            cells.append(make_cell(app_column.id, app_url))

        if not cells:
            logger.info("portfolio_link_columns_missing", row_id=row_id)
            return False

        try:
            await self.client.update_rows(portfolio.id, [Row(id=row_id, cells=cells)])
        except RemoteServiceError as e:
            logger.warning("portfolio_link_patch_failed", row_id=row_id, error=str(e))
            return False
        logger.info("portfolio_links_patched", row_id=row_id, cells=len(cells))
        return True

    async def poll_portfolio(self) -> PollSummary:
        """Reconcile every portfolio row; the fallback for missed webhooks.

        One row's failure is counted and does not stop the scan.

        Raises:
            RemoteServiceError: If the portfolio sheet itself cannot be read.
        """
        sheet = await self.client.get_sheet(self.config.portfolio_sheet_id)
        summary = PollSummary()

        for row in sheet.rows:
            if row.id is None:
                continue
            summary.checked += 1
            try:
                result = await self.reconcile_row(row.id, sheet=sheet)
            except Exception as e:
                logger.exception("portfolio_poll_row_failed", row_id=row.id)
                summary.errors += 1
                summary.failures.append({"row_id": row.id, "error": str(e)})
                continue

            summary.results.append(result)
            if result.outcome == ReconcileOutcome.PROVISIONED:
                summary.provisioned += 1
            elif result.outcome == ReconcileOutcome.NOT_APPROVED:
                summary.pending_approval += 1
            else:
                summary.skipped += 1

        logger.info(
            "portfolio_poll_completed",
            checked=summary.checked,
            provisioned=summary.provisioned,
            errors=summary.errors,
        )
        return summary
