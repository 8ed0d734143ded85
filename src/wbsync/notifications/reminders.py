"""Weekly reminder and escalation scan over stale projects."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wbsync.config import ReminderConfig
from wbsync.database.models.base import as_utc, utcnow
from wbsync.database.models.project import ApprovalStatus, Project, ProjectStatus
from wbsync.database.queries.project import list_projects
from wbsync.notifications.sender import NotificationSender, ProjectDigest

logger = structlog.get_logger(__name__)

ESCALATION_STATUSES = frozenset({ProjectStatus.blocked, ProjectStatus.at_risk})


@dataclass
class ReminderRunResult:
    """Counts of one reminder run."""

    stale_projects: int = 0
    reminders_sent: int = 0
    escalations_sent: int = 0
    failures: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "stale_projects": self.stale_projects,
            "reminders_sent": self.reminders_sent,
            "escalations_sent": self.escalations_sent,
            "failures": self.failures,
        }


def _digest(project: Project) -> ProjectDigest:
    return ProjectDigest(
        project_code=project.project_code,
        title=project.title,
        status=project.status.value,
        last_update_at=as_utc(project.last_update_at),
        wbs_app_url=project.wbs_app_url,
    )


def is_stale(project: Project, cutoff: datetime) -> bool:
    """Approved, unfinished and not updated since ``cutoff``."""
    if project.approval_status != ApprovalStatus.approved:
        return False
    if project.status == ProjectStatus.complete:
        return False
    last_update = as_utc(project.last_update_at or project.updated_at)
    return last_update is None or last_update < cutoff


class ReminderScheduler:
    """Groups stale projects by recipient and hands them to a sender.

    Assignees get a weekly reminder for each of their stale projects;
    approvers get an escalation for stale projects that are blocked or at risk.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        sender: NotificationSender,
        config: ReminderConfig,
    ) -> None:
        self.session_factory = session_factory
        self.sender = sender
        self.config = config

    async def collect(
        self, now: datetime | None = None
    ) -> tuple[dict[str, list[Project]], dict[str, list[Project]]]:
        """Return (reminders by assignee, escalations by approver)."""
        now = now or utcnow()
        cutoff = now - timedelta(days=self.config.stale_after_days)

        async with self.session_factory() as session:
            projects = await list_projects(session)

        reminders: dict[str, list[Project]] = defaultdict(list)
        escalations: dict[str, list[Project]] = defaultdict(list)
        for project in projects:
            if not is_stale(project, cutoff):
                continue
            if project.assignee:
                reminders[project.assignee].append(project)
            if project.approver and project.status in ESCALATION_STATUSES:
                escalations[project.approver].append(project)

        return dict(reminders), dict(escalations)

    async def run(self, now: datetime | None = None) -> ReminderRunResult:
        """Send every due reminder and escalation."""
        result = ReminderRunResult()
        if not self.config.enabled:
            logger.info("reminders_disabled")
            return result

        reminders, escalations = await self.collect(now)
        result.stale_projects = len(
            {p.id for group in (*reminders.values(), *escalations.values()) for p in group}
        )

        for recipient, projects in reminders.items():
            if await self.sender.send_weekly_reminder(recipient, [_digest(p) for p in projects]):
                result.reminders_sent += 1
            else:
                result.failures.append(recipient)

        for recipient, projects in escalations.items():
            if await self.sender.send_escalation_notification(
                recipient, [_digest(p) for p in projects]
            ):
                result.escalations_sent += 1
            else:
                result.failures.append(recipient)

        logger.info(
            "reminder_run_completed",
            stale_projects=result.stale_projects,
            reminders_sent=result.reminders_sent,
            escalations_sent=result.escalations_sent,
            failures=len(result.failures),
        )
        return result
