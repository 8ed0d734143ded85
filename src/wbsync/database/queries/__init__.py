"""Database query functions for wbsync.

This module provides async query functions for all database entities:
- Project CRUD operations and provisioning transitions
- WBS task cache reads, mutations and sync upserts
- Audit log recording
"""

from wbsync.database.queries.audit import list_audit, record_audit
from wbsync.database.queries.project import (
    abort_provisioning,
    begin_provisioning,
    complete_provisioning,
    create_project,
    delete_project,
    get_project,
    get_project_by_code,
    list_projects,
    require_project,
    update_project,
    validate_project_code,
)
from wbsync.database.queries.wbs_task import (
    clear_project_tasks,
    create_task,
    get_task,
    get_task_by_remote_row,
    list_project_tasks,
    mark_task_synced,
    update_task,
    upsert_synced_task,
)

__all__ = [
    # Project queries
    "create_project",
    "get_project",
    "get_project_by_code",
    "require_project",
    "list_projects",
    "update_project",
    "delete_project",
    "validate_project_code",
    "begin_provisioning",
    "abort_provisioning",
    "complete_provisioning",
    # WBS task queries
    "create_task",
    "get_task",
    "get_task_by_remote_row",
    "list_project_tasks",
    "update_task",
    "mark_task_synced",
    "upsert_synced_task",
    "clear_project_tasks",
    # Audit queries
    "record_audit",
    "list_audit",
]
