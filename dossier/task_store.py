"""
Task Store - tracking tasks per tenant

Two kinds of writers use this store:
1. The task reconciler (create_task, update_task) - MISSING_ITEM tasks only
2. Users through the API (create_manual_task, edit_task, delete_task)

update_task never touches due_at. Only edit_task (a user action) can
change a due date.
"""

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, List, Dict, Any

from .audit_log import AuditLog
from .dossier_model import (
    TrackingTask,
    TaskSource,
    TaskStatus,
    TaskPriority,
    TaskNotFoundError,
    as_utc,
)
from .json_store import JsonSnapshotStore

logger = logging.getLogger("task_store")

# Fields a user may change through edit_task
EDITABLE_FIELDS = frozenset({"title", "status", "priority", "due_at"})

_FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)


def new_task_id() -> str:
    return f"task-{uuid.uuid4().hex[:12]}"


class TaskStore(JsonSnapshotStore):
    """Tasks keyed by task_id."""

    def __init__(self, tasks_file: Path, audit_log: Optional[AuditLog] = None):
        super().__init__(tasks_file)
        self._audit_log = audit_log

    # -------------------------------------------------------------------------
    # Reconciler Operations
    # -------------------------------------------------------------------------

    def list_machine_tasks(self, tenant_id: str, template_id: str) -> List[TrackingTask]:
        """
        MISSING_ITEM tasks of a tenant for a template.

        Tasks without a template_id are included; they are matched on
        requirement_id by the caller.
        """
        records = self._read_records("list_machine_tasks")
        tasks = []
        for record in records.values():
            if record.get("tenant_id") != tenant_id:
                continue
            if record.get("source") != TaskSource.MISSING_ITEM.value:
                continue
            if record.get("template_id") not in (None, template_id):
                continue
            tasks.append(self._parse_record(TrackingTask.from_dict, record, "list_machine_tasks"))
        return tasks

    def create_task(self, task: TrackingTask) -> TrackingTask:
        with self._lock:
            records = self._read_records("create_task", task.requirement_id)
            if task.task_id in records:
                raise ValueError(f"Task '{task.task_id}' already exists")
            records[task.task_id] = task.to_dict()
            self._write_records(records, "create_task", task.requirement_id)

        logger.debug(f"Created task {task.task_id} ({task.source.value})")
        return task

    def update_task(
        self,
        task_id: str,
        status: TaskStatus,
        priority: TaskPriority,
        completed_at: Optional[datetime],
    ) -> TrackingTask:
        """Set status, priority and completed_at. Every other field is kept."""
        with self._lock:
            records = self._read_records("update_task")
            record = records.get(task_id)
            if record is None:
                raise TaskNotFoundError(task_id)

            task = self._parse_record(TrackingTask.from_dict, record, "update_task")
            task.status = TaskStatus(status)
            task.priority = TaskPriority(priority)
            task.completed_at = completed_at
            records[task_id] = task.to_dict()
            self._write_records(records, "update_task", task.requirement_id)

        logger.debug(f"Updated task {task_id}: status={task.status.value}, priority={task.priority.value}")
        return task

    # -------------------------------------------------------------------------
    # User Operations
    # -------------------------------------------------------------------------

    def get_task(self, tenant_id: str, task_id: str) -> TrackingTask:
        record = self._read_records("get_task").get(task_id)
        if record is None or record.get("tenant_id") != tenant_id:
            raise TaskNotFoundError(task_id)
        return self._parse_record(TrackingTask.from_dict, record, "get_task")

    def list_tasks(
        self,
        tenant_id: str,
        status: Optional[TaskStatus] = None,
        source: Optional[TaskSource] = None,
        open_only: bool = False,
    ) -> List[TrackingTask]:
        """Tenant tasks ordered by due date, undated tasks last."""
        records = self._read_records("list_tasks")
        tasks = []
        for record in records.values():
            if record.get("tenant_id") != tenant_id:
                continue
            task = self._parse_record(TrackingTask.from_dict, record, "list_tasks")
            if status and task.status != status:
                continue
            if source and task.source != source:
                continue
            if open_only and task.status == TaskStatus.DONE:
                continue
            tasks.append(task)

        return sorted(tasks, key=lambda t: (t.due_at or _FAR_FUTURE, t.task_id))

    def create_manual_task(
        self,
        tenant_id: str,
        title: str,
        due_at: Optional[datetime] = None,
        priority: TaskPriority = TaskPriority.NORMAL,
        created_by: Optional[str] = None,
    ) -> TrackingTask:
        task = TrackingTask(
            task_id=new_task_id(),
            tenant_id=tenant_id,
            title=title,
            source=TaskSource.MANUAL,
            status=TaskStatus.OPEN,
            priority=priority,
            due_at=due_at,
            created_at=datetime.now(timezone.utc),
            created_by=created_by,
        )
        self.create_task(task)

        if self._audit_log:
            self._audit_log.log_event(
                tenant_id=tenant_id,
                action="task.created",
                entity_type="task",
                entity_id=task.task_id,
                meta={"title": title},
                actor=created_by,
            )
        return task

    def edit_task(
        self,
        tenant_id: str,
        task_id: str,
        changes: Dict[str, Any],
        actor: Optional[str] = None,
    ) -> TrackingTask:
        """
        Apply a user edit.

        Moving to done stamps completed_at; any other status clears it.
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not editable: {sorted(unknown)}")

        with self._lock:
            records = self._read_records("edit_task")
            record = records.get(task_id)
            if record is None or record.get("tenant_id") != tenant_id:
                raise TaskNotFoundError(task_id)

            task = self._parse_record(TrackingTask.from_dict, record, "edit_task")
            if "title" in changes:
                task.title = changes["title"]
            if "priority" in changes:
                task.priority = TaskPriority(changes["priority"])
            if "due_at" in changes:
                task.due_at = as_utc(changes["due_at"]) if changes["due_at"] else None
            if "status" in changes:
                task.status = TaskStatus(changes["status"])
                if task.status == TaskStatus.DONE:
                    task.completed_at = task.completed_at or datetime.now(timezone.utc)
                else:
                    task.completed_at = None

            records[task_id] = task.to_dict()
            self._write_records(records, "edit_task", task.requirement_id)

        logger.info(f"Edited task {task_id}: {sorted(changes)}")
        if self._audit_log and changes.get("status") == TaskStatus.DONE:
            self._audit_log.log_event(
                tenant_id=tenant_id,
                action="task.completed",
                entity_type="task",
                entity_id=task_id,
                meta={"title": task.title},
                actor=actor,
            )
        return task

    def delete_task(self, tenant_id: str, task_id: str) -> None:
        with self._lock:
            records = self._read_records("delete_task")
            record = records.get(task_id)
            if record is None or record.get("tenant_id") != tenant_id:
                raise TaskNotFoundError(task_id)
            del records[task_id]
            self._write_records(records, "delete_task")
        logger.info(f"Deleted task {task_id}")
