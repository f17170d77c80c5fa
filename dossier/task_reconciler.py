"""
Task Reconciler - Idempotent Missing-Items Generator

Synchronizes MISSING_ITEM tracking tasks with resolved requirement status.

CRITICAL CONSTRAINTS:
- IDEMPOTENT: a second run over unchanged state creates and reopens nothing
- DUE DATE LOCK: due_at is set once at creation and NEVER changed here
- COMPLETE, DON'T DELETE: satisfied requirements close their task
- NO RE-PRIORITIZATION: an open or snoozed task is left untouched, even
  when the requirement's severity changed since it was created
- MACHINE TASKS ONLY: manual tasks are never read or written
- COLLECTED FAILURES: one requirement's store error never aborts the pass

Per requirement:
    satisfied or optional:
        task exists, not done      -> done, completed_at = now
    otherwise (priority urgent if expired, else normal):
        task exists, done          -> reopen (priority refreshed, due_at kept)
        task exists, open/snoozed  -> untouched
        no task                    -> create, due_at = now + due_days
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from .audit_log import AuditLog, ACTION_MISSING_ITEMS_GENERATED
from .dossier_model import (
    DEFAULT_TASK_DUE_DAYS,
    DEFAULT_TASK_TITLE_PREFIX,
    DossierError,
    DossierStoreError,
    ReconcileFailure,
    ReconcileResult,
    RequirementWithStatus,
    ResolvedStatus,
    TaskPriority,
    TaskSource,
    TaskStatus,
    TrackingTask,
    as_utc,
    utc_now,
)
from .summary_aggregator import summarize_entries
from .task_store import TaskStore, new_task_id

logger = logging.getLogger("task_reconciler")

# (template_id, tenant_id, now) -> resolved requirements in catalog order
ResolveAll = Callable[[str, str, datetime], List[RequirementWithStatus]]


def desired_priority(status: ResolvedStatus) -> TaskPriority:
    """Expired evidence is urgent, every other gap is normal."""
    if status == ResolvedStatus.EXPIRED:
        return TaskPriority.URGENT
    return TaskPriority.NORMAL


def _index_by_requirement(tasks: List[TrackingTask]) -> Dict[str, TrackingTask]:
    indexed: Dict[str, TrackingTask] = {}
    for task in tasks:
        if not task.requirement_id:
            continue
        current = indexed.get(task.requirement_id)
        if current is not None:
            logger.warning(
                f"Duplicate machine tasks for requirement {task.requirement_id}: "
                f"{current.task_id}, {task.task_id}"
            )
            # An unfinished task is the one a user can see
            if current.status != TaskStatus.DONE:
                continue
        indexed[task.requirement_id] = task
    return indexed


class TaskReconciler:
    """Runs one reconciliation pass per call. Holds no state between runs."""

    def __init__(
        self,
        resolve_all: ResolveAll,
        task_store: TaskStore,
        audit_log: Optional[AuditLog] = None,
        due_days: int = DEFAULT_TASK_DUE_DAYS,
        title_prefix: str = DEFAULT_TASK_TITLE_PREFIX,
    ):
        self._resolve_all = resolve_all
        self._task_store = task_store
        self._audit_log = audit_log
        self._due_days = due_days
        self._title_prefix = title_prefix

    def task_title(self, requirement_title: str) -> str:
        return f"{self._title_prefix}: {requirement_title}"

    # -------------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------------

    def reconcile(
        self,
        template_id: str,
        tenant_id: str,
        now: Optional[datetime] = None,
        actor: Optional[str] = None,
    ) -> ReconcileResult:
        """
        Run one pass and return counters, the fresh summary and failures.

        Raises only for errors that make the whole pass meaningless, such as
        an unknown template.
        """
        now = as_utc(now) if now else utc_now()
        result = ReconcileResult()

        entries = self._resolve_all(template_id, tenant_id, now)

        try:
            existing = _index_by_requirement(
                self._task_store.list_machine_tasks(tenant_id, template_id)
            )
        except DossierStoreError as e:
            # Without the current task set any write could duplicate a task
            logger.error(f"Cannot list tasks for {tenant_id}/{template_id}: {e.message}")
            for entry in entries:
                result.failures.append(ReconcileFailure(
                    requirement_id=entry.requirement.requirement_id,
                    operation=e.operation,
                    message=e.message,
                ))
            existing = None

        if existing is not None:
            for entry in entries:
                self._reconcile_one(entry, existing, tenant_id, template_id, now, actor, result)

        result.final_summary = summarize_entries(self._resolve_all(template_id, tenant_id, now))

        logger.info(
            f"Reconciled {template_id} for tenant {tenant_id}: "
            f"created={result.created} completed={result.completed} "
            f"reopened={result.reopened} failures={len(result.failures)}"
        )
        self._emit_audit(template_id, tenant_id, actor, result)
        return result

    def _reconcile_one(
        self,
        entry: RequirementWithStatus,
        existing: Dict[str, TrackingTask],
        tenant_id: str,
        template_id: str,
        now: datetime,
        actor: Optional[str],
        result: ReconcileResult,
    ) -> None:
        requirement = entry.requirement
        requirement_id = requirement.requirement_id

        if entry.status is None:
            error = entry.error
            result.failures.append(ReconcileFailure(
                requirement_id=requirement_id,
                operation=error.operation if error else "resolve",
                message=error.message if error else "status could not be resolved",
            ))
            return

        task = existing.get(requirement_id)
        is_satisfied = entry.status == ResolvedStatus.SATISFIED
        is_optional = not requirement.required

        try:
            if is_satisfied or is_optional:
                if task is not None and task.status != TaskStatus.DONE:
                    self._task_store.update_task(
                        task.task_id,
                        status=TaskStatus.DONE,
                        priority=task.priority,
                        completed_at=now,
                    )
                    result.completed += 1
                return

            priority = desired_priority(entry.status)

            if task is None:
                self._task_store.create_task(TrackingTask(
                    task_id=new_task_id(),
                    tenant_id=tenant_id,
                    title=self.task_title(requirement.title),
                    source=TaskSource.MISSING_ITEM,
                    status=TaskStatus.OPEN,
                    priority=priority,
                    template_id=template_id,
                    requirement_id=requirement_id,
                    due_at=now + timedelta(days=self._due_days),
                    created_at=now,
                    created_by=actor,
                ))
                result.created += 1
            elif task.status == TaskStatus.DONE:
                # Reopen; due_at keeps the date the gap was first found
                self._task_store.update_task(
                    task.task_id,
                    status=TaskStatus.OPEN,
                    priority=priority,
                    completed_at=None,
                )
                result.reopened += 1
            # Open or snoozed: already visible, leave it alone

        except DossierError as e:
            logger.error(f"Reconcile of requirement {requirement_id} failed: {e.message}")
            result.failures.append(ReconcileFailure(
                requirement_id=requirement_id,
                operation=getattr(e, "operation", e.code),
                message=e.message,
            ))

    def _emit_audit(
        self,
        template_id: str,
        tenant_id: str,
        actor: Optional[str],
        result: ReconcileResult,
    ) -> None:
        if self._audit_log is None:
            return
        try:
            self._audit_log.log_event(
                tenant_id=tenant_id,
                action=ACTION_MISSING_ITEMS_GENERATED,
                entity_type="dossier",
                entity_id=template_id,
                meta={
                    "template_id": template_id,
                    "created": result.created,
                    "completed": result.completed,
                    "reopened": result.reopened,
                    "missing": result.final_summary.missing,
                    "failures": len(result.failures),
                },
                actor=actor,
            )
        except DossierStoreError as e:
            logger.error(f"Audit of reconciliation failed: {e.message}")
