"""
Dossier Service - tenant-scoped entry points

Exposes the three operations callers use:
- resolve_all(template_id, tenant_id) -> requirements with status
- summarize(template_id, tenant_id)   -> DossierSummary
- reconcile(template_id, tenant_id)   -> ReconcileResult

Tenant and template ids are always explicit; nothing is read from an
ambient session.
"""

import logging
from datetime import datetime
from typing import Optional, Dict, List, Union

from .audit_log import AuditLog
from .catalog_store import TemplateCatalog
from .config import DossierSettings
from .dossier_model import (
    DossierStoreError,
    DossierSummary,
    LinkedEvidence,
    ReconcileResult,
    Requirement,
    RequirementWithStatus,
    as_utc,
    utc_now,
)
from .evidence_store import EvidenceStore
from .link_registry import LinkRegistry
from .status_resolver import resolve_requirements
from .summary_aggregator import summarize_entries
from .task_reconciler import TaskReconciler
from .task_store import TaskStore

logger = logging.getLogger("dossier_service")


class DossierService:
    """Wires the catalog and the stores to the resolver and the reconciler."""

    def __init__(
        self,
        catalog: TemplateCatalog,
        evidence_store: EvidenceStore,
        link_registry: LinkRegistry,
        task_store: TaskStore,
        audit_log: AuditLog,
        settings: Optional[DossierSettings] = None,
    ):
        self.settings = settings or DossierSettings()
        self.catalog = catalog
        self.evidence_store = evidence_store
        self.link_registry = link_registry
        self.task_store = task_store
        self.audit_log = audit_log
        self.reconciler = TaskReconciler(
            resolve_all=self._resolve_for_reconcile,
            task_store=task_store,
            audit_log=audit_log,
            due_days=self.settings.task_due_days,
            title_prefix=self.settings.task_title_prefix,
        )

    @classmethod
    def from_settings(cls, settings: DossierSettings) -> "DossierService":
        audit_log = AuditLog(settings.audit_file)
        evidence_store = EvidenceStore(settings.documents_file)
        return cls(
            catalog=TemplateCatalog(settings.catalog_file),
            evidence_store=evidence_store,
            link_registry=LinkRegistry(settings.links_file, evidence_store, audit_log),
            task_store=TaskStore(settings.tasks_file, audit_log),
            audit_log=audit_log,
            settings=settings,
        )

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def _load_links(
        self,
        tenant_id: str,
        requirements: List[Requirement],
    ) -> Dict[str, Union[LinkedEvidence, DossierStoreError]]:
        """
        Batched link read, falling back to one read per requirement.

        Returns requirement_id -> LinkedEvidence, or the DossierStoreError
        for requirements whose read failed.
        """
        ids = [r.requirement_id for r in requirements]
        try:
            return dict(self.link_registry.get_links(tenant_id, ids))
        except DossierStoreError as e:
            logger.warning(f"Batched link read failed ({e.message}), retrying per requirement")

        loaded: Dict[str, Union[LinkedEvidence, DossierStoreError]] = {}
        for requirement_id in ids:
            try:
                loaded.update(self.link_registry.get_links(tenant_id, [requirement_id]))
            except DossierStoreError as e:
                loaded[requirement_id] = DossierStoreError(
                    e.operation, e.message, requirement_id=requirement_id,
                )
        return loaded

    def resolve_all(
        self,
        template_id: str,
        tenant_id: str,
        now: Optional[datetime] = None,
    ) -> List[RequirementWithStatus]:
        """
        Resolve every requirement of a template, in catalog order.

        A requirement whose inputs cannot be loaded comes back with
        status=None and the error attached; the others still resolve.
        """
        now = as_utc(now) if now else utc_now()
        requirements = self.catalog.list_requirements(template_id)
        if not requirements:
            return []

        loaded = self._load_links(tenant_id, requirements)
        linked = {rid: item for rid, item in loaded.items() if isinstance(item, LinkedEvidence)}
        readable = [
            r for r in requirements
            if not isinstance(loaded.get(r.requirement_id), DossierStoreError)
        ]
        resolved = {
            entry.requirement.requirement_id: entry
            for entry in resolve_requirements(readable, linked, now)
        }

        results = []
        for requirement in requirements:
            entry = resolved.get(requirement.requirement_id)
            if entry is None:
                entry = RequirementWithStatus(
                    requirement=requirement,
                    status=None,
                    error=loaded[requirement.requirement_id],
                )
            results.append(entry)
        return results

    def _resolve_for_reconcile(
        self,
        template_id: str,
        tenant_id: str,
        now: datetime,
    ) -> List[RequirementWithStatus]:
        return self.resolve_all(template_id, tenant_id, now)

    def summarize(
        self,
        template_id: str,
        tenant_id: str,
        now: Optional[datetime] = None,
    ) -> DossierSummary:
        return summarize_entries(self.resolve_all(template_id, tenant_id, now))

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
        return self.reconciler.reconcile(template_id, tenant_id, now=now, actor=actor)


# -----------------------------------------------------------------------------
# Global Service Instance (API layer only)
# -----------------------------------------------------------------------------
_service: Optional[DossierService] = None


def get_dossier_service() -> DossierService:
    """Get the process-wide service the HTTP layer uses."""
    global _service
    if _service is None:
        _service = DossierService.from_settings(DossierSettings.from_env())
    return _service


def set_dossier_service(service: Optional[DossierService]) -> None:
    global _service
    _service = service
