"""
Dossier Compliance Module

Tracks whether a tenant's archived documents satisfy the requirements of a
dossier template, and keeps the machine-generated task list in sync.

Components:
- dossier_model: LOCKED enums and dataclasses (requirements, documents,
  links, tracking tasks, summaries)
- status_resolver: deterministic requirement status resolution
  * precedence: no link -> override -> lifecycle expired -> expiry date
    -> recency -> needs_review -> ok
  * a missing document date never proves recency
- summary_aggregator: status rollup (optional + missing counts as satisfied)
- task_reconciler: idempotent missing-items generator
  * creates, completes and reopens tasks
  * due_at is set once at creation and NEVER reset
  * per-requirement failures are collected, the pass never aborts
- catalog_store / evidence_store / link_registry / task_store / audit_log:
  file-backed stores
- dossier_service: tenant-scoped facade (resolve_all, summarize, reconcile)
- api / main: thin FastAPI layer
"""

__version__ = "0.4.0"
