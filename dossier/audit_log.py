"""
Audit Log - Append-Only Persistence

Every reconciliation run and every unlink writes one audit event.

CRITICAL CONSTRAINTS:
- APPEND-ONLY: events are never edited or deleted
- FSYNC: each write is durable before returning
"""

import json
import logging
import os
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any, List

from .dossier_model import DossierStoreError

logger = logging.getLogger("audit_log")


# -----------------------------------------------------------------------------
# Audit Actions
# -----------------------------------------------------------------------------
ACTION_MISSING_ITEMS_GENERATED = "missing_items.generated"
ACTION_LINK_UPSERTED = "document_link.upserted"
ACTION_LINK_DELETED = "document_link.deleted"


class AuditLog:
    """JSONL audit sink."""

    def __init__(self, audit_file: Path):
        self._audit_file = Path(audit_file)
        self._lock = threading.Lock()

    def log_event(
        self,
        tenant_id: str,
        action: str,
        entity_type: str,
        entity_id: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
        actor: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Append one event and return it."""
        event = {
            "event_id": f"audit-{uuid.uuid4().hex[:12]}",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "tenant_id": tenant_id,
            "action": action,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "actor": actor,
            "meta": meta or {},
        }

        with self._lock:
            try:
                self._audit_file.parent.mkdir(parents=True, exist_ok=True)
                with open(self._audit_file, "a", encoding="utf-8") as f:
                    f.write(json.dumps(event, ensure_ascii=False) + "\n")
                    f.flush()
                    os.fsync(f.fileno())
            except OSError as e:
                logger.error(f"Audit write failed: {e}")
                raise DossierStoreError("log_audit_event", f"Audit write failed: {e}") from e

        logger.debug(f"Audit event {action} for tenant {tenant_id}")
        return event

    def read_events(
        self,
        tenant_id: Optional[str] = None,
        action: Optional[str] = None,
        limit: int = 1000,
    ) -> List[Dict[str, Any]]:
        """Read events in write order with optional filters."""
        events: List[Dict[str, Any]] = []
        if not self._audit_file.exists():
            return events

        with open(self._audit_file, encoding="utf-8") as f:
            for line in f:
                raw = line.strip()
                if not raw:
                    continue
                try:
                    event = json.loads(raw)
                except json.JSONDecodeError as e:
                    logger.warning(f"Skipping malformed audit event: {e}")
                    continue

                if tenant_id and event.get("tenant_id") != tenant_id:
                    continue
                if action and event.get("action") != action:
                    continue

                events.append(event)
                if len(events) >= limit:
                    break

        return events
