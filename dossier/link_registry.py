"""
Link Registry - requirement <-> document links per tenant

UNIQUENESS: at most one link per (tenant_id, requirement_id). Writes are
create-or-replace (upsert) and the registry enforces the key itself; no
caller-side locking is needed.

Reads join each link with its document. A link whose document no longer
exists is returned with evidence=None (dangling), not as an error.
"""

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, List, Iterable, Tuple, Any

from .audit_log import AuditLog, ACTION_LINK_UPSERTED, ACTION_LINK_DELETED
from .dossier_model import (
    DocumentLink,
    LinkedEvidence,
    parse_override,
)
from .evidence_store import EvidenceStore
from .json_store import JsonSnapshotStore

logger = logging.getLogger("link_registry")


class LinkRegistry(JsonSnapshotStore):
    """Links keyed by link_id, unique on (tenant_id, requirement_id)."""

    def __init__(
        self,
        links_file: Path,
        evidence_store: EvidenceStore,
        audit_log: Optional[AuditLog] = None,
    ):
        super().__init__(links_file)
        self._evidence_store = evidence_store
        self._audit_log = audit_log

    @staticmethod
    def _find(
        records: Dict[str, Dict[str, Any]],
        tenant_id: str,
        requirement_id: str,
    ) -> Optional[Tuple[str, Dict[str, Any]]]:
        for link_id, record in records.items():
            if record.get("tenant_id") == tenant_id and record.get("requirement_id") == requirement_id:
                return link_id, record
        return None

    # -------------------------------------------------------------------------
    # WRITE Operations
    # -------------------------------------------------------------------------

    def upsert_link(
        self,
        tenant_id: str,
        requirement_id: str,
        document_id: Optional[str] = None,
        status_override: Optional[Any] = None,
        created_by: Optional[str] = None,
        partial: bool = False,
    ) -> DocumentLink:
        """
        Create or replace the link for (tenant_id, requirement_id).

        With partial=True, a None document_id or status_override keeps the
        existing value instead of clearing it.

        Raises InvalidOverrideError for an unknown override value.
        """
        if not requirement_id:
            raise ValueError("requirement_id is required")
        override = parse_override(status_override)

        with self._lock:
            records = self._read_records("upsert_link", requirement_id)
            existing = self._find(records, tenant_id, requirement_id)

            if existing:
                link_id, record = existing
                previous = self._parse_record(DocumentLink.from_dict, record, "upsert_link")
                if partial:
                    document_id = document_id if document_id is not None else previous.document_id
                    override = override if override is not None else previous.status_override
                created_at = previous.created_at
            else:
                link_id = f"link-{uuid.uuid4().hex[:12]}"
                created_at = datetime.now(timezone.utc)

            link = DocumentLink(
                link_id=link_id,
                tenant_id=tenant_id,
                requirement_id=requirement_id,
                document_id=document_id,
                status_override=override,
                created_at=created_at,
                created_by=created_by,
            )
            records[link_id] = link.to_dict()
            self._write_records(records, "upsert_link", requirement_id)

        logger.info(
            f"Linked requirement {requirement_id} for tenant {tenant_id} "
            f"(document={document_id}, override={override.value if override else None})"
        )
        if self._audit_log:
            self._audit_log.log_event(
                tenant_id=tenant_id,
                action=ACTION_LINK_UPSERTED,
                entity_type="document_link",
                entity_id=link_id,
                meta={"requirement_id": requirement_id, "document_id": document_id},
                actor=created_by,
            )
        return link

    def unlink(
        self,
        tenant_id: str,
        requirement_id: str,
        actor: Optional[str] = None,
    ) -> bool:
        """
        Remove the link of a requirement.

        Returns False when there was no link; that is not an error.
        """
        with self._lock:
            records = self._read_records("unlink", requirement_id)
            existing = self._find(records, tenant_id, requirement_id)
            if existing is None:
                return False

            link_id, _ = existing
            del records[link_id]
            self._write_records(records, "unlink", requirement_id)

        logger.info(f"Unlinked requirement {requirement_id} for tenant {tenant_id}")
        if self._audit_log:
            self._audit_log.log_event(
                tenant_id=tenant_id,
                action=ACTION_LINK_DELETED,
                entity_type="document_link",
                entity_id=link_id,
                meta={"requirement_id": requirement_id},
                actor=actor,
            )
        return True

    def remove_link(self, tenant_id: str, link_id: str) -> bool:
        """Remove a link by id. Links of other tenants are left alone."""
        with self._lock:
            records = self._read_records("remove_link")
            record = records.get(link_id)
            if record is None or record.get("tenant_id") != tenant_id:
                return False
            del records[link_id]
            self._write_records(records, "remove_link")

        logger.info(f"Removed link {link_id} for tenant {tenant_id}")
        return True

    # -------------------------------------------------------------------------
    # READ Operations
    # -------------------------------------------------------------------------

    def list_links(self, tenant_id: str) -> List[DocumentLink]:
        records = self._read_records("list_links")
        return [
            self._parse_record(DocumentLink.from_dict, r, "list_links")
            for r in records.values()
            if r.get("tenant_id") == tenant_id
        ]

    def get_links(
        self,
        tenant_id: str,
        requirement_ids: Iterable[str],
    ) -> Dict[str, LinkedEvidence]:
        """Links for the given requirements, each joined with its document."""
        wanted = set(requirement_ids)
        single = next(iter(wanted)) if len(wanted) == 1 else None

        records = self._read_records("get_links", single)
        links = {}
        for record in records.values():
            if record.get("tenant_id") != tenant_id:
                continue
            if record.get("requirement_id") not in wanted:
                continue
            link = self._parse_record(DocumentLink.from_dict, record, "get_links")
            links[link.requirement_id] = link

        document_ids = [l.document_id for l in links.values() if l.document_id]
        documents = self._evidence_store.get_documents(tenant_id, document_ids) if document_ids else {}

        return {
            requirement_id: LinkedEvidence(
                link=link,
                evidence=documents.get(link.document_id) if link.document_id else None,
            )
            for requirement_id, link in links.items()
        }
