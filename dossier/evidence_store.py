"""
Evidence Store - tenant-scoped document records

The dossier core only reads documents (status, doc_date, expires_at).
add_document exists for seeding and for the thin API layer.
"""

import logging
from pathlib import Path
from typing import Optional, Dict, List, Iterable

from .dossier_model import Evidence
from .json_store import JsonSnapshotStore

logger = logging.getLogger("evidence_store")


class EvidenceStore(JsonSnapshotStore):
    """Documents keyed by document_id."""

    def __init__(self, documents_file: Path):
        super().__init__(documents_file)

    def add_document(self, evidence: Evidence) -> Evidence:
        """Insert or replace a document."""
        with self._lock:
            records = self._read_records("add_document")
            records[evidence.document_id] = evidence.to_dict()
            self._write_records(records, "add_document")
        logger.info(f"Stored document {evidence.document_id} for tenant {evidence.tenant_id}")
        return evidence

    def get_document(self, tenant_id: str, document_id: str) -> Optional[Evidence]:
        """Get a document. A document of another tenant is reported as absent."""
        record = self._read_records("get_document").get(document_id)
        if record is None or record.get("tenant_id") != tenant_id:
            return None
        return self._parse_record(Evidence.from_dict, record, "get_document")

    def get_documents(self, tenant_id: str, document_ids: Iterable[str]) -> Dict[str, Evidence]:
        """Batch lookup. Unknown ids are simply absent from the result."""
        records = self._read_records("get_documents")
        found = {}
        for document_id in document_ids:
            record = records.get(document_id)
            if record is not None and record.get("tenant_id") == tenant_id:
                found[document_id] = self._parse_record(Evidence.from_dict, record, "get_documents")
        return found

    def list_documents(self, tenant_id: str) -> List[Evidence]:
        records = self._read_records("list_documents")
        return [
            self._parse_record(Evidence.from_dict, r, "list_documents")
            for r in records.values()
            if r.get("tenant_id") == tenant_id
        ]
