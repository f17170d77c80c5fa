"""
Pytest configuration for Dossier Compliance tests.

This module provides:
1. A fixed clock and tenant ids
2. A temporary catalog and data directory per test
3. A fully wired DossierService over those files
"""

import json
from datetime import datetime, timezone

import pytest
import yaml

from dossier.config import DossierSettings
from dossier.dossier_model import Evidence, EvidenceStatus, Requirement
from dossier.dossier_service import DossierService


# -----------------------------------------------------------------------------
# Test Constants
# -----------------------------------------------------------------------------
NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)
TENANT_ID = "tenant-farm-001"
OTHER_TENANT_ID = "tenant-farm-002"
TEMPLATE_ID = "tpl-inspection"

CATALOG = {
    "templates": [
        {
            "template_id": TEMPLATE_ID,
            "name": "Inspection",
            "version": "1",
            "is_active": True,
            "requirements": [
                {
                    "requirement_id": "req-1",
                    "code": "R1",
                    "title": "Manure contract",
                    "category": "manure",
                    "required": True,
                },
                {
                    "requirement_id": "req-2",
                    "code": "R2",
                    "title": "Environmental permit",
                    "category": "permits",
                    "required": True,
                },
                {
                    "requirement_id": "req-3",
                    "code": "R3",
                    "title": "Soil analysis",
                    "category": "soil",
                    "required": False,
                },
            ],
        },
        {
            "template_id": "tpl-empty",
            "name": "Empty",
            "requirements": [],
        },
        {
            "template_id": "tpl-retired",
            "name": "Archived checklist",
            "is_active": False,
            "requirements": [],
        },
    ]
}


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def rewrite_records(store_file, match, **changes):
    """Edit stored records in place, bypassing the store (simulates bad data)."""
    data = json.loads(store_file.read_text(encoding="utf-8"))
    for record in data["records"].values():
        if all(record.get(k) == v for k, v in match.items()):
            record.update(changes)
    store_file.write_text(json.dumps(data), encoding="utf-8")


# -----------------------------------------------------------------------------
# Common Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def catalog_file(tmp_path):
    path = tmp_path / "templates.yaml"
    path.write_text(yaml.safe_dump(CATALOG), encoding="utf-8")
    return path


@pytest.fixture
def settings(tmp_path, catalog_file):
    return DossierSettings(
        data_dir=tmp_path / "data",
        catalog_file=catalog_file,
        task_due_days=7,
        task_title_prefix="Missing",
    )


@pytest.fixture
def service(settings):
    return DossierService.from_settings(settings)


@pytest.fixture
def make_requirement():
    """Factory for literal requirement fixtures."""
    def _make(requirement_id="req-x", required=True, recency_days=None, title="Requirement"):
        return Requirement(
            requirement_id=requirement_id,
            template_id=TEMPLATE_ID,
            title=title,
            required=required,
            recency_days=recency_days,
        )
    return _make


@pytest.fixture
def make_evidence():
    """Factory for literal document fixtures."""
    def _make(
        document_id="doc-x",
        status=EvidenceStatus.OK.value,
        doc_date=None,
        expires_at=None,
        tenant_id=TENANT_ID,
    ):
        return Evidence(
            document_id=document_id,
            tenant_id=tenant_id,
            status=status,
            title=f"Document {document_id}",
            doc_date=doc_date,
            expires_at=expires_at,
        )
    return _make


@pytest.fixture
def add_document(service, make_evidence):
    """Store a document for TENANT_ID and return it."""
    def _add(document_id, **kwargs):
        return service.evidence_store.add_document(make_evidence(document_id, **kwargs))
    return _add


# -----------------------------------------------------------------------------
# Session Configuration
# -----------------------------------------------------------------------------
def pytest_configure(config):
    config.addinivalue_line("markers", "api: HTTP layer tests")

