"""
Dossier Store Tests

Covers the catalog, the link registry, the task store, the audit log and
the settings loader.
"""

import json
from datetime import timedelta

import pytest
import yaml

from dossier.audit_log import ACTION_LINK_DELETED, ACTION_LINK_UPSERTED
from dossier.catalog_store import TemplateCatalog
from dossier.config import DossierSettings
from dossier.dossier_model import (
    DossierStoreError,
    InvalidOverrideError,
    OverrideKind,
    Requirement,
    TaskNotFoundError,
    TaskPriority,
    TaskSource,
    TaskStatus,
    TemplateNotFoundError,
)
from dossier.dossier_service import DossierService
from tests.conftest import NOW, OTHER_TENANT_ID, TEMPLATE_ID, TENANT_ID


# =============================================================================
# Section 1: Template Catalog
# =============================================================================

class TestTemplateCatalog:

    def test_active_templates_sorted_by_name(self, service):
        names = [t.name for t in service.catalog.list_templates()]
        assert names == ["Empty", "Inspection"]

    def test_inactive_templates_on_request(self, service):
        ids = {t.template_id for t in service.catalog.list_templates(active_only=False)}
        assert "tpl-retired" in ids

    def test_requirements_keep_file_order(self, service):
        requirements = service.catalog.list_requirements(TEMPLATE_ID)
        assert [r.requirement_id for r in requirements] == ["req-1", "req-2", "req-3"]
        assert all(r.template_id == TEMPLATE_ID for r in requirements)
        assert requirements[2].required is False

    def test_unknown_template(self, service):
        with pytest.raises(TemplateNotFoundError):
            service.catalog.list_requirements("tpl-nope")

    def test_missing_catalog_file_is_empty(self, tmp_path):
        assert TemplateCatalog(tmp_path / "absent.yaml").list_templates() == []

    def test_broken_catalog_raises_store_error(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("templates: [unclosed", encoding="utf-8")

        with pytest.raises(DossierStoreError) as exc_info:
            TemplateCatalog(path).list_templates()
        assert exc_info.value.operation == "load_catalog"

    @pytest.mark.parametrize("field,value", [
        ("required", "false"),
        ("recency_days", "30"),
        ("recency_days", True),
    ])
    def test_mistyped_requirement_field_raises_store_error(self, tmp_path, field, value):
        path = tmp_path / "typed.yaml"
        requirement = {"requirement_id": "req-1", "title": "Manure contract", field: value}
        path.write_text(
            yaml.safe_dump({"templates": [{"template_id": "tpl", "requirements": [requirement]}]}),
            encoding="utf-8",
        )

        with pytest.raises(DossierStoreError, match=field) as exc_info:
            TemplateCatalog(path).list_requirements("tpl")
        assert exc_info.value.operation == "load_catalog"

    def test_mistyped_active_flag_raises_store_error(self, tmp_path):
        path = tmp_path / "typed.yaml"
        path.write_text('templates:\n  - template_id: tpl\n    is_active: "no"\n', encoding="utf-8")

        with pytest.raises(DossierStoreError, match="is_active"):
            TemplateCatalog(path).list_templates()

    def test_requirement_field_types(self, make_requirement):
        with pytest.raises(ValueError, match="required"):
            Requirement(requirement_id="req-1", template_id=TEMPLATE_ID, title="x", required="false")
        with pytest.raises(ValueError, match="recency_days"):
            make_requirement(recency_days="30")
        assert make_requirement(recency_days=30).recency_days == 30


class TestEvidenceStore:

    def test_documents_are_tenant_scoped(self, service, add_document):
        add_document("doc-1", doc_date=NOW.date(), expires_at=NOW + timedelta(days=30))

        stored = service.evidence_store.get_document(TENANT_ID, "doc-1")
        assert stored.doc_date == NOW.date()
        assert stored.expires_at == NOW + timedelta(days=30)
        assert service.evidence_store.get_document(OTHER_TENANT_ID, "doc-1") is None
        assert service.evidence_store.list_documents(OTHER_TENANT_ID) == []

    def test_batch_lookup_skips_unknown_ids(self, service, add_document):
        add_document("doc-1")
        found = service.evidence_store.get_documents(TENANT_ID, ["doc-1", "doc-gone"])
        assert list(found) == ["doc-1"]


# =============================================================================
# Section 2: Link Registry
# =============================================================================

class TestLinkRegistry:

    def test_upsert_replaces_and_keeps_link_id(self, service, add_document):
        add_document("doc-1")
        add_document("doc-2")
        first = service.link_registry.upsert_link(TENANT_ID, "req-1", document_id="doc-1")
        second = service.link_registry.upsert_link(TENANT_ID, "req-1", document_id="doc-2")

        assert second.link_id == first.link_id
        assert second.created_at == first.created_at
        links = service.link_registry.list_links(TENANT_ID)
        assert len(links) == 1
        assert links[0].document_id == "doc-2"

    def test_full_upsert_clears_omitted_fields(self, service):
        service.link_registry.upsert_link(
            TENANT_ID, "req-1", document_id="doc-1", status_override=OverrideKind.NOT_SURE,
        )
        link = service.link_registry.upsert_link(TENANT_ID, "req-1", document_id="doc-1")
        assert link.status_override is None

    def test_partial_upsert_keeps_omitted_fields(self, service):
        service.link_registry.upsert_link(TENANT_ID, "req-1", document_id="doc-1")
        link = service.link_registry.upsert_link(
            TENANT_ID, "req-1", status_override="rejected", partial=True,
        )
        assert link.document_id == "doc-1"
        assert link.status_override == OverrideKind.REJECTED

    def test_invalid_override_writes_nothing(self, service):
        with pytest.raises(InvalidOverrideError):
            service.link_registry.upsert_link(TENANT_ID, "req-1", status_override="approved")
        assert service.link_registry.list_links(TENANT_ID) == []

    def test_empty_requirement_id_rejected(self, service):
        with pytest.raises(ValueError):
            service.link_registry.upsert_link(TENANT_ID, "", document_id="doc-1")

    def test_unlink_without_link_returns_false(self, service):
        assert service.link_registry.unlink(TENANT_ID, "req-1") is False
        assert service.audit_log.read_events(action=ACTION_LINK_DELETED) == []

    def test_unlink_writes_audit_event(self, service):
        link = service.link_registry.upsert_link(TENANT_ID, "req-1", document_id="doc-1")

        assert service.link_registry.unlink(TENANT_ID, "req-1", actor="user-1") is True

        events = service.audit_log.read_events(tenant_id=TENANT_ID, action=ACTION_LINK_DELETED)
        assert len(events) == 1
        assert events[0]["entity_id"] == link.link_id
        assert events[0]["actor"] == "user-1"
        assert events[0]["meta"] == {"requirement_id": "req-1"}
        assert len(service.audit_log.read_events(action=ACTION_LINK_UPSERTED)) == 1

    def test_tenants_are_isolated(self, service, add_document):
        add_document("doc-1")
        service.link_registry.upsert_link(TENANT_ID, "req-1", document_id="doc-1")
        service.link_registry.upsert_link(OTHER_TENANT_ID, "req-1", document_id="doc-1")

        assert len(service.link_registry.list_links(TENANT_ID)) == 1
        # The document belongs to TENANT_ID; the other tenant's link dangles
        other = service.link_registry.get_links(OTHER_TENANT_ID, ["req-1"])
        assert other["req-1"].evidence is None
        own = service.link_registry.get_links(TENANT_ID, ["req-1"])
        assert own["req-1"].evidence.document_id == "doc-1"

    def test_remove_link_of_other_tenant_is_refused(self, service):
        link = service.link_registry.upsert_link(TENANT_ID, "req-1", document_id="doc-1")
        assert service.link_registry.remove_link(OTHER_TENANT_ID, link.link_id) is False
        assert service.link_registry.remove_link(TENANT_ID, link.link_id) is True
        assert service.link_registry.list_links(TENANT_ID) == []

    def test_dangling_link_has_no_evidence(self, service):
        service.link_registry.upsert_link(TENANT_ID, "req-1", document_id="doc-gone")

        links = service.link_registry.get_links(TENANT_ID, ["req-1", "req-2"])

        assert set(links) == {"req-1"}
        assert links["req-1"].evidence is None

    def test_corrupt_store_raises(self, service, settings):
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        settings.links_file.write_text("{not json", encoding="utf-8")

        with pytest.raises(DossierStoreError) as exc_info:
            service.link_registry.get_links(TENANT_ID, ["req-1"])
        assert exc_info.value.operation == "get_links"
        assert exc_info.value.requirement_id == "req-1"


# =============================================================================
# Section 3: Task Store
# =============================================================================

class TestTaskStore:

    def test_manual_task_defaults(self, service):
        task = service.task_store.create_manual_task(TENANT_ID, "Call the vet", created_by="user-1")

        assert task.source == TaskSource.MANUAL
        assert task.status == TaskStatus.OPEN
        assert task.priority == TaskPriority.NORMAL
        assert task.task_id.startswith("task-")
        assert not task.is_machine_generated
        assert service.audit_log.read_events(action="task.created")[0]["entity_id"] == task.task_id

    def test_list_orders_by_due_date_undated_last(self, service):
        store = service.task_store
        later = store.create_manual_task(TENANT_ID, "Later", due_at=NOW + timedelta(days=5))
        undated = store.create_manual_task(TENANT_ID, "Someday")
        sooner = store.create_manual_task(TENANT_ID, "Sooner", due_at=NOW + timedelta(days=1))

        ids = [t.task_id for t in store.list_tasks(TENANT_ID)]
        assert ids == [sooner.task_id, later.task_id, undated.task_id]

    def test_list_filters(self, service):
        store = service.task_store
        done = store.create_manual_task(TENANT_ID, "Done")
        store.edit_task(TENANT_ID, done.task_id, {"status": TaskStatus.DONE})
        store.create_manual_task(TENANT_ID, "Open")
        store.create_manual_task(OTHER_TENANT_ID, "Elsewhere")

        assert len(store.list_tasks(TENANT_ID)) == 2
        assert [t.title for t in store.list_tasks(TENANT_ID, open_only=True)] == ["Open"]
        assert [t.title for t in store.list_tasks(TENANT_ID, status=TaskStatus.DONE)] == ["Done"]
        assert store.list_tasks(TENANT_ID, source=TaskSource.MISSING_ITEM) == []

    def test_edit_done_stamps_completed_at_and_reopen_clears_it(self, service):
        store = service.task_store
        task = store.create_manual_task(TENANT_ID, "Fix fence")

        done = store.edit_task(TENANT_ID, task.task_id, {"status": TaskStatus.DONE}, actor="user-1")
        assert done.completed_at is not None
        assert service.audit_log.read_events(action="task.completed")[0]["actor"] == "user-1"

        reopened = store.edit_task(TENANT_ID, task.task_id, {"status": TaskStatus.OPEN})
        assert reopened.completed_at is None

    def test_edit_due_date_is_a_user_action(self, service):
        task = service.task_store.create_manual_task(TENANT_ID, "Fix fence")
        new_due = (NOW + timedelta(days=3)).replace(tzinfo=None)

        edited = service.task_store.edit_task(TENANT_ID, task.task_id, {"due_at": new_due})

        assert edited.due_at == NOW + timedelta(days=3)

    def test_edit_rejects_unknown_fields(self, service):
        task = service.task_store.create_manual_task(TENANT_ID, "Fix fence")
        with pytest.raises(ValueError, match="source"):
            service.task_store.edit_task(TENANT_ID, task.task_id, {"source": "missing_item"})

    def test_update_keeps_due_date(self, service):
        service.reconcile(TEMPLATE_ID, TENANT_ID, now=NOW)
        task = service.task_store.list_machine_tasks(TENANT_ID, TEMPLATE_ID)[0]

        updated = service.task_store.update_task(
            task.task_id, status=TaskStatus.DONE, priority=TaskPriority.URGENT, completed_at=NOW,
        )

        assert updated.due_at == task.due_at
        assert updated.title == task.title
        assert updated.priority == TaskPriority.URGENT

    def test_other_tenant_cannot_touch_task(self, service):
        task = service.task_store.create_manual_task(TENANT_ID, "Fix fence")
        with pytest.raises(TaskNotFoundError):
            service.task_store.get_task(OTHER_TENANT_ID, task.task_id)
        with pytest.raises(TaskNotFoundError):
            service.task_store.delete_task(OTHER_TENANT_ID, task.task_id)

    def test_delete(self, service):
        task = service.task_store.create_manual_task(TENANT_ID, "Fix fence")
        service.task_store.delete_task(TENANT_ID, task.task_id)
        assert service.task_store.list_tasks(TENANT_ID) == []

    def test_update_unknown_task(self, service):
        with pytest.raises(TaskNotFoundError):
            service.task_store.update_task("task-nope", TaskStatus.DONE, TaskPriority.NORMAL, NOW)

    def test_snapshot_file_layout(self, service, settings):
        service.task_store.create_manual_task(TENANT_ID, "Fix fence")

        data = json.loads(settings.tasks_file.read_text(encoding="utf-8"))
        assert data["version"] == "1.0"
        assert len(data["records"]) == 1
        assert not settings.tasks_file.with_suffix(".tmp").exists()


# =============================================================================
# Section 4: Settings
# =============================================================================

class TestSettings:

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DOSSIER_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("DOSSIER_TASK_DUE_DAYS", "14")
        monkeypatch.setenv("DOSSIER_TASK_TITLE_PREFIX", "Missing")
        monkeypatch.setenv("DOSSIER_LOG_LEVEL", "debug")

        settings = DossierSettings.from_env()

        assert settings.tasks_file == tmp_path / "tasks.json"
        assert settings.task_due_days == 14
        assert settings.task_title_prefix == "Missing"
        assert settings.log_level == "DEBUG"

    def test_defaults(self, monkeypatch):
        for name in ("DOSSIER_DATA_DIR", "DOSSIER_TASK_DUE_DAYS", "DOSSIER_TASK_TITLE_PREFIX"):
            monkeypatch.delenv(name, raising=False)
        settings = DossierSettings.from_env()
        assert settings.task_due_days == 7
        assert settings.task_title_prefix == "Ontbrekend"

    def test_non_positive_due_days_rejected(self):
        with pytest.raises(ValueError):
            DossierSettings(task_due_days=0)

    def test_configured_due_days_drive_new_tasks(self, tmp_path, catalog_file):
        settings = DossierSettings(data_dir=tmp_path / "data", catalog_file=catalog_file, task_due_days=14)
        service = DossierService.from_settings(settings)

        service.reconcile(TEMPLATE_ID, TENANT_ID, now=NOW)

        tasks = service.task_store.list_machine_tasks(TENANT_ID, TEMPLATE_ID)
        assert {t.due_at for t in tasks} == {NOW + timedelta(days=14)}
        assert all(t.title.startswith("Ontbrekend: ") for t in tasks)
