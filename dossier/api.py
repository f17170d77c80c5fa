"""
Dossier API Router

Thin HTTP layer over DossierService:
- GET    /dossier/templates
- GET    /dossier/check?template_id=X
- POST   /dossier/generate-missing-items
- GET    /document-links
- POST   /document-links          (link / replace)
- PATCH  /document-links          (update; omitted fields are kept)
- DELETE /document-links?requirement_id=X  or  ?link_id=X
- GET    /tasks
- POST   /tasks
- PATCH  /tasks/{task_id}
- DELETE /tasks/{task_id}

The tenant is passed explicitly in the X-Tenant-ID header. Authentication,
roles and plan entitlements are enforced in front of this router.
"""

import logging
from datetime import datetime
from typing import Optional, List, Dict, Any

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import BaseModel, Field

from .dossier_model import (
    DossierError,
    DossierStoreError,
    InvalidOverrideError,
    OverrideKind,
    RequirementWithStatus,
    TaskNotFoundError,
    TaskPriority,
    TaskSource,
    TaskStatus,
    TemplateNotFoundError,
)
from .dossier_service import DossierService, get_dossier_service
from .status_resolver import status_reason
from .summary_aggregator import summarize_entries

logger = logging.getLogger("dossier_api")

router = APIRouter(tags=["Dossier"])


# -----------------------------------------------------------------------------
# Request/Response Models
# -----------------------------------------------------------------------------
class GenerateMissingItemsRequest(BaseModel):
    template_id: str = Field(..., min_length=1)


class DocumentLinkRequest(BaseModel):
    requirement_id: str = Field(..., min_length=1)
    document_id: Optional[str] = None
    status_override: Optional[OverrideKind] = None


class TaskCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    due_at: Optional[datetime] = None
    priority: TaskPriority = TaskPriority.NORMAL


class TaskUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_at: Optional[datetime] = None


class DossierSummaryResponse(BaseModel):
    satisfied: int
    missing: int
    expired: int
    needs_review: int
    total: int
    unresolved: int


class GenerateMissingItemsResponse(BaseModel):
    success: bool
    created: int
    completed: int
    reopened: int
    summary: DossierSummaryResponse
    failures: List[Dict[str, Any]]
    message: str


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def require_tenant(x_tenant_id: Optional[str] = Header(None)) -> str:
    if not x_tenant_id:
        raise HTTPException(status_code=400, detail="X-Tenant-ID header is required")
    return x_tenant_id


def _http_error(error: Exception) -> HTTPException:
    if isinstance(error, (TemplateNotFoundError, TaskNotFoundError)):
        return HTTPException(status_code=404, detail=error.to_dict())
    if isinstance(error, (InvalidOverrideError, ValueError)):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, DossierStoreError):
        logger.error(f"Store failure: {error.message}")
        return HTTPException(status_code=500, detail=error.to_dict())
    if isinstance(error, DossierError):
        return HTTPException(status_code=500, detail=error.to_dict())
    return HTTPException(status_code=500, detail=str(error))


def _requirement_payload(entry: RequirementWithStatus) -> Dict[str, Any]:
    reason = status_reason(entry)
    return {
        **entry.requirement.to_dict(),
        "status": entry.status.value if entry.status else None,
        "reason": reason.reason,
        "detail": reason.detail,
        "linked_document": entry.evidence.to_dict() if entry.evidence else None,
        "document_link": entry.link.to_dict() if entry.link else None,
        "error": entry.error.to_dict() if entry.error else None,
    }


# -----------------------------------------------------------------------------
# Dossier
# -----------------------------------------------------------------------------
@router.get("/dossier/templates")
def list_templates(service: DossierService = Depends(get_dossier_service)):
    try:
        templates = service.catalog.list_templates()
    except DossierError as e:
        raise _http_error(e)
    return {"templates": [t.to_dict() for t in templates]}


@router.get("/dossier/check")
def dossier_check(
    template_id: str = Query(..., min_length=1),
    tenant_id: str = Depends(require_tenant),
    service: DossierService = Depends(get_dossier_service),
):
    try:
        entries = service.resolve_all(template_id, tenant_id)
    except DossierError as e:
        raise _http_error(e)

    summary = summarize_entries(entries)
    return {
        "requirements": [_requirement_payload(e) for e in entries],
        "summary": summary.to_dict(),
    }


@router.post("/dossier/generate-missing-items", response_model=GenerateMissingItemsResponse)
def generate_missing_items(
    request: GenerateMissingItemsRequest,
    tenant_id: str = Depends(require_tenant),
    x_user_id: Optional[str] = Header(None),
    service: DossierService = Depends(get_dossier_service),
):
    try:
        result = service.reconcile(request.template_id, tenant_id, actor=x_user_id)
    except DossierError as e:
        raise _http_error(e)

    summary = result.final_summary
    return GenerateMissingItemsResponse(
        success=result.succeeded,
        created=result.created,
        completed=result.completed,
        reopened=result.reopened,
        summary=DossierSummaryResponse(**summary.to_dict()),
        failures=[f.to_dict() for f in result.failures],
        message=f"Tasks generated: {summary.missing} missing, {summary.expired} expired",
    )


# -----------------------------------------------------------------------------
# Document Links
# -----------------------------------------------------------------------------
@router.get("/document-links")
def list_document_links(
    tenant_id: str = Depends(require_tenant),
    service: DossierService = Depends(get_dossier_service),
):
    try:
        links = service.link_registry.list_links(tenant_id)
    except DossierError as e:
        raise _http_error(e)
    return {"links": [l.to_dict() for l in links]}


def _upsert_link(
    request: DocumentLinkRequest,
    tenant_id: str,
    actor: Optional[str],
    service: DossierService,
    partial: bool,
):
    try:
        return service.link_registry.upsert_link(
            tenant_id=tenant_id,
            requirement_id=request.requirement_id,
            document_id=request.document_id,
            status_override=request.status_override,
            created_by=actor,
            partial=partial,
        )
    except (DossierError, ValueError) as e:
        raise _http_error(e)


@router.post("/document-links")
def link_document(
    request: DocumentLinkRequest,
    tenant_id: str = Depends(require_tenant),
    x_user_id: Optional[str] = Header(None),
    service: DossierService = Depends(get_dossier_service),
):
    link = _upsert_link(request, tenant_id, x_user_id, service, partial=False)
    return {
        "link": link.to_dict(),
        "success": True,
        "message": "Document linked" if request.document_id else "Status updated",
    }


@router.patch("/document-links")
def update_document_link(
    request: DocumentLinkRequest,
    tenant_id: str = Depends(require_tenant),
    x_user_id: Optional[str] = Header(None),
    service: DossierService = Depends(get_dossier_service),
):
    link = _upsert_link(request, tenant_id, x_user_id, service, partial=True)
    return {"link": link.to_dict(), "success": True, "message": "Document link updated"}


@router.delete("/document-links")
def unlink_document(
    requirement_id: Optional[str] = Query(None),
    link_id: Optional[str] = Query(None),
    tenant_id: str = Depends(require_tenant),
    x_user_id: Optional[str] = Header(None),
    service: DossierService = Depends(get_dossier_service),
):
    if not requirement_id and not link_id:
        raise HTTPException(status_code=400, detail="requirement_id or link_id is required")

    try:
        if requirement_id:
            deleted = service.link_registry.unlink(tenant_id, requirement_id, actor=x_user_id)
            return {
                "success": True,
                "requirement_id": requirement_id,
                "deleted": deleted,
                "message": "Document unlinked" if deleted else "No link found",
            }
        deleted = service.link_registry.remove_link(tenant_id, link_id)
    except DossierError as e:
        raise _http_error(e)
    return {"success": True, "link_id": link_id, "deleted": deleted, "message": "Document link removed"}


# -----------------------------------------------------------------------------
# Tasks
# -----------------------------------------------------------------------------
@router.get("/tasks")
def list_tasks(
    status: Optional[TaskStatus] = Query(None),
    source: Optional[TaskSource] = Query(None),
    open_only: bool = Query(False),
    tenant_id: str = Depends(require_tenant),
    service: DossierService = Depends(get_dossier_service),
):
    try:
        tasks = service.task_store.list_tasks(tenant_id, status=status, source=source, open_only=open_only)
    except DossierError as e:
        raise _http_error(e)
    return {"tasks": [t.to_dict() for t in tasks]}


@router.post("/tasks")
def create_task(
    request: TaskCreateRequest,
    tenant_id: str = Depends(require_tenant),
    x_user_id: Optional[str] = Header(None),
    service: DossierService = Depends(get_dossier_service),
):
    try:
        task = service.task_store.create_manual_task(
            tenant_id,
            title=request.title,
            due_at=request.due_at,
            priority=request.priority,
            created_by=x_user_id,
        )
    except DossierError as e:
        raise _http_error(e)
    return {"task": task.to_dict()}


@router.patch("/tasks/{task_id}")
def update_task(
    task_id: str,
    request: TaskUpdateRequest,
    tenant_id: str = Depends(require_tenant),
    x_user_id: Optional[str] = Header(None),
    service: DossierService = Depends(get_dossier_service),
):
    changes = request.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No changes given")

    try:
        task = service.task_store.edit_task(tenant_id, task_id, changes, actor=x_user_id)
    except (DossierError, ValueError) as e:
        raise _http_error(e)
    return {"task": task.to_dict()}


@router.delete("/tasks/{task_id}")
def delete_task(
    task_id: str,
    tenant_id: str = Depends(require_tenant),
    service: DossierService = Depends(get_dossier_service),
):
    try:
        service.task_store.delete_task(tenant_id, task_id)
    except DossierError as e:
        raise _http_error(e)
    return {"success": True, "task_id": task_id}
