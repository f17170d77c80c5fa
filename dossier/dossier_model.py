"""
Dossier Model - Enums, Records & Errors

This module defines the data structures shared by the resolver, the
aggregator and the reconciler.

CRITICAL CONSTRAINTS:
- LOCKED ENUMS: every status-like value is a closed str Enum
- IMMUTABLE INPUTS: requirements, documents and links are frozen
- LOUD FAILURE: an unknown override value raises, it is never guessed
- DERIVED STATUS: ResolvedStatus is recomputed on every read, never stored
"""

from dataclasses import dataclass, field, asdict
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, List


# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------
DEFAULT_TASK_DUE_DAYS = 7
DEFAULT_TASK_TITLE_PREFIX = "Ontbrekend"


# -----------------------------------------------------------------------------
# Resolved Status Enum (LOCKED)
# -----------------------------------------------------------------------------
class ResolvedStatus(str, Enum):
    """Computed outcome for a single requirement."""
    SATISFIED = "satisfied"
    MISSING = "missing"
    EXPIRED = "expired"
    NEEDS_REVIEW = "needs_review"


# -----------------------------------------------------------------------------
# Override Kind Enum (LOCKED - exactly 3 values)
# -----------------------------------------------------------------------------
class OverrideKind(str, Enum):
    """Manual annotation on a link that bypasses evidence-based resolution."""
    SATISFIED = "satisfied"
    REJECTED = "rejected"
    NOT_SURE = "not_sure"


# -----------------------------------------------------------------------------
# Evidence Status Enum
# -----------------------------------------------------------------------------
class EvidenceStatus(str, Enum):
    """
    Document lifecycle status values with a meaning for resolution.

    Documents may carry other values; those resolve as needs_review.
    """
    OK = "ok"
    NEEDS_REVIEW = "needs_review"
    EXPIRED = "expired"
    MISSING = "missing"


# -----------------------------------------------------------------------------
# Task Enums (LOCKED)
# -----------------------------------------------------------------------------
class TaskSource(str, Enum):
    """Origin of a task. The reconciler only touches MISSING_ITEM tasks."""
    MISSING_ITEM = "missing_item"
    MANUAL = "manual"


class TaskStatus(str, Enum):
    OPEN = "open"
    SNOOZED = "snoozed"
    DONE = "done"


class TaskPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    URGENT = "urgent"


# -----------------------------------------------------------------------------
# Errors
# -----------------------------------------------------------------------------
class DossierError(Exception):
    """Base dossier error with structured details."""
    def __init__(self, code: str, message: str, details: Dict[str, Any] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": True,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class DossierStoreError(DossierError):
    """A store read or write failed for a specific operation."""
    def __init__(
        self,
        operation: str,
        message: str,
        requirement_id: Optional[str] = None,
    ):
        self.operation = operation
        self.requirement_id = requirement_id
        super().__init__(
            code="STORE_FAILED",
            message=message,
            details={"operation": operation, "requirement_id": requirement_id},
        )


class TemplateNotFoundError(DossierError):
    def __init__(self, template_id: str):
        super().__init__(
            code="TEMPLATE_NOT_FOUND",
            message=f"Template '{template_id}' not found",
            details={"template_id": template_id},
        )


class TaskNotFoundError(DossierError):
    def __init__(self, task_id: str):
        super().__init__(
            code="TASK_NOT_FOUND",
            message=f"Task '{task_id}' not found",
            details={"task_id": task_id},
        )


class InvalidOverrideError(ValueError):
    """Raised for a status override outside the three legal values."""
    def __init__(self, value: Any):
        self.value = value
        allowed = ", ".join(o.value for o in OverrideKind)
        super().__init__(f"Invalid status override: {value!r} (expected one of {allowed})")


# -----------------------------------------------------------------------------
# Date Helpers
# -----------------------------------------------------------------------------
def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so comparisons never mix kinds."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    # Accept full timestamps as well as plain dates
    return date.fromisoformat(value[:10])


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def parse_override(value: Any) -> Optional[OverrideKind]:
    """Coerce a raw override value, failing loudly on anything unknown."""
    if value is None:
        return None
    if isinstance(value, OverrideKind):
        return value
    try:
        return OverrideKind(value)
    except ValueError:
        raise InvalidOverrideError(value) from None


# -----------------------------------------------------------------------------
# Catalog Records (Immutable)
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class DossierTemplate:
    template_id: str
    name: str
    version: str = "1"
    is_active: bool = True

    def __post_init__(self):
        if not isinstance(self.is_active, bool):
            raise ValueError(f"is_active must be a boolean, got {self.is_active!r}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Requirement:
    """
    One checklist item within a template.

    Seeded from the catalog and never mutated by this package.
    """
    requirement_id: str
    template_id: str
    title: str
    category: str = "general"
    code: str = ""
    notes: Optional[str] = None
    required: bool = True
    recency_days: Optional[int] = None
    sort_order: int = 0

    def __post_init__(self):
        if not self.requirement_id:
            raise ValueError("requirement_id is required")
        if not isinstance(self.required, bool):
            raise ValueError(f"required must be a boolean, got {self.required!r}")
        if self.recency_days is not None:
            # bool is an int subclass
            if isinstance(self.recency_days, bool) or not isinstance(self.recency_days, int):
                raise ValueError(
                    f"recency_days must be a positive integer, got {self.recency_days!r}"
                )
            if self.recency_days <= 0:
                raise ValueError(
                    f"recency_days must be a positive integer, got {self.recency_days}"
                )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Requirement":
        return cls(
            requirement_id=data["requirement_id"],
            template_id=data["template_id"],
            title=data["title"],
            category=data.get("category", "general"),
            code=data.get("code", ""),
            notes=data.get("notes"),
            required=data.get("required", True),
            recency_days=data.get("recency_days"),
            sort_order=data.get("sort_order", 0),
        )


# -----------------------------------------------------------------------------
# Evidence (Document)
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class Evidence:
    """
    A stored document offered as proof against a requirement.

    Only status, doc_date and expires_at take part in resolution.
    """
    document_id: str
    tenant_id: str
    status: str = EvidenceStatus.NEEDS_REVIEW.value
    title: str = ""
    category: str = "general"
    doc_date: Optional[date] = None
    expires_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.status, EvidenceStatus):
            object.__setattr__(self, "status", self.status.value)
        if self.expires_at is not None:
            object.__setattr__(self, "expires_at", as_utc(self.expires_at))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_id": self.document_id,
            "tenant_id": self.tenant_id,
            "status": self.status,
            "title": self.title,
            "category": self.category,
            "doc_date": self.doc_date.isoformat() if self.doc_date else None,
            "expires_at": _format_datetime(self.expires_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Evidence":
        return cls(
            document_id=data["document_id"],
            tenant_id=data["tenant_id"],
            status=data.get("status", EvidenceStatus.NEEDS_REVIEW.value),
            title=data.get("title", ""),
            category=data.get("category", "general"),
            doc_date=_parse_date(data.get("doc_date")),
            expires_at=_parse_datetime(data.get("expires_at")),
        )


# -----------------------------------------------------------------------------
# Document Link
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class DocumentLink:
    """
    Association between one requirement and one document for a tenant.

    At most one link exists per (tenant_id, requirement_id).
    """
    link_id: str
    tenant_id: str
    requirement_id: str
    document_id: Optional[str] = None
    status_override: Optional[OverrideKind] = None
    created_at: Optional[datetime] = None
    created_by: Optional[str] = None

    def __post_init__(self):
        # Frozen: coerce via object.__setattr__
        object.__setattr__(self, "status_override", parse_override(self.status_override))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "link_id": self.link_id,
            "tenant_id": self.tenant_id,
            "requirement_id": self.requirement_id,
            "document_id": self.document_id,
            "status_override": self.status_override.value if self.status_override else None,
            "created_at": _format_datetime(self.created_at),
            "created_by": self.created_by,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentLink":
        return cls(
            link_id=data["link_id"],
            tenant_id=data["tenant_id"],
            requirement_id=data["requirement_id"],
            document_id=data.get("document_id"),
            status_override=data.get("status_override"),
            created_at=_parse_datetime(data.get("created_at")),
            created_by=data.get("created_by"),
        )


@dataclass(frozen=True)
class LinkedEvidence:
    """A link joined with its document. document is None when dangling."""
    link: DocumentLink
    evidence: Optional[Evidence] = None


# -----------------------------------------------------------------------------
# Tracking Task (Mutable)
# -----------------------------------------------------------------------------
@dataclass
class TrackingTask:
    """
    A to-do item. MISSING_ITEM tasks mirror unmet requirements.

    due_at is set once at creation; reconciliation never alters it.
    """
    task_id: str
    tenant_id: str
    title: str
    source: TaskSource = TaskSource.MANUAL
    status: TaskStatus = TaskStatus.OPEN
    priority: TaskPriority = TaskPriority.NORMAL
    template_id: Optional[str] = None
    requirement_id: Optional[str] = None
    due_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    created_by: Optional[str] = None
    completed_at: Optional[datetime] = None

    def __post_init__(self):
        self.source = TaskSource(self.source)
        self.status = TaskStatus(self.status)
        self.priority = TaskPriority(self.priority)
        for name in ("due_at", "created_at", "completed_at"):
            value = getattr(self, name)
            if value is not None:
                setattr(self, name, as_utc(value))

    @property
    def is_machine_generated(self) -> bool:
        return self.source == TaskSource.MISSING_ITEM

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "tenant_id": self.tenant_id,
            "title": self.title,
            "source": self.source.value,
            "status": self.status.value,
            "priority": self.priority.value,
            "template_id": self.template_id,
            "requirement_id": self.requirement_id,
            "due_at": _format_datetime(self.due_at),
            "created_at": _format_datetime(self.created_at),
            "created_by": self.created_by,
            "completed_at": _format_datetime(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackingTask":
        return cls(
            task_id=data["task_id"],
            tenant_id=data["tenant_id"],
            title=data["title"],
            source=data.get("source", TaskSource.MANUAL.value),
            status=data.get("status", TaskStatus.OPEN.value),
            priority=data.get("priority", TaskPriority.NORMAL.value),
            template_id=data.get("template_id"),
            requirement_id=data.get("requirement_id"),
            due_at=_parse_datetime(data.get("due_at")),
            created_at=_parse_datetime(data.get("created_at")),
            created_by=data.get("created_by"),
            completed_at=_parse_datetime(data.get("completed_at")),
        )


# -----------------------------------------------------------------------------
# Resolution Output (Read-Only)
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class RequirementWithStatus:
    """
    A requirement with its computed status and the inputs that produced it.

    status is None only when the requirement's inputs could not be loaded;
    error then carries the store failure.
    """
    requirement: Requirement
    status: Optional[ResolvedStatus]
    link: Optional[DocumentLink] = None
    evidence: Optional[Evidence] = None
    error: Optional[DossierStoreError] = None

    @property
    def resolved(self) -> bool:
        return self.status is not None


@dataclass(frozen=True)
class StatusReason:
    reason: str
    detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DossierSummary:
    """Rollup of resolved statuses. READ-ONLY aggregation, never stored."""
    satisfied: int = 0
    missing: int = 0
    expired: int = 0
    needs_review: int = 0
    total: int = 0
    unresolved: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


# -----------------------------------------------------------------------------
# Reconciliation Output
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class ReconcileFailure:
    """A per-requirement failure collected during reconciliation."""
    requirement_id: str
    operation: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ReconcileResult:
    created: int = 0
    completed: int = 0
    reopened: int = 0
    final_summary: DossierSummary = field(default_factory=DossierSummary)
    failures: List[ReconcileFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failures

    def to_dict(self) -> Dict[str, Any]:
        return {
            "created": self.created,
            "completed": self.completed,
            "reopened": self.reopened,
            "final_summary": self.final_summary.to_dict(),
            "failures": [f.to_dict() for f in self.failures],
        }
