"""
Status Resolver - Deterministic Requirement Status Resolution

Maps (requirement, link, evidence, now) to a ResolvedStatus.

CRITICAL CONSTRAINTS:
- PURE: no I/O, no lazy fetching; callers load every input up front
- DETERMINISTIC: same inputs + same now = same status
- FIRST MATCH WINS: the precedence order below is LOCKED
- NO SILENT PASS: a missing doc_date never proves recency, and an
  unknown lifecycle value never resolves as satisfied

Precedence:
1. No link                              -> missing
2. Override satisfied                   -> satisfied
3. Override rejected                    -> missing
4. Override not_sure                    -> needs_review
5. Document present, no override:
   a. lifecycle status expired          -> expired
   b. expires_at < now                  -> expired
   c. recency_days set and doc stale    -> expired
   d. lifecycle status needs_review     -> needs_review
   e. lifecycle status ok               -> satisfied
   f. anything else                     -> needs_review
6. Link without a document (dangling)   -> needs_review
"""

import logging
from datetime import datetime, time, timedelta, timezone
from typing import Optional, Dict, List, Iterable

from .dossier_model import (
    Requirement,
    Evidence,
    EvidenceStatus,
    DocumentLink,
    LinkedEvidence,
    OverrideKind,
    ResolvedStatus,
    RequirementWithStatus,
    StatusReason,
    InvalidOverrideError,
    as_utc,
)

logger = logging.getLogger("status_resolver")


def is_document_stale(
    evidence: Evidence,
    recency_days: Optional[int],
    now: datetime,
) -> bool:
    """
    Check whether a document is too old for a recency constraint.

    No constraint means never stale. No doc_date under a constraint is
    stale: the date cannot prove recency.
    """
    if not recency_days:
        return False
    if evidence.doc_date is None:
        return True

    doc_moment = datetime.combine(evidence.doc_date, time.min, tzinfo=timezone.utc)
    cutoff = as_utc(now) - timedelta(days=recency_days)
    return doc_moment < cutoff


def _resolve_evidence(
    requirement: Requirement,
    evidence: Evidence,
    now: datetime,
) -> ResolvedStatus:
    if evidence.status == EvidenceStatus.EXPIRED.value:
        return ResolvedStatus.EXPIRED
    if evidence.expires_at is not None and as_utc(evidence.expires_at) < as_utc(now):
        return ResolvedStatus.EXPIRED
    if is_document_stale(evidence, requirement.recency_days, now):
        return ResolvedStatus.EXPIRED
    if evidence.status == EvidenceStatus.NEEDS_REVIEW.value:
        return ResolvedStatus.NEEDS_REVIEW
    if evidence.status == EvidenceStatus.OK.value:
        return ResolvedStatus.SATISFIED
    return ResolvedStatus.NEEDS_REVIEW


def resolve_status(
    requirement: Requirement,
    link: Optional[DocumentLink],
    evidence: Optional[Evidence],
    now: datetime,
) -> ResolvedStatus:
    """
    Resolve the status of one requirement.

    Raises InvalidOverrideError if the link carries an override that is not
    an OverrideKind.
    """
    if link is None:
        return ResolvedStatus.MISSING

    override = link.status_override
    if override is not None:
        if override == OverrideKind.SATISFIED:
            return ResolvedStatus.SATISFIED
        if override == OverrideKind.REJECTED:
            return ResolvedStatus.MISSING
        if override == OverrideKind.NOT_SURE:
            return ResolvedStatus.NEEDS_REVIEW
        raise InvalidOverrideError(override)

    if evidence is None:
        return ResolvedStatus.NEEDS_REVIEW

    return _resolve_evidence(requirement, evidence, now)


def resolve_requirements(
    requirements: Iterable[Requirement],
    links: Dict[str, LinkedEvidence],
    now: datetime,
) -> List[RequirementWithStatus]:
    """Resolve a loaded batch, keeping catalog order."""
    results = []
    for requirement in requirements:
        linked = links.get(requirement.requirement_id)
        link = linked.link if linked else None
        evidence = linked.evidence if linked else None
        results.append(RequirementWithStatus(
            requirement=requirement,
            status=resolve_status(requirement, link, evidence, now),
            link=link,
            evidence=evidence,
        ))
    logger.debug(f"Resolved {len(results)} requirements")
    return results


# -----------------------------------------------------------------------------
# Status Reasons
# -----------------------------------------------------------------------------
def _expired_reason(entry: RequirementWithStatus, now: datetime) -> StatusReason:
    doc = entry.evidence
    recency_days = entry.requirement.recency_days

    if doc is not None and doc.status == EvidenceStatus.EXPIRED.value:
        if doc.expires_at:
            detail = f"Expires on {doc.expires_at.date().isoformat()}"
        else:
            detail = "Document status is 'expired'"
        return StatusReason("Document has expired", detail)

    if doc is not None and doc.expires_at and as_utc(doc.expires_at) < as_utc(now):
        return StatusReason(
            "Document has expired",
            f"Expired on {doc.expires_at.date().isoformat()}",
        )

    if recency_days and doc is not None:
        if doc.doc_date is None:
            return StatusReason(
                "Document date is missing",
                f"This document needs a date (at most {recency_days} days old)",
            )
        if is_document_stale(doc, recency_days, now):
            return StatusReason(
                "Document is too old",
                f"Document from {doc.doc_date.isoformat()} is older than {recency_days} days",
            )

    return StatusReason("Document is no longer valid")


def status_reason(
    entry: RequirementWithStatus,
    now: Optional[datetime] = None,
) -> StatusReason:
    """Explain why a requirement has its status, for display."""
    now = now or datetime.now(timezone.utc)
    link = entry.link
    override = link.status_override if link else None

    if entry.status is None:
        return StatusReason(
            "Status could not be determined",
            entry.error.message if entry.error else None,
        )

    if entry.status == ResolvedStatus.SATISFIED:
        if override == OverrideKind.SATISFIED:
            return StatusReason(
                "Manually marked as satisfied",
                "The link was approved by hand",
            )
        return StatusReason("Document meets the requirements")

    if entry.status == ResolvedStatus.MISSING:
        if link is None:
            return StatusReason(
                "No document linked",
                "Link an existing document or upload a new one.",
            )
        if override == OverrideKind.REJECTED:
            return StatusReason(
                "Document rejected",
                "The linked document was rejected manually.",
            )
        return StatusReason("Document is missing")

    if entry.status == ResolvedStatus.EXPIRED:
        return _expired_reason(entry, now)

    if entry.status == ResolvedStatus.NEEDS_REVIEW:
        if override == OverrideKind.NOT_SURE:
            return StatusReason(
                "Manually flagged for review",
                "This document was marked as 'not sure'",
            )
        if entry.evidence is None:
            return StatusReason(
                "Linked document not found",
                "The linked document no longer exists. Link it again.",
            )
        if entry.evidence.status == EvidenceStatus.NEEDS_REVIEW.value:
            return StatusReason(
                "Document needs review",
                "Check the contents and mark it as 'ok' or 'expired'",
            )
        return StatusReason("Review required")

    raise ValueError(f"Unhandled status: {entry.status!r}")
