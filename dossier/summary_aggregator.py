"""
Summary Aggregator - Status Rollup

Folds resolver output into DossierSummary counts.

RULE: an optional requirement that resolves to missing is counted as
satisfied (an absent optional item is not a gap). No other substitution
exists: optional + expired stays expired, optional + needs_review stays
needs_review.
"""

from typing import Iterable, Optional, Tuple

from .dossier_model import (
    DossierSummary,
    Requirement,
    RequirementWithStatus,
    ResolvedStatus,
)


def _bucket(requirement: Requirement, status: ResolvedStatus) -> ResolvedStatus:
    if not requirement.required and status == ResolvedStatus.MISSING:
        return ResolvedStatus.SATISFIED
    return status


def summarize_statuses(
    pairs: Iterable[Tuple[Requirement, Optional[ResolvedStatus]]],
) -> DossierSummary:
    """
    Count resolved statuses.

    total counts every requirement. A None status (inputs could not be
    loaded) is counted under unresolved only.
    """
    summary = DossierSummary()

    for requirement, status in pairs:
        summary.total += 1
        if status is None:
            summary.unresolved += 1
            continue

        bucket = _bucket(requirement, ResolvedStatus(status))
        if bucket == ResolvedStatus.SATISFIED:
            summary.satisfied += 1
        elif bucket == ResolvedStatus.MISSING:
            summary.missing += 1
        elif bucket == ResolvedStatus.EXPIRED:
            summary.expired += 1
        elif bucket == ResolvedStatus.NEEDS_REVIEW:
            summary.needs_review += 1
        else:
            raise ValueError(f"Unhandled status: {bucket!r}")

    return summary


def summarize_entries(entries: Iterable[RequirementWithStatus]) -> DossierSummary:
    """Convenience wrapper over resolve_all output."""
    return summarize_statuses((e.requirement, e.status) for e in entries)
