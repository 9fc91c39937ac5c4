"""
approval.py — Approval State Machine

  draft ──approve──▶ approved      approver only; validator ok on the stored rows;
                                   no unsaved edits
  approved ──revert──▶ draft       approver only; unconditional; clears metadata

Mutations on an approved week fail with WeekLocked. Every function here reads
the week inside the caller's store transaction, so the status check and the
write share one writer lock. Authorization is checked by the caller first.
"""

import logging
from datetime import datetime
from typing import Iterable, List

from ward_rota.errors import ApprovalPrecondition, UnsavedChanges, WeekLocked, WeekNotFound
from ward_rota.models import Week
from ward_rota.schedule_config import STATUS_APPROVED, STATUS_DRAFT
from ward_rota.store import RecordStore
from ward_rota.validator import WeekValidation, validate_week

logger = logging.getLogger(__name__)


def load_week(store: RecordStore, week_id: str) -> Week:
    week = store.get_week(week_id)
    if week is None:
        raise WeekNotFound(week_id)
    return week


def ensure_draft(week: Week) -> None:
    """Gate for every mutation of a week's slot data."""
    if week.is_approved:
        raise WeekLocked(week.week_start)


def validate_stored(store: RecordStore, week: Week) -> WeekValidation:
    """Validate the authoritative stored rows, never an in-memory copy."""
    return validate_week(week.week_start, store.list_assignments(week.id))


def approve(
    store: RecordStore,
    week_id: str,
    approved_by: str,
    now: datetime,
    dirty: bool = False,
) -> Week:
    """
    draft → approved. Must run inside store.transaction().

    Raises UnsavedChanges, WeekNotFound, WeekLocked (already approved) or
    ApprovalPrecondition with every uncovered (date, slot); nothing is written
    on failure.
    """
    if dirty:
        raise UnsavedChanges()
    week = load_week(store, week_id)
    ensure_draft(week)
    result = validate_stored(store, week)
    if not result.ok:
        raise ApprovalPrecondition(result.missing, week.week_start)
    store.update_week_status(week.id, STATUS_APPROVED, now, approved_by)
    logger.info(f"Week {week.week_start} approved by {approved_by}")
    return Week(week.id, week.week_start, STATUS_APPROVED, now, approved_by)


def revert(store: RecordStore, week_id: str, reverted_by: str) -> Week:
    """approved → draft, clearing approval metadata. Idempotent on a draft week."""
    week = load_week(store, week_id)
    store.update_week_status(week.id, STATUS_DRAFT, None, None)
    if week.is_approved:
        logger.info(f"Week {week.week_start} reverted to draft by {reverted_by}")
    return Week(week.id, week.week_start, STATUS_DRAFT)


def approve_many(
    store: RecordStore,
    weeks: Iterable[Week],
    approved_by: str,
    now: datetime,
) -> List[str]:
    """Stamp identical approval metadata on each draft week; returns their ids."""
    approved = []
    for week in weeks:
        if not week.is_draft:
            continue
        store.update_week_status(week.id, STATUS_APPROVED, now, approved_by)
        approved.append(week.id)
    return approved
