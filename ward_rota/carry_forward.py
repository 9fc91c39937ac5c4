"""
carry_forward.py — Carry-Forward Merge

Seeds a draft week with the ward/absence pattern of the week exactly seven
days earlier. Full overwrite of the target's ward and absence rows; ADMISSIONS
rows in the target are kept.

Steps:
  1. delete every WARD row and every absence row of the target
  2. each distinct (doctor, date) on WARD in the source → WARD on AM and PM of
     date + 7, skipped where the same doctor already holds ADMISSIONS there
  3. each distinct (doctor, date, reason, note) absence in the source → AM and
     PM of date + 7, unconditionally
  4. counts returned for the audit summary
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, List, Set, Tuple

from ward_rota.approval import ensure_draft, load_week
from ward_rota.dates import week_dates
from ward_rota.errors import EmptySource, NoSourceWeek
from ward_rota.models import Absence, AbsenceMark, SlotAssignment
from ward_rota.schedule_config import CARRY_FORWARD_DAYS, ROLE_ADMISSIONS, ROLE_WARD, SLOTS
from ward_rota.store import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class CopyForwardResult:
    ward_inserted: int = 0
    absences_inserted: int = 0
    skipped_due_to_admissions: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "wardInserted": self.ward_inserted,
            "absencesInserted": self.absences_inserted,
            "skippedDueToAdmissions": self.skipped_due_to_admissions,
        }

    def __str__(self) -> str:
        return (
            f"ward inserted={self.ward_inserted}, absences inserted={self.absences_inserted}, "
            f"skipped (admissions)={self.skipped_due_to_admissions}"
        )


def copy_forward(store: RecordStore, target_week_id: str) -> CopyForwardResult:
    """
    Run the merge for one draft target week inside a single transaction.

    Raises WeekNotFound, WeekLocked, NoSourceWeek or EmptySource; nothing is
    written in those cases.
    """
    shift = timedelta(days=CARRY_FORWARD_DAYS)
    with store.transaction():
        target = load_week(store, target_week_id)
        ensure_draft(target)

        source_start = target.week_start - shift
        source = store.find_week(source_start)
        if source is None:
            raise NoSourceWeek(source_start)

        business_days = set(week_dates(source.week_start))
        ward_pairs = _distinct_ward_pairs(
            r for r in store.list_assignments(source.id) if r.date in business_days
        )
        absence_marks = _distinct_absences(
            [r for r in store.list_absences(source.id) if r.date in business_days]
        )
        if not ward_pairs and not absence_marks:
            raise EmptySource(source_start)

        # Step 1
        store.delete_assignments(target.id, ROLE_WARD)
        store.delete_absences(target.id)
        admissions: Set[Tuple[date, str, str]] = {
            (r.date, r.slot, r.doctor_id)
            for r in store.list_assignments(target.id)
            if r.role == ROLE_ADMISSIONS
        }

        result = CopyForwardResult()

        # Step 2
        ward_rows: List[SlotAssignment] = []
        for doctor_id, day in ward_pairs:
            for slot in SLOTS:
                key = (day + shift, slot, doctor_id)
                if key in admissions:
                    result.skipped_due_to_admissions += 1
                    logger.debug(f"Ward copy skipped: {doctor_id} is admissions on {key[0]} {slot}")
                else:
                    ward_rows.append(SlotAssignment(target.id, key[0], slot, doctor_id, ROLE_WARD))

        # Step 3
        absence_rows: List[Absence] = []
        for (doctor_id, day), mark in absence_marks.items():
            for slot in SLOTS:
                absence_rows.append(Absence(
                    target.id, day + shift, slot, doctor_id, mark.reason, mark.note
                ))

        result.ward_inserted = store.insert_assignments(ward_rows)
        result.absences_inserted = store.insert_absences(absence_rows)

    logger.info(f"Copied week {source_start} forward to {target.week_start}: {result}")
    return result


def _distinct_ward_pairs(rows) -> List[Tuple[str, date]]:
    """Distinct (doctor, date) WARD pairs in first-seen order."""
    seen: Dict[Tuple[str, date], None] = {}
    for row in rows:
        if row.role == ROLE_WARD:
            seen.setdefault((row.doctor_id, row.date), None)
    return list(seen)


def _distinct_absences(rows: List[Absence]) -> Dict[Tuple[str, date], AbsenceMark]:
    """
    One (reason, note) per (doctor, date). Rows arrive ordered AM before PM, so
    a doctor with different AM/PM reasons keeps the AM one.
    """
    out: Dict[Tuple[str, date], AbsenceMark] = {}
    for row in rows:
        key = (row.doctor_id, row.date)
        mark = AbsenceMark(row.reason, row.note)
        kept = out.setdefault(key, mark)
        if kept != mark:
            logger.warning(
                f"Source absence for {row.doctor_id} on {row.date} {row.slot} "
                f"({row.reason}) differs from the AM entry ({kept.reason}); dropped"
            )
    return out
