"""
models.py — Domain model: Doctor, Week, SlotAssignment, Absence

Pure data contracts plus the invariants that can be checked on construction.
Construction fails with DomainInvariantViolation carrying the offending
(week, date, slot, doctor) tuple.

Invariants:
  - Week.week_start is a Monday (NotAMonday otherwise)
  - at most one ADMISSIONS row per (week, date, slot)
  - (week, date, slot, doctor) unique across SlotAssignment rows
  - (week, date, slot, doctor) unique across Absence rows
  - a doctor never holds a SlotAssignment and an Absence for the same slot
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ward_rota.dates import is_monday, week_dates
from ward_rota.errors import DomainInvariantViolation, NotAMonday
from ward_rota.schedule_config import (
    ABSENCE_REASON_LABELS,
    ASSIGNMENT_ROLES,
    EDITOR_ROLES,
    FALLBACK_ABSENCE_REASON,
    ROLE_ADMISSIONS,
    ROLE_WARD,
    SLOTS,
    STATUS_APPROVED,
    STATUS_DRAFT,
    USER_ROLE_HEAD,
    USER_ROLES,
    WEEK_STATUSES,
)

logger = logging.getLogger(__name__)


def normalize_absence_reason(code: Optional[str]) -> str:
    """Map an unknown stored reason code to OTHER (read-side leniency only)."""
    value = (code or "").strip().upper()
    if value in ABSENCE_REASON_LABELS:
        return value
    logger.warning(f"Unknown absence reason {code!r} read as {FALLBACK_ABSENCE_REASON}")
    return FALLBACK_ABSENCE_REASON


def is_valid_absence_reason(code: Optional[str]) -> bool:
    return code in ABSENCE_REASON_LABELS


# --------------------------------------------------------
# DOCTOR
# --------------------------------------------------------
@dataclass
class Doctor:
    id: str
    name: str
    active: bool = True


# --------------------------------------------------------
# ACTOR (role lookup result)
# --------------------------------------------------------
@dataclass(frozen=True)
class Actor:
    user_id: str
    role: str = "doctor"
    can_approve: bool = False
    doctor_id: Optional[str] = None

    def __post_init__(self):
        if self.role not in USER_ROLES:
            raise ValueError(f"Unknown user role {self.role!r}; expected one of {USER_ROLES}")
        if self.role == USER_ROLE_HEAD and not self.can_approve:
            raise ValueError(f"User {self.user_id}: role 'head' requires can_approve")

    @property
    def can_edit(self) -> bool:
        return self.role in EDITOR_ROLES


# --------------------------------------------------------
# WEEK
# --------------------------------------------------------
@dataclass
class Week:
    id: str
    week_start: date
    status: str = STATUS_DRAFT
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None

    def __post_init__(self):
        if not is_monday(self.week_start):
            raise NotAMonday(self.week_start)
        if self.status not in WEEK_STATUSES:
            raise ValueError(f"Unknown week status {self.status!r}")

    @property
    def is_draft(self) -> bool:
        return self.status == STATUS_DRAFT

    @property
    def is_approved(self) -> bool:
        return self.status == STATUS_APPROVED

    @property
    def dates(self) -> List[date]:
        return week_dates(self.week_start)


# --------------------------------------------------------
# STORED ROWS
# --------------------------------------------------------
@dataclass(frozen=True)
class SlotAssignment:
    week_id: str
    date: date
    slot: str
    doctor_id: str
    role: str

    def __post_init__(self):
        if self.slot not in SLOTS:
            raise DomainInvariantViolation(
                f"unknown slot {self.slot!r}", self.week_id, self.date, self.slot, self.doctor_id
            )
        if self.role not in ASSIGNMENT_ROLES:
            raise DomainInvariantViolation(
                f"unknown role {self.role!r}", self.week_id, self.date, self.slot, self.doctor_id
            )

    @property
    def slot_key(self) -> Tuple[date, str]:
        return (self.date, self.slot)


@dataclass(frozen=True)
class Absence:
    week_id: str
    date: date
    slot: str
    doctor_id: str
    reason: str
    note: Optional[str] = None

    def __post_init__(self):
        if self.slot not in SLOTS:
            raise DomainInvariantViolation(
                f"unknown slot {self.slot!r}", self.week_id, self.date, self.slot, self.doctor_id
            )
        if not is_valid_absence_reason(self.reason):
            raise DomainInvariantViolation(
                f"unknown absence reason {self.reason!r}",
                self.week_id, self.date, self.slot, self.doctor_id,
            )

    @property
    def slot_key(self) -> Tuple[date, str]:
        return (self.date, self.slot)


# --------------------------------------------------------
# IN-MEMORY SLOT STATE
# --------------------------------------------------------
@dataclass(frozen=True)
class AbsenceMark:
    reason: str
    note: Optional[str] = None


@dataclass
class SlotState:
    """One (date, slot) as the editor sees it. Off is never stored here."""

    admissions: Optional[str] = None
    ward: List[str] = field(default_factory=list)
    absences: Dict[str, AbsenceMark] = field(default_factory=dict)

    def copy(self) -> "SlotState":
        return SlotState(self.admissions, list(self.ward), dict(self.absences))

    def assigned_ids(self) -> Set[str]:
        ids = set(self.ward) | set(self.absences)
        if self.admissions:
            ids.add(self.admissions)
        return ids

    def same_content(self, other: "SlotState") -> bool:
        return (
            self.admissions == other.admissions
            and set(self.ward) == set(other.ward)
            and self.absences == other.absences
        )


def is_slot_consistent(slot: SlotState) -> bool:
    """True when every doctor holds at most one of admissions / ward / absent."""
    ward = set(slot.ward)
    if len(ward) != len(slot.ward):
        return False
    if slot.admissions is not None and (
        slot.admissions in ward or slot.admissions in slot.absences
    ):
        return False
    return not (ward & set(slot.absences))


def is_doctor_free(slot: SlotState, doctor_id: str) -> bool:
    """True when the doctor is implicitly off in this slot."""
    return doctor_id not in slot.assigned_ids()


# --------------------------------------------------------
# ROW-SET INVARIANTS
# --------------------------------------------------------
def check_week_rows(
    week_id: str,
    assignments: Iterable[SlotAssignment],
    absences: Iterable[Absence],
) -> None:
    """
    Validate a full replacement set for one week.

    Raises DomainInvariantViolation on the first offending tuple.
    """
    admissions_by_slot: Dict[Tuple[date, str], str] = {}
    assigned: Set[Tuple[date, str, str]] = set()

    for row in assignments:
        key = (row.date, row.slot, row.doctor_id)
        if key in assigned:
            raise DomainInvariantViolation(
                "doctor holds two roles in one slot", week_id, row.date, row.slot, row.doctor_id
            )
        assigned.add(key)
        if row.role == ROLE_ADMISSIONS:
            if row.slot_key in admissions_by_slot:
                raise DomainInvariantViolation(
                    "second admissions doctor for slot", week_id, row.date, row.slot, row.doctor_id
                )
            admissions_by_slot[row.slot_key] = row.doctor_id

    absent: Set[Tuple[date, str, str]] = set()
    for row in absences:
        key = (row.date, row.slot, row.doctor_id)
        if key in absent:
            raise DomainInvariantViolation(
                "duplicate absence", week_id, row.date, row.slot, row.doctor_id
            )
        if key in assigned:
            raise DomainInvariantViolation(
                "doctor both assigned and absent", week_id, row.date, row.slot, row.doctor_id
            )
        absent.add(key)


def rows_to_slot_states(
    days: Iterable[date],
    assignments: Iterable[SlotAssignment],
    absences: Iterable[Absence],
) -> Dict[Tuple[date, str], SlotState]:
    """Group stored rows into per-(date, slot) states; rows outside days are ignored."""
    states: Dict[Tuple[date, str], SlotState] = {
        (d, s): SlotState() for d in days for s in SLOTS
    }
    for row in assignments:
        state = states.get(row.slot_key)
        if state is None:
            continue
        if row.role == ROLE_ADMISSIONS:
            state.admissions = row.doctor_id
        elif row.role == ROLE_WARD and row.doctor_id not in state.ward:
            state.ward.append(row.doctor_id)
    for row in absences:
        state = states.get(row.slot_key)
        if state is None:
            continue
        state.absences[row.doctor_id] = AbsenceMark(row.reason, row.note)
    return states
