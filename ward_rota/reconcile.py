"""
reconcile.py — Slot Reconciliation Engine

In-memory working copy of one week, keyed by (date, slot). Every edit is
reconciled so each doctor holds at most one of admissions / ward / absent in
a slot; "off" is always derived (active doctors minus everyone assigned).

Rules applied on every mutation, in order:
  1. admissions wins: the new admissions doctor leaves the slot's ward set
     and absence map
  2. absence wins over both: marking a doctor absent removes them from ward
     and clears the slot's admissions if they held it
  3. toggling ward for a doctor who is admissions or absent is a no-op
     (disabled control, not an error)
  4. off = active doctors - (admissions | ward | absent), never stored
  5. unified days only: the admissions doctor of the opposite slot is
     implicitly on ward in this slot unless admissions/absent here

Day representation (tagged):
  UnifiedDay   one ward set + one absence map for AM and PM, admissions per slot
  DetailedDay  independent AM / PM SlotState

Per-slot ward/absence edits on a unified day promote it to detailed first
(lossless). Demoting a detailed day back to unified needs confirm=True when
AM and PM differ, since one slot's distinct values are dropped.

Usage:
  editor = WeekEditor(week, doctors, assignments, absences)
  editor.set_admissions(day, "AM", doctor_id)
  editor.toggle_day_ward(day, other_id)
  assignments, absences = editor.build_save_payload()
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

from ward_rota.errors import (
    ConfirmationRequired,
    DoctorNotFound,
    MalformedPayload,
    WeekLocked,
)
from ward_rota.models import (
    Absence,
    AbsenceMark,
    Doctor,
    SlotAssignment,
    SlotState,
    Week,
    is_slot_consistent,
    is_valid_absence_reason,
    rows_to_slot_states,
)
from ward_rota.schedule_config import (
    DEFAULT_ABSENCE_REASON,
    OPPOSITE_SLOT,
    ROLE_ADMISSIONS,
    ROLE_WARD,
    SLOTS,
)

logger = logging.getLogger(__name__)

ROLE_ABSENT = "ABSENT"
ROLE_OFF = "OFF"


# ---------------------------------------------------------------------------
# Day representations
# ---------------------------------------------------------------------------

@dataclass
class UnifiedDay:
    admissions: Dict[str, Optional[str]] = field(
        default_factory=lambda: {s: None for s in SLOTS}
    )
    ward: List[str] = field(default_factory=list)
    absences: Dict[str, AbsenceMark] = field(default_factory=dict)

    def admissions_ids(self) -> List[str]:
        return [a for a in self.admissions.values() if a]


@dataclass
class DetailedDay:
    slots: Dict[str, SlotState] = field(
        default_factory=lambda: {s: SlotState() for s in SLOTS}
    )


DayState = Union[UnifiedDay, DetailedDay]


def expand_day(day: UnifiedDay) -> Dict[str, SlotState]:
    """Per-slot view of a unified day (applies rule 5)."""
    out: Dict[str, SlotState] = {}
    for slot in SLOTS:
        adm = day.admissions.get(slot)
        opposite = day.admissions.get(OPPOSITE_SLOT[slot])
        ward = [d for d in day.ward if d != adm and d not in day.absences]
        if opposite and opposite != adm and opposite not in day.absences and opposite not in ward:
            ward.append(opposite)
        absences = {d: m for d, m in day.absences.items() if d != adm}
        out[slot] = SlotState(adm, ward, absences)
    return out


def collapse_day(slots: Dict[str, SlotState]) -> UnifiedDay:
    """
    Unified form of a per-slot day. AM ward/absences become the day values;
    admissions stay per slot and override a collapsed absence or ward entry.
    An admissions doctor absent in the other slot keeps that absence.
    """
    admissions = {s: slots[s].admissions for s in SLOTS}
    adm_ids = {a for a in admissions.values() if a}
    morning = slots[SLOTS[0]]
    ward = [d for d in morning.ward if d not in adm_ids]
    absences = {d: m for d, m in morning.absences.items() if d not in adm_ids}
    for slot in SLOTS:
        held = admissions[slot]
        other = OPPOSITE_SLOT[slot]
        if held and held != admissions[other] and held in slots[other].absences:
            absences[held] = slots[other].absences[held]
    return UnifiedDay(admissions, ward, absences)


def is_unifiable(slots: Dict[str, SlotState]) -> bool:
    """True when collapsing then expanding reproduces every slot exactly."""
    expanded = expand_day(collapse_day(slots))
    return all(expanded[s].same_content(slots[s]) for s in SLOTS)


# ---------------------------------------------------------------------------
# Per-slot rules
# ---------------------------------------------------------------------------

def _slot_set_admissions(state: SlotState, doctor_id: Optional[str]) -> None:
    if doctor_id is None:
        state.admissions = None
        return
    # Rule 1
    state.ward = [d for d in state.ward if d != doctor_id]
    state.absences.pop(doctor_id, None)
    state.admissions = doctor_id


def _slot_toggle_ward(state: SlotState, doctor_id: str) -> None:
    # Rule 3
    if state.admissions == doctor_id or doctor_id in state.absences:
        logger.debug(f"Ward toggle ignored for {doctor_id}: admissions or absent")
        return
    if doctor_id in state.ward:
        state.ward.remove(doctor_id)
    else:
        state.ward.append(doctor_id)


def _slot_mark_absent(state: SlotState, doctor_id: str, mark: AbsenceMark) -> None:
    # Rule 2
    state.ward = [d for d in state.ward if d != doctor_id]
    if state.admissions == doctor_id:
        state.admissions = None
    state.absences[doctor_id] = mark


def _reconcile_loaded(state: SlotState) -> SlotState:
    """Apply rule 2 to rows that break the cross-entity invariant."""
    fixed = state.copy()
    for doctor_id, mark in list(state.absences.items()):
        _slot_mark_absent(fixed, doctor_id, mark)
    if fixed.admissions:
        fixed.ward = [d for d in fixed.ward if d != fixed.admissions]
    return fixed


# ---------------------------------------------------------------------------
# Week editor
# ---------------------------------------------------------------------------

class WeekEditor:
    """
    Working copy of one week's slot assignments.

    dirty is set by any mutation that changes effective content and cleared
    by mark_saved(); approval refuses to run while it is set.
    """

    def __init__(
        self,
        week: Week,
        doctors: Iterable[Doctor],
        assignments: Iterable[SlotAssignment] = (),
        absences: Iterable[Absence] = (),
    ):
        self.week = week
        self.doctors: Dict[str, Doctor] = {d.id: d for d in doctors}
        self.dirty = False
        self._days: Dict[date, DayState] = {}

        states = rows_to_slot_states(week.dates, assignments, absences)
        for day in week.dates:
            slots = {s: states[(day, s)] for s in SLOTS}
            for slot in SLOTS:
                if not is_slot_consistent(slots[slot]):
                    logger.warning(
                        f"Week {week.week_start}: {day} {slot} holds conflicting rows; "
                        f"absence takes precedence"
                    )
                    slots[slot] = _reconcile_loaded(slots[slot])
                    self.dirty = True
            if is_unifiable(slots):
                self._days[day] = collapse_day(slots)
            else:
                self._days[day] = DetailedDay(slots)

    # -----------------------------------------------------------------------
    # Read side
    # -----------------------------------------------------------------------

    @property
    def days(self) -> List[date]:
        return list(self._days)

    @property
    def locked(self) -> bool:
        return self.week.is_approved

    def active_doctors(self) -> List[Doctor]:
        return sorted((d for d in self.doctors.values() if d.active), key=lambda d: d.name)

    def is_detailed(self, day: date) -> bool:
        return isinstance(self._day(day), DetailedDay)

    def day_slots(self, day: date) -> Dict[str, SlotState]:
        """Effective per-slot state of a day (copies)."""
        state = self._day(day)
        if isinstance(state, UnifiedDay):
            return expand_day(state)
        return {s: state.slots[s].copy() for s in SLOTS}

    def slot_state(self, day: date, slot: str) -> SlotState:
        self._check_slot(slot)
        return self.day_slots(day)[slot]

    def admissions(self, day: date, slot: str) -> Optional[str]:
        return self.slot_state(day, slot).admissions

    def ward(self, day: date, slot: str) -> List[str]:
        return self.slot_state(day, slot).ward

    def absences(self, day: date, slot: str) -> Dict[str, AbsenceMark]:
        return self.slot_state(day, slot).absences

    def off_doctors(self, day: date, slot: str) -> List[str]:
        """Rule 4: active doctors not assigned in the slot, ordered by name."""
        taken = self.slot_state(day, slot).assigned_ids()
        return [d.id for d in self.active_doctors() if d.id not in taken]

    def has_slot_differences(self, day: date) -> bool:
        state = self._day(day)
        if isinstance(state, UnifiedDay):
            return False
        return not is_unifiable(state.slots)

    def iter_roster(self) -> Iterator[Tuple[date, str, str, str]]:
        """Yield (date, slot, role, doctor_id) including derived OFF rows."""
        for day in self._days:
            slots = self.day_slots(day)
            for slot in SLOTS:
                state = slots[slot]
                if state.admissions:
                    yield day, slot, ROLE_ADMISSIONS, state.admissions
                for doctor_id in state.ward:
                    yield day, slot, ROLE_WARD, doctor_id
                for doctor_id in state.absences:
                    yield day, slot, ROLE_ABSENT, doctor_id
                for doctor_id in self.off_doctors(day, slot):
                    yield day, slot, ROLE_OFF, doctor_id

    def build_save_payload(self) -> Tuple[List[SlotAssignment], List[Absence]]:
        """Full replacement rows for saveWeekSchedule (ward rows are rule-5 expanded)."""
        assignments: List[SlotAssignment] = []
        absences: List[Absence] = []
        for day in self._days:
            slots = self.day_slots(day)
            for slot in SLOTS:
                state = slots[slot]
                if state.admissions:
                    assignments.append(SlotAssignment(
                        self.week.id, day, slot, state.admissions, ROLE_ADMISSIONS
                    ))
                for doctor_id in state.ward:
                    assignments.append(SlotAssignment(
                        self.week.id, day, slot, doctor_id, ROLE_WARD
                    ))
                for doctor_id, mark in state.absences.items():
                    absences.append(Absence(
                        self.week.id, day, slot, doctor_id, mark.reason, mark.note
                    ))
        return assignments, absences

    def mark_saved(self) -> None:
        self.dirty = False

    # -----------------------------------------------------------------------
    # Per-slot editing
    # -----------------------------------------------------------------------

    def set_admissions(self, day: date, slot: str, doctor_id: Optional[str]) -> None:
        """Set (or clear with None) the admissions doctor of one slot."""
        self._check_slot(slot)
        if doctor_id is not None:
            self._check_doctor(doctor_id)
        with self._editing(day) as state:
            if isinstance(state, UnifiedDay):
                if doctor_id is not None:
                    # an absence stays on the day and only the other slot shows it
                    state.ward = [d for d in state.ward if d != doctor_id]
                state.admissions[slot] = doctor_id
            else:
                _slot_set_admissions(state.slots[slot], doctor_id)

    def toggle_ward(self, day: date, slot: str, doctor_id: str) -> None:
        self._check_slot(slot)
        self._check_doctor(doctor_id)
        with self._editing(day, promote=True) as state:
            _slot_toggle_ward(state.slots[slot], doctor_id)

    def toggle_absence(
        self,
        day: date,
        slot: str,
        doctor_id: str,
        reason: Optional[str] = None,
        note: Optional[str] = None,
    ) -> None:
        self._check_slot(slot)
        self._check_doctor(doctor_id)
        mark = self._mark(reason, note)
        with self._editing(day, promote=True) as state:
            target = state.slots[slot]
            if doctor_id in target.absences:
                del target.absences[doctor_id]
            else:
                _slot_mark_absent(target, doctor_id, mark)

    def set_absence_reason(
        self,
        day: date,
        slot: str,
        doctor_id: str,
        reason: str,
        note: Optional[str] = None,
    ) -> None:
        """Assign an absence reason, marking the doctor absent if needed."""
        self._check_slot(slot)
        self._check_doctor(doctor_id)
        mark = self._mark(reason, note)
        with self._editing(day, promote=True) as state:
            _slot_mark_absent(state.slots[slot], doctor_id, mark)

    def clear_slot(self, day: date, slot: str) -> None:
        self._check_slot(slot)
        with self._editing(day, promote=True) as state:
            state.slots[slot] = SlotState()

    # -----------------------------------------------------------------------
    # Per-day editing
    # -----------------------------------------------------------------------

    def toggle_day_ward(self, day: date, doctor_id: str) -> None:
        """Ward toggle for both slots of a day."""
        self._check_doctor(doctor_id)
        with self._editing(day) as state:
            if isinstance(state, UnifiedDay):
                if doctor_id in state.admissions_ids() or doctor_id in state.absences:
                    logger.debug(f"Day ward toggle ignored for {doctor_id} on {day}")
                    return
                if doctor_id in state.ward:
                    state.ward.remove(doctor_id)
                else:
                    state.ward.append(doctor_id)
                return
            on_ward = any(doctor_id in s.ward for s in state.slots.values())
            for slot_state in state.slots.values():
                if on_ward:
                    slot_state.ward = [d for d in slot_state.ward if d != doctor_id]
                elif doctor_id not in slot_state.ward:
                    _slot_toggle_ward(slot_state, doctor_id)

    def toggle_day_absence(
        self,
        day: date,
        doctor_id: str,
        reason: Optional[str] = None,
        note: Optional[str] = None,
    ) -> None:
        self._check_doctor(doctor_id)
        mark = self._mark(reason, note)
        with self._editing(day) as state:
            if isinstance(state, UnifiedDay):
                if doctor_id in state.absences:
                    del state.absences[doctor_id]
                else:
                    self._unified_mark_absent(state, doctor_id, mark)
                return
            absent = any(doctor_id in s.absences for s in state.slots.values())
            for slot_state in state.slots.values():
                if absent:
                    slot_state.absences.pop(doctor_id, None)
                else:
                    _slot_mark_absent(slot_state, doctor_id, mark)

    def set_day_absence_reason(
        self,
        day: date,
        doctor_id: str,
        reason: str,
        note: Optional[str] = None,
    ) -> None:
        self._check_doctor(doctor_id)
        mark = self._mark(reason, note)
        with self._editing(day) as state:
            if isinstance(state, UnifiedDay):
                self._unified_mark_absent(state, doctor_id, mark)
            else:
                for slot_state in state.slots.values():
                    _slot_mark_absent(slot_state, doctor_id, mark)

    def clear_day(self, day: date) -> None:
        with self._editing(day):
            self._days[day] = UnifiedDay()

    def toggle_detailed_mode(self, day: date, confirm: bool = False) -> bool:
        """
        Promote a unified day to per-slot editing, or demote a detailed day
        back to unified values. Returns True when the day is now detailed.
        """
        self._ensure_editable()
        state = self._day(day)
        if isinstance(state, UnifiedDay):
            self._days[day] = DetailedDay(expand_day(state))
            logger.debug(f"{day}: promoted to per-slot editing")
            return True
        if not confirm and not is_unifiable(state.slots):
            raise ConfirmationRequired(day)
        before = self.day_slots(day)
        self._days[day] = collapse_day(state.slots)
        self._note_change(day, before)
        logger.debug(f"{day}: demoted to unified day editing")
        return False

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    def _day(self, day: date) -> DayState:
        try:
            return self._days[day]
        except KeyError:
            raise MalformedPayload(
                f"{day} is not a business day of week {self.week.week_start}"
            ) from None

    def _check_slot(self, slot: str) -> None:
        if slot not in SLOTS:
            raise MalformedPayload(f"unknown slot {slot!r}")

    def _check_doctor(self, doctor_id: str) -> None:
        if doctor_id not in self.doctors:
            raise DoctorNotFound(doctor_id)

    def _mark(self, reason: Optional[str], note: Optional[str]) -> AbsenceMark:
        reason = reason or DEFAULT_ABSENCE_REASON
        if not is_valid_absence_reason(reason):
            raise MalformedPayload(f"unknown absence reason {reason!r}")
        return AbsenceMark(reason, note)

    def _ensure_editable(self) -> None:
        if self.locked:
            raise WeekLocked(self.week.week_start)

    @staticmethod
    def _unified_mark_absent(state: UnifiedDay, doctor_id: str, mark: AbsenceMark) -> None:
        state.ward = [d for d in state.ward if d != doctor_id]
        for slot, holder in state.admissions.items():
            if holder == doctor_id:
                state.admissions[slot] = None
        state.absences[doctor_id] = mark

    def _note_change(self, day: date, before: Dict[str, SlotState]) -> None:
        after = self.day_slots(day)
        if not all(before[s].same_content(after[s]) for s in SLOTS):
            self.dirty = True

    def _editing(self, day: date, promote: bool = False) -> "_DayEdit":
        self._ensure_editable()
        self._day(day)
        return _DayEdit(self, day, promote)


class _DayEdit:
    """Context manager around one day mutation: optional promotion + dirty tracking."""

    def __init__(self, editor: WeekEditor, day: date, promote: bool):
        self.editor = editor
        self.day = day
        self.promote = promote
        self.before: Dict[str, SlotState] = {}

    def __enter__(self) -> DayState:
        self.before = self.editor.day_slots(self.day)
        state = self.editor._days[self.day]
        if self.promote and isinstance(state, UnifiedDay):
            state = DetailedDay(expand_day(state))
            self.editor._days[self.day] = state
            logger.debug(f"{self.day}: promoted to per-slot editing for a slot edit")
        return state

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self.editor._note_change(self.day, self.before)
        return False
