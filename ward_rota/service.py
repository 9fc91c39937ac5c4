"""
service.py — Operations facade

The request/response surface the surrounding application calls:

  create_week          createWeek(mondayDate)
  save_week_schedule   saveWeekSchedule(weekId, assignments[], absences[])
  validate_week        validateWeek(weekId)
  approve_week         approveWeek(weekId)
  revert_week          revertWeek(weekId)
  approve_month        approveMonth(monthStart)
  copy_week_forward    copyWeekForward(targetWeekId)

plus week/doctor housekeeping and the editor round-trip
(open_week_editor → edits → save_week_editor).

Check order for every call: authorization (before any store access), then
preconditions, then payload validation. Writes run in one store transaction.
"""

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ward_rota import approval, carry_forward, doctors, month
from ward_rota.dates import parse_date, week_dates
from ward_rota.errors import DomainInvariantViolation, MalformedPayload, Unauthorized, WeekNotFound
from ward_rota.models import Absence, Actor, Doctor, SlotAssignment, Week, check_week_rows
from ward_rota.reconcile import WeekEditor
from ward_rota.store import RecordStore
from ward_rota.validator import WeekValidation

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_date(value: Any, what: str) -> date:
    try:
        return parse_date(value)
    except ValueError:
        raise MalformedPayload(f"{what} is not a date: {value!r}") from None


# ---------------------------------------------------------------------------
# Capability checks
# ---------------------------------------------------------------------------

def require_editor(actor: Optional[Actor], action: str) -> Actor:
    if actor is None or not actor.can_edit:
        raise Unauthorized(action, actor.user_id if actor else None)
    return actor


def require_approver(actor: Optional[Actor], action: str) -> Actor:
    if actor is None or not actor.can_approve:
        raise Unauthorized(action, actor.user_id if actor else None)
    return actor


# ---------------------------------------------------------------------------
# Save payload parsing
# ---------------------------------------------------------------------------

def _field(row: Any, key: str, required: bool = True) -> Any:
    if isinstance(row, Mapping):
        if key not in row:
            if required:
                raise MalformedPayload(f"missing key {key!r}", row)
            return None
        return row[key]
    if not hasattr(row, key):
        if required:
            raise MalformedPayload(f"missing attribute {key!r}", row)
        return None
    return getattr(row, key)


def _row_slot_key(week: Week, row: Any, doctor_ids: Iterable[str]) -> Tuple[date, str, str]:
    day = _as_date(_field(row, "date"), "date")
    if day not in week_dates(week.week_start):
        raise MalformedPayload(f"{day} is outside Monday-Friday of week {week.week_start}", row)
    doctor_id = _field(row, "doctor_id")
    if doctor_id not in doctor_ids:
        raise MalformedPayload(f"unknown doctor {doctor_id!r}", row)
    return day, _field(row, "slot"), doctor_id


def parse_assignments(week: Week, rows: Any, doctor_ids: Iterable[str]) -> List[SlotAssignment]:
    """Accepts SlotAssignment objects or mappings carrying role (or status)."""
    if not isinstance(rows, (list, tuple)):
        raise MalformedPayload("assignments must be a list")
    doctor_ids = set(doctor_ids)
    out = []
    for row in rows:
        day, slot, doctor_id = _row_slot_key(week, row, doctor_ids)
        role = _field(row, "role", required=False)
        if role is None:
            role = _field(row, "status", required=False)
        if role is None:
            raise MalformedPayload("missing key 'role'", row)
        try:
            out.append(SlotAssignment(week.id, day, slot, doctor_id, role))
        except DomainInvariantViolation as e:
            raise MalformedPayload(e.detail, row) from e
    return out


def parse_absences(week: Week, rows: Any, doctor_ids: Iterable[str]) -> List[Absence]:
    if not isinstance(rows, (list, tuple)):
        raise MalformedPayload("absences must be a list")
    doctor_ids = set(doctor_ids)
    out = []
    for row in rows:
        day, slot, doctor_id = _row_slot_key(week, row, doctor_ids)
        reason = _field(row, "reason")
        note = _field(row, "note", required=False)
        try:
            out.append(Absence(week.id, day, slot, doctor_id, reason, note))
        except DomainInvariantViolation as e:
            raise MalformedPayload(e.detail, row) from e
    return out


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class RotaService:
    """
    Facade over a RecordStore. clock is injectable for approval timestamps.
    """

    def __init__(self, store: RecordStore, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.clock = clock or _utcnow

    # -----------------------------------------------------------------------
    # Actors
    # -----------------------------------------------------------------------

    def get_actor(self, user_id: str) -> Optional[Actor]:
        return self.store.get_profile(user_id)

    def import_roster(self, doctor_rows: Sequence[Dict], profiles: Sequence[Actor]) -> Dict[str, int]:
        """
        Bootstrap from config files: add doctors whose name is not yet
        registered and upsert profiles. Returns counts.
        """
        with self.store.transaction():
            known = {d.name for d in self.store.list_doctors()}
            added = 0
            for row in doctor_rows:
                if row["name"] in known:
                    continue
                doctors.add_doctor(self.store, row["name"], active=row.get("active", True))
                known.add(row["name"])
                added += 1
            for profile in profiles:
                self.store.upsert_profile(profile)
        logger.info(f"Imported {added} doctor(s) and {len(profiles)} profile(s)")
        return {"doctors": added, "profiles": len(profiles)}

    # -----------------------------------------------------------------------
    # Weeks
    # -----------------------------------------------------------------------

    def create_week(self, actor: Optional[Actor], monday: Any) -> Week:
        require_editor(actor, "create weeks")
        week = Week(id=uuid.uuid4().hex, week_start=_as_date(monday, "week start"))
        with self.store.transaction():
            stored = self.store.insert_week(week)
        if stored.id == week.id:
            logger.info(f"Week {week.week_start} created ({week.id})")
        else:
            logger.debug(f"Week {week.week_start} already exists ({stored.id})")
        return stored

    def delete_week(self, actor: Optional[Actor], week_id: str) -> None:
        require_editor(actor, "delete weeks")
        with self.store.transaction():
            week = approval.load_week(self.store, week_id)
            approval.ensure_draft(week)
            self.store.delete_week(week.id)
        logger.info(f"Week {week.week_start} deleted")

    def get_week(self, week_id: str) -> Week:
        return approval.load_week(self.store, week_id)

    def find_week(self, week_start: Any) -> Optional[Week]:
        return self.store.find_week(_as_date(week_start, "week start"))

    def require_week(self, week_start: Any) -> Week:
        day = _as_date(week_start, "week start")
        week = self.store.find_week(day)
        if week is None:
            raise WeekNotFound(day)
        return week

    def save_week_schedule(
        self,
        actor: Optional[Actor],
        week_id: str,
        assignments: Any,
        absences: Any,
    ) -> Dict[str, int]:
        """Replace every SlotAssignment and Absence row of a draft week."""
        require_editor(actor, "save week schedules")
        with self.store.transaction():
            week = approval.load_week(self.store, week_id)
            approval.ensure_draft(week)
            doctor_ids = [d.id for d in self.store.list_doctors()]
            new_assignments = parse_assignments(week, assignments, doctor_ids)
            new_absences = parse_absences(week, absences, doctor_ids)
            check_week_rows(week.id, new_assignments, new_absences)

            self.store.delete_assignments(week.id)
            self.store.delete_absences(week.id)
            n_assign = self.store.insert_assignments(new_assignments)
            n_absent = self.store.insert_absences(new_absences)
        logger.info(
            f"Week {week.week_start} saved: {n_assign} assignment(s), {n_absent} absence(s)"
        )
        return {"assignments": n_assign, "absences": n_absent}

    def validate_week(self, week_id: str) -> WeekValidation:
        week = approval.load_week(self.store, week_id)
        return approval.validate_stored(self.store, week)

    def approve_week(
        self,
        actor: Optional[Actor],
        week_id: str,
        editor: Optional[WeekEditor] = None,
    ) -> Week:
        require_approver(actor, "approve weeks")
        dirty = editor is not None and editor.dirty
        with self.store.transaction():
            week = approval.approve(self.store, week_id, actor.user_id, self.clock(), dirty=dirty)
        if editor is not None:
            editor.week = week
        return week

    def revert_week(self, actor: Optional[Actor], week_id: str) -> Week:
        require_approver(actor, "revert weeks")
        with self.store.transaction():
            return approval.revert(self.store, week_id, actor.user_id)

    # -----------------------------------------------------------------------
    # Editor round-trip
    # -----------------------------------------------------------------------

    def open_week_editor(self, week_id: str) -> WeekEditor:
        week = approval.load_week(self.store, week_id)
        return WeekEditor(
            week,
            self.store.list_doctors(),
            self.store.list_assignments(week.id),
            self.store.list_absences(week.id),
        )

    def save_week_editor(self, actor: Optional[Actor], editor: WeekEditor) -> Dict[str, int]:
        assignments, absences = editor.build_save_payload()
        counts = self.save_week_schedule(actor, editor.week.id, assignments, absences)
        editor.mark_saved()
        return counts

    # -----------------------------------------------------------------------
    # Month
    # -----------------------------------------------------------------------

    def check_month(self, month_start: Any) -> month.MonthReport:
        return month.check_month(self.store, _as_date(month_start, "month start"))

    def approve_month(self, actor: Optional[Actor], month_start: Any) -> month.MonthReport:
        require_approver(actor, "approve months")
        return month.approve_month(
            self.store, _as_date(month_start, "month start"), actor.user_id, self.clock()
        )

    def workload_counts(self, month_start: Any) -> Dict[str, Dict[str, int]]:
        return month.workload_counts(self.store, _as_date(month_start, "month start"))

    # -----------------------------------------------------------------------
    # Carry-forward
    # -----------------------------------------------------------------------

    def copy_week_forward(
        self, actor: Optional[Actor], target_week_id: str
    ) -> carry_forward.CopyForwardResult:
        require_editor(actor, "copy weeks forward")
        return carry_forward.copy_forward(self.store, target_week_id)

    # -----------------------------------------------------------------------
    # Doctors
    # -----------------------------------------------------------------------

    def add_doctor(self, actor: Optional[Actor], name: str) -> Doctor:
        require_editor(actor, "manage doctors")
        return doctors.add_doctor(self.store, name)

    def rename_doctor(self, actor: Optional[Actor], doctor_id: str, name: str) -> Doctor:
        require_editor(actor, "manage doctors")
        return doctors.rename_doctor(self.store, doctor_id, name)

    def archive_doctor(self, actor: Optional[Actor], doctor_id: str) -> Doctor:
        require_editor(actor, "manage doctors")
        return doctors.set_doctor_active(self.store, doctor_id, False)

    def restore_doctor(self, actor: Optional[Actor], doctor_id: str) -> Doctor:
        require_editor(actor, "manage doctors")
        return doctors.set_doctor_active(self.store, doctor_id, True)

    def delete_doctor(self, actor: Optional[Actor], doctor_id: str) -> None:
        require_editor(actor, "manage doctors")
        doctors.delete_doctor(self.store, doctor_id)

    def list_doctors(self, active_only: bool = True) -> List[Doctor]:
        return doctors.list_doctors(self.store, active_only)
