"""
errors.py — Failure taxonomy for the rota engine

Four categories, checked in this order by every operation:
  AuthorizationError  caller lacks the capability (checked before any data access)
  PreconditionError   state doesn't allow the operation (locked week, unsaved edits, ...)
  ValidationError     payload or invariant violation (bad date/slot, duplicate admissions, ...)
  NotFoundError       referenced week/doctor absent

Every concrete error keeps its offending values as attributes so callers can
render one consolidated remediation list.
"""

from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple


class RotaError(Exception):
    """Base class for all engine failures."""

    kind = "error"


class AuthorizationError(RotaError):
    kind = "authorization"


class PreconditionError(RotaError):
    kind = "precondition"


class ValidationError(RotaError):
    kind = "validation"


class NotFoundError(RotaError):
    kind = "not_found"


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------

class Unauthorized(AuthorizationError):
    def __init__(self, action: str, user_id: Optional[str] = None):
        self.action = action
        self.user_id = user_id
        who = user_id or "anonymous"
        super().__init__(f"{who} is not allowed to {action}")


# ---------------------------------------------------------------------------
# Preconditions
# ---------------------------------------------------------------------------

class UnsavedChanges(PreconditionError):
    def __init__(self, week_start: Optional[date] = None):
        self.week_start = week_start
        super().__init__("Save the week before approving it (pending unsaved edits)")


class WeekLocked(PreconditionError):
    def __init__(self, week_start: Optional[date] = None):
        self.week_start = week_start
        label = week_start.isoformat() if week_start else "week"
        super().__init__(f"Week {label} is approved and cannot be modified")


class ApprovalPrecondition(PreconditionError):
    """Raised with every (date, slot) lacking exactly one admissions doctor."""

    def __init__(self, missing: Sequence[Tuple[date, str]], week_start: Optional[date] = None):
        self.missing: List[Tuple[date, str]] = list(missing)
        self.week_start = week_start
        listed = ", ".join(f"{d.isoformat()} {s}" for d, s in self.missing)
        super().__init__(f"Complete admissions before approving: {listed}")


class NoSourceWeek(PreconditionError):
    def __init__(self, source_week_start: date):
        self.source_week_start = source_week_start
        super().__init__(f"No previous week ({source_week_start.isoformat()}) to copy from")


class EmptySource(PreconditionError):
    def __init__(self, source_week_start: date):
        self.source_week_start = source_week_start
        super().__init__(
            f"Previous week ({source_week_start.isoformat()}) has no ward or absence data to copy"
        )


class ConfirmationRequired(PreconditionError):
    def __init__(self, day: date):
        self.day = day
        super().__init__(
            f"{day.isoformat()} has different AM/PM values; confirm to merge them into one day"
        )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class NotAMonday(ValidationError):
    def __init__(self, value: Any):
        self.value = value
        super().__init__(f"Week start must be a Monday, got {value!r}")


class NotFirstOfMonth(ValidationError):
    def __init__(self, value: Any):
        self.value = value
        super().__init__(f"Month start must be the first day of a month, got {value!r}")


class MalformedPayload(ValidationError):
    def __init__(self, detail: str, row: Any = None):
        self.detail = detail
        self.row = row
        suffix = f" (row: {row!r})" if row is not None else ""
        super().__init__(f"Malformed payload: {detail}{suffix}")


class DomainInvariantViolation(ValidationError):
    def __init__(
        self,
        detail: str,
        week: Any = None,
        day: Optional[date] = None,
        slot: Optional[str] = None,
        doctor_id: Optional[str] = None,
    ):
        self.detail = detail
        self.week = week
        self.date = day
        self.slot = slot
        self.doctor_id = doctor_id
        parts = [detail]
        if day is not None:
            parts.append(f"date={day.isoformat()}")
        if slot:
            parts.append(f"slot={slot}")
        if doctor_id:
            parts.append(f"doctor={doctor_id}")
        super().__init__(" | ".join(parts))

    @property
    def offending(self) -> Tuple[Any, Optional[date], Optional[str], Optional[str]]:
        return (self.week, self.date, self.slot, self.doctor_id)


class ReferentialConflict(ValidationError):
    def __init__(self, doctor_id: str, references: Dict[str, int]):
        self.doctor_id = doctor_id
        self.references = dict(references)
        used = ", ".join(f"{k}={v}" for k, v in self.references.items() if v)
        super().__init__(
            f"Doctor {doctor_id} is still referenced ({used}); archive instead of deleting"
        )


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------

class WeekNotFound(NotFoundError):
    def __init__(self, week_ref: Any):
        self.week_ref = week_ref
        super().__init__(f"Week not found: {week_ref}")


class DoctorNotFound(NotFoundError):
    def __init__(self, doctor_id: str):
        self.doctor_id = doctor_id
        super().__init__(f"Doctor not found: {doctor_id}")
