"""
Ward Rota — doctor slot allocation consistency & approval engine

Modules:
- schedule_config: slots, roles, absence reasons, user roles
- models: Doctor, Week, SlotAssignment, Absence and their invariants
- reconcile: per-slot / per-day week editor (reconciliation rules)
- validator: admissions coverage check
- approval: draft ⇄ approved state machine
- month: month aggregation and all-or-nothing approval
- carry_forward: copy last week's ward/absence pattern forward
- store: transactional record store (SQLite)
- service: operations facade
"""

from .errors import (
    RotaError,
    AuthorizationError,
    PreconditionError,
    ValidationError,
    NotFoundError,
    Unauthorized,
    UnsavedChanges,
    WeekLocked,
    ApprovalPrecondition,
    NoSourceWeek,
    EmptySource,
    ConfirmationRequired,
    NotAMonday,
    NotFirstOfMonth,
    MalformedPayload,
    DomainInvariantViolation,
    ReferentialConflict,
    WeekNotFound,
    DoctorNotFound,
)

from .models import (
    Actor,
    Doctor,
    Week,
    SlotAssignment,
    Absence,
    SlotState,
    is_slot_consistent,
    is_doctor_free,
)

from .reconcile import WeekEditor
from .validator import WeekValidation, validate_week
from .month import MissingWeek, MissingAdmissions, MonthReport
from .carry_forward import CopyForwardResult
from .store import RecordStore, SQLiteStore
from .service import RotaService

__all__ = [
    "RotaError",
    "AuthorizationError",
    "PreconditionError",
    "ValidationError",
    "NotFoundError",
    "Unauthorized",
    "UnsavedChanges",
    "WeekLocked",
    "ApprovalPrecondition",
    "NoSourceWeek",
    "EmptySource",
    "ConfirmationRequired",
    "NotAMonday",
    "NotFirstOfMonth",
    "MalformedPayload",
    "DomainInvariantViolation",
    "ReferentialConflict",
    "WeekNotFound",
    "DoctorNotFound",
    "Actor",
    "Doctor",
    "Week",
    "SlotAssignment",
    "Absence",
    "SlotState",
    "is_slot_consistent",
    "is_doctor_free",
    "WeekEditor",
    "WeekValidation",
    "validate_week",
    "MissingWeek",
    "MissingAdmissions",
    "MonthReport",
    "CopyForwardResult",
    "RecordStore",
    "SQLiteStore",
    "RotaService",
]
