"""
schedule_config.py — Slot, Role & Reason Configuration

Fixed shape of the department week:

WEEK
────
  Monday–Friday business days, two slots per day:
    AM  (08:00–12:00)
    PM  (12:00–15:35)
  A Week is keyed by its Monday (week_start). Saturdays/Sundays are never
  scheduled and never validated.

ROLES PER SLOT (mutually exclusive per doctor)
──────────────────────────────────────────────
  ADMISSIONS  exactly one doctor per slot (approval gate)
  WARD        any number of doctors
  ABSENT      any number of doctors, each with a reason code
  OFF         derived: active doctors not in any of the above — never stored

USER ROLES
──────────
  doctor   read-only
  planner  may create/delete draft weeks, save schedules, copy forward,
           manage doctors
  head     planner capabilities; always has can_approve
  can_approve (profile flag) gates approve / revert / approve-month
"""

from typing import Dict, FrozenSet, Tuple

# ---------------------------------------------------------------------------
# Calendar shape
# ---------------------------------------------------------------------------
SLOTS: Tuple[str, ...] = ("AM", "PM")
OPPOSITE_SLOT: Dict[str, str] = {"AM": "PM", "PM": "AM"}
BUSINESS_DAYS = 5
CARRY_FORWARD_DAYS = 7

SLOT_LABELS: Dict[str, str] = {
    "AM": "Morning (08:00-12:00)",
    "PM": "Afternoon (12:00-15:35)",
}

# ---------------------------------------------------------------------------
# Week status
# ---------------------------------------------------------------------------
STATUS_DRAFT = "draft"
STATUS_APPROVED = "approved"
WEEK_STATUSES: Tuple[str, ...] = (STATUS_DRAFT, STATUS_APPROVED)

# ---------------------------------------------------------------------------
# Slot roles (stored on slot_assignments.role)
# ---------------------------------------------------------------------------
ROLE_ADMISSIONS = "ADMISSIONS"
ROLE_WARD = "WARD"
ASSIGNMENT_ROLES: Tuple[str, ...] = (ROLE_ADMISSIONS, ROLE_WARD)

# ---------------------------------------------------------------------------
# Absence reasons
# ---------------------------------------------------------------------------
ABSENCE_REASON_LABELS: Dict[str, str] = {
    "VACATION":   "Vacation",
    "TRAINING":   "Training",
    "POST_CALL":  "Post-call rest",
    "INTERNSHIP": "Internship",
    "OTHER":      "Other",
}
DEFAULT_ABSENCE_REASON = "VACATION"
FALLBACK_ABSENCE_REASON = "OTHER"

# ---------------------------------------------------------------------------
# User roles & capabilities
# ---------------------------------------------------------------------------
USER_ROLE_DOCTOR = "doctor"
USER_ROLE_PLANNER = "planner"
USER_ROLE_HEAD = "head"
USER_ROLES: Tuple[str, ...] = (USER_ROLE_DOCTOR, USER_ROLE_PLANNER, USER_ROLE_HEAD)
EDITOR_ROLES: FrozenSet[str] = frozenset({USER_ROLE_PLANNER, USER_ROLE_HEAD})

# Month report entry types
MISSING_WEEK = "MISSING_WEEK"
MISSING_ADMISSIONS = "MISSING_ADMISSIONS"
