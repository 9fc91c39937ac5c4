"""
Tests for the domain model, row invariants and calendar helpers
"""

import logging
import sys
from datetime import date, datetime
from pathlib import Path

import pytest

# Add project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from ward_rota.dates import month_range, month_week_starts, parse_date, week_dates
from ward_rota.errors import DomainInvariantViolation, NotAMonday
from ward_rota.models import (
    Absence,
    AbsenceMark,
    Actor,
    SlotAssignment,
    SlotState,
    Week,
    check_week_rows,
    is_doctor_free,
    is_slot_consistent,
    normalize_absence_reason,
)

MON = date(2024, 9, 2)
TUE = date(2024, 9, 3)


class TestWeek:

    def test_monday_required(self):
        with pytest.raises(NotAMonday):
            Week(id="w", week_start=TUE)

    def test_draft_by_default(self):
        week = Week(id="w", week_start=MON)
        assert week.is_draft
        assert not week.is_approved
        assert week.dates == [date(2024, 9, d) for d in range(2, 7)]

    def test_unknown_status_rejected(self):
        with pytest.raises(ValueError):
            Week(id="w", week_start=MON, status="published")


class TestActor:

    def test_head_requires_can_approve(self):
        with pytest.raises(ValueError):
            Actor(user_id="h", role="head", can_approve=False)

    def test_unknown_role(self):
        with pytest.raises(ValueError):
            Actor(user_id="x", role="admin")

    def test_capabilities(self):
        assert Actor("p", "planner").can_edit
        assert Actor("h", "head", True).can_edit
        assert not Actor("d", "doctor").can_edit
        assert Actor("d", "doctor", can_approve=True).can_approve


class TestRows:

    def test_assignment_bad_slot_carries_offending_tuple(self):
        with pytest.raises(DomainInvariantViolation) as exc:
            SlotAssignment("w", MON, "NIGHT", "alice", "WARD")
        assert exc.value.offending == ("w", MON, "NIGHT", "alice")

    def test_assignment_bad_role(self):
        with pytest.raises(DomainInvariantViolation):
            SlotAssignment("w", MON, "AM", "alice", "OFF")

    def test_absence_reason_strict(self):
        with pytest.raises(DomainInvariantViolation):
            Absence("w", MON, "AM", "alice", "SICK_LEAVE")
        assert Absence("w", MON, "AM", "alice", "INTERNSHIP").reason == "INTERNSHIP"

    def test_normalize_reason(self, caplog):
        assert normalize_absence_reason("training") == "TRAINING"
        with caplog.at_level(logging.WARNING):
            assert normalize_absence_reason("SICK_LEAVE") == "OTHER"
        assert "SICK_LEAVE" in caplog.text
        assert normalize_absence_reason(None) == "OTHER"


class TestSlotPredicates:

    def test_consistent_slot(self):
        slot = SlotState("alice", ["bob"], {"carol": AbsenceMark("VACATION")})
        assert is_slot_consistent(slot)
        assert is_doctor_free(slot, "dan")
        assert not is_doctor_free(slot, "carol")

    def test_admissions_also_on_ward(self):
        assert not is_slot_consistent(SlotState("alice", ["alice"], {}))

    def test_ward_and_absent(self):
        assert not is_slot_consistent(SlotState(None, ["bob"], {"bob": AbsenceMark("OTHER")}))

    def test_duplicate_ward_entry(self):
        assert not is_slot_consistent(SlotState(None, ["bob", "bob"], {}))


class TestCheckWeekRows:

    def test_second_admissions(self):
        rows = [
            SlotAssignment("w", MON, "AM", "alice", "ADMISSIONS"),
            SlotAssignment("w", MON, "AM", "bob", "ADMISSIONS"),
        ]
        with pytest.raises(DomainInvariantViolation) as exc:
            check_week_rows("w", rows, [])
        assert exc.value.doctor_id == "bob"
        assert exc.value.slot == "AM"

    def test_two_roles_same_slot(self):
        rows = [
            SlotAssignment("w", MON, "AM", "alice", "ADMISSIONS"),
            SlotAssignment("w", MON, "AM", "alice", "WARD"),
        ]
        with pytest.raises(DomainInvariantViolation):
            check_week_rows("w", rows, [])

    def test_assigned_and_absent(self):
        rows = [SlotAssignment("w", MON, "PM", "alice", "WARD")]
        absences = [Absence("w", MON, "PM", "alice", "VACATION")]
        with pytest.raises(DomainInvariantViolation) as exc:
            check_week_rows("w", rows, absences)
        assert exc.value.date == MON

    def test_duplicate_absence(self):
        absences = [
            Absence("w", MON, "PM", "alice", "VACATION"),
            Absence("w", MON, "PM", "alice", "TRAINING"),
        ]
        with pytest.raises(DomainInvariantViolation):
            check_week_rows("w", [], absences)

    def test_valid_week(self):
        rows = [
            SlotAssignment("w", MON, "AM", "alice", "ADMISSIONS"),
            SlotAssignment("w", MON, "PM", "alice", "WARD"),
            SlotAssignment("w", MON, "AM", "bob", "WARD"),
        ]
        absences = [Absence("w", MON, "PM", "bob", "POST_CALL")]
        check_week_rows("w", rows, absences)


class TestDates:

    def test_week_dates(self):
        days = week_dates(MON)
        assert len(days) == 5
        assert days[-1] == date(2024, 9, 6)

    def test_parse_date(self):
        assert parse_date("2024-09-02") == MON
        assert parse_date(datetime(2024, 9, 2, 15, 30)) == MON
        with pytest.raises(ValueError):
            parse_date("02/09/2024")
        with pytest.raises(ValueError):
            parse_date(20240902)

    def test_month_range_weekend_edges(self):
        # Sep 2024: 1st is a Sunday, 30th a Monday
        assert month_range(date(2024, 9, 1)) == (date(2024, 8, 26), date(2024, 10, 4))
        assert month_week_starts(date(2024, 9, 1)) == [
            date(2024, 8, 26), date(2024, 9, 2), date(2024, 9, 9),
            date(2024, 9, 16), date(2024, 9, 23), date(2024, 9, 30),
        ]

    def test_month_range_exact_weeks(self):
        # Feb 2021 starts on a Monday and ends on a Sunday
        assert month_range(date(2021, 2, 1)) == (date(2021, 2, 1), date(2021, 2, 26))
        assert len(month_week_starts(date(2021, 2, 1))) == 4
