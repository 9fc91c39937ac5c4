"""
Tests for the slot reconciliation engine (WeekEditor)
"""

import logging
import sys
from datetime import date
from pathlib import Path

import pytest

# Add project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from ward_rota.errors import ConfirmationRequired, DoctorNotFound, MalformedPayload, WeekLocked
from ward_rota.models import Absence, Doctor, SlotAssignment, Week
from ward_rota.reconcile import WeekEditor

MON = date(2024, 9, 2)
TUE = date(2024, 9, 3)
SAT = date(2024, 9, 7)

DOCTORS = [
    Doctor("alice", "Alice"),
    Doctor("bob", "Bob"),
    Doctor("carol", "Carol"),
    Doctor("dan", "Dan"),
    Doctor("eve", "Eve"),
    Doctor("zed", "Zed", active=False),
]


def make_editor(assignments=(), absences=(), status="draft"):
    week = Week(id="w1", week_start=MON, status=status)
    return WeekEditor(week, DOCTORS, assignments, absences)


def same_day(a, b):
    return all(a[s].same_content(b[s]) for s in ("AM", "PM"))


@pytest.fixture
def editor():
    return make_editor()


# ---------------------------------------------------------------------------
# Rules 1-3
# ---------------------------------------------------------------------------

class TestAdmissionsWins:

    def test_admissions_removes_from_ward(self, editor):
        editor.toggle_ward(MON, "AM", "alice")
        editor.set_admissions(MON, "AM", "alice")
        assert editor.admissions(MON, "AM") == "alice"
        assert "alice" not in editor.ward(MON, "AM")

    def test_admissions_removes_absence(self, editor):
        editor.toggle_absence(MON, "AM", "alice")
        editor.set_admissions(MON, "AM", "alice")
        assert editor.absences(MON, "AM") == {}
        assert editor.admissions(MON, "AM") == "alice"

    def test_unified_admissions_keeps_other_slot_absence(self, editor):
        editor.toggle_day_absence(MON, "carol", reason="POST_CALL")
        editor.set_admissions(MON, "AM", "carol")
        assert not editor.is_detailed(MON)
        assert editor.admissions(MON, "AM") == "carol"
        assert "carol" not in editor.absences(MON, "AM")
        assert editor.absences(MON, "PM")["carol"].reason == "POST_CALL"
        assert "carol" not in editor.ward(MON, "PM")

        assignments, absences = editor.build_save_payload()
        assert [(a.slot, a.doctor_id) for a in absences] == [("PM", "carol")]
        reloaded = make_editor(assignments, absences)
        assert not reloaded.is_detailed(MON)
        assert same_day(editor.day_slots(MON), reloaded.day_slots(MON))
        assert not reloaded.dirty

    def test_unified_admissions_leaves_day_ward(self, editor):
        editor.toggle_day_ward(MON, "carol")
        editor.set_admissions(MON, "AM", "carol")
        assert "carol" not in editor.ward(MON, "AM")
        # still on ward in the afternoon through the opposite-slot default
        assert "carol" in editor.ward(MON, "PM")

    def test_replacing_admissions_doctor(self, editor):
        editor.set_admissions(MON, "AM", "alice")
        editor.set_admissions(MON, "AM", "bob")
        assert editor.admissions(MON, "AM") == "bob"
        assert "alice" in editor.off_doctors(MON, "AM")


class TestAbsenceWins:

    def test_absence_clears_admissions(self, editor):
        editor.set_admissions(MON, "AM", "alice")
        editor.toggle_absence(MON, "AM", "alice")
        assert editor.admissions(MON, "AM") is None
        assert editor.absences(MON, "AM")["alice"].reason == "VACATION"

    def test_absence_removes_from_ward(self, editor):
        editor.toggle_ward(MON, "PM", "bob")
        editor.toggle_absence(MON, "PM", "bob", reason="TRAINING")
        assert "bob" not in editor.ward(MON, "PM")
        assert editor.absences(MON, "PM")["bob"].reason == "TRAINING"

    def test_day_absence_clears_both_admissions(self, editor):
        editor.set_admissions(MON, "AM", "dan")
        editor.set_admissions(MON, "PM", "dan")
        editor.toggle_day_absence(MON, "dan")
        assert editor.admissions(MON, "AM") is None
        assert editor.admissions(MON, "PM") is None
        assert "dan" in editor.absences(MON, "PM")

    def test_set_absence_reason_keeps_absent(self, editor):
        editor.toggle_absence(MON, "AM", "eve")
        editor.set_absence_reason(MON, "AM", "eve", "POST_CALL", note="night shift")
        mark = editor.absences(MON, "AM")["eve"]
        assert (mark.reason, mark.note) == ("POST_CALL", "night shift")


class TestWardToggleDisabled:

    def test_ward_toggle_noop_for_admissions(self, editor):
        editor.set_admissions(MON, "AM", "alice")
        editor.mark_saved()
        before = editor.day_slots(MON)
        editor.toggle_ward(MON, "AM", "alice")
        assert same_day(before, editor.day_slots(MON))
        assert not editor.dirty

    def test_day_ward_toggle_noop_for_absent(self, editor):
        editor.toggle_day_absence(MON, "bob")
        editor.toggle_day_ward(MON, "bob")
        assert "bob" not in editor.ward(MON, "AM")
        assert "bob" not in editor.ward(MON, "PM")

    def test_day_ward_toggle_noop_for_admissions_either_slot(self, editor):
        editor.set_admissions(MON, "PM", "carol")
        editor.toggle_day_ward(MON, "carol")
        # only the implicit morning ward membership
        assert editor.ward(MON, "AM") == ["carol"]
        assert editor.ward(MON, "PM") == []


# ---------------------------------------------------------------------------
# Rules 4-5
# ---------------------------------------------------------------------------

class TestDerivedState:

    def test_off_is_active_minus_assigned(self, editor):
        editor.set_admissions(MON, "AM", "alice")
        editor.toggle_day_ward(MON, "bob")
        editor.toggle_day_absence(MON, "carol")
        assert editor.off_doctors(MON, "AM") == ["dan", "eve"]
        assert editor.off_doctors(MON, "PM") == ["dan", "eve"]
        assert "zed" not in editor.off_doctors(TUE, "AM")

    def test_opposite_slot_admissions_on_ward(self, editor):
        editor.set_admissions(MON, "AM", "alice")
        editor.set_admissions(MON, "PM", "bob")
        assert editor.ward(MON, "AM") == ["bob"]
        assert editor.ward(MON, "PM") == ["alice"]

    def test_same_doctor_both_slots_suppressed(self, editor):
        editor.set_admissions(MON, "AM", "alice")
        editor.set_admissions(MON, "PM", "alice")
        assert editor.ward(MON, "AM") == []
        assert editor.ward(MON, "PM") == []

    def test_no_implicit_ward_in_detailed_mode(self, editor):
        editor.toggle_detailed_mode(MON)
        editor.set_admissions(MON, "AM", "alice")
        assert editor.ward(MON, "PM") == []


class TestIdempotence:

    @pytest.mark.parametrize("toggle", [
        lambda e: e.toggle_day_ward(MON, "bob"),
        lambda e: e.toggle_day_absence(MON, "bob"),
        lambda e: e.toggle_ward(MON, "AM", "bob"),
        lambda e: e.toggle_absence(MON, "PM", "bob"),
    ])
    def test_toggle_twice_restores(self, editor, toggle):
        editor.set_admissions(MON, "AM", "alice")
        editor.toggle_day_ward(MON, "carol")
        before = editor.day_slots(MON)
        toggle(editor)
        assert not same_day(before, editor.day_slots(MON))
        toggle(editor)
        assert same_day(before, editor.day_slots(MON))


# ---------------------------------------------------------------------------
# Day granularity
# ---------------------------------------------------------------------------

class TestDetailedMode:

    def test_unified_day_has_no_differences(self, editor):
        editor.set_admissions(MON, "AM", "alice")
        assert not editor.is_detailed(MON)
        assert not editor.has_slot_differences(MON)

    def test_promotion_preserves_values(self, editor):
        editor.set_admissions(MON, "AM", "alice")
        editor.toggle_day_ward(MON, "bob")
        before = editor.day_slots(MON)
        assert editor.toggle_detailed_mode(MON) is True
        assert editor.is_detailed(MON)
        assert same_day(before, editor.day_slots(MON))
        assert not editor.has_slot_differences(MON)

    def test_slot_edit_promotes_day(self, editor):
        editor.toggle_ward(MON, "AM", "carol")
        assert editor.is_detailed(MON)
        assert editor.has_slot_differences(MON)
        assert editor.ward(MON, "PM") == []

    def test_demotion_requires_confirmation(self, editor):
        editor.toggle_ward(MON, "AM", "carol")
        with pytest.raises(ConfirmationRequired):
            editor.toggle_detailed_mode(MON)
        assert editor.is_detailed(MON)
        assert editor.toggle_detailed_mode(MON, confirm=True) is False
        assert not editor.is_detailed(MON)
        assert editor.ward(MON, "PM") == ["carol"]

    def test_demotion_without_differences(self, editor):
        editor.toggle_detailed_mode(MON)
        editor.mark_saved()
        assert editor.toggle_detailed_mode(MON) is False
        assert not editor.dirty

    def test_collapse_keeps_absence_beside_admissions(self, editor):
        editor.toggle_detailed_mode(MON)
        editor.set_admissions(MON, "PM", "dan")
        editor.toggle_absence(MON, "AM", "dan")
        before = editor.day_slots(MON)
        assert not editor.has_slot_differences(MON)
        assert editor.toggle_detailed_mode(MON) is False
        assert same_day(before, editor.day_slots(MON))
        assert editor.admissions(MON, "PM") == "dan"
        assert "dan" in editor.absences(MON, "AM")

    def test_day_toggle_on_detailed_day(self, editor):
        editor.toggle_ward(MON, "AM", "eve")
        editor.toggle_day_ward(MON, "eve")
        assert "eve" not in editor.ward(MON, "AM")
        assert "eve" not in editor.ward(MON, "PM")
        editor.toggle_day_ward(MON, "eve")
        assert "eve" in editor.ward(MON, "AM")
        assert "eve" in editor.ward(MON, "PM")


class TestClearing:

    def test_clear_slot(self, editor):
        editor.set_admissions(MON, "AM", "alice")
        editor.set_admissions(MON, "PM", "bob")
        editor.clear_slot(MON, "AM")
        assert editor.admissions(MON, "AM") is None
        assert editor.ward(MON, "AM") == []
        assert editor.off_doctors(MON, "AM") == ["alice", "bob", "carol", "dan", "eve"]
        assert editor.admissions(MON, "PM") == "bob"
        assert editor.ward(MON, "PM") == ["alice"]

    def test_clear_day(self, editor):
        editor.toggle_ward(MON, "AM", "alice")
        editor.toggle_day_absence(MON, "bob")
        editor.clear_day(MON)
        assert not editor.is_detailed(MON)
        for slot in ("AM", "PM"):
            assert len(editor.off_doctors(MON, slot)) == 5


# ---------------------------------------------------------------------------
# Load / save / lock
# ---------------------------------------------------------------------------

class TestLoadAndSave:

    def test_load_unified_and_detailed_days(self):
        assignments = [
            SlotAssignment("w1", MON, "AM", "alice", "ADMISSIONS"),
            SlotAssignment("w1", MON, "PM", "bob", "ADMISSIONS"),
            SlotAssignment("w1", MON, "AM", "bob", "WARD"),
            SlotAssignment("w1", MON, "PM", "alice", "WARD"),
            SlotAssignment("w1", TUE, "AM", "carol", "WARD"),
        ]
        editor = make_editor(assignments)
        assert not editor.is_detailed(MON)
        assert editor.is_detailed(TUE)
        assert editor.has_slot_differences(TUE)
        assert not editor.dirty

    def test_conflicting_rows_reconciled(self, caplog):
        assignments = [SlotAssignment("w1", MON, "AM", "alice", "ADMISSIONS")]
        absences = [Absence("w1", MON, "AM", "alice", "VACATION")]
        with caplog.at_level(logging.WARNING):
            editor = make_editor(assignments, absences)
        assert editor.dirty
        assert editor.admissions(MON, "AM") is None
        assert "alice" in editor.absences(MON, "AM")
        assert "conflicting" in caplog.text

    def test_save_payload_expands_implicit_ward(self, editor):
        editor.set_admissions(MON, "AM", "alice")
        editor.set_day_absence_reason(TUE, "eve", "TRAINING", note="course")
        assignments, absences = editor.build_save_payload()
        keys = {(a.date, a.slot, a.doctor_id, a.role) for a in assignments}
        assert keys == {
            (MON, "AM", "alice", "ADMISSIONS"),
            (MON, "PM", "alice", "WARD"),
        }
        assert {(a.slot, a.reason, a.note) for a in absences} == {
            ("AM", "TRAINING", "course"),
            ("PM", "TRAINING", "course"),
        }

    def test_dirty_tracking(self, editor):
        assert not editor.dirty
        editor.set_admissions(MON, "AM", "alice")
        assert editor.dirty
        editor.mark_saved()
        assert not editor.dirty

    def test_approved_week_is_locked(self):
        editor = make_editor(status="approved")
        assert editor.locked
        with pytest.raises(WeekLocked):
            editor.set_admissions(MON, "AM", "alice")
        with pytest.raises(WeekLocked):
            editor.toggle_detailed_mode(MON)
        with pytest.raises(WeekLocked):
            editor.clear_day(MON)
        assert editor.off_doctors(MON, "AM")


class TestBadInput:

    def test_unknown_doctor(self, editor):
        with pytest.raises(DoctorNotFound):
            editor.toggle_day_ward(MON, "nobody")

    def test_date_outside_week(self, editor):
        with pytest.raises(MalformedPayload):
            editor.set_admissions(SAT, "AM", "alice")

    def test_unknown_slot(self, editor):
        with pytest.raises(MalformedPayload):
            editor.set_admissions(MON, "NIGHT", "alice")

    def test_unknown_reason(self, editor):
        with pytest.raises(MalformedPayload):
            editor.toggle_absence(MON, "AM", "alice", reason="SICK_LEAVE")
