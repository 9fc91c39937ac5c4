"""
Tests for the week lifecycle: create, save, validate, approve, revert, delete
"""

import sys
from datetime import date, datetime, timezone
from pathlib import Path

import pytest

# Add project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from ward_rota.errors import (
    ApprovalPrecondition,
    DomainInvariantViolation,
    MalformedPayload,
    NotAMonday,
    Unauthorized,
    UnsavedChanges,
    WeekLocked,
    WeekNotFound,
)
from ward_rota.models import Actor

FIXED_NOW = datetime(2024, 9, 6, 12, 0, tzinfo=timezone.utc)   # service fixture clock
WEEK_START = date(2024, 9, 2)


# ---------------------------------------------------------------------------
# createWeek
# ---------------------------------------------------------------------------

class TestCreateWeek:

    def test_creates_draft(self, service, planner):
        week = service.create_week(planner, "2024-09-02")
        assert week.is_draft
        assert service.find_week(WEEK_START).id == week.id

    def test_not_a_monday(self, service, planner):
        with pytest.raises(NotAMonday):
            service.create_week(planner, date(2024, 9, 4))

    def test_authorization_checked_first(self, service, viewer):
        with pytest.raises(Unauthorized):
            service.create_week(viewer, date(2024, 9, 4))
        with pytest.raises(Unauthorized):
            service.create_week(None, WEEK_START)

    def test_existing_week_returned(self, service, store, planner, head, week, admissions_rows):
        again = service.create_week(planner, "2024-09-02")
        assert again.id == week.id
        assert len(store.list_weeks(WEEK_START, WEEK_START)) == 1

        service.save_week_schedule(planner, week.id, admissions_rows(WEEK_START), [])
        service.approve_week(head, week.id)
        approved = service.create_week(planner, WEEK_START)
        assert approved.id == week.id
        assert approved.is_approved

    def test_delete_draft_only(self, service, planner, head, week, admissions_rows):
        service.save_week_schedule(planner, week.id, admissions_rows(WEEK_START), [])
        service.approve_week(head, week.id)
        with pytest.raises(WeekLocked):
            service.delete_week(planner, week.id)
        service.revert_week(head, week.id)
        service.delete_week(planner, week.id)
        assert service.find_week(WEEK_START) is None
        with pytest.raises(WeekNotFound):
            service.get_week(week.id)


# ---------------------------------------------------------------------------
# saveWeekSchedule
# ---------------------------------------------------------------------------

class TestSaveWeekSchedule:

    def test_full_replacement(self, service, store, planner, week, ids):
        service.save_week_schedule(planner, week.id, [
            {"date": "2024-09-02", "slot": "AM", "doctor_id": ids["Alice"], "role": "ADMISSIONS"},
            {"date": "2024-09-02", "slot": "AM", "doctor_id": ids["Bob"], "role": "WARD"},
        ], [
            {"date": "2024-09-03", "slot": "PM", "doctor_id": ids["Carol"], "reason": "TRAINING"},
        ])
        counts = service.save_week_schedule(planner, week.id, [
            {"date": "2024-09-04", "slot": "PM", "doctor_id": ids["Dan"], "status": "WARD"},
        ], [])
        assert counts == {"assignments": 1, "absences": 0}
        [row] = store.list_assignments(week.id)
        assert (row.date, row.doctor_id, row.role) == (date(2024, 9, 4), ids["Dan"], "WARD")
        assert store.list_absences(week.id) == []

    def test_note_kept(self, service, store, planner, week, ids):
        service.save_week_schedule(planner, week.id, [], [
            {"date": "2024-09-03", "slot": "AM", "doctor_id": ids["Eve"],
             "reason": "INTERNSHIP", "note": "cardiology"},
        ])
        [absence] = store.list_absences(week.id)
        assert (absence.reason, absence.note) == ("INTERNSHIP", "cardiology")

    @pytest.mark.parametrize("assignments, absences", [
        ("not-a-list", []),
        ([{"date": "2024-09-02", "slot": "AM", "doctor_id": "x"}], []),
        ([{"slot": "AM", "doctor_id": "x", "role": "WARD"}], []),
        ([{"date": "02.09.2024", "slot": "AM", "doctor_id": "x", "role": "WARD"}], []),
        ([{"date": "2024-09-07", "slot": "AM", "doctor_id": "x", "role": "WARD"}], []),
        ([{"date": "2024-09-02", "slot": "AM", "doctor_id": "nobody", "role": "WARD"}], []),
        ([{"date": "2024-09-02", "slot": "EVE", "doctor_id": "x", "role": "WARD"}], []),
        ([{"date": "2024-09-02", "slot": "AM", "doctor_id": "x", "role": "OFF"}], []),
        ([], [{"date": "2024-09-02", "slot": "AM", "doctor_id": "x", "reason": "SICK"}]),
        ([], [{"date": "2024-09-02", "slot": "AM", "doctor_id": "x"}]),
    ])
    def test_malformed_payload(self, service, planner, week, ids, assignments, absences):
        def resolve(rows):
            if not isinstance(rows, list):
                return rows
            return [
                {k: (ids["Alice"] if (k == "doctor_id" and v == "x") else v) for k, v in r.items()}
                for r in rows
            ]
        with pytest.raises(MalformedPayload):
            service.save_week_schedule(planner, week.id, resolve(assignments), resolve(absences))

    def test_second_admissions(self, service, planner, week, ids):
        with pytest.raises(DomainInvariantViolation):
            service.save_week_schedule(planner, week.id, [
                {"date": "2024-09-02", "slot": "AM", "doctor_id": ids["Alice"], "role": "ADMISSIONS"},
                {"date": "2024-09-02", "slot": "AM", "doctor_id": ids["Bob"], "role": "ADMISSIONS"},
            ], [])

    def test_assigned_and_absent(self, service, planner, week, ids):
        with pytest.raises(DomainInvariantViolation) as exc:
            service.save_week_schedule(planner, week.id, [
                {"date": "2024-09-02", "slot": "AM", "doctor_id": ids["Alice"], "role": "WARD"},
            ], [
                {"date": "2024-09-02", "slot": "AM", "doctor_id": ids["Alice"], "reason": "VACATION"},
            ])
        assert exc.value.doctor_id == ids["Alice"]

    def test_failed_save_writes_nothing(self, service, store, planner, week, ids, admissions_rows):
        service.save_week_schedule(planner, week.id, admissions_rows(WEEK_START), [])
        bad = admissions_rows(WEEK_START) + [
            {"date": "2024-09-02", "slot": "AM", "doctor_id": ids["Judy"], "role": "ADMISSIONS"},
        ]
        with pytest.raises(DomainInvariantViolation):
            service.save_week_schedule(planner, week.id, bad, [])
        assert len(store.list_assignments(week.id)) == 10

    def test_unauthorized(self, service, viewer, week):
        with pytest.raises(Unauthorized):
            service.save_week_schedule(viewer, week.id, [], [])

    def test_unknown_week(self, service, planner, doctors):
        with pytest.raises(WeekNotFound):
            service.save_week_schedule(planner, "missing", [], [])


# ---------------------------------------------------------------------------
# validateWeek / approveWeek / revertWeek
# ---------------------------------------------------------------------------

class TestApproval:

    def test_week_scenario_2024_09_02(self, service, planner, head, week, admissions_rows):
        """Distinct admissions doctor in all 10 slots → approve; drop one → one missing."""
        rows = admissions_rows(WEEK_START)
        assert len({r["doctor_id"] for r in rows}) == 10
        service.save_week_schedule(planner, week.id, rows, [])
        assert service.validate_week(week.id).ok

        approved = service.approve_week(head, week.id)
        assert approved.is_approved
        assert approved.approved_by == "head"
        assert approved.approved_at == FIXED_NOW
        assert service.get_week(week.id).approved_at == FIXED_NOW

        service.revert_week(head, week.id)
        service.save_week_schedule(planner, week.id, rows[1:], [])
        result = service.validate_week(week.id)
        assert result.missing == [(WEEK_START, "AM")]

    def test_missing_admissions_listed_in_full(self, service, head, week):
        with pytest.raises(ApprovalPrecondition) as exc:
            service.approve_week(head, week.id)
        assert len(exc.value.missing) == 10
        assert service.get_week(week.id).is_draft

    def test_unsaved_changes(self, service, planner, head, week, admissions_rows):
        service.save_week_schedule(planner, week.id, admissions_rows(WEEK_START), [])
        editor = service.open_week_editor(week.id)
        editor.toggle_day_absence(WEEK_START, editor.active_doctors()[-1].id)
        with pytest.raises(UnsavedChanges):
            service.approve_week(head, week.id, editor)
        assert service.get_week(week.id).is_draft

    def test_approved_week_locked(self, service, planner, head, week, admissions_rows):
        service.save_week_schedule(planner, week.id, admissions_rows(WEEK_START), [])
        service.approve_week(head, week.id)
        with pytest.raises(WeekLocked):
            service.save_week_schedule(planner, week.id, admissions_rows(WEEK_START), [])
        with pytest.raises(WeekLocked):
            service.approve_week(head, week.id)
        editor = service.open_week_editor(week.id)
        with pytest.raises(WeekLocked):
            editor.clear_day(WEEK_START)

    def test_capability(self, service, planner, week, admissions_rows):
        service.save_week_schedule(planner, week.id, admissions_rows(WEEK_START), [])
        with pytest.raises(Unauthorized):
            service.approve_week(planner, week.id)
        approver = Actor("lead", "planner", can_approve=True)
        assert service.approve_week(approver, week.id).is_approved

    def test_revert_clears_metadata(self, service, planner, head, week, admissions_rows):
        service.save_week_schedule(planner, week.id, admissions_rows(WEEK_START), [])
        service.approve_week(head, week.id)
        reverted = service.revert_week(head, week.id)
        stored = service.get_week(week.id)
        assert reverted.is_draft and stored.is_draft
        assert stored.approved_at is None
        assert stored.approved_by is None

    def test_revert_is_unconditional(self, service, head, week):
        assert service.revert_week(head, week.id).is_draft

    def test_revert_errors(self, service, planner, head, week):
        with pytest.raises(Unauthorized):
            service.revert_week(planner, week.id)
        with pytest.raises(WeekNotFound):
            service.revert_week(head, "missing")

    def test_validate_unknown_week(self, service):
        with pytest.raises(WeekNotFound):
            service.validate_week("missing")


# ---------------------------------------------------------------------------
# Editor round-trip
# ---------------------------------------------------------------------------

class TestEditorRoundTrip:

    def test_edit_save_approve(self, service, planner, head, week, doctors):
        editor = service.open_week_editor(week.id)
        for i, day in enumerate(editor.days):
            editor.set_admissions(day, "AM", doctors[i].id)
            editor.set_admissions(day, "PM", doctors[i + 5].id)
        editor.toggle_day_absence(editor.days[0], doctors[9].id, reason="POST_CALL")

        with pytest.raises(UnsavedChanges):
            service.approve_week(head, week.id, editor)

        counts = service.save_week_editor(planner, editor)
        assert not editor.dirty
        # 10 admissions + 10 implicit opposite-slot ward rows
        assert counts["assignments"] == 20
        assert counts["absences"] == 2

        service.approve_week(head, week.id, editor)
        assert editor.locked
        with pytest.raises(WeekLocked):
            editor.set_admissions(editor.days[0], "AM", doctors[0].id)

    def test_reload_matches_saved(self, service, planner, week, doctors):
        editor = service.open_week_editor(week.id)
        editor.toggle_ward(WEEK_START, "AM", doctors[2].id)
        editor.toggle_day_ward(editor.days[1], doctors[3].id)
        service.save_week_editor(planner, editor)

        reloaded = service.open_week_editor(week.id)
        assert reloaded.is_detailed(WEEK_START)
        assert not reloaded.is_detailed(editor.days[1])
        assert reloaded.ward(editor.days[1], "PM") == [doctors[3].id]
        assert not reloaded.dirty
