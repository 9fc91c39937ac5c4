"""
Shared fixtures: in-memory store, service with a fixed clock, seeded doctors
and the three kinds of actor.
"""

import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from ward_rota.models import Actor
from ward_rota.service import RotaService
from ward_rota.store import SQLiteStore

FIXED_NOW = datetime(2024, 9, 6, 12, 0, tzinfo=timezone.utc)
WEEK_START = date(2024, 9, 2)   # Monday

DOCTOR_NAMES = [
    "Alice", "Bob", "Carol", "Dan", "Eve",
    "Frank", "Grace", "Heidi", "Ivan", "Judy",
]


@pytest.fixture
def store():
    s = SQLiteStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def service(store):
    return RotaService(store, clock=lambda: FIXED_NOW)


@pytest.fixture
def head():
    return Actor(user_id="head", role="head", can_approve=True)


@pytest.fixture
def planner():
    return Actor(user_id="planner", role="planner", can_approve=False)


@pytest.fixture
def viewer():
    return Actor(user_id="viewer", role="doctor", can_approve=False)


@pytest.fixture
def doctors(service, planner):
    """Ten active doctors, returned in name order."""
    return [service.add_doctor(planner, name) for name in DOCTOR_NAMES]


@pytest.fixture
def ids(doctors):
    """Display name → doctor id."""
    return {d.name: d.id for d in doctors}


@pytest.fixture
def week(service, planner, doctors):
    return service.create_week(planner, WEEK_START)


@pytest.fixture
def admissions_rows(doctors):
    """
    Factory: one ADMISSIONS row per (business day, slot) of a week, each slot
    staffed by a different doctor. skip=(date, slot) leaves that slot empty.
    """
    def _rows(week_start, skip=None):
        rows = []
        i = 0
        for offset in range(5):
            day = week_start + timedelta(days=offset)
            for slot in ("AM", "PM"):
                doctor = doctors[i % len(doctors)]
                i += 1
                if skip == (day, slot):
                    continue
                rows.append({
                    "date": day.isoformat(),
                    "slot": slot,
                    "doctor_id": doctor.id,
                    "role": "ADMISSIONS",
                })
        return rows
    return _rows
