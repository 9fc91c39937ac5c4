"""
store.py — Transactional record store

Four record sets plus user profiles:

  doctors            id, name, active
  profiles           user_id, role, can_approve, doctor_id
  weeks              id, week_start (unique Monday), status, approved_at, approved_by
  slot_assignments   (week_id, date, slot, doctor_id) unique; one ADMISSIONS per
                     (week_id, date, slot) via a partial unique index
  absences           (week_id, date, slot, doctor_id) unique; reason is free text
                     so newer reason codes stay readable

RecordStore is the abstract collaborator the engine talks to; SQLiteStore is
the bundled implementation. Writes are grouped with transaction(), which opens
BEGIN IMMEDIATE so the status read and the write happen under one writer lock.
Uniqueness failures surface as DomainInvariantViolation.
"""

import logging
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Union

from ward_rota.errors import DomainInvariantViolation
from ward_rota.models import (
    Absence,
    Actor,
    Doctor,
    SlotAssignment,
    Week,
    normalize_absence_reason,
)
from ward_rota.schedule_config import ROLE_ADMISSIONS

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Abstract collaborator
# ---------------------------------------------------------------------------

class RecordStore(ABC):
    """Storage boundary used by the service layer."""

    @abstractmethod
    def transaction(self):
        """Context manager: commit on success, roll back on any exception."""

    # doctors
    @abstractmethod
    def insert_doctor(self, doctor: Doctor) -> None: ...

    @abstractmethod
    def update_doctor(self, doctor: Doctor) -> None: ...

    @abstractmethod
    def get_doctor(self, doctor_id: str) -> Optional[Doctor]: ...

    @abstractmethod
    def list_doctors(self, active_only: bool = False) -> List[Doctor]: ...

    @abstractmethod
    def delete_doctor(self, doctor_id: str) -> None: ...

    @abstractmethod
    def doctor_references(self, doctor_id: str) -> Dict[str, int]: ...

    # profiles
    @abstractmethod
    def upsert_profile(self, actor: Actor) -> None: ...

    @abstractmethod
    def get_profile(self, user_id: str) -> Optional[Actor]: ...

    @abstractmethod
    def list_profiles(self) -> List[Actor]: ...

    # weeks
    @abstractmethod
    def insert_week(self, week: Week) -> Week:
        """Insert-or-get keyed on week_start; returns the stored row."""

    @abstractmethod
    def get_week(self, week_id: str) -> Optional[Week]: ...

    @abstractmethod
    def find_week(self, week_start: date) -> Optional[Week]: ...

    @abstractmethod
    def list_weeks(self, start: date, end: date) -> List[Week]: ...

    @abstractmethod
    def update_week_status(
        self,
        week_id: str,
        status: str,
        approved_at: Optional[datetime],
        approved_by: Optional[str],
    ) -> None: ...

    @abstractmethod
    def delete_week(self, week_id: str) -> None: ...

    # slot rows
    @abstractmethod
    def list_assignments(self, week_id: str) -> List[SlotAssignment]: ...

    @abstractmethod
    def list_absences(self, week_id: str) -> List[Absence]: ...

    @abstractmethod
    def insert_assignments(self, rows: Iterable[SlotAssignment]) -> int: ...

    @abstractmethod
    def insert_absences(self, rows: Iterable[Absence]) -> int: ...

    @abstractmethod
    def delete_assignments(self, week_id: str, role: Optional[str] = None) -> int: ...

    @abstractmethod
    def delete_absences(self, week_id: str) -> int: ...

    @abstractmethod
    def list_assignments_between(self, start: date, end: date) -> List[SlotAssignment]: ...

    @abstractmethod
    def list_absences_between(self, start: date, end: date) -> List[Absence]: ...


# ---------------------------------------------------------------------------
# SQLite implementation
# ---------------------------------------------------------------------------

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS doctors (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        active INTEGER NOT NULL DEFAULT 1
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS profiles (
        user_id TEXT PRIMARY KEY,
        role TEXT NOT NULL DEFAULT 'doctor',
        can_approve INTEGER NOT NULL DEFAULT 0,
        doctor_id TEXT,
        FOREIGN KEY (doctor_id) REFERENCES doctors(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS weeks (
        id TEXT PRIMARY KEY,
        week_start TEXT NOT NULL UNIQUE,   -- YYYY-MM-DD, Monday
        status TEXT NOT NULL DEFAULT 'draft',
        approved_at TEXT,
        approved_by TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS slot_assignments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        week_id TEXT NOT NULL,
        date TEXT NOT NULL,
        slot TEXT NOT NULL,
        doctor_id TEXT NOT NULL,
        role TEXT NOT NULL,
        UNIQUE (week_id, date, slot, doctor_id),
        FOREIGN KEY (week_id) REFERENCES weeks(id) ON DELETE CASCADE,
        FOREIGN KEY (doctor_id) REFERENCES doctors(id)
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS ux_slot_admissions
        ON slot_assignments(week_id, date, slot) WHERE role = 'ADMISSIONS'
    """,
    """
    CREATE TABLE IF NOT EXISTS absences (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        week_id TEXT NOT NULL,
        date TEXT NOT NULL,
        slot TEXT NOT NULL,
        doctor_id TEXT NOT NULL,
        reason TEXT NOT NULL,
        note TEXT,
        UNIQUE (week_id, date, slot, doctor_id),
        FOREIGN KEY (week_id) REFERENCES weeks(id) ON DELETE CASCADE,
        FOREIGN KEY (doctor_id) REFERENCES doctors(id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_assignments_date ON slot_assignments(date)",
    "CREATE INDEX IF NOT EXISTS ix_absences_date ON absences(date)",
]


def _iso(value: Optional[Union[date, datetime]]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class SQLiteStore(RecordStore):
    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        # autocommit; transaction() issues BEGIN/COMMIT itself
        self.conn = sqlite3.connect(self.db_path, isolation_level=None)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._depth = 0
        self.init_schema()

    def init_schema(self) -> None:
        for statement in SCHEMA:
            self.conn.execute(statement)
        logger.debug(f"Schema ready at {self.db_path}")

    def close(self) -> None:
        self.conn.close()

    @contextmanager
    def transaction(self) -> Iterator["SQLiteStore"]:
        """Nested calls join the outermost transaction."""
        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return
        self.conn.execute("BEGIN IMMEDIATE")
        self._depth = 1
        try:
            yield self
        except BaseException:
            self.conn.execute("ROLLBACK")
            raise
        else:
            self.conn.execute("COMMIT")
        finally:
            self._depth = 0

    # -----------------------------------------------------------------------
    # Row mapping
    # -----------------------------------------------------------------------

    @staticmethod
    def _doctor(row: sqlite3.Row) -> Doctor:
        return Doctor(id=row["id"], name=row["name"], active=bool(row["active"]))

    @staticmethod
    def _week(row: sqlite3.Row) -> Week:
        approved_at = row["approved_at"]
        return Week(
            id=row["id"],
            week_start=date.fromisoformat(row["week_start"]),
            status=row["status"],
            approved_at=datetime.fromisoformat(approved_at) if approved_at else None,
            approved_by=row["approved_by"],
        )

    @staticmethod
    def _assignment(row: sqlite3.Row) -> SlotAssignment:
        return SlotAssignment(
            week_id=row["week_id"],
            date=date.fromisoformat(row["date"]),
            slot=row["slot"],
            doctor_id=row["doctor_id"],
            role=row["role"],
        )

    @staticmethod
    def _absence(row: sqlite3.Row) -> Absence:
        return Absence(
            week_id=row["week_id"],
            date=date.fromisoformat(row["date"]),
            slot=row["slot"],
            doctor_id=row["doctor_id"],
            reason=normalize_absence_reason(row["reason"]),
            note=row["note"],
        )

    @staticmethod
    def _profile(row: sqlite3.Row) -> Actor:
        return Actor(
            user_id=row["user_id"],
            role=row["role"],
            can_approve=bool(row["can_approve"]),
            doctor_id=row["doctor_id"],
        )

    # -----------------------------------------------------------------------
    # Doctors
    # -----------------------------------------------------------------------

    def insert_doctor(self, doctor: Doctor) -> None:
        self.conn.execute(
            "INSERT INTO doctors(id, name, active) VALUES(?,?,?)",
            (doctor.id, doctor.name, int(doctor.active)),
        )

    def update_doctor(self, doctor: Doctor) -> None:
        self.conn.execute(
            "UPDATE doctors SET name=?, active=? WHERE id=?",
            (doctor.name, int(doctor.active), doctor.id),
        )

    def get_doctor(self, doctor_id: str) -> Optional[Doctor]:
        row = self.conn.execute("SELECT * FROM doctors WHERE id=?", (doctor_id,)).fetchone()
        return self._doctor(row) if row else None

    def list_doctors(self, active_only: bool = False) -> List[Doctor]:
        sql = "SELECT * FROM doctors"
        if active_only:
            sql += " WHERE active=1"
        sql += " ORDER BY name COLLATE NOCASE, id"
        return [self._doctor(r) for r in self.conn.execute(sql)]

    def delete_doctor(self, doctor_id: str) -> None:
        self.conn.execute("DELETE FROM doctors WHERE id=?", (doctor_id,))

    def doctor_references(self, doctor_id: str) -> Dict[str, int]:
        counts = {}
        for table in ("slot_assignments", "absences", "profiles"):
            row = self.conn.execute(
                f"SELECT COUNT(*) AS n FROM {table} WHERE doctor_id=?", (doctor_id,)
            ).fetchone()
            counts[table] = row["n"]
        return counts

    # -----------------------------------------------------------------------
    # Profiles
    # -----------------------------------------------------------------------

    def upsert_profile(self, actor: Actor) -> None:
        self.conn.execute(
            """
            INSERT INTO profiles(user_id, role, can_approve, doctor_id)
            VALUES(?,?,?,?)
            ON CONFLICT(user_id) DO UPDATE SET
                role=excluded.role,
                can_approve=excluded.can_approve,
                doctor_id=excluded.doctor_id
            """,
            (actor.user_id, actor.role, int(actor.can_approve), actor.doctor_id),
        )

    def get_profile(self, user_id: str) -> Optional[Actor]:
        row = self.conn.execute("SELECT * FROM profiles WHERE user_id=?", (user_id,)).fetchone()
        return self._profile(row) if row else None

    def list_profiles(self) -> List[Actor]:
        return [
            self._profile(r)
            for r in self.conn.execute("SELECT * FROM profiles ORDER BY user_id")
        ]

    # -----------------------------------------------------------------------
    # Weeks
    # -----------------------------------------------------------------------

    def insert_week(self, week: Week) -> Week:
        self.conn.execute(
            """
            INSERT INTO weeks(id, week_start, status, approved_at, approved_by)
            VALUES(?,?,?,?,?)
            ON CONFLICT(week_start) DO NOTHING
            """,
            (week.id, week.week_start.isoformat(), week.status,
             _iso(week.approved_at), week.approved_by),
        )
        return self.find_week(week.week_start)

    def get_week(self, week_id: str) -> Optional[Week]:
        row = self.conn.execute("SELECT * FROM weeks WHERE id=?", (week_id,)).fetchone()
        return self._week(row) if row else None

    def find_week(self, week_start: date) -> Optional[Week]:
        row = self.conn.execute(
            "SELECT * FROM weeks WHERE week_start=?", (week_start.isoformat(),)
        ).fetchone()
        return self._week(row) if row else None

    def list_weeks(self, start: date, end: date) -> List[Week]:
        rows = self.conn.execute(
            "SELECT * FROM weeks WHERE week_start BETWEEN ? AND ? ORDER BY week_start",
            (start.isoformat(), end.isoformat()),
        )
        return [self._week(r) for r in rows]

    def update_week_status(self, week_id, status, approved_at, approved_by) -> None:
        self.conn.execute(
            "UPDATE weeks SET status=?, approved_at=?, approved_by=? WHERE id=?",
            (status, _iso(approved_at), approved_by, week_id),
        )

    def delete_week(self, week_id: str) -> None:
        self.conn.execute("DELETE FROM weeks WHERE id=?", (week_id,))

    # -----------------------------------------------------------------------
    # Slot assignments & absences
    # -----------------------------------------------------------------------

    def list_assignments(self, week_id: str) -> List[SlotAssignment]:
        rows = self.conn.execute(
            "SELECT * FROM slot_assignments WHERE week_id=? ORDER BY date, slot, id",
            (week_id,),
        )
        return [self._assignment(r) for r in rows]

    def list_absences(self, week_id: str) -> List[Absence]:
        rows = self.conn.execute(
            "SELECT * FROM absences WHERE week_id=? ORDER BY date, slot, id",
            (week_id,),
        )
        return [self._absence(r) for r in rows]

    def insert_assignments(self, rows: Iterable[SlotAssignment]) -> int:
        n = 0
        for row in rows:
            try:
                self.conn.execute(
                    """
                    INSERT INTO slot_assignments(week_id, date, slot, doctor_id, role)
                    VALUES(?,?,?,?,?)
                    """,
                    (row.week_id, row.date.isoformat(), row.slot, row.doctor_id, row.role),
                )
            except sqlite3.IntegrityError as e:
                raise DomainInvariantViolation(
                    self._assignment_conflict(row, e),
                    row.week_id, row.date, row.slot, row.doctor_id,
                ) from e
            n += 1
        return n

    def _assignment_conflict(self, row: SlotAssignment, error: Exception) -> str:
        """Name the constraint an assignment insert tripped over."""
        held = self.conn.execute(
            "SELECT doctor_id, role FROM slot_assignments WHERE week_id=? AND date=? AND slot=?",
            (row.week_id, row.date.isoformat(), row.slot),
        ).fetchall()
        if any(h["doctor_id"] == row.doctor_id for h in held):
            return "doctor already holds a role in this slot"
        if row.role == ROLE_ADMISSIONS and any(h["role"] == ROLE_ADMISSIONS for h in held):
            return "second admissions doctor for slot"
        return f"assignment rejected by store ({error})"

    def insert_absences(self, rows: Iterable[Absence]) -> int:
        n = 0
        for row in rows:
            try:
                self.conn.execute(
                    """
                    INSERT INTO absences(week_id, date, slot, doctor_id, reason, note)
                    VALUES(?,?,?,?,?,?)
                    """,
                    (row.week_id, row.date.isoformat(), row.slot, row.doctor_id,
                     row.reason, row.note),
                )
            except sqlite3.IntegrityError as e:
                raise DomainInvariantViolation(
                    f"absence rejected by store ({e})",
                    row.week_id, row.date, row.slot, row.doctor_id,
                ) from e
            n += 1
        return n

    def delete_assignments(self, week_id: str, role: Optional[str] = None) -> int:
        if role is None:
            cur = self.conn.execute("DELETE FROM slot_assignments WHERE week_id=?", (week_id,))
        else:
            cur = self.conn.execute(
                "DELETE FROM slot_assignments WHERE week_id=? AND role=?", (week_id, role)
            )
        return cur.rowcount

    def delete_absences(self, week_id: str) -> int:
        cur = self.conn.execute("DELETE FROM absences WHERE week_id=?", (week_id,))
        return cur.rowcount

    def list_assignments_between(self, start: date, end: date) -> List[SlotAssignment]:
        rows = self.conn.execute(
            "SELECT * FROM slot_assignments WHERE date BETWEEN ? AND ? ORDER BY date, slot, id",
            (start.isoformat(), end.isoformat()),
        )
        return [self._assignment(r) for r in rows]

    def list_absences_between(self, start: date, end: date) -> List[Absence]:
        rows = self.conn.execute(
            "SELECT * FROM absences WHERE date BETWEEN ? AND ? ORDER BY date, slot, id",
            (start.isoformat(), end.isoformat()),
        )
        return [self._absence(r) for r in rows]

