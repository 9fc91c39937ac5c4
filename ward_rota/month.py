"""
month.py — Month Aggregator

Display range of a month = Monday of the week holding the 1st through the
Friday of the week holding the last day. For each Monday in that range:

  no Week row        → MISSING_WEEK(week_start)
  draft Week         → validator; each uncovered slot → MISSING_ADMISSIONS
  approved Week      → skipped (validated when it was approved)

approve_month is all-or-nothing: any entry in the report means nothing is
approved. Validation and the status updates share one store transaction.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Union

from ward_rota.approval import approve_many, validate_stored
from ward_rota.dates import month_bounds, month_week_starts
from ward_rota.errors import NotFirstOfMonth
from ward_rota.models import Week
from ward_rota.reconcile import ROLE_ABSENT
from ward_rota.schedule_config import MISSING_ADMISSIONS, MISSING_WEEK, ROLE_ADMISSIONS, ROLE_WARD
from ward_rota.store import RecordStore

logger = logging.getLogger(__name__)


# --------------------------------------------------------
# REPORT ENTRIES
# --------------------------------------------------------
@dataclass(frozen=True)
class MissingWeek:
    week_start: date

    type = MISSING_WEEK

    def to_dict(self) -> Dict:
        return {"type": self.type, "week_start": self.week_start.isoformat()}

    def __str__(self) -> str:
        return f"[{self.type}] week of {self.week_start} has not been created"


@dataclass(frozen=True)
class MissingAdmissions:
    week_start: date
    date: date
    slot: str

    type = MISSING_ADMISSIONS

    def to_dict(self) -> Dict:
        return {
            "type": self.type,
            "week_start": self.week_start.isoformat(),
            "date": self.date.isoformat(),
            "slot": self.slot,
        }

    def __str__(self) -> str:
        return f"[{self.type}] {self.date} {self.slot} (week of {self.week_start})"


MonthEntry = Union[MissingWeek, MissingAdmissions]


@dataclass
class MonthReport:
    month_start: date
    week_starts: List[date] = field(default_factory=list)
    missing: List[MonthEntry] = field(default_factory=list)
    approved_week_ids: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing

    def to_dict(self) -> Dict:
        out: Dict = {"ok": self.ok}
        if self.ok:
            out["approved"] = list(self.approved_week_ids)
        else:
            out["missing"] = [m.to_dict() for m in self.missing]
        return out


def _require_first_of_month(month_start: date) -> None:
    if month_start.day != 1:
        raise NotFirstOfMonth(month_start)


def _weeks_by_start(store: RecordStore, week_starts: List[date]) -> Dict[date, Week]:
    if not week_starts:
        return {}
    weeks = store.list_weeks(week_starts[0], week_starts[-1])
    return {w.week_start: w for w in weeks if w.week_start in week_starts}


# --------------------------------------------------------
# CHECK / APPROVE
# --------------------------------------------------------
def check_month(store: RecordStore, month_start: date) -> MonthReport:
    """Aggregate per-week validation over the month's display range (read-only)."""
    _require_first_of_month(month_start)
    report = MonthReport(month_start, month_week_starts(month_start))
    weeks = _weeks_by_start(store, report.week_starts)
    for week_start in report.week_starts:
        week = weeks.get(week_start)
        if week is None:
            report.missing.append(MissingWeek(week_start))
            continue
        if week.is_approved:
            continue
        result = validate_stored(store, week)
        report.missing.extend(
            MissingAdmissions(week_start, d, s) for d, s in result.missing
        )
    return report


def approve_month(
    store: RecordStore,
    month_start: date,
    approved_by: str,
    now: datetime,
) -> MonthReport:
    """Approve every draft week in range, or none when the report has entries."""
    _require_first_of_month(month_start)
    with store.transaction():
        report = check_month(store, month_start)
        if not report.ok:
            logger.info(
                f"Month {month_start:%Y-%m} not approved: {len(report.missing)} open item(s)"
            )
            return report
        weeks = list(_weeks_by_start(store, report.week_starts).values())
        report.approved_week_ids = approve_many(store, weeks, approved_by, now)
    logger.info(
        f"Month {month_start:%Y-%m} approved by {approved_by}: "
        f"{len(report.approved_week_ids)} draft week(s) approved"
    )
    return report


# --------------------------------------------------------
# WORKLOAD
# --------------------------------------------------------
def workload_counts(store: RecordStore, month_start: date) -> Dict[str, Dict[str, int]]:
    """
    Per-doctor slot counts over the month's business days:
    {doctor_id: {"ADMISSIONS": n, "WARD": n, "ABSENT": n}}
    """
    _require_first_of_month(month_start)
    first, last = month_bounds(month_start)
    counts: Dict[str, Dict[str, int]] = defaultdict(
        lambda: {ROLE_ADMISSIONS: 0, ROLE_WARD: 0, ROLE_ABSENT: 0}
    )
    for row in store.list_assignments_between(first, last):
        if row.date.weekday() < 5:
            counts[row.doctor_id][row.role] += 1
    for row in store.list_absences_between(first, last):
        if row.date.weekday() < 5:
            counts[row.doctor_id][ROLE_ABSENT] += 1
    return dict(counts)
