"""
validator.py — Week Validator

Approval gate: every (business day, slot) of a week must hold exactly one
ADMISSIONS row. Ward and absence coverage is advisory and never checked.

Read-only and side-effect free; works on stored rows or an editor payload.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Tuple

from ward_rota.dates import week_dates
from ward_rota.models import SlotAssignment
from ward_rota.schedule_config import ROLE_ADMISSIONS, SLOTS

logger = logging.getLogger(__name__)


@dataclass
class WeekValidation:
    week_start: date
    missing: List[Tuple[date, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing

    def to_dict(self) -> Dict:
        if self.ok:
            return {"ok": True}
        return {
            "ok": False,
            "missing": [{"date": d.isoformat(), "slot": s} for d, s in self.missing],
        }

    def __str__(self) -> str:
        if self.ok:
            return f"Week {self.week_start}: all admissions slots covered"
        listed = ", ".join(f"{d} {s}" for d, s in self.missing)
        return f"Week {self.week_start}: missing admissions for {listed}"


def validate_week(week_start: date, assignments: Iterable[SlotAssignment]) -> WeekValidation:
    """
    Count ADMISSIONS rows per (date, slot) over Monday-Friday; any count != 1
    is reported. Entries come back in calendar order (day, then AM before PM).
    """
    counts: Counter = Counter(
        (row.date, row.slot) for row in assignments if row.role == ROLE_ADMISSIONS
    )
    missing = [
        (day, slot)
        for day in week_dates(week_start)
        for slot in SLOTS
        if counts.get((day, slot), 0) != 1
    ]
    if missing:
        logger.debug(f"Week {week_start}: {len(missing)} slot(s) without a single admissions doctor")
    return WeekValidation(week_start, missing)
