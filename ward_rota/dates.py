"""
dates.py — Calendar helpers for Monday-keyed weeks and month ranges.
"""

import calendar
from datetime import date, datetime, timedelta
from typing import Any, List, Tuple

from ward_rota.schedule_config import BUSINESS_DAYS


def parse_date(value: Any) -> date:
    """Accept a date, a datetime, or an ISO 'YYYY-MM-DD' string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    raise ValueError(f"Not a date: {value!r}")


def monday_of(d: date) -> date:
    """Monday of the ISO week containing d (Sunday belongs to the week before)."""
    return d - timedelta(days=d.weekday())


def is_monday(d: date) -> bool:
    return d.weekday() == 0


def week_dates(week_start: date) -> List[date]:
    """Return the Monday-Friday dates of the week starting at week_start."""
    monday = monday_of(week_start)
    return [monday + timedelta(days=i) for i in range(BUSINESS_DAYS)]


def month_bounds(month_start: date) -> Tuple[date, date]:
    """First and last calendar day of month_start's month."""
    last_day = calendar.monthrange(month_start.year, month_start.month)[1]
    return month_start.replace(day=1), month_start.replace(day=last_day)


def month_range(month_start: date) -> Tuple[date, date]:
    """
    Display range for a month: from the Monday of the week containing the 1st
    through the Friday of the week containing the last day.

    A month ending on a weekend still reaches that week's Friday; a month
    starting on a weekend still starts at that week's Monday.
    """
    first, last = month_bounds(month_start)
    range_start = monday_of(first)
    range_end = monday_of(last) + timedelta(days=BUSINESS_DAYS - 1)
    return range_start, range_end


def week_starts_between(range_start: date, range_end: date) -> List[date]:
    """Mondays from range_start (itself a Monday) stepping by 7 days through range_end."""
    out = []
    current = range_start
    while current <= range_end:
        out.append(current)
        current += timedelta(days=7)
    return out


def month_week_starts(month_start: date) -> List[date]:
    range_start, range_end = month_range(month_start)
    return week_starts_between(range_start, range_end)
