"""Date manipulation utilities"""

import calendar
from datetime import date, timedelta

# Due-day labels offered by the tenancy form, mapped to a day of month
_NAMED_DUE_DAYS = {
    "1st - First Day": 1,
    "15th - Mid Month": 15,
}
_LAST_DAY_LABELS = {"last", "30th/31st - Last Day"}


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(from_date: date, months: int) -> date:
    """Shift to the first day of the month `months` away from `from_date`"""
    index = from_date.year * 12 + (from_date.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def resolve_due_date(year: int, month: int, due_day: str) -> date:
    """
    Due date within a month for a tenancy's due-day setting.

    Numeric days past the end of a short month clamp to its last day;
    unrecognized settings fall back to the last day.
    """
    last = last_day_of_month(year, month)
    if due_day in _LAST_DAY_LABELS:
        return date(year, month, last)
    if due_day in _NAMED_DUE_DAYS:
        return date(year, month, _NAMED_DUE_DAYS[due_day])
    try:
        day = int(due_day)
    except (TypeError, ValueError):
        return date(year, month, last)
    if not 1 <= day <= 31:
        return date(year, month, last)
    return date(year, month, min(day, last))


def next_day(from_date: date) -> date:
    return from_date + timedelta(days=1)
