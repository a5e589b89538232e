import calendar
from datetime import date, datetime, timedelta

from dateutil.relativedelta import relativedelta

from core.exceptions import InvalidSalaryDayError
from data_manager.data_validator import validate_salary_day
from utils.money import to_decimal


def parse_date(value) -> date:
    """Convert a stored date value to a calendar date; time and zone are dropped.

    Accepts date/datetime objects (incl. pandas.Timestamp) and strings in
    ``YYYY-MM-DD``, ``YYYY-MM-DD HH:MM:SS`` or ISO ``YYYY-MM-DDTHH:MM:SS`` form.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        return date.fromisoformat(text[:10])
    raise ValueError(f"Unsupported date value: {value!r}")


def add_days(d: date, days: int) -> date:
    return d + timedelta(days=days)


def add_months(d: date, months: int) -> date:
    """Add N months; day of month is clamped to the target month's length"""
    return d + relativedelta(months=months)


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def days_between(start: date, end: date) -> int:
    """Inclusive calendar day count: both start and end count, same day = 1"""
    return (end - start).days + 1


def check_salary_day(salary_day) -> int:
    """Salary day as an int in 1..31; raises InvalidSalaryDayError"""
    ok, _ = validate_salary_day(salary_day)
    if not ok:
        raise InvalidSalaryDayError(salary_day)
    return int(to_decimal(salary_day))


def clamp_day(year: int, month: int, day: int) -> date:
    """Date for ``day`` in the given month, clamped to its last day"""
    return date(year, month, min(day, days_in_month(year, month)))


def salary_date_for_month(base: date, salary_day: int, month_offset: int = 0) -> date:
    """Salary date in the month ``month_offset`` months after base's month"""
    salary_day = check_salary_day(salary_day)
    target = date(base.year, base.month, 1) + relativedelta(months=month_offset)
    return clamp_day(target.year, target.month, salary_day)


def next_salary_date(from_date: date, salary_day: int) -> date:
    """First salary date strictly after from_date"""
    candidate = salary_date_for_month(from_date, salary_day, 0)
    if candidate <= from_date:
        candidate = salary_date_for_month(from_date, salary_day, 1)
    return candidate


def resolve_first_due_date(anchor: date, salary_day: int, min_duration_days: int) -> date:
    """Next salary date at least ``min_duration_days`` (inclusive) after anchor"""
    offset = 0
    while True:
        due = salary_date_for_month(anchor, salary_day, offset)
        if due > anchor and days_between(anchor, due) >= min_duration_days:
            return due
        offset += 1
