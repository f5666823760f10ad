"""Date helpers: instant parsing, day normalization and relative expressions."""

from __future__ import annotations

import re
from calendar import monthrange
from datetime import UTC, date, datetime, timedelta

RE_ISO_DAY = re.compile(r"^\d{4}-\d{2}-\d{2}$")
RE_IN_PERIOD = re.compile(r"^in\s+(\d+)\s+(day|days|week|weeks|month|months)$")
RE_AGO_PERIOD = re.compile(r"^(\d+)\s+(day|days|week|weeks|month|months)\s+ago$")
RE_NEXT_LAST_WEEKDAY = re.compile(
    r"^(next|last)\s+(monday|tuesday|wednesday|thursday|friday|saturday|sunday)$"
)
RE_WEEKDAY = re.compile(r"^(monday|tuesday|wednesday|thursday|friday|saturday|sunday)$")
RE_THIS_PERIOD = re.compile(r"^(this|next|last)\s+(week|month)$")

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

DATE_FORMAT_HINT = (
    'Use formats like: today, tomorrow, YYYY-MM-DD, "in 3 days", "next monday"'
)


def parse_instant(value: datetime | date | str | None) -> datetime | None:
    """Normalize a stored task timestamp to an aware datetime.

    Naive values are read as UTC and date-only values become midnight UTC.
    Raises ValueError for strings that are not ISO-8601.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    text = value.strip()
    if not text:
        return None
    parsed = datetime.fromisoformat(text)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def day_of(value: datetime | date) -> date:
    """Drop the time-of-day, keeping the calendar day in the value's own offset."""
    if isinstance(value, datetime):
        return value.date()
    return value


def format_day(value: datetime | date | None) -> str:
    if value is None:
        return "(none)"
    return day_of(value).isoformat()


def _add_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    return date(year, month, min(day.day, monthrange(year, month)[1]))


def _shift(day: date, amount: int, unit: str) -> date:
    if unit.startswith("day"):
        return day + timedelta(days=amount)
    if unit.startswith("week"):
        return day + timedelta(weeks=amount)
    return _add_months(day, amount)


def parse_date_expression(text: str, reference: datetime | date) -> date | None:
    """Resolve a query date operand to a calendar day.

    Returns None when the text is not a recognized date expression.
    """
    today = day_of(reference)
    lowered = text.strip().strip("\"'").lower()

    if lowered == "today":
        return today
    if lowered == "tomorrow":
        return today + timedelta(days=1)
    if lowered == "yesterday":
        return today - timedelta(days=1)

    m = RE_IN_PERIOD.match(lowered)
    if m:
        return _shift(today, int(m.group(1)), m.group(2))

    m = RE_AGO_PERIOD.match(lowered)
    if m:
        return _shift(today, -int(m.group(1)), m.group(2))

    m = RE_NEXT_LAST_WEEKDAY.match(lowered)
    if m:
        delta = WEEKDAYS.index(m.group(2)) - today.weekday()
        if m.group(1) == "next":
            if delta <= 0:
                delta += 7
        elif delta >= 0:
            delta -= 7
        return today + timedelta(days=delta)

    m = RE_WEEKDAY.match(lowered)
    if m:
        delta = (WEEKDAYS.index(m.group(1)) - today.weekday()) % 7
        return today + timedelta(days=delta)

    m = RE_THIS_PERIOD.match(lowered)
    if m:
        direction, period = m.groups()
        offset = {"this": 0, "next": 1, "last": -1}[direction]
        if period == "week":
            monday = today - timedelta(days=today.weekday())
            return monday + timedelta(weeks=offset)
        return _add_months(today.replace(day=1), offset)

    if RE_ISO_DAY.match(lowered):
        try:
            return date.fromisoformat(lowered)
        except ValueError:
            return None

    try:
        return day_of(parse_instant(text.strip().strip("\"'")))
    except (TypeError, ValueError):
        return None
