"""
Interval algebra on minutes-since-midnight, plus the wire formats for
dates (``YYYY-MM-DD``) and times of day (``HH:MM``).

All intervals are half-open ``[start, end)``: two ranges that merely touch
do not overlap. Times are plain integers so comparisons are exact.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime

import pendulum
from pendulum import Date

from .exceptions import InvalidInput

MINUTES_PER_DAY = 24 * 60

_TIME_PATTERN = re.compile(r"^(\d{2}):(\d{2})$")
_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Return True if ``[a_start, a_end)`` and ``[b_start, b_end)`` share any minute."""
    return a_start < b_end and b_start < a_end


@dataclass(frozen=True)
class TimeRange:
    """
    Immutable half-open range of minutes within a single day.

    Invariant: start must be before end.
    """
    start: int
    end: int

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(
                f"Start time {format_minutes(self.start)} must be before "
                f"end time {format_minutes(self.end)}"
            )

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another."""
        return overlaps(self.start, self.end, other.start, other.end)

    def __str__(self) -> str:
        return f"{format_minutes(self.start)} - {format_minutes(self.end)}"


def parse_time(value: str) -> int:
    """
    Parse an ``HH:MM`` 24-hour string into minutes since midnight.

    ``24:00`` is accepted as the end of the day.

    Raises:
        InvalidInput: If the string is not a valid time of day
    """
    match = _TIME_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise InvalidInput(f"Invalid time '{value}', expected HH:MM")

    hours, minutes = int(match.group(1)), int(match.group(2))
    if (hours, minutes) == (24, 0):
        return MINUTES_PER_DAY
    if hours > 23 or minutes > 59:
        raise InvalidInput(f"Invalid time '{value}', expected HH:MM between 00:00 and 23:59")

    return hours * 60 + minutes


def format_minutes(minutes: int) -> str:
    """Format minutes since midnight as ``HH:MM``."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def parse_date(value: str) -> Date:
    """
    Parse a ``YYYY-MM-DD`` string into a pendulum Date.

    Raises:
        InvalidInput: If the string is not a valid calendar date
    """
    if not isinstance(value, str) or not _DATE_PATTERN.match(value.strip()):
        raise InvalidInput(f"Invalid date '{value}', expected YYYY-MM-DD")

    try:
        return pendulum.from_format(value.strip(), "YYYY-MM-DD").date()
    except ValueError as exc:
        raise InvalidInput(f"Invalid date '{value}': {exc}") from exc


def as_date(value: date | str) -> Date:
    """Normalize a date, datetime or ``YYYY-MM-DD`` string to a pendulum Date."""
    if isinstance(value, str):
        return parse_date(value)
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, Date):
        return value
    if isinstance(value, date):
        return pendulum.date(value.year, value.month, value.day)
    raise InvalidInput(f"Unsupported date value: {value!r}")


def sunday_weekday(day: date) -> int:
    """Weekday number with 0=Sunday .. 6=Saturday."""
    return day.isoweekday() % 7
