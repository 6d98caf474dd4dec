"""
Domain models for services, working hours, blackout rules and bookings.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet

from pendulum import Date, DateTime

from .exceptions import InvalidConfiguration, InvalidInput
from .intervals import MINUTES_PER_DAY, TimeRange, format_minutes, sunday_weekday


@dataclass(frozen=True)
class Service:
    """
    A bookable service offered by the business.
    """
    id: str
    name: str
    duration_minutes: int
    price_label: str = ""
    description: str = ""

    def validate(self) -> None:
        """Check the invariants staff must respect when saving a service."""
        if not self.id.strip():
            raise InvalidConfiguration("Service id must not be empty")
        if not self.name.strip():
            raise InvalidConfiguration("Service name must not be empty")
        if self.duration_minutes <= 0:
            raise InvalidConfiguration(
                f"Service duration must be positive, got {self.duration_minutes}"
            )
        if self.duration_minutes > MINUTES_PER_DAY:
            raise InvalidConfiguration("Service duration cannot exceed one day")


@dataclass(frozen=True)
class Client:
    """The person an appointment is booked for."""
    name: str
    phone: str = ""

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise InvalidInput("Client name must not be empty")


@dataclass(frozen=True)
class WorkingHoursPolicy:
    """
    Daily opening window, optional break and closed weekdays.

    Weekdays are numbered 0=Sunday .. 6=Saturday.
    """
    open_time: int
    close_time: int
    break_start: int | None = None
    break_end: int | None = None
    closed_weekdays: FrozenSet[int] = field(default_factory=frozenset)

    def __post_init__(self):
        object.__setattr__(self, "closed_weekdays", frozenset(self.closed_weekdays))

        if not 0 <= self.open_time < self.close_time <= MINUTES_PER_DAY:
            raise InvalidConfiguration(
                f"Opening time {format_minutes(self.open_time)} must be before "
                f"closing time {format_minutes(self.close_time)}"
            )

        if (self.break_start is None) != (self.break_end is None):
            raise InvalidConfiguration("Break needs both a start and an end")

        if self.break_start is not None:
            if self.break_start >= self.break_end:
                raise InvalidConfiguration(
                    f"Break start {format_minutes(self.break_start)} must be before "
                    f"break end {format_minutes(self.break_end)}"
                )
            if not (self.open_time <= self.break_start < self.close_time
                    and self.open_time < self.break_end < self.close_time):
                raise InvalidConfiguration("Break must lie within opening hours")

        invalid_days = sorted(day for day in self.closed_weekdays if day not in range(7))
        if invalid_days:
            raise InvalidConfiguration(
                f"Closed weekdays must be between 0 and 6, got {invalid_days}"
            )

    @property
    def break_range(self) -> TimeRange | None:
        """The break as a TimeRange, or None if there is no break."""
        if self.break_start is None:
            return None
        return TimeRange(start=self.break_start, end=self.break_end)

    def is_open_on(self, day: Date) -> bool:
        """Check whether the business opens at all on this date."""
        return sunday_weekday(day) not in self.closed_weekdays


@dataclass(frozen=True)
class BookedInterval:
    """
    A persisted appointment occupying ``[start_minute, end_minute)`` on a date.
    """
    id: str
    date: Date
    start_minute: int
    end_minute: int
    service_id: str
    service_name: str = ""
    client_name: str = ""
    client_phone: str = ""
    created_at: DateTime | None = None

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start_minute, end=self.end_minute)

    @property
    def start_time(self) -> str:
        return format_minutes(self.start_minute)

    @property
    def end_time(self) -> str:
        return format_minutes(self.end_minute)


class Recurrence(str, Enum):
    """How a blackout rule repeats after its anchor date."""
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class BlackoutRule:
    """
    A staff-defined closure of ``[start_minute, end_minute)``, optionally repeating.

    ``occurrence_count`` includes the anchor date and only matters for
    recurring rules.
    """
    id: str
    title: str
    anchor_date: Date
    start_minute: int
    end_minute: int
    is_recurring: bool = False
    recurrence: Recurrence = Recurrence.NONE
    occurrence_count: int = 1

    def __post_init__(self):
        try:
            object.__setattr__(self, "recurrence", Recurrence(self.recurrence))
        except ValueError as exc:
            raise InvalidConfiguration(f"Unknown recurrence '{self.recurrence}'") from exc

        if not 0 <= self.start_minute < self.end_minute <= MINUTES_PER_DAY:
            raise InvalidConfiguration(
                f"Blackout start {format_minutes(self.start_minute)} must be before "
                f"end {format_minutes(self.end_minute)}"
            )
        if self.occurrence_count < 1:
            raise InvalidConfiguration(
                f"occurrence_count must be at least 1, got {self.occurrence_count}"
            )
        if self.is_recurring and self.recurrence is Recurrence.NONE:
            raise InvalidConfiguration("A recurring blackout needs a daily, weekly or monthly recurrence")

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start_minute, end=self.end_minute)

    def describe(self) -> str:
        """Short human readable summary of the repetition."""
        if not self.is_recurring:
            return "once"
        return f"{self.recurrence.value} ({self.occurrence_count}x)"


@dataclass(frozen=True)
class Slot:
    """
    A candidate appointment start. Computed on demand, never persisted.
    """
    date: Date
    start_minute: int
    end_minute: int

    @property
    def start_time(self) -> str:
        return format_minutes(self.start_minute)

    @property
    def end_time(self) -> str:
        return format_minutes(self.end_minute)

    def format_display(self) -> str:
        """
        Format the slot for display.
        Format: Weekday, DD.MM.YYYY | HH:MM - HH:MM
        """
        return f"{self.date.format('dddd, DD.MM.YYYY')} | {self.start_time} - {self.end_time}"
