"""
Core business logic for calculating bookable appointment slots.

This is the heart of the application - pure domain logic without any
external dependencies (no API calls, no database, no I/O).
"""

from datetime import date
from typing import Iterable, List

from .exceptions import InvalidInput
from .intervals import TimeRange
from .models import BlackoutRule, BookedInterval, Service, Slot, WorkingHoursPolicy
from .recurrence import blocked_intervals_on

DEFAULT_STEP_MINUTES = 30


class SlotCalculator:
    """
    Calculates bookable start times for a service on a date.

    Algorithm:
    1. Reject the date outright if it falls on a closed weekday
    2. Walk the opening window in fixed steps from opening time
    3. Stop once a candidate would end after closing time
    4. Drop candidates overlapping the break, a booking or a blackout
    5. Return the remaining candidates in ascending order
    """

    def __init__(self, policy: WorkingHoursPolicy, step_minutes: int = DEFAULT_STEP_MINUTES):
        if step_minutes <= 0:
            raise ValueError(f"step_minutes must be positive, got {step_minutes}")
        self.policy = policy
        self.step_minutes = step_minutes

    def is_open_day(self, day: date) -> bool:
        """Check if the business opens on this date (weekday rule only)."""
        return self.policy.is_open_on(day)

    def open_days(self, days: Iterable[date]) -> List[date]:
        """Filter candidate dates down to those that are open."""
        return [day for day in days if self.is_open_day(day)]

    def generate_slots(
        self,
        service: Service,
        day: date,
        booked_intervals: Iterable[BookedInterval] = (),
        blackout_rules: Iterable[BlackoutRule] = (),
    ) -> List[Slot]:
        """
        Enumerate the free start times for ``service`` on ``day``.

        Args:
            service: Service being booked (its duration sizes each candidate)
            day: Calendar date to evaluate
            booked_intervals: Existing appointments; ones on other dates are ignored
            blackout_rules: Blackout rules, expanded onto ``day``

        Returns:
            Slots in ascending start order, possibly empty
        """
        duration = service.duration_minutes
        if duration <= 0:
            raise InvalidInput(f"Service duration must be positive, got {duration}")

        if not self.is_open_day(day):
            return []

        blocked = self._blocked_ranges(day, booked_intervals, blackout_rules)

        slots: List[Slot] = []
        candidate_start = self.policy.open_time

        while candidate_start + duration <= self.policy.close_time:
            candidate = TimeRange(start=candidate_start, end=candidate_start + duration)

            if not any(candidate.overlaps(busy) for busy in blocked):
                slots.append(Slot(date=day, start_minute=candidate.start, end_minute=candidate.end))

            candidate_start += self.step_minutes

        return slots

    def _blocked_ranges(
        self,
        day: date,
        booked_intervals: Iterable[BookedInterval],
        blackout_rules: Iterable[BlackoutRule],
    ) -> List[TimeRange]:
        """
        Everything that removes availability on ``day``: the break, the
        day's bookings and every blackout rule that matches the date.
        """
        blocked: List[TimeRange] = []

        if self.policy.break_range is not None:
            blocked.append(self.policy.break_range)

        blocked.extend(
            booking.time_range for booking in booked_intervals
            if booking.date == day
        )
        blocked.extend(blocked_intervals_on(blackout_rules, day))

        return blocked
