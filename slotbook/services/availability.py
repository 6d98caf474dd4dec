"""
Application service answering "which days are open" and "which times on
day D are free for service S".

The service pulls a fresh snapshot of configuration and bookings from the
store on every call and delegates the actual calculation to the domain-level
``SlotCalculator``. It keeps no state between calls, so results are only as
stale as the snapshot it just read.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import List, Sequence

import pendulum
from pendulum import Date, DateTime

from ..domain.exceptions import NoAvailability
from ..domain.intervals import as_date
from ..domain.models import BlackoutRule, Service, Slot, WorkingHoursPolicy
from ..domain.slot_calculator import DEFAULT_STEP_MINUTES, SlotCalculator
from ._helpers import drop_started, find_service, read_with_retry, require_policy
from .store import BookingStoreProtocol

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 14


class AvailabilityService:
    """
    Orchestrates store reads and slot calculation over a rolling date window.

    Dependency inversion toward a protocol makes it easy to plug in the
    SQLite adapter or the in-memory store in tests.
    """

    def __init__(
        self,
        store: BookingStoreProtocol,
        *,
        timezone: str = "UTC",
        step_minutes: int = DEFAULT_STEP_MINUTES,
        window_days: int = DEFAULT_WINDOW_DAYS,
        min_advance_minutes: int = 0,
        read_retries: int = 2,
        retry_backoff_seconds: float = 0.2,
    ) -> None:
        self._store = store
        self._timezone = timezone
        self._step_minutes = step_minutes
        self._window_days = window_days
        self._min_advance_minutes = min_advance_minutes
        self._read_retries = read_retries
        self._retry_backoff_seconds = retry_backoff_seconds

    def today(self) -> Date:
        """Current date in the business timezone."""
        return pendulum.today(self._timezone).date()

    async def open_days(self, start: date | str | None = None, days: int | None = None) -> List[Date]:
        """
        List the dates in the booking window that are not closed weekdays.

        Args:
            start: First date of the window (defaults to today)
            days: Window length in calendar days (defaults to the configured window)
        """
        policy = await self._fetch_policy()
        calculator = self._calculator(policy)
        return calculator.open_days(self._window(start, days))

    async def available_slots(
        self,
        day: date | str,
        service_id: str,
        now: DateTime | None = None,
    ) -> List[Slot]:
        """
        Calculate the free start times for a service on one date.

        An empty list is a normal outcome meaning "no openings".
        """
        day = as_date(day)
        policy, services, rules = await asyncio.gather(
            self._fetch_policy(),
            self._fetch_services(),
            self._fetch_rules(),
        )
        service = find_service(services, service_id)
        bookings = await self._read(lambda: self._store.list_booked_intervals(day), f"bookings for {day}")

        slots = self._calculator(policy).generate_slots(service, day, bookings, rules)
        slots = self._drop_past(slots, day, now)

        logger.debug("%d slot(s) for %s on %s", len(slots), service.id, day)
        return slots

    async def days_with_openings(
        self,
        service_id: str,
        start: date | str | None = None,
        days: int | None = None,
        now: DateTime | None = None,
    ) -> List[Date]:
        """
        Open dates in the window that still have at least one free slot.

        Unlike ``open_days`` this also hides dates fully covered by bookings
        or blackout rules.
        """
        by_day = await self._slots_by_day(service_id, start, days, now)
        return [day for day, slots in by_day if slots]

    async def next_available_slot(
        self,
        service_id: str,
        start: date | str | None = None,
        days: int | None = None,
        now: DateTime | None = None,
    ) -> Slot:
        """
        Return the earliest free slot in the window.

        Raises:
            NoAvailability: If no date in the window has a free slot
        """
        for _, slots in await self._slots_by_day(service_id, start, days, now):
            if slots:
                return slots[0]
        raise NoAvailability(f"No openings for service '{service_id}' in the booking window")

    async def _slots_by_day(
        self,
        service_id: str,
        start: date | str | None,
        days: int | None,
        now: DateTime | None,
    ) -> List[tuple[Date, List[Slot]]]:
        policy, services, rules = await asyncio.gather(
            self._fetch_policy(),
            self._fetch_services(),
            self._fetch_rules(),
        )
        service = find_service(services, service_id)
        calculator = self._calculator(policy)
        open_days = calculator.open_days(self._window(start, days))

        bookings_per_day = await asyncio.gather(*(
            self._read(lambda d=day: self._store.list_booked_intervals(d), f"bookings for {day}")
            for day in open_days
        ))

        return [
            (day, self._drop_past(calculator.generate_slots(service, day, bookings, rules), day, now))
            for day, bookings in zip(open_days, bookings_per_day)
        ]

    def _window(self, start: date | str | None, days: int | None) -> List[Date]:
        first = as_date(start) if start is not None else self.today()
        length = self._window_days if days is None else days
        return [first.add(days=offset) for offset in range(length)]

    def _drop_past(self, slots: Sequence[Slot], day: Date, now: DateTime | None) -> List[Slot]:
        return drop_started(
            slots, day, timezone=self._timezone, min_advance_minutes=self._min_advance_minutes, now=now,
        )

    def _calculator(self, policy: WorkingHoursPolicy) -> SlotCalculator:
        return SlotCalculator(policy=policy, step_minutes=self._step_minutes)

    async def _fetch_policy(self) -> WorkingHoursPolicy:
        policy = await self._read(self._store.get_working_hours_policy, "working hours")
        return require_policy(policy)

    async def _fetch_services(self) -> List[Service]:
        return await self._read(self._store.list_services, "services")

    async def _fetch_rules(self) -> List[BlackoutRule]:
        return await self._read(self._store.list_blackout_rules, "blackout rules")

    async def _read(self, fetch, what: str):
        return await read_with_retry(
            fetch,
            what=what,
            retries=self._read_retries,
            backoff_seconds=self._retry_backoff_seconds,
        )
