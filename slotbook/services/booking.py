"""
Commits a client's chosen slot without ever double-booking.

Availability shown to the client is advisory. The authoritative check is
``insert_booking_if_free`` on the store, which re-reads the day's
appointments and inserts in one indivisible step. Two clients racing for
the same slot therefore cannot both succeed.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date

from pendulum import DateTime

from ..domain.exceptions import InvalidInput, SlotNoLongerAvailable
from ..domain.intervals import MINUTES_PER_DAY, as_date, format_minutes, parse_time
from ..domain.models import BookedInterval, Client, Service
from ..domain.slot_calculator import DEFAULT_STEP_MINUTES, SlotCalculator
from ._helpers import drop_started, find_service, read_with_retry, require_policy
from .store import BookingStoreProtocol

logger = logging.getLogger(__name__)


class BookingCommitter:
    """Validates and durably reserves appointments."""

    def __init__(
        self,
        store: BookingStoreProtocol,
        *,
        timezone: str = "UTC",
        step_minutes: int = DEFAULT_STEP_MINUTES,
        min_advance_minutes: int = 0,
        read_retries: int = 2,
        retry_backoff_seconds: float = 0.2,
    ) -> None:
        self._store = store
        self._timezone = timezone
        self._step_minutes = step_minutes
        self._min_advance_minutes = min_advance_minutes
        self._read_retries = read_retries
        self._retry_backoff_seconds = retry_backoff_seconds

    async def commit(
        self,
        service_id: str,
        day: date | str,
        start_time: str | int,
        client: Client,
        now: DateTime | None = None,
    ) -> BookedInterval:
        """
        Book ``service_id`` at ``start_time`` on ``day`` for ``client``.

        The start must still be one of the slots the current working hours
        and blackout rules allow, and must not have started yet (including
        the advance notice). Bookings made since the client looked are
        caught by the store's atomic insert.

        Raises:
            InvalidInput: Malformed date/time, unknown service or bad duration
            SlotNoLongerAvailable: The slot was taken or closed in the meantime
            StoreUnavailable: The store could not be reached (never retried here)
        """
        day, start_minute = self._parse(day, start_time)
        service = await self._resolve_service(service_id)
        end_minute = start_minute + service.duration_minutes

        policy, rules = await asyncio.gather(
            self._read(self._store.get_working_hours_policy, "working hours"),
            self._read(self._store.list_blackout_rules, "blackout rules"),
        )

        calculator = SlotCalculator(policy=require_policy(policy), step_minutes=self._step_minutes)
        grid = calculator.generate_slots(service, day, (), rules)
        bookable = drop_started(
            grid, day, timezone=self._timezone, min_advance_minutes=self._min_advance_minutes, now=now,
        )
        offered = {slot.start_minute for slot in bookable}
        if start_minute not in offered:
            logger.info("Rejected %s at %s on %s: outside bookable hours", service.id,
                        format_minutes(start_minute), day)
            raise SlotNoLongerAvailable(
                f"{format_minutes(start_minute)} on {day} is no longer offered for {service.name}"
            )

        return await self._insert(service, day, start_minute, end_minute, client)

    async def commit_unchecked_hours(
        self,
        service_id: str,
        day: date | str,
        start_time: str | int,
        client: Client,
    ) -> BookedInterval:
        """
        Book without the working-hours/blackout check, for staff-entered
        appointments. The overlap check against existing appointments still applies.
        """
        day, start_minute = self._parse(day, start_time)
        service = await self._resolve_service(service_id)
        end_minute = start_minute + service.duration_minutes

        if end_minute > MINUTES_PER_DAY:
            raise InvalidInput(f"{service.name} starting {format_minutes(start_minute)} would run past midnight")

        return await self._insert(service, day, start_minute, end_minute, client)

    async def _insert(
        self,
        service: Service,
        day,
        start_minute: int,
        end_minute: int,
        client: Client,
    ) -> BookedInterval:
        booking = await self._store.insert_booking_if_free(day, start_minute, end_minute, service, client)
        if booking is None:
            logger.info("Conflict booking %s %s-%s on %s", service.id,
                        format_minutes(start_minute), format_minutes(end_minute), day)
            raise SlotNoLongerAvailable(
                f"{format_minutes(start_minute)} on {day} has just been booked by someone else"
            )

        logger.info("Booked %s for %s on %s at %s (id=%s)", service.id, client.name, day,
                    booking.start_time, booking.id)
        return booking

    async def _resolve_service(self, service_id: str) -> Service:
        services = await self._read(self._store.list_services, "services")
        service = find_service(services, service_id)
        if service.duration_minutes <= 0:
            raise InvalidInput(f"Service '{service.id}' has a non-positive duration")
        return service

    @staticmethod
    def _parse(day: date | str, start_time: str | int):
        parsed_day = as_date(day)
        start_minute = parse_time(start_time) if isinstance(start_time, str) else start_time
        if not 0 <= start_minute < MINUTES_PER_DAY:
            raise InvalidInput(f"Start time out of range: {start_time}")
        return parsed_day, start_minute

    async def _read(self, fetch, what: str):
        return await read_with_retry(
            fetch,
            what=what,
            retries=self._read_retries,
            backoff_seconds=self._retry_backoff_seconds,
        )
