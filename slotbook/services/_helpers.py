"""Shared helpers for the service layer."""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Awaitable, Callable, List, Sequence, TypeVar

import pendulum
from pendulum import DateTime

from ..domain.exceptions import InvalidConfiguration, InvalidInput, StoreUnavailable
from ..domain.intervals import as_date
from ..domain.models import Service, Slot, WorkingHoursPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def read_with_retry(
    fetch: Callable[[], Awaitable[T]],
    *,
    what: str,
    retries: int,
    backoff_seconds: float,
) -> T:
    """
    Run a store read, retrying ``StoreUnavailable`` with exponential backoff.

    Only reads go through here. Writes surface failures immediately so a
    lost acknowledgement can never turn into a duplicate booking.
    """
    attempt = 0
    while True:
        try:
            return await fetch()
        except StoreUnavailable:
            if attempt >= retries:
                logger.error("Reading %s failed after %d attempt(s)", what, attempt + 1)
                raise
            delay = backoff_seconds * (2 ** attempt)
            attempt += 1
            logger.warning("Reading %s failed, retrying in %.2fs (attempt %d/%d)",
                           what, delay, attempt, retries)
            await asyncio.sleep(delay)


def find_service(services: Sequence[Service], service_id: str) -> Service:
    """Look up a service by id or raise InvalidInput."""
    for service in services:
        if service.id == service_id:
            return service
    raise InvalidInput(f"Unknown service: '{service_id}'")


def require_policy(policy: WorkingHoursPolicy | None) -> WorkingHoursPolicy:
    if policy is None:
        raise InvalidConfiguration("Working hours have not been configured yet")
    return policy


def sorted_by_start(items: List[T]) -> List[T]:
    return sorted(items, key=lambda item: (item.date, item.start_minute))


def drop_started(
    slots: Sequence[Slot],
    day: date,
    *,
    timezone: str,
    min_advance_minutes: int = 0,
    now: DateTime | None = None,
) -> List[Slot]:
    """
    Remove slots that can no longer be booked because of the clock.

    Past dates lose every slot. On today's date a slot must start at or
    after ``now + min_advance_minutes`` in the business timezone.
    """
    now = now or pendulum.now(timezone)
    today = as_date(now)

    if day > today:
        return list(slots)
    if day < today:
        return []

    cutoff = now.hour * 60 + now.minute + min_advance_minutes
    return [slot for slot in slots if slot.start_minute >= cutoff]
