"""
Staff-side operations: services, working hours, blackout rules and the
appointment agenda. Invariants are checked here, at save time, so invalid
configuration never reaches the booking flow.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import List

from ..domain.exceptions import InvalidInput
from ..domain.intervals import as_date, parse_time
from ..domain.models import (
    BlackoutRule,
    BookedInterval,
    Client,
    Recurrence,
    Service,
    WorkingHoursPolicy,
)
from ._helpers import sorted_by_start
from .booking import BookingCommitter
from .store import BookingStoreProtocol

logger = logging.getLogger(__name__)


class StaffService:
    """Configuration and agenda management for the business owner."""

    def __init__(self, store: BookingStoreProtocol, committer: BookingCommitter | None = None) -> None:
        self._store = store
        self._committer = committer or BookingCommitter(store)

    async def save_service(
        self,
        name: str,
        duration_minutes: int,
        price_label: str = "",
        description: str = "",
        service_id: str | None = None,
    ) -> Service:
        """Create a service, or replace it when ``service_id`` already exists."""
        service = Service(
            id=service_id or _new_id(),
            name=name.strip(),
            duration_minutes=duration_minutes,
            price_label=price_label.strip(),
            description=description.strip(),
        )
        service.validate()
        await self._store.upsert_service(service)
        logger.info("Saved service %s (%s, %d min)", service.id, service.name, service.duration_minutes)
        return service

    async def delete_service(self, service_id: str) -> None:
        if not await self._store.delete_service(service_id):
            raise InvalidInput(f"Unknown service: '{service_id}'")
        logger.info("Deleted service %s", service_id)

    async def list_services(self) -> List[Service]:
        services = await self._store.list_services()
        return sorted(services, key=lambda service: service.name.lower())

    async def save_working_hours(
        self,
        open_time: str,
        close_time: str,
        break_start: str | None = None,
        break_end: str | None = None,
        closed_weekdays: List[int] | None = None,
    ) -> WorkingHoursPolicy:
        """
        Validate and store the working hours.

        Raises:
            InvalidInput: If a time string is malformed
            InvalidConfiguration: If the hours contradict each other
        """
        policy = WorkingHoursPolicy(
            open_time=parse_time(open_time),
            close_time=parse_time(close_time),
            break_start=parse_time(break_start) if break_start else None,
            break_end=parse_time(break_end) if break_end else None,
            closed_weekdays=frozenset(closed_weekdays or ()),
        )
        await self._store.upsert_working_hours_policy(policy)
        logger.info("Saved working hours %s-%s", open_time, close_time)
        return policy

    async def get_working_hours(self) -> WorkingHoursPolicy | None:
        return await self._store.get_working_hours_policy()

    async def add_blackout_rule(
        self,
        title: str,
        anchor_date: date | str,
        start_time: str,
        end_time: str,
        recurrence: Recurrence | str = Recurrence.NONE,
        occurrence_count: int = 1,
    ) -> BlackoutRule:
        """
        Block ``start_time``-``end_time`` on ``anchor_date``, repeating
        ``occurrence_count`` times when a recurrence is given.
        """
        rule = BlackoutRule(
            id=_new_id(),
            title=title.strip() or "Blocked",
            anchor_date=as_date(anchor_date),
            start_minute=parse_time(start_time),
            end_minute=parse_time(end_time),
            is_recurring=recurrence != Recurrence.NONE,
            recurrence=recurrence,
            occurrence_count=occurrence_count,
        )
        await self._store.insert_blackout_rule(rule)
        logger.info("Added blackout %s on %s (%s)", rule.title, rule.anchor_date, rule.describe())
        return rule

    async def delete_blackout_rule(self, rule_id: str) -> None:
        if not await self._store.delete_blackout_rule(rule_id):
            raise InvalidInput(f"Unknown blackout rule: '{rule_id}'")
        logger.info("Deleted blackout rule %s", rule_id)

    async def list_blackout_rules(self) -> List[BlackoutRule]:
        rules = await self._store.list_blackout_rules()
        return sorted(rules, key=lambda rule: (rule.anchor_date, rule.start_minute))

    async def agenda(self, day: date | str) -> List[BookedInterval]:
        """The appointments on ``day`` ordered by start time."""
        return sorted_by_start(await self._store.list_booked_intervals(as_date(day)))

    async def cancel_appointment(self, booking_id: str) -> None:
        if not await self._store.delete_booking(booking_id):
            raise InvalidInput(f"Unknown appointment: '{booking_id}'")
        logger.info("Cancelled appointment %s", booking_id)

    async def book_for_client(
        self,
        service_id: str,
        day: date | str,
        start_time: str,
        client_name: str,
        client_phone: str = "",
    ) -> BookedInterval:
        """Staff-entered appointment; may fall outside the regular slot grid."""
        client = Client(name=client_name.strip(), phone=client_phone.strip())
        return await self._committer.commit_unchecked_hours(service_id, day, start_time, client)


def _new_id() -> str:
    return uuid.uuid4().hex[:12]
