"""
Protocol describing the persistence operations the services depend on.

Adapters in ``slotbook.adapters`` implement it; tests can plug in any
object with the same coroutine methods.
"""

from __future__ import annotations

from datetime import date
from typing import List, Protocol

from ..domain.models import BlackoutRule, BookedInterval, Client, Service, WorkingHoursPolicy


class BookingStoreProtocol(Protocol):
    """Read and write operations against the booking store."""

    async def list_services(self) -> List[Service]:
        """Return all configured services."""

    async def get_working_hours_policy(self) -> WorkingHoursPolicy | None:
        """Return the working hours singleton, or None if never configured."""

    async def list_blackout_rules(self) -> List[BlackoutRule]:
        """Return every blackout rule."""

    async def list_booked_intervals(self, day: date) -> List[BookedInterval]:
        """Return the appointments persisted for ``day``."""

    async def insert_booking_if_free(
        self,
        day: date,
        start_minute: int,
        end_minute: int,
        service: Service,
        client: Client,
    ) -> BookedInterval | None:
        """
        Atomically re-check ``day`` for overlapping appointments and insert.

        Returns the new appointment, or None if an overlapping one exists.
        """

    async def delete_booking(self, booking_id: str) -> bool:
        """Delete an appointment; False if it did not exist."""

    async def upsert_service(self, service: Service) -> None:
        """Create or replace a service."""

    async def delete_service(self, service_id: str) -> bool:
        """Delete a service; False if it did not exist."""

    async def upsert_working_hours_policy(self, policy: WorkingHoursPolicy) -> None:
        """Replace the working hours singleton."""

    async def insert_blackout_rule(self, rule: BlackoutRule) -> None:
        """Persist a new blackout rule."""

    async def delete_blackout_rule(self, rule_id: str) -> bool:
        """Delete a blackout rule; False if it did not exist."""
