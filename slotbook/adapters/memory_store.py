"""
In-memory booking store, for tests and the ``--mock`` demo mode.
"""

import asyncio
import json
import uuid
from collections import defaultdict
from datetime import date
from pathlib import Path
from typing import Dict, List

import pendulum

from ..domain.intervals import overlaps, parse_date, parse_time
from ..domain.models import (
    BlackoutRule,
    BookedInterval,
    Client,
    Recurrence,
    Service,
    WorkingHoursPolicy,
)


class InMemoryStore:
    """
    Dict-backed store implementing ``BookingStoreProtocol``.

    Conditional inserts are serialized per date with an ``asyncio.Lock``,
    so concurrent commits inside one event loop can never both take the
    same time range.
    """

    def __init__(
        self,
        policy: WorkingHoursPolicy | None = None,
        services: List[Service] | None = None,
        blackout_rules: List[BlackoutRule] | None = None,
        latency_seconds: float = 0.0,
    ):
        """
        Initialize the store.

        Args:
            policy: Initial working hours
            services: Initial services
            blackout_rules: Initial blackout rules
            latency_seconds: Artificial delay on every call, to widen race windows in tests
        """
        self._policy = policy
        self._services: Dict[str, Service] = {s.id: s for s in services or []}
        self._rules: Dict[str, BlackoutRule] = {r.id: r for r in blackout_rules or []}
        self._bookings: Dict[date, List[BookedInterval]] = defaultdict(list)
        self._locks: Dict[date, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._locks_loop: asyncio.AbstractEventLoop | None = None
        self._latency = latency_seconds

    @classmethod
    def from_json(cls, data_file: Path) -> "InMemoryStore":
        """
        Load services, working hours, blackout rules and appointments from a
        JSON file in the wire format (``YYYY-MM-DD`` dates, ``HH:MM`` times).
        """
        with open(data_file, "r", encoding="utf-8") as f:
            data = json.load(f)

        hours = data.get("workingHours")
        policy = None
        if hours:
            policy = WorkingHoursPolicy(
                open_time=parse_time(hours["openTime"]),
                close_time=parse_time(hours["closeTime"]),
                break_start=parse_time(hours["breakStart"]) if hours.get("breakStart") else None,
                break_end=parse_time(hours["breakEnd"]) if hours.get("breakEnd") else None,
                closed_weekdays=frozenset(hours.get("closedWeekdays", [])),
            )

        services = [
            Service(
                id=item["id"],
                name=item["name"],
                duration_minutes=int(item["durationMinutes"]),
                price_label=item.get("price", ""),
                description=item.get("description", ""),
            )
            for item in data.get("services", [])
        ]

        rules = [
            BlackoutRule(
                id=item.get("id") or uuid.uuid4().hex[:12],
                title=item.get("title", ""),
                anchor_date=parse_date(item["date"]),
                start_minute=parse_time(item["startTime"]),
                end_minute=parse_time(item["endTime"]),
                is_recurring=bool(item.get("isRecurring", False)),
                recurrence=Recurrence(item.get("recurrence", "none")),
                occurrence_count=int(item.get("occurrenceCount", 1)),
            )
            for item in data.get("blackoutRules", [])
        ]

        store = cls(policy=policy, services=services, blackout_rules=rules)
        for item in data.get("appointments", []):
            booking = BookedInterval(
                id=item.get("id") or uuid.uuid4().hex[:12],
                date=parse_date(item["date"]),
                start_minute=parse_time(item["startTime"]),
                end_minute=parse_time(item["endTime"]),
                service_id=item.get("serviceId", ""),
                service_name=item.get("serviceName", ""),
                client_name=item.get("clientName", ""),
                client_phone=item.get("clientPhone", ""),
            )
            store._bookings[booking.date].append(booking)
        return store

    def _lock_for(self, day: date) -> asyncio.Lock:
        # A contended asyncio.Lock binds to its loop; start fresh when the loop changes
        loop = asyncio.get_running_loop()
        if loop is not self._locks_loop:
            self._locks = defaultdict(asyncio.Lock)
            self._locks_loop = loop
        return self._locks[day]

    async def _pause(self) -> None:
        await asyncio.sleep(self._latency)

    async def list_services(self) -> List[Service]:
        await self._pause()
        return list(self._services.values())

    async def get_working_hours_policy(self) -> WorkingHoursPolicy | None:
        await self._pause()
        return self._policy

    async def list_blackout_rules(self) -> List[BlackoutRule]:
        await self._pause()
        return list(self._rules.values())

    async def list_booked_intervals(self, day: date) -> List[BookedInterval]:
        await self._pause()
        return list(self._bookings.get(day, []))

    async def insert_booking_if_free(
        self,
        day: date,
        start_minute: int,
        end_minute: int,
        service: Service,
        client: Client,
    ) -> BookedInterval | None:
        async with self._lock_for(day):
            existing = list(self._bookings.get(day, []))
            await self._pause()

            if any(overlaps(start_minute, end_minute, b.start_minute, b.end_minute) for b in existing):
                return None

            booking = BookedInterval(
                id=uuid.uuid4().hex[:12],
                date=day,
                start_minute=start_minute,
                end_minute=end_minute,
                service_id=service.id,
                service_name=service.name,
                client_name=client.name,
                client_phone=client.phone,
                created_at=pendulum.now("UTC"),
            )
            self._bookings[day].append(booking)
            return booking

    async def delete_booking(self, booking_id: str) -> bool:
        await self._pause()
        found = next(
            (b for bookings in self._bookings.values() for b in bookings if b.id == booking_id),
            None,
        )
        if found is None:
            return False

        async with self._lock_for(found.date):
            self._bookings[found.date] = [b for b in self._bookings[found.date] if b.id != booking_id]
        return True

    async def upsert_service(self, service: Service) -> None:
        await self._pause()
        self._services[service.id] = service

    async def delete_service(self, service_id: str) -> bool:
        await self._pause()
        return self._services.pop(service_id, None) is not None

    async def upsert_working_hours_policy(self, policy: WorkingHoursPolicy) -> None:
        await self._pause()
        self._policy = policy

    async def insert_blackout_rule(self, rule: BlackoutRule) -> None:
        await self._pause()
        self._rules[rule.id] = rule

    async def delete_blackout_rule(self, rule_id: str) -> bool:
        await self._pause()
        return self._rules.pop(rule_id, None) is not None
