"""SQLite-backed booking store.

SQLAlchemy Core (not ORM) is used: every call is a short, self-contained
unit of work, so there is no benefit from sessions or identity maps.

Reads run on a plain engine (deferred transactions, concurrent under WAL).
Writes run on a second engine whose transactions start with
``BEGIN IMMEDIATE``, so the overlap re-check and the insert of
``insert_booking_if_free`` happen while holding SQLite's write lock: a
second writer waits until the first commits and then sees its row.

Blocking database calls are moved off the event loop with
``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from datetime import date
from pathlib import Path
from typing import Any, Callable, List, TypeVar

import pendulum
from sqlalchemy import create_engine, delete, event, insert, select
from sqlalchemy.engine import Engine, Row
from sqlalchemy.exc import DBAPIError

from ..domain.exceptions import StoreUnavailable
from ..domain.intervals import format_minutes, overlaps, parse_date, parse_time
from ..domain.models import (
    BlackoutRule,
    BookedInterval,
    Client,
    Recurrence,
    Service,
    WorkingHoursPolicy,
)
from .schema import appointments, blackout_rules, metadata, services, working_hours

logger = logging.getLogger(__name__)

T = TypeVar("T")

POLICY_ROW_ID = 1


def create_db_engine(db_path: Path, *, immediate: bool = False, timeout_seconds: float = 30.0) -> Engine:
    """Create a SQLite engine with WAL mode; ``immediate`` makes every transaction take the write lock."""
    engine = create_engine(
        f"sqlite:///{db_path}",
        echo=False,
        connect_args={"timeout": timeout_seconds, "check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn: Any, _: Any) -> None:
        # Let SQLAlchemy's "begin" event emit BEGIN instead of the driver
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _do_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE" if immediate else "BEGIN")

    return engine


class SqliteStore:
    """``BookingStoreProtocol`` implementation on a SQLite file."""

    def __init__(self, db_path: Path, timeout_seconds: float = 30.0):
        self.db_path = Path(db_path)
        self._read_engine = create_db_engine(self.db_path, timeout_seconds=timeout_seconds)
        self._write_engine = create_db_engine(self.db_path, immediate=True, timeout_seconds=timeout_seconds)

    def initialize(self, default_policy: WorkingHoursPolicy | None = None) -> None:
        """
        Create the tables and seed the working hours singleton if it is missing.

        Idempotent - safe to call on an existing database.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            metadata.create_all(self._write_engine)
            if default_policy is None:
                return
            with self._write_engine.begin() as conn:
                row = conn.execute(select(working_hours.c.id)).first()
                if row is None:
                    conn.execute(insert(working_hours).values(id=POLICY_ROW_ID, **_policy_values(default_policy)))
                    logger.info("Seeded working hours in %s", self.db_path)
        except DBAPIError as exc:
            raise StoreUnavailable(f"Cannot initialize database {self.db_path}: {exc}") from exc

    def close(self) -> None:
        self._read_engine.dispose()
        self._write_engine.dispose()

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except DBAPIError as exc:
            logger.warning("Database call %s failed: %s", fn.__name__, exc)
            raise StoreUnavailable(f"Database unavailable: {exc}") from exc

    # -- reads -----------------------------------------------------------

    async def list_services(self) -> List[Service]:
        return await self._run(self._list_services)

    def _list_services(self) -> List[Service]:
        with self._read_engine.connect() as conn:
            rows = conn.execute(select(services)).all()
        return [_row_to_service(row) for row in rows]

    async def get_working_hours_policy(self) -> WorkingHoursPolicy | None:
        return await self._run(self._get_working_hours_policy)

    def _get_working_hours_policy(self) -> WorkingHoursPolicy | None:
        with self._read_engine.connect() as conn:
            row = conn.execute(select(working_hours).where(working_hours.c.id == POLICY_ROW_ID)).first()
        if row is None:
            return None
        return WorkingHoursPolicy(
            open_time=parse_time(row.open_time),
            close_time=parse_time(row.close_time),
            break_start=parse_time(row.break_start) if row.break_start else None,
            break_end=parse_time(row.break_end) if row.break_end else None,
            closed_weekdays=frozenset(json.loads(row.closed_weekdays or "[]")),
        )

    async def list_blackout_rules(self) -> List[BlackoutRule]:
        return await self._run(self._list_blackout_rules)

    def _list_blackout_rules(self) -> List[BlackoutRule]:
        with self._read_engine.connect() as conn:
            rows = conn.execute(select(blackout_rules)).all()
        return [
            BlackoutRule(
                id=row.id,
                title=row.title,
                anchor_date=parse_date(row.anchor_date),
                start_minute=parse_time(row.start_time),
                end_minute=parse_time(row.end_time),
                is_recurring=bool(row.is_recurring),
                recurrence=Recurrence(row.recurrence),
                occurrence_count=row.occurrence_count,
            )
            for row in rows
        ]

    async def list_booked_intervals(self, day: date) -> List[BookedInterval]:
        return await self._run(self._list_booked_intervals, day)

    def _list_booked_intervals(self, day: date) -> List[BookedInterval]:
        with self._read_engine.connect() as conn:
            rows = conn.execute(
                select(appointments)
                .where(appointments.c.date == day.isoformat())
                .order_by(appointments.c.start_time)
            ).all()
        return [_row_to_booking(row) for row in rows]

    # -- writes ----------------------------------------------------------

    async def insert_booking_if_free(
        self,
        day: date,
        start_minute: int,
        end_minute: int,
        service: Service,
        client: Client,
    ) -> BookedInterval | None:
        return await self._run(self._insert_booking_if_free, day, start_minute, end_minute, service, client)

    def _insert_booking_if_free(
        self,
        day: date,
        start_minute: int,
        end_minute: int,
        service: Service,
        client: Client,
    ) -> BookedInterval | None:
        booking_id = uuid.uuid4().hex[:12]
        created_at = pendulum.now("UTC")

        with self._write_engine.begin() as conn:
            existing = conn.execute(
                select(appointments.c.start_time, appointments.c.end_time)
                .where(appointments.c.date == day.isoformat())
            ).all()

            for row in existing:
                if overlaps(start_minute, end_minute, parse_time(row.start_time), parse_time(row.end_time)):
                    return None

            conn.execute(
                insert(appointments).values(
                    id=booking_id,
                    date=day.isoformat(),
                    start_time=format_minutes(start_minute),
                    end_time=format_minutes(end_minute),
                    service_id=service.id,
                    service_name=service.name,
                    client_name=client.name,
                    client_phone=client.phone,
                    created_at=created_at.to_iso8601_string(),
                )
            )

        return BookedInterval(
            id=booking_id,
            date=parse_date(day.isoformat()),
            start_minute=start_minute,
            end_minute=end_minute,
            service_id=service.id,
            service_name=service.name,
            client_name=client.name,
            client_phone=client.phone,
            created_at=created_at,
        )

    async def delete_booking(self, booking_id: str) -> bool:
        return await self._run(self._delete_by_id, appointments, booking_id)

    async def upsert_service(self, service: Service) -> None:
        await self._run(self._upsert_service, service)

    def _upsert_service(self, service: Service) -> None:
        values = {
            "name": service.name,
            "price_label": service.price_label,
            "description": service.description,
            "duration_minutes": service.duration_minutes,
        }
        with self._write_engine.begin() as conn:
            conn.execute(delete(services).where(services.c.id == service.id))
            conn.execute(insert(services).values(id=service.id, **values))

    async def delete_service(self, service_id: str) -> bool:
        return await self._run(self._delete_by_id, services, service_id)

    async def upsert_working_hours_policy(self, policy: WorkingHoursPolicy) -> None:
        await self._run(self._upsert_working_hours_policy, policy)

    def _upsert_working_hours_policy(self, policy: WorkingHoursPolicy) -> None:
        with self._write_engine.begin() as conn:
            conn.execute(delete(working_hours))
            conn.execute(insert(working_hours).values(id=POLICY_ROW_ID, **_policy_values(policy)))

    async def insert_blackout_rule(self, rule: BlackoutRule) -> None:
        await self._run(self._insert_blackout_rule, rule)

    def _insert_blackout_rule(self, rule: BlackoutRule) -> None:
        with self._write_engine.begin() as conn:
            conn.execute(
                insert(blackout_rules).values(
                    id=rule.id,
                    title=rule.title,
                    anchor_date=rule.anchor_date.isoformat(),
                    start_time=format_minutes(rule.start_minute),
                    end_time=format_minutes(rule.end_minute),
                    is_recurring=int(rule.is_recurring),
                    recurrence=rule.recurrence.value,
                    occurrence_count=rule.occurrence_count,
                )
            )

    async def delete_blackout_rule(self, rule_id: str) -> bool:
        return await self._run(self._delete_by_id, blackout_rules, rule_id)

    def _delete_by_id(self, table, row_id: str) -> bool:
        with self._write_engine.begin() as conn:
            deleted = conn.execute(delete(table).where(table.c.id == row_id)).rowcount
        return deleted > 0


def _policy_values(policy: WorkingHoursPolicy) -> dict:
    return {
        "open_time": format_minutes(policy.open_time),
        "close_time": format_minutes(policy.close_time),
        "break_start": format_minutes(policy.break_start) if policy.break_start is not None else None,
        "break_end": format_minutes(policy.break_end) if policy.break_end is not None else None,
        "closed_weekdays": json.dumps(sorted(policy.closed_weekdays)),
    }


def _row_to_service(row: Row) -> Service:
    return Service(
        id=row.id,
        name=row.name,
        duration_minutes=row.duration_minutes,
        price_label=row.price_label or "",
        description=row.description or "",
    )


def _row_to_booking(row: Row) -> BookedInterval:
    return BookedInterval(
        id=row.id,
        date=parse_date(row.date),
        start_minute=parse_time(row.start_time),
        end_minute=parse_time(row.end_time),
        service_id=row.service_id,
        service_name=row.service_name,
        client_name=row.client_name,
        client_phone=row.client_phone or "",
        created_at=pendulum.parse(row.created_at) if row.created_at else None,
    )
