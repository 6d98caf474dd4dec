"""
Tests for the BookingCommitter, including concurrent commits.
"""

import asyncio
import itertools

import pendulum
import pytest

from slotbook.adapters.memory_store import InMemoryStore
from slotbook.domain.exceptions import InvalidInput, SlotNoLongerAvailable, StoreUnavailable
from slotbook.domain.intervals import overlaps
from slotbook.domain.models import BlackoutRule, Client, Service
from slotbook.services.booking import BookingCommitter

from .conftest import BEFORE_JANUARY, TIMEZONE

TUESDAY = pendulum.date(2024, 1, 2)


class FailingWriteStore(InMemoryStore):
    """Store whose conditional insert always fails."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.insert_calls = 0

    async def insert_booking_if_free(self, *args, **kwargs):
        self.insert_calls += 1
        raise StoreUnavailable("write timed out")


class ReadTrackingStore(InMemoryStore):
    """Store that records how many configuration reads overlap."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.in_flight = 0
        self.max_in_flight = 0

    async def _tracked(self, read):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            return await read()
        finally:
            self.in_flight -= 1

    async def get_working_hours_policy(self):
        return await self._tracked(super().get_working_hours_policy)

    async def list_blackout_rules(self):
        return await self._tracked(super().list_blackout_rules)


def _commit(store, service_id, day, start, name="Ana", now=BEFORE_JANUARY, **kwargs):
    committer = BookingCommitter(store, timezone=TIMEZONE, retry_backoff_seconds=0, **kwargs)
    return committer.commit(service_id, day, start, Client(name=name, phone="600000000"), now=now)


class TestCommit:
    """Tests for single commits."""

    def test_commit_persists_interval(self, store):
        booking = asyncio.run(_commit(store, "color", "2024-01-02", "12:00"))

        assert booking.date == TUESDAY
        assert (booking.start_time, booking.end_time) == ("12:00", "13:00")
        assert booking.service_name == "Colour"
        assert booking.client_name == "Ana"
        assert booking.created_at is not None
        assert asyncio.run(store.list_booked_intervals(TUESDAY)) == [booking]

    def test_second_commit_for_same_slot_fails(self, store):
        asyncio.run(_commit(store, "cut", "2024-01-02", "12:00"))

        with pytest.raises(SlotNoLongerAvailable):
            asyncio.run(_commit(store, "cut", "2024-01-02", "12:00", name="Luis"))

    def test_overlapping_longer_service_fails(self, store):
        asyncio.run(_commit(store, "cut", "2024-01-02", "12:30"))

        with pytest.raises(SlotNoLongerAvailable):
            asyncio.run(_commit(store, "color", "2024-01-02", "12:00", name="Luis"))

    def test_adjacent_commits_succeed(self, store):
        asyncio.run(_commit(store, "cut", "2024-01-02", "12:00"))
        asyncio.run(_commit(store, "cut", "2024-01-02", "12:30", name="Luis"))

        assert len(asyncio.run(store.list_booked_intervals(TUESDAY))) == 2

    def test_start_in_break_is_rejected(self, store):
        with pytest.raises(SlotNoLongerAvailable, match="no longer offered"):
            asyncio.run(_commit(store, "color", "2024-01-02", "13:30"))

    def test_start_off_grid_is_rejected(self, store):
        with pytest.raises(SlotNoLongerAvailable):
            asyncio.run(_commit(store, "cut", "2024-01-02", "12:15"))

    def test_closed_day_is_rejected(self, store):
        with pytest.raises(SlotNoLongerAvailable):
            asyncio.run(_commit(store, "cut", "2024-01-07", "12:00"))

    def test_blackout_added_after_query_is_rejected(self, store):
        rule = BlackoutRule(id="r1", title="Dentist", anchor_date=TUESDAY, start_minute=720, end_minute=780)
        asyncio.run(store.insert_blackout_rule(rule))

        with pytest.raises(SlotNoLongerAvailable):
            asyncio.run(_commit(store, "cut", "2024-01-02", "12:30"))

    def test_past_date_is_rejected(self, store):
        """A date that has already passed is never bookable."""
        now = pendulum.datetime(2024, 1, 3, 9, 0, tz=TIMEZONE)

        with pytest.raises(SlotNoLongerAvailable, match="no longer offered"):
            asyncio.run(_commit(store, "cut", "2024-01-02", "12:00", now=now))
        assert asyncio.run(store.list_booked_intervals(TUESDAY)) == []

    def test_today_respects_cutoff(self, store):
        """On the current date a start must not have passed, advance notice included."""
        now = pendulum.datetime(2024, 1, 2, 12, 10, tz=TIMEZONE)

        with pytest.raises(SlotNoLongerAvailable):
            asyncio.run(_commit(store, "cut", "2024-01-02", "12:00", now=now))
        with pytest.raises(SlotNoLongerAvailable):
            asyncio.run(_commit(store, "cut", "2024-01-02", "13:00", now=now, min_advance_minutes=60))

        booked = asyncio.run(_commit(store, "cut", "2024-01-02", "13:30", now=now, min_advance_minutes=60))
        assert booked.start_time == "13:30"

    def test_unknown_service(self, store):
        with pytest.raises(InvalidInput, match="Unknown service"):
            asyncio.run(_commit(store, "perm", "2024-01-02", "12:00"))

    def test_non_positive_duration(self, policy):
        store = InMemoryStore(policy=policy, services=[Service(id="bad", name="Broken", duration_minutes=0)])

        with pytest.raises(InvalidInput, match="non-positive"):
            asyncio.run(_commit(store, "bad", "2024-01-02", "12:00"))

    @pytest.mark.parametrize("day,start", [("2024-1-2", "12:00"), ("2024-01-02", "25:00"), ("2024-01-02", "noon")])
    def test_malformed_input(self, store, day, start):
        with pytest.raises(InvalidInput):
            asyncio.run(_commit(store, "cut", day, start))
        assert asyncio.run(store.list_booked_intervals(TUESDAY)) == []

    def test_write_failure_is_not_retried(self, policy, services):
        store = FailingWriteStore(policy=policy, services=services)

        with pytest.raises(StoreUnavailable):
            asyncio.run(_commit(store, "cut", "2024-01-02", "12:00"))
        assert store.insert_calls == 1


    def test_policy_and_rules_are_read_together(self, policy, services):
        store = ReadTrackingStore(policy=policy, services=services)

        asyncio.run(_commit(store, "cut", "2024-01-02", "12:00"))

        assert store.max_in_flight == 2


class TestConcurrentCommits:
    """Tests for racing commits."""

    def test_commit_race_has_single_winner(self, policy, services):
        """Two clients racing for the same slot: exactly one succeeds."""
        store = InMemoryStore(policy=policy, services=services, latency_seconds=0.01)

        async def race():
            return await asyncio.gather(
                _commit(store, "cut", "2024-01-02", "12:00", name="Ana"),
                _commit(store, "cut", "2024-01-02", "12:00", name="Luis"),
                return_exceptions=True,
            )

        results = asyncio.run(race())

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], SlotNoLongerAvailable)
        assert len(asyncio.run(store.list_booked_intervals(TUESDAY))) == 1

    def test_store_can_be_raced_again_in_a_new_event_loop(self, policy, services):
        """A store reused across asyncio.run calls keeps reporting conflicts, not loop errors."""
        store = InMemoryStore(policy=policy, services=services, latency_seconds=0.01)

        async def race(start):
            return await asyncio.gather(
                _commit(store, "cut", "2024-01-02", start, name="Ana"),
                _commit(store, "cut", "2024-01-02", start, name="Luis"),
                return_exceptions=True,
            )

        for start in ("12:00", "12:00", "16:00"):
            results = asyncio.run(race(start))

            errors = [r for r in results if isinstance(r, Exception)]
            assert all(isinstance(e, SlotNoLongerAvailable) for e in errors), errors

        assert [b.start_time for b in asyncio.run(store.list_booked_intervals(TUESDAY))] == ["12:00", "16:00"]

    def test_concurrent_commits_never_overlap(self, policy, services):
        """Many overlapping requests at once still leave a conflict-free day."""
        store = InMemoryStore(policy=policy, services=services, latency_seconds=0.001)
        requests = [
            ("cut", "11:00"), ("color", "11:00"), ("cut", "11:30"), ("color", "11:30"),
            ("cut", "12:00"), ("color", "12:00"), ("cut", "12:30"), ("color", "13:00"),
        ]

        async def burst():
            return await asyncio.gather(
                *(_commit(store, service_id, "2024-01-02", start, name=f"client{i}")
                  for i, (service_id, start) in enumerate(requests)),
                return_exceptions=True,
            )

        results = asyncio.run(burst())

        assert all(
            not isinstance(r, Exception) or isinstance(r, SlotNoLongerAvailable) for r in results
        )
        bookings = asyncio.run(store.list_booked_intervals(TUESDAY))
        assert bookings
        for a, b in itertools.combinations(bookings, 2):
            assert not overlaps(a.start_minute, a.end_minute, b.start_minute, b.end_minute)
