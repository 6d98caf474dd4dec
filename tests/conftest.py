"""Shared fixtures: an 11:00-21:00 salon closed on Sundays."""

import pendulum
import pytest

from slotbook.adapters.memory_store import InMemoryStore
from slotbook.domain.intervals import parse_time
from slotbook.domain.models import Service, WorkingHoursPolicy

TIMEZONE = "Europe/Madrid"

# Monday 2024-01-01 00:00, so every date in January 2024 lies in the future
BEFORE_JANUARY = pendulum.datetime(2024, 1, 1, 0, 0, tz=TIMEZONE)


@pytest.fixture
def policy():
    return WorkingHoursPolicy(
        open_time=parse_time("11:00"),
        close_time=parse_time("21:00"),
        break_start=parse_time("14:00"),
        break_end=parse_time("15:00"),
        closed_weekdays=frozenset({0}),
    )


@pytest.fixture
def services():
    return [
        Service(id="cut", name="Unisex Cut", duration_minutes=30, price_label="from 12 EUR"),
        Service(id="color", name="Colour", duration_minutes=60),
    ]


@pytest.fixture
def store(policy, services):
    return InMemoryStore(policy=policy, services=services)
