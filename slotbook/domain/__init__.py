"""
Domain layer - Pure business logic without external dependencies.
"""

from .intervals import TimeRange, overlaps
from .models import (
    BlackoutRule,
    BookedInterval,
    Client,
    Recurrence,
    Service,
    Slot,
    WorkingHoursPolicy,
)
from .recurrence import blocked_interval_on
from .slot_calculator import SlotCalculator

__all__ = [
    "BlackoutRule",
    "BookedInterval",
    "Client",
    "Recurrence",
    "Service",
    "Slot",
    "SlotCalculator",
    "TimeRange",
    "WorkingHoursPolicy",
    "blocked_interval_on",
    "overlaps",
]
