"""
Domain-specific exception hierarchy for the slotbook application.
"""


class SlotbookError(Exception):
    """Base class for all application-level errors."""


class InvalidConfiguration(SlotbookError, ValueError):
    """Raised when working hours, services or blackout rules break their invariants."""


class InvalidInput(SlotbookError, ValueError):
    """Raised for malformed dates/times, non-positive durations or unknown ids."""


class NoAvailability(SlotbookError):
    """Raised when a slot is required but the whole booking window is full."""


class SlotNoLongerAvailable(SlotbookError):
    """Raised when the chosen slot was taken or closed before it could be committed."""


class StoreUnavailable(SlotbookError):
    """Raised when the persistence layer cannot be reached."""
