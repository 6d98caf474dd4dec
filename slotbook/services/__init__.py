"""
Service layer helpers that orchestrate the store and domain logic.
"""

from .availability import AvailabilityService
from .booking import BookingCommitter
from .staff import StaffService
from .store import BookingStoreProtocol

__all__ = ["AvailabilityService", "BookingCommitter", "BookingStoreProtocol", "StaffService"]
