"""
slotbook - self-service appointment booking for a single-location business.
"""

__version__ = "0.1.0"
