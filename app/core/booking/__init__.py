"""Slot availability and the relational queries behind booking."""

from .availability import AvailabilityCalculator, resolve_timezone
from .repository import BookingRepository

__all__ = ["AvailabilityCalculator", "BookingRepository", "resolve_timezone"]
