"""
Availability Calculator

Derives a doctor's open "HH:MM" slots for a calendar date from the weekly
schedule, any date exception and the appointments already booked.
Read-only: a slot returned here can still be taken by a concurrent
booking before the patient confirms.
"""

import asyncio
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.config import settings
from app.core.booking.repository import BookingRepository

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def parse_hhmm(value: str) -> int:
    """'09:30' -> 570 (minutes since midnight)."""
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def format_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def day_of_week(day: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (day.weekday() + 1) % 7


def resolve_timezone(name: Optional[str]) -> ZoneInfo:
    """Tenant timezone, falling back to the configured default."""
    try:
        return ZoneInfo(name or settings.default_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {name!r}, using {settings.default_timezone}")
        return ZoneInfo(settings.default_timezone)


def day_bounds(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """[start, end) of a local calendar day, as aware datetimes."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start, end


class AvailabilityCalculator:
    """Computes bookable slots for (doctor, date)."""

    def __init__(self, repository: BookingRepository, slot_minutes: Optional[int] = None):
        self.repository = repository
        self.slot_minutes = slot_minutes or settings.slot_duration_minutes

    async def slots(self, doctor_id: UUID, day: date, tz: ZoneInfo) -> list[str]:
        """
        Open slots for a doctor on a local calendar date.

        Args:
            doctor_id: Doctor
            day: Calendar date in the tenant's timezone
            tz: Tenant timezone

        Returns:
            Ascending "HH:MM" strings; empty when the day is closed or unscheduled
        """
        start, end = day_bounds(day, tz)

        schedule, exception, booked = await asyncio.gather(
            self.repository.get_schedule(doctor_id, day_of_week(day)),
            self.repository.get_exception(doctor_id, day),
            self.repository.booked_times(doctor_id, start, end),
        )

        break_window: Optional[tuple[int, int]] = None

        if exception is not None and exception.is_closed:
            return []
        if exception is not None and exception.has_custom_hours:
            open_at = parse_hhmm(exception.custom_start)
            close_at = parse_hhmm(exception.custom_end)
        elif schedule is not None and schedule.is_active:
            open_at = parse_hhmm(schedule.start_time)
            close_at = parse_hhmm(schedule.end_time)
            if schedule.break_start and schedule.break_end:
                break_window = (parse_hhmm(schedule.break_start), parse_hhmm(schedule.break_end))
        else:
            return []

        taken = {at.astimezone(tz).strftime("%H:%M") for at in booked}

        cutoff: Optional[int] = None
        now_local = _utcnow().astimezone(tz)
        if day < now_local.date():
            return []
        if now_local.date() == day:
            cutoff = now_local.hour * 60 + now_local.minute

        result = []
        minute = open_at
        while minute + self.slot_minutes <= close_at:
            slot = format_hhmm(minute)
            in_break = break_window is not None and break_window[0] <= minute < break_window[1]
            passed = cutoff is not None and minute <= cutoff
            if not in_break and not passed and slot not in taken:
                result.append(slot)
            minute += self.slot_minutes

        return result
