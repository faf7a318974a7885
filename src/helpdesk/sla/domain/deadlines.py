"""
SLA Deadline Calculation
========================

Turns "N hours after start" into an absolute due instant.

Business-hours arithmetic runs on a fixed working window
(09:00-17:00 local, 8 hours a day, Monday to Friday) evaluated in the
profile's timezone. The profile's own per-day windows and its holidays
are not consulted; a calendar-aware implementation can replace
``FixedWindowDeadlineCalculator`` behind the ``DeadlineCalculator``
interface without touching the clock.

Wall-clock arithmetic is done on local time, so DST transitions shift
results by the transition offset.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional

from helpdesk.core import ValidationException
from helpdesk.sla.domain.calendar import BusinessHoursProfile, ensure_utc


class DeadlineCalculator(ABC):
    """Interface for deadline arithmetic."""

    @abstractmethod
    def add_duration(
        self,
        start: datetime,
        hours: float,
        business_hours_only: bool = True
    ) -> datetime:
        """Instant ``hours`` (working or wall-clock) after ``start``, in UTC."""

    @abstractmethod
    def business_hours_elapsed(self, start: datetime, end: datetime) -> float:
        """Approximate working hours between two instants."""


class FixedWindowDeadlineCalculator(DeadlineCalculator):
    """
    Deadline arithmetic on a fixed 09:00-17:00 Monday-Friday window.

    Algorithm for business-hours-only durations:

    1. A start outside the window moves to the next working day at 09:00,
       keeping its minutes/seconds (08:30 becomes 09:30).
    2. ``hours`` splits into whole 8-hour working days and a remainder.
    3. Whole days advance the date, counting Monday to Friday only.
    4. The remainder is added as wall-clock time; whatever lands past
       17:00 carries over to 09:00 of the next working day.
    """

    START_HOUR = 9
    END_HOUR = 17
    HOURS_PER_DAY = END_HOUR - START_HOUR

    def __init__(self, tz: Optional[tzinfo] = None):
        self._tz = tz or timezone.utc

    @classmethod
    def for_profile(cls, profile: Optional[BusinessHoursProfile]) -> "FixedWindowDeadlineCalculator":
        if profile is None:
            return cls()
        return cls(profile.tzinfo)

    def add_duration(
        self,
        start: datetime,
        hours: float,
        business_hours_only: bool = True
    ) -> datetime:
        start = ensure_utc(start)
        if not business_hours_only:
            return start + timedelta(hours=hours)

        if hours < 0:
            raise ValidationException(
                "Business-hours durations cannot be negative",
                {"hours": hours}
            )

        local = self._roll_into_window(start.astimezone(self._tz))
        full_days, remainder = divmod(hours, self.HOURS_PER_DAY)
        local = self._advance_working_days(local, int(full_days))
        local = self._add_within_day(local, timedelta(hours=remainder))
        return local.astimezone(timezone.utc)

    def business_hours_elapsed(self, start: datetime, end: datetime) -> float:
        start_local = ensure_utc(start).astimezone(self._tz)
        end_local = ensure_utc(end).astimezone(self._tz)
        if end_local <= start_local:
            return 0.0

        if start_local.date() == end_local.date():
            if self._is_weekend(start_local):
                return 0.0
            return min(_hours(end_local - start_local), float(self.HOURS_PER_DAY))

        total = 0.0
        if not self._is_weekend(start_local):
            if start_local.hour < self.START_HOUR:
                total += self.HOURS_PER_DAY
            elif start_local.hour < self.END_HOUR:
                remaining = self._day_end(start_local) - start_local
                total += min(_hours(remaining), float(self.HOURS_PER_DAY))

        day = start_local.date() + timedelta(days=1)
        while day < end_local.date():
            if day.weekday() < 5:
                total += self.HOURS_PER_DAY
            day += timedelta(days=1)

        if not self._is_weekend(end_local):
            elapsed = _hours(end_local - self._day_start(end_local))
            total += max(0.0, min(elapsed, float(self.HOURS_PER_DAY)))

        return total

    # ========== Window helpers ==========

    @staticmethod
    def _is_weekend(local: datetime) -> bool:
        return local.weekday() >= 5

    def _skip_weekend(self, local: datetime) -> datetime:
        while self._is_weekend(local):
            local += timedelta(days=1)
        return local

    def _day_start(self, local: datetime) -> datetime:
        return local.replace(hour=self.START_HOUR, minute=0, second=0, microsecond=0)

    def _day_end(self, local: datetime) -> datetime:
        return local.replace(hour=self.END_HOUR, minute=0, second=0, microsecond=0)

    def _roll_into_window(self, local: datetime) -> datetime:
        if self._is_weekend(local):
            return self._skip_weekend(local.replace(hour=self.START_HOUR))
        if local.hour < self.START_HOUR:
            return local.replace(hour=self.START_HOUR)
        if local.hour >= self.END_HOUR:
            next_day = local.replace(hour=self.START_HOUR) + timedelta(days=1)
            return self._skip_weekend(next_day)
        return local

    def _advance_working_days(self, local: datetime, days: int) -> datetime:
        while days > 0:
            local += timedelta(days=1)
            if not self._is_weekend(local):
                days -= 1
        return local

    def _add_within_day(self, local: datetime, remainder: timedelta) -> datetime:
        candidate = local + remainder
        day_end = self._day_end(local)
        if candidate < day_end:
            return candidate
        excess = candidate - day_end
        next_day = self._skip_weekend(self._day_start(local) + timedelta(days=1))
        return next_day + excess


def _hours(delta: timedelta) -> float:
    return delta.total_seconds() / 3600
