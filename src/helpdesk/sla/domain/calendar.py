"""
Business Calendar
=================

Working-hours profiles and holidays for an organization.

A profile maps each weekday to an optional (start, end) window of local
wall-clock time; weekdays without a window are closed. Everything here is
pure computation with no I/O.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone, tzinfo
from typing import Dict, Iterable, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from helpdesk.core import ValidationException

WEEKDAY_NAMES = (
    "monday", "tuesday", "wednesday", "thursday",
    "friday", "saturday", "sunday",
)


def parse_hhmm(value: str) -> time:
    """Parse an "HH:MM" string into a time."""
    try:
        hours, minutes = value.strip().split(":")
        return time(int(hours), int(minutes))
    except (AttributeError, ValueError) as e:
        raise ValidationException(f"Invalid time of day: {value!r}") from e


def ensure_utc(instant: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


@dataclass(frozen=True)
class DailyHours:
    """Working window of a single weekday."""

    start: time
    end: time

    @classmethod
    def parse(cls, start: str, end: str) -> "DailyHours":
        return cls(parse_hhmm(start), parse_hhmm(end))

    def contains(self, moment: time) -> bool:
        # Minute resolution, inclusive on both ends
        minute = moment.hour * 60 + moment.minute
        return (self.start.hour * 60 + self.start.minute
                <= minute
                <= self.end.hour * 60 + self.end.minute)


@dataclass(frozen=True)
class Holiday:
    """
    A day off. Recurring holidays match the same month/day every year,
    whatever year they were stored with.
    """

    date: date
    recurring: bool = False
    name: Optional[str] = None

    def matches(self, day: date) -> bool:
        if self.recurring:
            return (self.date.month, self.date.day) == (day.month, day.day)
        return self.date == day


@dataclass(frozen=True)
class BusinessHoursProfile:
    """An organization's working-hours configuration."""

    name: str
    timezone: str = "UTC"
    weekly_hours: Mapping[int, DailyHours] = field(default_factory=dict)
    holidays: Tuple[Holiday, ...] = ()
    id: Optional[int] = None
    organization_id: Optional[int] = None

    def __post_init__(self):
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValidationException(f"Unknown timezone: {self.timezone!r}") from e

    @property
    def tzinfo(self) -> tzinfo:
        return ZoneInfo(self.timezone)

    def hours_for(self, weekday: int) -> Optional[DailyHours]:
        """Window for a weekday (Monday=0), or None when closed."""
        return self.weekly_hours.get(weekday)

    @classmethod
    def from_strings(
        cls,
        name: str,
        timezone: str = "UTC",
        hours: Optional[Mapping[str, Optional[Iterable[str]]]] = None,
        holidays: Iterable[Holiday] = (),
        **kwargs,
    ) -> "BusinessHoursProfile":
        """
        Build a profile from ``{"monday": ["09:00", "17:00"], ...}``.

        Missing or null weekdays are closed.
        """
        weekly: Dict[int, DailyHours] = {}
        for day_name, window in (hours or {}).items():
            key = day_name.lower()
            if key not in WEEKDAY_NAMES:
                raise ValidationException(f"Unknown weekday: {day_name!r}")
            if not window:
                continue
            start, end = window
            weekly[WEEKDAY_NAMES.index(key)] = DailyHours.parse(start, end)
        return cls(
            name=name,
            timezone=timezone,
            weekly_hours=weekly,
            holidays=tuple(holidays),
            **kwargs,
        )

    @classmethod
    def standard(cls, timezone: str = "UTC") -> "BusinessHoursProfile":
        """Monday to Friday, 09:00-17:00."""
        window = DailyHours(time(9, 0), time(17, 0))
        return cls(
            name="Standard",
            timezone=timezone,
            weekly_hours={weekday: window for weekday in range(5)},
        )


class BusinessCalendar:
    """Stateless queries against a BusinessHoursProfile."""

    @staticmethod
    def is_working_instant(instant: datetime, profile: BusinessHoursProfile) -> bool:
        """
        True if ``instant``, seen in the profile's timezone, falls within
        that weekday's configured window.
        """
        local = ensure_utc(instant).astimezone(profile.tzinfo)
        window = profile.hours_for(local.weekday())
        if window is None:
            return False
        return window.contains(local.time())

    @staticmethod
    def is_holiday(day: date, profile: BusinessHoursProfile) -> bool:
        """True if an exact or a recurring holiday falls on ``day``."""
        if isinstance(day, datetime):
            day = ensure_utc(day).astimezone(profile.tzinfo).date()
        return any(holiday.matches(day) for holiday in profile.holidays)
