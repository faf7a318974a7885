"""
Tests for working-hours profiles and the business calendar.

Coverage:
- parse_hhmm / DailyHours window checks
- Holiday matching (exact and recurring)
- BusinessHoursProfile construction and validation
- BusinessCalendar.is_working_instant / is_holiday across timezones
"""

from datetime import date, datetime, time, timedelta, timezone

import pytest

from helpdesk.core import ValidationException
from helpdesk.sla.domain import BusinessCalendar, BusinessHoursProfile, Holiday
from helpdesk.sla.domain.calendar import DailyHours, ensure_utc, parse_hhmm

from conftest import utc


class TestParsing:

    def test_parse_hhmm(self):
        assert parse_hhmm("09:30") == time(9, 30)
        assert parse_hhmm(" 17:00 ") == time(17, 0)

    @pytest.mark.parametrize("value", ["9", "25:00", "ab:cd", ""])
    def test_parse_hhmm_rejects_garbage(self, value):
        with pytest.raises(ValidationException):
            parse_hhmm(value)

    def test_ensure_utc_treats_naive_as_utc(self):
        naive = datetime(2024, 1, 2, 10, 0)
        assert ensure_utc(naive) == utc(2024, 1, 2, 10, 0)

    def test_ensure_utc_converts_offsets(self):
        plus_two = datetime(2024, 1, 2, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        assert ensure_utc(plus_two) == utc(2024, 1, 2, 10, 0)
        assert ensure_utc(plus_two).tzinfo == timezone.utc


class TestDailyHours:

    def test_window_is_inclusive_at_minute_resolution(self):
        window = DailyHours.parse("09:00", "17:00")
        assert window.contains(time(9, 0))
        assert window.contains(time(17, 0, 59))
        assert not window.contains(time(8, 59))
        assert not window.contains(time(17, 1))


class TestHoliday:

    def test_exact_holiday_matches_only_that_date(self):
        holiday = Holiday(date=date(2024, 12, 25))
        assert holiday.matches(date(2024, 12, 25))
        assert not holiday.matches(date(2025, 12, 25))

    def test_recurring_holiday_ignores_year(self):
        holiday = Holiday(date=date(2000, 1, 1), recurring=True, name="New Year")
        assert holiday.matches(date(2024, 1, 1))
        assert holiday.matches(date(2031, 1, 1))
        assert not holiday.matches(date(2024, 1, 2))


class TestBusinessHoursProfile:

    def test_from_strings_leaves_missing_days_closed(self):
        profile = BusinessHoursProfile.from_strings(
            "Short week",
            hours={"monday": ["10:00", "14:00"], "tuesday": None},
        )
        assert profile.hours_for(0) == DailyHours(time(10), time(14))
        assert profile.hours_for(1) is None
        assert profile.hours_for(6) is None

    def test_unknown_weekday_is_rejected(self):
        with pytest.raises(ValidationException):
            BusinessHoursProfile.from_strings("Bad", hours={"funday": ["09:00", "17:00"]})

    def test_unknown_timezone_is_rejected(self):
        with pytest.raises(ValidationException):
            BusinessHoursProfile(name="Bad", timezone="Mars/Olympus_Mons")

    def test_standard_profile(self):
        profile = BusinessHoursProfile.standard()
        assert all(profile.hours_for(day) is not None for day in range(5))
        assert profile.hours_for(5) is None
        assert profile.hours_for(6) is None


class TestBusinessCalendar:

    @pytest.fixture
    def profile(self):
        return BusinessHoursProfile.standard()

    def test_working_instant_inside_window(self, profile):
        assert BusinessCalendar.is_working_instant(utc(2024, 1, 2, 10, 0), profile)

    def test_window_end_is_inclusive(self, profile):
        assert BusinessCalendar.is_working_instant(utc(2024, 1, 2, 17, 0), profile)
        assert not BusinessCalendar.is_working_instant(utc(2024, 1, 2, 17, 1), profile)

    def test_weekend_is_not_working(self, profile):
        assert not BusinessCalendar.is_working_instant(utc(2024, 1, 6, 11, 0), profile)

    def test_window_is_evaluated_in_profile_timezone(self):
        profile = BusinessHoursProfile.standard("America/New_York")
        # 14:00 UTC is 09:00 EST
        assert BusinessCalendar.is_working_instant(utc(2024, 1, 2, 14, 0), profile)
        assert not BusinessCalendar.is_working_instant(utc(2024, 1, 2, 13, 0), profile)

    def test_is_holiday_by_date(self):
        profile = BusinessHoursProfile.from_strings(
            "With holidays", holidays=[Holiday(date=date(2024, 1, 3))]
        )
        assert BusinessCalendar.is_holiday(date(2024, 1, 3), profile)
        assert not BusinessCalendar.is_holiday(date(2024, 1, 4), profile)

    def test_is_holiday_uses_local_date_of_instant(self):
        profile = BusinessHoursProfile.from_strings(
            "Tokyo", timezone="Asia/Tokyo", holidays=[Holiday(date=date(2024, 1, 3))]
        )
        # 20:00 UTC on Jan 2 is 05:00 on Jan 3 in Tokyo
        assert BusinessCalendar.is_holiday(utc(2024, 1, 2, 20, 0), profile)
        assert not BusinessCalendar.is_holiday(utc(2024, 1, 2, 10, 0), profile)
