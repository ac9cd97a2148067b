"""Tests for the opening hours status engine."""
from datetime import datetime

import pytest

from venuemap.models.places import BusinessStatus, Period, WeeklySchedule
from venuemap.services.opening_hours import OpeningHoursEngine, format_minute, schedule_day

# January 2024: the 5th is a Friday
FRIDAY = 5
SATURDAY = 6
SUNDAY = 0


def at(day_of_month: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 1, day_of_month, hour, minute)


def schedule(*periods, weekday_text=None) -> WeeklySchedule:
    return WeeklySchedule(
        periods=[Period(day=d, open_minute=o, close_minute=c) for d, o, c in periods],
        weekday_text=weekday_text or [],
    )


@pytest.fixture
def engine():
    return OpeningHoursEngine()


def test_schedule_day_uses_sunday_zero():
    assert schedule_day(at(5, 12)) == FRIDAY
    assert schedule_day(at(6, 12)) == SATURDAY
    assert schedule_day(at(7, 12)) == SUNDAY


def test_format_minute():
    assert format_minute(0) == "00:00"
    assert format_minute(1290) == "21:30"
    assert format_minute(1440) == "00:00"


class TestOvernight:
    def test_open_late_friday(self, engine):
        status = engine.status(schedule((FRIDAY, 22 * 60, 2 * 60)), at(5, 23, 30))
        assert status.is_open is True
        assert status.minutes_until_close == 150
        assert status.label == "Open until 02:00"
        assert status.next_change_time == at(6, 2)

    def test_friday_period_bleeds_into_saturday(self, engine):
        status = engine.status(schedule((FRIDAY, 22 * 60, 2 * 60)), at(6, 1, 0))
        assert status.is_open is True
        assert status.minutes_until_close == 60

    def test_saturday_period_bleeds_into_sunday(self, engine):
        status = engine.status(schedule((SATURDAY, 20 * 60, 60)), at(7, 0, 40))
        assert status.is_open is True
        assert status.minutes_until_close == 20
        assert status.closing_soon is True
        assert status.label == "Closes in 20 min"

    def test_closed_after_overnight_ends(self, engine):
        status = engine.status(schedule((FRIDAY, 22 * 60, 2 * 60)), at(6, 3, 0))
        assert status.is_open is False


class TestSameDay:
    def test_open_with_countdown(self, engine):
        status = engine.status(schedule((FRIDAY, 8 * 60, 19 * 60)), at(5, 18, 15))
        assert status.is_open is True
        assert status.minutes_until_close == 45
        assert status.closing_soon is False
        assert status.label == "Closes in 45 min"

    def test_close_minute_is_exclusive(self, engine):
        status = engine.status(schedule((FRIDAY, 8 * 60, 19 * 60), (SATURDAY, 8 * 60, 19 * 60)), at(5, 19, 0))
        assert status.is_open is False
        assert status.label == "Opens tomorrow at 08:00"
        assert status.next_change_minutes == 13 * 60

    def test_split_hours_reopen_later_today(self, engine):
        hours = schedule((FRIDAY, 12 * 60, 15 * 60), (FRIDAY, 19 * 60, 23 * 60))
        status = engine.status(hours, at(5, 16, 0))
        assert status.is_open is False
        assert status.label == "Opens today at 19:00"
        assert status.next_change_minutes == 180
        assert status.next_change_time == at(5, 19)

    def test_opens_soon_countdown(self, engine):
        status = engine.status(schedule((FRIDAY, 19 * 60, 23 * 60)), at(5, 18, 35))
        assert status.label == "Opens in 25 min"

    def test_opens_on_named_weekday(self, engine):
        # Friday noon, next opening Monday
        status = engine.status(schedule((1, 9 * 60, 13 * 60)), at(5, 12, 0))
        assert status.is_open is False
        assert status.label == "Opens Monday at 09:00"
        assert status.next_change_minutes == 3 * 1440 - 3 * 60


class TestUnknownAndAlwaysOpen:
    def test_missing_schedule_is_unknown(self, engine):
        status = engine.status(None, at(5, 12))
        assert status.is_open is None

    def test_empty_schedule_is_unknown(self, engine):
        assert engine.status(WeeklySchedule(), at(5, 12)).is_open is None

    def test_text_only_schedule_is_unknown(self, engine):
        status = engine.status(schedule(weekday_text=["venerdì: 09:00–18:00"]), at(5, 12))
        assert status.is_open is None
        assert status.label == "Opening hours not available"

    def test_no_opening_left_in_the_week(self, engine):
        # Open on Fridays only, asked after Friday's close
        status = engine.status(schedule((FRIDAY, 9 * 60, 18 * 60)), at(5, 19, 0))
        assert status.is_open is False
        assert status.next_change_minutes is None
        assert status.next_change_time is None
        assert status.label == "Closed until further notice"

    def test_weekly_opening_six_days_ahead(self, engine):
        status = engine.status(schedule((SATURDAY, 9 * 60, 18 * 60)), at(7, 12, 0))
        assert status.label == "Opens Saturday at 09:00"
        assert status.next_change_minutes == 6 * 1440 - 3 * 60

    def test_round_the_clock_convention(self, engine):
        status = engine.status(schedule((SUNDAY, 0, None)), at(3, 4, 0))
        assert status.is_open is True
        assert status.label == "Open 24 hours"

    def test_open_ended_period_today(self, engine):
        status = engine.status(schedule((FRIDAY, 6 * 60, None), (SATURDAY, 6 * 60, 20 * 60)), at(5, 23))
        assert status.is_open is True


class TestBusinessStatus:
    def test_permanently_closed_overrides_schedule(self, engine):
        status = engine.status(
            schedule((FRIDAY, 0, None)), at(5, 12), BusinessStatus.CLOSED_PERMANENTLY
        )
        assert status.is_open is False
        assert status.label == "Permanently closed"

    def test_temporarily_closed(self, engine):
        status = engine.status(None, at(5, 12), BusinessStatus.CLOSED_TEMPORARILY)
        assert status.is_open is False
        assert status.label == "Temporarily closed"
