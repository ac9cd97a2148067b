"""
Live opening status from a weekly schedule.

All arithmetic happens in minutes of local venue time; `now` is expected to
already be in the venue's timezone. Days follow the provider convention,
0 = Sunday ... 6 = Saturday.
"""
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from venuemap.models.places import (
    MINUTES_PER_DAY,
    BusinessStatus,
    OpeningStatus,
    WeeklySchedule,
)

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

# Below this many minutes the label shows a countdown
COUNTDOWN_MINUTES = 60
# Below this many minutes the venue is flagged as closing soon
CLOSING_SOON_MINUTES = 30


def schedule_day(moment: datetime) -> int:
    """Python weekday (Monday = 0) to schedule day (Sunday = 0)."""
    return (moment.weekday() + 1) % 7


def minute_of_day(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


def format_minute(minute: int) -> str:
    minute %= MINUTES_PER_DAY
    return f"{minute // 60:02d}:{minute % 60:02d}"


class OpeningHoursEngine:
    """Computes open/closed state, countdowns and the next change."""

    def status(
        self,
        schedule: Optional[WeeklySchedule],
        now: datetime,
        business_status: BusinessStatus = BusinessStatus.OPERATIONAL,
    ) -> OpeningStatus:
        if business_status == BusinessStatus.CLOSED_PERMANENTLY:
            return OpeningStatus(is_open=False, label="Permanently closed")
        if business_status == BusinessStatus.CLOSED_TEMPORARILY:
            return OpeningStatus(is_open=False, label="Temporarily closed")

        if schedule is None or schedule.is_empty:
            return OpeningStatus(is_open=None, label="Opening hours not available")

        today = schedule_day(now)
        current = minute_of_day(now)

        if self._is_always_open(schedule, today):
            return OpeningStatus(is_open=True, label="Open 24 hours")

        minutes_left = self._minutes_until_close(schedule, today, current)
        if minutes_left is not None:
            return self._open_status(now, minutes_left)

        return self._closed_status(schedule, today, current, now)

    def _is_always_open(self, schedule: WeeklySchedule, today: int) -> bool:
        periods = schedule.periods
        # Provider convention for 24/7: a single period opening Sunday 00:00 with no close
        if len(periods) == 1 and periods[0].close_minute is None and periods[0].open_minute == 0:
            return True
        return any(period.close_minute is None for period in schedule.for_day(today))

    def _minutes_until_close(self, schedule: WeeklySchedule, today: int, current: int) -> Optional[int]:
        candidates: List[int] = []

        for period in schedule.for_day(today):
            if period.close_minute is None:
                continue
            if period.is_overnight:
                if current >= period.open_minute:
                    candidates.append(MINUTES_PER_DAY - current + period.close_minute)
            elif period.open_minute <= current < period.close_minute:
                candidates.append(period.close_minute - current)

        # Yesterday's overnight periods bleed into the early hours of today
        yesterday = (today - 1) % 7
        for period in schedule.for_day(yesterday):
            if period.is_overnight and current < period.close_minute:
                candidates.append(period.close_minute - current)

        return max(candidates) if candidates else None

    def _open_status(self, now: datetime, minutes_left: int) -> OpeningStatus:
        closes_at = _floor_minute(now) + timedelta(minutes=minutes_left)
        if minutes_left < COUNTDOWN_MINUTES:
            label = f"Closes in {minutes_left} min"
        else:
            label = f"Open until {closes_at:%H:%M}"

        return OpeningStatus(
            is_open=True,
            label=label,
            closing_soon=minutes_left < CLOSING_SOON_MINUTES,
            minutes_until_close=minutes_left,
            next_change_minutes=minutes_left,
            next_change_time=closes_at,
        )

    def _closed_status(
        self, schedule: WeeklySchedule, today: int, current: int, now: datetime
    ) -> OpeningStatus:
        next_opening = self._next_opening(schedule, today, current)
        if next_opening is None:
            return OpeningStatus(is_open=False, label="Closed until further notice")

        offset, open_minute = next_opening
        minutes_until_open = offset * MINUTES_PER_DAY + open_minute - current
        opens_at = _floor_minute(now) + timedelta(minutes=minutes_until_open)

        if offset == 0:
            if minutes_until_open < COUNTDOWN_MINUTES:
                label = f"Opens in {minutes_until_open} min"
            else:
                label = f"Opens today at {format_minute(open_minute)}"
        elif offset == 1:
            label = f"Opens tomorrow at {format_minute(open_minute)}"
        else:
            label = f"Opens {DAY_NAMES[(today + offset) % 7]} at {format_minute(open_minute)}"

        return OpeningStatus(
            is_open=False,
            label=label,
            next_change_minutes=minutes_until_open,
            next_change_time=opens_at,
        )

    def _next_opening(self, schedule: WeeklySchedule, today: int, current: int) -> Optional[Tuple[int, int]]:
        """(day offset, open minute) of the earliest future opening within the week."""
        later_today = [p.open_minute for p in schedule.for_day(today) if p.open_minute > current]
        if later_today:
            return 0, min(later_today)

        for offset in range(1, 7):
            openings = [p.open_minute for p in schedule.for_day((today + offset) % 7)]
            if openings:
                return offset, min(openings)
        return None


def _floor_minute(moment: datetime) -> datetime:
    return moment.replace(second=0, microsecond=0)
