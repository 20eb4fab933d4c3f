"""
Calendar window math for the reschedule and booking calendars.

Everything here is a pure function of its arguments. "Today" is the
calendar date of ``now`` in the lesson timezone, so a student in the
small hours of the morning UTC still sees the local day.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import AbstractSet, List, Optional, Tuple

import pytz

DEFAULT_TIMEZONE = "Europe/Istanbul"
DEFAULT_HORIZON_DAYS = 30


@dataclass(frozen=True)
class CalendarWindow:
    earliest: date
    latest: date

    def __contains__(self, day: object) -> bool:
        return isinstance(day, date) and self.earliest <= day <= self.latest


@dataclass(frozen=True)
class MonthGrid:
    month: date
    days: Tuple[date, ...]
    leading_padding: int


@dataclass(frozen=True)
class DayCell:
    day: date
    key: str
    selectable: bool
    available: bool
    is_today: bool


def get_timezone(tz_str: Optional[str]) -> pytz.BaseTzInfo:
    """Get timezone object, with fallback to default."""
    try:
        return pytz.timezone(tz_str or DEFAULT_TIMEZONE)
    except pytz.UnknownTimeZoneError:
        return pytz.timezone(DEFAULT_TIMEZONE)


def local_today(now: datetime, tz: Optional[str] = None) -> date:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(get_timezone(tz)).date()


def day_key(day: date) -> str:
    return day.strftime("%Y-%m-%d")


def month_start(day: date) -> date:
    return day.replace(day=1)


def add_months(month: date, count: int) -> date:
    index = month.year * 12 + (month.month - 1) + count
    return date(index // 12, index % 12 + 1, 1)


def compute_window(
    now: datetime,
    *,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
    tz: Optional[str] = None,
) -> CalendarWindow:
    """
    Selectable booking range: tomorrow through ``horizon_days`` days inclusive.

    Args:
        now: Current instant; naive values are read as UTC.
        horizon_days: Number of bookable days, starting tomorrow.
        tz: Timezone whose midnight defines "tomorrow".
    """
    if horizon_days < 1:
        raise ValueError("horizon_days must be >= 1")
    earliest = local_today(now, tz) + timedelta(days=1)
    return CalendarWindow(earliest=earliest, latest=earliest + timedelta(days=horizon_days - 1))


def is_selectable(day: date, visible_month: date, window: CalendarWindow) -> bool:
    if (day.year, day.month) != (visible_month.year, visible_month.month):
        return False
    return day in window


def build_month_grid(visible_month: date) -> MonthGrid:
    """Every day of the month, padded so the first day sits under its Monday-first column."""
    first = month_start(visible_month)
    _, days_in_month = calendar.monthrange(first.year, first.month)
    days = tuple(first + timedelta(days=offset) for offset in range(days_in_month))
    return MonthGrid(month=first, days=days, leading_padding=(first.isoweekday() + 6) % 7)


def candidate_days(visible_month: date, window: CalendarWindow) -> List[date]:
    grid = build_month_grid(visible_month)
    return [day for day in grid.days if is_selectable(day, grid.month, window)]


def initial_month(window: CalendarWindow) -> date:
    return month_start(window.earliest)


def can_go_prev(visible_month: date, window: CalendarWindow) -> bool:
    return month_start(visible_month) > month_start(window.earliest)


def can_go_next(visible_month: date, window: CalendarWindow) -> bool:
    return add_months(month_start(visible_month), 1) <= month_start(window.latest)


def build_day_cells(
    grid: MonthGrid,
    window: CalendarWindow,
    available_keys: AbstractSet[str],
    today: date,
) -> List[DayCell]:
    cells = []
    for day in grid.days:
        key = day_key(day)
        selectable = is_selectable(day, grid.month, window)
        cells.append(
            DayCell(
                day=day,
                key=key,
                selectable=selectable,
                # Outside the window a day never shows as bookable
                available=selectable and key in available_keys,
                is_today=day == today,
            )
        )
    return cells
