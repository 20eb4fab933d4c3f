from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from mentor_scheduling.calendar_window import (
    CalendarWindow,
    add_months,
    build_day_cells,
    build_month_grid,
    can_go_next,
    can_go_prev,
    candidate_days,
    compute_window,
    day_key,
    get_timezone,
    initial_month,
    is_selectable,
    local_today,
)


def test_compute_window_starts_tomorrow_and_spans_thirty_days():
    window = compute_window(datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc))

    assert window.earliest == date(2026, 10, 20)
    assert window.latest == date(2026, 11, 18)
    assert (window.latest - window.earliest).days + 1 == 30


def test_compute_window_holds_for_every_hour_of_a_year():
    start = datetime(2026, 1, 1, 0, 30, tzinfo=timezone.utc)
    for offset in range(0, 366 * 24, 7):
        now = start + timedelta(hours=offset)
        window = compute_window(now, tz="Europe/Istanbul")
        today = local_today(now, "Europe/Istanbul")
        assert window.earliest == today + timedelta(days=1)
        assert window.latest == window.earliest + timedelta(days=29)


def test_compute_window_uses_local_midnight():
    # 22:30 UTC is already 01:30 the next day in Istanbul
    now = datetime(2026, 10, 19, 22, 30, tzinfo=timezone.utc)

    assert compute_window(now, tz="Europe/Istanbul").earliest == date(2026, 10, 21)
    assert compute_window(now, tz="UTC").earliest == date(2026, 10, 20)


def test_compute_window_naive_now_is_utc():
    assert compute_window(datetime(2026, 10, 19, 9, 0), tz="UTC").earliest == date(2026, 10, 20)


def test_compute_window_custom_horizon():
    window = compute_window(datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc), horizon_days=7)
    assert window.latest == date(2026, 10, 26)


def test_compute_window_rejects_empty_horizon():
    with pytest.raises(ValueError):
        compute_window(datetime(2026, 10, 19, tzinfo=timezone.utc), horizon_days=0)


def test_unknown_timezone_falls_back_to_default():
    assert get_timezone("Mars/Olympus_Mons").zone == "Europe/Istanbul"


def test_is_selectable_rejects_days_outside_window():
    window = CalendarWindow(earliest=date(2026, 10, 20), latest=date(2026, 11, 18))

    assert is_selectable(date(2026, 10, 19), date(2026, 10, 1), window) is False
    assert is_selectable(date(2026, 11, 19), date(2026, 11, 1), window) is False
    assert is_selectable(date(2026, 10, 20), date(2026, 10, 1), window) is True
    assert is_selectable(date(2026, 11, 18), date(2026, 11, 1), window) is True


def test_is_selectable_requires_visible_month():
    window = CalendarWindow(earliest=date(2026, 10, 20), latest=date(2026, 11, 18))

    assert is_selectable(date(2026, 11, 2), date(2026, 10, 1), window) is False
    assert is_selectable(date(2026, 11, 2), date(2026, 11, 15), window) is True


@pytest.mark.parametrize(
    ("month", "length", "padding"),
    [
        (date(2026, 6, 1), 30, 0),  # Monday
        (date(2026, 10, 1), 31, 3),  # Thursday
        (date(2026, 11, 1), 30, 6),  # Sunday
        (date(2026, 2, 14), 28, 6),
        (date(2028, 2, 1), 29, 1),  # leap year, Tuesday
    ],
)
def test_build_month_grid(month, length, padding):
    grid = build_month_grid(month)

    assert grid.month == month.replace(day=1)
    assert len(grid.days) == length
    assert grid.days[0] == month.replace(day=1)
    assert grid.leading_padding == padding
    assert all(day.month == month.month for day in grid.days)


def test_candidate_days_clips_to_window():
    window = CalendarWindow(earliest=date(2026, 10, 20), latest=date(2026, 11, 18))

    october = candidate_days(date(2026, 10, 1), window)
    november = candidate_days(date(2026, 11, 1), window)

    assert october[0] == date(2026, 10, 20) and october[-1] == date(2026, 10, 31)
    assert len(october) + len(november) == 30


def test_month_navigation_is_clamped_to_window():
    window = CalendarWindow(earliest=date(2026, 10, 20), latest=date(2026, 11, 18))

    assert initial_month(window) == date(2026, 10, 1)
    assert can_go_prev(date(2026, 10, 1), window) is False
    assert can_go_next(date(2026, 10, 1), window) is True
    assert can_go_prev(date(2026, 11, 1), window) is True
    assert can_go_next(date(2026, 11, 1), window) is False


def test_add_months_wraps_years():
    assert add_months(date(2026, 12, 1), 1) == date(2027, 1, 1)
    assert add_months(date(2026, 1, 1), -1) == date(2025, 12, 1)


def test_build_day_cells_flags():
    window = CalendarWindow(earliest=date(2026, 10, 20), latest=date(2026, 11, 18))
    grid = build_month_grid(date(2026, 10, 1))
    # a stale "available" key outside the window must not light up
    cells = build_day_cells(grid, window, {"2026-10-22", "2026-10-05"}, date(2026, 10, 19))
    by_key = {cell.key: cell for cell in cells}

    assert len(cells) == 31
    assert by_key["2026-10-22"].selectable and by_key["2026-10-22"].available
    assert not by_key["2026-10-05"].available
    assert not by_key["2026-10-19"].selectable
    assert by_key["2026-10-19"].is_today
    assert by_key["2026-10-21"].selectable and not by_key["2026-10-21"].available


def test_day_key_format():
    assert day_key(date(2026, 3, 7)) == "2026-03-07"
