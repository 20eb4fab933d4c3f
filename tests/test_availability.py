from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta, timezone
import logging

import pytest

from mentor_scheduling.availability import AvailabilityProber, CalendarAvailability
from mentor_scheduling.calendar_window import build_month_grid
from mentor_scheduling.clock import FixedClock
from mentor_scheduling.config import SchedulingPolicy
from tests._utils.fakes import FakeSlotSource, make_slot


def _november_clock() -> FixedClock:
    # Istanbul 2026-10-31 12:00 -> window is exactly 2026-11-01 .. 2026-11-30
    return FixedClock(datetime(2026, 10, 31, 9, 0, tzinfo=timezone.utc))


@pytest.mark.asyncio
async def test_scenario_ten_available_three_failing():
    november = build_month_grid(date(2026, 11, 1)).days
    open_days = november[0:20:2]  # 10 days
    failing = [november[1], november[3], november[25]]
    source = FakeSlotSource(
        {day: [make_slot(day, 10)] for day in open_days},
        failing_days=failing,
    )
    prober = AvailabilityProber(source, clock=_november_clock())

    result = await prober.probe_month("mentor-1", "offering-1", november)

    assert len(result) == 30
    assert sum(1 for value in result.values() if value) == 10
    assert sum(1 for value in result.values() if not value) == 20
    for day in failing:
        assert result[day.isoformat()] is False
    for day in open_days:
        assert result[day.isoformat()] is True


@pytest.mark.asyncio
async def test_probe_never_exceeds_five_in_flight_for_31_day_month():
    # 31-day horizon starting 2026-10-01 makes every October day a candidate
    clock = FixedClock(datetime(2026, 9, 30, 9, 0, tzinfo=timezone.utc))
    policy = SchedulingPolicy(booking_horizon_days=31)
    source = FakeSlotSource()
    prober = AvailabilityProber(source, clock=clock, policy=policy)

    result = await prober.probe_month("m", "o", build_month_grid(date(2026, 10, 1)).days)

    assert len(source.calls) == 31
    assert len(result) == 31
    assert source.max_in_flight == 5


@pytest.mark.asyncio
async def test_probe_issues_calls_in_day_order(clock):
    source = FakeSlotSource()
    prober = AvailabilityProber(source, clock=clock)
    days = list(reversed(build_month_grid(date(2026, 10, 1)).days))

    await prober.probe_month("m", "o", days)

    called = [call[2] for call in source.calls]
    assert called == sorted(called)
    assert called[0] == date(2026, 10, 20)
    assert called[-1] == date(2026, 10, 31)


@pytest.mark.asyncio
async def test_probe_skips_days_outside_window_and_month(clock):
    source = FakeSlotSource()
    prober = AvailabilityProber(source, clock=clock)
    days = [date(2026, 10, 19), date(2026, 10, 20), date(2026, 11, 2)]

    result = await prober.probe_month("m", "o", days, visible_month=date(2026, 10, 1))

    assert result == {"2026-10-20": False}
    assert [call[2] for call in source.calls] == [date(2026, 10, 20)]


@pytest.mark.asyncio
async def test_probe_respects_configured_width(clock):
    source = FakeSlotSource()
    prober = AvailabilityProber(source, clock=clock, policy=SchedulingPolicy(probe_batch_size=2))

    await prober.probe_month("m", "o", build_month_grid(date(2026, 11, 1)).days)

    assert source.max_in_flight == 2


@pytest.mark.asyncio
async def test_probe_empty_days(clock):
    prober = AvailabilityProber(FakeSlotSource(), clock=clock)
    assert await prober.probe_month("m", "o", []) == {}


@pytest.mark.asyncio
async def test_probe_logs_failed_days(clock, caplog):
    day = date(2026, 10, 22)
    prober = AvailabilityProber(FakeSlotSource(failing_days=[day]), clock=clock)

    with caplog.at_level(logging.WARNING, logger="mentor_scheduling.availability"):
        result = await prober.probe_month("m", "o", [day])

    assert result == {"2026-10-22": False}
    assert "2026-10-22" in caplog.text


@pytest.mark.asyncio
async def test_fetch_day_slots_returns_empty_on_failure(clock):
    day = date(2026, 10, 22)
    prober = AvailabilityProber(FakeSlotSource(failing_days=[day]), clock=clock)

    assert await prober.fetch_day_slots("m", "o", day) == []


@pytest.mark.asyncio
async def test_calendar_availability_applies_result(clock):
    day = date(2026, 10, 25)
    source = FakeSlotSource({day: [make_slot(day, 9)]})
    view = CalendarAvailability(AvailabilityProber(source, clock=clock), "m", "o")

    assert view.month == date(2026, 10, 1)
    assert await view.refresh() is True
    assert view.loading is False
    assert view.available_keys == frozenset({"2026-10-25"})
    cells = {cell.key: cell for cell in view.day_cells()}
    assert cells["2026-10-25"].available
    assert cells["2026-10-19"].is_today


@pytest.mark.asyncio
async def test_calendar_availability_drops_stale_month(clock):
    gate = asyncio.Event()
    october_day = date(2026, 10, 25)
    november_day = date(2026, 11, 3)
    source = FakeSlotSource(
        {october_day: [make_slot(october_day, 9)], november_day: [make_slot(november_day, 9)]},
        gate=gate,
    )
    view = CalendarAvailability(AvailabilityProber(source, clock=clock), "m", "o")

    october_probe = asyncio.create_task(view.refresh())
    await asyncio.sleep(0)
    assert view.navigate(1) is True
    november_probe = asyncio.create_task(view.refresh())
    await asyncio.sleep(0)
    gate.set()

    assert await october_probe is False
    assert await november_probe is True
    assert view.month == date(2026, 11, 1)
    assert view.available_keys == frozenset({"2026-11-03"})


@pytest.mark.asyncio
async def test_calendar_availability_drops_result_after_mentor_change(clock):
    gate = asyncio.Event()
    day = date(2026, 10, 25)
    source = FakeSlotSource({day: [make_slot(day, 9)]}, gate=gate)
    view = CalendarAvailability(AvailabilityProber(source, clock=clock), "m", "o")

    probe = asyncio.create_task(view.refresh())
    await asyncio.sleep(0)
    view.change_resource("m", "o-2")
    gate.set()

    assert await probe is False
    assert view.availability == {}


def test_calendar_navigation_is_clamped(clock):
    view = CalendarAvailability(AvailabilityProber(FakeSlotSource(), clock=clock), "m", "o")

    assert view.can_go_prev() is False
    assert view.navigate(-1) is False
    assert view.navigate(1) is True
    assert view.can_go_next() is False
    assert view.navigate(1) is False
    assert view.month == date(2026, 11, 1)


def test_window_moves_with_clock(clock):
    prober = AvailabilityProber(FakeSlotSource(), clock=clock)
    first = prober.current_window()
    clock.advance(timedelta(days=1))
    assert prober.current_window().earliest == first.earliest + timedelta(days=1)
