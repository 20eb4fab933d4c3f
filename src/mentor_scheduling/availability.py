"""
Month availability probing for the reschedule and booking calendars.

AvailabilityProber fans out one slot lookup per selectable day through a
fixed-width worker pool. A day whose lookup fails is reported as having no
open slots; the probe itself never fails because of a single day.

CalendarAvailability owns the day -> availability map of the calendar on
screen and drops results of probes issued for a month or mentor/offering
that is no longer displayed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import logging
from typing import TYPE_CHECKING, Dict, FrozenSet, Iterable, List, Optional

from .calendar_window import (
    CalendarWindow,
    DayCell,
    add_months,
    build_day_cells,
    build_month_grid,
    can_go_next,
    can_go_prev,
    compute_window,
    day_key,
    initial_month,
    is_selectable,
    local_today,
    month_start,
)
from .clock import Clock, SystemClock
from .concurrency import bounded_map
from .gateways import SlotSource
from .schemas import TimeSlot

if TYPE_CHECKING:
    from .config import SchedulingPolicy

logger = logging.getLogger(__name__)


class AvailabilityProber:
    """Finds which days of a month have at least one open slot."""

    def __init__(
        self,
        slot_source: SlotSource,
        *,
        clock: Optional[Clock] = None,
        policy: Optional["SchedulingPolicy"] = None,
    ) -> None:
        if policy is None:
            from .config import DEFAULT_SCHEDULING_POLICY

            policy = DEFAULT_SCHEDULING_POLICY
        self.slot_source = slot_source
        self.clock = clock or SystemClock()
        self.policy = policy

    @property
    def batch_size(self) -> int:
        return self.policy.probe_batch_size

    def current_window(self) -> CalendarWindow:
        return compute_window(
            self.clock.now(),
            horizon_days=self.policy.booking_horizon_days,
            tz=self.policy.timezone,
        )

    def today(self) -> date:
        return local_today(self.clock.now(), self.policy.timezone)

    async def probe_month(
        self,
        resource_id: str,
        offering_id: str,
        days: Iterable[date],
        visible_month: Optional[date] = None,
    ) -> Dict[str, bool]:
        """
        Probe each selectable day and report whether it has open slots.

        Args:
            resource_id: Mentor user id whose calendar is shown.
            offering_id: Offering whose duration and buffers shape the slots.
            days: Candidate days; anything outside the booking window or the
                visible month is skipped.
            visible_month: Month on screen; defaults to the month of the
                earliest candidate day.

        Returns:
            Map of ``YYYY-MM-DD`` to availability for every probed day.
        """
        ordered = sorted(set(days))
        if not ordered:
            return {}
        month = month_start(visible_month or ordered[0])
        window = self.current_window()
        candidates = [day for day in ordered if is_selectable(day, month, window)]

        async def has_open_slots(day: date) -> bool:
            slots = await self.slot_source.list_open_slots(resource_id, offering_id, day)
            return len(slots) > 0

        outcomes = await bounded_map(has_open_slots, candidates, limit=self.batch_size)

        availability: Dict[str, bool] = {}
        failed = 0
        for day, outcome in zip(candidates, outcomes):
            if not outcome.ok:
                failed += 1
                logger.warning(
                    "Availability lookup failed for mentor=%s offering=%s date=%s: %s",
                    resource_id,
                    offering_id,
                    day_key(day),
                    outcome.error,
                )
            availability[day_key(day)] = bool(outcome.ok and outcome.value)

        logger.debug(
            "Probed %d days for mentor=%s month=%s: %d available, %d failed",
            len(candidates),
            resource_id,
            month.strftime("%Y-%m"),
            sum(availability.values()),
            failed,
        )
        return availability

    async def fetch_day_slots(
        self, resource_id: str, offering_id: str, day: date
    ) -> List[TimeSlot]:
        """Open slots for a single day, or an empty list if the lookup fails."""
        try:
            return list(await self.slot_source.list_open_slots(resource_id, offering_id, day))
        except Exception as exc:
            logger.warning(
                "Slot lookup failed for mentor=%s offering=%s date=%s: %s",
                resource_id,
                offering_id,
                day_key(day),
                exc,
            )
            return []


@dataclass(frozen=True)
class ProbeKey:
    resource_id: str
    offering_id: str
    month: date


class CalendarAvailability:
    """Day availability for the calendar currently on screen."""

    def __init__(
        self,
        prober: AvailabilityProber,
        resource_id: str,
        offering_id: str,
        *,
        month: Optional[date] = None,
    ) -> None:
        self.prober = prober
        self.resource_id = resource_id
        self.offering_id = offering_id
        self.month = month_start(month) if month else initial_month(prober.current_window())
        self.loading = False
        self._availability: Dict[str, bool] = {}
        self._generation = 0

    @property
    def key(self) -> ProbeKey:
        return ProbeKey(self.resource_id, self.offering_id, self.month)

    @property
    def availability(self) -> Dict[str, bool]:
        return dict(self._availability)

    @property
    def available_keys(self) -> FrozenSet[str]:
        return frozenset(key for key, available in self._availability.items() if available)

    def _invalidate(self) -> None:
        self._generation += 1
        self._availability = {}
        self.loading = False

    def change_resource(self, resource_id: str, offering_id: str) -> None:
        if (resource_id, offering_id) == (self.resource_id, self.offering_id):
            return
        self.resource_id = resource_id
        self.offering_id = offering_id
        self._invalidate()

    def can_go_prev(self) -> bool:
        return can_go_prev(self.month, self.prober.current_window())

    def can_go_next(self) -> bool:
        return can_go_next(self.month, self.prober.current_window())

    def navigate(self, months: int) -> bool:
        """Move the visible month, clamped to the booking window. Returns True if it moved."""
        if months == 0:
            return False
        window = self.prober.current_window()
        target = add_months(self.month, months)
        if target < month_start(window.earliest) or target > month_start(window.latest):
            return False
        self.month = target
        self._invalidate()
        return True

    async def refresh(self) -> bool:
        """
        Probe the visible month.

        Returns:
            True if the result was applied, False if the month or mentor
            changed while the probe was in flight and the result was dropped.
        """
        self._generation += 1
        generation = self._generation
        key = self.key
        self.loading = True

        result = await self.prober.probe_month(
            key.resource_id,
            key.offering_id,
            build_month_grid(key.month).days,
            key.month,
        )

        if generation != self._generation:
            logger.debug("Discarding stale availability probe for %s", key)
            return False

        self._availability = result
        self.loading = False
        return True

    def day_cells(self) -> List[DayCell]:
        return build_day_cells(
            build_month_grid(self.month),
            self.prober.current_window(),
            self.available_keys,
            self.prober.today(),
        )
