"""Session scheduling and cancellation-refund core for the mentoring marketplace."""

from .availability import AvailabilityProber, CalendarAvailability
from .calendar_window import (
    CalendarWindow,
    MonthGrid,
    build_month_grid,
    compute_window,
    is_selectable,
)
from .cancellation import CancellationOutcome, CancellationService
from .client import MarketplaceClient
from .clock import FixedClock, SystemClock
from .config import DEFAULT_SCHEDULING_POLICY, SchedulingPolicy, Settings, configure_logging
from .enums import BookingStatus, RequestKind, RescheduleStatus, RoleName
from .gateways import ApiBookingGateway, ApiSlotSource
from .refund_policy import RefundDecision, RefundPolicyEngine
from .reschedule import RescheduleFlow, RescheduleRequest, RescheduleState
from .schemas import RefundTier, SessionSnapshot, TimeSlot

__all__ = [
    "ApiBookingGateway",
    "ApiSlotSource",
    "AvailabilityProber",
    "BookingStatus",
    "CalendarAvailability",
    "CalendarWindow",
    "CancellationOutcome",
    "CancellationService",
    "DEFAULT_SCHEDULING_POLICY",
    "FixedClock",
    "MarketplaceClient",
    "MonthGrid",
    "RefundDecision",
    "RefundPolicyEngine",
    "RefundTier",
    "RequestKind",
    "RescheduleFlow",
    "RescheduleRequest",
    "RescheduleState",
    "RescheduleStatus",
    "RoleName",
    "SchedulingPolicy",
    "SessionSnapshot",
    "Settings",
    "SystemClock",
    "TimeSlot",
    "build_month_grid",
    "compute_window",
    "configure_logging",
    "is_selectable",
]
