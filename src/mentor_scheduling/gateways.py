"""
Boundaries to the backend services the scheduling core depends on.

The protocols are what the prober, the reschedule flow and the cancellation
flow are written against. The ``Api*`` classes adapt ``MarketplaceClient``
to them; tests substitute small in-memory fakes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import logging
from typing import Any, List, Optional, Protocol

from pydantic import ValidationError

from .client import MarketplaceClient
from .enums import RescheduleStatus
from .schemas import TimeSlot

logger = logging.getLogger(__name__)


class SlotSource(Protocol):
    async def list_open_slots(
        self, resource_id: str, offering_id: str, day: date
    ) -> List[TimeSlot]: ...


@dataclass(frozen=True)
class SubmissionResult:
    status: Optional[RescheduleStatus] = None
    session_id: Optional[str] = None


class BookingGateway(Protocol):
    async def submit_reschedule(
        self, session_id: str, slot: TimeSlot, *, idempotency_key: str
    ) -> SubmissionResult: ...

    async def submit_booking(
        self,
        resource_id: str,
        offering_id: str,
        slot: TimeSlot,
        *,
        idempotency_key: str,
        notes: Optional[str] = None,
    ) -> SubmissionResult: ...

    async def respond_to_reschedule(self, session_id: str, *, approve: bool) -> None: ...


class CancellationGateway(Protocol):
    async def cancel_booking(self, booking_id: str, reason: str) -> Any: ...

    async def cancel_class_enrollment(self, class_id: str, reason: str) -> Any: ...


def parse_status(payload: Any) -> Optional[RescheduleStatus]:
    if not isinstance(payload, dict):
        return None
    raw = payload.get("status")
    if not isinstance(raw, str):
        return None
    try:
        return RescheduleStatus(raw)
    except ValueError:
        logger.warning("Unrecognized reschedule status from backend: %s", raw)
        return None


class ApiSlotSource:
    """Reads computed open slots (offering duration and buffers applied) from the backend."""

    def __init__(self, client: MarketplaceClient, *, timeout: float | None = None) -> None:
        self.client = client
        self.timeout = timeout if timeout is not None else client.settings.request_timeout_seconds

    async def list_open_slots(
        self, resource_id: str, offering_id: str, day: date
    ) -> List[TimeSlot]:
        payload = await self.client.get_available_time_slots(
            resource_id, offering_id, day, timeout=self.timeout
        )
        if isinstance(payload, dict):
            payload = payload.get("data", [])
        if not isinstance(payload, list):
            raise ValueError(f"Unexpected slot payload for {day.isoformat()}: {type(payload).__name__}")
        try:
            return [TimeSlot.model_validate(item) for item in payload]
        except ValidationError as exc:
            raise ValueError(f"Malformed slot payload for {day.isoformat()}") from exc


class ApiBookingGateway:
    def __init__(self, client: MarketplaceClient) -> None:
        self.client = client

    async def submit_reschedule(
        self, session_id: str, slot: TimeSlot, *, idempotency_key: str
    ) -> SubmissionResult:
        payload = await self.client.reschedule_booking(
            session_id,
            new_start_at=slot.start_at,
            idempotency_key=idempotency_key,
        )
        return SubmissionResult(status=parse_status(payload), session_id=session_id)

    async def submit_booking(
        self,
        resource_id: str,
        offering_id: str,
        slot: TimeSlot,
        *,
        idempotency_key: str,
        notes: Optional[str] = None,
    ) -> SubmissionResult:
        payload = await self.client.create_booking(
            mentor_user_id=resource_id,
            offering_id=offering_id,
            start_at=slot.start_at,
            duration_min=slot.duration_minutes,
            idempotency_key=idempotency_key,
            notes=notes,
        )
        booking_id = payload.get("bookingId") if isinstance(payload, dict) else None
        return SubmissionResult(status=parse_status(payload), session_id=booking_id)

    async def respond_to_reschedule(self, session_id: str, *, approve: bool) -> None:
        if approve:
            await self.client.approve_reschedule(session_id)
        else:
            await self.client.reject_reschedule(session_id)
