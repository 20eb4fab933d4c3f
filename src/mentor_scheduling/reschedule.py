"""
Reschedule and booking request lifecycle.

A student-initiated time change takes effect as soon as the backend
accepts it. A mentor-initiated change waits for the student to approve,
decline, or let it expire. Only a request that reaches one of those
terminal outcomes consumes a reschedule attempt; a failed submission
leaves the counter untouched and keeps the selected slot so the user can
retry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
import logging
from typing import TYPE_CHECKING, List, Optional
from uuid import uuid4

from .availability import AvailabilityProber
from .calendar_window import day_key
from .clock import Clock, SystemClock
from .client import BackendError, BackendRequestError
from .enums import BookingStatus, RequestKind, RescheduleStatus, RoleName
from .exceptions import (
    BusinessRuleException,
    ConflictException,
    InsufficientNoticeException,
    RescheduleLimitReachedException,
    RescheduleSubmissionError,
    ValidationException,
)
from .gateways import BookingGateway, SubmissionResult
from .schemas import TimeSlot

if TYPE_CHECKING:
    from .config import SchedulingPolicy

logger = logging.getLogger(__name__)


class RescheduleState(str, Enum):
    IDLE = "idle"
    SLOT_SELECTED = "slot_selected"
    SUBMITTING = "submitting"
    AWAITING_COUNTERPARTY_APPROVAL = "awaiting_counterparty_approval"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    EXPIRED = "expired"


_STATE_FOR_STATUS = {
    RescheduleStatus.AWAITING_COUNTERPARTY_APPROVAL: RescheduleState.AWAITING_COUNTERPARTY_APPROVAL,
    RescheduleStatus.CONFIRMED: RescheduleState.CONFIRMED,
    RescheduleStatus.REJECTED: RescheduleState.REJECTED,
    RescheduleStatus.EXPIRED: RescheduleState.EXPIRED,
}
_TERMINAL_STATES = {
    RescheduleState.CONFIRMED,
    RescheduleState.REJECTED,
    RescheduleState.EXPIRED,
}
_SELECTION_STATES = {RescheduleState.IDLE, RescheduleState.SLOT_SELECTED}


def remaining_attempts_from_count(used: int, total: int) -> int:
    """Attempts left given the backend's per-role reschedule count."""
    return max(0, min(total, total - max(0, used)))


@dataclass
class RescheduleRequest:
    current_session_id: Optional[str]
    proposed_slot: TimeSlot
    initiator_role: RoleName
    remaining_attempts: int
    total_allowed: int
    status: RescheduleStatus = RescheduleStatus.PENDING
    kind: RequestKind = RequestKind.RESCHEDULE
    idempotency_key: str = field(default_factory=lambda: str(uuid4()))


class RescheduleFlow:
    """State machine behind the reschedule calendar and the booking calendar."""

    def __init__(
        self,
        *,
        prober: AvailabilityProber,
        gateway: BookingGateway,
        initiator_role: RoleName,
        resource_id: str,
        offering_id: str,
        session_id: Optional[str] = None,
        session_start_at: Optional[datetime] = None,
        session_status: BookingStatus = BookingStatus.CONFIRMED,
        used_attempts: int = 0,
        kind: RequestKind = RequestKind.RESCHEDULE,
        clock: Optional[Clock] = None,
        policy: Optional["SchedulingPolicy"] = None,
    ) -> None:
        if policy is None:
            from .config import DEFAULT_SCHEDULING_POLICY

            policy = DEFAULT_SCHEDULING_POLICY
        if kind == RequestKind.RESCHEDULE and not session_id:
            raise ValueError("session_id is required to reschedule")

        self.prober = prober
        self.gateway = gateway
        self.initiator_role = initiator_role
        self.resource_id = resource_id
        self.offering_id = offering_id
        self.session_id = session_id
        self.session_start_at = session_start_at
        self.session_status = session_status
        self.kind = kind
        self.clock = clock or SystemClock()
        self.policy = policy

        self.total_allowed = policy.total_reschedule_attempts
        self._remaining_attempts = remaining_attempts_from_count(used_attempts, self.total_allowed)
        self._state = RescheduleState.IDLE
        self.selected_date: Optional[date] = None
        self.slots: List[TimeSlot] = []
        self.selected_slot: Optional[TimeSlot] = None
        self.request: Optional[RescheduleRequest] = None
        self._idempotency_slot: Optional[TimeSlot] = None
        self._idempotency_key: Optional[str] = None

    @property
    def state(self) -> RescheduleState:
        return self._state

    @property
    def remaining_attempts(self) -> int:
        return self._remaining_attempts

    @property
    def is_terminal(self) -> bool:
        return self._state in _TERMINAL_STATES

    @property
    def gated_by_attempts(self) -> bool:
        return self.kind == RequestKind.RESCHEDULE

    # Slot selection

    async def select_date(self, day: date) -> List[TimeSlot]:
        if self._state not in _SELECTION_STATES:
            raise ConflictException(
                f"Cannot pick a new date while the request is {self._state.value}",
                code="reschedule_in_progress",
            )
        window = self.prober.current_window()
        if day not in window:
            raise ValidationException(
                f"Pick a day between {day_key(window.earliest)} and {day_key(window.latest)}",
                code="date_outside_window",
                details={"date": day_key(day)},
            )

        self.selected_date = day
        self.selected_slot = None
        self._state = RescheduleState.IDLE
        self.slots = await self.prober.fetch_day_slots(self.resource_id, self.offering_id, day)
        return list(self.slots)

    def select_slot(self, slot: TimeSlot) -> None:
        if self._state not in _SELECTION_STATES:
            raise ConflictException(
                f"Cannot change the slot while the request is {self._state.value}",
                code="reschedule_in_progress",
            )
        if slot not in self.slots:
            raise ValidationException(
                "Selected time is not one of the open slots for this day",
                code="slot_not_offered",
            )
        self.selected_slot = slot
        self._state = RescheduleState.SLOT_SELECTED

    # Submission

    def ensure_can_submit(self) -> None:
        """
        Check every rule that must hold before the booking service is called.

        Raises:
            ConflictException: A submission is already in flight or finished.
            ValidationException: No slot has been selected.
            BusinessRuleException: Attempts are exhausted, the session is not
                confirmed, or it starts too soon to be moved.
        """
        if self._state == RescheduleState.SUBMITTING:
            raise ConflictException("This request is already being submitted", code="submission_in_flight")
        if self._state != RescheduleState.SLOT_SELECTED or self.selected_slot is None:
            if self._state in _SELECTION_STATES:
                raise ValidationException("Select a time slot first", code="slot_required")
            raise ConflictException(
                f"Request is already {self._state.value}", code="request_already_submitted"
            )

        if not self.gated_by_attempts:
            return

        if self._remaining_attempts <= 0:
            raise RescheduleLimitReachedException(self.total_allowed)
        if self.session_status != BookingStatus.CONFIRMED:
            raise BusinessRuleException(
                f"Only confirmed sessions can be rescheduled (current status: {self.session_status.value})",
                code="session_not_reschedulable",
            )
        if self.session_start_at is not None:
            start = self.session_start_at
            if start.tzinfo is None:
                start = start.replace(tzinfo=timezone.utc)
            hours_until = (start - self.clock.now()).total_seconds() / 3600
            if hours_until < self.policy.reschedule_min_notice_hours:
                raise InsufficientNoticeException(self.policy.reschedule_min_notice_hours, hours_until)

    def _idempotency_key_for(self, slot: TimeSlot) -> str:
        if self._idempotency_key is None or self._idempotency_slot != slot:
            self._idempotency_key = str(uuid4())
            self._idempotency_slot = slot
        return self._idempotency_key

    def _forget_idempotency_key(self) -> None:
        self._idempotency_key = None
        self._idempotency_slot = None

    def _expected_status(self) -> RescheduleStatus:
        if self.kind == RequestKind.RESCHEDULE and self.initiator_role == RoleName.MENTOR:
            return RescheduleStatus.AWAITING_COUNTERPARTY_APPROVAL
        return RescheduleStatus.CONFIRMED

    async def confirm(self) -> RescheduleRequest:
        """Submit the selected slot to the booking service."""
        self.ensure_can_submit()
        slot = self.selected_slot
        assert slot is not None

        request = RescheduleRequest(
            current_session_id=self.session_id,
            proposed_slot=slot,
            initiator_role=self.initiator_role,
            remaining_attempts=self._remaining_attempts,
            total_allowed=self.total_allowed,
            kind=self.kind,
            idempotency_key=self._idempotency_key_for(slot),
        )
        self.request = request
        self._state = RescheduleState.SUBMITTING
        logger.info(
            "Submitting %s for session=%s slot=%s by %s",
            self.kind.value,
            self.session_id,
            slot.start_at.isoformat(),
            self.initiator_role.value,
        )

        try:
            result = await self._submit(slot, request.idempotency_key)
        except BackendRequestError as exc:
            self._state = RescheduleState.SLOT_SELECTED
            raise RescheduleSubmissionError(
                exc.user_message, details={"status_code": exc.status_code}
            ) from exc
        except BackendError as exc:
            self._state = RescheduleState.SLOT_SELECTED
            raise RescheduleSubmissionError(details={"error": str(exc)}) from exc
        except Exception:
            self._state = RescheduleState.SLOT_SELECTED
            raise

        if result.session_id and self.session_id is None:
            self.session_id = result.session_id
            request.current_session_id = result.session_id

        expected = self._expected_status()
        status = result.status
        if status is None or status == RescheduleStatus.PENDING:
            status = expected
        elif status != expected:
            logger.warning(
                "Backend reported %s for session=%s, expected %s; using backend status",
                status.value,
                self.session_id,
                expected.value,
            )
        self._forget_idempotency_key()
        self._transition(status)
        return request

    async def _submit(self, slot: TimeSlot, idempotency_key: str) -> SubmissionResult:
        if self.kind == RequestKind.BOOKING:
            return await self.gateway.submit_booking(
                self.resource_id,
                self.offering_id,
                slot,
                idempotency_key=idempotency_key,
            )
        assert self.session_id is not None
        return await self.gateway.submit_reschedule(
            self.session_id, slot, idempotency_key=idempotency_key
        )

    # Counterparty outcome

    def approve(self) -> None:
        self._resolve(RescheduleStatus.CONFIRMED)

    def decline(self) -> None:
        self._resolve(RescheduleStatus.REJECTED)

    def expire(self) -> None:
        self._resolve(RescheduleStatus.EXPIRED)

    def apply_backend_status(self, status: RescheduleStatus) -> bool:
        """
        Apply a status read back from the backend. Re-delivering the status the
        request already has is a no-op.

        Returns:
            True if the state changed.
        """
        if self.request is not None and self.request.status == status:
            return False
        if status.is_terminal and self._state == RescheduleState.AWAITING_COUNTERPARTY_APPROVAL:
            self._transition(status)
            return True
        raise ConflictException(
            f"Cannot apply status {status.value} while the request is {self._state.value}",
            code="invalid_status_transition",
        )

    def _resolve(self, status: RescheduleStatus) -> None:
        if self._state != RescheduleState.AWAITING_COUNTERPARTY_APPROVAL:
            raise ConflictException(
                f"No time change is awaiting approval (request is {self._state.value})",
                code="no_pending_reschedule",
            )
        self._transition(status)

    def _transition(self, status: RescheduleStatus) -> None:
        new_state = _STATE_FOR_STATUS[status]
        if new_state in _TERMINAL_STATES and self.gated_by_attempts:
            self._remaining_attempts = max(0, self._remaining_attempts - 1)
        if new_state == RescheduleState.CONFIRMED and self.request is not None:
            self.session_start_at = self.request.proposed_slot.start_at
        self._state = new_state
        if self.request is not None:
            self.request.status = status
            self.request.remaining_attempts = self._remaining_attempts
        logger.info(
            "Session %s %s -> %s (remaining attempts %d/%d)",
            self.session_id,
            self.kind.value,
            new_state.value,
            self._remaining_attempts,
            self.total_allowed,
        )

    def restart(self) -> None:
        """Return a finished request to slot selection for another change."""
        if not self.is_terminal:
            raise ConflictException(
                f"Request is still {self._state.value}", code="request_not_finished"
            )
        if self.gated_by_attempts and self._remaining_attempts <= 0:
            raise RescheduleLimitReachedException(self.total_allowed)
        self._state = RescheduleState.IDLE
        self.selected_date = None
        self.slots = []
        self.selected_slot = None
        self.request = None
        self._forget_idempotency_key()


async def respond_to_reschedule(
    gateway: BookingGateway, session_id: str, *, approve: bool
) -> RescheduleStatus:
    """Counterparty side: approve or decline a pending mentor-proposed time change."""
    try:
        await gateway.respond_to_reschedule(session_id, approve=approve)
    except BackendRequestError as exc:
        raise RescheduleSubmissionError(
            exc.user_message or ("Approval failed" if approve else "Decline failed"),
            details={"status_code": exc.status_code},
        ) from exc
    except BackendError as exc:
        raise RescheduleSubmissionError(details={"error": str(exc)}) from exc
    return RescheduleStatus.CONFIRMED if approve else RescheduleStatus.REJECTED
