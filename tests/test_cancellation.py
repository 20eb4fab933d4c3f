from __future__ import annotations

from datetime import timedelta

import pytest

from mentor_scheduling.cancellation import CancellationService
from mentor_scheduling.config import SchedulingPolicy
from mentor_scheduling.enums import BookingStatus, RefundReasonCode, SessionKind
from mentor_scheduling.exceptions import CancellationBlockedException, ValidationException
from mentor_scheduling.refund_policy import SESSION_ALREADY_STARTED, RefundPolicyEngine
from mentor_scheduling.schemas import SessionSnapshot
from tests._utils.fakes import NOW, FakeCancellationGateway


def _session(hours_ahead: float, **kwargs) -> SessionSnapshot:
    return SessionSnapshot(
        id=kwargs.pop("id", "bk_1"),
        start_at=NOW + timedelta(hours=hours_ahead),
        amount_cents=kwargs.pop("amount_cents", 40_000),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_cancel_booking_with_half_refund(clock):
    gateway = FakeCancellationGateway()
    service = CancellationService(gateway, clock=clock)

    outcome = await service.cancel_session(_session(10), "  Exam moved  ")

    assert gateway.calls == [("booking", "bk_1", "Exam moved")]
    assert outcome.decision.fraction == 0.5
    assert outcome.estimated_refund_cents == 20_000


@pytest.mark.asyncio
async def test_leave_group_class_uses_enrollment_endpoint(clock):
    gateway = FakeCancellationGateway()
    service = CancellationService(gateway, clock=clock)

    outcome = await service.leave_group_class(_session(48, id="cls_9"), "Schedule clash")

    assert gateway.calls == [("class", "cls_9", "Schedule clash")]
    assert outcome.decision.fraction == 1.0


@pytest.mark.asyncio
async def test_started_session_is_blocked_without_network(clock):
    gateway = FakeCancellationGateway()
    service = CancellationService(gateway, clock=clock)

    with pytest.raises(CancellationBlockedException) as exc_info:
        await service.cancel_session(_session(-0.5), "Too late")

    assert exc_info.value.message == SESSION_ALREADY_STARTED
    assert exc_info.value.details == {"session_id": "bk_1"}
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_zero_refund_still_cancels_by_default(clock):
    gateway = FakeCancellationGateway()
    service = CancellationService(gateway, clock=clock)

    outcome = await service.cancel_session(_session(1), "Sick")

    assert outcome.decision.eligible is True
    assert outcome.estimated_refund_cents == 0
    assert len(gateway.calls) == 1


@pytest.mark.asyncio
async def test_zero_refund_blocks_when_configured(clock):
    gateway = FakeCancellationGateway()
    engine = RefundPolicyEngine(SchedulingPolicy(zero_fraction_blocks=True))
    service = CancellationService(gateway, engine=engine, clock=clock)

    with pytest.raises(CancellationBlockedException):
        await service.cancel_session(_session(1), "Sick")
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_reason_is_required(clock):
    service = CancellationService(FakeCancellationGateway(), clock=clock)
    with pytest.raises(ValidationException) as exc_info:
        await service.cancel_session(_session(30), "   ")
    assert exc_info.value.code == "reason_required"


@pytest.mark.asyncio
async def test_completed_session_cannot_be_cancelled(clock):
    service = CancellationService(FakeCancellationGateway(), clock=clock)
    with pytest.raises(CancellationBlockedException, match="already concluded"):
        await service.cancel_session(_session(30, status=BookingStatus.COMPLETED), "Oops")


def test_preview_applies_reason_override(clock):
    service = CancellationService(FakeCancellationGateway(), clock=clock)
    session = _session(-0.25, kind=SessionKind.BOOKING)

    assert service.preview(session).eligible is False
    decision = service.preview(session, reason_code=RefundReasonCode.MENTOR_NO_SHOW)
    assert decision.eligible is True
    assert decision.fraction == 1.0


@pytest.mark.asyncio
async def test_leave_group_class_forwards_reason_code(clock):
    gateway = FakeCancellationGateway()
    service = CancellationService(gateway, clock=clock)

    outcome = await service.leave_group_class(
        _session(-0.25, id="cls_3"),
        "Mentor never joined",
        reason_code=RefundReasonCode.MENTOR_NO_SHOW,
    )

    assert gateway.calls == [("class", "cls_3", "Mentor never joined")]
    assert outcome.decision.fraction == 1.0
    assert outcome.estimated_refund_cents == 40_000
