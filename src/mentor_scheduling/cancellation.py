"""Session cancellation and group-class withdrawal, gated by the refund policy."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Optional

from .clock import Clock, SystemClock
from .enums import RefundReasonCode, SessionKind
from .exceptions import CancellationBlockedException, ValidationException
from .gateways import CancellationGateway
from .refund_policy import RefundDecision, RefundPolicyEngine, refund_amount_cents
from .schemas import SessionSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CancellationOutcome:
    session_id: str
    decision: RefundDecision
    estimated_refund_cents: int


class CancellationService:
    """
    Runs a cancellation through the refund policy before calling the backend.

    The decision returned here is what the user is shown; the refund service
    applies its own copy of the rules when it processes the order.
    """

    def __init__(
        self,
        gateway: CancellationGateway,
        *,
        engine: Optional[RefundPolicyEngine] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.gateway = gateway
        self.engine = engine or RefundPolicyEngine()
        self.clock = clock or SystemClock()

    def preview(
        self,
        session: SessionSnapshot,
        *,
        reason_code: Optional[RefundReasonCode] = None,
    ) -> RefundDecision:
        return self.engine.evaluate(
            session.start_at,
            self.clock.now(),
            status=session.status,
            reason_code=reason_code,
        )

    async def cancel_session(
        self,
        session: SessionSnapshot,
        reason: str,
        *,
        reason_code: Optional[RefundReasonCode] = None,
    ) -> CancellationOutcome:
        """
        Cancel a 1:1 session or withdraw from a group class.

        Raises:
            ValidationException: If no reason was given.
            CancellationBlockedException: If the policy forbids cancelling;
                raised before any backend call.
            BackendError: If the backend call fails.
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationException("Please enter a cancellation reason", code="reason_required")

        decision = self.preview(session, reason_code=reason_code)
        if not decision.eligible:
            logger.info(
                "Blocked cancellation of %s %s: %s",
                session.kind.value,
                session.id,
                decision.reason,
            )
            raise CancellationBlockedException(
                decision.reason or "This session cannot be cancelled",
                session_id=session.id,
            )

        if session.kind == SessionKind.GROUP_CLASS:
            await self.gateway.cancel_class_enrollment(session.id, reason)
        else:
            await self.gateway.cancel_booking(session.id, reason)

        estimated = refund_amount_cents(decision, session.amount_cents)
        logger.info(
            "Cancelled %s %s (%s, estimated refund %d cents)",
            session.kind.value,
            session.id,
            decision.policy_basis,
            estimated,
        )
        return CancellationOutcome(
            session_id=session.id,
            decision=decision,
            estimated_refund_cents=estimated,
        )

    async def leave_group_class(
        self,
        enrollment: SessionSnapshot,
        reason: str,
        *,
        reason_code: Optional[RefundReasonCode] = None,
    ) -> CancellationOutcome:
        if enrollment.kind != SessionKind.GROUP_CLASS:
            enrollment = enrollment.model_copy(update={"kind": SessionKind.GROUP_CLASS})
        return await self.cancel_session(enrollment, reason, reason_code=reason_code)
