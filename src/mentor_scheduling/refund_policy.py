"""Refund policy evaluation for session cancellations and group-class withdrawals.

The engine is advisory: the refund service recomputes the authoritative
amount server-side, so the tier table here must be kept in line with the
backend through configuration.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Optional, Tuple

from .enums import BookingStatus, RefundBoundary, RefundReasonCode
from .schemas import RefundTier

if TYPE_CHECKING:
    from .config import SchedulingPolicy

DEFAULT_REFUND_TIERS: Tuple[RefundTier, ...] = (
    RefundTier(min_hours_before_start=24, refund_fraction=1.0),
    RefundTier(min_hours_before_start=2, refund_fraction=0.5),
    RefundTier(min_hours_before_start=0, refund_fraction=0.0),
)

SESSION_ALREADY_STARTED = "session already started"

_CONCLUDED_STATUSES = {
    BookingStatus.COMPLETED,
    BookingStatus.NO_SHOW,
    BookingStatus.EXPIRED,
}
_FULL_REFUND_REASONS = {
    RefundReasonCode.DUPLICATE,
    RefundReasonCode.MENTOR_NO_SHOW,
}


def validate_tier_table(tiers: Iterable[RefundTier | Mapping[str, Any]]) -> Tuple[RefundTier, ...]:
    """
    Normalize a refund table to most-generous-first order and check its shape.

    Tiers are keyed by their lower bound, so a table is contiguous and covers
    ``[0, inf)`` exactly when it has unique minimums including a 0-hour row.

    Raises:
        ValueError: If the table is empty, lacks a 0-hour tier, repeats a
            minimum, or refunds more as the session gets closer.
    """
    normalized = [
        tier if isinstance(tier, RefundTier) else RefundTier.model_validate(tier) for tier in tiers
    ]
    if not normalized:
        raise ValueError("refund tier table must not be empty")

    ordered = tuple(sorted(normalized, key=lambda t: t.min_hours_before_start, reverse=True))
    minimums = [t.min_hours_before_start for t in ordered]
    if len(set(minimums)) != len(minimums):
        raise ValueError("refund tiers must not overlap (duplicate min_hours_before_start)")
    if minimums[-1] != 0:
        raise ValueError("refund tiers must cover cancellations right up to the start (0h tier)")
    for earlier, later in zip(ordered, ordered[1:]):
        if later.refund_fraction > earlier.refund_fraction:
            raise ValueError(
                "refund fractions must not increase as the session gets closer "
                f"({later.min_hours_before_start:g}h tier refunds more than "
                f"{earlier.min_hours_before_start:g}h tier)"
            )
    return ordered


@dataclass(frozen=True)
class RefundDecision:
    eligible: bool
    fraction: float = 0.0
    reason: str | None = None
    policy_basis: str = ""
    hours_before_start: float | None = None

    @property
    def refund_percent(self) -> int:
        return int(round(self.fraction * 100))

    def to_payload(self) -> dict[str, object]:
        return {
            "eligible": self.eligible,
            "fraction": float(self.fraction),
            "refund_percent": self.refund_percent,
            "reason": self.reason,
            "policy_basis": self.policy_basis,
            "hours_before_start": self.hours_before_start,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> "RefundDecision":
        def _coerce_float(value: object | None) -> float | None:
            if isinstance(value, bool):
                return float(value)
            if isinstance(value, (int, float)):
                return float(value)
            if isinstance(value, str):
                try:
                    return float(value)
                except ValueError:
                    return None
            return None

        reason = payload.get("reason")
        policy_basis = payload.get("policy_basis")
        return cls(
            eligible=bool(payload.get("eligible")),
            fraction=_coerce_float(payload.get("fraction")) or 0.0,
            reason=reason if isinstance(reason, str) else None,
            policy_basis=policy_basis if isinstance(policy_basis, str) else "",
            hours_before_start=_coerce_float(payload.get("hours_before_start")),
        )


def refund_amount_cents(decision: RefundDecision, amount_cents: int) -> int:
    """Estimated refund for a paid amount, rounded the way the refund service rounds."""
    if not decision.eligible or amount_cents <= 0:
        return 0
    return int(round(amount_cents * decision.fraction))


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class RefundPolicyEngine:
    """Determines cancellation eligibility and refund fraction from session timestamps."""

    def __init__(self, policy: Optional["SchedulingPolicy"] = None) -> None:
        if policy is None:
            from .config import DEFAULT_SCHEDULING_POLICY

            policy = DEFAULT_SCHEDULING_POLICY
        self.policy = policy
        self.tiers = validate_tier_table(policy.refund_tiers)

    def evaluate(
        self,
        session_start_at: datetime | None,
        cancelled_at: datetime | None,
        *,
        status: BookingStatus | str | None = None,
        reason_code: RefundReasonCode | str | None = None,
    ) -> RefundDecision:
        if not isinstance(cancelled_at, datetime):
            return RefundDecision(
                eligible=False,
                reason="Cancellation time unavailable for refund policy evaluation",
                policy_basis="Cancellation time missing",
            )

        if status is not None:
            try:
                status = BookingStatus(status)
            except ValueError:
                return RefundDecision(
                    eligible=False,
                    reason="Session status unavailable for refund policy evaluation",
                    policy_basis=f"Unrecognized session status: {status}",
                )
        if reason_code is not None:
            try:
                reason_code = RefundReasonCode(reason_code)
            except ValueError:
                # unknown codes get the regular tiers
                reason_code = None

        if status == BookingStatus.CANCELLED:
            return RefundDecision(
                eligible=False,
                reason="Session is already cancelled",
                policy_basis="Cancelled sessions cannot be cancelled again",
            )

        if reason_code in _FULL_REFUND_REASONS:
            return RefundDecision(
                eligible=True,
                fraction=1.0,
                policy_basis=f"{reason_code.value}: full refund (policy override)",
                hours_before_start=self._hours_before(session_start_at, cancelled_at),
            )

        if not isinstance(session_start_at, datetime):
            return RefundDecision(
                eligible=False,
                reason="Session start time unavailable for refund policy evaluation",
                policy_basis="Session start time missing",
            )

        if status in _CONCLUDED_STATUSES:
            return RefundDecision(
                eligible=False,
                reason="Session has already concluded",
                policy_basis=f"{status.value} sessions are not eligible for cancellation refunds",
            )

        delta = _as_utc(session_start_at) - _as_utc(cancelled_at)
        hours_before_start = delta.total_seconds() / 3600
        if delta < timedelta(0):
            return RefundDecision(
                eligible=False,
                reason=SESSION_ALREADY_STARTED,
                policy_basis="Cancellation after session start",
                hours_before_start=hours_before_start,
            )

        index = self._select_tier(delta)
        tier = self.tiers[index]
        policy_basis = self._describe_tier(index)

        if tier.refund_fraction == 0 and self.policy.zero_fraction_blocks:
            return RefundDecision(
                eligible=False,
                reason=self._zero_tier_reason(index),
                policy_basis=policy_basis,
                hours_before_start=hours_before_start,
            )

        return RefundDecision(
            eligible=True,
            fraction=tier.refund_fraction,
            policy_basis=policy_basis,
            hours_before_start=hours_before_start,
        )

    def _select_tier(self, delta: timedelta) -> int:
        inclusive = self.policy.refund_boundary == RefundBoundary.INCLUSIVE_LOWER
        for index, tier in enumerate(self.tiers):
            threshold = timedelta(hours=tier.min_hours_before_start)
            if tier.min_hours_before_start == 0:
                return index
            if delta > threshold or (inclusive and delta == threshold):
                return index
        # validate_tier_table guarantees a 0h tier
        return len(self.tiers) - 1

    @staticmethod
    def _hours_before(
        session_start_at: datetime | None, cancelled_at: datetime
    ) -> float | None:
        if not isinstance(session_start_at, datetime):
            return None
        return (_as_utc(session_start_at) - _as_utc(cancelled_at)).total_seconds() / 3600

    def _describe_tier(self, index: int) -> str:
        tier = self.tiers[index]
        low = tier.min_hours_before_start
        if index == 0:
            window = f">={low:g} hours before session"
        else:
            high = self.tiers[index - 1].min_hours_before_start
            window = f"<{high:g} hours before session" if low == 0 else f"{low:g}-{high:g} hours before session"

        if tier.refund_fraction == 0:
            return f"{window}: no refund"
        return f"{window}: {int(round(tier.refund_fraction * 100))}% refund"

    def _zero_tier_reason(self, index: int) -> str:
        if index == 0:
            return "This session is not refundable"
        high = self.tiers[index - 1].min_hours_before_start
        return f"Sessions cannot be cancelled less than {high:g} hours before they start"
