"""
Core enums for the scheduling core.

Values mirror the strings the marketplace backend sends and accepts, so
they can be parsed straight out of API payloads.
"""

from enum import Enum


class RoleName(str, Enum):
    """Role of the user driving a scheduling action."""

    STUDENT = "Student"
    MENTOR = "Mentor"


class BookingStatus(str, Enum):
    """Lifecycle status of a 1:1 session or group-class enrollment."""

    PENDING_PAYMENT = "PendingPayment"
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"
    COMPLETED = "Completed"
    NO_SHOW = "NoShow"
    DISPUTED = "Disputed"
    EXPIRED = "Expired"


class RescheduleStatus(str, Enum):
    """Status of a reschedule or booking request as tracked by the backend."""

    PENDING = "Pending"
    AWAITING_COUNTERPARTY_APPROVAL = "AwaitingCounterpartyApproval"
    CONFIRMED = "Confirmed"
    REJECTED = "Rejected"
    EXPIRED = "Expired"

    @property
    def is_terminal(self) -> bool:
        return self in {
            RescheduleStatus.CONFIRMED,
            RescheduleStatus.REJECTED,
            RescheduleStatus.EXPIRED,
        }


class RequestKind(str, Enum):
    RESCHEDULE = "reschedule"
    BOOKING = "booking"


class SessionKind(str, Enum):
    BOOKING = "booking"
    GROUP_CLASS = "group_class"


class RefundReasonCode(str, Enum):
    CANCEL_POLICY = "CANCEL_POLICY"
    DUPLICATE = "DUPLICATE"
    MENTOR_NO_SHOW = "MENTOR_NO_SHOW"
    SERVICE_ISSUE = "SERVICE_ISSUE"


class RefundBoundary(str, Enum):
    """How an exact tier threshold is resolved.

    ``inclusive_lower``: exactly 24h before start falls in the >=24h tier.
    ``inclusive_upper``: exactly 24h before start falls in the next tier down.
    """

    INCLUSIVE_LOWER = "inclusive_lower"
    INCLUSIVE_UPPER = "inclusive_upper"
