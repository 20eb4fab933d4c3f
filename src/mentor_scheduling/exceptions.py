"""
Domain-specific exceptions for the scheduling core.

These exceptions carry business-focused messages that the calling layer
can surface to the user as-is. ``retryable`` tells the caller whether the
same action may be attempted again without changing anything.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "retryable": self.retryable,
        }


class ValidationException(DomainException):
    """Raised when input validation fails."""


class ConflictException(DomainException):
    """Raised when an action conflicts with the current state."""


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""


class ServiceException(DomainException):
    """Raised when a service operation fails."""


# Specific business exceptions


class RescheduleLimitReachedException(BusinessRuleException):
    """Raised when no reschedule attempts remain for a session."""

    def __init__(self, total_allowed: int) -> None:
        super().__init__(
            message=f"You have used all {total_allowed} time changes for this session",
            code="reschedule_limit_reached",
            details={"total_allowed": total_allowed, "remaining_attempts": 0},
        )


class InsufficientNoticeException(BusinessRuleException):
    """Raised when a session starts too soon to be rescheduled."""

    def __init__(self, required_hours: float, provided_hours: float) -> None:
        super().__init__(
            message=(
                f"Sessions can only be rescheduled at least {required_hours:g} hours "
                "before they start"
            ),
            code="insufficient_notice",
            details={
                "required_hours": required_hours,
                "provided_hours": round(provided_hours, 2),
            },
        )


class CancellationBlockedException(BusinessRuleException):
    """Raised when the refund policy forbids a cancellation request."""

    def __init__(self, reason: str, *, session_id: Optional[str] = None) -> None:
        super().__init__(
            message=reason,
            code="cancellation_blocked",
            details={"session_id": session_id} if session_id else {},
        )


class RescheduleSubmissionError(ServiceException):
    """Raised when the booking service rejects a submission."""

    retryable = True

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message or "The time change could not be saved",
            code="reschedule_submission_failed",
            details=details or {},
        )
