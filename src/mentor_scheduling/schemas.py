"""Pydantic models shared by the gateways, the refund engine and the reschedule flow."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .enums import BookingStatus, SessionKind


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TimeSlot(BaseModel):
    """Bookable half-open interval ``[start_at, end_at)``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    start_at: datetime = Field(alias="startAt")
    end_at: datetime = Field(alias="endAt")
    duration_min: int | None = Field(default=None, alias="durationMin")

    @field_validator("start_at", "end_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        return _ensure_utc(value)

    @model_validator(mode="after")
    def _check_order(self) -> "TimeSlot":
        if self.end_at <= self.start_at:
            raise ValueError("end_at must be after start_at")
        return self

    def contains(self, instant: datetime) -> bool:
        return self.start_at <= _ensure_utc(instant) < self.end_at

    @property
    def duration_minutes(self) -> int:
        if self.duration_min is not None:
            return self.duration_min
        return int((self.end_at - self.start_at).total_seconds() // 60)


class RefundTier(BaseModel):
    """One row of the refund table: cancelling at least N hours ahead returns F."""

    model_config = ConfigDict(frozen=True)

    min_hours_before_start: float = Field(ge=0)
    refund_fraction: float = Field(ge=0, le=1)


class SessionSnapshot(BaseModel):
    """The slice of a session or enrollment the cancellation flow needs."""

    id: str
    kind: SessionKind = SessionKind.BOOKING
    status: BookingStatus = BookingStatus.CONFIRMED
    start_at: datetime | None = None
    amount_cents: int = Field(default=0, ge=0)

    @field_validator("start_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        return _ensure_utc(value) if value is not None else None
