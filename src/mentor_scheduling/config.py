"""Configuration for the scheduling core."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Final, Tuple

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .enums import RefundBoundary
from .refund_policy import DEFAULT_REFUND_TIERS, validate_tier_table
from .schemas import RefundTier

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseSettings):
    """Runtime settings loaded from environment."""

    api_base_url: str = "http://localhost:5072/api"
    api_service_token: SecretStr = SecretStr("")
    request_timeout_seconds: float = 10.0

    timezone: str = "Europe/Istanbul"
    booking_horizon_days: int = Field(default=30, ge=1)
    probe_batch_size: int = Field(default=5, ge=1)

    total_reschedule_attempts: int = Field(default=2, ge=0)
    reschedule_min_notice_hours: float = Field(default=2.0, ge=0)

    refund_tiers: list[RefundTier] = Field(default_factory=lambda: list(DEFAULT_REFUND_TIERS))
    refund_boundary: RefundBoundary = RefundBoundary.INCLUSIVE_LOWER
    zero_fraction_blocks: bool = False

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="MENTOR_SCHEDULING_", env_file=".env")

    @field_validator("refund_tiers")
    @classmethod
    def _check_tiers(cls, value: list[RefundTier]) -> list[RefundTier]:
        return list(validate_tier_table(value))


@dataclass(frozen=True)
class SchedulingPolicy:
    """Business rules passed explicitly to the refund engine and reschedule flow."""

    total_reschedule_attempts: int = 2
    reschedule_min_notice_hours: float = 2.0
    refund_tiers: Tuple[RefundTier, ...] = field(default=DEFAULT_REFUND_TIERS)
    refund_boundary: RefundBoundary = RefundBoundary.INCLUSIVE_LOWER
    # Treat a 0% refund as "cannot cancel" instead of "cancel without refund"
    zero_fraction_blocks: bool = False
    booking_horizon_days: int = 30
    probe_batch_size: int = 5
    timezone: str = "Europe/Istanbul"

    def __post_init__(self) -> None:
        if self.total_reschedule_attempts < 0:
            raise ValueError("total_reschedule_attempts must be >= 0")
        if self.probe_batch_size < 1:
            raise ValueError("probe_batch_size must be >= 1")
        object.__setattr__(self, "refund_tiers", validate_tier_table(self.refund_tiers))

    @classmethod
    def from_settings(cls, settings: Settings) -> "SchedulingPolicy":
        return cls(
            total_reschedule_attempts=settings.total_reschedule_attempts,
            reschedule_min_notice_hours=settings.reschedule_min_notice_hours,
            refund_tiers=tuple(settings.refund_tiers),
            refund_boundary=settings.refund_boundary,
            zero_fraction_blocks=settings.zero_fraction_blocks,
            booking_horizon_days=settings.booking_horizon_days,
            probe_batch_size=settings.probe_batch_size,
            timezone=settings.timezone,
        )


DEFAULT_SCHEDULING_POLICY: Final = SchedulingPolicy()


def configure_logging(level: int | str = logging.INFO) -> None:
    """Install the root log format used across the marketplace services."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
