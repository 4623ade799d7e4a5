# backend/medbook/services/slots/config.py
"""
Scheduling configuration and small time helpers for slot materialization.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache

import pytz

from ...config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SchedulingConfig:
    """
    Configuration for the slot system.

    Attributes:
        default_duration_minutes: Slot length when a doctor has no template
        default_buffer_minutes: Gap between slots when a doctor has no template
        default_advance_booking_days: Booking horizon when a doctor has no template
        min_duration_minutes / max_duration_minutes: Allowed template slot length
        min_rule_minutes / max_rule_minutes: Allowed availability window length
        default_timezone: Calendar used when a doctor has no timezone set
    """
    default_duration_minutes: int = 30
    default_buffer_minutes: int = 0
    default_advance_booking_days: int = 30
    min_duration_minutes: int = 5
    max_duration_minutes: int = 480
    min_rule_minutes: int = 15
    max_rule_minutes: int = 24 * 60
    default_timezone: str = "UTC"

    def __post_init__(self):
        """Validate configuration."""
        if not self.min_duration_minutes <= self.default_duration_minutes <= self.max_duration_minutes:
            raise ValueError(
                f"default_duration_minutes must be within "
                f"[{self.min_duration_minutes}, {self.max_duration_minutes}], "
                f"got {self.default_duration_minutes}"
            )
        if self.default_buffer_minutes < 0:
            raise ValueError(f"default_buffer_minutes must be >= 0, got {self.default_buffer_minutes}")
        if self.default_advance_booking_days < 1:
            raise ValueError(
                f"default_advance_booking_days must be >= 1, got {self.default_advance_booking_days}"
            )
        if self.default_timezone not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone {self.default_timezone!r}")


@lru_cache
def get_scheduling_config() -> SchedulingConfig:
    """Get scheduling configuration (singleton) built from settings."""
    return SchedulingConfig(
        default_duration_minutes=settings.default_slot_duration_minutes,
        default_buffer_minutes=settings.default_slot_buffer_minutes,
        default_advance_booking_days=settings.default_advance_booking_days,
        default_timezone=settings.default_timezone,
    )


# ── Time helpers ─────────────────────────────────────────────────────────


def utcnow() -> datetime:
    """Current instant as an aware UTC datetime."""
    return datetime.now(pytz.UTC)


def ensure_utc(value: datetime) -> datetime:
    """Normalize value to aware UTC; naive values are taken as UTC."""
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


def local_to_utc(tz: pytz.BaseTzInfo, naive: datetime) -> datetime:
    """Interpret a naive wall-clock datetime in tz and return it in UTC."""
    return tz.localize(naive).astimezone(pytz.UTC)


def get_timezone(name: str | None) -> pytz.BaseTzInfo:
    """Resolve an IANA name, falling back to the configured default."""
    fallback = get_scheduling_config().default_timezone
    try:
        return pytz.timezone(name or fallback)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"Unknown timezone {name!r}, using {fallback}")
        return pytz.timezone(fallback)


def day_of_week(value) -> int:
    """Day index with 0 = Sunday ... 6 = Saturday."""
    return (value.weekday() + 1) % 7
