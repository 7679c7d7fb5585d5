# backend/horaly/services/slots/config.py
"""
Booking configuration for slots calculation.
"""

from dataclasses import dataclass
from datetime import time
from functools import lru_cache

from ...config import settings


@dataclass(frozen=True)
class BookingConfig:
    """
    Configuration for booking/slots system.

    Attributes:
        slot_step_minutes: Grid step used when an establishment has no
                           booking_interval_minutes of its own
        max_range_days: Longest date range accepted by the calendar view
        cache_ttl_seconds: Redis cache TTL for the base grid
    """
    slot_step_minutes: int = 30
    max_range_days: int = 62
    cache_ttl_seconds: int = 86400  # 24 hours

    def __post_init__(self):
        """Validate configuration."""
        if self.slot_step_minutes <= 0 or (24 * 60) % self.slot_step_minutes:
            raise ValueError(f"slot_step_minutes must divide a day, got {self.slot_step_minutes}")
        if self.max_range_days < 1:
            raise ValueError(f"max_range_days must be positive, got {self.max_range_days}")

    def step_for(self, establishment) -> int:
        """Grid step of an establishment, falling back to the default."""
        return establishment.booking_interval_minutes or self.slot_step_minutes


@lru_cache
def get_booking_config() -> BookingConfig:
    """Get booking configuration (singleton), read from settings."""
    return BookingConfig(
        slot_step_minutes=settings.slot_step_minutes,
        max_range_days=settings.max_range_days,
        cache_ttl_seconds=settings.cache_ttl_seconds,
    )


# ── Time helpers ─────────────────────────────────────────────────────────


def time_str_to_minutes(value: str) -> int:
    """"HH:MM" → minutes since midnight."""
    hours, minutes = value.split(":")[:2]
    return int(hours) * 60 + int(minutes)


def minutes_to_time_str(minutes: int) -> str:
    """Minutes since midnight → "HH:MM"."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def time_to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute
