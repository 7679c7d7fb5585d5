# backend/horaly/services/slots/__init__.py
"""
Slots calculation module.

Level 1: Base establishment grid (cached in Redis Sorted Sets)
Level 2: Service availability (calculated on-the-fly)
"""

from .config import BookingConfig, get_booking_config
from .calculator import calculate_day_slots, load_calendar
from .redis_store import SlotsRedisStore
from .invalidator import invalidate_establishment_cache
from .availability import (
    calculate_calendar,
    calculate_service_availability,
    establishment_today,
    get_active_establishment,
    get_active_service,
)
from .rules import DayStatus, SlotStatus, classify_day, classify_slot

__all__ = [
    "BookingConfig",
    "get_booking_config",
    "calculate_day_slots",
    "load_calendar",
    "SlotsRedisStore",
    "invalidate_establishment_cache",
    "calculate_calendar",
    "calculate_service_availability",
    "establishment_today",
    "get_active_establishment",
    "get_active_service",
    "DayStatus",
    "SlotStatus",
    "classify_day",
    "classify_slot",
]
