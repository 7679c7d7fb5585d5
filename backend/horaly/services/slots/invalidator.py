# backend/horaly/services/slots/invalidator.py
"""
Cache invalidation for establishment slot grids.

Triggers:
✓ working_hours changed → invalidate all dates
✓ booking_interval_minutes changed → invalidate all dates

Does NOT trigger:
✗ Appointment created/cancelled (Level 2 calculates on-the-fly)
✗ Blocked dates / blocked times (evaluated live by rules.py)
"""

import logging
from datetime import date
from redis import Redis

from .redis_store import SlotsRedisStore

logger = logging.getLogger(__name__)


def invalidate_establishment_cache(
    redis: Redis,
    establishment_id: int,
    dates: list[date] | None = None,
) -> int:
    """
    Invalidate cached grids for an establishment.

    Returns:
        Number of deleted cache keys
    """
    deleted = SlotsRedisStore(redis).delete_day_slots(establishment_id, dates)
    logger.info(f"Slot cache invalidated: establishment={establishment_id} keys={deleted}")
    return deleted
