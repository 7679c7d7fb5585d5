# backend/horaly/clock.py
"""
Time source for every "now"-dependent decision.

Services never call datetime.now() themselves: they receive `now` from a
Clock so past-slot checks, coupon windows and deposit expiry are
deterministic under test.
"""

from datetime import datetime, timedelta, timezone


class Clock:
    """Wall clock. now() is always timezone-aware UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock frozen at a given instant, movable with advance()."""

    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self._instant = instant

    def now(self) -> datetime:
        return self._instant

    def advance(self, **kwargs) -> None:
        self._instant += timedelta(**kwargs)


_system_clock = Clock()


# Dependency for FastAPI
def get_clock() -> Clock:
    return _system_clock


def to_utc_naive(value: datetime) -> datetime:
    """Aware datetime -> naive UTC, the storage form of every instant."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
