# backend/horaly/services/slots/calculator.py
"""
Level 1: Base establishment slot grid.

Produces the candidate start times of a day:
  ["09:00", "09:30", ...]

Contains:
✓ working_hours of the establishment (weekday open/close)
✓ booking_interval_minutes (grid step)

Does NOT contain:
✗ Blocked dates / blocked times (rules.py, evaluated live)
✗ Service duration fit (Level 2)
✗ Appointments (Level 2)
✗ "now" (Level 2)
"""

import logging
from datetime import date
from zoneinfo import ZoneInfo

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models.tables import BlockedDates, BlockedTimes, Establishments
from ...schemas.establishment_settings import (
    EarliestBooking,
    LatestBooking,
    parse_earliest_booking,
    parse_latest_booking,
    parse_working_hours,
)
from .config import BookingConfig, get_booking_config, minutes_to_time_str, time_to_minutes
from .rules import BlockedDay, BlockedWindow, EstablishmentCalendar

logger = logging.getLogger(__name__)


def calculate_day_slots(cal: EstablishmentCalendar, target_date: date) -> list[str]:
    """
    Candidate slot starts for target_date.

    Returns:
        Sorted "HH:MM" strings. Empty list = closed weekday.
    """
    working_day = cal.working_day(target_date)
    if working_day is None:
        return []

    start_min = time_to_minutes(working_day.start)
    end_min = time_to_minutes(working_day.end)
    step = cal.step_minutes

    slots: list[str] = []
    t = start_min
    while t < end_min:
        slots.append(minutes_to_time_str(t))
        t += step
    return slots


def load_calendar(
    db: Session,
    establishment: Establishments,
    start_date: date | None = None,
    end_date: date | None = None,
    config: BookingConfig | None = None,
) -> EstablishmentCalendar:
    """
    Build the rules snapshot of an establishment.

    Blocked dates/times are limited to [start_date, end_date] when given;
    recurring blocked dates are always loaded.
    """
    config = config or get_booking_config()

    return EstablishmentCalendar(
        tz=ZoneInfo(establishment.timezone),
        working_hours=parse_working_hours(establishment.working_hours),
        step_minutes=config.step_for(establishment),
        blocked_dates=tuple(
            BlockedDay(day=row.blocked_date, is_recurring=bool(row.is_recurring))
            for row in _get_blocked_dates(db, establishment.id, start_date, end_date)
        ),
        blocked_times=tuple(
            BlockedWindow(day=row.blocked_date, start=row.start_time, end=row.end_time)
            for row in _get_blocked_times(db, establishment.id, start_date, end_date)
        ),
        earliest_booking_time=_earliest_booking(establishment),
        latest_booking_time=_latest_booking(establishment),
        slots_per_hour=establishment.slots_per_hour or 1,
    )


# ── Helpers ──────────────────────────────────────────────────────────────


def _earliest_booking(establishment: Establishments) -> EarliestBooking:
    try:
        return parse_earliest_booking(establishment.earliest_booking_time)
    except ValueError:
        logger.warning(
            f"Invalid earliest_booking_time {establishment.earliest_booking_time!r} "
            f"for establishment {establishment.id}, using same_day"
        )
        return EarliestBooking.same_day


def _latest_booking(establishment: Establishments) -> LatestBooking:
    try:
        return parse_latest_booking(establishment.latest_booking_time)
    except ValueError:
        logger.warning(
            f"Invalid latest_booking_time {establishment.latest_booking_time!r} "
            f"for establishment {establishment.id}, using no_limit"
        )
        return LatestBooking.no_limit



def _get_blocked_dates(
    db: Session,
    establishment_id: int,
    start_date: date | None,
    end_date: date | None,
) -> list[BlockedDates]:
    query = db.query(BlockedDates).filter(BlockedDates.establishment_id == establishment_id)
    if start_date is not None and end_date is not None:
        query = query.filter(
            or_(
                BlockedDates.is_recurring.is_(True),
                BlockedDates.blocked_date.between(start_date, end_date),
            )
        )
    return query.all()


def _get_blocked_times(
    db: Session,
    establishment_id: int,
    start_date: date | None,
    end_date: date | None,
) -> list[BlockedTimes]:
    query = db.query(BlockedTimes).filter(BlockedTimes.establishment_id == establishment_id)
    if start_date is not None and end_date is not None:
        query = query.filter(BlockedTimes.blocked_date.between(start_date, end_date))
    return query.all()
