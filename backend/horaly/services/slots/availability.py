# backend/horaly/services/slots/availability.py
"""
Level 2: Service availability calculation.

Calculates slot statuses for a specific service on a day, and day statuses
over a date range.

Takes into account:
- Base establishment grid (Level 1, cached in Redis Sorted Set)
- Day rules (blocked dates, booking window, weekday closed)
- Service duration (must end by closing time)
- Blocked time windows
- Current instant
- Active appointments at the exact slot start vs slots_per_hour
"""

from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from redis import Redis
from sqlalchemy import func
from sqlalchemy.orm import Session

from ...clock import to_utc_naive
from ...errors import EstablishmentNotFound, InvalidRange, ServiceInactive
from ...models.tables import ACTIVE_STATUSES, Appointments, Establishments, Services
from .calculator import calculate_day_slots, load_calendar
from .config import BookingConfig, get_booking_config, time_str_to_minutes, time_to_minutes
from .redis_store import SlotsRedisStore
from .rules import (
    DayStatus,
    EstablishmentCalendar,
    SlotStatus,
    classify_day,
    classify_slot,
    summarize_day,
)


def calculate_service_availability(
    db: Session,
    establishment_id: int,
    service_id: int,
    target_date: date,
    now: datetime,
    config: BookingConfig | None = None,
    redis: Redis | None = None,
) -> dict:
    """
    Slot list for a service on a day.

    Returns:
        Dict for SlotsDayResponse: day status plus [{time, status}].
    """
    config = config or get_booking_config()
    establishment = get_active_establishment(db, establishment_id)
    service = get_active_service(db, establishment, service_id)
    cal = load_calendar(db, establishment, target_date, target_date, config)

    day_status = classify_day(cal, target_date, now)
    slots: list[dict] = []
    if day_status == DayStatus.available:
        counts = count_active_appointments(db, establishment.id, cal, target_date, target_date)
        slots = _classify_service_slots(
            cal, target_date, service.duration_minutes, now, counts,
            _get_base_times(cal, establishment.id, target_date, config, redis),
        )
        day_status = summarize_day([slot["status"] for slot in slots])

    return {
        "establishment_id": establishment.id,
        "service_id": service.id,
        "date": target_date,
        "status": day_status,
        "service_duration_min": service.duration_minutes,
        "slots": slots,
    }


def calculate_calendar(
    db: Session,
    establishment_id: int,
    service_id: int,
    start_date: date,
    end_date: date,
    now: datetime,
    config: BookingConfig | None = None,
    redis: Redis | None = None,
) -> list[dict]:
    """
    Day status map for a service over [start_date, end_date].

    Raises:
        InvalidRange: end before start, or range longer than max_range_days.
    """
    config = config or get_booking_config()
    if end_date < start_date:
        raise InvalidRange("end_date is before start_date")
    if (end_date - start_date).days + 1 > config.max_range_days:
        raise InvalidRange(f"Range exceeds {config.max_range_days} days")

    establishment = get_active_establishment(db, establishment_id)
    service = get_active_service(db, establishment, service_id)
    cal = load_calendar(db, establishment, start_date, end_date, config)
    counts = count_active_appointments(db, establishment.id, cal, start_date, end_date)

    days = []
    current = start_date
    while current <= end_date:
        status = classify_day(cal, current, now)
        if status == DayStatus.available:
            slots = _classify_service_slots(
                cal, current, service.duration_minutes, now, counts,
                _get_base_times(cal, establishment.id, current, config, redis),
            )
            status = summarize_day([slot["status"] for slot in slots])
        days.append({"date": current, "status": status})
        current += timedelta(days=1)

    return days


def service_fits(cal: EstablishmentCalendar, target_date: date, start: time, duration_minutes: int) -> bool:
    """True if [start, start + duration) ends by the day's closing time."""
    working_day = cal.working_day(target_date)
    if working_day is None:
        return False
    return time_to_minutes(start) + duration_minutes <= time_to_minutes(working_day.end)


# ── Base times (Level 1 with cache) ─────────────────────────────────────


def _get_base_times(
    cal: EstablishmentCalendar,
    establishment_id: int,
    target_date: date,
    config: BookingConfig,
    redis: Redis | None,
) -> list[str]:
    """Get base establishment times, using Redis cache when available."""
    if redis is not None:
        store = SlotsRedisStore(redis, config)
        cached = store.get_day_slots(establishment_id, target_date)
        if cached is not None:
            return cached

        # Cache miss: calculate and store
        slots = calculate_day_slots(cal, target_date)
        store.store_day_slots(establishment_id, target_date, slots)
        return slots

    # No Redis: calculate on the fly
    return calculate_day_slots(cal, target_date)


def _classify_service_slots(
    cal: EstablishmentCalendar,
    target_date: date,
    duration_minutes: int,
    now: datetime,
    counts: dict[datetime, int],
    base_times: list[str],
) -> list[dict]:
    slots = []
    for time_str in base_times:
        minutes = time_str_to_minutes(time_str)
        start = time(minutes // 60, minutes % 60)
        if not service_fits(cal, target_date, start, duration_minutes):
            continue

        status = classify_slot(cal, target_date, start, duration_minutes, now)
        if status == SlotStatus.available:
            instant = to_utc_naive(cal.localize(target_date, start))
            if counts.get(instant, 0) >= cal.slots_per_hour:
                status = SlotStatus.occupied

        slots.append({"time": time_str, "status": status})
    return slots


# ── Database helpers ─────────────────────────────────────────────────────


def get_active_establishment(db: Session, establishment_id: int) -> Establishments:
    establishment = db.get(Establishments, establishment_id)
    if establishment is None or not establishment.is_active:
        raise EstablishmentNotFound(f"Establishment {establishment_id} not found")
    return establishment


def get_active_service(db: Session, establishment: Establishments, service_id: int) -> Services:
    service = db.get(Services, service_id)
    if (
        service is None
        or not service.is_active
        or service.establishment_id != establishment.id
    ):
        raise ServiceInactive(f"Service {service_id} is not available")
    return service


def establishment_today(establishment: Establishments, now: datetime) -> date:
    """Current date in the establishment's time zone."""
    return now.astimezone(ZoneInfo(establishment.timezone)).date()


def day_bounds_utc(cal: EstablishmentCalendar, start_date: date, end_date: date) -> tuple[datetime, datetime]:
    """[local midnight of start_date, local midnight after end_date) as naive UTC."""
    lower = to_utc_naive(cal.localize(start_date, time.min))
    upper = to_utc_naive(cal.localize(end_date + timedelta(days=1), time.min))
    return lower, upper


def count_active_appointments(
    db: Session,
    establishment_id: int,
    cal: EstablishmentCalendar,
    start_date: date,
    end_date: date,
) -> dict[datetime, int]:
    """Active appointment count per exact start instant (naive UTC)."""
    lower, upper = day_bounds_utc(cal, start_date, end_date)
    rows = (
        db.query(Appointments.scheduled_at, func.count(Appointments.id))
        .filter(
            Appointments.establishment_id == establishment_id,
            Appointments.status.in_(ACTIVE_STATUSES),
            Appointments.scheduled_at >= lower,
            Appointments.scheduled_at < upper,
        )
        .group_by(Appointments.scheduled_at)
        .all()
    )
    return {scheduled_at: count for scheduled_at, count in rows}


def count_at(db: Session, establishment_id: int, instant: datetime) -> int:
    """Active appointments starting exactly at instant (naive UTC)."""
    return (
        db.query(func.count(Appointments.id))
        .filter(
            Appointments.establishment_id == establishment_id,
            Appointments.status.in_(ACTIVE_STATUSES),
            Appointments.scheduled_at == instant,
        )
        .scalar()
    )
