# backend/horaly/routers/slots.py
"""
Slots API endpoints.

GET  /slots/calendar   - Day status map for a date range (service-specific)
GET  /slots/day        - Slot list for a day (service-specific)
POST /slots/invalidate - Drop cached Level 1 grids (settings collaborator)
"""

from datetime import date, timedelta
from fastapi import APIRouter, Depends, Query
from redis import Redis
from sqlalchemy.orm import Session

from ..clock import Clock, get_clock
from ..database import get_db
from ..redis_client import get_redis
from ..schemas.slots import (
    SlotsCalendarResponse,
    SlotsDayResponse,
    SlotsDayStatus,
    SlotsInvalidateRequest,
    SlotsInvalidateResponse,
)
from ..services.slots import (
    calculate_calendar,
    calculate_service_availability,
    establishment_today,
    get_active_establishment,
    get_booking_config,
    invalidate_establishment_cache,
)

DEFAULT_CALENDAR_DAYS = 30

router = APIRouter(prefix="/slots", tags=["slots"])


@router.get("/calendar", response_model=SlotsCalendarResponse)
def get_slots_calendar(
    establishment_id: int,
    service_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    redis: Redis | None = Depends(get_redis),
):
    """Get day statuses for a service over a date range."""
    if start_date is None:
        establishment = get_active_establishment(db, establishment_id)
        start_date = establishment_today(establishment, clock.now())
    if end_date is None:
        end_date = start_date + timedelta(days=DEFAULT_CALENDAR_DAYS - 1)

    days = calculate_calendar(
        db=db,
        establishment_id=establishment_id,
        service_id=service_id,
        start_date=start_date,
        end_date=end_date,
        now=clock.now(),
        config=get_booking_config(),
        redis=redis,
    )

    return SlotsCalendarResponse(
        establishment_id=establishment_id,
        service_id=service_id,
        start_date=start_date,
        end_date=end_date,
        days=[SlotsDayStatus(**day) for day in days],
    )


@router.get("/day", response_model=SlotsDayResponse)
def get_slots_day(
    establishment_id: int,
    service_id: int,
    target_date: date = Query(..., alias="date"),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    redis: Redis | None = Depends(get_redis),
):
    """Get time slots with statuses for a service on a specific day."""
    result = calculate_service_availability(
        db=db,
        establishment_id=establishment_id,
        service_id=service_id,
        target_date=target_date,
        now=clock.now(),
        config=get_booking_config(),
        redis=redis,
    )
    return SlotsDayResponse(**result)


@router.post("/invalidate", response_model=SlotsInvalidateResponse)
def invalidate_slots(
    data: SlotsInvalidateRequest,
    redis: Redis | None = Depends(get_redis),
):
    """Drop cached base grids for an establishment."""
    if redis is None:
        return SlotsInvalidateResponse(deleted=0)
    deleted = invalidate_establishment_cache(redis, data.establishment_id, data.dates)
    return SlotsInvalidateResponse(deleted=deleted)
