# backend/horaly/services/reservations.py
"""
Reservation coordinator.

reserve() turns a (service, slot, customer, coupon) request into an
appointment without ever exceeding slots_per_hour at one start instant.

Capacity guard: every active appointment owns one row in slot_claims,
unique on (establishment_id, scheduled_at, seat) with seat in
[0, slots_per_hour). Two concurrent reservations cannot take the same seat;
the loser tries the next seat and gets SlotFull when none is left.
On SQLite the whole transaction additionally runs under BEGIN IMMEDIATE.

Status after reserve:
  deposit required → pending   (coupon redeemed when the deposit is paid)
  no deposit       → confirmed (coupon redeemed now)
"""

import logging
from datetime import datetime
from zoneinfo import ZoneInfo

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..clock import to_utc_naive
from ..errors import (
    AppointmentNotFound,
    CustomerDataInvalid,
    SlotBlocked,
    SlotClosed,
    SlotFull,
    SlotInPast,
)
from ..models.tables import Appointments, Customers, Establishments, SlotClaims
from ..schemas.appointments import CustomerIn
from ..schemas.establishment_settings import parse_required_fields
from .coupons import no_coupon_quote, redeem_coupon, validate_coupon
from .events import notify_status_change
from .pricing import compute_deposit_amount
from .slots.availability import (
    count_at,
    get_active_establishment,
    get_active_service,
    service_fits,
)
from .slots.calculator import calculate_day_slots, load_calendar
from .slots.config import BookingConfig
from .slots.rules import DayStatus, EstablishmentCalendar, SlotStatus, classify_day, classify_slot

logger = logging.getLogger(__name__)


def reserve(
    db: Session,
    establishment_id: int,
    service_id: int,
    scheduled_at: datetime,
    customer: CustomerIn,
    coupon_code: str | None,
    now: datetime,
    config: BookingConfig | None = None,
) -> Appointments:
    """
    Create an appointment for a slot.

    Args:
        scheduled_at: Slot start. Naive values are establishment local time.
        now: Current instant (aware).

    Raises:
        ServiceInactive, CustomerDataInvalid, SlotInPast, SlotBlocked,
        SlotClosed, SlotFull, CouponInvalid
    """
    try:
        establishment = get_active_establishment(db, establishment_id)
        service = get_active_service(db, establishment, service_id)
        _check_required_fields(establishment, customer)

        local_start = _to_local(scheduled_at, ZoneInfo(establishment.timezone))
        target_date = local_start.date()
        cal = load_calendar(db, establishment, target_date, target_date, config)
        _check_slot(cal, local_start, service.duration_minutes, now)

        instant = to_utc_naive(local_start)
        if count_at(db, establishment.id, instant) >= cal.slots_per_hour:
            raise SlotFull(f"Slot {local_start.isoformat()} is full")

        if coupon_code:
            quote = validate_coupon(db, establishment.id, service, coupon_code, cal.today(now))
        else:
            quote = no_coupon_quote(service)

        deposit = compute_deposit_amount(establishment, quote.final_price)
        status = "pending" if deposit > 0 else "confirmed"
        stamp = to_utc_naive(now)

        customer_row = find_or_create_customer(db, customer)
        appointment = Appointments(
            establishment_id=establishment.id,
            service_id=service.id,
            customer_id=customer_row.id,
            scheduled_at=instant,
            duration_minutes=service.duration_minutes,
            price=quote.base_price,
            discount_amount=quote.discount_amount,
            discount_code=quote.code,
            coupon_id=quote.coupon_id,
            coupon_redeemed=False,
            final_price=quote.final_price,
            booking_fee_amount=deposit,
            status=status,
            created_at=stamp,
            updated_at=stamp,
        )
        db.add(appointment)
        db.flush()

        _claim_seat(db, establishment.id, instant, appointment.id, cal.slots_per_hour)

        if status == "confirmed" and quote.coupon_id is not None:
            redeem_coupon(db, appointment.id, quote.coupon_id, enforce_limit=True)

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(appointment)
    logger.info(
        f"Appointment {appointment.id} reserved: establishment={establishment_id} "
        f"at={appointment.scheduled_at.isoformat()} status={appointment.status}"
    )
    notify_status_change(establishment, appointment)
    return appointment


def cancel_appointment(
    db: Session,
    appointment_id: int,
    reason: str,
    now: datetime,
) -> Appointments:
    """Cancel an appointment and release its seat. Idempotent."""
    appointment = db.get(Appointments, appointment_id)
    if appointment is None:
        raise AppointmentNotFound(f"Appointment {appointment_id} not found")
    if appointment.status == "cancelled":
        return appointment

    try:
        cancelled = mark_cancelled(db, appointment.id, reason, now)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(appointment)
    if not cancelled:
        # Cancelled by someone else in the meantime
        return appointment

    logger.info(f"Appointment {appointment.id} cancelled: reason={reason}")
    notify_status_change(appointment.establishment, appointment, reason)
    return appointment


def mark_cancelled(
    db: Session,
    appointment_id: int,
    reason: str,
    now: datetime,
    only_pending: bool = False,
) -> bool:
    """
    Cancel with a conditional UPDATE and drop the seat claim. Caller commits.

    The row must still be active (or still pending with only_pending), so a
    concurrent transition is never overwritten.

    Returns:
        True if this call cancelled the appointment.
    """
    if only_pending:
        condition = Appointments.status == "pending"
    else:
        condition = Appointments.status != "cancelled"

    cancelled = db.execute(
        update(Appointments)
        .where(Appointments.id == appointment_id, condition)
        .values(status="cancelled", cancellation_reason=reason, updated_at=to_utc_naive(now))
        .execution_options(synchronize_session=False)
    ).rowcount == 1
    if cancelled:
        release_seat(db, appointment_id)
    return cancelled


def release_seat(db: Session, appointment_id: int) -> None:
    db.execute(
        delete(SlotClaims)
        .where(SlotClaims.appointment_id == appointment_id)
        .execution_options(synchronize_session=False)
    )


def find_or_create_customer(db: Session, data: CustomerIn) -> Customers:
    """Find customer by phone, filling in newly provided fields, or create one."""
    customer = db.query(Customers).filter(Customers.phone == data.phone).first()
    if customer is None:
        try:
            with db.begin_nested():
                customer = Customers(**data.model_dump())
                db.add(customer)
            return customer
        except IntegrityError:
            # Created concurrently by another reservation
            customer = db.query(Customers).filter(Customers.phone == data.phone).one()

    for field, value in data.model_dump(exclude={"phone"}, exclude_none=True).items():
        setattr(customer, field, value)
    return customer


# ── Helpers ──────────────────────────────────────────────────────────────


def _to_local(scheduled_at: datetime, tz: ZoneInfo) -> datetime:
    if scheduled_at.tzinfo is None:
        return scheduled_at.replace(tzinfo=tz)
    return scheduled_at.astimezone(tz)


def _check_required_fields(establishment: Establishments, customer: CustomerIn) -> None:
    required = parse_required_fields(establishment.required_fields)
    missing = [
        field.value
        for field in required
        if getattr(customer, field.value) in (None, "")
    ]
    if missing:
        raise CustomerDataInvalid(missing)


def _check_slot(
    cal: EstablishmentCalendar,
    local_start: datetime,
    duration_minutes: int,
    now: datetime,
) -> None:
    """Re-validate the requested start against the calendar rules."""
    target_date = local_start.date()
    day_status = classify_day(cal, target_date, now)
    if day_status == DayStatus.past:
        raise SlotInPast(f"{target_date.isoformat()} is not bookable yet or already past")
    if day_status == DayStatus.blocked:
        raise SlotBlocked(f"{target_date.isoformat()} is blocked")
    if day_status == DayStatus.closed:
        raise SlotClosed(f"Closed on {target_date.isoformat()}")

    start = local_start.time().replace(tzinfo=None)
    on_grid = (
        start.second == 0
        and start.microsecond == 0
        and start.strftime("%H:%M") in calculate_day_slots(cal, target_date)
    )
    if not on_grid or not service_fits(cal, target_date, start, duration_minutes):
        raise SlotClosed(f"{local_start.strftime('%Y-%m-%d %H:%M')} is not a bookable slot")

    slot_status = classify_slot(cal, target_date, start, duration_minutes, now)
    if slot_status == SlotStatus.blocked:
        raise SlotBlocked(f"{local_start.strftime('%Y-%m-%d %H:%M')} is blocked")
    if slot_status == SlotStatus.past:
        raise SlotInPast(f"{local_start.strftime('%Y-%m-%d %H:%M')} is in the past")


def _claim_seat(
    db: Session,
    establishment_id: int,
    instant: datetime,
    appointment_id: int,
    capacity: int,
) -> int:
    """Insert the first free seat row for the slot. Raises SlotFull."""
    for seat in range(capacity):
        try:
            with db.begin_nested():
                db.add(SlotClaims(
                    establishment_id=establishment_id,
                    scheduled_at=instant,
                    seat=seat,
                    appointment_id=appointment_id,
                ))
        except IntegrityError:
            continue
        return seat

    raise SlotFull(f"No free seat at {instant.isoformat()}")
