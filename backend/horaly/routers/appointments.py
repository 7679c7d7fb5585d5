# backend/horaly/routers/appointments.py

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..clock import Clock, get_clock
from ..database import get_db
from ..errors import AppointmentNotFound
from ..models.tables import Appointments as DBAppointments
from ..schemas.appointments import (
    AppointmentRead,
    CancelRequest,
    ReserveRequest,
)
from ..services.reservations import cancel_appointment, reserve

router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.post("/", response_model=AppointmentRead, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: ReserveRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Reserve a slot. Price, discount and status are decided server-side."""
    return reserve(
        db,
        establishment_id=data.establishment_id,
        service_id=data.service_id,
        scheduled_at=data.scheduled_at,
        customer=data.customer,
        coupon_code=data.coupon_code,
        now=clock.now(),
    )


@router.get("/{id}", response_model=AppointmentRead)
def get_appointment(id: int, db: Session = Depends(get_db)):
    obj = db.get(DBAppointments, id)
    if not obj:
        raise AppointmentNotFound(f"Appointment {id} not found")
    return obj


@router.post("/{id}/cancel", response_model=AppointmentRead)
def cancel(
    id: int,
    data: CancelRequest | None = None,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    reason = data.reason if data else CancelRequest().reason
    return cancel_appointment(db, id, reason, clock.now())
