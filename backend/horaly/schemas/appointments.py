# backend/horaly/schemas/appointments.py

import re
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class CustomerIn(BaseModel):
    """Customer data from the booking form. Phone is the lookup key."""
    phone: str = Field(description="Customer phone number")
    name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    birth_date: Optional[date] = None

    @field_validator("phone")
    @classmethod
    def normalize_phone(cls, v: str) -> str:
        """Normalize phone to E.164-like format."""
        if v.strip().startswith("+"):
            digits = re.sub(r"\D", "", v)
            if len(digits) < 8:
                raise ValueError("phone is too short")
            return "+" + digits
        digits = re.sub(r"\D", "", v)
        # Assume Brazilian number: DDD + 8/9 digit subscriber
        if len(digits) in (10, 11):
            digits = "55" + digits
        if len(digits) < 8:
            raise ValueError("phone is too short")
        return "+" + digits

    @field_validator("name", "last_name", "email")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class ReserveRequest(BaseModel):
    """
    Public booking request.

    Prices are always computed server-side; unknown fields such as a
    client-side discount_amount are ignored.
    """
    establishment_id: int
    service_id: int
    scheduled_at: datetime = Field(description="Slot start; naive = establishment local time")
    customer: CustomerIn
    coupon_code: Optional[str] = None

    model_config = {"extra": "ignore"}


class CancelRequest(BaseModel):
    reason: str = "cancelled_by_customer"


class AppointmentRead(BaseModel):
    id: int

    establishment_id: int
    service_id: int
    customer_id: int

    scheduled_at: datetime
    duration_minutes: int

    price: Decimal
    discount_amount: Decimal
    discount_code: Optional[str] = None
    final_price: Decimal
    booking_fee_amount: Decimal

    status: str
    cancellation_reason: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
