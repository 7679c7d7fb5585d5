# backend/horaly/schemas/slots.py
"""
Pydantic schemas for slots API.
"""

from datetime import date
from pydantic import BaseModel, Field

from ..services.slots.rules import DayStatus, SlotStatus


class SlotsDayStatus(BaseModel):
    """Status of a single day in calendar."""
    date: date
    status: DayStatus

    model_config = {"from_attributes": True}


class SlotsCalendarResponse(BaseModel):
    """Response with day statuses for a date range."""
    establishment_id: int
    service_id: int
    start_date: date
    end_date: date
    days: list[SlotsDayStatus]

    model_config = {"from_attributes": True}


class SlotInfo(BaseModel):
    """Information about a single slot."""
    time: str  # "HH:MM", establishment local time
    status: SlotStatus

    model_config = {"from_attributes": True}


class SlotsDayResponse(BaseModel):
    """Response with detailed slots for a day (Level 2)."""
    establishment_id: int
    service_id: int
    date: date
    status: DayStatus
    service_duration_min: int
    slots: list[SlotInfo]

    model_config = {"from_attributes": True}


class SlotsInvalidateRequest(BaseModel):
    """Drop cached Level 1 grids after working hours change."""
    establishment_id: int
    dates: list[date] | None = Field(None, description="None = every cached date")


class SlotsInvalidateResponse(BaseModel):
    deleted: int
