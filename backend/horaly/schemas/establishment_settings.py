# backend/horaly/schemas/establishment_settings.py
"""
Typed views of the establishment's JSON settings columns.

working_hours:          weekday -> WorkingDay
required_fields:        list of RequiredField
earliest/latest_booking_time: EarliestBooking / LatestBooking
notification_settings:  NotificationSettings

Unknown keys are rejected instead of silently ignored.
"""

from datetime import time
from enum import Enum

from pydantic import AliasChoices, BaseModel, Field, model_validator


WEEKDAY_KEYS = {
    "monday": 0, "mon": 0,
    "tuesday": 1, "tue": 1,
    "wednesday": 2, "wed": 2,
    "thursday": 3, "thu": 3,
    "friday": 4, "fri": 4,
    "saturday": 5, "sat": 5,
    "sunday": 6, "sun": 6,
}


class WorkingDay(BaseModel):
    """Opening hours of one weekday."""
    open: bool = Field(True, validation_alias=AliasChoices("open", "is_open", "active"))
    start: time | None = Field(None, validation_alias=AliasChoices("start", "start_time"))
    end: time | None = Field(None, validation_alias=AliasChoices("end", "end_time"))

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def check_interval(self):
        if not self.open:
            return self
        if self.start is None or self.end is None:
            raise ValueError("open day requires start and end")
        if self.start >= self.end:
            raise ValueError(f"start {self.start} must be before end {self.end}")
        return self

    @property
    def is_open(self) -> bool:
        return self.open


def parse_working_hours(raw: dict | None) -> dict[int, WorkingDay]:
    """
    Parse the working_hours JSON into {weekday index: WorkingDay}.

    0 = Monday. Missing weekdays are closed. A null entry is closed.
    """
    result: dict[int, WorkingDay] = {}
    for key, value in (raw or {}).items():
        weekday = WEEKDAY_KEYS.get(str(key).strip().lower())
        if weekday is None:
            raise ValueError(f"Unknown weekday key in working_hours: {key!r}")
        if value is None:
            result[weekday] = WorkingDay(open=False)
            continue
        result[weekday] = WorkingDay.model_validate(value)
    return result


class RequiredField(str, Enum):
    """Customer fields an establishment may require at booking."""
    name = "name"
    last_name = "last_name"
    phone = "phone"
    email = "email"
    birth_date = "birth_date"


def parse_required_fields(raw: list | None) -> list[RequiredField]:
    return [RequiredField(value) for value in (raw or [])]


class EarliestBooking(str, Enum):
    """First bookable day, relative to the establishment's today."""
    same_day = "same_day"
    plus_1_day = "+1 day"
    plus_2_days = "+2 days"
    plus_3_days = "+3 days"
    plus_7_days = "+7 days"
    plus_1_month = "+1 month"
    next_week = "next_week"
    next_month = "next_month"


class LatestBooking(str, Enum):
    """Last bookable day, relative to the establishment's today."""
    no_limit = "no_limit"
    plus_1_week = "+1 week"
    plus_2_weeks = "+2 weeks"
    plus_1_month = "+1 month"
    plus_2_months = "+2 months"
    plus_3_months = "+3 months"
    plus_6_months = "+6 months"


def parse_earliest_booking(raw: str | None) -> EarliestBooking:
    """Unset = same day. Raises ValueError for values outside the enum."""
    return EarliestBooking(raw.strip()) if raw else EarliestBooking.same_day


def parse_latest_booking(raw: str | None) -> LatestBooking:
    """Unset = no limit. Raises ValueError for values outside the enum."""
    return LatestBooking(raw.strip()) if raw else LatestBooking.no_limit


class NotificationSettings(BaseModel):
    """
    Per-establishment notification switches.

    confirmation_enabled   → appointment_confirmed events
    pending_enabled        → appointment_pending events
    cancellation_enabled   → appointment_cancelled events
    reminder_enabled,
    reminder_hours_before  → forwarded to the reminder consumer
    """
    confirmation_enabled: bool = True
    pending_enabled: bool = True
    cancellation_enabled: bool = True
    reminder_enabled: bool = False
    reminder_hours_before: int = Field(24, ge=1, le=168)

    model_config = {"extra": "forbid"}

    def allows(self, event_type: str) -> bool:
        switch = {
            "appointment_confirmed": self.confirmation_enabled,
            "appointment_pending": self.pending_enabled,
            "appointment_cancelled": self.cancellation_enabled,
        }
        return switch.get(event_type, True)
