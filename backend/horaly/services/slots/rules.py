# backend/horaly/services/slots/rules.py
"""
Calendar rules: pure classification of days and slots.

No database and no clock access here. Callers pass an
EstablishmentCalendar snapshot and the current instant.

Day:  blocked > closed > past > available
Slot: blocked > past > available  (occupied is added by availability.py)
"""

import calendar
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from zoneinfo import ZoneInfo

from ...schemas.establishment_settings import EarliestBooking, LatestBooking, WorkingDay
from .config import time_to_minutes


class DayStatus(str, Enum):
    past = "past"
    closed = "closed"
    blocked = "blocked"
    available = "available"


class SlotStatus(str, Enum):
    past = "past"
    blocked = "blocked"
    occupied = "occupied"
    available = "available"


@dataclass(frozen=True)
class BlockedDay:
    day: date
    is_recurring: bool = False

    def matches(self, target: date) -> bool:
        if self.is_recurring:
            return (self.day.month, self.day.day) == (target.month, target.day)
        return self.day == target


@dataclass(frozen=True)
class BlockedWindow:
    day: date
    start: time
    end: time


@dataclass(frozen=True)
class EstablishmentCalendar:
    """Snapshot of everything the rules need about one establishment."""
    tz: ZoneInfo
    working_hours: dict[int, WorkingDay]
    step_minutes: int = 30
    blocked_dates: tuple[BlockedDay, ...] = ()
    blocked_times: tuple[BlockedWindow, ...] = ()
    earliest_booking_time: EarliestBooking = EarliestBooking.same_day
    latest_booking_time: LatestBooking = LatestBooking.no_limit
    slots_per_hour: int = 1

    def local_now(self, now: datetime) -> datetime:
        return now.astimezone(self.tz)

    def today(self, now: datetime) -> date:
        return self.local_now(now).date()

    def working_day(self, day: date) -> WorkingDay | None:
        wd = self.working_hours.get(day.weekday())
        if wd is None or not wd.is_open:
            return None
        return wd

    def localize(self, day: date, start: time) -> datetime:
        return datetime.combine(day, start, tzinfo=self.tz)


# ── Booking window ───────────────────────────────────────────────────────

_RELATIVE = re.compile(r"^\+(\d+) (day|days|week|weeks|month|months)$")


def _add_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def _shift(today: date, setting: str) -> date:
    amount, unit = _RELATIVE.match(setting).groups()
    amount = int(amount)
    if unit.startswith("day"):
        return today + timedelta(days=amount)
    if unit.startswith("week"):
        return today + timedelta(weeks=amount)
    return _add_months(today, amount)


def earliest_booking_date(setting: EarliestBooking | str | None, today: date) -> date:
    """
    First bookable date.

    same_day | +N day(s) | +1 month | next_week (next Monday) |
    next_month (1st of next month). Unset = today.

    Raises:
        ValueError: setting outside EarliestBooking
    """
    setting = EarliestBooking(setting) if setting else EarliestBooking.same_day
    if setting == EarliestBooking.same_day:
        return today
    if setting == EarliestBooking.next_week:
        return today + timedelta(days=7 - today.weekday())
    if setting == EarliestBooking.next_month:
        return _add_months(today.replace(day=1), 1)
    return _shift(today, setting.value)


def latest_booking_date(setting: LatestBooking | str | None, today: date) -> date | None:
    """
    Last bookable date, or None for no_limit / unset.

    Raises:
        ValueError: setting outside LatestBooking
    """
    setting = LatestBooking(setting) if setting else LatestBooking.no_limit
    if setting == LatestBooking.no_limit:
        return None
    return _shift(today, setting.value)


# ── Classification ───────────────────────────────────────────────────────


def is_date_blocked(cal: EstablishmentCalendar, day: date) -> bool:
    return any(blocked.matches(day) for blocked in cal.blocked_dates)


def classify_day(cal: EstablishmentCalendar, day: date, now: datetime) -> DayStatus:
    """Classify a calendar date. Precedence: blocked > closed > past."""
    today = cal.today(now)

    latest = latest_booking_date(cal.latest_booking_time, today)
    if is_date_blocked(cal, day) or (latest is not None and day > latest):
        return DayStatus.blocked

    if cal.working_day(day) is None:
        return DayStatus.closed

    if day < today or day < earliest_booking_date(cal.earliest_booking_time, today):
        return DayStatus.past

    return DayStatus.available


def overlapping_window(
    cal: EstablishmentCalendar,
    day: date,
    start: time,
    duration_minutes: int,
) -> BlockedWindow | None:
    """First blocked window intersecting [start, start + duration)."""
    slot_start = time_to_minutes(start)
    slot_end = slot_start + duration_minutes
    for window in cal.blocked_times:
        if window.day != day:
            continue
        if slot_start < time_to_minutes(window.end) and time_to_minutes(window.start) < slot_end:
            return window
    return None


def classify_slot(
    cal: EstablishmentCalendar,
    day: date,
    start: time,
    duration_minutes: int,
    now: datetime,
) -> SlotStatus:
    """Classify one slot start. A slot starting exactly now is past."""
    if overlapping_window(cal, day, start, duration_minutes) is not None:
        return SlotStatus.blocked
    if cal.localize(day, start) <= now:
        return SlotStatus.past
    return SlotStatus.available


def summarize_day(statuses: list[SlotStatus]) -> DayStatus:
    """
    Day status of an open day from its slot statuses.

    Any available slot → available. Otherwise the dominant reason:
    blocked > closed (occupied, or no slot at all) > past.
    """
    if SlotStatus.available in statuses:
        return DayStatus.available
    if SlotStatus.blocked in statuses:
        return DayStatus.blocked
    if not statuses or SlotStatus.occupied in statuses:
        return DayStatus.closed
    return DayStatus.past
