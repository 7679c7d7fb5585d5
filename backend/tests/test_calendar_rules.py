from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

import pytest

from horaly.schemas.establishment_settings import parse_working_hours
from horaly.services.slots.rules import (
    BlockedDay,
    BlockedWindow,
    DayStatus,
    EstablishmentCalendar,
    SlotStatus,
    classify_day,
    classify_slot,
    earliest_booking_date,
    latest_booking_date,
    summarize_day,
)

from conftest import NOW, weekday_hours

MONDAY = date(2030, 6, 3)
NEXT_MONDAY = date(2030, 6, 10)


def make_calendar(**kwargs) -> EstablishmentCalendar:
    data = {
        "tz": ZoneInfo("UTC"),
        "working_hours": parse_working_hours(weekday_hours()),
    }
    data.update(kwargs)
    return EstablishmentCalendar(**data)


def test_fixture_dates_are_mondays():
    assert MONDAY.weekday() == 0
    assert NOW.date() == MONDAY


def test_open_weekday_is_available():
    assert classify_day(make_calendar(), NEXT_MONDAY, NOW) == DayStatus.available


def test_recurring_blocked_date_applies_every_year():
    cal = make_calendar(blocked_dates=(BlockedDay(date(2020, 12, 25), is_recurring=True),))

    assert classify_day(cal, date(2030, 12, 25), NOW) == DayStatus.blocked
    assert classify_day(cal, date(2034, 12, 25), NOW) == DayStatus.blocked
    assert classify_day(cal, date(2030, 12, 24), NOW).value in ("available", "closed")


def test_one_off_blocked_date_only_matches_that_year():
    cal = make_calendar(blocked_dates=(BlockedDay(date(2030, 6, 12)),))

    assert classify_day(cal, date(2030, 6, 12), NOW) == DayStatus.blocked
    assert classify_day(cal, date(2031, 6, 12), NOW) != DayStatus.blocked


def test_no_working_hours_entry_is_closed():
    cal = make_calendar(working_hours={})
    assert classify_day(cal, NEXT_MONDAY, NOW) == DayStatus.closed


def test_weekend_is_closed():
    sunday = date(2030, 6, 9)
    assert sunday.weekday() == 6
    assert classify_day(make_calendar(), sunday, NOW) == DayStatus.closed


def test_past_open_day_is_past():
    last_friday = date(2030, 5, 31)
    assert classify_day(make_calendar(), last_friday, NOW) == DayStatus.past


def test_precedence_blocked_over_closed_over_past():
    last_sunday = date(2030, 6, 2)
    last_friday = date(2030, 5, 31)
    cal = make_calendar(blocked_dates=(BlockedDay(last_friday),))

    # past + blocked
    assert classify_day(cal, last_friday, NOW) == DayStatus.blocked
    # past + closed
    assert classify_day(cal, last_sunday, NOW) == DayStatus.closed


def test_earliest_booking_window_marks_days_past():
    cal = make_calendar(earliest_booking_time="+2 days")

    assert classify_day(cal, date(2030, 6, 4), NOW) == DayStatus.past
    assert classify_day(cal, date(2030, 6, 5), NOW) == DayStatus.available


def test_latest_booking_window_marks_days_blocked():
    cal = make_calendar(latest_booking_time="+1 week")

    assert classify_day(cal, NEXT_MONDAY, NOW) == DayStatus.available
    assert classify_day(cal, date(2030, 6, 11), NOW) == DayStatus.blocked


def test_earliest_booking_date_settings():
    assert earliest_booking_date(None, MONDAY) == MONDAY
    assert earliest_booking_date("same_day", MONDAY) == MONDAY
    assert earliest_booking_date("+1 day", MONDAY) == date(2030, 6, 4)
    assert earliest_booking_date("+7 days", MONDAY) == NEXT_MONDAY
    assert earliest_booking_date("next_week", MONDAY) == NEXT_MONDAY
    assert earliest_booking_date("next_week", date(2030, 6, 8)) == NEXT_MONDAY
    assert earliest_booking_date("next_month", MONDAY) == date(2030, 7, 1)
    assert earliest_booking_date("+1 month", date(2030, 1, 31)) == date(2030, 2, 28)


def test_latest_booking_date_settings():
    assert latest_booking_date(None, MONDAY) is None
    assert latest_booking_date("no_limit", MONDAY) is None
    assert latest_booking_date("+2 weeks", MONDAY) == date(2030, 6, 17)
    assert latest_booking_date("+6 months", MONDAY) == date(2030, 12, 3)
    with pytest.raises(ValueError):
        latest_booking_date("someday", MONDAY)


def test_slot_starting_now_is_past():
    cal = make_calendar()
    now = datetime(2030, 6, 3, 9, 0, tzinfo=timezone.utc)

    assert classify_slot(cal, MONDAY, time(9, 0), 30, now) == SlotStatus.past
    assert classify_slot(cal, MONDAY, time(9, 30), 30, now) == SlotStatus.available


def test_slot_overlapping_blocked_window_is_blocked():
    cal = make_calendar(blocked_times=(BlockedWindow(NEXT_MONDAY, time(10, 0), time(11, 0)),))

    assert classify_slot(cal, NEXT_MONDAY, time(9, 30), 60, NOW) == SlotStatus.blocked
    assert classify_slot(cal, NEXT_MONDAY, time(10, 30), 30, NOW) == SlotStatus.blocked
    # touching edges do not overlap
    assert classify_slot(cal, NEXT_MONDAY, time(9, 0), 60, NOW) == SlotStatus.available
    assert classify_slot(cal, NEXT_MONDAY, time(11, 0), 30, NOW) == SlotStatus.available
    # other days are unaffected
    assert classify_slot(cal, date(2030, 6, 11), time(10, 0), 30, NOW) == SlotStatus.available


def test_slot_time_is_local_to_establishment():
    cal = make_calendar(tz=ZoneInfo("America/Sao_Paulo"))
    # 11:00 UTC is 08:00 in Sao Paulo
    now = datetime(2030, 6, 3, 11, 0, tzinfo=timezone.utc)

    assert classify_slot(cal, MONDAY, time(8, 0), 30, now) == SlotStatus.past
    assert classify_slot(cal, MONDAY, time(9, 0), 30, now) == SlotStatus.available


def test_summarize_day():
    s = SlotStatus
    assert summarize_day([s.past, s.available]) == DayStatus.available
    assert summarize_day([s.past, s.blocked, s.occupied]) == DayStatus.blocked
    assert summarize_day([s.past, s.occupied]) == DayStatus.closed
    assert summarize_day([]) == DayStatus.closed
    assert summarize_day([s.past, s.past]) == DayStatus.past


def test_working_hours_aliases_and_unknown_keys():
    hours = parse_working_hours({
        "Mon": {"is_open": True, "start_time": "08:00", "end_time": "12:00"},
        "tuesday": {"active": False},
        "wed": None,
    })
    assert hours[0].is_open and hours[0].start == time(8, 0) and hours[0].end == time(12, 0)
    assert not hours[1].is_open
    assert not hours[2].is_open

    with pytest.raises(ValueError):
        parse_working_hours({"funday": {"open": True, "start": "09:00", "end": "10:00"}})


def test_open_day_requires_valid_interval():
    with pytest.raises(ValueError):
        parse_working_hours({"monday": {"open": True, "start": "18:00", "end": "09:00"}})


def test_booking_window_values_outside_the_closed_lists_are_rejected():
    with pytest.raises(ValueError):
        earliest_booking_date("+5 days", MONDAY)
    with pytest.raises(ValueError):
        latest_booking_date("+1 year", MONDAY)
    with pytest.raises(ValueError):
        latest_booking_date("+1 day", MONDAY)
