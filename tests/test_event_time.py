from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from core.domain.models import CourtSession
from core.utils.event_time import (
    court_window,
    earliest_start,
    has_ended,
    has_started,
    is_valid_hhmm,
    latest_end,
    to_minutes,
)

BANGKOK = ZoneInfo("Asia/Bangkok")
DAY = date(2026, 3, 14)


def court(start, end, number=1):
    return CourtSession(court_number=number, start_time=start, end_time=end)


@pytest.mark.parametrize("value,ok", [
    ("00:00", True),
    ("23:59", True),
    ("9:30", False),
    ("24:00", False),
    ("12:60", False),
    ("", False),
])
def test_is_valid_hhmm(value, ok):
    assert is_valid_hhmm(value) is ok


def test_to_minutes():
    assert to_minutes("20:30") == 1230


def test_court_window_same_day():
    start, end = court_window(DAY, court("20:00", "22:00"), BANGKOK)

    assert start == datetime(2026, 3, 14, 20, 0, tzinfo=BANGKOK)
    assert end == datetime(2026, 3, 14, 22, 0, tzinfo=BANGKOK)


def test_court_window_rolls_past_midnight():
    _, end = court_window(DAY, court("23:00", "01:00"), BANGKOK)

    assert end == datetime(2026, 3, 15, 1, 0, tzinfo=BANGKOK)


def test_unusable_court_time_is_skipped():
    courts = [court("late", "22:00"), court("19:00", "21:00", 2)]

    assert court_window(DAY, courts[0], BANGKOK) is None
    assert earliest_start(DAY, courts, BANGKOK) == datetime(2026, 3, 14, 19, 0, tzinfo=BANGKOK)


def test_span_across_courts():
    courts = [court("19:00", "21:00"), court("20:00", "23:30", 2)]

    assert earliest_start(DAY, courts, BANGKOK).hour == 19
    assert latest_end(DAY, courts, BANGKOK) == datetime(2026, 3, 14, 23, 30, tzinfo=BANGKOK)


def test_no_courts_means_never():
    now = datetime(2030, 1, 1, tzinfo=timezone.utc)

    assert not has_started(DAY, [], now, BANGKOK)
    assert not has_ended(DAY, [], now, BANGKOK)


def test_start_and_end_compare_in_venue_timezone():
    courts = [court("20:00", "22:00")]

    assert not has_started(DAY, courts, datetime(2026, 3, 14, 12, 59, tzinfo=timezone.utc), BANGKOK)
    assert has_started(DAY, courts, datetime(2026, 3, 14, 13, 0, tzinfo=timezone.utc), BANGKOK)
    assert not has_ended(DAY, courts, datetime(2026, 3, 14, 14, 59, tzinfo=timezone.utc), BANGKOK)
    assert has_ended(DAY, courts, datetime(2026, 3, 14, 15, 0, tzinfo=timezone.utc), BANGKOK)
