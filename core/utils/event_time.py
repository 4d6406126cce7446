"""
Court time helpers.

Court and player times are "HH:MM" wall-clock strings on the event date in
the venue timezone. An end time at or before its start time belongs to the
next day (late-night sessions).
"""

import logging
import re
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional, Tuple
from zoneinfo import ZoneInfo

from core.domain.constants import TIME_FORMAT_PATTERN
from core.domain.models import CourtSession

logger = logging.getLogger(__name__)

_HHMM = re.compile(TIME_FORMAT_PATTERN)


def is_valid_hhmm(value: str) -> bool:
    return bool(value) and bool(_HHMM.match(value))


def to_minutes(value: str) -> int:
    """'20:30' -> 1230"""
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def court_window(event_date: date, court: CourtSession, tz: ZoneInfo) -> Optional[Tuple[datetime, datetime]]:
    """Absolute (start, end) of a court session, or None if its times are unusable."""
    try:
        start = datetime.combine(event_date, time.fromisoformat(court.start_time), tzinfo=tz)
        end = datetime.combine(event_date, time.fromisoformat(court.end_time), tzinfo=tz)
    except (TypeError, ValueError):
        logger.warning(f"[EVENT_TIME] Invalid court time on {event_date}: "
                       f"{court.start_time}-{court.end_time}")
        return None
    if end <= start:
        end += timedelta(days=1)
    return start, end


def earliest_start(event_date: date, courts: Iterable[CourtSession], tz: ZoneInfo) -> Optional[datetime]:
    starts = [w[0] for w in (court_window(event_date, c, tz) for c in courts) if w]
    return min(starts) if starts else None


def latest_end(event_date: date, courts: Iterable[CourtSession], tz: ZoneInfo) -> Optional[datetime]:
    ends = [w[1] for w in (court_window(event_date, c, tz) for c in courts) if w]
    return max(ends) if ends else None


def has_started(event_date: date, courts: Iterable[CourtSession], now: datetime, tz: ZoneInfo) -> bool:
    start = earliest_start(event_date, courts, tz)
    return start is not None and now >= start


def has_ended(event_date: date, courts: Iterable[CourtSession], now: datetime, tz: ZoneInfo) -> bool:
    end = latest_end(event_date, courts, tz)
    return end is not None and now >= end
