"""
Time calculator - wall-clock arithmetic for scheduling

Appointments store start/end as "HH:MM" strings on a single date. Everything
here works in minutes since midnight so comparisons stay integer.
"""

import math
from datetime import date, datetime, time
from typing import Optional

from ...config import DEFAULT_OPERATING_HOURS
from ...shared.validators import validate_time_string

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
MINUTES_PER_DAY = 24 * 60


def time_to_minutes(value: str) -> int:
    """Parse "HH:MM" into minutes since midnight. Raises ValueError on bad input."""
    normalized = validate_time_string(value)
    hours, minutes = normalized.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(minutes: int) -> str:
    if minutes < 0 or minutes >= MINUTES_PER_DAY:
        raise ValueError(f"{minutes} minutes is outside a single day")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def duration_to_minutes(hours: float) -> int:
    """Round a duration in hours to whole minutes (half up)"""
    return int(math.floor(hours * 60 + 0.5))


def end_minutes(start_time: str, duration_hours: float) -> int:
    """End of the window in minutes; may pass midnight, callers check against closing"""
    return time_to_minutes(start_time) + duration_to_minutes(duration_hours)


def intervals_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Half-open [start, end) intersection; touching intervals do not overlap"""
    return a_start < b_end and b_start < a_end


def weekday_name(day: date) -> str:
    return WEEKDAYS[day.weekday()]


def operating_window(operating_hours: Optional[dict], day: date) -> Optional[tuple[int, int]]:
    """
    Opening and closing minute for a date, or None when the workshop is closed.

    Workshops without configured hours use DEFAULT_OPERATING_HOURS. A weekday
    missing from a configured week counts as closed.
    """
    week = operating_hours or DEFAULT_OPERATING_HOURS
    hours = week.get(weekday_name(day))
    if not hours or hours.get("closed"):
        return None

    try:
        open_minutes = time_to_minutes(hours.get("open"))
        close_minutes = time_to_minutes(hours.get("close"))
    except ValueError:
        return None

    if close_minutes <= open_minutes:
        return None
    return open_minutes, close_minutes


def at_minutes(day: date, minutes: int) -> datetime:
    """Naive datetime for a minute offset on a date"""
    return datetime.combine(day, time(minutes // 60, minutes % 60))


def hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600
