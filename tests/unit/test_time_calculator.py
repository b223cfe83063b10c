"""
Unit tests for scheduling time arithmetic
"""

from datetime import date, datetime

import pytest

from repairhub.domain.scheduling.time_calculator import (
    at_minutes,
    duration_to_minutes,
    end_minutes,
    hours_between,
    intervals_overlap,
    minutes_to_time,
    operating_window,
    time_to_minutes,
    weekday_name,
)

MONDAY = date(2026, 3, 2)
SATURDAY = date(2026, 3, 7)
SUNDAY = date(2026, 3, 8)


@pytest.mark.unit
class TestTimeParsing:
    def test_time_to_minutes(self):
        assert time_to_minutes("00:00") == 0
        assert time_to_minutes("10:30") == 630
        assert time_to_minutes("9:05") == 545

    @pytest.mark.parametrize("value", ["24:00", "10:60", "1030", "", None, "ten"])
    def test_invalid_times_raise(self, value):
        with pytest.raises(ValueError):
            time_to_minutes(value)

    def test_minutes_to_time_pads(self):
        assert minutes_to_time(545) == "09:05"
        assert minutes_to_time(0) == "00:00"

    def test_minutes_to_time_rejects_next_day(self):
        with pytest.raises(ValueError):
            minutes_to_time(24 * 60)

    def test_duration_rounds_to_whole_minutes(self):
        assert duration_to_minutes(2) == 120
        assert duration_to_minutes(0.5) == 30
        assert duration_to_minutes(1.25) == 75

    def test_end_minutes(self):
        assert end_minutes("10:00", 2) == 720


@pytest.mark.unit
class TestOverlap:
    def test_overlapping_intervals(self):
        # existing 10:00-12:00, candidate 11:00-13:00
        assert intervals_overlap(660, 780, 600, 720)

    def test_touching_intervals_do_not_overlap(self):
        # existing 10:00-12:00, candidate 12:00-14:00
        assert not intervals_overlap(720, 840, 600, 720)
        assert not intervals_overlap(480, 600, 600, 720)

    def test_contained_interval_overlaps(self):
        assert intervals_overlap(630, 660, 600, 720)


@pytest.mark.unit
class TestOperatingHours:
    def test_weekday_name(self):
        assert weekday_name(MONDAY) == "monday"
        assert weekday_name(SUNDAY) == "sunday"

    def test_default_week_is_used_when_unset(self):
        assert operating_window(None, MONDAY) == (8 * 60, 17 * 60)
        assert operating_window(None, SATURDAY) == (8 * 60, 15 * 60)
        assert operating_window(None, SUNDAY) is None

    def test_custom_week(self):
        hours = {"monday": {"open": "07:30", "close": "19:00", "closed": False}}
        assert operating_window(hours, MONDAY) == (450, 1140)

    def test_missing_day_in_custom_week_is_closed(self):
        hours = {"monday": {"open": "07:30", "close": "19:00", "closed": False}}
        assert operating_window(hours, SATURDAY) is None

    def test_closed_flag(self):
        hours = {"monday": {"open": "08:00", "close": "17:00", "closed": True}}
        assert operating_window(hours, MONDAY) is None


@pytest.mark.unit
def test_at_minutes_and_hours_between():
    start = datetime(2026, 3, 2, 9, 0)
    assert at_minutes(MONDAY, 630) == datetime(2026, 3, 2, 10, 30)
    assert hours_between(start, at_minutes(MONDAY, 630)) == 1.5
