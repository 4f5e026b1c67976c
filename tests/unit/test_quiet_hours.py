"""Tests for the quiet-hours evaluator."""

from datetime import datetime, time
from uuid import uuid4

import pytest

from practiceflow.core.notifications.quiet_hours import (
    is_inside_quiet_hours,
    is_outside_quiet_hours,
    to_minutes,
)
from practiceflow.core.notifications.types import ContactPreferences


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 3, 14, hour, minute)


def prefs(start, end, enabled: bool = True) -> ContactPreferences:
    return ContactPreferences(
        client_id=uuid4(),
        quiet_hours_enabled=enabled,
        quiet_hours_start=start,
        quiet_hours_end=end,
    )


class TestToMinutes:
    """Test wall-clock parsing."""

    def test_time_object(self):
        assert to_minutes(time(22, 30)) == 22 * 60 + 30

    def test_hh_mm_string(self):
        assert to_minutes("07:05") == 7 * 60 + 5

    def test_hh_mm_ss_string_drops_seconds(self):
        assert to_minutes("22:00:59") == 22 * 60

    @pytest.mark.parametrize("value", [None, "", "noon", "25:00", "12:60", "1:2:3:4"])
    def test_invalid_values(self, value):
        assert to_minutes(value) is None


class TestWindow:
    """Test the half-open [start, end) window."""

    def test_same_day_window(self):
        assert is_inside_quiet_hours(9 * 60, 17 * 60, 12 * 60)
        assert not is_inside_quiet_hours(9 * 60, 17 * 60, 8 * 60 + 59)

    def test_start_inclusive_end_exclusive(self):
        assert is_inside_quiet_hours(9 * 60, 17 * 60, 9 * 60)
        assert not is_inside_quiet_hours(9 * 60, 17 * 60, 17 * 60)

    def test_wraparound_window(self):
        start, end = 22 * 60, 8 * 60
        assert is_inside_quiet_hours(start, end, 23 * 60)
        assert is_inside_quiet_hours(start, end, 0)
        assert is_inside_quiet_hours(start, end, 7 * 60 + 59)
        assert not is_inside_quiet_hours(start, end, 8 * 60)
        assert not is_inside_quiet_hours(start, end, 21 * 60 + 59)

    def test_equal_bounds_is_empty_window(self):
        assert not is_inside_quiet_hours(600, 600, 600)


class TestIsOutsideQuietHours:
    """Test the evaluator against preference snapshots."""

    def test_no_preferences_allows(self):
        assert is_outside_quiet_hours(None, at(23)) is True

    def test_disabled_allows(self):
        assert is_outside_quiet_hours(prefs(time(22), time(8), enabled=False), at(23)) is True

    def test_missing_bound_allows(self):
        assert is_outside_quiet_hours(prefs(time(22), None), at(23)) is True

    def test_inside_wraparound_blocks(self):
        assert is_outside_quiet_hours(prefs(time(22), time(8)), at(23, 30)) is False
        assert is_outside_quiet_hours(prefs(time(22), time(8)), at(2)) is False

    def test_outside_wraparound_allows(self):
        assert is_outside_quiet_hours(prefs(time(22), time(8)), at(12)) is True

    def test_end_boundary_allows(self):
        assert is_outside_quiet_hours(prefs(time(22), time(8)), at(8)) is True

    def test_start_boundary_blocks(self):
        assert is_outside_quiet_hours(prefs(time(22), time(8)), at(22)) is False

    def test_non_wraparound_window(self):
        p = prefs(time(12), time(13))
        assert is_outside_quiet_hours(p, at(12, 30)) is False
        assert is_outside_quiet_hours(p, at(13)) is True
        assert is_outside_quiet_hours(p, at(11, 59)) is True

    def test_stored_strings_with_seconds(self):
        p = prefs("22:00:00", "08:00:00")
        assert is_outside_quiet_hours(p, at(23)) is False
        assert is_outside_quiet_hours(p, at(9)) is True

    def test_unparseable_fails_open(self):
        assert is_outside_quiet_hours(prefs("late", "early"), at(23)) is True

    def test_timezone_field_is_not_applied(self):
        p = ContactPreferences(
            quiet_hours_enabled=True,
            quiet_hours_start=time(22),
            quiet_hours_end=time(8),
            timezone="Asia/Tokyo",
        )
        # 23:00 server-local is inside regardless of the stored zone
        assert is_outside_quiet_hours(p, at(23)) is False


class TestReferenceWindows:
    """Business-hours and overnight windows from the delivery rules."""

    @pytest.mark.parametrize("hour, minute, allowed", [
        (9, 0, False),
        (8, 59, True),
        (16, 59, False),
        (17, 0, True),
    ])
    def test_business_hours(self, hour, minute, allowed):
        assert is_outside_quiet_hours(prefs(time(9), time(17)), at(hour, minute)) is allowed

    @pytest.mark.parametrize("hour, minute, allowed", [
        (23, 0, False),
        (5, 59, False),
        (6, 0, True),
        (12, 0, True),
    ])
    def test_overnight(self, hour, minute, allowed):
        assert is_outside_quiet_hours(prefs(time(22), time(6)), at(hour, minute)) is allowed

    def test_disabled_allows_at_every_minute(self):
        p = prefs(time(0), time(23, 59), enabled=False)
        for minute in range(0, 24 * 60, 7):
            assert is_outside_quiet_hours(p, at(minute // 60, minute % 60)) is True
