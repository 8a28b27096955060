"""Tests for per-recipient schedule evaluation."""

from datetime import date, datetime

from threadbot.models.recipient import Slot
from threadbot.services.schedule import is_due, slot_date


class TestIsDue:
    """Tests for is_due."""

    def test_due_within_tolerance(self):
        now = datetime(2026, 1, 5, 9, 2)
        assert is_due("09:00", "UTC", Slot.MORNING, now, tolerance_minutes=5) is True

    def test_not_due_outside_tolerance(self):
        now = datetime(2026, 1, 5, 9, 6)
        assert is_due("09:00", "UTC", Slot.MORNING, now, tolerance_minutes=5) is False

    def test_tolerance_boundary_is_inclusive(self):
        now = datetime(2026, 1, 5, 8, 55)
        assert is_due("09:00", "UTC", Slot.MORNING, now, tolerance_minutes=5) is True

    def test_default_tolerance_is_half_the_poll_interval(self):
        # Default poll interval is 10 minutes
        assert is_due("09:00", "UTC", Slot.MORNING, datetime(2026, 1, 5, 9, 5)) is True
        assert is_due("09:00", "UTC", Slot.MORNING, datetime(2026, 1, 5, 9, 6)) is False

    def test_uses_recipient_timezone(self):
        # 14:02 UTC is 09:02 in New York (EST)
        now = datetime(2026, 1, 5, 14, 2)
        assert is_due("09:00", "America/New_York", Slot.MORNING, now, 5) is True
        assert is_due("09:00", "UTC", Slot.MORNING, now, 5) is False

    def test_follows_daylight_saving_shift(self):
        # DST starts 2026-03-08 in New York; 09:00 EDT is 13:00 UTC
        assert is_due("09:00", "America/New_York", Slot.MORNING, datetime(2026, 3, 8, 13, 2), 5)
        assert not is_due(
            "09:00", "America/New_York", Slot.MORNING, datetime(2026, 3, 8, 14, 2), 5
        )
        # The day before it was still 14:00 UTC
        assert is_due("09:00", "America/New_York", Slot.MORNING, datetime(2026, 3, 7, 14, 2), 5)

    def test_wraps_around_midnight(self):
        assert is_due("00:00", "UTC", Slot.EVENING, datetime(2026, 1, 4, 23, 58), 5) is True
        assert is_due("23:58", "UTC", Slot.EVENING, datetime(2026, 1, 5, 0, 1), 5) is True

    def test_invalid_timezone_falls_back_to_utc(self):
        now = datetime(2026, 1, 5, 9, 3)
        assert is_due("09:00", "Not/AZone", Slot.MORNING, now, 5) is True

    def test_invalid_slot_time_is_never_due(self):
        assert is_due("25:00", "UTC", Slot.MORNING, datetime(2026, 1, 5, 1, 0), 5) is False


class TestSlotDate:
    """Tests for slot_date."""

    def test_same_day(self):
        assert slot_date("09:00", "UTC", datetime(2026, 1, 5, 9, 2)) == date(2026, 1, 5)

    def test_tick_before_midnight_belongs_to_next_day(self):
        assert slot_date("00:00", "UTC", datetime(2026, 1, 4, 23, 58)) == date(2026, 1, 5)
        assert slot_date("00:00", "UTC", datetime(2026, 1, 5, 0, 2)) == date(2026, 1, 5)

    def test_tick_after_midnight_belongs_to_previous_day(self):
        assert slot_date("23:58", "UTC", datetime(2026, 1, 5, 0, 1)) == date(2026, 1, 4)

    def test_uses_local_date(self):
        # 02:00 UTC on the 6th is still the 5th in Los Angeles
        assert slot_date("18:00", "America/Los_Angeles", datetime(2026, 1, 6, 2, 0)) == date(
            2026, 1, 5
        )
