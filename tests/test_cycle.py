"""Tests for cycle day, phase and time-of-day calculations."""

from datetime import date, datetime, timezone

import pytest

from cycle_wellness.cycle.phase import (
    CycleInfo,
    CyclePhase,
    TimeOfDay,
    cycle_day,
    days_until_next_period,
    is_sensitive_day,
    phase_for_day,
    time_of_day,
    time_of_day_for,
)
from cycle_wellness.database.models import UserCycle


class TestCycleDay:
    """Tests for the 1-based cycle day."""

    def test_start_date_is_day_one(self):
        assert cycle_day(date(2024, 6, 1), 28, date(2024, 6, 1)) == 1

    def test_wraps_into_next_cycle(self):
        assert cycle_day(date(2024, 6, 1), 28, date(2024, 6, 29)) == 1
        assert cycle_day(date(2024, 6, 1), 28, date(2024, 6, 28)) == 28

    def test_dates_before_start_wrap_backwards(self):
        """The day before the recorded start is the last day of the previous cycle."""
        assert cycle_day(date(2024, 6, 1), 28, date(2024, 5, 31)) == 28
        assert cycle_day(date(2024, 6, 1), 30, date(2024, 5, 2)) == 1

    def test_always_within_cycle_length(self):
        start = date(2024, 1, 1)
        for offset in range(-100, 100):
            day = cycle_day(start, 31, date.fromordinal(start.toordinal() + offset))
            assert 1 <= day <= 31

    def test_rejects_non_positive_length(self):
        with pytest.raises(ValueError):
            cycle_day(date(2024, 6, 1), 0, date(2024, 6, 1))


class TestPhaseForDay:
    """Tests for phase boundaries."""

    @pytest.mark.parametrize(
        "day,expected",
        [
            (1, CyclePhase.MENSTRUAL),
            (5, CyclePhase.MENSTRUAL),
            (6, CyclePhase.FOLLICULAR),
            (13, CyclePhase.FOLLICULAR),
            (14, CyclePhase.OVULATION),
            (15, CyclePhase.OVULATION),
            (16, CyclePhase.LUTEAL),
            (28, CyclePhase.LUTEAL),
        ],
    )
    def test_default_boundaries(self, day: int, expected: CyclePhase):
        assert phase_for_day(day) is expected

    def test_custom_menstrual_length(self):
        assert phase_for_day(7, menstrual_length=7) is CyclePhase.MENSTRUAL
        assert phase_for_day(8, menstrual_length=7) is CyclePhase.FOLLICULAR

    def test_parse_falls_back_to_follicular(self):
        assert CyclePhase.parse("Luteal ") is CyclePhase.LUTEAL
        assert CyclePhase.parse("unknown") is CyclePhase.FOLLICULAR
        assert CyclePhase.parse(None) is CyclePhase.FOLLICULAR


class TestTimeOfDay:
    """Tests for hour buckets."""

    @pytest.mark.parametrize(
        "hour,expected",
        [
            (0, TimeOfDay.MORNING),
            (11, TimeOfDay.MORNING),
            (12, TimeOfDay.AFTERNOON),
            (17, TimeOfDay.AFTERNOON),
            (18, TimeOfDay.EVENING),
            (23, TimeOfDay.EVENING),
        ],
    )
    def test_buckets(self, hour: int, expected: TimeOfDay):
        assert time_of_day(hour) is expected

    def test_from_datetime(self):
        moment = datetime(2024, 6, 1, 19, 30, tzinfo=timezone.utc)
        assert time_of_day_for(moment) is TimeOfDay.EVENING

    def test_parse_falls_back_to_afternoon(self):
        assert TimeOfDay.parse("MORNING") is TimeOfDay.MORNING
        assert TimeOfDay.parse("night") is TimeOfDay.AFTERNOON


class TestCycleInfo:
    """Tests for the cycle position of a date."""

    def test_without_cycle_defaults_to_follicular(self):
        info = CycleInfo.for_date(None, date(2024, 6, 10))
        assert info.phase is CyclePhase.FOLLICULAR
        assert info.has_cycle_data is False
        assert info.days_until_next_period is None
        assert info.is_sensitive is False

    def test_with_cycle(self):
        cycle = UserCycle(start_date=date(2024, 6, 1), cycle_length=28, menstrual_length=5)
        info = CycleInfo.for_date(cycle, date(2024, 6, 14))
        assert info.cycle_day == 14
        assert info.phase is CyclePhase.OVULATION
        assert info.days_until_next_period == 15
        assert info.is_sensitive is False

    def test_premenstrual_days_are_sensitive(self):
        cycle = UserCycle(start_date=date(2024, 6, 1), cycle_length=28, menstrual_length=5)
        info = CycleInfo.for_date(cycle, date(2024, 6, 25))
        assert info.cycle_day == 25
        assert info.is_sensitive is True

    def test_sensitive_days(self):
        assert is_sensitive_day(1, 28) is True
        assert is_sensitive_day(5, 28) is True
        assert is_sensitive_day(6, 28) is False
        assert is_sensitive_day(21, 28) is False
        assert is_sensitive_day(22, 28) is True

    def test_days_until_next_period(self):
        assert days_until_next_period(28, 28) == 1
        assert days_until_next_period(1, 28) == 28
