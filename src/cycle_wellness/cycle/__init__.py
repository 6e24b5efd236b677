"""Cycle day, phase and time-of-day calculations."""

from cycle_wellness.cycle.phase import (
    CycleInfo,
    CyclePhase,
    TimeOfDay,
    cycle_day,
    days_until_next_period,
    is_sensitive_day,
    phase_description,
    phase_for_day,
    time_of_day,
    time_of_day_for,
)

__all__ = [
    "CycleInfo",
    "CyclePhase",
    "TimeOfDay",
    "cycle_day",
    "days_until_next_period",
    "is_sensitive_day",
    "phase_description",
    "phase_for_day",
    "time_of_day",
    "time_of_day_for",
]
