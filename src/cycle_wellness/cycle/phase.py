"""Menstrual cycle arithmetic.

Every energy and wellness calculation starts from the same two questions:
which day of the cycle is it, and which phase does that day fall into.

## Cycle Day

Day 1 is the first day of the recorded cycle start. Days repeat every
`cycle_length` days, and dates before the recorded start wrap backwards
into the previous cycle instead of producing day 0 or negative days:

    cycle_day = ((days_since_start mod L) + L) mod L + 1

## Phase Boundaries

| Cycle day                  | Phase      |
|----------------------------|------------|
| 1 .. menstrual_length      | menstrual  |
| .. 13                      | follicular |
| 14 .. 15                   | ovulation  |
| 16 ..                      | luteal     |

The follicular/ovulation/luteal cut-offs are fixed days; only the menstrual
length is configurable per user. Without cycle data the phase is follicular.

## Time of Day

| Hour        | Time of day |
|-------------|-------------|
| 0 .. 11     | morning     |
| 12 .. 17    | afternoon   |
| 18 .. 23    | evening     |
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cycle_wellness.database.models import UserCycle

DEFAULT_CYCLE_LENGTH = 28
DEFAULT_MENSTRUAL_LENGTH = 5
FOLLICULAR_LAST_DAY = 13
OVULATION_LAST_DAY = 15


class CyclePhase(str, Enum):
    """Phase of the menstrual cycle."""

    MENSTRUAL = "menstrual"
    FOLLICULAR = "follicular"
    OVULATION = "ovulation"
    LUTEAL = "luteal"

    @classmethod
    def parse(cls, value: str | None) -> CyclePhase:
        """Parse a phase name, falling back to follicular."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.FOLLICULAR


class TimeOfDay(str, Enum):
    """Coarse part of the day an event happens in."""

    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"

    @classmethod
    def parse(cls, value: str | None) -> TimeOfDay:
        """Parse a time-of-day name, falling back to afternoon."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.AFTERNOON


def cycle_day(start_date: date, cycle_length: int, on_date: date) -> int:
    """Day of the cycle (1-based) for `on_date`."""
    if cycle_length <= 0:
        raise ValueError("cycle_length must be positive")
    days_since_start = (on_date - start_date).days
    return ((days_since_start % cycle_length) + cycle_length) % cycle_length + 1


def phase_for_day(day: int, menstrual_length: int = DEFAULT_MENSTRUAL_LENGTH) -> CyclePhase:
    """Phase for a 1-based cycle day."""
    if day <= menstrual_length:
        return CyclePhase.MENSTRUAL
    if day <= FOLLICULAR_LAST_DAY:
        return CyclePhase.FOLLICULAR
    if day <= OVULATION_LAST_DAY:
        return CyclePhase.OVULATION
    return CyclePhase.LUTEAL


def time_of_day(hour: int) -> TimeOfDay:
    if hour < 12:
        return TimeOfDay.MORNING
    if hour < 18:
        return TimeOfDay.AFTERNOON
    return TimeOfDay.EVENING


def time_of_day_for(moment: datetime) -> TimeOfDay:
    return time_of_day(moment.hour)


def days_until_next_period(day: int, cycle_length: int) -> int:
    """Days from cycle day `day` until day 1 of the next cycle."""
    return cycle_length - day + 1


def is_sensitive_day(day: int, cycle_length: int) -> bool:
    """Menstruation or the late luteal (premenstrual) week."""
    return day <= 5 or day > cycle_length - 7


def phase_description(day: int) -> str:
    """Plain description of the phase used in AI prompts."""
    if day <= 5:
        return "Менструальная фаза (дни 1-5): низкий уровень энергии, нужен отдых"
    if day <= 13:
        return "Фолликулярная фаза (дни 6-13): энергия растёт, хорошее время для новых задач"
    if day <= 16:
        return "Овуляция (дни 14-16): пик энергии и коммуникабельности"
    return "Лютеиновая фаза (день 17+): энергия снижается, возможна раздражительность"


@dataclass(frozen=True)
class CycleInfo:
    """Cycle position for a specific date."""

    on_date: date
    phase: CyclePhase
    cycle_day: int | None = None
    cycle_length: int = DEFAULT_CYCLE_LENGTH

    @property
    def has_cycle_data(self) -> bool:
        return self.cycle_day is not None

    @property
    def days_until_next_period(self) -> int | None:
        if self.cycle_day is None:
            return None
        return days_until_next_period(self.cycle_day, self.cycle_length)

    @property
    def is_sensitive(self) -> bool:
        if self.cycle_day is None:
            return False
        return is_sensitive_day(self.cycle_day, self.cycle_length)

    @classmethod
    def for_date(cls, cycle: UserCycle | None, on_date: date) -> CycleInfo:
        """Compute the cycle position of `on_date` for a stored cycle.

        With no cycle on record the phase defaults to follicular.
        """
        if cycle is None or not cycle.start_date:
            return cls(on_date=on_date, phase=CyclePhase.FOLLICULAR)

        length = cycle.cycle_length or DEFAULT_CYCLE_LENGTH
        menstrual_length = cycle.menstrual_length or DEFAULT_MENSTRUAL_LENGTH
        day = cycle_day(cycle.start_date, length, on_date)
        return cls(
            on_date=on_date,
            phase=phase_for_day(day, menstrual_length),
            cycle_day=day,
            cycle_length=length,
        )
