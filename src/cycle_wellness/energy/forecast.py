"""Multi-day wellness forecast with calendar events.

Each day starts from a phase baseline on the 0-100 wellness scale and is
adjusted by the day's events. Event impacts use a neutral stress level and
are converted from coefficients to points (x50, rounded):

    wellness = clamp(round(base_by_phase + Σ round(impact * 50)), 0, 100)

Phase baselines: menstrual 40, follicular 70, ovulation 85, luteal 55.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.cycle.phase import CycleInfo, CyclePhase, time_of_day_for
from cycle_wellness.database.models import Event
from cycle_wellness.database.queries import get_current_cycle, get_events_between
from cycle_wellness.energy.impact import NEUTRAL_STRESS, EventImpactCalculator

logger = logging.getLogger(__name__)

BASE_WELLNESS_BY_PHASE: dict[CyclePhase, int] = {
    CyclePhase.MENSTRUAL: 40,
    CyclePhase.FOLLICULAR: 70,
    CyclePhase.OVULATION: 85,
    CyclePhase.LUTEAL: 55,
}
DEFAULT_BASE_WELLNESS = 60
IMPACT_POINTS_SCALE = 50


def impact_points(final_impact: float) -> int:
    return round(final_impact * IMPACT_POINTS_SCALE)


def clamp_wellness(value: float) -> int:
    return max(0, min(100, round(value)))


@dataclass
class ForecastEvent:
    name: str
    impact: int
    time: str  # HH:MM


@dataclass
class ForecastDay:
    """Forecast for one calendar day."""

    date: date
    wellness_index: int
    cycle_phase: CyclePhase
    base_wellness: int
    events_impact: int = 0
    events: list[ForecastEvent] = field(default_factory=list)


class WellnessForecastService:
    """Builds the day-by-day forecast for the coming days."""

    def __init__(self, db: AsyncSession, calculator: EventImpactCalculator):
        self.db = db
        self.calculator = calculator

    async def forecast(
        self,
        user_id: uuid.UUID,
        days: int = 14,
        start: date | None = None,
    ) -> list[ForecastDay]:
        start = start or datetime.now(timezone.utc).date()
        cycle = await get_current_cycle(self.db, user_id)

        window_start = datetime.combine(start, time.min, tzinfo=timezone.utc)
        events = await get_events_between(
            self.db, user_id, window_start, window_start + timedelta(days=days)
        )
        by_day: dict[date, list[Event]] = defaultdict(list)
        for event in events:
            by_day[event.start_time.date()].append(event)

        forecast: list[ForecastDay] = []
        for offset in range(days):
            day = start + timedelta(days=offset)
            phase = CycleInfo.for_date(cycle, day).phase
            base = BASE_WELLNESS_BY_PHASE.get(phase, DEFAULT_BASE_WELLNESS)
            entry = ForecastDay(
                date=day,
                wellness_index=base,
                cycle_phase=phase,
                base_wellness=base,
            )

            for event in by_day.get(day, []):
                impact = await self.calculator.calculate(
                    event.title,
                    phase,
                    time_of_day_for(event.start_time),
                    NEUTRAL_STRESS,
                )
                points = impact_points(impact.final_impact)
                entry.events_impact += points
                entry.events.append(
                    ForecastEvent(
                        name=event.title,
                        impact=points,
                        time=event.start_time.strftime("%H:%M"),
                    )
                )

            entry.wellness_index = clamp_wellness(base + entry.events_impact)
            forecast.append(entry)

        logger.info(f"Forecast for {user_id}: {days} days, {len(events)} events")
        return forecast
