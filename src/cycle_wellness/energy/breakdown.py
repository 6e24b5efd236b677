"""Today's energy breakdown.

Explains the day's expected energy (1-5 scale) as a sum of parts:

    final = clamp(base_by_phase + Σ event impacts + sleep + stress, 1, 5)

| Part            | Source                                               |
|-----------------|------------------------------------------------------|
| base_by_phase   | menstrual 2.0, follicular 4.0, ovulation 4.5, luteal 3.0 |
| event impacts   | `EventImpactCalculator` at today's stress level      |
| sleep           | (sleep_quality - 3) * 0.15 from today's symptom log  |
| stress          | (stress_level - 3) * -0.1 from today's symptom log   |

Confidence grows with logging discipline: 50% plus 1.5 points per symptom
log in the last 30 days, capped at 100.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.cycle.phase import CycleInfo, CyclePhase, time_of_day_for
from cycle_wellness.database.models import SymptomLog
from cycle_wellness.database.queries import (
    get_current_cycle,
    get_events_between,
    get_symptom_log,
)
from cycle_wellness.energy.impact import EventImpactCalculator

logger = logging.getLogger(__name__)

BASE_ENERGY_BY_PHASE: dict[CyclePhase, float] = {
    CyclePhase.MENSTRUAL: 2.0,
    CyclePhase.FOLLICULAR: 4.0,
    CyclePhase.OVULATION: 4.5,
    CyclePhase.LUTEAL: 3.0,
}
DEFAULT_BASE_ENERGY = 3.0
MIN_ENERGY = 1.0
MAX_ENERGY = 5.0

# (keywords, label); first match wins
EVENT_TYPE_KEYWORDS: list[tuple[tuple[str, ...], str]] = [
    (("тренировка", "спорт", "workout"), "Тренировка"),
    (("встреча", "meeting"), "Встреча"),
    (("работа", "work"), "Работа"),
    (("отдых", "rest"), "Отдых"),
    (("еда", "meal"), "Питание"),
]
OTHER_EVENT_TYPE = "Другое"


def classify_event(title: str) -> str:
    """Coarse event type from keywords in the title."""
    lower = title.lower()
    for keywords, label in EVENT_TYPE_KEYWORDS:
        if any(keyword in lower for keyword in keywords):
            return label
    return OTHER_EVENT_TYPE


def sleep_modifier(sleep_quality: int | None) -> float:
    return ((sleep_quality or 3) - 3) * 0.15


def stress_energy_modifier(stress_level: int | None) -> float:
    return ((stress_level or 3) - 3) * -0.1


def confidence_from_logs(recent_log_count: int) -> int:
    return round(min(100.0, 50 + recent_log_count * 1.5))


def combine_energy(base: float, events: float, sleep: float, stress: float) -> float:
    raw = base + events + sleep + stress
    return round(max(MIN_ENERGY, min(MAX_ENERGY, raw)), 1)


@dataclass
class EventEnergy:
    """One of today's events with its energy impact."""

    id: str
    title: str
    start_time: datetime
    end_time: datetime
    event_type: str
    time_of_day: str
    energy_impact: float
    is_ai_estimate: bool = False


@dataclass
class EnergyBreakdown:
    """Result of `EnergyBreakdownService.today`."""

    day: date
    cycle_phase: CyclePhase
    base_energy: float
    events: list[EventEnergy] = field(default_factory=list)
    total_event_impact: float = 0.0
    sleep_modifier: float = 0.0
    stress_modifier: float = 0.0
    final_energy: float = 0.0
    confidence: int = 50
    symptoms: list[str] = field(default_factory=list)

    @property
    def formula(self) -> str:
        return (
            f"{self.base_energy:.2f} + {self.total_event_impact:.2f} + "
            f"{self.sleep_modifier:.2f} + {self.stress_modifier:.2f} = "
            f"{self.final_energy:.1f}"
        )

    def calculation(self) -> dict[str, Any]:
        return {
            "base": round(self.base_energy, 2),
            "events": round(self.total_event_impact, 2),
            "sleep": round(self.sleep_modifier, 2),
            "stress": round(self.stress_modifier, 2),
            "formula": self.formula,
        }


class EnergyBreakdownService:
    """Builds the energy breakdown for a user's day."""

    def __init__(self, db: AsyncSession, calculator: EventImpactCalculator):
        self.db = db
        self.calculator = calculator

    async def _count_recent_logs(self, user_id: uuid.UUID, today: date) -> int:
        result = await self.db.execute(
            select(func.count(SymptomLog.id)).where(
                SymptomLog.user_id == user_id,
                SymptomLog.log_date >= today - timedelta(days=30),
            )
        )
        return int(result.scalar_one())

    async def today(self, user_id: uuid.UUID, today: date | None = None) -> EnergyBreakdown:
        today = today or datetime.now(timezone.utc).date()

        cycle = await get_current_cycle(self.db, user_id)
        info = CycleInfo.for_date(cycle, today)
        symptoms = await get_symptom_log(self.db, user_id, today)
        stress_level = symptoms.stress_level if symptoms else None

        day_start = datetime.combine(today, time.min, tzinfo=timezone.utc)
        events = await get_events_between(
            self.db, user_id, day_start, day_start + timedelta(days=1)
        )

        breakdown = EnergyBreakdown(
            day=today,
            cycle_phase=info.phase,
            base_energy=BASE_ENERGY_BY_PHASE.get(info.phase, DEFAULT_BASE_ENERGY),
        )

        for event in events:
            event_type = classify_event(event.title)
            tod = time_of_day_for(event.start_time)
            # Prefer the exact catalogue entry, fall back to the coarse type
            name = event.title if await self.calculator.lookup(event.title) else event_type
            impact = await self.calculator.calculate(name, info.phase, tod, stress_level)

            breakdown.total_event_impact += impact.final_impact
            breakdown.events.append(
                EventEnergy(
                    id=str(event.id),
                    title=event.title,
                    start_time=event.start_time,
                    end_time=event.end_time,
                    event_type=event_type,
                    time_of_day=tod.value,
                    energy_impact=impact.final_impact,
                    is_ai_estimate=impact.is_ai_estimate,
                )
            )

        if symptoms:
            breakdown.sleep_modifier = sleep_modifier(symptoms.sleep_quality)
            breakdown.stress_modifier = stress_energy_modifier(symptoms.stress_level)
            breakdown.symptoms = list(symptoms.physical_symptoms or [])

        breakdown.final_energy = combine_energy(
            breakdown.base_energy,
            breakdown.total_event_impact,
            breakdown.sleep_modifier,
            breakdown.stress_modifier,
        )
        breakdown.confidence = confidence_from_logs(
            await self._count_recent_logs(user_id, today)
        )

        logger.info(
            f"Energy breakdown for {user_id} on {today}: "
            f"{len(breakdown.events)} events, final {breakdown.final_energy}"
        )
        return breakdown
