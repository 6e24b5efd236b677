"""Stress-aware energy impact of a single event.

## Formula

For an activity found in the reference table:

    stress_modifier = 1 + (stress_level - 3) * (stress_coefficient / 5)
    final = (base + base * phase_mod + base * time_mod) * stress_modifier

rounded to three decimals. Stress level 3 is neutral; a stress coefficient
of 1.0 scales the effect between 0.6x (level 1) and 1.4x (level 5).

Activities missing from the table are estimated by the language model as a
single number in [-1, 1]. Without an API key, on errors, or when the answer
is not a number in range, the estimate is -0.2 (mild drain).
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.ai.client import LLMClient, LLMError
from cycle_wellness.cycle.phase import CyclePhase, TimeOfDay
from cycle_wellness.database.models import EnergyReference
from cycle_wellness.energy.coefficients import EventCoefficient

logger = logging.getLogger(__name__)

NEUTRAL_STRESS = 3
AI_FALLBACK_IMPACT = -0.2

_NUMBER_RE = re.compile(r"[-+]?\d*\.?\d+")

ESTIMATE_SYSTEM_PROMPT = """You are an expert in women's wellness and energy management. \
Estimate the base energy impact coefficient for an event on a scale from -1.0 \
(high energy drain) to +1.0 (high energy restoration).
Examples:
- Intense work/conflict: -0.7 to -1.0
- Moderate work: -0.3 to -0.5
- Light activities: -0.1 to -0.2
- Rest/recovery: +0.3 to +0.8
- Deep sleep: +0.8 to +1.0
Respond with ONLY a number between -1.0 and +1.0, no explanation."""


@dataclass
class EventImpact:
    """Breakdown of one event's energy impact."""

    event_name: str
    phase: CyclePhase
    time_of_day: TimeOfDay
    base: float
    cycle_modifier: float
    time_modifier: float
    stress_coefficient: float
    stress_modifier: float
    final_impact: float
    is_ai_estimate: bool = False

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["phase"] = self.phase.value
        data["time_of_day"] = self.time_of_day.value
        return data


def normalize_name(name: str) -> str:
    return name.strip().lower()


def clamp_stress(level: int | None) -> int:
    if level is None:
        return NEUTRAL_STRESS
    return max(1, min(5, int(level)))


def stress_modifier(stress_level: int, stress_coefficient: float) -> float:
    return 1 + (stress_level - NEUTRAL_STRESS) * (stress_coefficient / 5)


def calculate_impact(
    reference: EnergyReference | EventCoefficient,
    phase: CyclePhase,
    time_of_day: TimeOfDay,
    stress_level: int | None = NEUTRAL_STRESS,
    event_name: str | None = None,
) -> EventImpact:
    """Apply the stress-aware formula to a reference row."""
    level = clamp_stress(stress_level)
    base = float(reference.base)
    cycle_mod = float(getattr(reference, phase.value))
    time_mod = float(getattr(reference, time_of_day.value))
    coefficient = float(reference.stress_coefficient)
    modifier = stress_modifier(level, coefficient)

    final = (base + base * cycle_mod + base * time_mod) * modifier

    name = event_name
    if name is None:
        name = getattr(reference, "event_name", None) or getattr(reference, "event_type", "")

    return EventImpact(
        event_name=name,
        phase=phase,
        time_of_day=time_of_day,
        base=base,
        cycle_modifier=cycle_mod,
        time_modifier=time_mod,
        stress_coefficient=coefficient,
        stress_modifier=round(modifier, 3),
        final_impact=round(final, 3),
    )


def parse_estimate(text: str) -> float | None:
    """Extract the first number from a model reply if it lies in [-1, 1]."""
    match = _NUMBER_RE.search(text or "")
    if not match:
        return None
    value = float(match.group())
    if value < -1 or value > 1:
        return None
    return value


class EventImpactCalculator:
    """Scores events against the `energy_reference` table.

    The table is read once per calculator and matched by normalised name in
    Python, since database `lower()` does not fold Cyrillic everywhere.
    """

    def __init__(self, db: AsyncSession, llm: LLMClient | None = None):
        self.db = db
        self.llm = llm
        self._references: dict[str, EnergyReference] | None = None
        self._estimates: dict[str, float] = {}

    async def _load_references(self) -> dict[str, EnergyReference]:
        if self._references is None:
            result = await self.db.execute(select(EnergyReference))
            self._references = {
                normalize_name(row.event_name): row for row in result.scalars().all()
            }
        return self._references

    async def lookup(self, event_name: str) -> EnergyReference | None:
        references = await self._load_references()
        return references.get(normalize_name(event_name))

    async def estimate_with_ai(self, event_name: str) -> float:
        """Ask the model for a base coefficient, falling back to -0.2."""
        key = normalize_name(event_name)
        if key in self._estimates:
            return self._estimates[key]

        estimate = AI_FALLBACK_IMPACT
        if self.llm is None or not self.llm.is_configured:
            logger.warning("OpenAI not configured, using default event estimate")
        else:
            try:
                reply = await self.llm.complete(
                    [
                        {"role": "system", "content": ESTIMATE_SYSTEM_PROMPT},
                        {
                            "role": "user",
                            "content": (
                                "Estimate the base energy impact coefficient for "
                                f'this event: "{event_name}"'
                            ),
                        },
                    ],
                    operation="calculate-event-coefficient",
                    max_tokens=10,
                )
            except LLMError as e:
                logger.warning(f"AI estimate for {event_name!r} failed: {e}")
            else:
                parsed = parse_estimate(reply)
                if parsed is None:
                    logger.warning(f"Invalid AI estimate {reply!r}, using default")
                else:
                    estimate = parsed
                    logger.info(f"AI estimated coefficient for {event_name!r}: {estimate}")

        self._estimates[key] = estimate
        return estimate

    async def calculate(
        self,
        event_name: str,
        phase: CyclePhase,
        time_of_day: TimeOfDay,
        stress_level: int | None = NEUTRAL_STRESS,
    ) -> EventImpact:
        """Impact of one event, from the reference table or an AI estimate."""
        reference = await self.lookup(event_name)
        if reference is not None:
            return calculate_impact(
                reference, phase, time_of_day, stress_level, event_name=event_name
            )

        logger.info(f"Event {event_name!r} not in reference table, using AI estimate")
        estimate = await self.estimate_with_ai(event_name)
        return EventImpact(
            event_name=event_name,
            phase=phase,
            time_of_day=time_of_day,
            base=estimate,
            cycle_modifier=0.0,
            time_modifier=0.0,
            stress_coefficient=0.0,
            stress_modifier=1.0,
            final_impact=estimate,
            is_ai_estimate=True,
        )
