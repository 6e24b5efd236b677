"""Day-by-day wellness predictions.

Predictions are produced in two passes:

1. **Baseline** (synchronous): a phase-driven value with a little noise for
   each of the next `prediction_days` days, stored with source `baseline`
   and returned to the caller right away.
2. **AI enhancement** (background): the language model sees the cycle
   parameters, recent symptom logs and age, and returns one value per day.
   Valid rows overwrite the baseline with source `ai`. Any failure leaves
   the baseline in place.

## Baseline Ranges

| Cycle day              | Wellness       |
|------------------------|----------------|
| menstrual              | 35 + r * 20    |
| .. 13 (follicular)     | 65 + r * 20    |
| .. 15 (ovulation)      | 80 + r * 15    |
| 16 .. (luteal)         | 50 + r * 20    |

`r` is drawn from an injectable `random.Random`, so tests can seed it.
"""

from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.ai.client import LLMClient, LLMError, parse_json_reply
from cycle_wellness.config import get_settings
from cycle_wellness.cycle.phase import (
    DEFAULT_CYCLE_LENGTH,
    DEFAULT_MENSTRUAL_LENGTH,
    FOLLICULAR_LAST_DAY,
    OVULATION_LAST_DAY,
    CyclePhase,
    phase_for_day,
)
from cycle_wellness.database.models import UserCycle, WellnessPrediction
from cycle_wellness.database.queries import (
    get_current_cycle,
    get_profile,
    get_recent_symptom_logs,
)

logger = logging.getLogger(__name__)

PHASE_NOTES: dict[CyclePhase, str] = {
    CyclePhase.MENSTRUAL: "Менструация: рекомендуется больше отдыха",
    CyclePhase.FOLLICULAR: "Фолликулярная фаза: высокая энергия",
    CyclePhase.OVULATION: "Овуляция: пик энергии и активности",
    CyclePhase.LUTEAL: "Лютеиновая фаза: умеренная активность",
}

PREDICTION_SYSTEM_PROMPT = "Return only valid JSON array."


@dataclass
class PredictionRow:
    """Predicted wellness for one date."""

    date: date
    wellness: int
    cycle_day: int
    phase: CyclePhase
    note: str
    source: str = "baseline"


def baseline_wellness(day: int, menstrual_length: int, r: float) -> int:
    if day <= menstrual_length:
        return round(35 + r * 20)
    if day <= FOLLICULAR_LAST_DAY:
        return round(65 + r * 20)
    if day <= OVULATION_LAST_DAY:
        return round(80 + r * 15)
    return round(50 + r * 20)


def baseline_predictions(
    start_date: date,
    cycle_length: int,
    menstrual_length: int,
    today: date,
    days: int = 30,
    rng: random.Random | None = None,
) -> list[PredictionRow]:
    """Phase-based predictions for the `days` days after `today`."""
    rng = rng or random.Random()
    days_since_start = (today - start_date).days

    rows = []
    for i in range(days):
        day = ((days_since_start + i + 1) % cycle_length) + 1
        phase = phase_for_day(day, menstrual_length)
        rows.append(
            PredictionRow(
                date=today + timedelta(days=i + 1),
                wellness=baseline_wellness(day, menstrual_length, rng.random()),
                cycle_day=day,
                phase=phase,
                note=PHASE_NOTES[phase],
            )
        )
    return rows


def build_prediction_prompt(
    cycle_length: int,
    menstrual_length: int,
    recent_wellness: dict[str, int | None],
    age: int | None,
    days: int = 30,
) -> str:
    recent = ", ".join(f"{day}: wellness={value}" for day, value in recent_wellness.items())
    return (
        "Based on menstrual cycle data, predict wellness (0-100) for next "
        f"{days} days. Cycle: {cycle_length} days, menstrual: "
        f"{menstrual_length} days\n"
        f"Recent wellness: {{{recent}}}\n"
        f"Age: {age if age is not None else 'unknown'}\n"
        f"Return ONLY a JSON array with {days} objects: "
        '[{"day":1,"wellness":65,"note":"brief"}]\n'
        "Phases: menstrual (low energy), follicular (rising), "
        "ovulation (peak), luteal (declining)"
    )


def parse_ai_predictions(
    payload: Any,
    baseline: list[PredictionRow],
) -> list[PredictionRow]:
    """Turn the model's `[{day, wellness, note}]` into rows.

    Day 1 is the first baseline date. Entries with a day outside the window
    or wellness outside 0..100 are dropped.
    """
    if not isinstance(payload, list):
        raise LLMError("Prediction reply is not a JSON array")

    rows = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        try:
            day = int(item.get("day"))
            wellness = int(round(float(item.get("wellness"))))
        except (TypeError, ValueError):
            continue
        if not 1 <= day <= len(baseline) or not 0 <= wellness <= 100:
            continue
        base = baseline[day - 1]
        rows.append(
            PredictionRow(
                date=base.date,
                wellness=wellness,
                cycle_day=base.cycle_day,
                phase=base.phase,
                note=str(item.get("note") or base.note),
                source="ai",
            )
        )
    return rows


def _cycle_params(cycle: UserCycle | None, today: date) -> tuple[date, int, int]:
    if cycle is None:
        return today, DEFAULT_CYCLE_LENGTH, DEFAULT_MENSTRUAL_LENGTH
    return (
        cycle.start_date,
        cycle.cycle_length or DEFAULT_CYCLE_LENGTH,
        cycle.menstrual_length or DEFAULT_MENSTRUAL_LENGTH,
    )

class WellnessPredictionService:
    """Stores baseline predictions and refines them with the model."""

    def __init__(
        self,
        db: AsyncSession,
        llm: LLMClient | None = None,
        rng: random.Random | None = None,
    ):
        self.db = db
        self.llm = llm
        self.rng = rng or random.Random()
        self.days = get_settings().prediction_days

    async def _upsert(self, user_id: uuid.UUID, rows: list[PredictionRow]) -> None:
        if not rows:
            return
        result = await self.db.execute(
            select(WellnessPrediction).where(
                WellnessPrediction.user_id == user_id,
                WellnessPrediction.prediction_date.in_([row.date for row in rows]),
            )
        )
        existing = {p.prediction_date: p for p in result.scalars().all()}

        for row in rows:
            prediction = existing.get(row.date)
            if prediction is None:
                prediction = WellnessPrediction(user_id=user_id, prediction_date=row.date)
                self.db.add(prediction)
            prediction.predicted_wellness = row.wellness
            prediction.cycle_day = row.cycle_day
            prediction.phase = row.phase.value
            prediction.note = row.note
            prediction.source = row.source

        await self.db.commit()

    async def predict_baseline(
        self,
        user_id: uuid.UUID,
        today: date | None = None,
    ) -> list[PredictionRow]:
        """Compute and store baseline predictions.

        Without a cycle on record the cycle is assumed to start today with
        default lengths.
        """
        today = today or datetime.now(timezone.utc).date()
        cycle = await get_current_cycle(self.db, user_id)
        if cycle is None:
            logger.info(f"No cycle data for {user_id}, predicting from defaults")
        start_date, cycle_length, menstrual_length = _cycle_params(cycle, today)

        rows = baseline_predictions(
            start_date,
            cycle_length,
            menstrual_length,
            today,
            days=self.days,
            rng=self.rng,
        )
        await self._upsert(user_id, rows)
        logger.info(f"Stored {len(rows)} baseline predictions for {user_id}")
        return rows

    async def enhance_with_ai(
        self,
        user_id: uuid.UUID,
        baseline: list[PredictionRow],
    ) -> int:
        """Replace baseline rows with model predictions.

        Returns:
            Number of rows updated (0 when the model is unavailable or fails)
        """
        if not baseline or self.llm is None or not self.llm.is_configured:
            return 0

        cycle = await get_current_cycle(self.db, user_id)
        _, cycle_length, menstrual_length = _cycle_params(cycle, baseline[0].date)
        logs = await get_recent_symptom_logs(self.db, user_id, limit=15)
        profile = await get_profile(self.db, user_id)

        prompt = build_prediction_prompt(
            cycle_length,
            menstrual_length,
            {log.log_date.isoformat(): log.wellness_index for log in logs},
            profile.age if profile else None,
            days=len(baseline),
        )

        try:
            reply = await self.llm.complete(
                [
                    {"role": "system", "content": PREDICTION_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                operation="predict-wellness",
                temperature=0.5,
                max_tokens=1500,
            )
            rows = parse_ai_predictions(parse_json_reply(reply), baseline)
        except LLMError as e:
            logger.warning(f"AI prediction failed for {user_id}, keeping baseline: {e}")
            return 0

        await self._upsert(user_id, rows)
        logger.info(f"AI updated {len(rows)} predictions for {user_id}")
        return len(rows)


async def enhance_predictions_task(user_id: uuid.UUID, baseline: list[PredictionRow]) -> None:
    """Background entry point with its own session."""
    from cycle_wellness.database.connection import get_db
    from cycle_wellness.monitoring.ai_logging import AIMonitor

    try:
        async with get_db() as db:
            monitor = AIMonitor(db, user_id)
            service = WellnessPredictionService(db, LLMClient(monitor=monitor))
            await service.enhance_with_ai(user_id, baseline)
            # Retry logs are added to the session by the client
            await db.commit()
    except Exception as e:
        logger.exception(f"Background prediction refinement for {user_id} failed: {e}")
