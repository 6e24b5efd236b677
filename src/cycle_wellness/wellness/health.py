"""Import of sleep and heart-rate-variability samples.

Health apps export raw samples; the symptom log stores 1-5 scores. Sleep
hours map to `sleep_quality`, HRV (ms) maps to `stress_level`:

| Sleep hours | Quality |      | HRV (ms) | Stress |
|-------------|---------|------|----------|--------|
| < 5         | 1       |      | > 80     | 1      |
| < 6         | 2       |      | > 60     | 2      |
| < 7         | 3       |      | > 40     | 3      |
| < 8         | 4       |      | > 20     | 4      |
| 8+          | 5       |      | <= 20    | 5      |
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.database.models import SymptomLog
from cycle_wellness.database.queries import get_symptom_log

logger = logging.getLogger(__name__)


@dataclass
class SleepSample:
    start: datetime
    end: datetime

    @property
    def hours(self) -> float:
        return max(0.0, (self.end - self.start).total_seconds() / 3600)


def sleep_hours(samples: list[SleepSample]) -> float:
    return sum(sample.hours for sample in samples)


def sleep_quality_from_hours(hours: float) -> int:
    if hours < 5:
        return 1
    if hours < 6:
        return 2
    if hours < 7:
        return 3
    if hours < 8:
        return 4
    return 5


def stress_level_from_hrv(hrv_ms: float) -> int:
    if hrv_ms > 80:
        return 1
    if hrv_ms > 60:
        return 2
    if hrv_ms > 40:
        return 3
    if hrv_ms > 20:
        return 4
    return 5


@dataclass
class HealthImportResult:
    sleep_quality: int | None = None
    stress_level: int | None = None
    sleep_hours: float | None = None
    average_hrv: float | None = None

    @property
    def has_data(self) -> bool:
        return self.sleep_quality is not None or self.stress_level is not None


def summarize_samples(
    sleep: list[SleepSample],
    hrv_values: list[float],
) -> HealthImportResult:
    result = HealthImportResult()
    if sleep:
        result.sleep_hours = round(sleep_hours(sleep), 2)
        result.sleep_quality = sleep_quality_from_hours(result.sleep_hours)
    if hrv_values:
        result.average_hrv = sum(hrv_values) / len(hrv_values)
        result.stress_level = stress_level_from_hrv(result.average_hrv)
    return result


async def import_health_data(
    db: AsyncSession,
    user_id: uuid.UUID,
    sleep: list[SleepSample],
    hrv_values: list[float],
    on_date: date | None = None,
) -> HealthImportResult:
    """Write derived sleep quality and stress level into the day's symptom log.

    Only the values that could be derived are updated. A new log starts at
    energy 3 and wellness 50.
    """
    on_date = on_date or datetime.now(timezone.utc).date()
    summary = summarize_samples(sleep, hrv_values)
    if not summary.has_data:
        logger.info(f"No usable health samples for {user_id}")
        return summary

    log = await get_symptom_log(db, user_id, on_date)
    if log is None:
        log = SymptomLog(user_id=user_id, log_date=on_date, energy=3, wellness_index=50)
        db.add(log)

    if summary.sleep_quality is not None:
        log.sleep_quality = summary.sleep_quality
    if summary.stress_level is not None:
        log.stress_level = summary.stress_level

    await db.commit()
    logger.info(
        f"Health data for {user_id} on {on_date}: "
        f"sleep={summary.sleep_quality} stress={summary.stress_level}"
    )
    return summary
