"""Wellness predictions and health data import."""

from cycle_wellness.wellness.health import (
    HealthImportResult,
    SleepSample,
    import_health_data,
    sleep_quality_from_hours,
    stress_level_from_hrv,
)
from cycle_wellness.wellness.prediction import (
    PredictionRow,
    WellnessPredictionService,
    baseline_predictions,
    enhance_predictions_task,
)

__all__ = [
    "HealthImportResult",
    "PredictionRow",
    "SleepSample",
    "WellnessPredictionService",
    "baseline_predictions",
    "enhance_predictions_task",
    "import_health_data",
    "sleep_quality_from_hours",
    "stress_level_from_hrv",
]
