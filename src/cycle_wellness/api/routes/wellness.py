"""Wellness prediction routes."""

from __future__ import annotations

from datetime import date, datetime, timezone

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.auth.dependencies import get_current_user
from cycle_wellness.config import get_settings
from cycle_wellness.database.connection import get_db_session
from cycle_wellness.database.models import User, WellnessPrediction
from cycle_wellness.wellness.prediction import (
    WellnessPredictionService,
    enhance_predictions_task,
)

router = APIRouter()


class PredictionResponse(BaseModel):
    date: date
    wellness: int
    cycle_day: int | None
    phase: str | None
    note: str | None
    source: str


class PredictResponse(BaseModel):
    predictions: list[PredictionResponse]
    ai_enhancement_scheduled: bool


@router.post("/predict", response_model=PredictResponse)
async def predict_wellness(
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> PredictResponse:
    """Store and return baseline predictions; the model refines them in the background."""
    rows = await WellnessPredictionService(db).predict_baseline(user.id)

    scheduled = bool(rows) and get_settings().openai_configured
    if scheduled:
        background_tasks.add_task(enhance_predictions_task, user.id, rows)

    return PredictResponse(
        predictions=[
            PredictionResponse(
                date=row.date,
                wellness=row.wellness,
                cycle_day=row.cycle_day,
                phase=row.phase.value,
                note=row.note,
                source=row.source,
            )
            for row in rows
        ],
        ai_enhancement_scheduled=scheduled,
    )


@router.get("/predictions", response_model=list[PredictionResponse])
async def list_predictions(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> list[PredictionResponse]:
    """Stored predictions from today on."""
    result = await db.execute(
        select(WellnessPrediction)
        .where(
            WellnessPrediction.user_id == user.id,
            WellnessPrediction.prediction_date >= datetime.now(timezone.utc).date(),
        )
        .order_by(WellnessPrediction.prediction_date)
    )
    return [
        PredictionResponse(
            date=p.prediction_date,
            wellness=p.predicted_wellness,
            cycle_day=p.cycle_day,
            phase=p.phase,
            note=p.note,
            source=p.source,
        )
        for p in result.scalars().all()
    ]
