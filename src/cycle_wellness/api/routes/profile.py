"""Profile, cycle and symptom log routes.

Handles the data the user enters about themselves: profile details, cycle
parameters, daily symptom logs and health data imported from the phone.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.auth.dependencies import get_current_user
from cycle_wellness.cycle.phase import CycleInfo
from cycle_wellness.database.connection import get_db_session
from cycle_wellness.database.models import SymptomLog, User, UserCycle
from cycle_wellness.database.queries import (
    get_current_cycle,
    get_or_create_profile,
    get_symptom_log,
)
from cycle_wellness.wellness.health import SleepSample, import_health_data

router = APIRouter()


class ProfileResponse(BaseModel):
    name: str | None
    age: int | None
    weight: float | None
    height: float | None
    timezone: str | None


class ProfileUpdate(BaseModel):
    name: str | None = Field(default=None, max_length=255)
    age: int | None = Field(default=None, ge=10, le=100)
    weight: float | None = Field(default=None, gt=0, le=400)
    height: float | None = Field(default=None, gt=0, le=260)
    timezone: str | None = Field(default=None, max_length=64)


class CycleUpdate(BaseModel):
    start_date: date
    cycle_length: int = Field(default=28, ge=20, le=45)
    menstrual_length: int = Field(default=5, ge=1, le=10)


class CycleResponse(BaseModel):
    id: str
    start_date: date
    cycle_length: int
    menstrual_length: int
    cycle_day: int | None
    phase: str
    days_until_next_period: int | None


class SymptomLogPayload(BaseModel):
    log_date: date
    wellness_index: int | None = Field(default=None, ge=0, le=100)
    energy: int | None = Field(default=None, ge=1, le=5)
    mood: list[str] = Field(default_factory=list)
    physical_symptoms: list[str] = Field(default_factory=list)
    sleep_quality: int | None = Field(default=None, ge=1, le=5)
    stress_level: int | None = Field(default=None, ge=1, le=5)
    notes: str | None = Field(default=None, max_length=2000)


class SymptomLogResponse(SymptomLogPayload):
    id: str


class SleepSamplePayload(BaseModel):
    start: datetime
    end: datetime


class HealthImportRequest(BaseModel):
    sleep: list[SleepSamplePayload] = Field(default_factory=list)
    hrv: list[float] = Field(default_factory=list, description="HRV samples in ms")
    on_date: date | None = None


class HealthImportResponse(BaseModel):
    updated: bool
    sleep_quality: int | None
    stress_level: int | None
    sleep_hours: float | None


def _cycle_response(cycle: UserCycle) -> CycleResponse:
    info = CycleInfo.for_date(cycle, datetime.now(timezone.utc).date())
    return CycleResponse(
        id=str(cycle.id),
        start_date=cycle.start_date,
        cycle_length=cycle.cycle_length,
        menstrual_length=cycle.menstrual_length,
        cycle_day=info.cycle_day,
        phase=info.phase.value,
        days_until_next_period=info.days_until_next_period,
    )


def _log_response(log: SymptomLog) -> SymptomLogResponse:
    return SymptomLogResponse(
        id=str(log.id),
        log_date=log.log_date,
        wellness_index=log.wellness_index,
        energy=log.energy,
        mood=log.mood or [],
        physical_symptoms=log.physical_symptoms or [],
        sleep_quality=log.sleep_quality,
        stress_level=log.stress_level,
        notes=log.notes,
    )


@router.get("", response_model=ProfileResponse)
async def get_profile(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ProfileResponse:
    profile = await get_or_create_profile(db, user.id)
    await db.commit()
    return ProfileResponse(
        name=profile.name,
        age=profile.age,
        weight=profile.weight,
        height=profile.height,
        timezone=profile.timezone,
    )


@router.patch("", response_model=ProfileResponse)
async def update_profile(
    data: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ProfileResponse:
    """Update the provided fields only."""
    profile = await get_or_create_profile(db, user.id)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(profile, field, value)
    await db.commit()

    return ProfileResponse(
        name=profile.name,
        age=profile.age,
        weight=profile.weight,
        height=profile.height,
        timezone=profile.timezone,
    )


@router.get("/cycle", response_model=CycleResponse)
async def get_cycle(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> CycleResponse:
    cycle = await get_current_cycle(db, user.id)
    if cycle is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No cycle data",
        )
    return _cycle_response(cycle)


@router.put("/cycle", response_model=CycleResponse)
async def put_cycle(
    data: CycleUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> CycleResponse:
    """Record a cycle start; an existing cycle with the same start date is updated."""
    result = await db.execute(
        select(UserCycle).where(
            UserCycle.user_id == user.id,
            UserCycle.start_date == data.start_date,
        )
    )
    cycle = result.scalar_one_or_none()
    if cycle is None:
        cycle = UserCycle(user_id=user.id, start_date=data.start_date)
        db.add(cycle)

    cycle.cycle_length = data.cycle_length
    cycle.menstrual_length = data.menstrual_length
    await db.commit()
    return _cycle_response(cycle)


@router.get("/symptoms", response_model=list[SymptomLogResponse])
async def list_symptom_logs(
    days: int = 30,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> list[SymptomLogResponse]:
    since = datetime.now(timezone.utc).date() - timedelta(days=max(days, 1))
    result = await db.execute(
        select(SymptomLog)
        .where(SymptomLog.user_id == user.id, SymptomLog.log_date >= since)
        .order_by(SymptomLog.log_date.desc())
    )
    return [_log_response(log) for log in result.scalars().all()]


@router.put("/symptoms", response_model=SymptomLogResponse)
async def upsert_symptom_log(
    data: SymptomLogPayload,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SymptomLogResponse:
    """One log per day: the log for `log_date` is created or replaced."""
    log = await get_symptom_log(db, user.id, data.log_date)
    if log is None:
        log = SymptomLog(user_id=user.id, log_date=data.log_date)
        db.add(log)

    log.wellness_index = data.wellness_index
    log.energy = data.energy
    log.mood = data.mood
    log.physical_symptoms = data.physical_symptoms
    log.sleep_quality = data.sleep_quality
    log.stress_level = data.stress_level
    log.notes = data.notes
    await db.commit()
    return _log_response(log)


@router.delete("/symptoms/{log_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_symptom_log(
    log_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> None:
    result = await db.execute(
        select(SymptomLog).where(SymptomLog.id == log_id, SymptomLog.user_id == user.id)
    )
    log = result.scalar_one_or_none()
    if log is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Symptom log not found",
        )
    await db.delete(log)
    await db.commit()


@router.post("/health-import", response_model=HealthImportResponse)
async def health_import(
    data: HealthImportRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> HealthImportResponse:
    """Derive sleep quality and stress level from phone health samples."""
    summary = await import_health_data(
        db,
        user.id,
        [SleepSample(start=s.start, end=s.end) for s in data.sleep],
        data.hrv,
        on_date=data.on_date,
    )
    return HealthImportResponse(
        updated=summary.has_data,
        sleep_quality=summary.sleep_quality,
        stress_level=summary.stress_level,
        sleep_hours=summary.sleep_hours,
    )
