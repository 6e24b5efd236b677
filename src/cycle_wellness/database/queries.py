"""Common lookups shared by services and routes."""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.database.models import Event, SymptomLog, UserCycle, UserProfile


async def get_current_cycle(db: AsyncSession, user_id: uuid.UUID) -> UserCycle | None:
    """Most recently started cycle for a user, if any."""
    result = await db.execute(
        select(UserCycle)
        .where(UserCycle.user_id == user_id)
        .order_by(UserCycle.start_date.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_profile(db: AsyncSession, user_id: uuid.UUID) -> UserProfile | None:
    result = await db.execute(select(UserProfile).where(UserProfile.user_id == user_id))
    return result.scalar_one_or_none()


async def get_or_create_profile(db: AsyncSession, user_id: uuid.UUID) -> UserProfile:
    """Return the user's profile, creating an empty one when missing."""
    profile = await get_profile(db, user_id)
    if profile is None:
        profile = UserProfile(user_id=user_id)
        db.add(profile)
        await db.flush()
    return profile


async def get_symptom_log(
    db: AsyncSession, user_id: uuid.UUID, on_date: date
) -> SymptomLog | None:
    result = await db.execute(
        select(SymptomLog).where(
            SymptomLog.user_id == user_id,
            SymptomLog.log_date == on_date,
        )
    )
    return result.scalar_one_or_none()


async def get_recent_symptom_logs(
    db: AsyncSession, user_id: uuid.UUID, limit: int = 15
) -> list[SymptomLog]:
    """Latest symptom logs, newest first."""
    result = await db.execute(
        select(SymptomLog)
        .where(SymptomLog.user_id == user_id)
        .order_by(SymptomLog.log_date.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_events_between(
    db: AsyncSession,
    user_id: uuid.UUID,
    start: datetime,
    end: datetime,
) -> list[Event]:
    """Events starting in [start, end), ordered by start time."""
    result = await db.execute(
        select(Event)
        .where(
            Event.user_id == user_id,
            Event.start_time >= start,
            Event.start_time < end,
        )
        .order_by(Event.start_time)
    )
    return list(result.scalars().all())


async def get_user_event(
    db: AsyncSession, user_id: uuid.UUID, event_id: uuid.UUID
) -> Event | None:
    result = await db.execute(
        select(Event).where(Event.id == event_id, Event.user_id == user_id)
    )
    return result.scalar_one_or_none()
