"""Scheduled job endpoints.

Called by an external scheduler with `Authorization: Bearer <CRON_SECRET>`.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.ai.client import LLMClient
from cycle_wellness.ai.moves import EventMoveService
from cycle_wellness.ai.planner import WeekPlanner
from cycle_wellness.auth.dependencies import verify_cron_secret
from cycle_wellness.database.connection import get_db_session
from cycle_wellness.monitoring.ai_logging import AIMonitor
from cycle_wellness.notifications import check_period_notifications

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_cron_secret)])


class JobResponse(BaseModel):
    success: bool = True
    processed: int
    errors: int = 0


def _system_llm(db: AsyncSession) -> LLMClient:
    return LLMClient(monitor=AIMonitor(db))


@router.post("/period-notifications", response_model=JobResponse)
async def period_notifications(db: AsyncSession = Depends(get_db_session)) -> JobResponse:
    """Create reminders 5, 3 and 1 days before the next period."""
    created = await check_period_notifications(db)
    logger.info(f"Period notification job created {created} notifications")
    return JobResponse(processed=created)


@router.post("/week-planner", response_model=JobResponse)
async def week_planner(db: AsyncSession = Depends(get_db_session)) -> JobResponse:
    """Propose moves for overloaded days, for every user with cycle data."""
    created = await WeekPlanner(db, _system_llm(db)).run_for_all_users()
    await db.commit()
    return JobResponse(processed=created)


@router.post("/gmail-replies", response_model=JobResponse)
async def gmail_replies(db: AsyncSession = Depends(get_db_session)) -> JobResponse:
    """Poll Gmail threads of every emailed move suggestion."""
    result = await EventMoveService(db, _system_llm(db)).check_replies()
    await db.commit()
    return JobResponse(processed=result.processed, errors=result.errors)
