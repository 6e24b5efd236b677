"""Shared route dependencies."""

from __future__ import annotations

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.ai.client import LLMClient
from cycle_wellness.auth.dependencies import get_current_user
from cycle_wellness.calendar.sync import CalendarAccessError
from cycle_wellness.database.connection import get_db_session
from cycle_wellness.database.models import User
from cycle_wellness.monitoring.ai_logging import AIMonitor


async def get_llm_client(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> LLMClient:
    """LLM client whose retries are logged against the current user."""
    return LLMClient(monitor=AIMonitor(db, user.id))


def calendar_http_error(error: CalendarAccessError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=str(error))


def require_llm(llm: LLMClient) -> None:
    if not llm.is_configured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI service not configured",
        )
