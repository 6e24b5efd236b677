"""Push notification receivers.

Google retries deliveries that do not get a 2xx answer, so both endpoints
acknowledge every request and only log processing failures.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.ai.client import LLMClient
from cycle_wellness.ai.moves import EventMoveService
from cycle_wellness.calendar.watch import (
    CalendarWatchService,
    NotificationAction,
    background_google_sync,
)
from cycle_wellness.database.connection import get_db_session
from cycle_wellness.mail.parsing import decode_pubsub_message
from cycle_wellness.monitoring.ai_logging import AIMonitor

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/google-calendar")
async def google_calendar_webhook(
    background_tasks: BackgroundTasks,
    x_goog_channel_id: str | None = Header(default=None),
    x_goog_resource_state: str | None = Header(default=None),
    x_goog_channel_token: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Google Calendar change notification; triggers a background import."""
    outcome = await CalendarWatchService(db).handle_notification(
        x_goog_channel_id, x_goog_resource_state, x_goog_channel_token
    )
    if outcome.action == NotificationAction.SYNC and outcome.user_id:
        background_tasks.add_task(background_google_sync, outcome.user_id)
    return {"success": True}


@router.post("/gmail")
async def gmail_webhook(
    envelope: dict[str, Any] = Body(default_factory=dict),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Gmail Pub/Sub push; settles move suggestions answered by email."""
    decoded = decode_pubsub_message(envelope)
    if decoded is None:
        logger.info("Gmail push without usable data")
        return {"success": True}

    email_address, history_id = decoded
    service = EventMoveService(db, LLMClient(monitor=AIMonitor(db)))
    try:
        processed = await service.process_gmail_notification(email_address, history_id)
        logger.info(f"Gmail push for {email_address}: {processed} replies processed")
    except Exception as e:
        logger.exception(f"Gmail push processing failed: {e}")
        await db.rollback()
    return {"success": True}
