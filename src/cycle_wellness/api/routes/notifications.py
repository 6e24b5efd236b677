"""In-app notification routes."""

from __future__ import annotations

import uuid
from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.auth.dependencies import get_current_user
from cycle_wellness.database.connection import get_db_session
from cycle_wellness.database.models import User
from cycle_wellness.notifications import list_notifications, mark_read

router = APIRouter()


class NotificationResponse(BaseModel):
    id: str
    notification_type: str
    title: str
    message: str
    scheduled_for: date
    is_read: bool
    created_at: datetime | None


@router.get("", response_model=list[NotificationResponse])
async def get_notifications(
    unread_only: bool = False,
    limit: int = Query(default=50, ge=1, le=200),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> list[NotificationResponse]:
    notifications = await list_notifications(db, user.id, unread_only=unread_only, limit=limit)
    return [
        NotificationResponse(
            id=str(n.id),
            notification_type=n.notification_type,
            title=n.title,
            message=n.message,
            scheduled_for=n.scheduled_for,
            is_read=n.is_read,
            created_at=n.created_at,
        )
        for n in notifications
    ]


@router.post("/{notification_id}/read", status_code=status.HTTP_204_NO_CONTENT)
async def read_notification(
    notification_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> None:
    if not await mark_read(db, user.id, notification_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )
