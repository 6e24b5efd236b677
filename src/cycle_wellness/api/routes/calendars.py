"""Calendar and event routes.

Handles importing Google/Outlook events, local event CRUD with write-through
to the provider, and Google Calendar and Gmail push notification setup.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.ai.client import LLMClient
from cycle_wellness.ai.moves import EventMoveService
from cycle_wellness.ai.suggestions import SuggestionService
from cycle_wellness.api.deps import calendar_http_error, get_llm_client
from cycle_wellness.auth.dependencies import get_current_user
from cycle_wellness.auth.models import TokenError
from cycle_wellness.auth.tokens import TokenService
from cycle_wellness.calendar.events import (
    EventChanges,
    EventNotFoundError,
    EventService,
    ProviderSyncStatus,
)
from cycle_wellness.calendar.outlook import OutlookCalendarClient
from cycle_wellness.calendar.sync import CalendarAccessError, CalendarSyncService, SyncResult
from cycle_wellness.calendar.watch import CalendarWatchService
from cycle_wellness.database.connection import get_db_session
from cycle_wellness.database.models import Event, EventAISuggestion, TokenProvider, User
from cycle_wellness.database.queries import get_events_between
from cycle_wellness.providers.base import ProviderError

router = APIRouter()


class SyncResultResponse(BaseModel):
    provider: str
    success: bool
    message: str
    inserted: int
    skipped: int
    total: int
    suggestions_created: int
    errors: list[str]
    synced_at: datetime


class EventResponse(BaseModel):
    id: str
    title: str
    description: str | None
    start_time: datetime
    end_time: datetime
    source: str
    external_event_id: str | None
    suggestion: str | None = None
    justification: str | None = None


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=512)
    description: str | None = Field(default=None, max_length=5000)
    start_time: datetime
    end_time: datetime


class EventUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=512)
    description: str | None = Field(default=None, max_length=5000)
    start_time: datetime | None = None
    end_time: datetime | None = None


class ProviderStatusResponse(BaseModel):
    provider: str | None
    synced: bool
    error: str | None


class EventUpdateResponse(BaseModel):
    event: EventResponse
    provider: ProviderStatusResponse


class WatchResponse(BaseModel):
    success: bool
    message: str
    channel_id: str
    expiration: datetime


class GmailWatchResponse(BaseModel):
    success: bool
    message: str
    history_id: str | None
    expiration: datetime | None


class TimezoneResponse(BaseModel):
    timezone: str | None


def _sync_response(result: SyncResult) -> SyncResultResponse:
    return SyncResultResponse(
        provider=result.provider,
        success=result.success,
        message=result.message,
        inserted=result.inserted,
        skipped=result.skipped,
        total=result.total,
        suggestions_created=result.suggestions_created,
        errors=result.errors,
        synced_at=result.synced_at,
    )


def _event_response(event: Event, advice: EventAISuggestion | None = None) -> EventResponse:
    return EventResponse(
        id=str(event.id),
        title=event.title,
        description=event.description,
        start_time=event.start_time,
        end_time=event.end_time,
        source=event.source,
        external_event_id=event.external_event_id,
        suggestion=advice.suggestion if advice else None,
        justification=advice.justification if advice else None,
    )


def _status_response(provider_status: ProviderSyncStatus) -> ProviderStatusResponse:
    return ProviderStatusResponse(
        provider=provider_status.provider,
        synced=provider_status.synced,
        error=provider_status.error,
    )


def _event_service(db: AsyncSession, llm: LLMClient) -> EventService:
    return EventService(db, suggestions=SuggestionService(db, llm))


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")


@router.post("/google/sync", response_model=SyncResultResponse)
async def sync_google_calendar(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    llm: LLMClient = Depends(get_llm_client),
) -> SyncResultResponse:
    """Import the coming week of Google events."""
    service = CalendarSyncService(db, suggestions=SuggestionService(db, llm))
    try:
        result = await service.sync_google(user.id)
    except CalendarAccessError as e:
        raise calendar_http_error(e)
    return _sync_response(result)


@router.post("/outlook/sync", response_model=SyncResultResponse)
async def sync_outlook_calendar(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    llm: LLMClient = Depends(get_llm_client),
) -> SyncResultResponse:
    """Import the coming week of Outlook events."""
    service = CalendarSyncService(db, suggestions=SuggestionService(db, llm))
    try:
        result = await service.sync_outlook(user.id)
    except CalendarAccessError as e:
        raise calendar_http_error(e)
    return _sync_response(result)


@router.get("/events", response_model=list[EventResponse])
async def list_events(
    start: datetime | None = None,
    end: datetime | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> list[EventResponse]:
    """Events in [start, end); defaults to the coming week."""
    start = start or datetime.now(timezone.utc)
    end = end or start + timedelta(days=7)
    events = await get_events_between(db, user.id, start, end)

    advice: dict[uuid.UUID, EventAISuggestion] = {}
    if events:
        result = await db.execute(
            select(EventAISuggestion).where(
                EventAISuggestion.event_id.in_([e.id for e in events])
            )
        )
        advice = {s.event_id: s for s in result.scalars().all()}

    return [_event_response(e, advice.get(e.id)) for e in events]


@router.post("/events", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event(
    data: EventCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    llm: LLMClient = Depends(get_llm_client),
) -> EventResponse:
    try:
        event = await _event_service(db, llm).create_event(
            user.id, data.title, data.start_time, data.end_time, data.description
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _event_response(event)


@router.patch("/events/{event_id}", response_model=EventUpdateResponse)
async def update_event(
    event_id: uuid.UUID,
    data: EventUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    llm: LLMClient = Depends(get_llm_client),
) -> EventUpdateResponse:
    """Update locally, then on the provider calendar (best effort)."""
    changes = EventChanges(**data.model_dump(exclude_unset=True))
    if changes.is_empty:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Nothing to update")

    try:
        event, provider_status = await _event_service(db, llm).update_event(
            user.id, event_id, changes
        )
    except EventNotFoundError:
        raise _not_found()
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return EventUpdateResponse(
        event=_event_response(event),
        provider=_status_response(provider_status),
    )


@router.delete("/events/{event_id}", response_model=ProviderStatusResponse)
async def delete_event(
    event_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ProviderStatusResponse:
    try:
        provider_status = await EventService(db).delete_event(user.id, event_id)
    except EventNotFoundError:
        raise _not_found()
    return _status_response(provider_status)


@router.post("/events/{event_id}/google", response_model=EventResponse)
async def add_event_to_google(
    event_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> EventResponse:
    """Copy a local event into the primary Google calendar."""
    try:
        event = await EventService(db).add_to_google(user.id, event_id)
    except EventNotFoundError:
        raise _not_found()
    except CalendarAccessError as e:
        raise calendar_http_error(e)
    return _event_response(event)


@router.post("/events/{event_id}/outlook", response_model=EventResponse)
async def add_event_to_outlook(
    event_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> EventResponse:
    """Copy a local event into the Outlook calendar."""
    try:
        event = await EventService(db).add_to_outlook(user.id, event_id)
    except EventNotFoundError:
        raise _not_found()
    except CalendarAccessError as e:
        raise calendar_http_error(e)
    return _event_response(event)


@router.post("/google/watch", response_model=WatchResponse)
async def setup_google_watch(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> WatchResponse:
    """Subscribe to Google push notifications for the primary calendar."""
    try:
        result = await CalendarWatchService(db).setup_watch(user.id)
    except CalendarAccessError as e:
        raise calendar_http_error(e)
    return WatchResponse(
        success=True,
        message=result.message,
        channel_id=result.channel_id,
        expiration=result.expiration,
    )


@router.post("/gmail/watch", response_model=GmailWatchResponse)
async def setup_gmail_watch(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    llm: LLMClient = Depends(get_llm_client),
) -> GmailWatchResponse:
    """Subscribe the inbox to Gmail push notifications for email replies."""
    try:
        result = await EventMoveService(db, llm).setup_gmail_watch(user.id)
    except CalendarAccessError as e:
        raise calendar_http_error(e)
    return GmailWatchResponse(
        success=True,
        message="Webhooks настроены успешно",
        history_id=result.history_id,
        expiration=result.expiration,
    )

@router.get("/outlook/timezone", response_model=TimezoneResponse)
async def outlook_timezone(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> TimezoneResponse:
    """Mailbox time zone of the connected Outlook account."""
    try:
        token = await TokenService(db).get_access_token(user.id, TokenProvider.MICROSOFT)
        async with OutlookCalendarClient(token) as outlook:
            tz = await outlook.get_mailbox_timezone()
    except TokenError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    except ProviderError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return TimezoneResponse(timezone=tz)
