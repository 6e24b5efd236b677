"""Local events with write-through to the provider calendar.

The local row is the source of truth for forecasts, so it is always written
first. The provider copy (Google or Outlook, chosen by `Event.source`) is
updated afterwards; provider failures are logged and reported back to the
caller but never undo the local change.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TypeVar

from googleapiclient.errors import HttpError
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.ai.suggestions import SuggestionService
from cycle_wellness.auth.models import TokenError
from cycle_wellness.auth.tokens import TokenService
from cycle_wellness.calendar.google_calendar import GoogleCalendarClient, http_status
from cycle_wellness.calendar.outlook import OutlookCalendarClient
from cycle_wellness.calendar.sync import CalendarAccessError
from cycle_wellness.database.models import Event, EventSource, TokenProvider, as_utc
from cycle_wellness.database.queries import get_user_event
from cycle_wellness.providers.base import AuthenticationError, ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EventNotFoundError(Exception):
    """No event with that id belongs to the user."""


@dataclass
class EventChanges:
    """Fields to change; None leaves a field as it is."""

    title: str | None = None
    description: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None

    @property
    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (self.title, self.description, self.start_time, self.end_time)
        )


@dataclass
class ProviderSyncStatus:
    provider: str | None = None
    synced: bool = False
    error: str | None = None


def _utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class EventService:
    """Creates, updates and deletes events for one user session."""

    def __init__(
        self,
        db: AsyncSession,
        tokens: TokenService | None = None,
        suggestions: SuggestionService | None = None,
        google_factory: Callable[[str], GoogleCalendarClient] = GoogleCalendarClient,
        outlook_factory: Callable[[str], OutlookCalendarClient] = OutlookCalendarClient,
    ):
        self.db = db
        self.tokens = tokens or TokenService(db)
        self.suggestions = suggestions
        self.google_factory = google_factory
        self.outlook_factory = outlook_factory

    async def _get(self, user_id: uuid.UUID, event_id: uuid.UUID) -> Event:
        event = await get_user_event(self.db, user_id, event_id)
        if event is None:
            raise EventNotFoundError(f"Event {event_id} not found")
        return event

    async def _refresh_suggestion(self, user_id: uuid.UUID, event: Event) -> None:
        if self.suggestions is None:
            return
        try:
            await self.suggestions.generate_and_save(user_id, event)
        except Exception as e:
            logger.exception(f"Could not regenerate suggestion for {event.id}: {e}")

    async def _call_google(
        self, user_id: uuid.UUID, call: Callable[[GoogleCalendarClient], T]
    ) -> T:
        """Run a Google Calendar call, refreshing the token once on 401."""
        token = await self.tokens.get_access_token(user_id, TokenProvider.GOOGLE)
        try:
            return call(self.google_factory(token))
        except HttpError as e:
            if http_status(e) != 401:
                raise
        logger.info("Google returned 401, refreshing token and retrying")
        token = await self.tokens.refresh(user_id, TokenProvider.GOOGLE)
        return call(self.google_factory(token))

    async def _call_outlook(
        self,
        user_id: uuid.UUID,
        call: Callable[[OutlookCalendarClient], Awaitable[T]],
    ) -> T:
        """Run a Microsoft Graph call, refreshing the token once on 401."""
        token = await self.tokens.get_access_token(user_id, TokenProvider.MICROSOFT)
        try:
            async with self.outlook_factory(token) as outlook:
                return await call(outlook)
        except AuthenticationError:
            logger.info("Microsoft Graph returned 401, refreshing token and retrying")
        token = await self.tokens.refresh(user_id, TokenProvider.MICROSOFT)
        async with self.outlook_factory(token) as outlook:
            return await call(outlook)

    async def create_event(
        self,
        user_id: uuid.UUID,
        title: str,
        start_time: datetime,
        end_time: datetime,
        description: str | None = None,
    ) -> Event:
        """Create a manual event with advice."""
        if end_time <= start_time:
            raise ValueError("end_time must be after start_time")

        event = Event(
            user_id=user_id,
            title=title,
            description=description,
            start_time=_utc(start_time),
            end_time=_utc(end_time),
            source=EventSource.MANUAL.value,
        )
        self.db.add(event)
        await self.db.flush()
        await self._refresh_suggestion(user_id, event)
        await self.db.commit()
        logger.info(f"Created event {event.id} for {user_id}")
        return event

    async def add_to_google(self, user_id: uuid.UUID, event_id: uuid.UUID) -> Event:
        """Copy a local event into the primary Google calendar.

        A 401 from Google triggers one token refresh and a retry.

        Raises:
            EventNotFoundError: Unknown event
            CalendarAccessError: Google is not connected or refuses the request
        """
        event = await self._get(user_id, event_id)

        try:
            created = await self._call_google(
                user_id,
                lambda client: client.insert_event(
                    event.title, event.start_time, event.end_time, event.description
                ),
            )
        except TokenError as e:
            raise CalendarAccessError(str(e), status_code=401) from e
        except HttpError as e:
            raise CalendarAccessError(
                f"Google Calendar API error: {http_status(e)}", status_code=502
            ) from e

        event.external_event_id = created.id
        event.source = EventSource.GOOGLE.value
        await self.db.commit()
        logger.info(f"Added event {event.id} to Google as {created.id}")
        return event

    async def add_to_outlook(self, user_id: uuid.UUID, event_id: uuid.UUID) -> Event:
        event = await self._get(user_id, event_id)

        try:
            created = await self._call_outlook(
                user_id,
                lambda outlook: outlook.create_event(
                    event.title, event.start_time, event.end_time, event.description
                ),
            )
        except TokenError as e:
            raise CalendarAccessError(str(e), status_code=401) from e
        except ProviderError as e:
            raise CalendarAccessError(
                f"Microsoft Graph error: {e.status_code}", status_code=e.status_code or 502
            ) from e

        event.external_event_id = created.id
        event.source = EventSource.OUTLOOK.value
        await self.db.commit()
        logger.info(f"Added event {event.id} to Outlook as {created.id}")
        return event

    async def _push_update(
        self,
        user_id: uuid.UUID,
        event: Event,
        previous_title: str,
        previous_start: datetime,
    ) -> ProviderSyncStatus:
        status = ProviderSyncStatus(provider=event.source)

        def patch(client: GoogleCalendarClient) -> str | None:
            external_id = event.external_event_id or client.find_event_id(
                previous_title, previous_start
            )
            if external_id:
                client.patch_event(
                    external_id,
                    summary=event.title,
                    description=event.description,
                    start=event.start_time,
                    end=event.end_time,
                )
            return external_id

        try:
            if event.source == EventSource.GOOGLE.value:
                external_id = await self._call_google(user_id, patch)
                if not external_id:
                    status.error = "Google event not found"
                    return status
                event.external_event_id = external_id
            elif event.source == EventSource.OUTLOOK.value and event.external_event_id:
                await self._call_outlook(
                    user_id,
                    lambda outlook: outlook.update_event(
                        event.external_event_id,
                        subject=event.title,
                        start=event.start_time,
                        end=event.end_time,
                        body=event.description,
                    ),
                )
            else:
                return ProviderSyncStatus()
        except (TokenError, HttpError, ProviderError) as e:
            logger.warning(f"Provider update for event {event.id} failed: {e}")
            status.error = str(e)
            return status

        status.synced = True
        return status

    async def update_event(
        self,
        user_id: uuid.UUID,
        event_id: uuid.UUID,
        changes: EventChanges,
    ) -> tuple[Event, ProviderSyncStatus]:
        """Apply changes locally, regenerate advice, then update the provider."""
        event = await self._get(user_id, event_id)
        previous_title = event.title
        previous_start = event.start_time

        if changes.title is not None:
            event.title = changes.title
        if changes.description is not None:
            event.description = changes.description
        if changes.start_time is not None:
            event.start_time = _utc(changes.start_time)
        if changes.end_time is not None:
            event.end_time = _utc(changes.end_time)
        if as_utc(event.end_time) <= as_utc(event.start_time):
            raise ValueError("end_time must be after start_time")

        await self.db.flush()
        await self._refresh_suggestion(user_id, event)
        await self.db.commit()

        status = await self._push_update(user_id, event, previous_title, previous_start)
        await self.db.commit()
        return event, status

    async def move_event(
        self,
        user_id: uuid.UUID,
        event_id: uuid.UUID,
        start_time: datetime,
        end_time: datetime,
    ) -> tuple[Event, ProviderSyncStatus]:
        return await self.update_event(
            user_id, event_id, EventChanges(start_time=start_time, end_time=end_time)
        )

    async def delete_event(
        self, user_id: uuid.UUID, event_id: uuid.UUID
    ) -> ProviderSyncStatus:
        """Delete the provider copy (best effort), then the local row."""
        event = await self._get(user_id, event_id)
        status = ProviderSyncStatus(provider=event.source)

        def delete(client: GoogleCalendarClient) -> bool:
            external_id = event.external_event_id or client.find_event_id(
                event.title, event.start_time
            )
            if not external_id:
                return False
            client.delete_event(external_id)
            return True

        try:
            if event.source == EventSource.GOOGLE.value:
                status.synced = await self._call_google(user_id, delete)
            elif event.source == EventSource.OUTLOOK.value and event.external_event_id:
                await self._call_outlook(
                    user_id, lambda outlook: outlook.delete_event(event.external_event_id)
                )
                status.synced = True
        except (TokenError, HttpError, ProviderError) as e:
            logger.warning(f"Provider delete for event {event.id} failed: {e}")
            status.error = str(e)

        await self.db.delete(event)
        await self.db.commit()
        logger.info(f"Deleted event {event_id} for {user_id}")
        return status
