"""Calendar import.

Copies upcoming events from the user's Google or Outlook calendar into the
local `events` table, where energy forecasts and advice are computed.

## Sync Process

1. Get a fresh access token for the provider
2. List events from now to `calendar_sync_days` ahead
3. Skip all-day events and events already imported (same title and start)
4. Insert the rest with their provider id
5. Generate advice for each inserted event

## Triggers

- **manual**: the user presses sync
- **webhook**: Google push notification (see `calendar.watch`)
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from googleapiclient.errors import HttpError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.ai.suggestions import SuggestionService
from cycle_wellness.auth.models import TokenError
from cycle_wellness.auth.tokens import TokenService
from cycle_wellness.calendar.google_calendar import GoogleCalendarClient, http_status
from cycle_wellness.calendar.outlook import OutlookCalendarClient
from cycle_wellness.config import get_settings
from cycle_wellness.database.models import Event, EventSource, TokenProvider
from cycle_wellness.providers.base import AuthenticationError, ProviderError

logger = logging.getLogger(__name__)


class CalendarAccessError(Exception):
    """The provider refused access; carries the HTTP status to report."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class ImportedEvent:
    """Provider-neutral event ready to be imported."""

    external_id: str
    title: str
    start: datetime
    end: datetime
    description: str | None = None


@dataclass
class SyncResult:
    """Result of a calendar import."""

    provider: str
    inserted: int = 0
    skipped: int = 0
    total: int = 0
    suggestions_created: int = 0
    errors: list[str] = field(default_factory=list)
    synced_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def success(self) -> bool:
        return len(self.errors) == 0

    @property
    def message(self) -> str:
        return (
            f"Загружено {self.inserted} событий с "
            f"{self.suggestions_created} ИИ-советами"
        )


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CalendarSyncService:
    """Imports provider events for one user.

    Example:
        ```python
        service = CalendarSyncService(db, suggestions=SuggestionService(db, llm))
        result = await service.sync_google(user.id)
        ```
    """

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
        self.days = get_settings().calendar_sync_days

    def _window(self) -> tuple[datetime, datetime]:
        now = datetime.now(timezone.utc)
        return now, now + timedelta(days=self.days)

    async def _access_token(self, user_id: uuid.UUID, provider: TokenProvider) -> str:
        try:
            return await self.tokens.get_access_token(user_id, provider)
        except TokenError as e:
            raise CalendarAccessError(str(e), status_code=401) from e

    async def _exists(self, user_id: uuid.UUID, title: str, start: datetime) -> bool:
        result = await self.db.execute(
            select(Event.id).where(
                Event.user_id == user_id,
                Event.title == title,
                Event.start_time == start,
            )
        )
        return result.first() is not None

    async def import_events(
        self,
        user_id: uuid.UUID,
        source: EventSource,
        events: list[ImportedEvent],
    ) -> SyncResult:
        """Insert new events and generate advice for them."""
        sync_result = SyncResult(provider=source.value, total=len(events))

        for item in events:
            start, end = _utc(item.start), _utc(item.end)
            if await self._exists(user_id, item.title, start):
                sync_result.skipped += 1
                continue

            event = Event(
                user_id=user_id,
                title=item.title,
                description=item.description,
                start_time=start,
                end_time=end,
                source=source.value,
                external_event_id=item.external_id,
            )
            self.db.add(event)
            await self.db.flush()
            sync_result.inserted += 1

            if self.suggestions is not None:
                try:
                    await self.suggestions.generate_and_save(user_id, event)
                    sync_result.suggestions_created += 1
                except Exception as e:
                    logger.exception(f"Suggestion for {item.title!r} failed: {e}")
                    sync_result.errors.append(f"Suggestion for {item.title!r}: {e}")

        await self.db.commit()

        logger.info(
            f"Synced {source.value} calendar for {user_id}: "
            f"{sync_result.total} found, {sync_result.inserted} inserted, "
            f"{sync_result.skipped} skipped"
        )
        return sync_result

    async def sync_google(self, user_id: uuid.UUID) -> SyncResult:
        """Import the next days of the primary Google calendar.

        Raises:
            CalendarAccessError: On missing or rejected Google access
        """
        client = self.google_factory(
            await self._access_token(user_id, TokenProvider.GOOGLE)
        )
        time_min, time_max = self._window()

        try:
            raw = client.list_events(time_min, time_max)
        except HttpError as e:
            status_code = http_status(e)
            logger.error(f"Google Calendar list failed for {user_id}: {status_code}")
            if status_code == 401:
                raise CalendarAccessError(
                    "Токен Google истек. Войдите снова.", status_code=401
                ) from e
            if status_code == 403:
                raise CalendarAccessError(
                    "Нет доступа к Google Calendar.", status_code=403
                ) from e
            raise CalendarAccessError(
                f"Google Calendar API error: {status_code}", status_code=502
            ) from e

        events = [
            ImportedEvent(
                external_id=e.id,
                title=e.summary,
                start=e.start,
                end=e.end,
                description=e.description,
            )
            for e in raw
            if not e.is_all_day and e.start and e.end
        ]
        result = await self.import_events(user_id, EventSource.GOOGLE, events)
        result.total = len(raw)
        result.skipped += len(raw) - len(events)
        return result

    async def sync_outlook(self, user_id: uuid.UUID) -> SyncResult:
        """Import the next days of the default Outlook calendar."""
        time_min, time_max = self._window()

        async with self.outlook_factory(
            await self._access_token(user_id, TokenProvider.MICROSOFT)
        ) as outlook:
            try:
                raw = await outlook.calendar_view(time_min, time_max)
            except AuthenticationError as e:
                raise CalendarAccessError(
                    "Токен Microsoft истек. Подключите Outlook снова.", status_code=401
                ) from e
            except ProviderError as e:
                if e.status_code == 403:
                    raise CalendarAccessError(
                        "Нет доступа к Outlook Calendar.", status_code=403
                    ) from e
                raise CalendarAccessError(
                    f"Microsoft Graph error: {e.status_code}", status_code=502
                ) from e

        events = [
            ImportedEvent(
                external_id=e.id,
                title=e.subject,
                start=e.start,
                end=e.end,
                description=e.body_preview,
            )
            for e in raw
            if not e.is_all_day and e.start and e.end
        ]
        result = await self.import_events(user_id, EventSource.OUTLOOK, events)
        result.total = len(raw)
        result.skipped += len(raw) - len(events)
        return result
