"""Google Calendar push notifications.

A watch channel makes Google POST to `/webhooks/google-calendar` whenever
the user's primary calendar changes. Each channel carries a random token
that Google echoes back in `X-Goog-Channel-Token`; notifications with an
unknown channel or a wrong token are ignored.

## Channel Lifecycle

- Created with id `calendar-{user_id}-{epoch_ms}` and a 7-day expiration
- Reused while it is valid for more than one more hour
- Otherwise the old channel is stopped (best effort) and replaced

The first notification on a new channel has state `sync`; it carries no
changes and is only acknowledged.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from googleapiclient.errors import HttpError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.auth.models import TokenError
from cycle_wellness.auth.tokens import TokenService
from cycle_wellness.calendar.google_calendar import (
    WATCH_TTL,
    GoogleCalendarClient,
    http_status,
)
from cycle_wellness.calendar.sync import CalendarAccessError
from cycle_wellness.config import get_settings
from cycle_wellness.database.models import CalendarWatchChannel, TokenProvider, as_utc

logger = logging.getLogger(__name__)

REUSE_MARGIN = timedelta(hours=1)
WEBHOOK_PATH = "/webhooks/google-calendar"


class NotificationAction(str, Enum):
    ACKNOWLEDGED = "acknowledged"
    IGNORED = "ignored"
    SYNC = "sync"


@dataclass
class WatchResult:
    channel_id: str
    expiration: datetime
    reused: bool = False

    @property
    def message(self) -> str:
        if self.reused:
            return "Webhook уже настроен"
        return "Автосинхронизация Google Calendar активирована"


@dataclass
class NotificationOutcome:
    action: NotificationAction
    user_id: uuid.UUID | None = None


class CalendarWatchService:
    """Manages the Google watch channel of each user."""

    def __init__(
        self,
        db: AsyncSession,
        tokens: TokenService | None = None,
        google_factory: Callable[[str], GoogleCalendarClient] = GoogleCalendarClient,
    ):
        self.db = db
        self.tokens = tokens or TokenService(db)
        self.google_factory = google_factory

    async def _get_channel(self, user_id: uuid.UUID) -> CalendarWatchChannel | None:
        result = await self.db.execute(
            select(CalendarWatchChannel).where(CalendarWatchChannel.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def setup_watch(
        self,
        user_id: uuid.UUID,
        now: datetime | None = None,
    ) -> WatchResult:
        """Create or reuse the user's watch channel.

        Raises:
            CalendarAccessError: Google not connected, webhooks not
                configured, or the watch request failed
        """
        now = now or datetime.now(timezone.utc)
        existing = await self._get_channel(user_id)

        if existing and as_utc(existing.expiration) > now + REUSE_MARGIN:
            logger.info(f"Watch channel still valid: {existing.channel_id}")
            return WatchResult(
                channel_id=existing.channel_id,
                expiration=as_utc(existing.expiration),
                reused=True,
            )

        base_url = get_settings().webhook_base_url
        if not base_url:
            raise CalendarAccessError("Webhook base URL not configured", status_code=503)

        try:
            token = await self.tokens.get_access_token(user_id, TokenProvider.GOOGLE)
        except TokenError as e:
            raise CalendarAccessError(str(e), status_code=401) from e
        client = self.google_factory(token)

        if existing and existing.resource_id:
            try:
                client.stop_watch(existing.channel_id, existing.resource_id)
                logger.info(f"Stopped old watch channel {existing.channel_id}")
            except HttpError as e:
                logger.warning(f"Error stopping old watch: {e}")

        channel_id = f"calendar-{user_id}-{int(now.timestamp() * 1000)}"
        channel_token = secrets.token_urlsafe(32)
        expiration = now + WATCH_TTL

        try:
            response = client.watch_calendar(
                channel_id,
                f"{base_url.rstrip('/')}{WEBHOOK_PATH}",
                channel_token,
                expiration,
            )
        except HttpError as e:
            logger.error(f"Google Calendar watch error: {e}")
            raise CalendarAccessError(
                "Не удалось настроить webhook для Google Calendar",
                status_code=502 if http_status(e) != 401 else 401,
            ) from e

        if response.get("expiration"):
            expiration = datetime.fromtimestamp(
                int(response["expiration"]) / 1000, tz=timezone.utc
            )

        channel = existing or CalendarWatchChannel(user_id=user_id)
        channel.channel_id = response.get("id", channel_id)
        channel.resource_id = response.get("resourceId")
        channel.token = channel_token
        channel.expiration = expiration
        if existing is None:
            self.db.add(channel)
        await self.db.commit()

        logger.info(f"Watch created for {user_id}: {channel.channel_id}")
        return WatchResult(channel_id=channel.channel_id, expiration=expiration)

    async def handle_notification(
        self,
        channel_id: str | None,
        resource_state: str | None,
        token: str | None,
    ) -> NotificationOutcome:
        """Decide what to do with a push notification."""
        if resource_state == "sync":
            logger.info(f"Sync notification for channel {channel_id}")
            return NotificationOutcome(NotificationAction.ACKNOWLEDGED)

        if not channel_id:
            return NotificationOutcome(NotificationAction.IGNORED)

        result = await self.db.execute(
            select(CalendarWatchChannel).where(CalendarWatchChannel.channel_id == channel_id)
        )
        channel = result.scalar_one_or_none()

        if channel is None:
            logger.warning(f"Notification for unknown channel {channel_id}")
            return NotificationOutcome(NotificationAction.IGNORED)

        if not token or not secrets.compare_digest(token, channel.token):
            logger.warning(f"Token mismatch for channel {channel_id}")
            return NotificationOutcome(NotificationAction.IGNORED)

        logger.info(f"Calendar change ({resource_state}) for user {channel.user_id}")
        return NotificationOutcome(NotificationAction.SYNC, user_id=channel.user_id)


async def background_google_sync(user_id: uuid.UUID) -> None:
    """Import Google events in a fresh session after a push notification."""
    from cycle_wellness.ai.client import LLMClient
    from cycle_wellness.ai.suggestions import SuggestionService
    from cycle_wellness.calendar.sync import CalendarSyncService
    from cycle_wellness.database.connection import get_db

    try:
        async with get_db() as db:
            service = CalendarSyncService(db, suggestions=SuggestionService(db, LLMClient()))
            result = await service.sync_google(user_id)
    except CalendarAccessError as e:
        logger.error(f"Background sync for {user_id} failed: {e}")
        return
    except Exception as e:
        logger.exception(f"Unexpected error in background sync for {user_id}: {e}")
        return
    logger.info(f"Background sync for {user_id}: {result.inserted} new events")
