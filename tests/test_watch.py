"""Tests for Google Calendar push notification channels."""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import utc
from cycle_wellness.calendar.sync import CalendarAccessError, CalendarSyncService
from cycle_wellness.calendar.watch import (
    CalendarWatchService,
    NotificationAction,
    background_google_sync,
)
from cycle_wellness.config import get_settings
from cycle_wellness.database import connection


@pytest.fixture
def webhook_base(monkeypatch):
    monkeypatch.setenv("WEBHOOK_BASE_URL", "https://cycle.example.com/")
    get_settings.cache_clear()


def _service(db_session, google=None) -> CalendarWatchService:
    tokens = MagicMock()
    tokens.get_access_token = AsyncMock(return_value="access-token")
    if google is None:
        google = MagicMock()
        google.return_value.watch_calendar.return_value = {"resourceId": "resource-1"}
    return CalendarWatchService(db_session, tokens=tokens, google_factory=google)


class TestSetupWatch:
    """Tests for creating and reusing channels."""

    @pytest.mark.asyncio
    async def test_creates_channel(self, db_session, user, webhook_base):
        google = MagicMock()
        google.return_value.watch_calendar.return_value = {"resourceId": "resource-1"}
        now = utc(2024, 6, 3, 10)

        result = await _service(db_session, google).setup_watch(user.id, now=now)

        assert result.reused is False
        assert result.channel_id.startswith(f"calendar-{user.id}-")
        assert result.expiration == now + timedelta(days=7)
        args = google.return_value.watch_calendar.call_args.args
        assert args[1] == "https://cycle.example.com/webhooks/google-calendar"

    @pytest.mark.asyncio
    async def test_reuses_valid_channel(self, db_session, user, webhook_base):
        google = MagicMock()
        google.return_value.watch_calendar.return_value = {"resourceId": "resource-1"}
        service = _service(db_session, google)

        first = await service.setup_watch(user.id, now=utc(2024, 6, 3, 10))
        second = await service.setup_watch(user.id, now=utc(2024, 6, 5, 10))

        assert second.reused is True
        assert second.channel_id == first.channel_id
        assert second.message == "Webhook уже настроен"
        assert google.return_value.watch_calendar.call_count == 1

    @pytest.mark.asyncio
    async def test_renews_expiring_channel(self, db_session, user, webhook_base):
        google = MagicMock()
        google.return_value.watch_calendar.return_value = {"resourceId": "resource-1"}
        service = _service(db_session, google)

        first = await service.setup_watch(user.id, now=utc(2024, 6, 3, 10))
        second = await service.setup_watch(user.id, now=utc(2024, 6, 10, 9, 30))

        assert second.reused is False
        assert second.channel_id != first.channel_id
        google.return_value.stop_watch.assert_called_once_with(first.channel_id, "resource-1")

    @pytest.mark.asyncio
    async def test_requires_webhook_base_url(self, db_session, user, monkeypatch):
        monkeypatch.delenv("WEBHOOK_BASE_URL", raising=False)

        with pytest.raises(CalendarAccessError) as exc:
            await _service(db_session).setup_watch(user.id, now=utc(2024, 6, 3, 10))
        assert exc.value.status_code == 503


class TestHandleNotification:
    """Tests for incoming push notifications."""

    @pytest.mark.asyncio
    async def test_sync_state_is_acknowledged(self, db_session):
        outcome = await _service(db_session).handle_notification("any", "sync", None)
        assert outcome.action == NotificationAction.ACKNOWLEDGED

    @pytest.mark.asyncio
    async def test_unknown_channel(self, db_session):
        outcome = await _service(db_session).handle_notification("nope", "exists", "token")
        assert outcome.action == NotificationAction.IGNORED

    @pytest.mark.asyncio
    async def test_valid_notification_triggers_sync(self, db_session, user, webhook_base):
        google = MagicMock()
        google.return_value.watch_calendar.return_value = {"resourceId": "resource-1"}
        service = _service(db_session, google)
        result = await service.setup_watch(user.id, now=utc(2024, 6, 3, 10))
        token = google.return_value.watch_calendar.call_args.args[2]

        outcome = await service.handle_notification(result.channel_id, "exists", token)

        assert outcome.action == NotificationAction.SYNC
        assert outcome.user_id == user.id

    @pytest.mark.asyncio
    async def test_wrong_token(self, db_session, user, webhook_base):
        service = _service(db_session)
        result = await service.setup_watch(user.id, now=utc(2024, 6, 3, 10))

        outcome = await service.handle_notification(result.channel_id, "exists", "forged")
        assert outcome.action == NotificationAction.IGNORED


class TestBackgroundSync:
    """Tests for the sync triggered by a push notification."""

    @pytest.fixture
    def fake_db(self, db_session, monkeypatch):
        @asynccontextmanager
        async def _get_db():
            yield db_session

        monkeypatch.setattr(connection, "get_db", _get_db)

    @pytest.mark.asyncio
    async def test_access_error_is_logged(self, user, fake_db, monkeypatch, caplog):
        monkeypatch.setattr(
            CalendarSyncService,
            "sync_google",
            AsyncMock(side_effect=CalendarAccessError("revoked", status_code=401)),
        )

        with caplog.at_level(logging.ERROR):
            await background_google_sync(user.id)

        assert "Background sync" in caplog.text

    @pytest.mark.asyncio
    async def test_unexpected_error_is_swallowed(self, user, fake_db, monkeypatch, caplog):
        monkeypatch.setattr(
            CalendarSyncService, "sync_google", AsyncMock(side_effect=RuntimeError("boom"))
        )

        with caplog.at_level(logging.ERROR):
            await background_google_sync(user.id)

        assert "boom" in caplog.text
