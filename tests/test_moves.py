"""Tests for rescheduling events by email."""

import base64
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select

from conftest import make_llm, utc
from cycle_wellness.ai.client import LLMError
from cycle_wellness.ai.moves import (
    EventMoveService,
    MoveNotFoundError,
    ReplyValidationError,
    email_subject,
    format_moment,
    parse_reply_decision,
    sanitize_reply,
    validate_reply,
)
from cycle_wellness.auth.models import TokenError
from cycle_wellness.calendar.events import EventService
from cycle_wellness.calendar.sync import CalendarAccessError
from cycle_wellness.config import get_settings
from cycle_wellness.database.models import (
    ChatMessage,
    EventMoveSuggestion,
    EventSource,
    MoveStatus,
    as_utc,
)


def _tokens() -> MagicMock:
    tokens = MagicMock()
    tokens.get_access_token = AsyncMock(return_value="access-token")
    return tokens


def _body(text: str) -> dict:
    return {
        "mimeType": "text/plain",
        "body": {"data": base64.urlsafe_b64encode(text.encode()).decode()},
    }


@pytest.fixture
def make_suggestion(db_session, user):
    """Factory adding a move suggestion for an event."""

    async def _make(event, status=MoveStatus.PENDING, thread_id=None) -> EventMoveSuggestion:
        suggestion = EventMoveSuggestion(
            user_id=user.id,
            event_id=event.id,
            event_title=event.title,
            reason="Слишком плотный день",
            suggested_start=utc(2024, 6, 5, 15),
            suggested_end=utc(2024, 6, 5, 16),
            status=status.value,
            thread_id=thread_id,
        )
        db_session.add(suggestion)
        await db_session.commit()
        return suggestion

    return _make


def _service(db_session, llm, tokens=None, google=None, gmail=None) -> EventMoveService:
    tokens = tokens or _tokens()
    google_factory = google or MagicMock()
    return EventMoveService(
        db_session,
        llm,
        tokens=tokens,
        events=EventService(db_session, tokens=tokens, google_factory=google_factory),
        google_factory=google_factory,
        gmail_factory=gmail or MagicMock(),
    )


class TestHelpers:
    """Tests for reply validation and parsing."""

    def test_subject(self):
        assert email_subject("Отчёт") == "Предложение перенести: Отчёт"

    def test_format_moment_uses_timezone(self):
        from zoneinfo import ZoneInfo

        assert format_moment(utc(2024, 6, 5, 15)) == "05.06.2024 15:00"
        assert format_moment(utc(2024, 6, 5, 15), ZoneInfo("Europe/Moscow")) == "05.06.2024 18:00"

    @pytest.mark.parametrize(
        "thread_id,body",
        [("", "ok"), ("t" * 101, "ok"), ("thread", ""), ("thread", "x" * 10_001), (42, "ok")],
    )
    def test_validate_reply_rejects(self, thread_id, body):
        with pytest.raises(ReplyValidationError):
            validate_reply(thread_id, body)

    def test_sanitize_reply(self):
        assert sanitize_reply("<b>Да</b>") == "bДа/b"
        assert len(sanitize_reply("a" * 6000)) == 5000

    def test_decision_accepted(self):
        assert parse_reply_decision({"accepted": True}).accepted is True

    def test_decision_alternative(self):
        decision = parse_reply_decision(
            {"accepted": False, "alternative_suggested": True, "alternative_time": "2024-06-07 09:00"}
        )
        assert decision.accepted is False
        assert decision.alternative_time == utc(2024, 6, 7, 9)

    def test_unreadable_alternative_is_refusal(self):
        decision = parse_reply_decision(
            {"accepted": False, "alternative_suggested": True, "alternative_time": "в четверг"}
        )
        assert decision.accepted is False
        assert decision.alternative_time is None

    def test_non_object_raises(self):
        with pytest.raises(LLMError):
            parse_reply_decision(["yes"])


class TestPreviewAndExecute:
    """Tests for drafting and sending move emails."""

    @pytest.mark.asyncio
    async def test_preview_falls_back_to_template(
        self, db_session, user, make_event, make_suggestion, llm
    ):
        event = await make_event("Отчёт", utc(2024, 6, 3, 10), utc(2024, 6, 3, 11))
        suggestion = await make_suggestion(event)

        preview = await _service(db_session, llm).preview_email(user.id, suggestion.id)

        assert preview.subject == "Предложение перенести: Отчёт"
        assert preview.recipients == []
        assert 'перенести встречу "Отчёт" с 03.06.2024 10:00 на 05.06.2024 15:00' in preview.body
        assert preview.body.endswith("Пользователь")

    @pytest.mark.asyncio
    async def test_unknown_suggestion(self, db_session, user, llm):
        with pytest.raises(MoveNotFoundError):
            await _service(db_session, llm).preview_email(user.id, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_move_without_participants(
        self, db_session, user, make_event, make_suggestion, llm
    ):
        event = await make_event("Отчёт", utc(2024, 6, 3, 10), utc(2024, 6, 3, 11))
        suggestion = await make_suggestion(event)
        gmail = MagicMock()

        outcome = await _service(db_session, llm, gmail=gmail).execute_move(user.id, suggestion.id)

        assert outcome.status == MoveStatus.COMPLETED
        assert outcome.success is True
        assert suggestion.status == MoveStatus.COMPLETED.value
        assert as_utc(event.start_time) == utc(2024, 6, 5, 15)
        assert as_utc(event.end_time) == utc(2024, 6, 5, 16)
        gmail.assert_not_called()

    @pytest.mark.asyncio
    async def test_email_sent_to_other_participants(
        self, db_session, user, make_event, make_suggestion
    ):
        event = await make_event(
            "Отчёт",
            utc(2024, 6, 3, 10),
            utc(2024, 6, 3, 11),
            source=EventSource.GOOGLE,
            external_event_id="g-1",
        )
        suggestion = await make_suggestion(event)

        google = MagicMock()
        google.return_value.get_attendees.return_value = ["Anna@example.com", "boss@example.com"]
        gmail = MagicMock()
        gmail.return_value.send_message.return_value = {"id": "m-1", "threadId": "t-1"}
        llm = make_llm(text="Можно перенести встречу?")

        outcome = await _service(db_session, llm, google=google, gmail=gmail).execute_move(
            user.id, suggestion.id
        )

        assert outcome.status == MoveStatus.EMAIL_SENT
        assert outcome.participants == ["boss@example.com"]
        assert outcome.thread_id == "t-1"
        gmail.return_value.send_message.assert_called_once_with(
            ["boss@example.com"], "Предложение перенести: Отчёт", "Можно перенести встречу?"
        )
        assert suggestion.thread_id == "t-1"
        assert suggestion.email_body == "Можно перенести встречу?"
        assert as_utc(event.start_time) == utc(2024, 6, 3, 10)

        messages = (await db_session.execute(select(ChatMessage))).scalars().all()
        assert "Письмо отправлено участникам (1 чел.)" in messages[0].content

    @pytest.mark.asyncio
    async def test_send_failure(self, db_session, user, make_event, make_suggestion, llm):
        event = await make_event(
            "Отчёт",
            utc(2024, 6, 3, 10),
            utc(2024, 6, 3, 11),
            source=EventSource.GOOGLE,
            external_event_id="g-1",
        )
        suggestion = await make_suggestion(event)
        google = MagicMock()
        google.return_value.get_attendees.return_value = ["boss@example.com"]
        gmail = MagicMock()
        gmail.return_value.send_message.return_value = {}

        outcome = await _service(db_session, llm, google=google, gmail=gmail).execute_move(
            user.id, suggestion.id
        )

        assert outcome.status == MoveStatus.FAILED
        assert outcome.success is False
        assert suggestion.status == MoveStatus.FAILED.value


class TestReplies:
    """Tests for settling suggestions from replies."""

    @pytest.mark.asyncio
    async def test_accepted(self, db_session, user, make_event, make_suggestion):
        event = await make_event("Отчёт", utc(2024, 6, 3, 10), utc(2024, 6, 3, 11))
        suggestion = await make_suggestion(event, MoveStatus.EMAIL_SENT, thread_id="t-1")
        llm = make_llm(payload={"accepted": True, "alternative_suggested": False})

        outcome = await _service(db_session, llm).handle_reply(user.id, "t-1", "Да, подходит")

        assert outcome.status == MoveStatus.COMPLETED
        assert outcome.new_start == utc(2024, 6, 5, 15)
        assert as_utc(event.start_time) == utc(2024, 6, 5, 15)
        assert suggestion.reply_text == "Да, подходит"
        assert llm.complete_json.await_args.kwargs["operation"] == "ai-handle-email-reply"

    @pytest.mark.asyncio
    async def test_alternative_time(self, db_session, user, make_event, make_suggestion):
        event = await make_event("Отчёт", utc(2024, 6, 3, 10), utc(2024, 6, 3, 11, 30))
        await make_suggestion(event, MoveStatus.EMAIL_SENT, thread_id="t-1")
        llm = make_llm(
            payload={
                "accepted": False,
                "alternative_suggested": True,
                "alternative_time": "2024-06-07 09:00",
            }
        )

        outcome = await _service(db_session, llm).handle_reply(user.id, "t-1", "Лучше в пятницу")

        assert outcome.status == MoveStatus.COMPLETED
        assert as_utc(event.start_time) == utc(2024, 6, 7, 9)
        assert as_utc(event.end_time) == utc(2024, 6, 7, 10, 30)

    @pytest.mark.asyncio
    async def test_rejected(self, db_session, user, make_event, make_suggestion):
        event = await make_event("Отчёт", utc(2024, 6, 3, 10), utc(2024, 6, 3, 11))
        suggestion = await make_suggestion(event, MoveStatus.EMAIL_SENT, thread_id="t-1")
        llm = make_llm(payload={"accepted": False, "alternative_suggested": False})

        outcome = await _service(db_session, llm).handle_reply(user.id, "t-1", "Нет, не получится")

        assert outcome.status == MoveStatus.REJECTED
        assert suggestion.status == MoveStatus.REJECTED.value
        assert as_utc(event.start_time) == utc(2024, 6, 3, 10)

    @pytest.mark.asyncio
    async def test_thread_must_be_emailed(self, db_session, user, make_event, make_suggestion, llm):
        event = await make_event("Отчёт", utc(2024, 6, 3, 10), utc(2024, 6, 3, 11))
        await make_suggestion(event, MoveStatus.PENDING, thread_id="t-1")

        with pytest.raises(MoveNotFoundError):
            await _service(db_session, llm).handle_reply(user.id, "t-1", "Да")

    @pytest.mark.asyncio
    async def test_invalid_reply(self, db_session, user, llm):
        with pytest.raises(ReplyValidationError):
            await _service(db_session, llm).handle_reply(user.id, "t-1", "")

    @pytest.mark.asyncio
    async def test_check_replies_reads_last_message(
        self, db_session, user, make_event, make_suggestion
    ):
        event = await make_event("Отчёт", utc(2024, 6, 3, 10), utc(2024, 6, 3, 11))
        await make_suggestion(event, MoveStatus.EMAIL_SENT, thread_id="t-1")
        gmail = MagicMock()
        gmail.return_value.get_thread.return_value = {
            "messages": [{"payload": _body("Можно перенести?")}, {"payload": _body("Да, подходит")}]
        }
        llm = make_llm(payload={"accepted": True})

        result = await _service(db_session, llm, gmail=gmail).check_replies()

        assert result.processed == 1
        assert result.errors == 0
        assert "Да, подходит" in llm.complete_json.await_args.args[0][1]["content"]

    @pytest.mark.asyncio
    async def test_check_replies_skips_unanswered_threads(
        self, db_session, user, make_event, make_suggestion
    ):
        event = await make_event("Отчёт", utc(2024, 6, 3, 10), utc(2024, 6, 3, 11))
        await make_suggestion(event, MoveStatus.EMAIL_SENT, thread_id="t-1")
        gmail = MagicMock()
        gmail.return_value.get_thread.return_value = {"messages": [{"payload": _body("Привет")}]}
        llm = make_llm(payload={"accepted": True})

        result = await _service(db_session, llm, gmail=gmail).check_replies()

        assert result.processed == 0
        llm.complete_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_gmail_notification(self, db_session, user, make_event, make_suggestion):
        event = await make_event("Отчёт", utc(2024, 6, 3, 10), utc(2024, 6, 3, 11))
        await make_suggestion(event, MoveStatus.EMAIL_SENT, thread_id="t-1")
        gmail = MagicMock()
        gmail.return_value.new_message_bodies.return_value = [
            ("t-1", "Согласен"),
            ("other-thread", "Спам"),
        ]
        llm = make_llm(payload={"accepted": True})

        processed = await _service(db_session, llm, gmail=gmail).process_gmail_notification(
            "anna@example.com", "12345"
        )

        assert processed == 1
        gmail.return_value.new_message_bodies.assert_called_once_with("12345")

    @pytest.mark.asyncio
    async def test_gmail_notification_unknown_address(self, db_session, user, llm):
        processed = await _service(db_session, llm).process_gmail_notification(
            "stranger@example.com", "1"
        )
        assert processed == 0

    @pytest.mark.asyncio
    async def test_check_replies_truncates_long_bodies(
        self, db_session, user, make_event, make_suggestion
    ):
        event = await make_event("Отчёт", utc(2024, 6, 3, 10), utc(2024, 6, 3, 11))
        await make_suggestion(event, MoveStatus.EMAIL_SENT, thread_id="t-1")
        gmail = MagicMock()
        gmail.return_value.get_thread.return_value = {
            "messages": [
                {"payload": _body("Можно перенести?")},
                {"payload": _body("Да, подходит. " + "Цитата. " * 2000)},
            ]
        }
        llm = make_llm(payload={"accepted": True})

        result = await _service(db_session, llm, gmail=gmail).check_replies()

        assert result.processed == 1
        assert result.errors == 0


class TestGmailWatch:
    """Tests for subscribing the inbox to push notifications."""

    @pytest.mark.asyncio
    async def test_watch_inbox(self, db_session, user, llm, monkeypatch):
        monkeypatch.setenv("GOOGLE_CLOUD_PROJECT_ID", "cycle-project")
        get_settings.cache_clear()
        gmail = MagicMock()
        gmail.return_value.watch.return_value = {
            "historyId": 4242,
            "expiration": "1718323200000",
        }

        result = await _service(db_session, llm, gmail=gmail).setup_gmail_watch(user.id)

        gmail.return_value.watch.assert_called_once_with(
            "projects/cycle-project/topics/gmail-notifications"
        )
        assert result.history_id == "4242"
        assert result.expiration == utc(2024, 6, 14)

    @pytest.mark.asyncio
    async def test_requires_project(self, db_session, user, llm, monkeypatch):
        monkeypatch.delenv("GOOGLE_CLOUD_PROJECT_ID", raising=False)
        get_settings.cache_clear()

        with pytest.raises(CalendarAccessError) as exc:
            await _service(db_session, llm).setup_gmail_watch(user.id)
        assert exc.value.status_code == 503

    @pytest.mark.asyncio
    async def test_google_not_connected(self, db_session, user, llm, monkeypatch):
        monkeypatch.setenv("GOOGLE_CLOUD_PROJECT_ID", "cycle-project")
        get_settings.cache_clear()
        tokens = MagicMock()
        tokens.get_access_token = AsyncMock(side_effect=TokenError("Google not connected"))

        with pytest.raises(CalendarAccessError) as exc:
            await _service(db_session, llm, tokens=tokens).setup_gmail_watch(user.id)
        assert exc.value.status_code == 401
