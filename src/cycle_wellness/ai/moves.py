"""Rescheduling events by email.

A move suggestion (usually from the week planner) goes through these states:

| Status       | Meaning                                                |
|--------------|--------------------------------------------------------|
| `pending`    | proposed, waiting for the user                         |
| `email_sent` | participants were asked by email, waiting for replies  |
| `completed`  | the event was moved                                    |
| `rejected`   | participants declined, the event stays                 |
| `failed`     | the email could not be sent                            |

Events without other participants are moved straight away. Otherwise a
short email is drafted by the model (or from a template) and sent through
Gmail. Replies arrive either via the Gmail Pub/Sub webhook or the periodic
`check_replies` job and are classified by the model as accepted, declined
or proposing another time.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from googleapiclient.errors import HttpError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.ai.client import LLMClient, LLMError
from cycle_wellness.ai.planner import user_timezone
from cycle_wellness.ai.suggestions import SuggestionService
from cycle_wellness.auth.models import TokenError
from cycle_wellness.auth.tokens import TokenService
from cycle_wellness.calendar.events import EventService
from cycle_wellness.calendar.google_calendar import GoogleCalendarClient
from cycle_wellness.calendar.outlook import OutlookCalendarClient
from cycle_wellness.calendar.sync import CalendarAccessError
from cycle_wellness.config import get_settings
from cycle_wellness.database.models import (
    ChatMessage,
    Event,
    EventMoveSuggestion,
    EventSource,
    MoveStatus,
    TokenProvider,
    User,
    as_utc,
)
from cycle_wellness.database.queries import get_profile, get_user_event
from cycle_wellness.mail.gmail import GmailClient, topic_for
from cycle_wellness.mail.parsing import extract_plain_text
from cycle_wellness.providers.base import ProviderError

logger = logging.getLogger(__name__)

MAX_THREAD_ID_LENGTH = 100
MAX_REPLY_LENGTH = 10_000
REPLY_PROMPT_LENGTH = 5_000
DEFAULT_SENDER_NAME = "Пользователь"

EMAIL_SYSTEM_PROMPT = "Ты помощник для написания деловых писем. Пиши кратко и естественно."
REPLY_SYSTEM_PROMPT = (
    "Ты анализируешь ответы на предложение переноса встречи. Определи: человек "
    "согласен, не согласен, или предлагает другое время. Отвечай только JSON."
)


class MoveNotFoundError(Exception):
    """The suggestion (or its event) does not exist for this user."""


class ReplyValidationError(ValueError):
    """Reply payload is malformed."""


@dataclass
class EmailPreview:
    subject: str
    body: str
    recipients: list[str]
    event_title: str


@dataclass
class MoveOutcome:
    status: MoveStatus
    message: str
    participants: list[str] = field(default_factory=list)
    thread_id: str | None = None

    @property
    def success(self) -> bool:
        return self.status != MoveStatus.FAILED


@dataclass
class ReplyDecision:
    accepted: bool
    alternative_time: datetime | None = None


@dataclass
class ReplyOutcome:
    suggestion_id: uuid.UUID
    status: MoveStatus
    message: str
    new_start: datetime | None = None


@dataclass
class ReplyCheckResult:
    processed: int = 0
    errors: int = 0


@dataclass
class GmailWatchResult:
    history_id: str | None
    expiration: datetime | None


def email_subject(title: str) -> str:
    return f"Предложение перенести: {title}"


def format_moment(value: datetime, tz: Any = timezone.utc) -> str:
    return as_utc(value).astimezone(tz).strftime("%d.%m.%Y %H:%M")


def fallback_email_body(
    title: str,
    old_start: str,
    new_start: str,
    reason: str | None,
    sender: str,
) -> str:
    return (
        "Здравствуйте!\n\n"
        f'Предлагаю перенести встречу "{title}" с {old_start} на {new_start}.\n\n'
        f"Причина: {reason or 'изменились планы'}\n\n"
        "Подходит ли вам новое время?\n\n"
        f"С уважением,\n{sender}"
    )


def build_email_prompt(
    title: str,
    old_start: str,
    new_start: str,
    reason: str | None,
    sender: str,
) -> str:
    return (
        f"Ты помощник, который пишет письма от имени {sender} для переноса встреч.\n\n"
        "Контекст:\n"
        f'- Встреча: "{title}"\n'
        f"- Текущее время: {old_start}\n"
        f"- Предлагаемое время: {new_start}\n"
        f"- Причина переноса: {reason or 'не указана'}\n\n"
        "ЗАДАЧА: Напиши вежливое, короткое письмо участникам с предложением переноса.\n"
        "- Тон: дружелюбный, но профессиональный\n"
        f"- От первого лица (от {sender})\n"
        "- 3-4 предложения максимум\n"
        "- Спроси, подходит ли новое время\n"
        "- Не нужно подписи\n\n"
        "Напиши только текст письма, без темы."
    )


def validate_reply(thread_id: Any, email_body: Any) -> None:
    """Raises ReplyValidationError for missing or oversized values."""
    if not thread_id or not isinstance(thread_id, str) or len(thread_id) > MAX_THREAD_ID_LENGTH:
        raise ReplyValidationError(
            f"Invalid thread id: must be a string with max {MAX_THREAD_ID_LENGTH} characters"
        )
    if not email_body or not isinstance(email_body, str) or len(email_body) > MAX_REPLY_LENGTH:
        raise ReplyValidationError(
            f"Invalid email body: must be a string with max {MAX_REPLY_LENGTH} characters"
        )


def sanitize_reply(email_body: str) -> str:
    return email_body[:REPLY_PROMPT_LENGTH].replace("<", "").replace(">", "")


def parse_reply_decision(payload: Any, tz: Any = timezone.utc) -> ReplyDecision:
    """Turn `{accepted, alternative_suggested, alternative_time}` into a decision.

    An alternative with an unreadable time counts as a refusal.
    """
    if not isinstance(payload, dict):
        raise LLMError("Reply analysis is not a JSON object")

    if payload.get("accepted"):
        return ReplyDecision(accepted=True)

    alternative = payload.get("alternative_time")
    if payload.get("alternative_suggested") and isinstance(alternative, str):
        try:
            local = datetime.strptime(alternative.strip()[:16], "%Y-%m-%d %H:%M")
        except ValueError:
            logger.info(f"Unreadable alternative time in reply: {alternative!r}")
        else:
            return ReplyDecision(
                accepted=False,
                alternative_time=local.replace(tzinfo=tz).astimezone(timezone.utc),
            )

    return ReplyDecision(accepted=False)


class EventMoveService:
    """Previews, sends and settles move suggestions for a user."""

    def __init__(
        self,
        db: AsyncSession,
        llm: LLMClient,
        tokens: TokenService | None = None,
        events: EventService | None = None,
        google_factory: Callable[[str], GoogleCalendarClient] = GoogleCalendarClient,
        outlook_factory: Callable[[str], OutlookCalendarClient] = OutlookCalendarClient,
        gmail_factory: Callable[[str], GmailClient] = GmailClient,
    ):
        self.db = db
        self.llm = llm
        self.tokens = tokens or TokenService(db)
        self.events = events or EventService(
            db,
            tokens=self.tokens,
            suggestions=SuggestionService(db, llm),
            google_factory=google_factory,
            outlook_factory=outlook_factory,
        )
        self.google_factory = google_factory
        self.outlook_factory = outlook_factory
        self.gmail_factory = gmail_factory

    async def _load(
        self, user_id: uuid.UUID, suggestion_id: uuid.UUID
    ) -> tuple[EventMoveSuggestion, Event]:
        result = await self.db.execute(
            select(EventMoveSuggestion).where(
                EventMoveSuggestion.id == suggestion_id,
                EventMoveSuggestion.user_id == user_id,
            )
        )
        suggestion = result.scalar_one_or_none()
        if suggestion is None:
            raise MoveNotFoundError("Предложение не найдено")

        event = None
        if suggestion.event_id:
            event = await get_user_event(self.db, user_id, suggestion.event_id)
        if event is None:
            raise MoveNotFoundError("Событие для предложения не найдено")
        return suggestion, event

    async def participants(self, user_id: uuid.UUID, event: Event) -> list[str]:
        """Attendee emails of the provider copy, without the user's own address."""
        if not event.external_event_id:
            return []

        emails: list[str] = []
        try:
            if event.source == EventSource.OUTLOOK.value:
                token = await self.tokens.get_access_token(user_id, TokenProvider.MICROSOFT)
                async with self.outlook_factory(token) as outlook:
                    emails = await outlook.get_attendees(event.external_event_id)
            else:
                token = await self.tokens.get_access_token(user_id, TokenProvider.GOOGLE)
                emails = self.google_factory(token).get_attendees(event.external_event_id)
        except (TokenError, HttpError, ProviderError) as e:
            logger.warning(f"Could not load participants for event {event.id}: {e}")
            return []

        user = await self.db.get(User, user_id)
        own = user.email.lower() if user and user.email else None
        return [email for email in emails if email.lower() != own]

    async def _draft(
        self,
        user_id: uuid.UUID,
        suggestion: EventMoveSuggestion,
        event: Event,
        recipients: list[str],
    ) -> EmailPreview:
        profile = await get_profile(self.db, user_id)
        sender = (profile.name if profile else None) or DEFAULT_SENDER_NAME
        tz = user_timezone(profile.timezone if profile else None)
        old_start = format_moment(event.start_time, tz)
        new_start = format_moment(suggestion.suggested_start, tz)

        body = ""
        if self.llm.is_configured:
            try:
                body = await self.llm.complete(
                    [
                        {"role": "system", "content": EMAIL_SYSTEM_PROMPT},
                        {
                            "role": "user",
                            "content": build_email_prompt(
                                event.title, old_start, new_start, suggestion.reason, sender
                            ),
                        },
                    ],
                    operation="ai-generate-email-preview",
                    temperature=0.7,
                    max_tokens=200,
                )
            except LLMError as e:
                logger.warning(f"Email drafting failed, using template: {e}")

        if not body:
            body = fallback_email_body(event.title, old_start, new_start, suggestion.reason, sender)

        return EmailPreview(
            subject=email_subject(event.title),
            body=body,
            recipients=recipients,
            event_title=event.title,
        )

    async def preview_email(self, user_id: uuid.UUID, suggestion_id: uuid.UUID) -> EmailPreview:
        """Draft the rescheduling email without sending it."""
        suggestion, event = await self._load(user_id, suggestion_id)
        recipients = await self.participants(user_id, event)
        return await self._draft(user_id, suggestion, event, recipients)

    def _chat(self, user_id: uuid.UUID, content: str) -> None:
        self.db.add(ChatMessage(user_id=user_id, role="assistant", content=content))

    async def _move(
        self, user_id: uuid.UUID, event: Event, start: datetime, end: datetime
    ) -> None:
        _, status = await self.events.move_event(user_id, event.id, start, end)
        if status.error:
            logger.warning(f"Event {event.id} moved locally only: {status.error}")

    async def execute_move(self, user_id: uuid.UUID, suggestion_id: uuid.UUID) -> MoveOutcome:
        """Carry out a suggestion: move directly, or ask participants by email."""
        suggestion, event = await self._load(user_id, suggestion_id)
        recipients = await self.participants(user_id, event)

        if not recipients:
            await self._move(
                user_id, event, as_utc(suggestion.suggested_start), as_utc(suggestion.suggested_end)
            )
            suggestion.status = MoveStatus.COMPLETED.value
            suggestion.participants = []
            await self.db.commit()
            logger.info(f"Moved event {event.id} without participants")
            return MoveOutcome(MoveStatus.COMPLETED, "Событие перенесено (нет участников)")

        preview = await self._draft(user_id, suggestion, event, recipients)
        suggestion.participants = recipients
        suggestion.email_subject = preview.subject
        suggestion.email_body = preview.body

        thread_id = None
        try:
            token = await self.tokens.get_access_token(user_id, TokenProvider.GOOGLE)
            sent = self.gmail_factory(token).send_message(recipients, preview.subject, preview.body)
            thread_id = sent.get("threadId")
        except (TokenError, HttpError) as e:
            logger.warning(f"Sending move email for {suggestion.id} failed: {e}")

        if thread_id:
            suggestion.status = MoveStatus.EMAIL_SENT.value
            suggestion.thread_id = thread_id
            self._chat(
                user_id,
                f"✅ Письмо отправлено участникам ({len(recipients)} чел.). Жду ответов...",
            )
            outcome = MoveOutcome(MoveStatus.EMAIL_SENT, "Письмо отправлено", recipients, thread_id)
        else:
            suggestion.status = MoveStatus.FAILED.value
            self._chat(user_id, "❌ Не удалось отправить письмо. Попробуй позже.")
            outcome = MoveOutcome(MoveStatus.FAILED, "Ошибка отправки", recipients)

        await self.db.commit()
        logger.info(f"Move suggestion {suggestion.id} is now {suggestion.status}")
        return outcome

    async def _sent_suggestion(
        self, user_id: uuid.UUID, thread_id: str
    ) -> EventMoveSuggestion | None:
        result = await self.db.execute(
            select(EventMoveSuggestion).where(
                EventMoveSuggestion.user_id == user_id,
                EventMoveSuggestion.thread_id == thread_id,
                EventMoveSuggestion.status == MoveStatus.EMAIL_SENT.value,
            )
        )
        return result.scalars().first()

    async def handle_reply(
        self,
        user_id: uuid.UUID,
        thread_id: str,
        email_body: str,
    ) -> ReplyOutcome:
        """Settle a suggestion from a participant's reply.

        Raises:
            ReplyValidationError: Malformed thread id or body
            MoveNotFoundError: No emailed suggestion for this thread
            LLMError: The reply could not be analysed
        """
        validate_reply(thread_id, email_body)

        suggestion = await self._sent_suggestion(user_id, thread_id)
        if suggestion is None:
            raise MoveNotFoundError("Предложение не найдено или доступ запрещен")
        _, event = await self._load(user_id, suggestion.id)

        profile = await get_profile(self.db, user_id)
        tz = user_timezone(profile.timezone if profile else None)

        payload = await self.llm.complete_json(
            [
                {"role": "system", "content": REPLY_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": (
                        f'Письмо: "{sanitize_reply(email_body)}"\n\n'
                        "Ответь в JSON:\n"
                        '{"accepted": true/false, "alternative_suggested": true/false, '
                        '"alternative_time": "если предложено, то в формате YYYY-MM-DD HH:MM"}'
                    ),
                },
            ],
            operation="ai-handle-email-reply",
            temperature=0.3,
            max_tokens=150,
        )
        decision = parse_reply_decision(payload, tz)
        suggestion.reply_text = email_body[:REPLY_PROMPT_LENGTH]

        if decision.accepted:
            new_start = as_utc(suggestion.suggested_start)
            new_end = as_utc(suggestion.suggested_end)
            message = (
                f'✅ Участники согласились! Встреча "{event.title}" перенесена на '
                f"{format_moment(new_start, tz)}"
            )
        elif decision.alternative_time is not None:
            new_start = decision.alternative_time
            new_end = new_start + (as_utc(event.end_time) - as_utc(event.start_time))
            message = (
                f"🔄 Участники предложили другое время: {format_moment(new_start, tz)}. "
                "Переношу встречу."
            )
        else:
            suggestion.status = MoveStatus.REJECTED.value
            self._chat(
                user_id,
                f'❌ Участники не согласились перенести встречу "{event.title}". Оставляю как есть.',
            )
            await self.db.commit()
            logger.info(f"Move suggestion {suggestion.id} rejected by participants")
            return ReplyOutcome(suggestion.id, MoveStatus.REJECTED, "Ответ обработан")

        await self._move(user_id, event, new_start, new_end)
        suggestion.status = MoveStatus.COMPLETED.value
        self._chat(user_id, message)
        await self.db.commit()
        logger.info(f"Move suggestion {suggestion.id} completed from email reply")
        return ReplyOutcome(suggestion.id, MoveStatus.COMPLETED, "Ответ обработан", new_start)

    async def check_replies(self, user_id: uuid.UUID | None = None) -> ReplyCheckResult:
        """Poll the threads of emailed suggestions for replies."""
        query = select(EventMoveSuggestion).where(
            EventMoveSuggestion.status == MoveStatus.EMAIL_SENT.value,
            EventMoveSuggestion.thread_id.is_not(None),
        )
        if user_id is not None:
            query = query.where(EventMoveSuggestion.user_id == user_id)
        result = await self.db.execute(query)

        by_user: dict[uuid.UUID, list[tuple[uuid.UUID, str]]] = defaultdict(list)
        for suggestion in result.scalars().all():
            by_user[suggestion.user_id].append((suggestion.id, suggestion.thread_id))

        summary = ReplyCheckResult()
        logger.info(f"Checking replies for {len(by_user)} users")

        for owner, threads in by_user.items():
            try:
                token = await self.tokens.get_access_token(owner, TokenProvider.GOOGLE)
            except TokenError as e:
                logger.warning(f"No Gmail access for user {owner}: {e}")
                continue
            gmail = self.gmail_factory(token)

            for suggestion_id, thread_id in threads:
                try:
                    messages = gmail.get_thread(thread_id).get("messages", [])
                    if len(messages) <= 1:
                        continue
                    body = extract_plain_text(messages[-1].get("payload") or {})
                    if not body:
                        continue
                    await self.handle_reply(owner, thread_id, body[:MAX_REPLY_LENGTH])
                    summary.processed += 1
                except Exception as e:
                    logger.exception(f"Error processing thread {thread_id}: {e}")
                    await self.db.rollback()
                    summary.errors += 1

        logger.info(f"Reply check completed: {summary.processed} processed, {summary.errors} errors")
        return summary

    async def process_gmail_notification(self, email_address: str, history_id: str) -> int:
        """Handle a Gmail push: read new messages and settle matching suggestions.

        Returns:
            Number of replies processed
        """
        result = await self.db.execute(select(User).where(User.email == email_address))
        user = result.scalar_one_or_none()
        if user is None:
            logger.info(f"Gmail notification for unknown address {email_address}")
            return 0

        try:
            token = await self.tokens.get_access_token(user.id, TokenProvider.GOOGLE)
        except TokenError as e:
            logger.warning(f"No Gmail access for user {user.id}: {e}")
            return 0

        processed = 0
        for thread_id, body in self.gmail_factory(token).new_message_bodies(history_id):
            if not thread_id or not body:
                continue
            if await self._sent_suggestion(user.id, thread_id) is None:
                continue
            try:
                await self.handle_reply(user.id, thread_id, body[:MAX_REPLY_LENGTH])
                processed += 1
            except (LLMError, MoveNotFoundError) as e:
                logger.warning(f"Could not process reply in thread {thread_id}: {e}")
        return processed

    async def setup_gmail_watch(self, user_id: uuid.UUID) -> GmailWatchResult:
        """Subscribe the user's inbox to Gmail push notifications.

        Raises:
            CalendarAccessError: Pub/Sub project not configured, Google not
                connected, or the watch request failed
        """
        project_id = get_settings().google_cloud_project_id
        if not project_id:
            raise CalendarAccessError("Google Cloud project not configured", status_code=503)

        try:
            token = await self.tokens.get_access_token(user_id, TokenProvider.GOOGLE)
            response = self.gmail_factory(token).watch(topic_for(project_id))
        except TokenError as e:
            raise CalendarAccessError(str(e), status_code=401) from e
        except HttpError as e:
            logger.error(f"Gmail watch error: {e}")
            raise CalendarAccessError(
                "Не удалось настроить Gmail webhooks", status_code=502
            ) from e

        expiration = None
        if response.get("expiration"):
            expiration = datetime.fromtimestamp(
                int(response["expiration"]) / 1000, tz=timezone.utc
            )
        history_id = response.get("historyId")

        logger.info(f"Gmail watch configured for {user_id}, history {history_id}")
        return GmailWatchResult(
            history_id=str(history_id) if history_id is not None else None,
            expiration=expiration,
        )
