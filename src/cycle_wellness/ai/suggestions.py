"""Per-event advice based on the cycle day of the event.

Every imported or created event gets a short personal note: how the cycle
phase on that day affects energy and focus and what the event is good for.
Recent chat messages that mention feeling unwell are added to the prompt.

Without a configured model (or when it fails) a fixed template for the
phase is stored instead, so every event still has advice.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, time, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.ai.client import LLMClient, LLMError
from cycle_wellness.cycle.phase import DEFAULT_CYCLE_LENGTH, CycleInfo
from cycle_wellness.database.models import ChatMessage, Event, EventAISuggestion
from cycle_wellness.database.queries import get_current_cycle, get_profile

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "Ты заботливый ИИ-помощник для женского здоровья. Отвечай на русском языке."

HEALTH_KEYWORDS = (
    "болею",
    "болит",
    "устала",
    "плохо",
    "больно",
    "недомогание",
    "головная боль",
    "спина",
    "живот",
    "тошнит",
    "слабость",
)

FALLBACK_ADVICE = {
    "Менструация": "Энергии сейчас меньше обычного. Оставь на это время только "
    "необходимое и запланируй паузы для отдыха.",
    "Фолликулярная фаза": "Энергия растёт, концентрация хорошая. Это удачное время "
    "для новых задач, переговоров и планирования.",
    "Овуляция": "Пик энергии и коммуникабельности. Отличное время для встреч, "
    "презентаций и командной работы.",
    "Лютеиновая фаза": "Энергия постепенно снижается. Лучше подходят спокойные "
    "задачи, завершение начатого и работа без спешки.",
}

DEFAULT_NAME = "дорогая"


def describe_phase(day: int) -> tuple[str, str]:
    """(phase name, traits) for a cycle day."""
    if day <= 5:
        return "Менструация", (
            "снижение энергии, потребность в отдыхе, возможные болевые ощущения, "
            "эмоциональная чувствительность"
        )
    if day <= 13:
        return "Фолликулярная фаза", (
            "повышение энергии, улучшение настроения, активность, хорошая концентрация"
        )
    if day <= 16:
        return "Овуляция", (
            "пик энергии, социальная активность, повышенная привлекательность, "
            "возможны тянущие боли"
        )
    return "Лютеиновая фаза", (
        "постепенное снижение энергии, возможная раздражительность, "
        "потребность в комфорте, изменения аппетита"
    )


def health_context(messages: list[str]) -> str:
    relevant = [m for m in messages if any(k in m.lower() for k in HEALTH_KEYWORDS)]
    if not relevant:
        return ""
    lines = "\n".join(f"- {m}" for m in relevant)
    return f"\nКонтекст самочувствия из недавних сообщений:\n{lines}\n"


@dataclass
class SuggestionResult:
    suggestion: str
    justification: str
    cycle_day: int | None
    cycle_length: int
    phase: str | None
    is_fallback: bool = False


def build_prompt(
    event: Event,
    cycle_day: int,
    name: str,
    context: str,
    detailed: bool = False,
) -> str:
    phase, traits = describe_phase(cycle_day)
    event_time = event.start_time.strftime("%H:%M")
    header = (
        f"Контекст:\n"
        f"- {cycle_day}-й день цикла ({phase})\n"
        f"- Особенности: {traits}\n"
        f"- Событие: «{event.title}»\n"
        f"- Время: {event_time}{context}\n"
    )
    important = "ВАЖНО: Учти информацию о самочувствии!" if context else ""

    if detailed:
        return (
            "Ты — помощник по женскому здоровью. Оцени событие с учетом цикла и "
            f"самочувствия.\n\n{header}\n"
            f"Напиши развернутую оценку для {name} (4-6 предложений): влияние фазы, "
            "энергия, концентрация, эмоции, практические советы, альтернативы.\n\n"
            f"{important}"
        )
    return (
        "Ты — заботливый помощник по женскому здоровью. Дай краткую деловую оценку "
        f"события с учетом менструального цикла и самочувствия.\n\n{header}\n"
        f"Напиши короткую персональную оценку для {name} (2-3 предложения): "
        f'"{name}, у тебя {phase.lower()}. ..."\n\n'
        f"{important}\n"
        "Фокусируйся на работоспособности, энергии, концентрации и подходящести "
        "для деловых задач."
    )


class SuggestionService:
    """Generates and stores advice for events."""

    def __init__(self, db: AsyncSession, llm: LLMClient | None = None):
        self.db = db
        self.llm = llm

    async def _recent_user_messages(self, user_id: uuid.UUID, limit: int = 20) -> list[str]:
        result = await self.db.execute(
            select(ChatMessage.content)
            .where(ChatMessage.user_id == user_id, ChatMessage.role == "user")
            .order_by(ChatMessage.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def _user_name(self, user_id: uuid.UUID) -> str:
        profile = await get_profile(self.db, user_id)
        return profile.name if profile and profile.name else DEFAULT_NAME

    async def generate(
        self,
        user_id: uuid.UUID,
        event: Event,
        detailed: bool = False,
    ) -> SuggestionResult:
        """Advice for one event; falls back to a phase template."""
        cycle = await get_current_cycle(self.db, user_id)
        info = CycleInfo.for_date(cycle, event.start_time.date())
        length = cycle.cycle_length if cycle else DEFAULT_CYCLE_LENGTH

        if info.cycle_day is None:
            return SuggestionResult(
                suggestion="Добавь дату начала цикла, чтобы получать персональные советы.",
                justification="Нет данных о цикле",
                cycle_day=None,
                cycle_length=length,
                phase=None,
                is_fallback=True,
            )

        phase, _ = describe_phase(info.cycle_day)
        justification = f"ИИ-совет для {phase.lower()} ({info.cycle_day} день цикла)"

        if self.llm is not None and self.llm.is_configured:
            name = await self._user_name(user_id)
            context = health_context(await self._recent_user_messages(user_id))
            try:
                text = await self.llm.complete(
                    [
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {
                            "role": "user",
                            "content": build_prompt(
                                event, info.cycle_day, name, context, detailed
                            ),
                        },
                    ],
                    operation="generate-ai-suggestion",
                    temperature=0.8 if detailed else 0.7,
                    max_tokens=300 if detailed else 800,
                )
            except LLMError as e:
                logger.warning(f"AI suggestion for event {event.id} failed: {e}")
            else:
                if text:
                    return SuggestionResult(
                        suggestion=text,
                        justification=justification,
                        cycle_day=info.cycle_day,
                        cycle_length=length,
                        phase=phase,
                    )

        return SuggestionResult(
            suggestion=FALLBACK_ADVICE[phase],
            justification=f"Совет для {phase.lower()} ({info.cycle_day} день цикла)",
            cycle_day=info.cycle_day,
            cycle_length=length,
            phase=phase,
            is_fallback=True,
        )

    async def save(self, event: Event, result: SuggestionResult) -> EventAISuggestion:
        """Insert or replace the event's stored suggestion (not committed)."""
        existing = await self.db.execute(
            select(EventAISuggestion).where(EventAISuggestion.event_id == event.id)
        )
        row = existing.scalar_one_or_none()
        if row is None:
            row = EventAISuggestion(event_id=event.id, user_id=event.user_id)
            self.db.add(row)

        row.suggestion = result.suggestion
        row.justification = result.justification
        row.decision = "generated"
        return row

    async def generate_and_save(self, user_id: uuid.UUID, event: Event) -> EventAISuggestion:
        result = await self.generate(user_id, event)
        return await self.save(event, result)

    async def recalculate(self, user_id: uuid.UUID, now: datetime | None = None) -> int:
        """Regenerate advice for every event from today on.

        Returns:
            Number of events updated
        """
        now = now or datetime.now(timezone.utc)
        day_start = datetime.combine(now.date(), time.min, tzinfo=timezone.utc)

        result = await self.db.execute(
            select(Event)
            .where(Event.user_id == user_id, Event.start_time >= day_start)
            .order_by(Event.start_time)
        )
        events = list(result.scalars().all())

        updated = 0
        for event in events:
            suggestion = await self.generate(user_id, event, detailed=True)
            await self.save(event, suggestion)
            updated += 1

        await self.db.commit()
        logger.info(f"Recalculated {updated} suggestions for {user_id}")
        return updated
