"""Wellness chat.

The assistant sees the last 15 messages of the conversation, today's symptom
log, the weekly wellness average and the current cycle phase. When the user
introduces themselves ("меня зовут Анна") the name is stored on the profile
and used in later answers and event advice.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.ai.client import LLMClient
from cycle_wellness.ai.suggestions import describe_phase
from cycle_wellness.cycle.phase import CycleInfo
from cycle_wellness.database.models import ChatMessage, SymptomLog
from cycle_wellness.database.queries import (
    get_current_cycle,
    get_or_create_profile,
    get_symptom_log,
)

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 15

NAME_RE = re.compile(r"меня зовут\s+(\w+)|\bя\s+(\w+)(?:\s|$)|имя\s+(\w+)", re.IGNORECASE)

MOOD_LABELS = {
    "happy": "радость",
    "calm": "спокойствие",
    "anxious": "тревога",
    "irritable": "раздражение",
    "sad": "грусть",
    "motivated": "вдохновение",
}
PHYSICAL_LABELS = {
    "pain": "боль",
    "fatigue": "усталость",
    "energy": "бодрость",
    "cramps": "спазмы",
    "headache": "головная боль",
    "bloating": "вздутие",
}

BASE_PROMPT = """Ты — заботливый виртуальный помощник по женскому здоровью с глубоким \
пониманием менструального цикла.

Правила общения:
• Отвечай на русском языке простым и понятным стилем, сохраняя точность.
• Тон дружелюбный, участливый и поддерживающий.
• Избегай узкоспециализированных медицинских терминов.
• Не задавай уточняющих вопросов: сразу давай полезный ответ.
"""

PHASE_REFERENCE = """
Справка: фазы менструального цикла и их типичное влияние на самочувствие:
• Дни 1–5 – Менструация: сниженная энергия, возможны усталость и боль.
• Дни 6–13 – Фолликулярная фаза: подъём энергии, настроения и концентрации.
• Дни 14–16 – Овуляция: пик энергии, высокая социальная активность.
• Дни 17+ – Лютеиновая фаза: снижение энергии, возможны перепады настроения.
"""


def detect_name(message: str) -> str | None:
    match = NAME_RE.search(message)
    if not match:
        return None
    name = next(group for group in match.groups() if group)
    return name.capitalize()


def wellness_label(index: int) -> str:
    if index <= 30:
        return "(низкий - нужен отдых)"
    if index <= 60:
        return "(средний)"
    return "(отличный)"


def symptom_context(today_log: SymptomLog | None, week_logs: list[SymptomLog]) -> str:
    lines = []
    if today_log is not None:
        index = today_log.wellness_index or 50
        lines += [
            "Сегодняшнее самочувствие:",
            f"- Индекс самочувствия: {index}/100 {wellness_label(index)}",
            f"- Энергия: {today_log.energy}/5",
            f"- Качество сна: {today_log.sleep_quality}/5",
            f"- Уровень стресса: {today_log.stress_level}/5",
        ]
        moods = [MOOD_LABELS.get(m, m) for m in today_log.mood or []]
        if moods:
            lines.append(f"- Настроение: {', '.join(moods)}")
        symptoms = [PHYSICAL_LABELS.get(s, s) for s in today_log.physical_symptoms or []]
        if symptoms:
            lines.append(f"- Физические ощущения: {', '.join(symptoms)}")
        lines.append(
            "ВАЖНО: Учитывай текущее самочувствие! При низком индексе или высоком "
            "стрессе рекомендуй больше отдыха."
        )

    if len(week_logs) > 1:
        average = round(sum(log.wellness_index or 50 for log in week_logs) / len(week_logs))
        lines.append(f"Средний индекс за неделю: {average}/100")

    return "\n".join(lines)


def cycle_context(info: CycleInfo) -> str:
    if info.cycle_day is None:
        return ""
    phase, traits = describe_phase(info.cycle_day)
    return (
        "Контекст менструального цикла:\n"
        f"- Сегодня {info.cycle_day}-й день цикла (из {info.cycle_length} дней)\n"
        f"- Текущая фаза: {phase}\n"
        f"- Особенности фазы: {traits}"
    )


@dataclass
class ChatReply:
    response: str
    detected_name: str | None = None


class ChatService:
    """One conversation turn: store, prompt, answer, store."""

    def __init__(self, db: AsyncSession, llm: LLMClient):
        self.db = db
        self.llm = llm

    async def history(self, user_id: uuid.UUID, limit: int = HISTORY_LIMIT) -> list[ChatMessage]:
        """Latest messages in chronological order."""
        result = await self.db.execute(
            select(ChatMessage)
            .where(ChatMessage.user_id == user_id)
            .order_by(ChatMessage.created_at.desc())
            .limit(limit)
        )
        return list(reversed(result.scalars().all()))

    async def _week_logs(self, user_id: uuid.UUID, today: date) -> list[SymptomLog]:
        result = await self.db.execute(
            select(SymptomLog)
            .where(
                SymptomLog.user_id == user_id,
                SymptomLog.log_date >= today - timedelta(days=7),
            )
            .order_by(SymptomLog.log_date.desc())
            .limit(7)
        )
        return list(result.scalars().all())

    async def build_system_prompt(
        self,
        user_id: uuid.UUID,
        profile_name: str | None,
        has_history: bool,
        today: date,
    ) -> str:
        cycle = await get_current_cycle(self.db, user_id)
        parts = [
            BASE_PROMPT,
            cycle_context(CycleInfo.for_date(cycle, today)),
            symptom_context(
                await get_symptom_log(self.db, user_id, today),
                await self._week_logs(user_id, today),
            ),
            PHASE_REFERENCE,
        ]
        if profile_name:
            parts.append(
                f"Имя пользователя: {profile_name}. Обращайся по имени, когда даешь "
                "важные советы."
            )
        elif not has_history:
            parts.append(
                "Это первое общение. Познакомься и мягко спроси как зовут, чтобы "
                "обращаться по имени."
            )
        return "\n".join(part for part in parts if part)

    async def send(
        self,
        user_id: uuid.UUID,
        message: str,
        today: date | None = None,
    ) -> ChatReply:
        """Answer a user message.

        Raises:
            LLMError: If the model is unavailable (the user message is kept)
        """
        today = today or datetime.now(timezone.utc).date()
        profile = await get_or_create_profile(self.db, user_id)
        history = await self.history(user_id)

        self.db.add(ChatMessage(user_id=user_id, role="user", content=message))
        await self.db.commit()

        name = detect_name(message)
        system_prompt = await self.build_system_prompt(
            user_id, profile.name, bool(history), today
        )
        messages = [{"role": "system", "content": system_prompt}]
        messages += [{"role": m.role, "content": m.content} for m in history]
        messages.append({"role": "user", "content": message})

        reply = await self.llm.complete(
            messages, operation="ai-chat", temperature=0.7, max_tokens=500
        )

        self.db.add(ChatMessage(user_id=user_id, role="assistant", content=reply))
        if name and not profile.name:
            profile.name = name
            logger.info(f"Stored name from chat for {user_id}")
        await self.db.commit()

        return ChatReply(response=reply, detected_name=name)
