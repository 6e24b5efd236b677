"""Tests for per-event advice."""

import pytest
from sqlalchemy import select

from conftest import make_llm, utc
from cycle_wellness.ai.client import LLMError
from cycle_wellness.ai.suggestions import (
    DEFAULT_NAME,
    FALLBACK_ADVICE,
    SuggestionService,
    build_prompt,
    describe_phase,
    health_context,
)
from cycle_wellness.database.models import ChatMessage, Event, EventAISuggestion, UserProfile


class TestPromptParts:
    """Tests for prompt building blocks."""

    @pytest.mark.parametrize(
        "day,phase",
        [(1, "Менструация"), (6, "Фолликулярная фаза"), (16, "Овуляция"), (17, "Лютеиновая фаза")],
    )
    def test_describe_phase(self, day: int, phase: str):
        assert describe_phase(day)[0] == phase

    def test_health_context_keeps_relevant_messages(self):
        context = health_context(["Сегодня болит голова", "Какая погода?"])
        assert "болит голова" in context
        assert "погода" not in context

    def test_health_context_empty(self):
        assert health_context(["Привет"]) == ""

    def test_prompt_mentions_event_and_name(self):
        event = Event(title="Презентация", start_time=utc(2024, 6, 3, 10), end_time=utc(2024, 6, 3, 11))
        prompt = build_prompt(event, 3, "Анна", "")
        assert "«Презентация»" in prompt
        assert "10:00" in prompt
        assert "Анна, у тебя менструация" in prompt
        assert "ВАЖНО" not in prompt


class TestSuggestionService:
    """Tests for generating and storing advice."""

    @pytest.mark.asyncio
    async def test_without_cycle(self, db_session, user, make_event, llm):
        event = await make_event("Встреча", utc(2024, 6, 3, 10), utc(2024, 6, 3, 11))
        result = await SuggestionService(db_session, llm).generate(user.id, event)
        assert result.cycle_day is None
        assert result.is_fallback is True

    @pytest.mark.asyncio
    async def test_fallback_without_model(self, db_session, user, cycle, make_event, llm):
        event = await make_event("Встреча", utc(2024, 6, 3, 10), utc(2024, 6, 3, 11))

        result = await SuggestionService(db_session, llm).generate(user.id, event)

        assert result.cycle_day == 3
        assert result.phase == "Менструация"
        assert result.suggestion == FALLBACK_ADVICE["Менструация"]
        assert result.is_fallback is True

    @pytest.mark.asyncio
    async def test_model_advice_with_name_and_health_context(
        self, db_session, user, cycle, make_event
    ):
        db_session.add(UserProfile(user_id=user.id, name="Анна"))
        db_session.add(ChatMessage(user_id=user.id, role="user", content="Очень болит живот"))
        await db_session.commit()
        event = await make_event("Презентация", utc(2024, 6, 14, 10), utc(2024, 6, 14, 11))
        llm = make_llm(text="Анна, у тебя овуляция. Отличный день для выступления.")

        result = await SuggestionService(db_session, llm).generate(user.id, event)

        assert result.is_fallback is False
        assert result.phase == "Овуляция"
        assert result.suggestion.startswith("Анна")
        prompt = llm.complete.await_args.args[0][1]["content"]
        assert "Анна" in prompt
        assert "болит живот" in prompt
        assert llm.complete.await_args.kwargs["operation"] == "generate-ai-suggestion"

    @pytest.mark.asyncio
    async def test_default_name(self, db_session, user, cycle, make_event):
        event = await make_event("Звонок", utc(2024, 6, 14, 10), utc(2024, 6, 14, 11))
        llm = make_llm(text="Совет")

        await SuggestionService(db_session, llm).generate(user.id, event)

        assert DEFAULT_NAME in llm.complete.await_args.args[0][1]["content"]

    @pytest.mark.asyncio
    async def test_model_error_falls_back(self, db_session, user, cycle, make_event):
        event = await make_event("Звонок", utc(2024, 6, 20, 10), utc(2024, 6, 20, 11))
        llm = make_llm(text=LLMError("timeout"))

        result = await SuggestionService(db_session, llm).generate(user.id, event)

        assert result.suggestion == FALLBACK_ADVICE["Лютеиновая фаза"]

    @pytest.mark.asyncio
    async def test_save_replaces_existing(self, db_session, user, cycle, make_event):
        event = await make_event("Звонок", utc(2024, 6, 20, 10), utc(2024, 6, 20, 11))
        service = SuggestionService(db_session, make_llm(text="Первый"))
        await service.generate_and_save(user.id, event)
        await db_session.commit()

        service.llm = make_llm(text="Второй")
        await service.generate_and_save(user.id, event)
        await db_session.commit()

        rows = (await db_session.execute(select(EventAISuggestion))).scalars().all()
        assert [row.suggestion for row in rows] == ["Второй"]

    @pytest.mark.asyncio
    async def test_recalculate_upcoming_events(self, db_session, user, cycle, make_event):
        await make_event("Прошлое", utc(2024, 6, 1, 10), utc(2024, 6, 1, 11))
        await make_event("Сегодня", utc(2024, 6, 10, 15), utc(2024, 6, 10, 16))
        await make_event("Завтра", utc(2024, 6, 11, 9), utc(2024, 6, 11, 10))
        llm = make_llm(text="Подробный совет")

        updated = await SuggestionService(db_session, llm).recalculate(
            user.id, now=utc(2024, 6, 10, 12)
        )

        assert updated == 2
        assert llm.complete.await_args.kwargs["temperature"] == 0.8
