"""Tests for weekly overload detection and move proposals."""

import json
from datetime import date, timezone

import pytest
from sqlalchemy import select

from conftest import make_llm, utc
from cycle_wellness.ai.client import LLMError
from cycle_wellness.ai.planner import (
    WeekPlanner,
    find_overloaded_days,
    has_tight_gap,
    match_event,
    parse_proposal,
    user_timezone,
)
from cycle_wellness.database.models import (
    ChatMessage,
    Event,
    EventMoveSuggestion,
    MoveStatus,
    UserCycle,
    UserProfile,
)


def _event(title: str, start, end) -> Event:
    return Event(title=title, start_time=start, end_time=end)


def _proposal(**overrides) -> str:
    payload = {
        "should_suggest": True,
        "event_to_move": "Презентация",
        "reason": "Сегодня слишком плотный день.",
        "suggested_new_date": "2024-06-05",
        "suggested_new_time": "15:00",
    }
    payload.update(overrides)
    return json.dumps(payload, ensure_ascii=False)


class TestOverloadDetection:
    """Tests for finding days that are too busy."""

    def test_tight_gap(self):
        events = [
            _event("A", utc(2024, 6, 10, 10), utc(2024, 6, 10, 11)),
            _event("B", utc(2024, 6, 10, 11, 30), utc(2024, 6, 10, 12)),
        ]
        assert has_tight_gap(events) is True

    def test_hour_gap_is_fine(self):
        events = [
            _event("A", utc(2024, 6, 10, 10), utc(2024, 6, 10, 11)),
            _event("B", utc(2024, 6, 10, 12), utc(2024, 6, 10, 13)),
        ]
        assert has_tight_gap(events) is False

    def test_single_event_day_never_flagged(self):
        cycle = UserCycle(start_date=date(2024, 6, 1), cycle_length=28, menstrual_length=5)
        events = [_event("A", utc(2024, 6, 2, 10), utc(2024, 6, 2, 11))]
        assert list(find_overloaded_days(events, cycle)) == []

    def test_sensitive_day_with_three_events(self):
        cycle = UserCycle(start_date=date(2024, 6, 1), cycle_length=28, menstrual_length=5)
        events = [
            _event("A", utc(2024, 6, 2, 8), utc(2024, 6, 2, 9)),
            _event("B", utc(2024, 6, 2, 11), utc(2024, 6, 2, 12)),
            _event("C", utc(2024, 6, 2, 14), utc(2024, 6, 2, 15)),
        ]
        overloaded = next(find_overloaded_days(events, cycle))
        assert overloaded.reason == "sensitive_phase"
        assert overloaded.day == date(2024, 6, 2)

    def test_three_spaced_events_in_follicular_phase(self):
        cycle = UserCycle(start_date=date(2024, 6, 1), cycle_length=28, menstrual_length=5)
        events = [
            _event("A", utc(2024, 6, 9, 8), utc(2024, 6, 9, 9)),
            _event("B", utc(2024, 6, 9, 11), utc(2024, 6, 9, 12)),
            _event("C", utc(2024, 6, 9, 14), utc(2024, 6, 9, 15)),
        ]
        assert list(find_overloaded_days(events, cycle)) == []


class TestProposalParsing:
    """Tests for validating the model's proposal."""

    def test_match_event_is_case_insensitive(self):
        events = [_event("Презентация для клиента", utc(2024, 6, 3, 10), utc(2024, 6, 3, 11))]
        assert match_event(events, "презентация") is events[0]
        assert match_event(events, "Отчёт") is None
        assert match_event(events, "  ") is None

    def test_parse_keeps_duration(self):
        events = [_event("Презентация", utc(2024, 6, 3, 10), utc(2024, 6, 3, 11, 30))]
        proposal = parse_proposal(json.loads(_proposal()), events, timezone.utc)
        assert proposal.new_start == utc(2024, 6, 5, 15)
        assert proposal.new_end == utc(2024, 6, 5, 16, 30)
        assert proposal.reason == "Сегодня слишком плотный день."

    def test_parse_converts_local_time(self):
        events = [_event("Презентация", utc(2024, 6, 3, 10), utc(2024, 6, 3, 11))]
        proposal = parse_proposal(
            json.loads(_proposal()), events, user_timezone("Europe/Moscow")
        )
        assert proposal.new_start == utc(2024, 6, 5, 12)

    @pytest.mark.parametrize(
        "payload",
        [
            {"should_suggest": False},
            json.loads(_proposal(event_to_move="Несуществующее")),
            json.loads(_proposal(suggested_new_time="25:99")),
            ["not", "a", "dict"],
        ],
    )
    def test_parse_rejects(self, payload):
        events = [_event("Презентация", utc(2024, 6, 3, 10), utc(2024, 6, 3, 11))]
        assert parse_proposal(payload, events, timezone.utc) is None

    def test_unknown_timezone_falls_back_to_utc(self):
        assert user_timezone("Mars/Olympus") is timezone.utc
        assert user_timezone(None) is timezone.utc


class TestWeekPlanner:
    """Tests for creating move suggestions."""

    @pytest.fixture
    def busy_day(self, make_event):
        async def _create():
            await make_event("Встреча с командой", utc(2024, 6, 3, 10), utc(2024, 6, 3, 11))
            await make_event("Презентация", utc(2024, 6, 3, 11, 30), utc(2024, 6, 3, 12, 30))

        return _create

    @pytest.mark.asyncio
    async def test_creates_suggestion_and_chat_message(self, db_session, user, cycle, busy_day):
        await busy_day()
        llm = make_llm(text=_proposal())

        suggestion = await WeekPlanner(db_session, llm).plan_for_user(
            user.id, now=utc(2024, 6, 2, 8)
        )

        assert suggestion is not None
        assert suggestion.event_title == "Презентация"
        assert suggestion.status == MoveStatus.PENDING.value
        assert suggestion.suggested_start == utc(2024, 6, 5, 15)
        assert suggestion.suggested_end == utc(2024, 6, 5, 16)
        assert llm.complete.await_args.kwargs["operation"] == "ai-week-planner"

        messages = (await db_session.execute(select(ChatMessage))).scalars().all()
        assert len(messages) == 1
        assert "Презентация → 05.06.2024 в 15:00" in messages[0].content

    @pytest.mark.asyncio
    async def test_uses_profile_timezone(self, db_session, user, cycle, busy_day):
        await busy_day()
        db_session.add(UserProfile(user_id=user.id, timezone="Europe/Moscow"))
        await db_session.commit()

        suggestion = await WeekPlanner(db_session, make_llm(text=_proposal())).plan_for_user(
            user.id, now=utc(2024, 6, 2, 8)
        )
        assert suggestion.suggested_start == utc(2024, 6, 5, 12)

    @pytest.mark.asyncio
    async def test_balanced_week_skips_model(self, db_session, user, cycle, make_event):
        await make_event("Встреча", utc(2024, 6, 10, 10), utc(2024, 6, 10, 11))
        await make_event("Спорт", utc(2024, 6, 11, 18), utc(2024, 6, 11, 19))
        llm = make_llm(text=_proposal())

        result = await WeekPlanner(db_session, llm).plan_for_user(user.id, now=utc(2024, 6, 9))

        assert result is None
        llm.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_model_declines(self, db_session, user, cycle, busy_day):
        await busy_day()
        llm = make_llm(text='{"should_suggest": false}')

        result = await WeekPlanner(db_session, llm).plan_for_user(user.id, now=utc(2024, 6, 2, 8))

        assert result is None
        rows = (await db_session.execute(select(EventMoveSuggestion))).scalars().all()
        assert rows == []

    @pytest.mark.asyncio
    async def test_model_failure_is_not_fatal(self, db_session, user, cycle, busy_day):
        await busy_day()
        llm = make_llm(text=LLMError("boom"))

        result = await WeekPlanner(db_session, llm).plan_for_user(user.id, now=utc(2024, 6, 2, 8))
        assert result is None

    @pytest.mark.asyncio
    async def test_without_cycle(self, db_session, user, busy_day):
        await busy_day()
        llm = make_llm(text=_proposal())

        assert await WeekPlanner(db_session, llm).plan_for_user(user.id) is None
        llm.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_run_for_all_users(self, db_session, user, cycle, busy_day):
        await busy_day()

        created = await WeekPlanner(db_session, make_llm(text=_proposal())).run_for_all_users(
            now=utc(2024, 6, 2, 8)
        )
        assert created == 1
