"""Weekly overload detection.

Looks at the coming week of events and finds days that are likely to be
too much:

- two consecutive events less than `MIN_GAP` apart, or
- a sensitive cycle day (menstruation or the premenstrual week) with three
  or more events.

Days with fewer than two events are never considered. For a flagged day the
model decides whether one event should move and where to; the proposal is
stored as a `pending` move suggestion and announced in the chat. At most one
proposal is created per user per run.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.ai.client import LLMClient, LLMError, parse_json_reply
from cycle_wellness.cycle.phase import CycleInfo
from cycle_wellness.database.models import (
    ChatMessage,
    Event,
    EventMoveSuggestion,
    MoveStatus,
    SymptomLog,
    UserCycle,
    as_utc,
)
from cycle_wellness.database.queries import get_current_cycle, get_events_between, get_profile

logger = logging.getLogger(__name__)

MIN_GAP = timedelta(minutes=60)
SENSITIVE_DAY_EVENT_COUNT = 3
PLANNING_DAYS = 7

SYSTEM_PROMPT = "Ты помощник по планированию с учетом менструального цикла. Отвечай только JSON."


@dataclass
class OverloadedDay:
    day: date
    events: list[Event]
    cycle: CycleInfo
    reason: str  # "tight_gap" or "sensitive_phase"


@dataclass
class MoveProposal:
    event: Event
    reason: str
    new_start: datetime
    new_end: datetime


def group_by_day(events: list[Event]) -> dict[date, list[Event]]:
    by_day: dict[date, list[Event]] = defaultdict(list)
    for event in sorted(events, key=lambda e: as_utc(e.start_time)):
        by_day[as_utc(event.start_time).date()].append(event)
    return dict(by_day)


def has_tight_gap(events: list[Event]) -> bool:
    for current, following in zip(events, events[1:]):
        if as_utc(following.start_time) - as_utc(current.end_time) < MIN_GAP:
            return True
    return False


def find_overloaded_days(
    events: list[Event],
    cycle: UserCycle | None,
) -> Iterator[OverloadedDay]:
    """Flagged days in date order."""
    for day, day_events in sorted(group_by_day(events).items()):
        if len(day_events) < 2:
            continue
        info = CycleInfo.for_date(cycle, day)
        if has_tight_gap(day_events):
            yield OverloadedDay(day, day_events, info, "tight_gap")
        elif info.is_sensitive and len(day_events) >= SENSITIVE_DAY_EVENT_COUNT:
            yield OverloadedDay(day, day_events, info, "sensitive_phase")


def match_event(events: list[Event], name: str) -> Event | None:
    """Event whose title contains `name` or is contained in it (case-insensitive)."""
    needle = name.strip().lower()
    if not needle:
        return None
    for event in events:
        title = event.title.lower()
        if needle in title or title in needle:
            return event
    return None


def user_timezone(name: str | None) -> ZoneInfo | timezone:
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {name!r}, using UTC")
        return timezone.utc


def build_planner_prompt(overloaded: OverloadedDay, logs: list[SymptomLog]) -> str:
    sensitive = overloaded.cycle.is_sensitive
    phase = (
        "менструальная/лютеиновая (повышенная утомляемость)"
        if sensitive
        else "фолликулярная/овуляторная"
    )
    event_lines = "\n".join(
        f"{i}. {e.title} ({e.start_time:%H:%M} - {e.end_time:%H:%M})"
        for i, e in enumerate(overloaded.events, start=1)
    )
    log_lines = "\n".join(
        f"{log.log_date}: Энергия {log.energy}/5, Сон {log.sleep_quality}/5, "
        f"Стресс {log.stress_level}/5"
        for log in logs
    ) or "Нет данных"

    return (
        "Ты AI-ассистент по планированию. Проанализируй календарь пользователя.\n"
        f"День цикла: {overloaded.cycle.cycle_day} из {overloaded.cycle.cycle_length}\n"
        f"Фаза: {phase}\n"
        f"События в этот день ({overloaded.day.isoformat()}):\n{event_lines}\n"
        f"Недавнее самочувствие:\n{log_lines}\n"
        "ЗАДАЧА: Если видишь перегрузку или плотное расписание в неблагоприятную "
        "фазу, предложи перенести ОДНО конкретное событие на более подходящий день "
        "в ближайшую неделю.\n"
        "Ответь в формате JSON:\n"
        '{"should_suggest": true/false, "event_to_move": "название события", '
        '"reason": "краткое объяснение (2-3 предложения)", '
        '"suggested_new_date": "YYYY-MM-DD", "suggested_new_time": "HH:MM"}\n'
        'Если переносить не нужно, верни {"should_suggest": false}'
    )


def parse_proposal(
    payload: Any,
    events: list[Event],
    tz: ZoneInfo | timezone,
) -> MoveProposal | None:
    """Validate the model's answer; None when nothing should move."""
    if not isinstance(payload, dict) or not payload.get("should_suggest"):
        return None

    event = match_event(events, str(payload.get("event_to_move") or ""))
    if event is None:
        logger.info(f"Planner named an unknown event: {payload.get('event_to_move')!r}")
        return None

    try:
        local = datetime.strptime(
            f"{payload['suggested_new_date']} {payload['suggested_new_time']}",
            "%Y-%m-%d %H:%M",
        )
    except (KeyError, TypeError, ValueError):
        logger.info(f"Planner returned an invalid time: {payload}")
        return None

    new_start = local.replace(tzinfo=tz).astimezone(timezone.utc)
    return MoveProposal(
        event=event,
        reason=str(payload.get("reason") or ""),
        new_start=new_start,
        new_end=new_start + (as_utc(event.end_time) - as_utc(event.start_time)),
    )


class WeekPlanner:
    """Creates move proposals for overloaded days."""

    def __init__(self, db: AsyncSession, llm: LLMClient):
        self.db = db
        self.llm = llm

    async def _recent_logs(self, user_id: uuid.UUID, now: datetime) -> list[SymptomLog]:
        result = await self.db.execute(
            select(SymptomLog)
            .where(
                SymptomLog.user_id == user_id,
                SymptomLog.log_date >= (now - timedelta(days=7)).date(),
            )
            .order_by(SymptomLog.log_date.desc())
            .limit(7)
        )
        return list(result.scalars().all())

    async def plan_for_user(
        self,
        user_id: uuid.UUID,
        now: datetime | None = None,
    ) -> EventMoveSuggestion | None:
        """Propose at most one move for the coming week."""
        now = now or datetime.now(timezone.utc)
        cycle = await get_current_cycle(self.db, user_id)
        if cycle is None:
            return None

        events = await get_events_between(
            self.db, user_id, now, now + timedelta(days=PLANNING_DAYS)
        )
        if not events:
            return None

        logs = await self._recent_logs(user_id, now)
        profile = await get_profile(self.db, user_id)
        tz = user_timezone(profile.timezone if profile else None)

        for overloaded in find_overloaded_days(events, cycle):
            logger.info(f"Overloaded day {overloaded.day} for {user_id} ({overloaded.reason})")
            try:
                reply = await self.llm.complete(
                    [
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": build_planner_prompt(overloaded, logs)},
                    ],
                    operation="ai-week-planner",
                    max_tokens=250,
                    json_mode=True,
                )
                proposal = parse_proposal(parse_json_reply(reply), overloaded.events, tz)
            except LLMError as e:
                logger.warning(f"Planner AI call failed for {user_id}: {e}")
                continue

            if proposal is not None:
                return await self._store(user_id, proposal, tz)

        return None

    async def _store(
        self,
        user_id: uuid.UUID,
        proposal: MoveProposal,
        tz: ZoneInfo | timezone,
    ) -> EventMoveSuggestion:
        suggestion = EventMoveSuggestion(
            user_id=user_id,
            event_id=proposal.event.id,
            event_title=proposal.event.title,
            reason=proposal.reason,
            suggested_start=proposal.new_start,
            suggested_end=proposal.new_end,
            status=MoveStatus.PENDING.value,
        )
        self.db.add(suggestion)

        local = proposal.new_start.astimezone(tz)
        self.db.add(
            ChatMessage(
                user_id=user_id,
                role="assistant",
                content=(
                    f"📅 {proposal.reason}\n\n{proposal.event.title} → "
                    f"{local:%d.%m.%Y} в {local:%H:%M}"
                ),
            )
        )
        await self.db.commit()
        logger.info(f"Created move suggestion for {user_id}: {proposal.event.title!r}")
        return suggestion

    async def run_for_all_users(self, now: datetime | None = None) -> int:
        """Plan for every user with cycle data.

        Returns:
            Number of suggestions created
        """
        result = await self.db.execute(select(UserCycle.user_id).distinct())
        user_ids = list(result.scalars().all())
        logger.info(f"Starting week planner for {len(user_ids)} users")

        created = 0
        for user_id in user_ids:
            try:
                if await self.plan_for_user(user_id, now):
                    created += 1
            except Exception as e:
                logger.exception(f"Week planner failed for user {user_id}: {e}")
                await self.db.rollback()

        logger.info(f"Week planner completed: {created} suggestions created")
        return created
