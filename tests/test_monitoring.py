"""Tests for the AI audit trail."""

import asyncio

import pytest
from sqlalchemy import select

from cycle_wellness.database.models import AIErrorNotification, AIOperationMetric, ChatMessage
from cycle_wellness.monitoring.ai_logging import (
    AIMonitor,
    OperationTimeout,
    get_ai_stats,
    with_timeout,
)


async def _metrics(db_session) -> list[AIOperationMetric]:
    return list((await db_session.execute(select(AIOperationMetric))).scalars().all())


class TestTimer:
    """Tests for operation metrics."""

    @pytest.mark.asyncio
    async def test_success(self, db_session, user):
        monitor = AIMonitor(db_session, user.id)
        async with monitor.timer("ai-chat") as timer:
            pass
        await db_session.commit()

        [metric] = await _metrics(db_session)
        assert metric.status == "success"
        assert metric.operation_type == "ai-chat"
        assert metric.duration_ms >= 0
        assert timer.elapsed_ms >= 0

    @pytest.mark.asyncio
    async def test_error_is_recorded_and_raised(self, db_session, user):
        monitor = AIMonitor(db_session, user.id)
        with pytest.raises(RuntimeError):
            async with monitor.timer("ai-chat"):
                raise RuntimeError("model exploded")
        await db_session.commit()

        [metric] = await _metrics(db_session)
        assert metric.status == "error"
        assert metric.error_message == "model exploded"

    @pytest.mark.asyncio
    async def test_timeout(self, db_session, user):
        monitor = AIMonitor(db_session, user.id)
        with pytest.raises(OperationTimeout, match="generate-ai-suggestion timeout after 10ms"):
            async with monitor.timer("generate-ai-suggestion"):
                await with_timeout(asyncio.sleep(1), 0.01, "generate-ai-suggestion")
        await db_session.commit()

        [metric] = await _metrics(db_session)
        assert metric.status == "timeout"


class TestWithTimeout:
    """Tests for deadlines."""

    @pytest.mark.asyncio
    async def test_returns_result(self):
        async def answer():
            return 42

        assert await with_timeout(answer(), 1, "test") == 42


class TestErrorNotifications:
    """Tests for failure notifications."""

    @pytest.mark.asyncio
    async def test_high_severity_posts_to_chat(self, db_session, user):
        await AIMonitor(db_session, user.id).log_error_notification(
            "ai-chat", "Ассистент недоступен", severity="high"
        )
        await db_session.commit()

        [message] = (await db_session.execute(select(ChatMessage))).scalars().all()
        assert message.content == "⚠️ Системное уведомление: Ассистент недоступен"

    @pytest.mark.asyncio
    async def test_medium_severity_stays_internal(self, db_session, user):
        await AIMonitor(db_session, user.id).log_error_notification("ai-chat", "Медленно")
        await db_session.commit()

        assert (await db_session.execute(select(ChatMessage))).scalars().all() == []
        [row] = (await db_session.execute(select(AIErrorNotification))).scalars().all()
        assert row.severity == "medium"

    @pytest.mark.asyncio
    async def test_system_jobs_never_post_to_chat(self, db_session):
        await AIMonitor(db_session).log_error_notification("ai-week-planner", "Сбой", "critical")
        await db_session.commit()

        assert (await db_session.execute(select(ChatMessage))).scalars().all() == []


class TestStats:
    """Tests for the statistics summary."""

    @pytest.mark.asyncio
    async def test_summary(self, db_session, user):
        monitor = AIMonitor(db_session, user.id)
        await monitor.log_operation_metric("ai-chat", "success", duration_ms=100)
        await monitor.log_operation_metric("ai-chat", "success", duration_ms=300)
        await monitor.log_operation_metric("ai-chat", "timeout", duration_ms=20000)
        await monitor.log_operation_metric("ai-week-planner", "error", duration_ms=600)
        await monitor.log_retry_attempt("ai-chat", 1, "rate limited")
        await monitor.log_error_notification("ai-week-planner", "Сбой")
        await db_session.commit()

        stats = await get_ai_stats(db_session, days=7)

        assert stats["stats"]["total_operations"] == 4
        assert stats["stats"]["successful"] == 2
        assert stats["stats"]["failed"] == 1
        assert stats["stats"]["timeouts"] == 1
        assert stats["stats"]["success_rate"] == 50.0
        assert stats["stats"]["avg_duration_ms"] == 5250
        assert stats["stats"]["retries"] == 1
        assert stats["operation_breakdown"]["ai-chat"] == {"success": 2, "error": 0, "timeout": 1}
        assert [e["message"] for e in stats["recent_errors"]] == ["Сбой"]

    @pytest.mark.asyncio
    async def test_empty(self, db_session):
        stats = await get_ai_stats(db_session)
        assert stats["stats"]["total_operations"] == 0
        assert stats["stats"]["success_rate"] == 0.0
