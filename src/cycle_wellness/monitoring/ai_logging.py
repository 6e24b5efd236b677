"""Audit trail for AI operations.

Three tables record how the AI features behave in production:

- `ai_retry_logs`: every retried model call
- `ai_operation_metrics`: duration and outcome (success/error/timeout) of
  each high-level AI operation
- `ai_error_notifications`: failures worth showing to someone; critical and
  high severity failures are also posted into the user's chat

Rows are added to the caller's session and committed with the caller's
transaction.

## Usage

```python
monitor = AIMonitor(db, user.id)

async with monitor.timer("ai-chat"):
    reply = await llm.complete(...)

answer = await with_timeout(llm.complete(...), 20, "generate-ai-suggestion")
```
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.database.models import (
    AIErrorNotification,
    AIOperationMetric,
    AIRetryLog,
    ChatMessage,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

CHAT_ALERT_SEVERITIES = {"critical", "high"}


class OperationTimeout(asyncio.TimeoutError):
    """An AI operation exceeded its time budget."""

    def __init__(self, operation: str, seconds: float):
        super().__init__(f"{operation} timeout after {int(seconds * 1000)}ms")
        self.operation = operation
        self.seconds = seconds


async def with_timeout(awaitable: Awaitable[T], seconds: float, operation: str) -> T:
    """Await with a deadline, raising `OperationTimeout` when it passes."""
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as e:
        raise OperationTimeout(operation, seconds) from e


class OperationTimer:
    """Measure elapsed wall time in milliseconds."""

    def __init__(self) -> None:
        self._start = time.monotonic()

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self._start) * 1000)


class _TimedOperation:
    """Async context manager that records an operation metric on exit."""

    def __init__(self, monitor: AIMonitor, operation: str):
        self.monitor = monitor
        self.operation = operation
        self.timer: OperationTimer | None = None

    async def __aenter__(self) -> OperationTimer:
        self.timer = OperationTimer()
        return self.timer

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool:
        elapsed = self.timer.elapsed_ms if self.timer else 0
        if exc_type is None:
            status = "success"
        elif issubclass(exc_type, asyncio.TimeoutError):
            status = "timeout"
        else:
            status = "error"

        await self.monitor.log_operation_metric(
            self.operation,
            status,
            duration_ms=elapsed,
            error_message=str(exc_val) if exc_val else None,
        )
        return False


class AIMonitor:
    """Writes AI audit rows for one user (or for system jobs when user_id is None)."""

    def __init__(self, db: AsyncSession, user_id: uuid.UUID | None = None):
        self.db = db
        self.user_id = user_id

    async def log_retry_attempt(
        self,
        operation: str,
        attempt: int,
        error_message: str | None = None,
    ) -> None:
        self.db.add(
            AIRetryLog(
                user_id=self.user_id,
                operation_type=operation,
                attempt=attempt,
                error_message=error_message,
            )
        )

    async def log_operation_metric(
        self,
        operation: str,
        status: str,
        duration_ms: int = 0,
        error_message: str | None = None,
    ) -> None:
        if status != "success":
            logger.warning(f"AI operation {operation} ended with {status}: {error_message}")
        self.db.add(
            AIOperationMetric(
                user_id=self.user_id,
                operation_type=operation,
                status=status,
                duration_ms=duration_ms,
                error_message=error_message,
            )
        )

    async def log_error_notification(
        self,
        operation: str,
        message: str,
        severity: str = "medium",
    ) -> None:
        """Record a failure; critical/high ones also appear in the user's chat."""
        self.db.add(
            AIErrorNotification(
                user_id=self.user_id,
                operation_type=operation,
                severity=severity,
                message=message,
            )
        )
        if severity in CHAT_ALERT_SEVERITIES and self.user_id:
            self.db.add(
                ChatMessage(
                    user_id=self.user_id,
                    role="assistant",
                    content=f"⚠️ Системное уведомление: {message}",
                )
            )

    def timer(self, operation: str) -> _TimedOperation:
        return _TimedOperation(self, operation)


async def get_ai_stats(
    db: AsyncSession,
    days: int = 7,
    user_id: uuid.UUID | None = None,
) -> dict[str, Any]:
    """Summarise AI activity over the last `days` days.

    Returns totals, success rate, average duration, the ten most recent
    unresolved error notifications and a per-operation status breakdown.
    """
    since = datetime.now(timezone.utc) - timedelta(days=days)

    metrics_query = select(AIOperationMetric).where(AIOperationMetric.created_at >= since)
    errors_query = (
        select(AIErrorNotification)
        .where(AIErrorNotification.resolved == False)  # noqa: E712
        .order_by(AIErrorNotification.created_at.desc())
        .limit(10)
    )
    retries_query = select(AIRetryLog).where(AIRetryLog.created_at >= since)
    if user_id is not None:
        metrics_query = metrics_query.where(AIOperationMetric.user_id == user_id)
        errors_query = errors_query.where(AIErrorNotification.user_id == user_id)
        retries_query = retries_query.where(AIRetryLog.user_id == user_id)

    metrics = (await db.execute(metrics_query)).scalars().all()
    recent_errors = (await db.execute(errors_query)).scalars().all()
    retries = (await db.execute(retries_query)).scalars().all()

    breakdown: dict[str, dict[str, int]] = defaultdict(
        lambda: {"success": 0, "error": 0, "timeout": 0}
    )
    for metric in metrics:
        counts = breakdown[metric.operation_type]
        counts[metric.status] = counts.get(metric.status, 0) + 1

    total = len(metrics)
    successes = sum(1 for m in metrics if m.status == "success")
    avg_duration = (
        round(sum(m.duration_ms for m in metrics) / total) if total else 0
    )

    return {
        "days": days,
        "stats": {
            "total_operations": total,
            "successful": successes,
            "failed": sum(1 for m in metrics if m.status == "error"),
            "timeouts": sum(1 for m in metrics if m.status == "timeout"),
            "success_rate": round(successes / total * 100, 1) if total else 0.0,
            "avg_duration_ms": avg_duration,
            "retries": len(retries),
        },
        "recent_errors": [
            {
                "id": str(e.id),
                "operation_type": e.operation_type,
                "severity": e.severity,
                "message": e.message,
                "created_at": e.created_at,
            }
            for e in recent_errors
        ],
        "operation_breakdown": dict(breakdown),
    }
