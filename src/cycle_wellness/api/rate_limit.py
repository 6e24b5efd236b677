"""Per-user, per-endpoint rate limiting.

Counters live in `api_rate_limits`, one row per user, endpoint and minute,
so every app instance shares them. Database trouble never blocks a request:
the limiter fails open and logs the error.

| Endpoint                    | Requests per minute |
|-----------------------------|---------------------|
| ai-chat                     | 30                  |
| ai-week-planner             | 10                  |
| generate-ai-suggestion      | 20                  |
| ai-generate-email-preview   | 15                  |
| ai-handle-event-move        | 10                  |
| anything else               | 20                  |
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from fastapi import Depends, HTTPException, Response, status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.auth.dependencies import get_current_user
from cycle_wellness.database.connection import get_db_session
from cycle_wellness.database.models import ApiRateLimit, User

logger = logging.getLogger(__name__)

WINDOW = timedelta(minutes=1)
DEFAULT_LIMIT = 20
LIMITS = {
    "ai-chat": 30,
    "ai-week-planner": 10,
    "generate-ai-suggestion": 20,
    "ai-generate-email-preview": 15,
    "ai-handle-event-move": 10,
}


def limit_for(endpoint: str) -> int:
    return LIMITS.get(endpoint, DEFAULT_LIMIT)


def window_start(now: datetime) -> datetime:
    return now.replace(second=0, microsecond=0)


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: datetime


class RateLimiter:
    """Fixed one-minute window counter."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def check(
        self,
        user_id: uuid.UUID,
        endpoint: str,
        now: datetime | None = None,
    ) -> RateLimitResult:
        """Count this request and report whether it may proceed."""
        now = now or datetime.now(timezone.utc)
        start = window_start(now)
        limit = limit_for(endpoint)
        reset_at = start + WINDOW

        try:
            result = await self.db.execute(
                select(ApiRateLimit).where(
                    ApiRateLimit.user_id == user_id,
                    ApiRateLimit.endpoint == endpoint,
                    ApiRateLimit.window_start == start,
                )
            )
            counter = result.scalar_one_or_none()

            if counter is not None and counter.request_count >= limit:
                logger.warning(f"Rate limit exceeded for {user_id} on {endpoint}")
                return RateLimitResult(allowed=False, remaining=0, reset_at=reset_at)

            if counter is None:
                counter = ApiRateLimit(
                    user_id=user_id, endpoint=endpoint, window_start=start, request_count=1
                )
                self.db.add(counter)
            else:
                counter.request_count += 1
            await self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Rate limit check failed, allowing request: {e}")
            await self.db.rollback()
            return RateLimitResult(allowed=True, remaining=limit, reset_at=reset_at)

        return RateLimitResult(
            allowed=True,
            remaining=max(limit - counter.request_count, 0),
            reset_at=reset_at,
        )


def rate_limit(endpoint: str):
    """Dependency enforcing the limit of `endpoint` for the current user.

    Example:
        ```python
        @router.post("/chat", dependencies=[Depends(rate_limit("ai-chat"))])
        async def chat(...):
            ...
        ```
    """

    async def dependency(
        response: Response,
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_session),
    ) -> RateLimitResult:
        result = await RateLimiter(db).check(user.id, endpoint)
        headers = {
            "X-RateLimit-Remaining": str(result.remaining),
            "X-RateLimit-Reset": result.reset_at.isoformat(),
        }
        if not result.allowed:
            retry_after = max(int((result.reset_at - datetime.now(timezone.utc)).total_seconds()), 1)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Rate limit exceeded. Please try again later.",
                headers={**headers, "Retry-After": str(retry_after)},
            )
        response.headers.update(headers)
        return result

    return dependency
