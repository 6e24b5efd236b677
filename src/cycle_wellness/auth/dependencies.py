"""FastAPI dependencies for authentication.

## Usage

```python
from fastapi import Depends
from cycle_wellness.auth import get_current_user, verify_cron_secret
from cycle_wellness.database import User

@router.get("/profile")
async def get_profile(user: User = Depends(get_current_user)):
    return {"email": user.email, "name": user.name}

@router.post("/cron/period-notifications", dependencies=[Depends(verify_cron_secret)])
async def run_notifications():
    ...
```
"""

from __future__ import annotations

import hmac
import logging

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.auth.session import SessionData, verify_session_token
from cycle_wellness.config import get_settings
from cycle_wellness.database.connection import get_db_session
from cycle_wellness.database.models import User

logger = logging.getLogger(__name__)


async def get_session_data(request: Request) -> SessionData | None:
    """Session from the cookie, or None if missing or invalid."""
    cookie = request.cookies.get(get_settings().session_cookie_name)
    if not cookie:
        return None
    return verify_session_token(cookie)


async def get_current_user_optional(
    session: SessionData | None = Depends(get_session_data),
    db: AsyncSession = Depends(get_db_session),
) -> User | None:
    if session is None:
        return None

    result = await db.execute(
        select(User).where(User.id == session.user_id, User.is_active.is_(True))
    )
    user = result.scalar_one_or_none()

    if user is None:
        logger.warning(f"Session for non-existent/inactive user: {session.user_id}")
        return None

    return user


async def get_current_user(
    user: User | None = Depends(get_current_user_optional),
) -> User:
    """Get the current authenticated user. Raises 401 if not authenticated."""
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Raises 403 unless the current user is an admin."""
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


async def verify_cron_secret(authorization: str | None = Header(default=None)) -> None:
    """Accept only `Authorization: Bearer <CRON_SECRET>`.

    Scheduled jobs are disabled entirely while no secret is configured.
    """
    secret = get_settings().cron_secret
    if not secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Scheduled jobs not configured",
        )

    expected = f"Bearer {secret}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        logger.warning("Rejected scheduled job call with invalid secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
