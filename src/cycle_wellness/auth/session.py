"""Session management using signed JWT tokens.

Sessions are stored as signed JWT tokens in HTTP-only cookies named
`settings.session_cookie_name`.

## Security

- Tokens are signed with the application secret key (HS256)
- Tokens expire after `session_max_age_seconds` (default: 7 days)
- Cookies are HTTP-only, Secure in production, SameSite=Lax

## Token Structure

```json
{
  "sub": "user-uuid",
  "iat": 1234567890,
  "exp": 1235172690,
  "type": "session"
}
```
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from cycle_wellness.config import get_settings

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
TOKEN_TYPE = "session"


@dataclass
class SessionData:
    """Data stored in the session token."""

    user_id: uuid.UUID
    created_at: datetime
    expires_at: datetime

    @property
    def is_expired(self) -> bool:
        return datetime.now(timezone.utc) > self.expires_at


def create_session_token(
    user_id: uuid.UUID,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed session token for a user."""
    settings = get_settings()

    now = datetime.now(timezone.utc)
    if expires_delta is None:
        expires_delta = timedelta(seconds=settings.session_max_age_seconds)

    payload = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int((now + expires_delta).timestamp()),
        "type": TOKEN_TYPE,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def verify_session_token(token: str) -> SessionData | None:
    """Decode a session token.

    Returns:
        SessionData if valid, None if invalid or expired
    """
    settings = get_settings()

    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.debug(f"Session token verification failed: {e}")
        return None

    if payload.get("type") != TOKEN_TYPE:
        logger.debug("Invalid token type")
        return None

    try:
        session = SessionData(
            user_id=uuid.UUID(payload["sub"]),
            created_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
    except (KeyError, ValueError) as e:
        logger.debug(f"Invalid token payload: {e}")
        return None

    if session.is_expired:
        logger.debug("Session token expired")
        return None

    return session
