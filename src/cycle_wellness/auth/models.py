"""Provider-neutral OAuth data."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

DEFAULT_EXPIRES_IN = 3600


class TokenError(Exception):
    """Raised when no usable provider token exists for a user."""


@dataclass
class OAuthTokens:
    """Tokens returned by a provider token endpoint."""

    access_token: str
    refresh_token: str | None
    token_type: str
    expires_at: datetime | None
    scope: str

    @classmethod
    def from_response(
        cls,
        data: dict[str, Any],
        previous_refresh_token: str | None = None,
    ) -> OAuthTokens:
        """Build from a token endpoint payload.

        Providers often omit the refresh token on refresh; the previous one
        stays valid in that case.
        """
        expires_in = int(data.get("expires_in") or DEFAULT_EXPIRES_IN)
        expires_at = datetime.now(timezone.utc).replace(microsecond=0) + timedelta(
            seconds=expires_in
        )
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or previous_refresh_token,
            token_type=data.get("token_type", "Bearer"),
            expires_at=expires_at,
            scope=data.get("scope", "") or "",
        )


@dataclass
class OAuthUserInfo:
    """Identity of the account that granted access."""

    id: str
    email: str
    name: str | None = None
    picture: str | None = None
