"""Google OAuth for sign-in, Calendar and Gmail access.

Signing in with Google is also how the service gets permission to read and
write the user's calendar and to send and read rescheduling emails.

## Required Setup

1. Create a project in Google Cloud Console
2. Enable the Google Calendar API and the Gmail API
3. Create OAuth 2.0 credentials (Web application)
4. Add `GOOGLE_REDIRECT_URI` to the authorized redirect URIs
5. Set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET environment variables

## Scopes Used

- openid, email, profile: identify the user
- calendar, calendar.events: import, create, move and delete events
- gmail.modify, gmail.send: send rescheduling emails and read replies
"""

from __future__ import annotations

import logging
from functools import lru_cache
from urllib.parse import urlencode

import httpx

from cycle_wellness.auth.models import OAuthTokens, OAuthUserInfo
from cycle_wellness.config import get_settings

logger = logging.getLogger(__name__)

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"

IDENTITY_SCOPES = ["openid", "email", "profile"]


class GoogleOAuth:
    """Google OAuth 2.0 client.

    Example:
        ```python
        oauth = GoogleOAuth()
        url = oauth.get_authorization_url(state="random-state")

        # In the callback
        tokens = await oauth.exchange_code(code)
        user = await oauth.get_user_info(tokens.access_token)
        ```
    """

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        redirect_uri: str | None = None,
        scopes: list[str] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        settings = get_settings()

        self.client_id = client_id or settings.google_client_id
        self.client_secret = client_secret or settings.google_client_secret
        self.redirect_uri = redirect_uri or settings.google_redirect_uri
        self.scopes = scopes or IDENTITY_SCOPES + settings.google_scopes
        self._http_client = http_client

        if not self.is_configured:
            logger.warning(
                "Google OAuth not configured. Set GOOGLE_CLIENT_ID and "
                "GOOGLE_CLIENT_SECRET environment variables."
            )

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _client(self) -> httpx.AsyncClient:
        return self._http_client or httpx.AsyncClient(timeout=30.0)

    def get_authorization_url(self, state: str) -> str:
        """URL of the Google consent screen.

        Offline access with a forced consent prompt so that a refresh token
        is always issued.
        """
        if not self.is_configured:
            raise RuntimeError("Google OAuth not configured")

        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "state": state,
            "access_type": "offline",
            "prompt": "consent",
        }
        return f"{GOOGLE_AUTHORIZE_URL}?{urlencode(params)}"

    async def _token_request(self, data: dict[str, str], action: str) -> dict:
        if not self.is_configured:
            raise RuntimeError("Google OAuth not configured")

        client = self._client()
        try:
            response = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    **data,
                },
            )
        finally:
            if client is not self._http_client:
                await client.aclose()

        if response.status_code != 200:
            logger.error(f"Google {action} failed: {response.text}")
            raise ValueError(f"Google {action} failed: {response.status_code}")
        return response.json()

    async def exchange_code(self, code: str) -> OAuthTokens:
        """Exchange the authorization code from the callback for tokens.

        Raises:
            ValueError: If Google rejects the code
        """
        data = await self._token_request(
            {
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": self.redirect_uri,
            },
            "token exchange",
        )
        return OAuthTokens.from_response(data)

    async def refresh_access_token(self, refresh_token: str) -> OAuthTokens:
        """Get a fresh access token.

        Raises:
            ValueError: If the refresh token was revoked or is invalid
        """
        data = await self._token_request(
            {"refresh_token": refresh_token, "grant_type": "refresh_token"},
            "token refresh",
        )
        return OAuthTokens.from_response(data, previous_refresh_token=refresh_token)

    async def get_user_info(self, access_token: str) -> OAuthUserInfo:
        client = self._client()
        try:
            response = await client.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        finally:
            if client is not self._http_client:
                await client.aclose()

        if response.status_code != 200:
            logger.error(f"Google user info request failed: {response.text}")
            raise ValueError(f"User info request failed: {response.status_code}")

        data = response.json()
        return OAuthUserInfo(
            id=data["id"],
            email=data["email"],
            name=data.get("name"),
            picture=data.get("picture"),
        )

    async def revoke_token(self, token: str) -> bool:
        client = self._client()
        try:
            response = await client.post(GOOGLE_REVOKE_URL, params={"token": token})
        finally:
            if client is not self._http_client:
                await client.aclose()
        return response.status_code == 200


@lru_cache
def get_google_oauth() -> GoogleOAuth:
    """Get cached Google OAuth client instance."""
    return GoogleOAuth()
