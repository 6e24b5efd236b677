"""Microsoft identity platform OAuth for Outlook calendars.

Outlook is connected to an existing account (the user is already signed in
with Google), so the user id travels through the redirect in `state`:

    state = base64(json.dumps({"user_id": "<uuid>"}))

## Endpoints

- Authorization: https://login.microsoftonline.com/{tenant}/oauth2/v2.0/authorize
- Token: https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token
- Profile: https://graph.microsoft.com/v1.0/me
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import uuid
from functools import lru_cache

import httpx
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.httpx_client import AsyncOAuth2Client

from cycle_wellness.auth.models import OAuthTokens, OAuthUserInfo
from cycle_wellness.config import get_settings

logger = logging.getLogger(__name__)

MICROSOFT_LOGIN_URL = "https://login.microsoftonline.com"
GRAPH_ME_URL = "https://graph.microsoft.com/v1.0/me"

MICROSOFT_SCOPES = [
    "openid",
    "profile",
    "email",
    "offline_access",
    "Calendars.ReadWrite",
    "User.Read",
]


def encode_state(user_id: uuid.UUID) -> str:
    payload = json.dumps({"user_id": str(user_id)}).encode()
    return base64.b64encode(payload).decode()


def decode_state(state: str) -> uuid.UUID:
    """Recover the user id from the `state` parameter.

    Raises:
        ValueError: If the state is malformed
    """
    try:
        data = json.loads(base64.b64decode(state.encode(), validate=True))
        return uuid.UUID(data["user_id"])
    except (binascii.Error, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        raise ValueError("Invalid OAuth state") from e


class MicrosoftOAuth:
    """Authorization code flow against the Microsoft identity platform."""

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        redirect_uri: str | None = None,
        tenant: str | None = None,
    ):
        settings = get_settings()

        self.client_id = client_id or settings.microsoft_client_id
        self.client_secret = client_secret or settings.microsoft_client_secret
        self.redirect_uri = redirect_uri or settings.microsoft_redirect_uri
        self.tenant = tenant or settings.microsoft_tenant
        self.scope = " ".join(MICROSOFT_SCOPES)

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    @property
    def authorize_url(self) -> str:
        return f"{MICROSOFT_LOGIN_URL}/{self.tenant}/oauth2/v2.0/authorize"

    @property
    def token_url(self) -> str:
        return f"{MICROSOFT_LOGIN_URL}/{self.tenant}/oauth2/v2.0/token"

    def _session(self) -> AsyncOAuth2Client:
        if not self.is_configured:
            raise RuntimeError("Microsoft OAuth not configured")
        return AsyncOAuth2Client(
            client_id=self.client_id,
            client_secret=self.client_secret,
            scope=self.scope,
            redirect_uri=self.redirect_uri,
        )

    def get_authorization_url(self, user_id: uuid.UUID) -> str:
        session = self._session()
        url, _ = session.create_authorization_url(
            self.authorize_url,
            state=encode_state(user_id),
            prompt="consent",
            response_mode="query",
        )
        return url

    async def exchange_code(self, code: str) -> OAuthTokens:
        """Exchange the callback code for tokens.

        Raises:
            ValueError: If the token endpoint rejects the code
        """
        async with self._session() as session:
            try:
                token = await session.fetch_token(
                    self.token_url,
                    code=code,
                    grant_type="authorization_code",
                )
            except (AuthlibBaseError, httpx.HTTPError) as e:
                logger.error(f"Microsoft token exchange failed: {e}")
                raise ValueError(f"Microsoft token exchange failed: {e}") from e
        return OAuthTokens.from_response(dict(token))

    async def refresh_access_token(self, refresh_token: str) -> OAuthTokens:
        async with self._session() as session:
            try:
                token = await session.refresh_token(
                    self.token_url,
                    refresh_token=refresh_token,
                    scope=self.scope,
                )
            except (AuthlibBaseError, httpx.HTTPError) as e:
                logger.error(f"Microsoft token refresh failed: {e}")
                raise ValueError(f"Microsoft token refresh failed: {e}") from e
        return OAuthTokens.from_response(dict(token), previous_refresh_token=refresh_token)

    async def get_user_info(self, access_token: str) -> OAuthUserInfo:
        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.get(
                GRAPH_ME_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )

        if response.status_code != 200:
            logger.error(f"Graph /me failed: {response.text}")
            raise ValueError(f"Graph profile request failed: {response.status_code}")

        data = response.json()
        return OAuthUserInfo(
            id=data["id"],
            email=data.get("mail") or data.get("userPrincipalName", ""),
            name=data.get("displayName"),
        )


@lru_cache
def get_microsoft_oauth() -> MicrosoftOAuth:
    return MicrosoftOAuth()
