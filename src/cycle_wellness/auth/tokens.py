"""Stored provider tokens.

Access tokens are kept encrypted in `oauth_tokens`, one row per user and
provider. Callers ask for an access token and get one that is valid for at
least `EXPIRY_BUFFER`; anything closer to expiry is refreshed first and the
new token is written back.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.auth.google import GoogleOAuth, get_google_oauth
from cycle_wellness.auth.microsoft import MicrosoftOAuth, get_microsoft_oauth
from cycle_wellness.auth.models import OAuthTokens, TokenError
from cycle_wellness.database.encryption import decrypt_token, encrypt_token
from cycle_wellness.database.models import OAuthToken, TokenProvider, as_utc

logger = logging.getLogger(__name__)

EXPIRY_BUFFER = timedelta(minutes=5)


def needs_refresh(expires_at: datetime | None, now: datetime | None = None) -> bool:
    """True when the token is expired or expires within the buffer."""
    if expires_at is None:
        return False
    now = now or datetime.now(timezone.utc)
    return as_utc(expires_at) - now <= EXPIRY_BUFFER


class TokenService:
    """Reads, refreshes and stores OAuth tokens for one database session."""

    def __init__(
        self,
        db: AsyncSession,
        google: GoogleOAuth | None = None,
        microsoft: MicrosoftOAuth | None = None,
    ):
        self.db = db
        self._google = google
        self._microsoft = microsoft

    def _oauth(self, provider: TokenProvider) -> GoogleOAuth | MicrosoftOAuth:
        if provider == TokenProvider.GOOGLE:
            return self._google or get_google_oauth()
        return self._microsoft or get_microsoft_oauth()

    async def get_token_row(
        self, user_id: uuid.UUID, provider: TokenProvider
    ) -> OAuthToken | None:
        result = await self.db.execute(
            select(OAuthToken).where(
                OAuthToken.user_id == user_id,
                OAuthToken.provider == provider.value,
            )
        )
        return result.scalar_one_or_none()

    async def has_tokens(self, user_id: uuid.UUID, provider: TokenProvider) -> bool:
        return await self.get_token_row(user_id, provider) is not None

    async def store_tokens(
        self,
        user_id: uuid.UUID,
        provider: TokenProvider,
        tokens: OAuthTokens,
        provider_user_id: str | None = None,
    ) -> OAuthToken:
        """Insert or update the user's token row for a provider."""
        row = await self.get_token_row(user_id, provider)
        if row is None:
            row = OAuthToken(user_id=user_id, provider=provider.value)
            self.db.add(row)

        row.access_token_encrypted = encrypt_token(tokens.access_token)
        if tokens.refresh_token:
            row.refresh_token_encrypted = encrypt_token(tokens.refresh_token)
        row.token_type = tokens.token_type
        row.scope = tokens.scope
        row.expires_at = tokens.expires_at
        if provider_user_id:
            row.provider_user_id = provider_user_id

        await self.db.commit()
        return row

    async def refresh(self, user_id: uuid.UUID, provider: TokenProvider) -> str:
        """Refresh unconditionally and return the new access token.

        Raises:
            TokenError: If there is no refresh token or the provider rejects it
        """
        row = await self.get_token_row(user_id, provider)
        if row is None or not row.refresh_token_encrypted:
            raise TokenError(f"No {provider.value} refresh token for user")

        refresh_token = decrypt_token(row.refresh_token_encrypted)
        try:
            tokens = await self._oauth(provider).refresh_access_token(refresh_token)
        except ValueError as e:
            raise TokenError(f"{provider.value} token refresh failed: {e}") from e

        await self.store_tokens(user_id, provider, tokens)
        logger.info(f"Refreshed {provider.value} token for {user_id}")
        return tokens.access_token

    async def get_access_token(
        self, user_id: uuid.UUID, provider: TokenProvider
    ) -> str:
        """Valid access token for the provider, refreshing when needed.

        Raises:
            TokenError: If the provider is not connected or refresh fails
        """
        row = await self.get_token_row(user_id, provider)
        if row is None:
            raise TokenError(f"{provider.value} account not connected")

        if needs_refresh(row.expires_at):
            logger.debug(f"{provider.value} token for {user_id} near expiry")
            return await self.refresh(user_id, provider)

        return decrypt_token(row.access_token_encrypted)

    async def get_refresh_token(
        self, user_id: uuid.UUID, provider: TokenProvider
    ) -> str | None:
        row = await self.get_token_row(user_id, provider)
        if row is None or not row.refresh_token_encrypted:
            return None
        return decrypt_token(row.refresh_token_encrypted)

    async def delete_tokens(self, user_id: uuid.UUID, provider: TokenProvider) -> bool:
        row = await self.get_token_row(user_id, provider)
        if row is None:
            return False
        await self.db.delete(row)
        await self.db.commit()
        return True

    async def disconnect(self, user_id: uuid.UUID, provider: TokenProvider) -> bool:
        """Forget the provider's tokens, revoking Google's grant first.

        Revocation is best effort: the local tokens are removed even if
        Google cannot be reached.

        Returns:
            False when there was nothing to disconnect
        """
        if provider == TokenProvider.GOOGLE:
            refresh_token = await self.get_refresh_token(user_id, provider)
            if refresh_token:
                try:
                    revoked = await self._oauth(provider).revoke_token(refresh_token)
                except httpx.HTTPError as e:
                    logger.warning(f"Could not revoke Google grant for {user_id}: {e}")
                else:
                    logger.info(f"Google grant for {user_id} revoked: {revoked}")

        removed = await self.delete_tokens(user_id, provider)
        if removed:
            logger.info(f"Disconnected {provider.value} for {user_id}")
        return removed
