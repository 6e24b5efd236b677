"""Tests for sessions, OAuth state and stored provider tokens."""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from cycle_wellness.auth.microsoft import decode_state, encode_state
from cycle_wellness.auth.models import OAuthTokens, TokenError
from cycle_wellness.auth.session import create_session_token, verify_session_token
from cycle_wellness.auth.tokens import TokenService, needs_refresh
from cycle_wellness.database.encryption import TokenCipher, decrypt_token, encrypt_token
from cycle_wellness.database.models import TokenProvider


def _tokens(access: str, refresh: str | None = "refresh-1", expires_in: int = 3600) -> OAuthTokens:
    return OAuthTokens(
        access_token=access,
        refresh_token=refresh,
        token_type="Bearer",
        expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        scope="calendar",
    )


class TestEncryption:
    """Tests for token encryption at rest."""

    def test_round_trip(self):
        ciphertext = encrypt_token("ya29.secret")
        assert ciphertext != "ya29.secret"
        assert decrypt_token(ciphertext) == "ya29.secret"

    def test_empty_values(self):
        assert encrypt_token(None) == ""
        assert decrypt_token("") == ""

    def test_other_key_rejected(self):
        other = TokenCipher("another-secret-key-at-least-32-characters", "salt")
        with pytest.raises(ValueError):
            decrypt_token(other.encrypt("ya29.secret"))

    def test_reencrypt(self):
        old = TokenCipher("old-secret-key-at-least-32-characters!!", "salt")
        new = TokenCipher("new-secret-key-at-least-32-characters!!", "salt")
        assert new.decrypt(old.reencrypt(old.encrypt("token"), new)) == "token"


class TestSession:
    """Tests for signed session tokens."""

    def test_round_trip(self):
        user_id = uuid.uuid4()
        session = verify_session_token(create_session_token(user_id))
        assert session is not None
        assert session.user_id == user_id

    def test_expired(self):
        token = create_session_token(uuid.uuid4(), expires_delta=timedelta(seconds=-10))
        assert verify_session_token(token) is None

    def test_garbage(self):
        assert verify_session_token("not-a-token") is None


class TestOAuthState:
    """Tests for the Microsoft `state` parameter."""

    def test_round_trip(self):
        user_id = uuid.uuid4()
        assert decode_state(encode_state(user_id)) == user_id

    @pytest.mark.parametrize("state", ["", "%%%", "eyJmb28iOiAxfQ=="])
    def test_invalid(self, state: str):
        with pytest.raises(ValueError):
            decode_state(state)


class TestOAuthTokens:
    def test_refresh_token_carried_over(self):
        tokens = OAuthTokens.from_response({"access_token": "a", "expires_in": 60}, "old-refresh")
        assert tokens.refresh_token == "old-refresh"
        assert tokens.token_type == "Bearer"
        assert tokens.expires_at > datetime.now(timezone.utc)


class TestTokenService:
    """Tests for storing and refreshing provider tokens."""

    def test_needs_refresh(self):
        now = datetime(2024, 6, 1, 12, tzinfo=timezone.utc)
        assert needs_refresh(None, now) is False
        assert needs_refresh(now + timedelta(minutes=4), now) is True
        assert needs_refresh(now + timedelta(minutes=30), now) is False

    @pytest.mark.asyncio
    async def test_not_connected(self, db_session, user):
        with pytest.raises(TokenError):
            await TokenService(db_session).get_access_token(user.id, TokenProvider.GOOGLE)

    @pytest.mark.asyncio
    async def test_store_encrypts(self, db_session, user):
        service = TokenService(db_session)
        row = await service.store_tokens(user.id, TokenProvider.GOOGLE, _tokens("access-1"))

        assert row.access_token_encrypted != "access-1"
        assert await service.get_access_token(user.id, TokenProvider.GOOGLE) == "access-1"
        assert await service.get_refresh_token(user.id, TokenProvider.GOOGLE) == "refresh-1"

    @pytest.mark.asyncio
    async def test_store_keeps_refresh_token_when_missing(self, db_session, user):
        service = TokenService(db_session)
        await service.store_tokens(user.id, TokenProvider.GOOGLE, _tokens("access-1"))
        await service.store_tokens(user.id, TokenProvider.GOOGLE, _tokens("access-2", refresh=None))

        assert await service.get_refresh_token(user.id, TokenProvider.GOOGLE) == "refresh-1"
        assert await service.get_access_token(user.id, TokenProvider.GOOGLE) == "access-2"

    @pytest.mark.asyncio
    async def test_expiring_token_is_refreshed(self, db_session, user):
        google = MagicMock()
        google.refresh_access_token = AsyncMock(return_value=_tokens("fresh", refresh=None))
        service = TokenService(db_session, google=google)
        await service.store_tokens(
            user.id, TokenProvider.GOOGLE, _tokens("stale", expires_in=60)
        )

        assert await service.get_access_token(user.id, TokenProvider.GOOGLE) == "fresh"
        google.refresh_access_token.assert_awaited_once_with("refresh-1")

    @pytest.mark.asyncio
    async def test_refresh_rejected(self, db_session, user):
        microsoft = MagicMock()
        microsoft.refresh_access_token = AsyncMock(side_effect=ValueError("invalid_grant"))
        service = TokenService(db_session, microsoft=microsoft)
        await service.store_tokens(user.id, TokenProvider.MICROSOFT, _tokens("a"))

        with pytest.raises(TokenError):
            await service.refresh(user.id, TokenProvider.MICROSOFT)

    @pytest.mark.asyncio
    async def test_delete(self, db_session, user):
        service = TokenService(db_session)
        await service.store_tokens(user.id, TokenProvider.GOOGLE, _tokens("a"))

        assert await service.delete_tokens(user.id, TokenProvider.GOOGLE) is True
        assert await service.has_tokens(user.id, TokenProvider.GOOGLE) is False
        assert await service.delete_tokens(user.id, TokenProvider.GOOGLE) is False

    @pytest.mark.asyncio
    async def test_disconnect_google_revokes_grant(self, db_session, user):
        google = MagicMock()
        google.revoke_token = AsyncMock(return_value=True)
        service = TokenService(db_session, google=google)
        await service.store_tokens(user.id, TokenProvider.GOOGLE, _tokens("a"))

        assert await service.disconnect(user.id, TokenProvider.GOOGLE) is True

        google.revoke_token.assert_awaited_once_with("refresh-1")
        assert await service.has_tokens(user.id, TokenProvider.GOOGLE) is False

    @pytest.mark.asyncio
    async def test_disconnect_when_revoke_fails(self, db_session, user):
        google = MagicMock()
        google.revoke_token = AsyncMock(side_effect=httpx.ConnectError("offline"))
        service = TokenService(db_session, google=google)
        await service.store_tokens(user.id, TokenProvider.GOOGLE, _tokens("a"))

        assert await service.disconnect(user.id, TokenProvider.GOOGLE) is True
        assert await service.has_tokens(user.id, TokenProvider.GOOGLE) is False

    @pytest.mark.asyncio
    async def test_disconnect_microsoft_without_tokens(self, db_session, user):
        microsoft = MagicMock()
        service = TokenService(db_session, microsoft=microsoft)

        assert await service.disconnect(user.id, TokenProvider.MICROSOFT) is False
        microsoft.revoke_token.assert_not_called()
