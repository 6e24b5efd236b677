"""Authentication routes.

## OAuth Flows

Google signs the user in:

1. GET /auth/login - Redirect to the Google consent screen
2. GET /auth/google/callback - Exchange the code, upsert the user, set the session

Microsoft connects an Outlook calendar for a signed-in user:

1. GET /auth/microsoft/authorize - Returns the consent URL (user id in `state`)
2. GET /auth/microsoft/callback - Exchange the code and store the tokens

DELETE /auth/connections/{provider} forgets a connected account; Google
grants are revoked as well.

## Session Management

Sessions are stored in HTTP-only cookies. The session token is a signed JWT
containing the user ID and expiration time.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.auth.dependencies import get_current_user, get_current_user_optional
from cycle_wellness.auth.google import GoogleOAuth, get_google_oauth
from cycle_wellness.auth.microsoft import MicrosoftOAuth, decode_state, get_microsoft_oauth
from cycle_wellness.auth.session import create_session_token
from cycle_wellness.auth.tokens import TokenService
from cycle_wellness.config import get_settings
from cycle_wellness.database.connection import get_db_session
from cycle_wellness.database.models import TokenProvider, User, UserProfile

logger = logging.getLogger(__name__)

router = APIRouter()

STATE_TTL_SECONDS = 600


class UserResponse(BaseModel):
    id: str
    email: str
    name: str | None
    picture_url: str | None
    is_admin: bool
    google_connected: bool = False
    outlook_connected: bool = False


class AuthStatusResponse(BaseModel):
    authenticated: bool
    user: UserResponse | None = None


class AuthorizeResponse(BaseModel):
    auth_url: str


# Pending login states (single-instance; use a shared store when scaling out)
_oauth_states: dict[str, datetime] = {}


def _generate_state() -> str:
    state = secrets.token_urlsafe(32)
    _oauth_states[state] = datetime.now(timezone.utc)
    return state


def _verify_state(state: str) -> bool:
    """Verify and consume a state token."""
    created = _oauth_states.pop(state, None)
    if created is None:
        return False
    age = (datetime.now(timezone.utc) - created).total_seconds()
    return age < STATE_TTL_SECONDS


@router.get("/login")
async def login(
    oauth: GoogleOAuth = Depends(get_google_oauth),
) -> RedirectResponse:
    """Redirect to Google's consent screen."""
    if not oauth.is_configured:
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail="Google OAuth not configured",
        )
    return RedirectResponse(url=oauth.get_authorization_url(state=_generate_state()))


@router.get("/google/callback")
async def google_callback(
    code: str,
    state: str,
    oauth: GoogleOAuth = Depends(get_google_oauth),
    db: AsyncSession = Depends(get_db_session),
) -> RedirectResponse:
    """Finish Google login: upsert the user and profile, store tokens, set the session."""
    settings = get_settings()

    if not _verify_state(state):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired state token",
        )

    try:
        tokens = await oauth.exchange_code(code)
        user_info = await oauth.get_user_info(tokens.access_token)
    except ValueError as e:
        logger.error(f"Google login failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Failed to complete Google sign-in",
        )

    result = await db.execute(select(User).where(User.google_id == user_info.id))
    user = result.scalar_one_or_none()
    now = datetime.now(timezone.utc)

    if user:
        user.email = user_info.email
        user.name = user_info.name
        user.picture_url = user_info.picture
        user.last_login_at = now
    else:
        user = User(
            google_id=user_info.id,
            email=user_info.email,
            name=user_info.name,
            picture_url=user_info.picture,
            last_login_at=now,
        )
        db.add(user)
        await db.flush()
        db.add(UserProfile(user_id=user.id))

    await TokenService(db).store_tokens(
        user.id, TokenProvider.GOOGLE, tokens, provider_user_id=user_info.id
    )

    redirect = RedirectResponse(url="/", status_code=status.HTTP_302_FOUND)
    redirect.set_cookie(
        key=settings.session_cookie_name,
        value=create_session_token(user.id),
        max_age=settings.session_max_age_seconds,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )

    logger.info(f"User {user.email} logged in")
    return redirect


@router.get("/microsoft/authorize", response_model=AuthorizeResponse)
async def microsoft_authorize(
    user: User = Depends(get_current_user),
    oauth: MicrosoftOAuth = Depends(get_microsoft_oauth),
) -> AuthorizeResponse:
    """Consent URL for connecting an Outlook calendar."""
    if not oauth.is_configured:
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail="Microsoft OAuth not configured",
        )
    return AuthorizeResponse(auth_url=oauth.get_authorization_url(user.id))


@router.get("/microsoft/callback")
async def microsoft_callback(
    state: str,
    code: str | None = None,
    error: str | None = None,
    oauth: MicrosoftOAuth = Depends(get_microsoft_oauth),
    db: AsyncSession = Depends(get_db_session),
) -> RedirectResponse:
    """Store Outlook tokens for the user named in `state`."""
    if error:
        logger.warning(f"Microsoft authorization declined: {error}")
        return RedirectResponse(url="/?outlook=error", status_code=status.HTTP_302_FOUND)

    try:
        user_id = decode_state(state)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid OAuth state",
        )

    user = await db.get(User, user_id)
    if user is None or not code:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid OAuth callback",
        )

    try:
        tokens = await oauth.exchange_code(code)
        user_info = await oauth.get_user_info(tokens.access_token)
    except ValueError as e:
        logger.error(f"Outlook connection failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Failed to connect Outlook calendar",
        )

    user.microsoft_id = user_info.id
    await TokenService(db).store_tokens(
        user.id, TokenProvider.MICROSOFT, tokens, provider_user_id=user_info.id
    )

    logger.info(f"User {user.email} connected Outlook")
    return RedirectResponse(url="/?outlook=connected", status_code=status.HTTP_302_FOUND)


@router.post("/logout")
async def logout(
    response: Response,
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    """Clear the session cookie."""
    settings = get_settings()

    if user:
        logger.info(f"User {user.email} logged out")

    response.delete_cookie(
        key=settings.session_cookie_name,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )
    return {"status": "logged_out"}


@router.delete("/connections/{provider}")
async def disconnect_provider(
    provider: TokenProvider,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Remove a connected calendar account (Google grants are revoked)."""
    if not await TokenService(db).disconnect(user.id, provider):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{provider.value} is not connected",
        )
    return {"status": "disconnected", "provider": provider.value}


@router.get("/me", response_model=AuthStatusResponse)
async def get_auth_status(
    user: User | None = Depends(get_current_user_optional),
    db: AsyncSession = Depends(get_db_session),
) -> AuthStatusResponse:
    if not user:
        return AuthStatusResponse(authenticated=False)

    tokens = TokenService(db)
    return AuthStatusResponse(
        authenticated=True,
        user=UserResponse(
            id=str(user.id),
            email=user.email,
            name=user.name,
            picture_url=user.picture_url,
            is_admin=user.is_admin,
            google_connected=await tokens.has_tokens(user.id, TokenProvider.GOOGLE),
            outlook_connected=await tokens.has_tokens(user.id, TokenProvider.MICROSOFT),
        ),
    )
