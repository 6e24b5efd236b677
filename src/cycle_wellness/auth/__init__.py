"""Authentication and provider access.

## OAuth Flows

- **Google** signs the user in. The same grant covers Calendar and Gmail,
  so one consent screen connects everything the service needs from Google.
- **Microsoft** connects an Outlook calendar to an account that is already
  signed in. The user id is carried through the redirect in `state`.

Provider tokens are stored encrypted and refreshed automatically by
`TokenService` shortly before they expire.

## Security

- All provider tokens are encrypted at rest
- Sessions are signed JWTs in HTTP-only cookies
- Scheduled job endpoints require `Authorization: Bearer <CRON_SECRET>`
"""

from cycle_wellness.auth.dependencies import (
    get_current_user,
    get_current_user_optional,
    require_admin,
    verify_cron_secret,
)
from cycle_wellness.auth.google import GoogleOAuth, get_google_oauth
from cycle_wellness.auth.microsoft import MicrosoftOAuth, get_microsoft_oauth
from cycle_wellness.auth.models import OAuthTokens, OAuthUserInfo, TokenError
from cycle_wellness.auth.session import (
    SessionData,
    create_session_token,
    verify_session_token,
)
from cycle_wellness.auth.tokens import TokenService

__all__ = [
    "GoogleOAuth",
    "MicrosoftOAuth",
    "OAuthTokens",
    "OAuthUserInfo",
    "SessionData",
    "TokenError",
    "TokenService",
    "create_session_token",
    "get_current_user",
    "get_current_user_optional",
    "get_google_oauth",
    "get_microsoft_oauth",
    "require_admin",
    "verify_cron_secret",
    "verify_session_token",
]
