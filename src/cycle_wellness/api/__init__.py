"""FastAPI application and routes.

## API Structure

- /auth - Google login, Microsoft (Outlook) connection, session
- /api/profile - Profile, cycle data, symptom logs, health import
- /api/energy - Activity catalogue, event impact, daily breakdown, forecast
- /api/wellness - Baseline and AI-refined wellness predictions
- /api/calendars - Calendar import, event CRUD, push notification setup
- /api/ai - Chat, event advice, week planner, event moves
- /api/notifications - In-app reminders
- /webhooks - Google Calendar and Gmail push receivers
- /cron - Scheduled jobs (bearer secret)

## Authentication

Most endpoints require authentication via session cookie.
Sessions are created during OAuth login.
"""

from cycle_wellness.api.app import create_app

__all__ = ["create_app"]
