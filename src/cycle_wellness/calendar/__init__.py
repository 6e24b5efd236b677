"""Calendar integration.

Google Calendar (googleapiclient) and Outlook (Microsoft Graph) events are
imported into the local `events` table and kept in step when the user
edits, moves or deletes them here.

## Features

- Import the coming week of events with advice for each one
- Create, update, move and delete events with write-through
- Google push notifications trigger a background import
"""

from cycle_wellness.calendar.events import (
    EventChanges,
    EventNotFoundError,
    EventService,
    ProviderSyncStatus,
)
from cycle_wellness.calendar.google_calendar import CalendarEvent, GoogleCalendarClient
from cycle_wellness.calendar.outlook import OutlookCalendarClient, OutlookEvent
from cycle_wellness.calendar.sync import (
    CalendarAccessError,
    CalendarSyncService,
    SyncResult,
)
from cycle_wellness.calendar.watch import (
    CalendarWatchService,
    NotificationAction,
    background_google_sync,
)

__all__ = [
    "CalendarAccessError",
    "CalendarEvent",
    "CalendarSyncService",
    "CalendarWatchService",
    "EventChanges",
    "EventNotFoundError",
    "EventService",
    "GoogleCalendarClient",
    "NotificationAction",
    "OutlookCalendarClient",
    "OutlookEvent",
    "ProviderSyncStatus",
    "SyncResult",
    "background_google_sync",
]
