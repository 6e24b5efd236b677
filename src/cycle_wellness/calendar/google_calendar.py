"""Google Calendar API client.

Works on the user's primary calendar:
- List, get, insert, patch and delete events
- Find an event by title and start time (for events created elsewhere)
- Watch for changes (webhooks)

## API Documentation

https://developers.google.com/calendar/api/v3/reference

## Authentication

Takes an access token that `TokenService` has already refreshed. On an
expired token the API raises `HttpError` with status 401; callers refresh
and retry.

## Rate Limits

- 1,000,000 queries per day (default)
- 500 queries per 100 seconds per user
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

logger = logging.getLogger(__name__)

PRIMARY_CALENDAR = "primary"
WATCH_TTL = timedelta(days=7)


def http_status(error: HttpError) -> int:
    """Status code of a googleapiclient error."""
    return int(getattr(error.resp, "status", 0) or 0)


def parse_google_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class CalendarEvent:
    """A Google Calendar event."""

    id: str
    summary: str
    description: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    start_date: str | None = None  # All-day events (YYYY-MM-DD)
    end_date: str | None = None
    is_all_day: bool = False
    status: str = "confirmed"
    attendees: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> CalendarEvent:
        start_data = data.get("start", {})
        end_data = data.get("end", {})
        is_all_day = "date" in start_data

        return cls(
            id=data["id"],
            summary=data.get("summary", "(No title)"),
            description=data.get("description"),
            start=None if is_all_day else parse_google_datetime(start_data.get("dateTime")),
            end=None if is_all_day else parse_google_datetime(end_data.get("dateTime")),
            start_date=start_data.get("date"),
            end_date=end_data.get("date"),
            is_all_day=is_all_day,
            status=data.get("status", "confirmed"),
            attendees=data.get("attendees", []),
        )

    @property
    def attendee_emails(self) -> list[str]:
        return [a["email"] for a in self.attendees if a.get("email")]


def event_time(value: datetime) -> dict[str, str]:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return {"dateTime": value.isoformat()}


class GoogleCalendarClient:
    """Client for the Google Calendar API.

    Example:
        ```python
        client = GoogleCalendarClient(access_token)
        events = client.list_events(time_min, time_max)
        created = client.insert_event("Йога", start, end)
        client.patch_event(created.id, start=new_start, end=new_end)
        ```
    """

    def __init__(self, access_token: str, service: Any | None = None):
        self.access_token = access_token
        self._service = service or build(
            "calendar",
            "v3",
            credentials=Credentials(token=access_token),
            cache_discovery=False,
        )

    def list_events(
        self,
        time_min: datetime,
        time_max: datetime,
        calendar_id: str = PRIMARY_CALENDAR,
        max_results: int = 250,
        query: str | None = None,
    ) -> list[CalendarEvent]:
        """Single (expanded) events between `time_min` and `time_max`."""
        params: dict[str, Any] = {
            "calendarId": calendar_id,
            "timeMin": time_min.isoformat(),
            "timeMax": time_max.isoformat(),
            "maxResults": max_results,
            "singleEvents": True,
            "orderBy": "startTime",
        }
        if query:
            params["q"] = query

        events = []
        page_token = None
        while True:
            if page_token:
                params["pageToken"] = page_token
            result = self._service.events().list(**params).execute()

            for item in result.get("items", []):
                if item.get("status") == "cancelled":
                    continue
                events.append(CalendarEvent.from_api(item))

            page_token = result.get("nextPageToken")
            if not page_token:
                break

        return events

    def get_event(
        self, event_id: str, calendar_id: str = PRIMARY_CALENDAR
    ) -> CalendarEvent | None:
        try:
            result = (
                self._service.events()
                .get(calendarId=calendar_id, eventId=event_id)
                .execute()
            )
        except HttpError as e:
            if http_status(e) == 404:
                return None
            raise
        return CalendarEvent.from_api(result)

    def insert_event(
        self,
        summary: str,
        start: datetime,
        end: datetime,
        description: str | None = None,
        calendar_id: str = PRIMARY_CALENDAR,
    ) -> CalendarEvent:
        body: dict[str, Any] = {
            "summary": summary,
            "start": event_time(start),
            "end": event_time(end),
        }
        if description:
            body["description"] = description

        result = (
            self._service.events().insert(calendarId=calendar_id, body=body).execute()
        )
        logger.info(f"Created Google event {result.get('id')}")
        return CalendarEvent.from_api(result)

    def patch_event(
        self,
        event_id: str,
        summary: str | None = None,
        description: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        calendar_id: str = PRIMARY_CALENDAR,
    ) -> CalendarEvent:
        """Update only the given fields."""
        body: dict[str, Any] = {}
        if summary is not None:
            body["summary"] = summary
        if description is not None:
            body["description"] = description
        if start is not None:
            body["start"] = event_time(start)
        if end is not None:
            body["end"] = event_time(end)

        result = (
            self._service.events()
            .patch(calendarId=calendar_id, eventId=event_id, body=body)
            .execute()
        )
        return CalendarEvent.from_api(result)

    def delete_event(self, event_id: str, calendar_id: str = PRIMARY_CALENDAR) -> None:
        """Delete an event. Already-deleted events are ignored."""
        try:
            self._service.events().delete(
                calendarId=calendar_id, eventId=event_id
            ).execute()
        except HttpError as e:
            if http_status(e) not in (404, 410):
                raise
            logger.debug(f"Google event {event_id} already gone")

    def find_event_id(self, title: str, start: datetime) -> str | None:
        """Find an event with the same title starting within an hour of `start`.

        Searches one day either side of `start`.
        """
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        candidates = self.list_events(
            start - timedelta(days=1), start + timedelta(days=1), query=title
        )
        for event in candidates:
            if event.summary != title or event.start is None:
                continue
            if abs(event.start - start) < timedelta(hours=1):
                return event.id
        return None

    def get_attendees(self, event_id: str) -> list[str]:
        event = self.get_event(event_id)
        return event.attendee_emails if event else []

    def watch_calendar(
        self,
        channel_id: str,
        webhook_url: str,
        token: str,
        expiration: datetime,
        calendar_id: str = PRIMARY_CALENDAR,
    ) -> dict[str, Any]:
        """Subscribe to push notifications.

        Returns:
            Watch response with `resourceId` and `expiration` (epoch ms)
        """
        body = {
            "id": channel_id,
            "type": "web_hook",
            "address": webhook_url,
            "token": token,
            "expiration": int(expiration.timestamp() * 1000),
        }
        return (
            self._service.events().watch(calendarId=calendar_id, body=body).execute()
        )

    def stop_watch(self, channel_id: str, resource_id: str) -> None:
        self._service.channels().stop(
            body={"id": channel_id, "resourceId": resource_id}
        ).execute()
