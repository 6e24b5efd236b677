"""Microsoft Graph calendar client.

## API Documentation

https://learn.microsoft.com/graph/api/resources/calendar

## Time Zones

Graph returns `start.dateTime` without an offset, in the zone named by
`start.timeZone` (UTC unless a `Prefer: outlook.timezone` header is sent).
Requests here always ask for UTC.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from cycle_wellness.providers.base import RestProvider

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
UTC_PREFERENCE = {"Prefer": 'outlook.timezone="UTC"'}


def parse_graph_datetime(value: dict[str, Any] | None) -> datetime | None:
    """Parse a Graph `dateTimeTimeZone` object into an aware UTC datetime."""
    if not value or not value.get("dateTime"):
        return None
    raw = value["dateTime"]
    # Graph sends 7 fractional digits
    if "." in raw:
        head, fraction = raw.split(".", 1)
        raw = f"{head}.{fraction[:6]}"
    parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_graph_datetime(value: datetime) -> dict[str, str]:
    utc = value.astimezone(timezone.utc) if value.tzinfo else value
    return {"dateTime": utc.strftime("%Y-%m-%dT%H:%M:%S"), "timeZone": "UTC"}


@dataclass
class OutlookEvent:
    """An event from an Outlook calendar."""

    id: str
    subject: str
    body_preview: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    is_all_day: bool = False
    attendees: list[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> OutlookEvent:
        return cls(
            id=data["id"],
            subject=data.get("subject") or "(No title)",
            body_preview=data.get("bodyPreview"),
            start=parse_graph_datetime(data.get("start")),
            end=parse_graph_datetime(data.get("end")),
            is_all_day=bool(data.get("isAllDay")),
            attendees=attendee_emails(data),
        )


def attendee_emails(data: dict[str, Any]) -> list[str]:
    emails = []
    for attendee in data.get("attendees") or []:
        address = (attendee.get("emailAddress") or {}).get("address")
        if address:
            emails.append(address)
    return emails


class OutlookCalendarClient(RestProvider):
    """Client for the signed-in user's default Outlook calendar.

    Example:
        ```python
        async with OutlookCalendarClient(access_token) as outlook:
            events = await outlook.calendar_view(start, end)
        ```
    """

    name = "microsoft"
    base_url = GRAPH_BASE_URL

    async def calendar_view(self, start: datetime, end: datetime) -> list[OutlookEvent]:
        """Events (with recurrences expanded) between `start` and `end`."""
        params: dict[str, Any] | None = {
            "startDateTime": start.astimezone(timezone.utc).isoformat(),
            "endDateTime": end.astimezone(timezone.utc).isoformat(),
            "$orderby": "start/dateTime",
            "$top": 100,
        }
        path = "/me/calendarView"
        events: list[OutlookEvent] = []

        while True:
            data = await self._request("GET", path, params=params, headers=UTC_PREFERENCE)
            events.extend(OutlookEvent.from_api(item) for item in data.get("value", []))

            next_link = data.get("@odata.nextLink")
            if not next_link:
                break
            # nextLink is absolute and already carries the query
            path = next_link.removeprefix(self.base_url)
            params = None

        return events

    async def get_event(self, event_id: str) -> OutlookEvent:
        data = await self._request("GET", f"/me/events/{event_id}", headers=UTC_PREFERENCE)
        return OutlookEvent.from_api(data)

    async def create_event(
        self,
        subject: str,
        start: datetime,
        end: datetime,
        body: str | None = None,
    ) -> OutlookEvent:
        payload: dict[str, Any] = {
            "subject": subject,
            "start": format_graph_datetime(start),
            "end": format_graph_datetime(end),
        }
        if body:
            payload["body"] = {"contentType": "text", "content": body}

        data = await self._request("POST", "/me/events", json=payload)
        logger.info(f"Created Outlook event {data.get('id')}")
        return OutlookEvent.from_api(data)

    async def update_event(
        self,
        event_id: str,
        subject: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        body: str | None = None,
    ) -> OutlookEvent:
        """Patch only the given fields."""
        payload: dict[str, Any] = {}
        if subject is not None:
            payload["subject"] = subject
        if start is not None:
            payload["start"] = format_graph_datetime(start)
        if end is not None:
            payload["end"] = format_graph_datetime(end)
        if body is not None:
            payload["body"] = {"contentType": "text", "content": body}

        data = await self._request("PATCH", f"/me/events/{event_id}", json=payload)
        return OutlookEvent.from_api(data)

    async def delete_event(self, event_id: str) -> None:
        await self._request("DELETE", f"/me/events/{event_id}")

    async def get_attendees(self, event_id: str) -> list[str]:
        data = await self._request(
            "GET", f"/me/events/{event_id}", params={"$select": "attendees"}
        )
        return attendee_emails(data)

    async def get_mailbox_timezone(self) -> str | None:
        data = await self._request("GET", "/me/mailboxSettings")
        return data.get("timeZone")
