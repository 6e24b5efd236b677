"""Gmail API client.

Used to send rescheduling proposals to meeting participants and to read
their replies.

## API Documentation

https://developers.google.com/gmail/api/reference/rest

## Push Notifications

`watch` subscribes the inbox to the Pub/Sub topic
`projects/{GOOGLE_CLOUD_PROJECT_ID}/topics/gmail-notifications`. The
subscription pushes to `/webhooks/gmail`; each push carries only the
mailbox address and a history id, so new messages are read through
`list_history`.
"""

from __future__ import annotations

import logging
from typing import Any

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build

from cycle_wellness.mail.parsing import build_raw_message, extract_plain_text

logger = logging.getLogger(__name__)

USER = "me"
TOPIC_NAME = "gmail-notifications"


def topic_for(project_id: str) -> str:
    return f"projects/{project_id}/topics/{TOPIC_NAME}"


class GmailClient:
    """Client for the signed-in user's mailbox.

    Example:
        ```python
        gmail = GmailClient(access_token)
        sent = gmail.send_message(["anna@example.com"], "Subject", "Body")
        thread = gmail.get_thread(sent["threadId"])
        ```
    """

    def __init__(self, access_token: str, service: Any | None = None):
        self.access_token = access_token
        self._service = service or build(
            "gmail",
            "v1",
            credentials=Credentials(token=access_token),
            cache_discovery=False,
        )

    def watch(self, topic: str) -> dict[str, Any]:
        """Start inbox push notifications.

        Returns:
            Response with `historyId` and `expiration`
        """
        body = {"topicName": topic, "labelIds": ["INBOX"], "labelFilterAction": "include"}
        return self._service.users().watch(userId=USER, body=body).execute()

    def list_history(self, start_history_id: str) -> list[dict[str, Any]]:
        """History records since `start_history_id` (all pages)."""
        records: list[dict[str, Any]] = []
        page_token = None
        while True:
            params: dict[str, Any] = {
                "userId": USER,
                "startHistoryId": start_history_id,
                "historyTypes": ["messageAdded"],
            }
            if page_token:
                params["pageToken"] = page_token
            result = self._service.users().history().list(**params).execute()
            records.extend(result.get("history", []))

            page_token = result.get("nextPageToken")
            if not page_token:
                break
        return records

    def get_message(self, message_id: str) -> dict[str, Any]:
        return (
            self._service.users()
            .messages()
            .get(userId=USER, id=message_id, format="full")
            .execute()
        )

    def get_thread(self, thread_id: str) -> dict[str, Any]:
        return (
            self._service.users()
            .threads()
            .get(userId=USER, id=thread_id, format="full")
            .execute()
        )

    def send_message(
        self,
        to: list[str],
        subject: str,
        body: str,
        thread_id: str | None = None,
    ) -> dict[str, Any]:
        """Send a plain-text email.

        Returns:
            Sent message with `id` and `threadId`
        """
        payload: dict[str, Any] = {"raw": build_raw_message(to, subject, body)}
        if thread_id:
            payload["threadId"] = thread_id

        result = self._service.users().messages().send(userId=USER, body=payload).execute()
        logger.info(f"Sent email to {len(to)} recipients, thread {result.get('threadId')}")
        return result

    def new_message_bodies(self, start_history_id: str) -> list[tuple[str, str]]:
        """`(thread_id, plain text)` for each message added since the history id."""
        bodies = []
        for record in self.list_history(start_history_id):
            for added in record.get("messagesAdded", []):
                message_ref = added.get("message") or {}
                message_id = message_ref.get("id")
                if not message_id:
                    continue
                message = self.get_message(message_id)
                text = extract_plain_text(message.get("payload") or {})
                bodies.append((message_ref.get("threadId") or message.get("threadId"), text))
        return bodies
