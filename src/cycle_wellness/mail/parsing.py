"""Gmail payload helpers.

Gmail encodes message bodies and Pub/Sub notification data as base64
(base64url for bodies). These helpers turn them into text and back.
"""

from __future__ import annotations

import base64
import binascii
import json
from email.message import EmailMessage
from typing import Any


def b64url_decode(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode()).decode("utf-8", errors="replace")


def decode_pubsub_message(envelope: dict[str, Any]) -> tuple[str, str] | None:
    """Extract `(email_address, history_id)` from a Pub/Sub push body.

    Returns None for envelopes without usable data.
    """
    message = envelope.get("message") or {}
    data = message.get("data")
    if not data:
        return None

    try:
        decoded = json.loads(base64.b64decode(data))
    except (binascii.Error, json.JSONDecodeError, UnicodeDecodeError):
        return None

    email_address = decoded.get("emailAddress")
    history_id = decoded.get("historyId")
    if not email_address or history_id is None:
        return None
    return email_address, str(history_id)


def extract_plain_text(payload: dict[str, Any]) -> str:
    """First `text/plain` body in a Gmail message payload (depth first).

    Single-part messages keep their body directly on the payload.
    """
    if payload.get("mimeType", "").startswith("multipart/") or payload.get("parts"):
        for part in payload.get("parts") or []:
            if part.get("mimeType") == "text/plain" and (part.get("body") or {}).get("data"):
                return b64url_decode(part["body"]["data"])
            nested = extract_plain_text(part) if part.get("parts") else ""
            if nested:
                return nested
        return ""

    data = (payload.get("body") or {}).get("data")
    return b64url_decode(data) if data else ""


def header_value(payload: dict[str, Any], name: str) -> str | None:
    for header in payload.get("headers") or []:
        if header.get("name", "").lower() == name.lower():
            return header.get("value")
    return None


def build_raw_message(
    to: list[str],
    subject: str,
    body: str,
    sender: str | None = None,
    in_reply_to: str | None = None,
) -> str:
    """RFC 2822 message encoded as base64url, as `messages.send` expects."""
    message = EmailMessage()
    message["To"] = ", ".join(to)
    message["Subject"] = subject
    if sender:
        message["From"] = sender
    if in_reply_to:
        message["In-Reply-To"] = in_reply_to
        message["References"] = in_reply_to
    message.set_content(body)
    return base64.urlsafe_b64encode(message.as_bytes()).decode()
