"""
Source message domain models.
Raw messages as delivered by Gmail and Slack, before validation.

Each source stamps its messages with the format of its native timestamp so the
record validator can pick the right parser instead of guessing.
"""

import base64
from dataclasses import dataclass
from typing import Literal

TimestampFormat = Literal["epoch_millis", "epoch_seconds", "iso_8601", "rfc_2822"]


def json_objects(value: object) -> list[dict]:
    """Entries of a JSON list that are objects; anything else yields nothing."""
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, dict)]


def _body_data(part: dict) -> str | None:
    body = part.get("body")
    data = body.get("data") if isinstance(body, dict) else None
    return data if isinstance(data, str) else None


@dataclass(slots=True)
class RawMessage:
    source_type: str
    native_id: str
    subject: str
    body: str
    sender: str
    native_timestamp: str | int | float | None
    timestamp_format: TimestampFormat
    url: str | None = None
    channel: str | None = None


class GmailMessage:
    """Parsed Gmail API message resource."""

    def __init__(self, data: dict):
        self.id = data.get("id")
        self.thread_id = data.get("threadId")
        self.label_ids = data.get("labelIds", [])
        self.snippet = data.get("snippet", "")
        self.internal_date = data.get("internalDate")
        payload = data.get("payload")
        self.payload = payload if isinstance(payload, dict) else {}

        self._parse_headers()
        self._parse_body()

    def _parse_headers(self):
        self.headers = {
            h["name"].lower(): str(h.get("value") or "")
            for h in json_objects(self.payload.get("headers"))
            if isinstance(h.get("name"), str)
        }

        self.subject = self.headers.get("subject", "")
        self.sender = self.headers.get("from", "")
        self.date = self.headers.get("date", "")

    def _parse_body(self):
        self.body_text = ""
        self.body_html = ""

        body_data = _body_data(self.payload)
        if body_data:
            self.body_text = self._decode_base64_data(body_data)
        elif self.payload.get("parts"):
            self._parse_multipart_body(self.payload["parts"])

    def _parse_multipart_body(self, parts: list):
        for part in json_objects(parts):
            mime_type = part.get("mimeType") or ""
            body_data = _body_data(part)

            if mime_type == "text/plain" and body_data and not self.body_text:
                self.body_text = self._decode_base64_data(body_data)
            elif mime_type == "text/html" and body_data and not self.body_html:
                self.body_html = self._decode_base64_data(body_data)
            elif mime_type.startswith("multipart/"):
                self._parse_multipart_body(part.get("parts", []))

    @staticmethod
    def _decode_base64_data(data: str) -> str:
        """Decode base64 URL-safe encoded data."""
        try:
            decoded_bytes = base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))
            return decoded_bytes.decode("utf-8", errors="ignore")
        except (ValueError, TypeError):
            return ""

    @property
    def url(self) -> str:
        return f"https://mail.google.com/mail/u/0/#inbox/{self.thread_id or self.id}"

    def to_raw_message(self) -> RawMessage:
        # internalDate is epoch milliseconds as a string; Date header is the fallback
        if self.internal_date:
            native_timestamp, timestamp_format = self.internal_date, "epoch_millis"
        else:
            native_timestamp, timestamp_format = self.date or None, "rfc_2822"

        return RawMessage(
            source_type="gmail",
            native_id=self.id or "",
            subject=self.subject,
            body=self.body_text or self.snippet,
            sender=self.sender,
            native_timestamp=native_timestamp,
            timestamp_format=timestamp_format,
            url=self.url,
        )


class SlackMessage:
    """Parsed entry of a Slack conversations.history response."""

    def __init__(self, data: dict, channel_id: str, channel_name: str | None = None):
        ts, text = data.get("ts"), data.get("text")
        self.ts = ts if isinstance(ts, str) else None
        self.text = text if isinstance(text, str) else ""
        self.user = data.get("user") or data.get("username") or data.get("bot_id") or ""
        self.subtype = data.get("subtype")
        self.channel_id = channel_id
        self.channel_name = channel_name or channel_id

    @property
    def native_id(self) -> str:
        # ts is only unique within a channel
        return f"{self.channel_id}:{self.ts}" if self.ts else ""

    @property
    def url(self) -> str | None:
        if not self.ts:
            return None
        return f"https://slack.com/archives/{self.channel_id}/p{self.ts.replace('.', '')}"

    def to_raw_message(self) -> RawMessage:
        return RawMessage(
            source_type="slack",
            native_id=self.native_id,
            subject=f"#{self.channel_name}",
            body=self.text,
            sender=self.user,
            native_timestamp=self.ts,
            timestamp_format="epoch_seconds",
            url=self.url,
            channel=self.channel_name,
        )
