"""
Gmail API client for message ingestion.
Lists messages (optionally for one UTC day) and fetches their full payloads.
"""

from datetime import date, datetime

import httpx

from workos.config import settings
from workos.infrastructure.observability.logging import get_logger
from workos.models.domain.source_domain import GmailMessage, RawMessage, json_objects
from workos.services.sources.base import PAYLOAD_ERRORS, BaseSourceClient, SourceAPIError
from workos.utils.dates import to_utc_day_bounds

logger = get_logger(__name__)

GMAIL_API_BASE_URL = "https://gmail.googleapis.com/gmail/v1"
GMAIL_USER_ID = "me"
GMAIL_LIST_LIMIT = 500  # Gmail API maximum for maxResults


def gmail_day_query(target_day: datetime | date | str | None) -> str | None:
    """
    Translate a day into a Gmail search query.

    Gmail reads after:/before: dates as YYYY/MM/DD in Pacific time, so the
    UTC day bounds are passed as epoch seconds instead.
    """
    bounds = to_utc_day_bounds(target_day)
    if bounds is None:
        return None
    start, end = bounds
    return f"after:{int(start.timestamp())} before:{int(end.timestamp())}"


class GmailSourceClient(BaseSourceClient):
    """Fetches inbox messages from the Gmail REST API."""

    source_type = "gmail"

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        max_results: int | None = None,
        min_interval: float | None = None,
        **kwargs,
    ):
        super().__init__(
            client=client,
            min_interval=settings.GMAIL_MIN_REQUEST_INTERVAL if min_interval is None else min_interval,
            **kwargs,
        )
        self.max_results = min(max_results or settings.GMAIL_MAX_RESULTS, GMAIL_LIST_LIMIT)

    async def _fetch(
        self, access_token: str, target_day: datetime | date | None
    ) -> list[RawMessage]:
        headers = self._get_auth_headers(access_token)
        params: dict = {"maxResults": self.max_results, "labelIds": ["INBOX"]}

        query = gmail_day_query(target_day) if target_day is not None else None
        if query:
            params["q"] = query

        logger.info("Listing Gmail messages", max_results=self.max_results, query=query)

        response = await self._request_with_retry(
            "GET",
            f"{GMAIL_API_BASE_URL}/users/{GMAIL_USER_ID}/messages",
            headers=headers,
            params=params,
        )
        data = self._handle_api_response(response, "list_messages")

        message_ids = [msg["id"] for msg in json_objects(data.get("messages")) if msg.get("id")]
        if not message_ids:
            logger.info("No Gmail messages found", query=query)
            return []

        messages = []
        for message_id in message_ids:
            try:
                message = await self.get_message(access_token, message_id)
                raw = message.to_raw_message()
            except SourceAPIError as e:
                if e.status_code == 401:
                    raise
                logger.warning("Failed to get Gmail message", message_id=message_id, error=str(e))
                continue
            except PAYLOAD_ERRORS as e:
                logger.warning(
                    "Skipping malformed Gmail message",
                    message_id=message_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue
            messages.append(raw)

        return messages

    async def get_message(self, access_token: str, message_id: str) -> GmailMessage:
        """Get a specific message by ID with its full payload."""
        response = await self._request_with_retry(
            "GET",
            f"{GMAIL_API_BASE_URL}/users/{GMAIL_USER_ID}/messages/{message_id}",
            headers=self._get_auth_headers(access_token),
            params={"format": "full"},
        )
        data = self._handle_api_response(response, "get_message")
        return GmailMessage(data)
