"""
Slack Web API client for message ingestion.
Reads conversations.history across the user's conversations.
"""

from datetime import date, datetime, timedelta

import httpx

from workos.config import settings
from workos.infrastructure.observability.logging import get_logger
from workos.models.domain.source_domain import RawMessage, SlackMessage, json_objects
from workos.services.sources.base import BaseSourceClient, SourceAPIError, SourceAuthError
from workos.utils.dates import to_utc_day_bounds

logger = get_logger(__name__)

SLACK_API_BASE_URL = "https://slack.com/api"
SLACK_CONVERSATION_TYPES = "public_channel,private_channel,im,mpim"

# Slack reports token problems as HTTP 200 with ok=false
SLACK_AUTH_ERRORS = {
    "invalid_auth",
    "not_authed",
    "token_expired",
    "token_revoked",
    "account_inactive",
}


def slack_day_window(target_day: datetime | date | str | None) -> dict[str, str] | None:
    """
    Translate a day into conversations.history oldest/latest parameters.

    Slack's `inclusive` flag applies to both ends, so the exclusive end of the
    UTC day is expressed as one microsecond before midnight.
    """
    bounds = to_utc_day_bounds(target_day)
    if bounds is None:
        return None
    start, end = bounds
    latest = end - timedelta(microseconds=1)
    return {
        "oldest": f"{start.timestamp():.6f}",
        "latest": f"{latest.timestamp():.6f}",
        "inclusive": "true",
    }


class SlackSourceClient(BaseSourceClient):
    """Fetches recent channel and DM messages from Slack."""

    source_type = "slack"

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        max_messages: int | None = None,
        max_channels: int | None = None,
        min_interval: float | None = None,
        **kwargs,
    ):
        super().__init__(
            client=client,
            min_interval=settings.SLACK_MIN_REQUEST_INTERVAL if min_interval is None else min_interval,
            **kwargs,
        )
        self.max_messages = max_messages or settings.SLACK_MAX_MESSAGES
        self.max_channels = max_channels or settings.SLACK_MAX_CHANNELS

    def _check_slack_payload(self, data: dict, operation: str) -> dict:
        if data.get("ok"):
            return data

        error_code = data.get("error", "unknown_error")
        if error_code in SLACK_AUTH_ERRORS:
            raise SourceAuthError(
                "Slack authorization expired. Please reconnect.",
                source_type=self.source_type,
                error_code=error_code,
                status_code=401,
            )
        raise SourceAPIError(
            f"Slack {operation} failed: {error_code}",
            source_type=self.source_type,
            error_code=error_code,
        )

    async def _call(self, access_token: str, method: str, params: dict) -> dict:
        response = await self._request_with_retry(
            "GET",
            f"{SLACK_API_BASE_URL}/{method}",
            headers=self._get_auth_headers(access_token),
            params=params,
        )
        data = self._handle_api_response(response, method)
        return self._check_slack_payload(data, method)

    async def list_conversations(self, access_token: str) -> list[dict]:
        data = await self._call(
            access_token,
            "users.conversations",
            {
                "types": SLACK_CONVERSATION_TYPES,
                "exclude_archived": "true",
                "limit": self.max_channels,
            },
        )
        return json_objects(data.get("channels"))[: self.max_channels]

    async def _fetch(
        self, access_token: str, target_day: datetime | date | None
    ) -> list[RawMessage]:
        window = slack_day_window(target_day) if target_day is not None else None

        conversations = await self.list_conversations(access_token)
        logger.info("Reading Slack conversations", conversation_count=len(conversations), window=window)

        collected: list[tuple[float, RawMessage]] = []
        for conversation in conversations:
            channel_id = conversation.get("id")
            if not channel_id:
                continue

            params = {"channel": channel_id, "limit": self.max_messages}
            if window:
                params.update(window)

            try:
                data = await self._call(access_token, "conversations.history", params)
            except SourceAuthError:
                raise
            except SourceAPIError as e:
                logger.warning("Failed to read Slack conversation", channel=channel_id, error=str(e))
                continue

            channel_name = conversation.get("name") or conversation.get("user") or channel_id
            for entry in json_objects(data.get("messages")):
                message = SlackMessage(entry, channel_id, channel_name)
                try:
                    sort_key = float(message.ts or 0)
                except ValueError:
                    sort_key = 0.0
                collected.append((sort_key, message.to_raw_message()))

        # Most recent first, bounded like a single page
        collected.sort(key=lambda pair: pair[0], reverse=True)
        return [message for _, message in collected[: self.max_messages]]
