"""
Shared HTTP plumbing for message-source API clients.
Handles per-client rate limiting, retry with backoff, Retry-After hints and
the "empty list on failure" contract of fetch().
"""

import asyncio
import time
from datetime import date, datetime

import httpx

from workos.config import settings
from workos.infrastructure.observability.logging import get_logger
from workos.models.domain.source_domain import RawMessage

logger = get_logger(__name__)

RETRY_STATUS_CODES = {429, 500, 502, 503, 504}

# Errors raised while reading a malformed upstream payload
PAYLOAD_ERRORS = (AttributeError, KeyError, TypeError, ValueError)


class SourceAPIError(Exception):
    """Custom exception for message-source API errors."""

    def __init__(
        self,
        message: str,
        source_type: str | None = None,
        error_code: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.source_type = source_type
        self.error_code = error_code
        self.status_code = status_code


class SourceAuthError(SourceAPIError):
    """The access token was rejected; it must be refreshed before retrying."""


class BaseSourceClient:
    """
    Base class for source API clients.

    Subclasses implement `_fetch` and set `source_type`; callers use `fetch`,
    which turns every non-auth failure into an empty result.
    """

    source_type: str = ""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        min_interval: float = 0.0,
        max_attempts: int | None = None,
        backoff_factor: float | None = None,
        max_retry_after: float | None = None,
    ):
        self._client = client or self._create_client()
        self.min_interval = min_interval
        self.max_attempts = max_attempts or settings.SOURCE_MAX_ATTEMPTS
        self.backoff_factor = (
            settings.SOURCE_BACKOFF_FACTOR if backoff_factor is None else backoff_factor
        )
        self.max_retry_after = (
            settings.SOURCE_MAX_RETRY_AFTER_SECONDS if max_retry_after is None else max_retry_after
        )
        self._last_call = 0.0
        self._rate_lock = asyncio.Lock()

    def _create_client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(settings.SOURCE_REQUEST_TIMEOUT)
        limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)
        return httpx.AsyncClient(timeout=timeout, limits=limits)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def _get_auth_headers(self, access_token: str) -> dict:
        return {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }

    async def _respect_rate_limit(self) -> None:
        """Sleep until at least min_interval has passed since the previous call."""
        async with self._rate_lock:
            wait = self.min_interval - (time.monotonic() - self._last_call)
            if wait > 0:
                await asyncio.sleep(wait)
            self._last_call = time.monotonic()

    def _backoff(self, attempt: int) -> float:
        return self.backoff_factor * (2 ** (attempt - 1))

    def _retry_delay(self, response: httpx.Response, attempt: int) -> float:
        """Delay before the next attempt, preferring the server's Retry-After hint."""
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            if retry_after:
                try:
                    return min(max(float(retry_after), 0.0), self.max_retry_after)
                except ValueError:
                    pass
        return self._backoff(attempt)

    async def _request_with_retry(self, method: str, url: str, **kwargs) -> httpx.Response:
        """
        Execute an HTTP request with rate limiting, retry and backoff.

        Raises:
            SourceAuthError: On HTTP 401, without retrying
            SourceAPIError: When retries are exhausted or the request fails
        """
        for attempt in range(1, self.max_attempts + 1):
            await self._respect_rate_limit()
            try:
                response = await self._client.request(method, url, **kwargs)
            except httpx.RequestError as e:
                if attempt >= self.max_attempts:
                    raise SourceAPIError(
                        f"{self.source_type} request failed: {e}", source_type=self.source_type
                    ) from e
                backoff = self._backoff(attempt)
                logger.debug(
                    "Source request error, retrying",
                    source_type=self.source_type,
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
                continue

            if response.status_code == 401:
                raise SourceAuthError(
                    f"{self.source_type} authorization expired. Please reconnect.",
                    source_type=self.source_type,
                    error_code="401",
                    status_code=401,
                )

            if response.status_code in RETRY_STATUS_CODES:
                if attempt >= self.max_attempts:
                    raise SourceAPIError(
                        f"{self.source_type} API unavailable after {attempt} attempts",
                        source_type=self.source_type,
                        error_code=str(response.status_code),
                        status_code=response.status_code,
                    )
                delay = self._retry_delay(response, attempt)
                logger.debug(
                    "Source API retrying request",
                    source_type=self.source_type,
                    attempt=attempt,
                    status_code=response.status_code,
                    delay_seconds=delay,
                )
                await asyncio.sleep(delay)
                continue

            return response

        raise SourceAPIError(f"{self.source_type} retry loop exhausted", source_type=self.source_type)

    def _handle_api_response(self, response: httpx.Response, operation: str) -> dict:
        """Parse a JSON response, raising SourceAPIError on HTTP or format errors."""
        if not response.is_success:
            logger.error(
                "Source API call failed",
                source_type=self.source_type,
                operation=operation,
                status_code=response.status_code,
                response_text=response.text[:200] if response.text else "",
            )
            raise SourceAPIError(
                f"{self.source_type} API error (HTTP {response.status_code})",
                source_type=self.source_type,
                error_code=str(response.status_code),
                status_code=response.status_code,
            )

        try:
            data = response.json() if response.text else {}
        except ValueError as e:
            raise SourceAPIError(
                f"Invalid {self.source_type} response format: {e}", source_type=self.source_type
            ) from e

        if not isinstance(data, dict):
            raise SourceAPIError(
                f"Unexpected {self.source_type} response type: {type(data).__name__}",
                source_type=self.source_type,
            )
        return data

    async def fetch(
        self, access_token: str | None, target_day: datetime | date | None = None
    ) -> list[RawMessage]:
        """
        Fetch raw messages, optionally limited to one UTC day.

        Returns an empty list on a missing token, malformed upstream data or an
        upstream failure after retries.

        Raises:
            SourceAuthError: When the source rejects the token
        """
        if not access_token or not isinstance(access_token, str):
            logger.warning("Missing access token, nothing to fetch", source_type=self.source_type)
            return []

        try:
            messages = await self._fetch(access_token, target_day)
        except SourceAuthError:
            raise
        except (SourceAPIError, *PAYLOAD_ERRORS) as e:
            logger.error(
                "Source fetch failed",
                source_type=self.source_type,
                error=str(e),
                error_type=type(e).__name__,
            )
            return []

        logger.info(
            "Source messages fetched",
            source_type=self.source_type,
            message_count=len(messages),
            target_day=target_day.isoformat() if target_day else None,
        )
        return messages

    async def _fetch(
        self, access_token: str, target_day: datetime | date | None
    ) -> list[RawMessage]:
        raise NotImplementedError
