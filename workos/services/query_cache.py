"""
Short-lived in-memory cache for work-item list queries.

Entries expire lazily after the TTL and are dropped wholesale for a user on any
change to that user's items. The cache is process-local; the push-update
channel covers clients that need fresher data than the TTL allows.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from workos.infrastructure.observability.logging import get_logger
from workos.models.domain.work_item_domain import WorkItem

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 10.0
DEFAULT_LIMIT = 50


@dataclass(slots=True)
class CacheEntry:
    key: str
    items: list[WorkItem]
    stored_at: float


def make_cache_key(
    user_id: int,
    limit: int | None = None,
    offset: int | None = None,
    classification: str | None = None,
    is_completed: bool | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    include_undated: bool = False,
) -> str:
    """Deterministic key; always starts with "{user_id}-" so invalidation can match by prefix."""
    parts = [
        str(user_id),
        str(limit or DEFAULT_LIMIT),
        str(offset or 0),
        classification or "all",
        "all" if is_completed is None else str(is_completed).lower(),
        start.isoformat() if start else "all",
        end.isoformat() if end else "all",
    ]
    if include_undated:
        parts.append("undated")
    return "-".join(parts)


class QueryCache:
    """Per-process query cache owned by the application container."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> list[WorkItem] | None:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        if self._clock() - entry.stored_at >= self.ttl_seconds:
            self._entries.pop(key, None)
            self._misses += 1
            return None

        self._hits += 1
        return list(entry.items)

    def put(self, key: str, items: list[WorkItem]) -> None:
        self._entries[key] = CacheEntry(key=key, items=list(items), stored_at=self._clock())

    def invalidate_user(self, user_id: int) -> int:
        prefix = f"{user_id}-"
        stale_keys = [key for key in self._entries if key.startswith(prefix)]
        for key in stale_keys:
            del self._entries[key]

        if stale_keys:
            logger.debug("Query cache cleared for user", user_id=user_id, entries=len(stale_keys))
        return len(stale_keys)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> dict[str, int | float]:
        return {
            "entries": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "ttl_seconds": self.ttl_seconds,
        }
