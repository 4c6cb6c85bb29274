"""
Work item read and write service.

Reads go through the per-user query cache; every write invalidates that
user's cached lists and emits a push event.
"""

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from workos.config import settings
from workos.infrastructure.observability.logging import get_logger
from workos.models.domain.work_item_domain import NewWorkItem, WorkItem
from workos.repositories.work_item_repository import WorkItemRepository
from workos.services.date_filters import DateFilterBuilder
from workos.services.events import EventPublisher
from workos.services.query_cache import QueryCache, make_cache_key
from workos.services.record_validator import is_valid_stored_item
from workos.utils.dates import ensure_utc, validate_date_range

logger = get_logger(__name__)


class WorkItemNotFoundError(Exception):
    """Raised when an item does not exist or belongs to another user."""

    def __init__(self, item_id: int):
        super().__init__(f"Work item {item_id} not found")
        self.item_id = item_id


class WorkItemConflictError(Exception):
    """Raised when a manual create collides with an existing source id."""


@dataclass
class WorkItemQuery:
    limit: int | None = None
    offset: int | None = None
    classification: str | None = None
    is_completed: bool | None = None
    start: datetime | None = None
    end: datetime | None = None
    include_undated: bool = False


def _validate_user_id(user_id: Any) -> None:
    if not isinstance(user_id, int) or isinstance(user_id, bool) or user_id <= 0:
        raise ValueError(f"Invalid user id: {user_id!r}")


class WorkItemService:
    def __init__(
        self,
        repository: WorkItemRepository,
        cache: QueryCache,
        events: EventPublisher,
        filter_builder: DateFilterBuilder | None = None,
    ):
        self.repository = repository
        self.cache = cache
        self.events = events
        self.filter_builder = filter_builder or DateFilterBuilder()

    async def list_work_items(self, user_id: int, query: WorkItemQuery | None = None) -> list[WorkItem]:
        """
        List a user's work items, most urgent first.

        Raises:
            ValueError: If user_id is not a positive integer
            InvalidDateRangeError: If start >= end
        """
        query = query or WorkItemQuery()
        _validate_user_id(user_id)

        start = ensure_utc(query.start) if query.start else None
        end = ensure_utc(query.end) if query.end else None
        validate_date_range(start, end)

        limit = query.limit or settings.DEFAULT_PAGE_SIZE
        offset = query.offset or 0
        include_undated = query.include_undated and start is None and end is None

        cache_key = make_cache_key(
            user_id,
            limit,
            offset,
            query.classification,
            query.is_completed,
            start,
            end,
            include_undated,
        )
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug("Work item cache hit", user_id=user_id, cache_key=cache_key)
            return cached

        predicates = [] if include_undated else self.filter_builder.build(start, end)

        started = time.monotonic()
        rows = await self.repository.list_rows(
            user_id,
            predicates,
            classification=query.classification,
            is_completed=query.is_completed,
            limit=limit,
            offset=offset,
        )
        elapsed_ms = (time.monotonic() - started) * 1000
        if elapsed_ms > settings.SLOW_QUERY_MS:
            logger.warning("Slow work item query", user_id=user_id, duration_ms=round(elapsed_ms, 1))

        items = self._rows_to_items(rows)
        self.cache.put(cache_key, items)

        logger.debug(
            "Work items listed",
            user_id=user_id,
            count=len(items),
            duration_ms=round(elapsed_ms, 1),
        )
        return items

    def _rows_to_items(self, rows: list[dict[str, Any]]) -> list[WorkItem]:
        items = []
        for row in rows:
            if not is_valid_stored_item(row):
                logger.warning("Skipping corrupt work item row", row_id=row.get("id") if row else None)
                continue
            try:
                items.append(WorkItem.from_row(row))
            except ValidationError as e:
                logger.warning("Skipping unreadable work item row", row_id=row.get("id"), error=str(e))
        return items

    async def get_work_item(self, user_id: int, item_id: int) -> WorkItem:
        row = await self.repository.get_by_id(item_id)
        if row is None or row.get("user_id") != user_id:
            raise WorkItemNotFoundError(item_id)
        return WorkItem.from_row(row)

    async def create_work_item(self, item: NewWorkItem) -> WorkItem:
        row = await self.repository.insert_if_absent(item)
        if row is None:
            raise WorkItemConflictError(
                f"Work item already exists for {item.source_type} source {item.source_id}"
            )

        created = WorkItem.from_row(row)
        await self._after_write(created.user_id, "item_created", created.model_dump(mode="json"))
        return created

    async def update_work_item(self, user_id: int, item_id: int, changes: dict[str, Any]) -> WorkItem:
        await self.get_work_item(user_id, item_id)

        row = await self.repository.update(item_id, changes)
        if row is None:
            raise WorkItemNotFoundError(item_id)

        updated = WorkItem.from_row(row)
        await self._after_write(user_id, "item_updated", updated.model_dump(mode="json"))
        return updated

    async def complete_work_item(self, user_id: int, item_id: int) -> WorkItem:
        return await self.update_work_item(user_id, item_id, {"is_completed": True})

    async def snooze_work_item(self, user_id: int, item_id: int, until: datetime) -> WorkItem:
        return await self.update_work_item(
            user_id, item_id, {"is_snoozed": True, "snooze_until": ensure_utc(until)}
        )

    async def delete_work_item(self, user_id: int, item_id: int) -> None:
        await self.get_work_item(user_id, item_id)

        owner_id = await self.repository.delete(item_id)
        if owner_id is None:
            raise WorkItemNotFoundError(item_id)

        await self._after_write(user_id, "item_deleted", {"id": item_id})

    async def _after_write(self, user_id: int, event_type: str, data: Any) -> None:
        self.cache.invalidate_user(user_id)
        await self.events.publish(user_id, event_type, data)
