from datetime import UTC, datetime, timedelta

import pytest

from tests.fakes import TEST_USER_ID
from workos.models.domain.work_item_domain import NewWorkItem
from workos.services.date_filters import DateFilterBuilder
from workos.services.query_cache import QueryCache
from workos.services.work_item_service import (
    WorkItemConflictError,
    WorkItemNotFoundError,
    WorkItemQuery,
    WorkItemService,
)
from workos.utils.dates import InvalidDateRangeError

NOW = datetime(2025, 7, 25, 15, 0, tzinfo=UTC)
DAY = datetime(2025, 7, 25, tzinfo=UTC)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(repository, event_bus, clock):
    return WorkItemService(
        repository,
        QueryCache(ttl_seconds=10, clock=clock),
        event_bus,
        filter_builder=DateFilterBuilder(now=lambda: NOW),
    )


@pytest.mark.asyncio
async def test_list_filters_by_date_range(service, repository):
    repository.add_row(source_id="a", source_date=datetime(2025, 7, 24, 10, tzinfo=UTC))
    repository.add_row(source_id="b", source_date=datetime(2025, 7, 25, 1, tzinfo=UTC))
    repository.add_row(source_id="c", source_date=None)

    items = await service.list_work_items(TEST_USER_ID, WorkItemQuery(start=DAY, end=DAY + timedelta(days=1)))

    assert [item.source_id for item in items] == ["b"]


@pytest.mark.asyncio
async def test_list_orders_by_urgency_then_recency(service, repository):
    repository.add_row(source_id="low", urgency_score=1, source_date=DAY)
    repository.add_row(source_id="high", urgency_score=5, source_date=DAY)

    items = await service.list_work_items(TEST_USER_ID)

    assert [item.source_id for item in items] == ["high", "low"]


@pytest.mark.asyncio
async def test_include_undated_lists_items_without_source_date(service, repository):
    repository.add_row(source_id="dated", source_date=DAY)
    repository.add_row(source_id="undated", source_date=None)

    default = await service.list_work_items(TEST_USER_ID)
    everything = await service.list_work_items(TEST_USER_ID, WorkItemQuery(include_undated=True))

    assert {item.source_id for item in default} == {"dated"}
    assert {item.source_id for item in everything} == {"dated", "undated"}


@pytest.mark.asyncio
async def test_inverted_range_is_rejected(service, repository):
    with pytest.raises(InvalidDateRangeError):
        await service.list_work_items(TEST_USER_ID, WorkItemQuery(start=DAY, end=DAY))

    assert repository.list_calls == 0


@pytest.mark.asyncio
async def test_invalid_user_id_is_rejected(service):
    with pytest.raises(ValueError):
        await service.list_work_items(0)


@pytest.mark.asyncio
async def test_cache_hit_within_ttl_skips_storage(service, repository, clock):
    repository.add_row(source_date=DAY)

    await service.list_work_items(TEST_USER_ID)
    clock.now = 5
    await service.list_work_items(TEST_USER_ID)
    assert repository.list_calls == 1

    clock.now = 10
    await service.list_work_items(TEST_USER_ID)
    assert repository.list_calls == 2


@pytest.mark.asyncio
async def test_corrupt_rows_are_skipped(service, repository):
    repository.add_row(source_id="good", source_date=DAY)
    bad = repository.add_row(source_id="bad", source_date=DAY)
    bad["id"] = -1

    items = await service.list_work_items(TEST_USER_ID)

    assert [item.source_id for item in items] == ["good"]


@pytest.mark.asyncio
async def test_complete_invalidates_cache_and_emits_event(service, repository, event_bus):
    row = repository.add_row(source_date=DAY)
    await service.list_work_items(TEST_USER_ID)

    item = await service.complete_work_item(TEST_USER_ID, row["id"])
    await service.list_work_items(TEST_USER_ID)

    assert item.is_completed is True
    assert repository.list_calls == 2
    assert event_bus.types() == ["item_updated"]


@pytest.mark.asyncio
async def test_snooze_sets_until(service, repository):
    row = repository.add_row(source_date=DAY)
    until = datetime(2025, 7, 26, 9, tzinfo=UTC)

    item = await service.snooze_work_item(TEST_USER_ID, row["id"], until)

    assert item.is_snoozed is True
    assert item.snooze_until == until


@pytest.mark.asyncio
async def test_other_users_item_is_not_found(service, repository):
    row = repository.add_row(user_id=99, source_date=DAY)

    with pytest.raises(WorkItemNotFoundError):
        await service.get_work_item(TEST_USER_ID, row["id"])
    with pytest.raises(WorkItemNotFoundError):
        await service.delete_work_item(TEST_USER_ID, row["id"])

    assert row["id"] in repository.rows


@pytest.mark.asyncio
async def test_delete_removes_item_and_emits_event(service, repository, event_bus):
    row = repository.add_row(source_date=DAY)

    await service.delete_work_item(TEST_USER_ID, row["id"])

    assert repository.rows == {}
    assert event_bus.events == [(TEST_USER_ID, "item_deleted", {"id": row["id"]})]


@pytest.mark.asyncio
async def test_create_rejects_duplicate_source(service, event_bus):
    item = NewWorkItem(
        user_id=TEST_USER_ID,
        source_type="slack",
        source_id="C1:1.0",
        classification="urgent",
        summary="Deploy is blocked",
    )

    created = await service.create_work_item(item)
    with pytest.raises(WorkItemConflictError):
        await service.create_work_item(item)

    assert created.id > 0
    assert event_bus.types() == ["item_created"]
