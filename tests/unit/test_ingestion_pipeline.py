import asyncio
from datetime import UTC, date, datetime

import pytest

from tests.fakes import (
    TEST_USER_ID,
    FakeClassifier,
    FakeCredentialStore,
    FakeSource,
    RecordingEventBus,
    gmail_message,
)
from workos.db.helpers import DatabaseError
from workos.services.dedup_gate import DeduplicationGate
from workos.services.ingestion_pipeline import IngestionPipeline, SourceCredential, SyncService
from workos.services.query_cache import QueryCache, make_cache_key

# 2025-07-25T10:00:00Z
JULY_25_MS = 1753437600000
ONE_DAY_MS = 86_400_000


def _pipeline(repository, classifier, events, source, cache=None):
    return IngestionPipeline(
        sources={source.source_type: source},
        gate=DeduplicationGate(repository),
        classifier=classifier,
        repository=repository,
        cache=cache or QueryCache(),
        events=events,
        batch_size=3,
    )


@pytest.mark.asyncio
async def test_second_run_skips_everything(repository, classifier, event_bus):
    source = FakeSource("gmail", [gmail_message(f"m{i}", JULY_25_MS) for i in range(4)])
    pipeline = _pipeline(repository, classifier, event_bus, source)
    credential = SourceCredential("gmail", "token")

    first = await pipeline.run(TEST_USER_ID, credential)
    second = await pipeline.run(TEST_USER_ID, credential)

    assert (first.created, first.skipped, first.errors) == (4, 0, 0)
    assert (second.created, second.skipped, second.errors) == (0, 4, 0)
    assert len(repository.rows) == 4
    assert len(classifier.calls) == 4


@pytest.mark.asyncio
async def test_classifier_failure_only_affects_one_message(repository, event_bus):
    classifier = FakeClassifier(fail_on={"explode"})
    source = FakeSource(
        "gmail",
        [
            gmail_message("m1", JULY_25_MS, body="first"),
            gmail_message("m2", JULY_25_MS, body="explode"),
            gmail_message("m3", JULY_25_MS, body="third"),
        ],
    )
    pipeline = _pipeline(repository, classifier, event_bus, source)

    result = await pipeline.run(TEST_USER_ID, SourceCredential("gmail", "token"))

    assert (result.created, result.skipped, result.errors) == (2, 0, 1)
    stored = {row["source_id"] for row in repository.rows.values()}
    assert stored == {"m1", "m3"}


@pytest.mark.asyncio
async def test_target_day_keeps_only_messages_on_that_utc_day(repository, classifier, event_bus):
    source = FakeSource(
        "gmail",
        [
            gmail_message("today", JULY_25_MS),
            gmail_message("yesterday", JULY_25_MS - ONE_DAY_MS),
            gmail_message("undated", None),
        ],
    )
    pipeline = _pipeline(repository, classifier, event_bus, source)

    result = await pipeline.run(TEST_USER_ID, SourceCredential("gmail", "token"), date(2025, 7, 25))

    assert result.created == 1
    assert result.filtered == 2
    assert source.calls == [("token", datetime(2025, 7, 25, tzinfo=UTC))]
    (row,) = repository.rows.values()
    assert row["source_id"] == "today"
    assert row["source_date"] == datetime(2025, 7, 25, 10, tzinfo=UTC)


@pytest.mark.asyncio
async def test_without_target_day_undated_messages_are_kept(repository, classifier, event_bus):
    source = FakeSource("gmail", [gmail_message("undated", "not-a-timestamp")])
    pipeline = _pipeline(repository, classifier, event_bus, source)

    result = await pipeline.run(TEST_USER_ID, SourceCredential("gmail", "token"))

    assert result.created == 1
    (row,) = repository.rows.values()
    assert row["source_date"] is None


@pytest.mark.asyncio
async def test_invalid_target_day_disables_date_filter(repository, classifier, event_bus):
    source = FakeSource("gmail", [gmail_message("m1", JULY_25_MS - ONE_DAY_MS)])
    pipeline = _pipeline(repository, classifier, event_bus, source)

    result = await pipeline.run(TEST_USER_ID, SourceCredential("gmail", "token"), "not-a-date")

    assert result.created == 1
    assert source.calls == [("token", None)]


@pytest.mark.asyncio
async def test_empty_body_still_classified_with_content(repository, classifier, event_bus):
    source = FakeSource("gmail", [gmail_message("m1", JULY_25_MS, body="", subject="Reminder")])
    pipeline = _pipeline(repository, classifier, event_bus, source)

    result = await pipeline.run(TEST_USER_ID, SourceCredential("gmail", "token"))

    assert result.created == 1
    content, _ = classifier.calls[0]
    assert content.strip()


@pytest.mark.asyncio
async def test_invalid_messages_are_dropped(repository, classifier, event_bus):
    source = FakeSource("gmail", [gmail_message("", JULY_25_MS), gmail_message("ok", JULY_25_MS)])
    pipeline = _pipeline(repository, classifier, event_bus, source)

    result = await pipeline.run(TEST_USER_ID, SourceCredential("gmail", "token"))

    assert (result.fetched, result.filtered, result.created) == (2, 1, 1)


@pytest.mark.asyncio
async def test_auth_error_is_reported(repository, classifier, event_bus):
    source = FakeSource("gmail", auth_error=True)
    pipeline = _pipeline(repository, classifier, event_bus, source)

    result = await pipeline.run(TEST_USER_ID, SourceCredential("gmail", "token"))

    assert result.errors == 1
    assert result.auth_expired is True
    assert repository.rows == {}


@pytest.mark.asyncio
async def test_missing_credential_is_an_error(repository, classifier, event_bus):
    source = FakeSource("gmail", [gmail_message("m1", JULY_25_MS)])
    pipeline = _pipeline(repository, classifier, event_bus, source)

    assert (await pipeline.run(TEST_USER_ID, None)).errors == 1
    assert (await pipeline.run(TEST_USER_ID, SourceCredential("gmail", ""))).errors == 1
    assert (await pipeline.run(None, SourceCredential("gmail", "token"))).errors == 1
    assert source.calls == []


@pytest.mark.asyncio
async def test_empty_fetch_gives_zero_result(repository, classifier, event_bus):
    pipeline = _pipeline(repository, classifier, event_bus, FakeSource("gmail", []))

    result = await pipeline.run(TEST_USER_ID, SourceCredential("gmail", "token"))

    assert (result.fetched, result.created, result.skipped, result.errors) == (0, 0, 0, 0)
    assert event_bus.events == []


@pytest.mark.asyncio
async def test_lost_insert_race_counts_as_skipped(repository, classifier, event_bus):
    source = FakeSource("gmail", [gmail_message("m1", JULY_25_MS)])
    pipeline = _pipeline(repository, classifier, event_bus, source)

    async def never_exists(*args):
        return False

    async def conflict(item):
        return None

    repository.exists_by_source = never_exists
    repository.insert_if_absent = conflict

    result = await pipeline.run(TEST_USER_ID, SourceCredential("gmail", "token"))

    assert (result.created, result.skipped, result.errors) == (0, 1, 0)


@pytest.mark.asyncio
async def test_storage_failure_counts_as_error(repository, classifier, event_bus):
    source = FakeSource("gmail", [gmail_message("m1", JULY_25_MS), gmail_message("m2", JULY_25_MS)])
    pipeline = _pipeline(repository, classifier, event_bus, source)
    original_insert = repository.insert_if_absent

    async def flaky_insert(item):
        if item.source_id == "m1":
            raise DatabaseError("connection reset", operation="fetch_one")
        return await original_insert(item)

    repository.insert_if_absent = flaky_insert

    result = await pipeline.run(TEST_USER_ID, SourceCredential("gmail", "token"))

    assert (result.created, result.errors) == (1, 1)


@pytest.mark.asyncio
async def test_insert_invalidates_cache_and_emits_events(repository, classifier, event_bus):
    cache = QueryCache()
    cache.put(make_cache_key(TEST_USER_ID), [])
    source = FakeSource("gmail", [gmail_message(f"m{i}", JULY_25_MS) for i in range(4)])
    pipeline = _pipeline(repository, classifier, event_bus, source, cache=cache)

    await pipeline.run(TEST_USER_ID, SourceCredential("gmail", "token"))

    assert cache.get(make_cache_key(TEST_USER_ID)) is None
    assert event_bus.types().count("item_created") == 4
    # 4 messages in batches of 3
    assert event_bus.types().count("sync_progress") == 2


@pytest.mark.asyncio
async def test_sync_user_runs_connected_sources_only(repository, classifier):
    events = RecordingEventBus()
    gmail = FakeSource("gmail", [gmail_message("m1", JULY_25_MS)])
    slack = FakeSource("slack", [])
    pipeline = IngestionPipeline(
        sources={"gmail": gmail, "slack": slack},
        gate=DeduplicationGate(repository),
        classifier=classifier,
        repository=repository,
        cache=QueryCache(),
        events=events,
    )
    credentials = FakeCredentialStore({(TEST_USER_ID, "gmail"): "gmail-token"})
    service = SyncService(pipeline, credentials, events)

    results = await service.sync_user(TEST_USER_ID)

    assert list(results) == ["gmail"]
    assert results["gmail"].created == 1
    assert slack.calls == []
    user_id, event_type, data = events.events[-1]
    assert event_type == "sync_complete"
    assert data["gmail"]["created"] == 1


class ConcurrencyTrackingClassifier(FakeClassifier):
    def __init__(self):
        super().__init__()
        self.in_flight = 0
        self.peak = 0

    async def classify(self, content, source_type):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            # Yield so every message in the batch gets a chance to start
            for _ in range(3):
                await asyncio.sleep(0)
            return await super().classify(content, source_type)
        finally:
            self.in_flight -= 1


@pytest.mark.asyncio
async def test_classifier_calls_are_bounded_by_batch_size(repository, event_bus):
    classifier = ConcurrencyTrackingClassifier()
    source = FakeSource("gmail", [gmail_message(f"m{i}", JULY_25_MS) for i in range(7)])
    pipeline = _pipeline(repository, classifier, event_bus, source)

    result = await pipeline.run(TEST_USER_ID, SourceCredential("gmail", "token"))

    assert result.created == 7
    assert len(classifier.calls) == 7
    assert classifier.peak == pipeline.batch_size == 3


class CancellingClassifier(FakeClassifier):
    async def classify(self, content, source_type):
        if "stop" in content:
            raise asyncio.CancelledError()
        return await super().classify(content, source_type)


@pytest.mark.asyncio
async def test_cancelled_message_cancels_the_run(repository, event_bus):
    source = FakeSource(
        "gmail",
        [
            gmail_message("m1", JULY_25_MS, body="first"),
            gmail_message("m2", JULY_25_MS, body="stop"),
            gmail_message("m3", JULY_25_MS, body="third"),
            gmail_message("m4", JULY_25_MS, body="fourth"),
        ],
    )
    pipeline = _pipeline(repository, CancellingClassifier(), event_bus, source)

    with pytest.raises(asyncio.CancelledError):
        await pipeline.run(TEST_USER_ID, SourceCredential("gmail", "token"))

    # The second batch never starts
    assert "m4" not in {row["source_id"] for row in repository.rows.values()}
    assert "sync_progress" not in event_bus.types()


@pytest.mark.asyncio
async def test_failing_source_does_not_stop_other_sources(repository, classifier):
    events = RecordingEventBus()
    slack = FakeSource("slack", error=AttributeError("'str' object has no attribute 'get'"))
    gmail = FakeSource("gmail", [gmail_message("m1", JULY_25_MS)])
    pipeline = IngestionPipeline(
        sources={"slack": slack, "gmail": gmail},
        gate=DeduplicationGate(repository),
        classifier=classifier,
        repository=repository,
        cache=QueryCache(),
        events=events,
    )
    credentials = FakeCredentialStore({(TEST_USER_ID, "slack"): "xoxp", (TEST_USER_ID, "gmail"): "gmail-token"})
    service = SyncService(pipeline, credentials, events, ("slack", "gmail"))

    results = await service.sync_user(TEST_USER_ID)

    assert results["slack"].errors == 1
    assert "no attribute" in results["slack"].error
    assert results["gmail"].created == 1
    _, event_type, data = events.events[-1]
    assert event_type == "sync_complete"
    assert data["slack"]["errors"] == 1
