"""
Ingestion pipeline: fetch -> validate -> deduplicate -> classify -> persist.

Messages are processed in small concurrent batches. A failure on one message is
counted and logged; it never aborts the rest of the run.
"""

import asyncio
from dataclasses import dataclass
from datetime import date, datetime
from typing import Literal

from workos.config import settings
from workos.db.helpers import DatabaseError
from workos.infrastructure.observability.logging import get_logger, log_sync_result
from workos.models.domain.source_domain import RawMessage
from workos.models.domain.work_item_domain import SOURCE_TYPES, NewWorkItem, SyncResult
from workos.repositories.work_item_repository import CredentialStore, WorkItemRepository
from workos.services.classifier_service import ClassificationError, WorkItemClassifier
from workos.services.dedup_gate import DeduplicationGate
from workos.services.events import EventPublisher
from workos.services.query_cache import QueryCache
from workos.services.record_validator import (
    content_for_classification,
    is_valid_raw_message,
    parse_native_timestamp,
)
from workos.services.sources.base import BaseSourceClient, SourceAuthError
from workos.utils.dates import to_utc_day_bounds

logger = get_logger(__name__)

Outcome = Literal["created", "skipped", "error"]


@dataclass
class SourceCredential:
    source_type: str
    access_token: str | None


class IngestionPipeline:
    def __init__(
        self,
        sources: dict[str, BaseSourceClient],
        gate: DeduplicationGate,
        classifier: WorkItemClassifier,
        repository: WorkItemRepository,
        cache: QueryCache,
        events: EventPublisher,
        batch_size: int | None = None,
    ):
        self.sources = sources
        self.gate = gate
        self.classifier = classifier
        self.repository = repository
        self.cache = cache
        self.events = events
        self.batch_size = batch_size or settings.INGEST_BATCH_SIZE

    async def run(
        self,
        user_id: int | None,
        credential: SourceCredential | None,
        target_day: datetime | date | str | None = None,
    ) -> SyncResult:
        """
        Ingest one source for one user, optionally limited to one UTC day.

        Returns:
            SyncResult with created/skipped/errors counts
        """
        source_type = credential.source_type if credential else None
        result = SyncResult(source_type=source_type)

        if not user_id or credential is None or not credential.access_token:
            logger.warning("Sync skipped: missing user or credential", user_id=user_id, source_type=source_type)
            result.errors = 1
            result.error = "missing user or credential"
            return result

        source = self.sources.get(credential.source_type)
        if source is None:
            logger.warning("Sync skipped: unknown source", user_id=user_id, source_type=source_type)
            result.errors = 1
            result.error = f"unknown source: {source_type}"
            return result

        day_start = None
        if target_day is not None:
            bounds = to_utc_day_bounds(target_day)
            if bounds is None:
                logger.warning("Invalid target day, syncing without date filter", target_day=str(target_day))
            else:
                day_start = bounds[0]

        try:
            messages = await source.fetch(credential.access_token, day_start)
        except SourceAuthError as e:
            logger.warning("Source authorization expired", user_id=user_id, source_type=source_type, error=str(e))
            result.errors = 1
            result.error = str(e)
            result.auth_expired = True
            return result

        result.fetched = len(messages)
        if not messages:
            return result

        candidates = self._select_candidates(messages, day_start)
        result.filtered = result.fetched - len(candidates)

        batches = [candidates[i : i + self.batch_size] for i in range(0, len(candidates), self.batch_size)]
        processed = 0
        for batch_num, batch in enumerate(batches, 1):
            outcomes = await asyncio.gather(
                *(self._process_message(user_id, message, parsed) for message, parsed in batch),
                return_exceptions=True,
            )
            for (message, _), outcome in zip(batch, outcomes):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                if isinstance(outcome, BaseException):
                    logger.error(
                        "Unexpected error processing message",
                        user_id=user_id,
                        source_type=source_type,
                        native_id=message.native_id,
                        error=str(outcome),
                        error_type=type(outcome).__name__,
                    )
                    outcome = "error"
                self._record(result, outcome)

            processed += len(batch)
            await self.events.publish(
                user_id,
                "sync_progress",
                {
                    "source_type": source_type,
                    "batch": batch_num,
                    "total_batches": len(batches),
                    "processed": processed,
                    "total": len(candidates),
                },
            )

        return result

    def _select_candidates(
        self, messages: list[RawMessage], day_start: datetime | None
    ) -> list[tuple[RawMessage, datetime | None]]:
        """
        Keep structurally valid messages, paired with their parsed timestamp.

        With a target day, only messages whose timestamp falls on that UTC day
        are kept; an unparseable timestamp cannot be placed on a day and is dropped.
        """
        candidates = []
        for message in messages:
            if not is_valid_raw_message(message):
                logger.debug("Dropping invalid message", source_type=getattr(message, "source_type", None))
                continue

            parsed = parse_native_timestamp(message)
            if day_start is not None:
                if parsed is None or to_utc_day_bounds(parsed)[0] != day_start:
                    continue

            candidates.append((message, parsed))
        return candidates

    @staticmethod
    def _record(result: SyncResult, outcome: Outcome) -> None:
        if outcome == "created":
            result.created += 1
        elif outcome == "skipped":
            result.skipped += 1
        else:
            result.errors += 1

    async def _process_message(
        self, user_id: int, message: RawMessage, source_date: datetime | None
    ) -> Outcome:
        try:
            if await self.gate.exists(user_id, message.source_type, message.native_id):
                return "skipped"

            content = content_for_classification(message)
            analysis = await self.classifier.classify(content, message.source_type)

            item = NewWorkItem.from_analysis(
                user_id,
                message.source_type,
                message.native_id,
                analysis,
                source_url=message.url,
                source_date=source_date,
            )
            row = await self.repository.insert_if_absent(item)

        except ClassificationError as e:
            logger.warning(
                "Classification failed",
                user_id=user_id,
                native_id=message.native_id,
                error=str(e),
            )
            return "error"
        except DatabaseError as e:
            logger.error(
                "Failed to store work item",
                user_id=user_id,
                native_id=message.native_id,
                operation=e.operation,
                error=str(e),
            )
            return "error"

        if row is None:
            # Lost the race to a concurrent ingestion of the same message
            return "skipped"

        self.cache.invalidate_user(user_id)
        await self.events.publish(user_id, "item_created", {"id": row["id"], "source_type": message.source_type})
        return "created"


class SyncService:
    """
    Runs the ingestion pipeline for every source a user has connected.

    A source that fails outright is recorded as one error; the remaining
    sources still sync and sync_complete is always published.
    """

    def __init__(
        self,
        pipeline: IngestionPipeline,
        credentials: CredentialStore,
        events: EventPublisher,
        source_types: tuple[str, ...] = SOURCE_TYPES,
    ):
        self.pipeline = pipeline
        self.credentials = credentials
        self.events = events
        self.source_types = source_types

    async def sync_user(
        self, user_id: int, target_day: datetime | date | str | None = None
    ) -> dict[str, SyncResult]:
        results: dict[str, SyncResult] = {}

        for source_type in self.source_types:
            try:
                token = await self.credentials.get_access_token(user_id, source_type)
            except DatabaseError as e:
                logger.error("Failed to load source credential", user_id=user_id, source_type=source_type, error=str(e))
                results[source_type] = SyncResult(source_type=source_type, errors=1, error=str(e))
                continue

            if not token:
                continue

            try:
                result = await self.pipeline.run(user_id, SourceCredential(source_type, token), target_day)
            except Exception as e:
                logger.error(
                    "Source sync failed",
                    user_id=user_id,
                    source_type=source_type,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                result = SyncResult(source_type=source_type, errors=1, error=str(e))

            log_sync_result(user_id, source_type, result.to_dict())
            results[source_type] = result

        await self.events.publish(
            user_id,
            "sync_complete",
            {source_type: result.to_dict() for source_type, result in results.items()},
        )
        return results
