"""
Service wiring.

Everything is built once at startup and held on app.state; routes and jobs get
their collaborators from here instead of module-level singletons.
"""

from dataclasses import dataclass

from fastapi import Request

from workos.config import settings
from workos.infrastructure.observability.logging import get_logger
from workos.repositories.work_item_repository import CredentialStore, WorkItemRepository
from workos.services.classifier_service import WorkItemClassifier
from workos.services.dedup_gate import DeduplicationGate
from workos.services.events import EventPublisher, InMemoryEventBus, RedisEventPublisher
from workos.services.ingestion_pipeline import IngestionPipeline, SyncService
from workos.services.query_cache import QueryCache
from workos.services.sources import BaseSourceClient, GmailSourceClient, SlackSourceClient
from workos.services.work_item_service import WorkItemService

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    cache: QueryCache
    events: EventPublisher
    work_items: WorkItemService
    pipeline: IngestionPipeline
    sync: SyncService
    sources: dict[str, BaseSourceClient]

    async def start(self) -> None:
        if isinstance(self.events, RedisEventPublisher):
            await self.events.initialize()

    async def close(self) -> None:
        for source in self.sources.values():
            await source.close()
        await self.events.close()


def build_events() -> EventPublisher:
    if settings.REDIS_URL:
        return RedisEventPublisher(settings.REDIS_URL)
    return InMemoryEventBus()


def build_services(events: EventPublisher | None = None) -> ServiceContainer:
    events = events or build_events()
    cache = QueryCache(ttl_seconds=settings.QUERY_CACHE_TTL_SECONDS)
    repository = WorkItemRepository()
    sources: dict[str, BaseSourceClient] = {
        "gmail": GmailSourceClient(),
        "slack": SlackSourceClient(),
    }

    pipeline = IngestionPipeline(
        sources=sources,
        gate=DeduplicationGate(repository),
        classifier=WorkItemClassifier(),
        repository=repository,
        cache=cache,
        events=events,
    )

    logger.info(
        "Services built",
        events=type(events).__name__,
        cache_ttl_seconds=cache.ttl_seconds,
        sources=list(sources),
    )

    return ServiceContainer(
        cache=cache,
        events=events,
        work_items=WorkItemService(repository, cache, events),
        pipeline=pipeline,
        sync=SyncService(pipeline, CredentialStore(), events),
        sources=sources,
    )


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services
