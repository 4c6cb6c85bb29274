"""
Push-update channel for dashboard clients.

The core only emits events; delivering them over WebSockets is handled by
whatever listens on the bus (in-process subscribers or a Redis channel).
Publishing is best-effort: failures are logged and never raised.
"""

import asyncio
import json
from collections import defaultdict
from datetime import UTC, datetime
from typing import Any, Literal, Protocol

import redis.asyncio as redis

from workos.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

EventType = Literal[
    "item_created",
    "item_updated",
    "item_deleted",
    "sync_progress",
    "sync_complete",
]

REDIS_CHANNEL_PREFIX = "workos:events"
SUBSCRIBER_QUEUE_SIZE = 100


class EventPublisher(Protocol):
    async def publish(self, user_id: int, event_type: EventType, data: Any = None) -> None: ...

    async def close(self) -> None: ...


def build_event(event_type: EventType, data: Any = None) -> dict[str, Any]:
    return {
        "type": event_type,
        "data": data,
        "timestamp": datetime.now(UTC).isoformat(),
    }


class InMemoryEventBus:
    """Fan-out of events to per-user asyncio queues."""

    def __init__(self):
        self._subscribers: dict[int, set[asyncio.Queue]] = defaultdict(set)

    def subscribe(self, user_id: int) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)
        self._subscribers[user_id].add(queue)
        return queue

    def unsubscribe(self, user_id: int, queue: asyncio.Queue) -> None:
        listeners = self._subscribers.get(user_id)
        if listeners is None:
            return
        listeners.discard(queue)
        if not listeners:
            del self._subscribers[user_id]

    def listener_count(self, user_id: int) -> int:
        return len(self._subscribers.get(user_id, ()))

    async def publish(self, user_id: int, event_type: EventType, data: Any = None) -> None:
        event = build_event(event_type, data)
        for queue in list(self._subscribers.get(user_id, ())):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Dropping event for slow listener", user_id=user_id, event_type=event_type)

    async def close(self) -> None:
        self._subscribers.clear()


class RedisEventPublisher:
    """Publishes events to a per-user Redis pub/sub channel."""

    def __init__(self, redis_url: str, client: redis.Redis | None = None):
        self._redis_url = redis_url
        self.client = client

    async def initialize(self) -> None:
        if self.client is not None:
            return
        self.client = redis.Redis.from_url(
            self._redis_url,
            decode_responses=True,
            socket_connect_timeout=10,
            socket_timeout=10,
            health_check_interval=30,
        )
        await self.client.ping()
        logger.info("Redis event publisher initialized")

    @staticmethod
    def channel_for(user_id: int) -> str:
        return f"{REDIS_CHANNEL_PREFIX}:{user_id}"

    async def publish(self, user_id: int, event_type: EventType, data: Any = None) -> None:
        if self.client is None:
            logger.warning("Redis event publisher not initialized", event_type=event_type)
            return
        try:
            payload = json.dumps(build_event(event_type, data), default=str)
            await self.client.publish(self.channel_for(user_id), payload)
        except (redis.RedisError, TypeError, ValueError) as e:
            logger.error(
                "Failed to publish event",
                user_id=user_id,
                event_type=event_type,
                error=str(e),
            )

    async def ping(self) -> bool:
        if self.client is None:
            return False
        try:
            return bool(await self.client.ping())
        except redis.RedisError as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
            self.client = None
            logger.info("Redis event publisher closed")
