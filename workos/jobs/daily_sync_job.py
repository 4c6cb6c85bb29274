"""
Daily sync job.
Ingests today's UTC day from every connected source for every connected user.
"""

import time
from datetime import datetime

from workos.container import ServiceContainer, build_services
from workos.db.pool import db_pool
from workos.infrastructure.observability.logging import get_logger
from workos.utils.dates import utc_now

logger = get_logger(__name__)


async def sync_all_users(services: ServiceContainer, target_day: datetime | None = None) -> dict:
    """Sync every connected user; returns job metrics."""
    target_day = target_day or utc_now()
    start_time = time.time()

    user_ids = await services.sync.credentials.list_connected_user_ids()
    logger.info("Starting daily sync", user_count=len(user_ids), target_day=target_day.date().isoformat())

    metrics = {
        "job_run": "daily_sync",
        "target_day": target_day.date().isoformat(),
        "users_processed": 0,
        "users_failed": 0,
        "created": 0,
        "skipped": 0,
        "errors": 0,
        "auth_expired": 0,
    }

    for user_id in user_ids:
        try:
            results = await services.sync.sync_user(user_id, target_day)
        except Exception as e:
            logger.error(
                "Daily sync failed for user",
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            metrics["errors"] += 1
            metrics["users_failed"] += 1
            continue

        metrics["users_processed"] += 1
        for result in results.values():
            metrics["created"] += result.created
            metrics["skipped"] += result.skipped
            metrics["errors"] += result.errors
            metrics["auth_expired"] += int(result.auth_expired)

    metrics["total_duration_seconds"] = round(time.time() - start_time, 2)
    logger.info("Daily sync completed", **metrics)
    return metrics


async def run_daily_sync() -> None:
    """Worker entrypoint: owns the database pool and services for one run."""
    await db_pool.initialize()
    services = build_services()
    try:
        await services.start()
        await sync_all_users(services)
    finally:
        await services.close()
        await db_pool.close()
