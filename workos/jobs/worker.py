"""
Worker entrypoint for scheduled work item jobs.

    workos-worker daily_sync
    WORKER_JOB=daily_sync workos-worker
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from workos.config import settings
from workos.infrastructure.observability.logging import get_logger, setup_logging
from workos.jobs.daily_sync_job import run_daily_sync

logger = get_logger(__name__)

DEFAULT_JOB = "daily_sync"

JOB_REGISTRY: dict[str, Callable[[], Awaitable[object]]] = {
    "daily_sync": run_daily_sync,
}


def _requested_job(argv: list[str] | None = None) -> str:
    args = sys.argv[1:] if argv is None else argv
    raw = args[0] if args else os.getenv("WORKER_JOB", DEFAULT_JOB)
    return raw.strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    name = (job_name or _requested_job()).strip().lower()
    job = JOB_REGISTRY.get(name)
    if job is None:
        known = ", ".join(sorted(JOB_REGISTRY))
        raise ValueError(f"Unknown worker job '{name}'. Available jobs: {known}")

    logger.info("Worker job starting", job=name)
    await job()
    logger.info("Worker job finished", job=name)


def main() -> None:
    setup_logging(log_level=settings.LOG_LEVEL)
    asyncio.run(run_worker(_requested_job()))


if __name__ == "__main__":
    main()
