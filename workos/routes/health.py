"""
Health check endpoints for the database pool and the push-update channel.
"""

import time

from fastapi import APIRouter, Depends

from workos.config import settings
from workos.container import ServiceContainer, get_services
from workos.db.pool import db_health_check
from workos.services.events import RedisEventPublisher

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "workos"}


@router.get("/readyz")
async def readyz(services: ServiceContainer = Depends(get_services)):
    """Readiness check covering the database pool and the event channel."""
    checks = {}
    overall_ok = True

    t0 = time.time()
    db_health = await db_health_check()
    is_healthy = db_health.get("healthy", False)
    checks["database"] = {"ok": is_healthy, "latency_ms": round((time.time() - t0) * 1000, 1)}
    if "pool_stats" in db_health:
        checks["database"].update(db_health["pool_stats"])
    if not is_healthy:
        checks["database"]["error"] = db_health.get("error", "Database unhealthy")
    overall_ok = overall_ok and is_healthy

    if isinstance(services.events, RedisEventPublisher):
        t0 = time.time()
        redis_ok = await services.events.ping()
        checks["events"] = {
            "ok": redis_ok,
            "backend": "redis",
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        overall_ok = overall_ok and redis_ok
    else:
        checks["events"] = {"ok": True, "backend": "in_memory"}

    checks["classifier"] = {"ok": True, "configured": bool(settings.OPENAI_API_KEY)}
    checks["query_cache"] = {"ok": True, **services.cache.stats()}

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
