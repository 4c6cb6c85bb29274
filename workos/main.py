"""
FastAPI application for the WorkOS ingestion and work-item service.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from workos.config import settings
from workos.container import build_services
from workos.db.pool import db_pool
from workos.infrastructure.observability.logging import get_logger, setup_logging
from workos.routes import health, sync, work_items

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database pool and the event channel; close them in reverse order."""
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    await db_pool.initialize()

    services = build_services()
    try:
        await services.start()
    except Exception as e:
        logger.error("Failed to initialize services", error=str(e))
        await services.close()
        await db_pool.close()
        raise

    app.state.services = services
    logger.info("All services initialized successfully")

    yield

    logger.info("Application shutting down")
    await services.close()
    await db_pool.close()
    logger.info("All services closed successfully")


def create_app(use_lifespan: bool = True) -> FastAPI:
    app = FastAPI(
        title="WorkOS",
        description="Work item ingestion and retrieval for Gmail and Slack",
        version="0.1.0",
        lifespan=lifespan if use_lifespan else None,
    )

    app.include_router(health.router)
    app.include_router(work_items.router)
    app.include_router(sync.router)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log HTTP requests with timing."""
        start_time = time.time()
        response = await call_next(request)
        process_time = (time.time() - start_time) * 1000

        logger.info(
            "HTTP request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(process_time, 2),
        )
        return response

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
