"""
Manual sync endpoint.
Runs the ingestion pipeline for every source the user has connected.
"""

from fastapi import APIRouter, Depends

from workos.auth.verify import current_user_id
from workos.container import ServiceContainer, get_services
from workos.infrastructure.observability.logging import get_logger
from workos.models.api.work_item_request import SyncRequest
from workos.models.api.work_item_response import SourceSyncSummary, SyncResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["sync"])


@router.post("/sync", response_model=SyncResponse)
async def sync_sources(
    request: SyncRequest | None = None,
    user_id: int = Depends(current_user_id),
    services: ServiceContainer = Depends(get_services),
):
    """
    Sync all connected sources, optionally for one UTC day.

    Always answers 200; per-source failures are reported in the counts.
    """
    target_date = request.target_date if request else None
    logger.info("Manual sync requested", user_id=user_id, target_date=target_date)

    results = await services.sync.sync_user(user_id, target_date)

    summaries = [
        SourceSyncSummary(**{**result.to_dict(), "source_type": source_type})
        for source_type, result in results.items()
    ]
    errors = sum(summary.errors for summary in summaries)

    return SyncResponse(
        success=errors == 0,
        target_date=target_date,
        sources=summaries,
        created=sum(summary.created for summary in summaries),
        skipped=sum(summary.skipped for summary in summaries),
        errors=errors,
    )
