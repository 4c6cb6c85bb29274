"""
Work Item API Routes
HTTP endpoints for listing and managing classified work items.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from workos.auth.verify import current_user_id
from workos.container import ServiceContainer, get_services
from workos.db.helpers import DatabaseError
from workos.infrastructure.observability.logging import get_logger
from workos.models.api.work_item_request import (
    CreateWorkItemRequest,
    SnoozeWorkItemRequest,
    UpdateWorkItemRequest,
)
from workos.models.api.work_item_response import WorkItemListResponse, WorkItemResponse
from workos.models.domain.work_item_domain import NewWorkItem
from workos.services.work_item_service import (
    WorkItemConflictError,
    WorkItemNotFoundError,
    WorkItemQuery,
)
from workos.utils.dates import InvalidDateRangeError, parse_iso_datetime

logger = get_logger(__name__)

router = APIRouter(prefix="/api/work-items", tags=["work-items"])


def _parse_date_param(name: str, value: str | None):
    if value is None:
        return None
    parsed = parse_iso_datetime(value)
    if parsed is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {name} date format: {value!r}. Expected ISO-8601.",
        )
    return parsed


def _not_found(item_id: int) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Work item {item_id} not found")


@router.get("", response_model=WorkItemListResponse)
async def list_work_items(
    user_id: int = Depends(current_user_id),
    services: ServiceContainer = Depends(get_services),
    limit: int = Query(default=50, ge=1, le=200, description="Page size"),
    offset: int = Query(default=0, ge=0, description="Rows to skip"),
    classification: str | None = Query(default=None, description="urgent, fyi or ignore"),
    is_completed: bool | None = Query(default=None, description="Filter on completion"),
    start: str | None = Query(default=None, description="Inclusive lower bound (ISO-8601, UTC)"),
    end: str | None = Query(default=None, description="Exclusive upper bound (ISO-8601, UTC)"),
    include_undated: bool = Query(default=False, description="Without bounds, also list items with no source date"),
):
    """List the user's work items, most urgent first."""
    query = WorkItemQuery(
        limit=limit,
        offset=offset,
        classification=classification,
        is_completed=is_completed,
        start=_parse_date_param("start", start),
        end=_parse_date_param("end", end),
        include_undated=include_undated,
    )

    try:
        items = await services.work_items.list_work_items(user_id, query)
    except InvalidDateRangeError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except DatabaseError as e:
        logger.error("Error listing work items", user_id=user_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch work items",
        ) from e

    return WorkItemListResponse(
        items=[WorkItemResponse.from_domain(item) for item in items],
        count=len(items),
        limit=limit,
        offset=offset,
    )


@router.get("/{item_id}", response_model=WorkItemResponse)
async def get_work_item(
    item_id: int,
    user_id: int = Depends(current_user_id),
    services: ServiceContainer = Depends(get_services),
):
    try:
        item = await services.work_items.get_work_item(user_id, item_id)
    except WorkItemNotFoundError as e:
        raise _not_found(item_id) from e
    return WorkItemResponse.from_domain(item)


@router.post("", response_model=WorkItemResponse, status_code=status.HTTP_201_CREATED)
async def create_work_item(
    request: CreateWorkItemRequest,
    user_id: int = Depends(current_user_id),
    services: ServiceContainer = Depends(get_services),
):
    """Create a work item by hand."""
    try:
        item = await services.work_items.create_work_item(
            NewWorkItem(user_id=user_id, **request.model_dump())
        )
    except WorkItemConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except DatabaseError as e:
        logger.error("Error creating work item", user_id=user_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create work item",
        ) from e

    logger.info("Work item created", user_id=user_id, item_id=item.id, source_type=item.source_type)
    return WorkItemResponse.from_domain(item)


@router.put("/{item_id}", response_model=WorkItemResponse)
async def update_work_item(
    item_id: int,
    request: UpdateWorkItemRequest,
    user_id: int = Depends(current_user_id),
    services: ServiceContainer = Depends(get_services),
):
    changes = request.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")

    try:
        item = await services.work_items.update_work_item(user_id, item_id, changes)
    except WorkItemNotFoundError as e:
        raise _not_found(item_id) from e
    return WorkItemResponse.from_domain(item)


@router.post("/{item_id}/complete", response_model=WorkItemResponse)
async def complete_work_item(
    item_id: int,
    user_id: int = Depends(current_user_id),
    services: ServiceContainer = Depends(get_services),
):
    try:
        item = await services.work_items.complete_work_item(user_id, item_id)
    except WorkItemNotFoundError as e:
        raise _not_found(item_id) from e
    return WorkItemResponse.from_domain(item)


@router.post("/{item_id}/snooze", response_model=WorkItemResponse)
async def snooze_work_item(
    item_id: int,
    request: SnoozeWorkItemRequest,
    user_id: int = Depends(current_user_id),
    services: ServiceContainer = Depends(get_services),
):
    try:
        item = await services.work_items.snooze_work_item(user_id, item_id, request.until)
    except WorkItemNotFoundError as e:
        raise _not_found(item_id) from e
    return WorkItemResponse.from_domain(item)


@router.delete("/{item_id}")
async def delete_work_item(
    item_id: int,
    user_id: int = Depends(current_user_id),
    services: ServiceContainer = Depends(get_services),
):
    try:
        await services.work_items.delete_work_item(user_id, item_id)
    except WorkItemNotFoundError as e:
        raise _not_found(item_id) from e

    logger.info("Work item deleted", user_id=user_id, item_id=item_id)
    return {"success": True, "id": item_id}
