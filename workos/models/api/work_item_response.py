"""
Work item API response models.
Used by routes for output formatting.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from workos.models.domain.work_item_domain import WorkItem


class WorkItemResponse(BaseModel):
    """Response model for a single work item."""

    id: int
    source_type: str
    source_id: str
    source_url: str | None = None
    source_date: datetime | None = None
    classification: str
    summary: str
    action_items: list[str] = Field(default_factory=list)
    sentiment: str | None = None
    urgency_score: int | None = None
    effort_estimate: str | None = None
    deadline: str | None = None
    context_tags: list[str] = Field(default_factory=list)
    stakeholders: list[str] = Field(default_factory=list)
    business_impact: str | None = None
    follow_up_needed: bool = False
    is_completed: bool = False
    is_snoozed: bool = False
    snooze_until: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, item: WorkItem) -> "WorkItemResponse":
        return cls.model_validate(item.model_dump())


class WorkItemListResponse(BaseModel):
    """Response model for a page of work items."""

    items: list[WorkItemResponse]
    count: int = Field(..., description="Number of items in this page")
    limit: int
    offset: int


class SourceSyncSummary(BaseModel):
    """Outcome of syncing one source."""

    source_type: str
    fetched: int = 0
    filtered: int = 0
    created: int = 0
    skipped: int = 0
    errors: int = 0
    error: str | None = None
    auth_expired: bool = False


class SyncResponse(BaseModel):
    """Response model for a manual sync."""

    success: bool = Field(..., description="True when no source reported errors")
    target_date: str | None = None
    sources: list[SourceSyncSummary] = Field(default_factory=list)
    created: int = 0
    skipped: int = 0
    errors: int = 0
