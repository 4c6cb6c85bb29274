"""
Work item API request models.
Used by routes for input validation.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from workos.models.domain.work_item_domain import Classification, SourceType


class CreateWorkItemRequest(BaseModel):
    """Request for creating a work item by hand."""

    source_type: SourceType = Field(..., description="Origin service (gmail or slack)")
    source_id: str = Field(..., min_length=1, description="Native message id in the origin service")
    source_url: str | None = Field(default=None, description="Link back to the origin message")
    source_date: datetime | None = Field(default=None, description="Origin message timestamp")
    classification: Classification = Field(default="fyi", description="Priority bucket")
    summary: str = Field(..., min_length=1, max_length=500, description="Short summary")
    action_items: list[str] = Field(default_factory=list, description="Concrete next steps")
    urgency_score: int = Field(default=2, ge=1, le=5, description="Urgency (1-5)")
    effort_estimate: Literal["quick", "medium", "long"] | None = Field(default=None)
    deadline: Literal["today", "this_week", "next_week", "no_deadline"] | None = Field(default=None)
    context_tags: list[str] = Field(default_factory=list, description="Projects, clients, tools")
    stakeholders: list[str] = Field(default_factory=list, description="People involved")
    business_impact: Literal["high", "medium", "low"] | None = Field(default=None)


class UpdateWorkItemRequest(BaseModel):
    """Partial update of a work item; unset fields are left unchanged."""

    classification: Classification | None = None
    summary: str | None = Field(default=None, min_length=1, max_length=500)
    action_items: list[str] | None = None
    urgency_score: int | None = Field(default=None, ge=1, le=5)
    effort_estimate: Literal["quick", "medium", "long"] | None = None
    deadline: Literal["today", "this_week", "next_week", "no_deadline"] | None = None
    context_tags: list[str] | None = None
    stakeholders: list[str] | None = None
    business_impact: Literal["high", "medium", "low"] | None = None
    follow_up_needed: bool | None = None
    is_completed: bool | None = None


class SnoozeWorkItemRequest(BaseModel):
    """Request for snoozing a work item."""

    until: datetime = Field(..., description="When the item should resurface")


class SyncRequest(BaseModel):
    """Request for a manual sync of all connected sources."""

    target_date: str | None = Field(
        default=None, description="UTC day to ingest (ISO-8601); omit for the most recent messages"
    )
