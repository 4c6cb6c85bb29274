"""
Work item domain models.
A work item is one classified, persisted unit derived from one source message.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

SourceType = Literal["gmail", "slack"]
SOURCE_TYPES: tuple[str, ...] = ("gmail", "slack")

Classification = Literal["urgent", "fyi", "ignore"]
CLASSIFICATIONS: tuple[str, ...] = ("urgent", "fyi", "ignore")


class ItemAnalysis(BaseModel):
    """Structured record returned by the classifier for one message."""

    classification: Classification = "fyi"
    summary: str = ""
    action_items: list[str] = Field(default_factory=list)
    sentiment: Literal["positive", "neutral", "negative"] = "neutral"
    urgency_score: int = Field(default=2, ge=1, le=5)
    effort_estimate: Literal["quick", "medium", "long"] = "medium"
    deadline: Literal["today", "this_week", "next_week", "no_deadline"] = "no_deadline"
    context_tags: list[str] = Field(default_factory=list)
    stakeholders: list[str] = Field(default_factory=list)
    business_impact: Literal["high", "medium", "low"] = "medium"
    follow_up_needed: bool = False


class NewWorkItem(BaseModel):
    """Insert payload for a work item (id and timestamps are generated)."""

    user_id: int
    source_type: SourceType
    source_id: str
    source_url: str | None = None
    source_date: datetime | None = None
    classification: Classification
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

    @classmethod
    def from_analysis(
        cls,
        user_id: int,
        source_type: SourceType,
        source_id: str,
        analysis: ItemAnalysis,
        source_url: str | None = None,
        source_date: datetime | None = None,
    ) -> "NewWorkItem":
        return cls(
            user_id=user_id,
            source_type=source_type,
            source_id=source_id,
            source_url=source_url,
            source_date=source_date,
            **analysis.model_dump(),
        )


class WorkItem(NewWorkItem):
    """Persisted work item."""

    model_config = ConfigDict(extra="ignore")

    id: int
    source_type: str
    classification: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "WorkItem":
        return cls.model_validate(row)


@dataclass
class SyncResult:
    """Outcome counts of one ingestion run for one source."""

    source_type: str | None = None
    fetched: int = 0
    filtered: int = 0
    created: int = 0
    skipped: int = 0
    errors: int = 0
    error: str | None = None
    auth_expired: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
