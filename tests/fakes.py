"""In-memory collaborators shared by the unit and route tests."""

from datetime import UTC, datetime
from itertools import count

from workos.models.domain.source_domain import RawMessage
from workos.models.domain.work_item_domain import ItemAnalysis, NewWorkItem
from workos.services.classifier_service import ClassificationError
from workos.services.date_filters import matches_all
from workos.services.sources.base import SourceAuthError

TEST_USER_ID = 7


class FakeWorkItemRepository:
    """In-memory stand-in for WorkItemRepository; date predicates run via matches()."""

    def __init__(self, now=None):
        self.rows: dict[int, dict] = {}
        self._ids = count(1)
        self._now = now or (lambda: datetime.now(UTC))
        self.list_calls = 0

    def add_row(self, **fields) -> dict:
        item = NewWorkItem(
            user_id=fields.pop("user_id", TEST_USER_ID),
            source_type=fields.pop("source_type", "gmail"),
            source_id=fields.pop("source_id", f"msg-{len(self.rows) + 1}"),
            classification=fields.pop("classification", "fyi"),
            summary=fields.pop("summary", "Summary"),
            urgency_score=fields.pop("urgency_score", 2),
            source_date=fields.pop("source_date", None),
        )
        created_at = fields.pop("created_at", None)
        row = self._store(item, created_at)
        row.update(fields)
        return row

    def _store(self, item: NewWorkItem, created_at: datetime | None = None) -> dict:
        now = self._now()
        row = item.model_dump()
        row.update(id=next(self._ids), created_at=created_at or now, updated_at=now)
        self.rows[row["id"]] = row
        return row

    async def get_by_id(self, item_id):
        row = self.rows.get(item_id)
        return dict(row) if row else None

    async def exists_by_source(self, user_id, source_type, source_id):
        return any(
            row["user_id"] == user_id
            and row["source_type"] == source_type
            and row["source_id"] == source_id
            for row in self.rows.values()
        )

    async def insert_if_absent(self, item):
        if await self.exists_by_source(item.user_id, item.source_type, item.source_id):
            return None
        return dict(self._store(item))

    async def list_rows(self, user_id, predicates, classification=None, is_completed=None, limit=50, offset=0):
        self.list_calls += 1
        rows = [
            row
            for row in self.rows.values()
            if row["user_id"] == user_id
            and (classification is None or row["classification"] == classification)
            and (is_completed is None or row["is_completed"] == is_completed)
            and matches_all(predicates, row)
        ]
        rows.sort(key=lambda row: (row["urgency_score"] or 0, row["created_at"]), reverse=True)
        return [dict(row) for row in rows[offset : offset + limit]]

    async def update(self, item_id, changes):
        row = self.rows.get(item_id)
        if row is None:
            return None
        row.update(changes)
        row["updated_at"] = self._now()
        return dict(row)

    async def delete(self, item_id):
        row = self.rows.pop(item_id, None)
        return row["user_id"] if row else None


class FakeClassifier:
    def __init__(self, fail_on: set[str] | None = None):
        self.fail_on = fail_on or set()
        self.calls: list[tuple[str, str]] = []

    async def classify(self, content, source_type):
        self.calls.append((content, source_type))
        if any(marker in content for marker in self.fail_on):
            raise ClassificationError("model unavailable")
        return ItemAnalysis(classification="urgent", summary=f"Summary of {content[:20]}", urgency_score=4)


class RecordingEventBus:
    def __init__(self):
        self.events: list[tuple[int, str, object]] = []

    async def publish(self, user_id, event_type, data=None):
        self.events.append((user_id, event_type, data))

    async def close(self):
        pass

    def types(self) -> list[str]:
        return [event_type for _, event_type, _ in self.events]


class FakeSource:
    def __init__(
        self,
        source_type: str,
        messages: list[RawMessage] | None = None,
        auth_error: bool = False,
        error: Exception | None = None,
    ):
        self.source_type = source_type
        self.messages = messages or []
        self.auth_error = auth_error
        self.error = error
        self.calls: list[tuple[str, object]] = []

    async def fetch(self, access_token, target_day=None):
        self.calls.append((access_token, target_day))
        if self.auth_error:
            raise SourceAuthError("token revoked", source_type=self.source_type, status_code=401)
        if self.error is not None:
            raise self.error
        return list(self.messages)

    async def close(self):
        pass


class FakeCredentialStore:
    def __init__(self, tokens: dict[tuple[int, str], str] | None = None):
        self.tokens = tokens or {}

    async def get_access_token(self, user_id, source_type):
        return self.tokens.get((user_id, source_type))

    async def list_connected_user_ids(self):
        return sorted({user_id for user_id, _ in self.tokens})


def gmail_message(native_id: str, timestamp_ms: int | str | None, body: str = "Please review", subject: str = "Review") -> RawMessage:
    return RawMessage(
        source_type="gmail",
        native_id=native_id,
        subject=subject,
        body=body,
        sender="boss@example.com",
        native_timestamp=timestamp_ms,
        timestamp_format="epoch_millis",
        url=f"https://mail.google.com/mail/u/0/#inbox/{native_id}",
    )


