"""
Raw SQL access to work items and the per-user source credentials.
"""

from typing import Any

from psycopg.types.json import Jsonb

from workos.db.helpers import fetch_all, fetch_one, with_db_retry
from workos.infrastructure.observability.logging import get_logger
from workos.models.domain.work_item_domain import NewWorkItem
from workos.services.date_filters import Predicate, predicates_to_sql

logger = get_logger(__name__)

JSON_LIST_FIELDS = ("action_items", "context_tags", "stakeholders")

INSERT_COLUMNS = (
    "user_id",
    "source_type",
    "source_id",
    "source_url",
    "source_date",
    "classification",
    "summary",
    "action_items",
    "sentiment",
    "urgency_score",
    "effort_estimate",
    "deadline",
    "context_tags",
    "stakeholders",
    "business_impact",
    "follow_up_needed",
    "is_completed",
    "is_snoozed",
    "snooze_until",
)

UPDATABLE_COLUMNS = frozenset(
    {
        "classification",
        "summary",
        "action_items",
        "sentiment",
        "urgency_score",
        "effort_estimate",
        "deadline",
        "context_tags",
        "stakeholders",
        "business_impact",
        "follow_up_needed",
        "is_completed",
        "is_snoozed",
        "snooze_until",
    }
)

# Token column per source type on the users table
TOKEN_COLUMNS = {"gmail": "gmail_token", "slack": "slack_token"}


def _db_value(column: str, value: Any) -> Any:
    if column in JSON_LIST_FIELDS:
        return Jsonb(list(value or []))
    return value


class WorkItemRepository:
    """Work item persistence on the work_items table."""

    @with_db_retry(max_retries=2)
    async def get_by_id(self, item_id: int) -> dict[str, Any] | None:
        return await fetch_one("SELECT * FROM work_items WHERE id = %s", (item_id,))

    @with_db_retry(max_retries=2)
    async def exists_by_source(self, user_id: int, source_type: str, source_id: str) -> bool:
        row = await fetch_one(
            """
            SELECT 1 AS found FROM work_items
            WHERE user_id = %s AND source_type = %s AND source_id = %s
            LIMIT 1
            """,
            (user_id, source_type, source_id),
        )
        return row is not None

    async def insert_if_absent(self, item: NewWorkItem) -> dict[str, Any] | None:
        """
        Insert a work item unless one with the same source key exists.

        Returns the stored row, or None when the unique constraint kept an
        existing row (a concurrent ingestion got there first).
        """
        values = item.model_dump()
        placeholders = ", ".join(["%s"] * len(INSERT_COLUMNS))
        query = f"""
            INSERT INTO work_items ({", ".join(INSERT_COLUMNS)})
            VALUES ({placeholders})
            ON CONFLICT ON CONSTRAINT work_items_source_unique DO NOTHING
            RETURNING *
        """
        params = [_db_value(column, values[column]) for column in INSERT_COLUMNS]
        return await fetch_one(query, params)

    @with_db_retry(max_retries=2)
    async def list_rows(
        self,
        user_id: int,
        predicates: list[Predicate],
        classification: str | None = None,
        is_completed: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        clauses = ["user_id = %s"]
        params: list[Any] = [user_id]

        if classification:
            clauses.append("classification = %s")
            params.append(classification)
        if is_completed is not None:
            clauses.append("is_completed = %s")
            params.append(is_completed)

        date_clauses, date_params = predicates_to_sql(predicates)
        clauses.extend(date_clauses)
        params.extend(date_params)

        query = f"""
            SELECT * FROM work_items
            WHERE {" AND ".join(clauses)}
            ORDER BY urgency_score DESC NULLS LAST, created_at DESC
            LIMIT %s OFFSET %s
        """
        params.extend([limit, offset])
        return await fetch_all(query, params)

    async def update(self, item_id: int, changes: dict[str, Any]) -> dict[str, Any] | None:
        columns = [column for column in changes if column in UPDATABLE_COLUMNS]
        if not columns:
            return await self.get_by_id(item_id)

        assignments = ", ".join(f"{column} = %s" for column in columns)
        params = [_db_value(column, changes[column]) for column in columns]
        params.append(item_id)
        return await fetch_one(
            f"UPDATE work_items SET {assignments}, updated_at = NOW() WHERE id = %s RETURNING *",
            params,
        )

    async def delete(self, item_id: int) -> int | None:
        """Delete a work item, returning the owning user id (None if absent)."""
        row = await fetch_one("DELETE FROM work_items WHERE id = %s RETURNING user_id", (item_id,))
        return row["user_id"] if row else None


class CredentialStore:
    """Reads per-user source access tokens from the users table."""

    @with_db_retry(max_retries=2)
    async def get_access_token(self, user_id: int, source_type: str) -> str | None:
        column = TOKEN_COLUMNS.get(source_type)
        if column is None:
            return None
        row = await fetch_one(f"SELECT {column} AS token FROM users WHERE id = %s", (user_id,))
        return row["token"] if row and row["token"] else None

    @with_db_retry(max_retries=2)
    async def list_connected_user_ids(self) -> list[int]:
        rows = await fetch_all(
            """
            SELECT id FROM users
            WHERE gmail_token IS NOT NULL OR slack_token IS NOT NULL
            ORDER BY id
            """
        )
        return [row["id"] for row in rows]
