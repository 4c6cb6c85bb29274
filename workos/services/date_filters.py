"""
Date filter predicates for work-item queries.

Predicates render to parameterized SQL for the repository and can also be
evaluated against an in-memory WorkItem, so the same policy drives both.

Filter policy, by which bounds are present:

    start + end   source_date NOT NULL AND start <= source_date < end
    start only    today:   same-day window on source_date OR created_at
                  recent:  [start, now + 24h) on source_date OR created_at
                  other:   source_date NOT NULL AND source_date >= start
    end only      source_date NOT NULL AND source_date < end
    neither       source_date NOT NULL

Items without a source_date only show up in a date-filtered view through the
created_at fallback of the today/recent windows.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from workos.infrastructure.observability.logging import get_logger
from workos.utils.dates import ONE_DAY, ensure_utc, is_same_utc_day, utc_now

logger = get_logger(__name__)

RECENT_WINDOW = timedelta(days=7)

# Columns predicates may reference; never interpolate anything else into SQL
DATE_COLUMNS = ("source_date", "created_at")


class Predicate:
    """Base class for composable query predicates."""

    def to_sql(self) -> tuple[str, list[Any]]:
        raise NotImplementedError

    def matches(self, item: Any) -> bool:
        raise NotImplementedError


def _column_value(item: Any, column: str) -> datetime | None:
    value = item.get(column) if isinstance(item, dict) else getattr(item, column, None)
    return ensure_utc(value) if value is not None else None


@dataclass(frozen=True)
class IsNotNull(Predicate):
    column: str

    def __post_init__(self):
        if self.column not in DATE_COLUMNS:
            raise ValueError(f"Unsupported filter column: {self.column}")

    def to_sql(self) -> tuple[str, list[Any]]:
        return f"{self.column} IS NOT NULL", []

    def matches(self, item: Any) -> bool:
        return _column_value(item, self.column) is not None


@dataclass(frozen=True)
class AtOrAfter(Predicate):
    column: str
    value: datetime

    def __post_init__(self):
        if self.column not in DATE_COLUMNS:
            raise ValueError(f"Unsupported filter column: {self.column}")

    def to_sql(self) -> tuple[str, list[Any]]:
        return f"{self.column} >= %s", [self.value]

    def matches(self, item: Any) -> bool:
        current = _column_value(item, self.column)
        return current is not None and current >= ensure_utc(self.value)


@dataclass(frozen=True)
class Before(Predicate):
    column: str
    value: datetime

    def __post_init__(self):
        if self.column not in DATE_COLUMNS:
            raise ValueError(f"Unsupported filter column: {self.column}")

    def to_sql(self) -> tuple[str, list[Any]]:
        return f"{self.column} < %s", [self.value]

    def matches(self, item: Any) -> bool:
        current = _column_value(item, self.column)
        return current is not None and current < ensure_utc(self.value)


@dataclass(frozen=True)
class And(Predicate):
    parts: tuple[Predicate, ...]

    def to_sql(self) -> tuple[str, list[Any]]:
        clauses, params = [], []
        for part in self.parts:
            clause, part_params = part.to_sql()
            clauses.append(clause)
            params.extend(part_params)
        return "(" + " AND ".join(clauses) + ")", params

    def matches(self, item: Any) -> bool:
        return all(part.matches(item) for part in self.parts)


@dataclass(frozen=True)
class Or(Predicate):
    parts: tuple[Predicate, ...]

    def to_sql(self) -> tuple[str, list[Any]]:
        clauses, params = [], []
        for part in self.parts:
            clause, part_params = part.to_sql()
            clauses.append(clause)
            params.extend(part_params)
        return "(" + " OR ".join(clauses) + ")", params

    def matches(self, item: Any) -> bool:
        return any(part.matches(item) for part in self.parts)


def _window(column: str, start: datetime, end: datetime) -> Predicate:
    parts: tuple[Predicate, ...] = (AtOrAfter(column, start), Before(column, end))
    if column == "source_date":
        parts = (IsNotNull(column),) + parts
    return And(parts)


class DateFilterBuilder:
    """Builds the source_date predicates for a (start, end) range."""

    def __init__(self, now: Callable[[], datetime] = utc_now):
        self._now = now

    def build(self, start: datetime | None = None, end: datetime | None = None) -> list[Predicate]:
        start = ensure_utc(start) if start is not None else None
        end = ensure_utc(end) if end is not None else None

        if start is not None and end is not None:
            logger.debug("Date range filter", start=start.isoformat(), end=end.isoformat())
            return [_window("source_date", start, end)]

        if start is not None:
            return [self._start_only(start)]

        if end is not None:
            logger.debug("End date filter", end=end.isoformat())
            return [And((IsNotNull("source_date"), Before("source_date", end)))]

        return [IsNotNull("source_date")]

    def _start_only(self, start: datetime) -> Predicate:
        now = ensure_utc(self._now())

        if is_same_utc_day(start, now):
            # Items ingested today count as today's even when the message is older
            window_end = start + ONE_DAY
            logger.debug("Today filter detected", start=start.isoformat())
            return Or((_window("source_date", start, window_end), _window("created_at", start, window_end)))

        if now - RECENT_WINDOW <= start <= now:
            window_end = now + ONE_DAY
            logger.debug("Recent filter detected", start=start.isoformat())
            return Or((_window("source_date", start, window_end), _window("created_at", start, window_end)))

        logger.debug("Start date filter", start=start.isoformat())
        return And((IsNotNull("source_date"), AtOrAfter("source_date", start)))


def predicates_to_sql(predicates: list[Predicate]) -> tuple[list[str], list[Any]]:
    """Render predicates into WHERE clauses and their parameters."""
    clauses, params = [], []
    for predicate in predicates:
        clause, predicate_params = predicate.to_sql()
        clauses.append(clause)
        params.extend(predicate_params)
    return clauses, params


def matches_all(predicates: list[Predicate], item: Any) -> bool:
    return all(predicate.matches(item) for predicate in predicates)
