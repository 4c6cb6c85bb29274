"""
Duplicate check run before a message is classified.

The check saves classifier calls only; uniqueness itself is guaranteed by the
work_items (user_id, source_type, source_id) constraint.
"""

from typing import Protocol


class SourceLookup(Protocol):
    async def exists_by_source(self, user_id: int, source_type: str, source_id: str) -> bool: ...


class DeduplicationGate:
    def __init__(self, repository: SourceLookup):
        self._repository = repository

    async def exists(self, user_id: int, source_type: str, source_id: str) -> bool:
        return await self._repository.exists_by_source(user_id, source_type, source_id)
