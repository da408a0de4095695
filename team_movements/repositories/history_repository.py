"""Repository for history events and tags."""

from typing import Any, Dict, Iterable, List

from sqlalchemy.ext.asyncio import AsyncSession

from team_movements.database.models import HistoryEvent, Tag
from team_movements.repositories.base_repository import BaseRepository


class HistoryEventRepository(BaseRepository[HistoryEvent]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, HistoryEvent)

    async def replace_for_movement(self, movement_pk: int, events: List[Dict[str, Any]]) -> None:
        """Replace the movement's history with ``events`` (already indexed)."""
        await self.delete_where(movement_id=movement_pk)
        await self.insert_many([{"movement_id": movement_pk, **event} for event in events])


class TagRepository(BaseRepository[Tag]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, Tag)

    async def replace_for_movement(self, movement_pk: int, tags: Iterable[str]) -> None:
        """Replace the movement's tags; duplicates in ``tags`` are ignored."""
        await self.delete_where(movement_id=movement_pk)
        await self.insert_many(
            [{"movement_id": movement_pk, "tag_value": tag} for tag in tags if tag],
            ignore_conflicts=True,
        )
