"""Row counts used to verify an import run."""

from typing import Dict

from sqlalchemy.ext.asyncio import AsyncSession

from team_movements.database.models import (
    Contract,
    HistoryEvent,
    JobInfo,
    Movement,
    Participant,
    Tag,
)
from team_movements.repositories.base_repository import BaseRepository

STAT_TABLES = {
    "movements": Movement,
    "participants": Participant,
    "job_info": JobInfo,
    "contracts": Contract,
    "history_events": HistoryEvent,
    "tags": Tag,
}


class StatsRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def count(self, table: str) -> int:
        return await BaseRepository(self.session, STAT_TABLES[table]).count()

    async def get_import_stats(self) -> Dict[str, int]:
        """Count rows in every primary fact table."""
        return {name: await self.count(name) for name in STAT_TABLES}
