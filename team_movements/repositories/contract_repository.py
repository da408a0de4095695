"""Repository for contracts and their weekly schedules."""

from datetime import time

from sqlalchemy.ext.asyncio import AsyncSession

from team_movements.database.models import (
    Contract,
    ContractMutualFlag,
    ContractWeek,
    DailySchedule,
    ScheduleBreak,
)
from team_movements.repositories.base_repository import BaseRepository


class ContractRepository(BaseRepository[Contract]):
    """Writes a contract and everything nested under it.

    Deleting a contract cascades to its flags, weeks, daily schedules and
    breaks, so replacing a slot only needs the one delete.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, Contract)
        self.flags = BaseRepository(session, ContractMutualFlag)
        self.weeks = BaseRepository(session, ContractWeek)
        self.schedules = BaseRepository(session, DailySchedule)
        self.breaks = BaseRepository(session, ScheduleBreak)

    async def replace_slot(self, movement_pk: int, is_current: bool) -> int:
        """Delete the slot's contract and create an empty one in its place."""
        await self.delete_where(movement_id=movement_pk, is_current=is_current)
        return await self.insert_returning_id(movement_id=movement_pk, is_current=is_current)

    async def clear_slot(self, movement_pk: int, is_current: bool) -> None:
        await self.delete_where(movement_id=movement_pk, is_current=is_current)

    async def add_mutual_flag(self, contract_pk: int, flag_id: int) -> None:
        await self.flags.insert_many(
            [{"contract_id": contract_pk, "flag_id": flag_id}], ignore_conflicts=True
        )

    async def add_week(self, contract_pk: int, week_index: int) -> int:
        return await self.weeks.insert_returning_id(contract_id=contract_pk, week_index=week_index)

    async def add_daily_schedule(
        self, week_pk: int, day_of_week: str, start_time: time, end_time: time
    ) -> int:
        return await self.schedules.insert_returning_id(
            contract_week_id=week_pk,
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
        )

    async def add_break(self, schedule_pk: int, break_type_id: int) -> int:
        return await self.breaks.insert_returning_id(
            daily_schedule_id=schedule_pk, break_type_id=break_type_id
        )
