"""Repository for movements and the child rows replaced on every import."""

from typing import Any, Dict, List

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from team_movements.database.models import JobInfo, Movement, Participant
from team_movements.repositories.base_repository import BaseRepository


class MovementRepository(BaseRepository[Movement]):
    """Upserts movements by their business ``movement_id``."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Movement)

    async def upsert(self, movement_id: str, **values: Any) -> int:
        """Insert the movement or update the existing row in place.

        Args:
            movement_id: Business key from the document
            **values: Remaining column values

        Returns:
            Surrogate id of the inserted or updated row
        """
        try:
            stmt = insert(Movement).values(movement_id=movement_id, **values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[Movement.movement_id],
                set_={
                    **{key: stmt.excluded[key] for key in values},
                    "updated_at": func.now(),
                },
            ).returning(Movement.id)
            result = await self.session.execute(stmt)
            return result.scalar_one()
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error upserting movement {movement_id}: {str(e)}",
                exc_info=True
            )
            raise


class ParticipantRepository(BaseRepository[Participant]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, Participant)

    async def replace_for_movement(self, movement_pk: int, rows: List[Dict[str, Any]]) -> None:
        """Drop the movement's participants and insert ``rows`` in their place."""
        await self.delete_where(movement_id=movement_pk)
        await self.insert_many([{"movement_id": movement_pk, **row} for row in rows])


class JobInfoRepository(BaseRepository[JobInfo]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, JobInfo)

    async def replace_slot(self, movement_pk: int, is_current: bool, values: Dict[str, Any]) -> int:
        """Replace the current or new job snapshot of a movement."""
        await self.delete_where(movement_id=movement_pk, is_current=is_current)
        return await self.insert_returning_id(
            movement_id=movement_pk, is_current=is_current, **values
        )

    async def clear_slot(self, movement_pk: int, is_current: bool) -> None:
        await self.delete_where(movement_id=movement_pk, is_current=is_current)
