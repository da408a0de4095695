from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from team_movements.utils.logging import get_logger

# Define a generic type for SQLAlchemy models
ModelType = TypeVar("ModelType")

LOGGER = get_logger(__name__)


class BaseRepository(Generic[ModelType]):
    """Base repository implementing the statements shared by every table.

    Repositories never commit. The per-file importer owns the transaction
    and decides whether the work of all repositories is committed or rolled
    back together.
    """

    def __init__(self, session: AsyncSession, model: Type[ModelType]):
        """Initialize the repository.

        Args:
            session: SQLAlchemy async session
            model: The SQLAlchemy model class this repository manages
        """
        self.session = session
        self.model = model
        self.logger = LOGGER

    async def insert_returning_id(self, **values: Any) -> int:
        """Insert one row and return its surrogate id.

        Args:
            **values: Column values for the new row

        Returns:
            The generated id
        """
        try:
            stmt = insert(self.model).values(**values).returning(self.model.id)
            result = await self.session.execute(stmt)
            return result.scalar_one()
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error inserting {self.model.__name__}: {str(e)}",
                exc_info=True
            )
            raise

    async def insert_many(self, rows: List[Dict[str, Any]], ignore_conflicts: bool = False) -> None:
        """Insert several rows in one statement.

        Args:
            rows: Column values per row
            ignore_conflicts: Skip rows that violate a unique constraint
        """
        if not rows:
            return
        try:
            stmt = insert(self.model).values(rows)
            if ignore_conflicts:
                stmt = stmt.on_conflict_do_nothing()
            await self.session.execute(stmt)
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error inserting {len(rows)} {self.model.__name__} rows: {str(e)}",
                exc_info=True
            )
            raise

    async def delete_where(self, **filters: Any) -> None:
        """Delete every row matching the equality filters."""
        try:
            stmt = delete(self.model)
            for field, value in filters.items():
                stmt = stmt.where(getattr(self.model, field) == value)
            await self.session.execute(stmt)
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error deleting {self.model.__name__} where {filters}: {str(e)}",
                exc_info=True
            )
            raise

    async def count(self, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count rows, optionally filtered by equality."""
        try:
            query = select(func.count()).select_from(self.model)
            if filters:
                for field, value in filters.items():
                    query = query.where(getattr(self.model, field) == value)
            result = await self.session.execute(query)
            return int(result.scalar_one())
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error counting {self.model.__name__}: {str(e)}",
                exc_info=True
            )
            raise
