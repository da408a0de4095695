"""Repository for lookup tables and cost-centre enrichment."""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, case, func, literal, or_
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from team_movements.core.lookups import LOOKUP_TABLES, UNKNOWN, LookupCategory
from team_movements.database.models import CostCentre
from team_movements.repositories.base_repository import BaseRepository


class LookupRepository:
    """Seeds lookup tables without ever overwriting an existing row."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def for_category(self, category: LookupCategory) -> BaseRepository:
        return BaseRepository(self.session, LOOKUP_TABLES[category].model)

    async def seed(self, category: LookupCategory, rows: List[Dict[str, Any]]) -> int:
        """Insert rows whose natural key is absent; conflicting keys are ignored.

        Args:
            category: Lookup category to seed
            rows: Column values keyed by column name

        Returns:
            Number of rows submitted
        """
        await self.for_category(category).insert_many(rows, ignore_conflicts=True)
        return len(rows)


class CostCentreRepository(BaseRepository[CostCentre]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, CostCentre)

    async def enrich(
        self,
        code: str,
        name: Optional[str],
        formatted_address: Optional[str],
        latitude: Optional[Decimal],
        longitude: Optional[Decimal],
    ) -> None:
        """Merge geo data into a cost centre in one atomic upsert.

        A stored address or coordinate is only replaced by a non-null value,
        so concurrent enrichments of the same code converge whatever order
        they commit in. The name is only replaced by a real (non ``Unknown``)
        name, and only when the write carries geo data.
        """
        stmt = insert(CostCentre).values(
            cost_centre_code=code,
            cost_centre_name=name or UNKNOWN,
            formatted_address=formatted_address,
            latitude=latitude,
            longitude=longitude,
        )
        excluded = stmt.excluded
        stmt = stmt.on_conflict_do_update(
            index_elements=[CostCentre.cost_centre_code],
            set_={
                "cost_centre_name": case(
                    (
                        and_(
                            excluded.cost_centre_name.is_not(None),
                            func.lower(excluded.cost_centre_name) != literal(UNKNOWN.lower()),
                        ),
                        excluded.cost_centre_name,
                    ),
                    else_=CostCentre.cost_centre_name,
                ),
                "formatted_address": func.coalesce(
                    excluded.formatted_address, CostCentre.formatted_address
                ),
                "latitude": func.coalesce(excluded.latitude, CostCentre.latitude),
                "longitude": func.coalesce(excluded.longitude, CostCentre.longitude),
            },
            where=or_(
                excluded.formatted_address.is_not(None),
                excluded.latitude.is_not(None),
                excluded.longitude.is_not(None),
            ),
        )
        try:
            await self.session.execute(stmt)
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error enriching cost centre {code}: {str(e)}",
                exc_info=True
            )
            raise
