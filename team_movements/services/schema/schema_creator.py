"""Idempotent DDL and lookup seeding for the team movements schema."""

from typing import Any, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from team_movements.core.database import SCHEMA_NAME, Base, async_session_maker, engine
from team_movements.core.exceptions import SchemaCreationError
from team_movements.core.lookups import (
    COMPOUND_CATEGORIES,
    LOOKUP_TABLES,
    LookupCategory,
    is_unknown,
)
from team_movements.repositories.lookup_repository import LookupRepository
from team_movements.services.analysis.schema_analyzer import (
    CostCentreItem,
    DiscoveredItem,
    DiscoveredValues,
)
from team_movements.services.lookup_cache import SchemaReady
from team_movements.utils.logging import get_logger

LOGGER = get_logger(__name__)

SEED_CHUNK_SIZE = 1000


def build_seed_rows(category: LookupCategory, discovered: DiscoveredValues) -> List[Dict[str, Any]]:
    """Rows to seed for one category: the Unknown sentinel first, then discoveries.

    Values that spell "Unknown" in any case are skipped so the sentinel stays
    the single fallback row.
    """
    table = LOOKUP_TABLES[category]
    rows: List[Dict[str, Any]] = [table.unknown_row]

    if category not in COMPOUND_CATEGORIES:
        for value in discovered.values(category):
            if not is_unknown(value):
                rows.append({table.key_column: value})
        return rows

    for item in discovered.items(category):
        if is_unknown(item.code):
            continue
        rows.append(_compound_row(category, item))

    # multi-row inserts need the same columns in every row
    columns = {column for row in rows for column in row}
    return [{column: row.get(column) for column in columns} for row in rows]


def _compound_row(category: LookupCategory, item: DiscoveredItem) -> Dict[str, Any]:
    table = LOOKUP_TABLES[category]
    row: Dict[str, Any] = {table.key_column: item.code, table.name_column: item.name or item.code}

    if category is LookupCategory.BRAND:
        row["brand_display_name"] = item.display_name or item.name or item.code
    elif isinstance(item, CostCentreItem):
        row["formatted_address"] = item.formatted_address
        row["latitude"] = item.latitude
        row["longitude"] = item.longitude
    return row


class SchemaCreator:
    """Creates the schema, tables and indexes, then seeds every lookup table.

    Safe to run repeatedly: tables are created with ``checkfirst`` and seed
    rows use ``INSERT ... ON CONFLICT DO NOTHING``.
    """

    def __init__(
        self,
        db_engine: Optional[AsyncEngine] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        self.engine = db_engine or engine
        self.session_factory = session_factory or async_session_maker

    async def create_schema(self, discovered: DiscoveredValues) -> SchemaReady:
        """Create the schema and seed the discovered lookup values.

        Args:
            discovered: Output of the schema analyzer

        Returns:
            SchemaReady: Token required to load the lookup cache
        """
        try:
            await self.create_tables()
            seeded = await self.seed_lookups(discovered)
        except SchemaCreationError:
            raise
        except Exception as e:
            LOGGER.error("Schema creation failed", exc_info=True, extra={"error": str(e)})
            raise SchemaCreationError(f"Schema creation failed: {e}", e) from e

        LOGGER.info(
            "Schema created and lookup tables seeded",
            extra={"schema": SCHEMA_NAME, "seeded_values": seeded},
        )
        return SchemaReady(SCHEMA_NAME, seeded)

    async def create_tables(self) -> None:
        """Create the schema, every table, constraint and index if absent."""
        async with self.engine.begin() as conn:
            await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {SCHEMA_NAME}"))
            await conn.run_sync(Base.metadata.create_all, checkfirst=True)
        LOGGER.info("Database tables created/verified successfully", extra={"schema": SCHEMA_NAME})

    async def seed_lookups(self, discovered: DiscoveredValues) -> int:
        """Seed every lookup table inside one transaction.

        Returns:
            Number of rows submitted across all categories
        """
        total = 0
        async with self.session_factory() as session:
            async with session.begin():
                repository = LookupRepository(session)
                for category in LookupCategory:
                    rows = build_seed_rows(category, discovered)
                    for start in range(0, len(rows), SEED_CHUNK_SIZE):
                        total += await repository.seed(category, rows[start:start + SEED_CHUNK_SIZE])
                    LOGGER.debug(
                        "Seeded lookup table",
                        extra={"table": LOOKUP_TABLES[category].table_name, "rows": len(rows)},
                    )
        return total
