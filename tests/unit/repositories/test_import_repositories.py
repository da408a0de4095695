"""Tests for the SQL the import repositories emit."""

import re
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import SQLAlchemyError

from team_movements.core.lookups import LookupCategory
from team_movements.repositories import (
    CostCentreRepository,
    LookupRepository,
    MovementRepository,
    StatsRepository,
    TagRepository,
)


def compiled(statement) -> str:
    return str(statement.compile(dialect=postgresql.dialect()))


@pytest.fixture
def session() -> AsyncMock:
    session = AsyncMock()
    result = MagicMock()
    result.scalar_one.return_value = 42
    session.execute = AsyncMock(return_value=result)
    return session


class TestMovementRepository:
    @pytest.mark.asyncio
    async def test_upsert_on_business_key(self, session):
        movement_pk = await MovementRepository(session).upsert("MOV-1", employee_id="E1")

        assert movement_pk == 42
        sql = compiled(session.execute.await_args.args[0])
        assert "ON CONFLICT (movement_id) DO UPDATE" in sql
        assert "updated_at = now()" in sql

    @pytest.mark.asyncio
    async def test_errors_propagate(self, session):
        session.execute.side_effect = SQLAlchemyError("boom")

        with pytest.raises(SQLAlchemyError):
            await MovementRepository(session).upsert("MOV-1")


class TestCostCentreRepository:
    @pytest.mark.asyncio
    async def test_enrich_is_a_single_conditional_upsert(self, session):
        await CostCentreRepository(session).enrich(
            "CC1", "Store", "1 Main St", Decimal("1.5"), None
        )

        session.execute.assert_awaited_once()
        sql = compiled(session.execute.await_args.args[0])
        assert "ON CONFLICT (cost_centre_code) DO UPDATE" in sql
        for column in ("formatted_address", "latitude", "longitude"):
            assert re.search(
                rf"coalesce\(excluded\.{column}, (team_movements\.)?cost_centres\.{column}\)", sql
            ), column
        assert "CASE WHEN" in sql
        assert "WHERE excluded.formatted_address IS NOT NULL" in sql


class TestLookupRepository:
    @pytest.mark.asyncio
    async def test_seed_never_overwrites(self, session):
        submitted = await LookupRepository(session).seed(
            LookupCategory.STATUS, [{"status_name": "Unknown"}, {"status_name": "Approved"}]
        )

        assert submitted == 2
        sql = compiled(session.execute.await_args.args[0])
        assert "ON CONFLICT DO NOTHING" in sql


class TestTagRepository:
    @pytest.mark.asyncio
    async def test_replace_deletes_then_inserts(self, session):
        await TagRepository(session).replace_for_movement(42, ["urgent", ""])

        delete_sql, insert_sql = (compiled(call.args[0]) for call in session.execute.await_args_list)
        assert delete_sql.startswith("DELETE FROM team_movements.tags")
        assert "ON CONFLICT DO NOTHING" in insert_sql


class TestStatsRepository:
    @pytest.mark.asyncio
    async def test_counts_every_fact_table(self, session):
        stats = await StatsRepository(session).get_import_stats()

        assert set(stats) == {
            "movements", "participants", "job_info", "contracts", "history_events", "tags",
        }
        assert all(count == 42 for count in stats.values())
