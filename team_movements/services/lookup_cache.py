"""Read-only, case-insensitive cache of lookup ids."""

from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from team_movements.core.exceptions import LookupCacheError
from team_movements.core.lookups import (
    LOOKUP_TABLES,
    UNKNOWN,
    LookupCategory,
    normalize_lookup_text,
)
from team_movements.utils.logging import get_logger

LOGGER = get_logger(__name__)


class SchemaReady:
    """Proof that the schema exists and every lookup table has been seeded.

    Only ``SchemaCreator.create_schema`` hands these out; ``LookupCache.load``
    refuses to run without one.
    """

    def __init__(self, schema_name: str, seeded_values: int):
        self.schema_name = schema_name
        self.seeded_values = seeded_values

    def __repr__(self) -> str:
        return f"SchemaReady(schema={self.schema_name!r}, seeded_values={self.seeded_values})"


class LookupCache:
    """Maps ``(category, text)`` to a surrogate id.

    The cache is built once before any file is imported and never changes
    afterwards, so concurrent import tasks read it without locking.
    Unrecognised text resolves to the category's ``Unknown`` id.
    """

    def __init__(self, entries: Mapping[LookupCategory, Mapping[str, int]]):
        frozen: Dict[LookupCategory, Mapping[str, int]] = {}
        for category in LookupCategory:
            values = {key.lower(): value for key, value in entries.get(category, {}).items()}
            if UNKNOWN.lower() not in values:
                raise LookupCacheError(
                    f"Lookup table {LOOKUP_TABLES[category].table_name} has no '{UNKNOWN}' row"
                )
            frozen[category] = MappingProxyType(values)
        self._entries: Mapping[LookupCategory, Mapping[str, int]] = MappingProxyType(frozen)

    @classmethod
    async def load(cls, session: AsyncSession, schema_ready: SchemaReady) -> "LookupCache":
        """Read every lookup table, one query per category.

        Args:
            session: Session used for the read queries
            schema_ready: Token returned by the schema creator

        Returns:
            LookupCache: Fully populated cache
        """
        if not isinstance(schema_ready, SchemaReady):
            raise LookupCacheError("Lookup cache requires a seeded schema")

        entries: Dict[LookupCategory, Dict[str, int]] = {}
        try:
            for category, table in LOOKUP_TABLES.items():
                result = await session.execute(select(table.model.id, table.key))
                entries[category] = {str(value): int(id_) for id_, value in result.all()}
        except SQLAlchemyError as e:
            LOGGER.error("Failed to preload lookup tables", exc_info=True)
            raise LookupCacheError("Failed to preload lookup tables", e) from e

        cache = cls(entries)
        LOGGER.info(
            "Lookup cache loaded",
            extra={"entries": cache.size, "schema": schema_ready.schema_name},
        )
        return cache

    def resolve(self, category: LookupCategory, text: Any) -> int:
        """Return the id for ``text``, or the category's Unknown id."""
        values = self._entries[category]
        key = normalize_lookup_text(text).lower()
        found = values.get(key)
        if found is None:
            return values[UNKNOWN.lower()]
        return found

    def resolve_optional(self, category: LookupCategory, text: Any) -> Optional[int]:
        """Like ``resolve`` but keeps a missing value as None."""
        if text is None or not str(text).strip():
            return None
        return self.resolve(category, text)

    def unknown_id(self, category: LookupCategory) -> int:
        return self._entries[category][UNKNOWN.lower()]

    @property
    def size(self) -> int:
        return sum(len(values) for values in self._entries.values())
