"""End-to-end import pipeline: analyze, create schema, preload lookups, import, verify."""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from team_movements.core.config import settings
from team_movements.core.database import async_session_maker
from team_movements.repositories.stats_repository import StatsRepository
from team_movements.services.analysis.schema_analyzer import DiscoveredValues, SchemaAnalyzer
from team_movements.services.importer.context import ImportContext, ImportSummary
from team_movements.services.importer.data_importer import DataImporter
from team_movements.services.importer.error_log import (
    count_error_logs,
    find_failed_files,
    iter_causes,
)
from team_movements.services.lookup_cache import LookupCache, SchemaReady
from team_movements.services.schema.schema_creator import SchemaCreator
from team_movements.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class ImportResults:
    """Row counts read back after an import."""

    files_processed: int = 0
    error_count: int = 0
    movements_count: int = 0
    participants_count: int = 0
    verification_error: Optional[str] = None


@dataclass
class PipelineReport:
    """Everything a pipeline run produced. ``error`` is set on a critical failure."""

    path: str
    discovered: Optional[DiscoveredValues] = None
    summary: Optional[ImportSummary] = None
    results: Optional[ImportResults] = None
    error: Optional[str] = None
    error_chain: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def files_found(self) -> int:
        return self.summary.files_found if self.summary else 0


class ImportPipeline:
    """Runs the import stages in order, each consuming the previous stage's output.

    ``SchemaAnalyzer`` -> ``DiscoveredValues`` -> ``SchemaCreator`` ->
    ``SchemaReady`` -> ``LookupCache`` -> ``DataImporter`` -> ``ImportResults``.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        db_engine: Optional[AsyncEngine] = None,
        errors_dir: Optional[Union[str, Path]] = None,
        analyzer: Optional[SchemaAnalyzer] = None,
        schema_creator: Optional[SchemaCreator] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self.session_factory = session_factory or async_session_maker
        self.errors_dir = Path(errors_dir or settings.importer.errors_dir)
        self.analyzer = analyzer or SchemaAnalyzer()
        self.schema_creator = schema_creator or SchemaCreator(db_engine, self.session_factory)
        self.cancel_event = cancel_event

    async def run(self, path: Union[str, Path]) -> PipelineReport:
        """Import every movement file under ``path``. Never raises.

        Args:
            path: Corpus directory

        Returns:
            PipelineReport: Stage outputs, or the error that stopped the run
        """
        report = PipelineReport(path=str(path))
        try:
            LOGGER.info("Step 1: Analyzing JSON files to discover schema", extra={"path": str(path)})
            report.discovered = await self.analyzer.analyze(path)

            LOGGER.info("Step 2: Creating database schema")
            schema_ready = await self.schema_creator.create_schema(report.discovered)

            LOGGER.info("Step 3: Preloading lookup tables")
            lookups = await self.load_lookups(schema_ready)

            LOGGER.info("Step 4: Importing data")
            report.summary = await self._importer(lookups).import_directory(path)

            LOGGER.info("Step 5: Verifying import")
            report.results = await self.verify(report.summary.imported, report.summary.errored)
        except Exception as e:
            self._fail(report, e)
        return report

    async def retry_failed(self) -> PipelineReport:
        """Re-import the source files referenced by error logs. Never raises.

        No analysis runs first, so values the schema has not seen resolve to
        Unknown.
        """
        report = PipelineReport(path=str(self.errors_dir))
        try:
            files = find_failed_files(self.errors_dir)
            LOGGER.info(
                f"Found {len(files)} previously failed files to retry",
                extra={"errors_dir": str(self.errors_dir)},
            )
            if not files:
                report.summary = ImportSummary(files_found=0, imported=0, errored=0)
                return report

            schema_ready = await self.schema_creator.create_schema(DiscoveredValues())
            lookups = await self.load_lookups(schema_ready)
            report.summary = await self._importer(lookups).import_files(files)
            report.results = await self.verify(report.summary.imported, report.summary.errored)
        except Exception as e:
            self._fail(report, e)
        return report

    async def load_lookups(self, schema_ready: SchemaReady) -> LookupCache:
        async with self.session_factory() as session:
            return await LookupCache.load(session, schema_ready)

    async def verify(self, files_processed: int = 0, error_count: int = 0) -> ImportResults:
        """Count movements and participants; a failed query is reported, not raised."""
        results = ImportResults(files_processed=files_processed, error_count=error_count)
        try:
            async with self.session_factory() as session:
                stats = StatsRepository(session)
                results.movements_count = await stats.count("movements")
                results.participants_count = await stats.count("participants")
        except Exception as e:
            LOGGER.error("Error verifying import", exc_info=True, extra={"error": str(e)})
            results.verification_error = str(e)
            return results

        LOGGER.info(
            "Import verification complete",
            extra={
                "movements_count": results.movements_count,
                "participants_count": results.participants_count,
            },
        )
        return results

    async def get_stats(self) -> Dict[str, int]:
        """Row counts of the fact tables plus the number of error logs."""
        async with self.session_factory() as session:
            stats = await StatsRepository(session).get_import_stats()
        stats["error_logs"] = count_error_logs(self.errors_dir)
        return stats

    def _importer(self, lookups: LookupCache) -> DataImporter:
        return DataImporter(
            ImportContext(lookups=lookups),
            session_factory=self.session_factory,
            errors_dir=self.errors_dir,
            cancel_event=self.cancel_event,
        )

    @staticmethod
    def _fail(report: PipelineReport, error: Exception) -> None:
        report.error = str(error)
        report.error_chain = [f"{type(cause).__name__}: {cause}" for cause in iter_causes(error)]
        LOGGER.error(
            f"Critical error during import: {error}",
            exc_info=True,
            extra={"path": report.path},
        )
