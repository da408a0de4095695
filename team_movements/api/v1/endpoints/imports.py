"""Import API endpoints."""

import asyncio
from dataclasses import asdict
from pathlib import Path
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from team_movements.core.config import settings
from team_movements.schemas.imports import (
    CategorySummary,
    DatabaseResults,
    ImportErrorResponse,
    ImportReportResponse,
    ImportRequest,
    ImportStatsResponse,
)
from team_movements.services.document import find_movement_files
from team_movements.services.importer.reporting import (
    categorize_error,
    categorize_warning,
    summarize,
)
from team_movements.services.pipeline import ImportPipeline, PipelineReport
from team_movements.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()


def get_import_pipeline() -> ImportPipeline:
    return ImportPipeline()


def build_report_response(report: PipelineReport, message: str) -> ImportReportResponse:
    """Turn a finished pipeline run into the API response."""
    sample_size = settings.importer.sample_size
    response = ImportReportResponse(
        message=message,
        directory=report.path,
        errors_dir=settings.importer.errors_dir,
    )
    if report.discovered is not None:
        response.discovered_values = report.discovered.summary()

    summary = report.summary
    if summary is not None:
        response.files_found = summary.files_found
        response.imported = summary.imported
        response.errored = summary.errored
        response.success_rate = summary.success_rate
        response.cancelled = summary.cancelled
        response.warning_count = len(summary.warnings)
        response.error_count = len(summary.errors)
        response.warning_categories = {
            category: CategorySummary(**group)
            for category, group in summarize(summary.warnings, categorize_warning, sample_size).items()
        }
        response.error_categories = {
            category: CategorySummary(**group)
            for category, group in summarize(summary.errors, categorize_error, sample_size).items()
        }

    if report.results is not None:
        response.database_results = DatabaseResults(**asdict(report.results))
    return response


def raise_for_failure(report: PipelineReport, message: str) -> None:
    if report.ok:
        return
    detail = ImportErrorResponse(message=message, error=report.error, error_chain=report.error_chain)
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=detail.model_dump(),
    )


@router.post(
    "/team-movements",
    response_model=ImportReportResponse,
    summary="Import team movement documents",
    description="Analyze the corpus, create and seed the schema, then import every file",
    operation_id="import_team_movements",
)
async def import_team_movements(
    payload: Optional[ImportRequest] = None,
    pipeline: Annotated[ImportPipeline, Depends(get_import_pipeline)] = None,
) -> ImportReportResponse:
    """Run the full import pipeline over a directory."""
    directory = (payload.directory if payload and payload.directory else None) or settings.importer.directory
    if not Path(directory).is_dir():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Directory not found: {directory}",
        )

    files = await asyncio.to_thread(find_movement_files, directory, settings.importer.file_pattern)
    if not files:
        LOGGER.info("No team movement files found", extra={"directory": directory})
        return ImportReportResponse(
            message="No team movement files found",
            directory=directory,
            errors_dir=settings.importer.errors_dir,
        )

    LOGGER.info(
        "Starting team movements import",
        extra={"directory": directory, "files_found": len(files)},
    )
    report = await pipeline.run(directory)
    raise_for_failure(report, "Critical error during import")
    return build_report_response(report, "Import completed")


@router.post(
    "/team-movements/retry-failed",
    response_model=ImportReportResponse,
    summary="Retry previously failed files",
    description="Re-import the source files referenced by the diagnostic error logs",
    operation_id="retry_failed_team_movements",
)
async def retry_failed_team_movements(
    pipeline: Annotated[ImportPipeline, Depends(get_import_pipeline)] = None,
) -> ImportReportResponse:
    report = await pipeline.retry_failed()
    raise_for_failure(report, "Critical error while retrying failed files")
    if report.files_found == 0:
        return build_report_response(report, "No failed files to retry")
    return build_report_response(report, "Retry completed")


@router.get(
    "/team-movements/stats",
    response_model=ImportStatsResponse,
    summary="Import statistics",
    description="Row counts of the imported tables and the number of error logs",
    operation_id="get_team_movements_stats",
)
async def get_team_movements_stats(
    pipeline: Annotated[ImportPipeline, Depends(get_import_pipeline)] = None,
) -> ImportStatsResponse:
    try:
        stats = await pipeline.get_stats()
    except Exception as e:
        LOGGER.error(f"Failed to read import statistics: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to read import statistics: {e}",
        )

    error_log_count = stats.pop("error_logs", 0)
    return ImportStatsResponse(tables=stats, error_log_count=error_log_count)
