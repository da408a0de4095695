"""Request and response models for the import API."""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class ImportRequest(BaseModel):
    """Optional override of the configured corpus directory."""

    directory: Optional[str] = Field(
        default=None,
        description="Directory to import; defaults to IMPORT_DIRECTORY",
    )


class CategorySummary(BaseModel):
    count: int = Field(..., description="Messages in this category")
    samples: List[str] = Field(default_factory=list, description="First few messages")


class DatabaseResults(BaseModel):
    """Row counts read back after the import."""

    files_processed: int = 0
    error_count: int = 0
    movements_count: int = 0
    participants_count: int = 0
    verification_error: Optional[str] = None


class ImportReportResponse(BaseModel):
    """Outcome of an import or retry run."""

    message: str = Field(..., description="Human readable outcome")
    directory: str = Field(..., description="Directory or error-log location the run used")
    files_found: int = Field(default=0, description="Files matched for import")
    imported: int = Field(default=0, description="Files committed")
    errored: int = Field(default=0, description="Files rolled back")
    success_rate: float = Field(default=0.0, description="imported / files_found * 100")
    cancelled: bool = Field(default=False, description="Run stopped between batches")
    warning_count: int = 0
    error_count: int = 0
    warning_categories: Dict[str, CategorySummary] = Field(default_factory=dict)
    error_categories: Dict[str, CategorySummary] = Field(default_factory=dict)
    discovered_values: Dict[str, int] = Field(
        default_factory=dict,
        description="Distinct lookup values found per category during analysis",
    )
    database_results: Optional[DatabaseResults] = None
    errors_dir: str = Field(..., description="Where per-file diagnostic logs are written")

    class Config:
        json_schema_extra = {
            "example": {
                "message": "Import completed",
                "directory": "data/team_movements",
                "files_found": 4,
                "imported": 3,
                "errored": 1,
                "success_rate": 75.0,
                "cancelled": False,
                "warning_count": 1,
                "error_count": 1,
                "warning_categories": {
                    "Time Parsing Warning": {
                        "count": 1,
                        "samples": ["Could not parse time string 'late', using default 00:00"],
                    }
                },
                "error_categories": {
                    "Other Error": {"count": 1, "samples": ["broken.json: Invalid JSON"]}
                },
                "discovered_values": {"status": 3},
                "database_results": {
                    "files_processed": 3,
                    "error_count": 1,
                    "movements_count": 3,
                    "participants_count": 7,
                    "verification_error": None,
                },
                "errors_dir": "import_errors",
            }
        }


class ImportErrorResponse(BaseModel):
    """Body of a failed import request."""

    message: str
    error: str
    error_chain: List[str] = Field(default_factory=list, description="Outermost cause first")


class ImportStatsResponse(BaseModel):
    tables: Dict[str, int] = Field(..., description="Row count per fact table")
    error_log_count: int = Field(..., description=".log files in the error directory")
