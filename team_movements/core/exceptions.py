"""Custom exception hierarchy."""

from typing import Optional


class TeamMovementsError(Exception):
    """Base exception for loader errors."""
    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


class ConfigurationError(TeamMovementsError):
    """Raised when configuration is invalid or missing."""
    pass


class DocumentParseError(TeamMovementsError):
    """Raised when a source document is not valid JSON or not an object."""
    pass


class LookupCacheError(TeamMovementsError):
    """Raised when the lookup cache cannot be built from the schema."""
    pass


class SchemaCreationError(TeamMovementsError):
    """Raised when DDL or lookup seeding fails."""
    pass


class ImportStepError(TeamMovementsError):
    """Raised when a transactional import step fails for a file.

    The step name identifies which part of the movement was being written
    when the failure happened.
    """
    def __init__(self, step: str, original_error: Exception):
        super().__init__(f"Error importing {step}: {original_error}", original_error)
        self.step = step

