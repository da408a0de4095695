"""Per-file transactional import of movement documents."""

from team_movements.services.importer.context import ImportContext, ImportCounters, ImportSummary
from team_movements.services.importer.data_importer import DataImporter, DocumentImporter

__all__ = [
    "DataImporter",
    "DocumentImporter",
    "ImportContext",
    "ImportCounters",
    "ImportSummary",
]
