"""Per-file diagnostic logs for failed imports, and reading them back."""

import traceback
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Union

from asyncpg.exceptions import PostgresError

from team_movements.utils.logging import get_logger

LOGGER = get_logger(__name__)

JSON_PARSE_ERROR = "JSON_PARSE_ERROR"
IMPORT_ERROR = "IMPORT_ERROR"

FILE_SAMPLE_CHARS = 2000
FILE_LINE_PREFIX = "File: "

POSTGRES_DETAIL_FIELDS = (
    ("Error Code", "sqlstate"),
    ("Constraint", "constraint_name"),
    ("Detail", "detail"),
    ("Hint", "hint"),
    ("Where", "context"),
    ("Column", "column_name"),
    ("Table", "table_name"),
    ("Schema", "schema_name"),
)


def iter_causes(error: BaseException) -> Iterable[BaseException]:
    """Yield ``error`` and everything it was raised from, outermost first."""
    seen = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = (
            getattr(current, "original_error", None)
            or getattr(current, "orig", None)
            or current.__cause__
            or current.__context__
        )


def innermost_cause(error: BaseException) -> BaseException:
    """The first exception raised in the chain."""
    last = error
    for last in iter_causes(error):
        pass
    return last


def find_postgres_error(error: BaseException) -> Optional[PostgresError]:
    """The asyncpg server error somewhere in the chain, if any."""
    for cause in iter_causes(error):
        if isinstance(cause, PostgresError):
            return cause
    return None


def movement_id_from_file_name(file_name: str) -> str:
    """Pull the movement id out of ``tms_team_movements_team_movement_<id>...json``."""
    parts = Path(file_name).stem.split("_")
    return parts[5] if len(parts) > 5 else "Unknown"


class ErrorLogWriter:
    """Writes one ``<file>_<timestamp>.log`` artifact per failed file."""

    def __init__(self, errors_dir: Union[str, Path]):
        self.errors_dir = Path(errors_dir)

    def write(
        self,
        source_path: Union[str, Path],
        error_type: str,
        message: str,
        error: BaseException,
    ) -> Optional[Path]:
        """Write the diagnostic for ``source_path``.

        Failures to write are logged and otherwise ignored so a broken
        diagnostics directory never stops an import run.

        Returns:
            Path of the log file, or None when it could not be written
        """
        source_path = Path(source_path)
        now = datetime.now()
        log_path = self.errors_dir / f"{source_path.name}_{now:%Y%m%d_%H%M%S}.log"
        try:
            self.errors_dir.mkdir(parents=True, exist_ok=True)
            log_path.write_text(
                self.render(source_path, error_type, message, error, now), encoding="utf-8"
            )
            return log_path
        except OSError as e:
            LOGGER.warning(
                "Failed to write detailed error log",
                extra={"file": str(source_path), "error": str(e)},
            )
            return None

    def render(
        self,
        source_path: Path,
        error_type: str,
        message: str,
        error: BaseException,
        timestamp: datetime,
    ) -> str:
        lines = [
            f"Error Type: {error_type}",
            f"Timestamp: {timestamp.isoformat(sep=' ', timespec='seconds')}",
            f"{FILE_LINE_PREFIX}{source_path}",
            f"Error Message: {message}",
            "",
            "Exception Details:",
            "".join(traceback.format_exception(type(error), error, error.__traceback__)).rstrip(),
        ]

        inner = innermost_cause(error)
        if inner is not error:
            lines += ["", f"Root Cause: {type(inner).__name__}: {inner}"]

        pg_error = find_postgres_error(error)
        if pg_error is not None:
            lines += ["", "PostgreSQL Error Details:"]
            for label, attribute in POSTGRES_DETAIL_FIELDS:
                lines.append(f"{label}: {getattr(pg_error, attribute, None) or 'None'}")

        lines += ["", f"File Sample (first {FILE_SAMPLE_CHARS} chars):"]
        try:
            content = source_path.read_text(encoding="utf-8-sig", errors="replace")
            lines.append(content[:FILE_SAMPLE_CHARS] + ("..." if len(content) > FILE_SAMPLE_CHARS else ""))
        except OSError:
            lines.append("Could not read file content for logging.")

        return "\n".join(lines) + "\n"


def count_error_logs(errors_dir: Union[str, Path]) -> int:
    directory = Path(errors_dir)
    if not directory.is_dir():
        return 0
    return sum(1 for _ in directory.glob("*.log"))


def find_failed_files(errors_dir: Union[str, Path]) -> List[Path]:
    """Source files referenced by error logs that still exist, deduplicated.

    Args:
        errors_dir: Directory holding the ``.log`` artifacts

    Returns:
        Paths in the order their logs sort by name
    """
    directory = Path(errors_dir)
    if not directory.is_dir():
        return []

    found: List[Path] = []
    seen = set()
    for log_path in sorted(directory.glob("*.log")):
        try:
            with log_path.open(encoding="utf-8", errors="replace") as handle:
                for line in handle:
                    if line.startswith(FILE_LINE_PREFIX):
                        source = Path(line[len(FILE_LINE_PREFIX):].strip())
                        key = str(source)
                        if key not in seen and source.is_file():
                            seen.add(key)
                            found.append(source)
                        break
        except OSError as e:
            LOGGER.warning(
                "Could not read error log",
                extra={"log": str(log_path), "error": str(e)},
            )
    return found
