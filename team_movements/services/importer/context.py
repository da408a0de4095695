"""State shared by every file task of a single import run."""

import threading
from dataclasses import dataclass, field
from typing import List

from team_movements.services.coercion import WarningSink
from team_movements.services.lookup_cache import LookupCache


class ImportCounters:
    """Imported and errored counters, safe to bump from concurrent tasks."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._imported = 0
        self._errored = 0

    def record_imported(self) -> int:
        with self._lock:
            self._imported += 1
            return self._imported

    def record_errored(self) -> int:
        with self._lock:
            self._errored += 1
            return self._errored

    @property
    def imported(self) -> int:
        return self._imported

    @property
    def errored(self) -> int:
        return self._errored

    @property
    def processed(self) -> int:
        with self._lock:
            return self._imported + self._errored


@dataclass
class ImportContext:
    """Everything a file task may touch outside its own transaction.

    One context is built per run from a loaded ``LookupCache``; it is never
    reused for another run.
    """

    lookups: LookupCache
    warnings: WarningSink = field(default_factory=WarningSink)
    errors: WarningSink = field(default_factory=WarningSink)
    counters: ImportCounters = field(default_factory=ImportCounters)


@dataclass
class ImportSummary:
    """Outcome of an import run."""

    files_found: int
    imported: int
    errored: int
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def success_rate(self) -> float:
        if self.files_found == 0:
            return 0.0
        return round(self.imported / self.files_found * 100, 2)
