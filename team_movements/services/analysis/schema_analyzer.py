"""Corpus scan that discovers every lookup value before the schema is seeded.

The analyzer only reads files. Its output, ``DiscoveredValues``, is what the
schema creator seeds into the lookup tables so that no fact row written
later has to reference a value that does not exist yet.
"""

import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from team_movements.core.config import settings
from team_movements.core.lookups import COMPOUND_CATEGORIES, LookupCategory
from team_movements.services.coercion import WarningSink, coerce_decimal
from team_movements.services.document import JsonNode, find_movement_files
from team_movements.utils.logging import get_logger

LOGGER = get_logger(__name__)

JOB_INFO_KEYS = ("currentJobInfo", "newJobInfo")
CONTRACT_KEYS = ("currentContract", "newContract")
HISTORY_CONTRACT_KEYS = ("contract", "currentContract", "newContract")
WEEKDAY_KEYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")

TAG_PREFIXES: Dict[str, LookupCategory] = {
    "FromEmployeeGroup:": LookupCategory.EMPLOYEE_GROUP,
    "ToEmployeeGroup:": LookupCategory.EMPLOYEE_GROUP,
    "FromEmployeeSubgroup:": LookupCategory.EMPLOYEE_SUBGROUP,
    "ToEmployeeSubgroup:": LookupCategory.EMPLOYEE_SUBGROUP,
    "FromBanner:": LookupCategory.BANNER,
    "ToBanner:": LookupCategory.BANNER,
    "FromGroup:": LookupCategory.BUSINESS_GROUP,
    "ToGroup:": LookupCategory.BUSINESS_GROUP,
}

PROGRESS_EVERY = 500


@dataclass
class LookupItem:
    """A compound lookup value: natural code plus optional names."""

    code: str
    name: Optional[str] = None
    display_name: Optional[str] = None

    def merge(self, other: "LookupItem") -> None:
        """Fill names this item is missing from ``other``."""
        self.name = self.name or other.name
        self.display_name = self.display_name or other.display_name


@dataclass
class CostCentreItem(LookupItem):
    """A cost centre with optional geo data."""

    formatted_address: Optional[str] = None
    latitude: Optional[Decimal] = None
    longitude: Optional[Decimal] = None

    def merge(self, other: LookupItem) -> None:
        super().merge(other)
        if isinstance(other, CostCentreItem):
            self.formatted_address = self.formatted_address or other.formatted_address
            if self.latitude is None:
                self.latitude = other.latitude
            if self.longitude is None:
                self.longitude = other.longitude


DiscoveredItem = Union[LookupItem, CostCentreItem]


@dataclass
class DiscoveredValues:
    """Lookup values found in the corpus, keyed by category.

    Plain categories keep the first spelling seen for each case-insensitive
    value. Compound categories are keyed by case-insensitive code and merge
    later sightings into the first.
    """

    plain: Dict[LookupCategory, Dict[str, str]] = field(
        default_factory=lambda: {
            category: {} for category in LookupCategory if category not in COMPOUND_CATEGORIES
        }
    )
    compound: Dict[LookupCategory, Dict[str, DiscoveredItem]] = field(
        default_factory=lambda: {category: {} for category in COMPOUND_CATEGORIES}
    )
    files_analyzed: int = 0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add(self, category: LookupCategory, value: Optional[str]) -> None:
        """Record a plain value; compound categories get a code-only item."""
        if value is None:
            return
        text = value.strip()
        if not text:
            return
        if category in COMPOUND_CATEGORIES:
            self.add_item(category, LookupItem(text))
            return
        self.plain[category].setdefault(text.lower(), text)

    def add_item(self, category: LookupCategory, item: DiscoveredItem) -> None:
        code = (item.code or "").strip()
        if not code:
            return
        item.code = code
        if category is LookupCategory.COST_CENTRE and not isinstance(item, CostCentreItem):
            # keep room for geo data seen later under the same code
            item = CostCentreItem(item.code, item.name, item.display_name)
        existing = self.compound[category].get(code.lower())
        if existing is None:
            self.compound[category][code.lower()] = item
        else:
            existing.merge(item)

    def values(self, category: LookupCategory) -> List[str]:
        if category in COMPOUND_CATEGORIES:
            return [item.code for item in self.compound[category].values()]
        return list(self.plain[category].values())

    def items(self, category: LookupCategory) -> List[DiscoveredItem]:
        return list(self.compound.get(category, {}).values())

    def count(self, category: LookupCategory) -> int:
        if category in COMPOUND_CATEGORIES:
            return len(self.compound[category])
        return len(self.plain[category])

    def merge(self, other: "DiscoveredValues") -> None:
        """Fold another scan result into this one."""
        for category, values in other.plain.items():
            for value in values.values():
                self.add(category, value)
        for category, items in other.compound.items():
            for item in items.values():
                self.add_item(category, item)
        self.files_analyzed += other.files_analyzed
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)

    def summary(self) -> Dict[str, int]:
        return {category.value: self.count(category) for category in LookupCategory}


class DocumentAnalyzer:
    """Extracts lookup values from one parsed document."""

    def __init__(self, discovered: DiscoveredValues, sink: WarningSink):
        self.discovered = discovered
        self.sink = sink

    def analyze(self, root: JsonNode) -> None:
        self.discovered.add(LookupCategory.MOVEMENT_TYPE, root.get_str("movementType"))
        self.discovered.add(LookupCategory.STATUS, root.get_str("status"))

        for key in JOB_INFO_KEYS:
            job_info = root.get_object(key)
            if job_info is not None:
                self._job_info(job_info)

        for participant in root.get_array("participants"):
            if participant.is_object:
                self._participant(participant)

        for key in CONTRACT_KEYS:
            contract = root.get_object(key)
            if contract is not None:
                self._contract(contract)

        for entry in root.get_array("history"):
            if entry.is_object:
                self._history_event(entry)

        for tag in root.get_array("tags"):
            self._tag(tag.as_str())

    def _job_info(self, job_info: JsonNode) -> None:
        add = self.discovered.add
        add(LookupCategory.EMPLOYEE_GROUP, job_info.get_str("employeeGroup"))

        position = job_info.get_object("position")
        if position is not None:
            add(LookupCategory.EMPLOYEE_SUBGROUP, position.get_str("employeeSubgroup"))
            add(LookupCategory.BANNER, position.get_str("banner"))
            add(LookupCategory.JOB_ROLE, position.get_str("jobRole"))
            self._compound(
                LookupCategory.BRAND,
                position.get_str("brand"),
                position.get_str("brandName"),
                position.get_str("brandDisplayName"),
            )
            self._compound(
                LookupCategory.BUSINESS_GROUP,
                position.get_str("group"),
                position.get_str("groupName"),
            )
            self._compound(
                LookupCategory.DEPARTMENT,
                position.get_str("payingDepartment"),
                position.get_str("payingDepartmentName"),
            )
            self._compound(
                LookupCategory.COST_CENTRE,
                position.get_str("costCentre"),
                position.get_str("costCentreName"),
            )

        manager = job_info.get_object("manager")
        if manager is not None:
            self._cost_centre_object(manager.get_object("costCentre"))

    def _participant(self, participant: JsonNode) -> None:
        add = self.discovered.add
        add(LookupCategory.PARTICIPANT_ROLE, participant.get_str("role"))
        add(LookupCategory.BANNER, participant.get_str("banner"))
        self._compound(
            LookupCategory.BRAND,
            participant.get_str("brand") or participant.get_str("brandDisplayName"),
            None,
            participant.get_str("brandDisplayName"),
        )
        self._compound(
            LookupCategory.DEPARTMENT,
            participant.get_str("payingDepartment"),
            participant.get_str("payingDepartmentName"),
        )
        self._compound(
            LookupCategory.COST_CENTRE,
            participant.get_str("costCentre"),
            participant.get_str("costCentreName"),
        )

    def _contract(self, contract: JsonNode) -> None:
        for flag in contract.get_array("mutualFlags"):
            self.discovered.add(LookupCategory.MUTUAL_FLAG, flag.as_str())

        for week in contract.get_array("weeks"):
            for day in WEEKDAY_KEYS:
                for shift in week.get_array(day):
                    for break_type in shift.get_array("breaks"):
                        self.discovered.add(LookupCategory.BREAK_TYPE, break_type.as_str())

    def _history_event(self, entry: JsonNode) -> None:
        keys = entry.keys()
        if not keys:
            return
        event_type = keys[0]
        self.discovered.add(LookupCategory.HISTORY_EVENT_TYPE, event_type)

        payload = entry.get_object(event_type)
        if payload is None:
            return

        new_manager = payload.get_object("newManager")
        if new_manager is not None:
            self._cost_centre_object(new_manager.get_object("costCentre"))

        participant = payload.get_object("participant")
        if participant is not None:
            self.discovered.add(LookupCategory.PARTICIPANT_ROLE, participant.get_str("role"))
            self._cost_centre_object(participant.get_object("costCentre"))

        for key in HISTORY_CONTRACT_KEYS:
            contract = payload.get_object(key)
            if contract is not None:
                self._contract(contract)

    def _tag(self, tag: Optional[str]) -> None:
        if not tag:
            return
        for prefix, category in TAG_PREFIXES.items():
            if tag.startswith(prefix):
                value = tag[len(prefix):]
                if category in COMPOUND_CATEGORIES:
                    self._compound(category, value, value)
                else:
                    self.discovered.add(category, value)
                return

    def _compound(
        self,
        category: LookupCategory,
        code: Optional[str],
        name: Optional[str] = None,
        display_name: Optional[str] = None,
    ) -> None:
        if not code or not code.strip():
            return
        self.discovered.add_item(category, LookupItem(code, name, display_name))

    def _cost_centre_object(self, node: Optional[JsonNode]) -> None:
        if node is None:
            return
        code = node.get_str("costCentre")
        if not code or not code.strip():
            return
        self.discovered.add_item(
            LookupCategory.COST_CENTRE,
            CostCentreItem(
                code=code,
                name=node.get_str("name"),
                formatted_address=node.get_str("addressFormatted"),
                latitude=coerce_decimal(node.value("lat"), "latitude", self.sink).value,
                longitude=coerce_decimal(node.value("lng"), "longitude", self.sink).value,
            ),
        )


class SchemaAnalyzer:
    """Scans a directory of movement documents for lookup values.

    Files are read in fixed-size batches; each batch is parsed on worker
    threads with bounded concurrency and the per-file results are merged in
    file order.
    """

    def __init__(
        self,
        file_pattern: Optional[str] = None,
        batch_size: Optional[int] = None,
        max_concurrency: Optional[int] = None,
    ):
        self.file_pattern = file_pattern or settings.importer.file_pattern
        self.batch_size = batch_size or settings.importer.analysis_batch_size
        self.max_concurrency = max_concurrency or settings.importer.max_concurrency

    async def analyze(self, corpus_path: Union[str, Path]) -> DiscoveredValues:
        """Discover lookup values across every matching file under ``corpus_path``.

        Args:
            corpus_path: Directory scanned recursively

        Returns:
            DiscoveredValues: Merged values plus per-file errors
        """
        files = await asyncio.to_thread(find_movement_files, corpus_path, self.file_pattern)
        LOGGER.info(
            f"Found {len(files)} team movement files to analyze",
            extra={"path": str(corpus_path)},
        )
        return await self.analyze_files(files)

    async def analyze_files(self, files: Sequence[Path]) -> DiscoveredValues:
        discovered = DiscoveredValues()
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def analyze_one(path: Path) -> DiscoveredValues:
            async with semaphore:
                return await asyncio.to_thread(self.analyze_file, path)

        processed = 0
        for start in range(0, len(files), self.batch_size):
            batch = files[start:start + self.batch_size]
            results = await asyncio.gather(*(analyze_one(path) for path in batch))
            for result in results:
                discovered.merge(result)
                processed += 1
                if processed % PROGRESS_EVERY == 0:
                    LOGGER.info(f"Analyzed {processed} of {len(files)} files")

        LOGGER.info(
            f"Analysis complete: {discovered.files_analyzed} files with {len(discovered.errors)} errors",
            extra={"discovered": discovered.summary()},
        )
        return discovered

    @staticmethod
    def analyze_file(path: Path) -> DiscoveredValues:
        """Analyze a single file; failures are recorded, not raised."""
        result = DiscoveredValues()
        sink = WarningSink()
        try:
            text = Path(path).read_text(encoding="utf-8-sig")
            root = JsonNode.parse(text)
            DocumentAnalyzer(result, sink).analyze(root)
            result.files_analyzed = 1
        except Exception as e:
            result.errors.append(f"{Path(path).name}: {e}")
            LOGGER.warning(
                "Failed to analyze file",
                extra={"file": str(path), "error": str(e)},
            )
        result.warnings.extend(sink.snapshot())
        return result

    @staticmethod
    def analyze_document(root: JsonNode) -> DiscoveredValues:
        """Analyze an already parsed document."""
        result = DiscoveredValues()
        sink = WarningSink()
        DocumentAnalyzer(result, sink).analyze(root)
        result.files_analyzed = 1
        result.warnings.extend(sink.snapshot())
        return result
