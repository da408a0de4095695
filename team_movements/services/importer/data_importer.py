"""Transactional import of movement documents.

Each file is one unit of work: one session, one READ COMMITTED transaction.
The steps that write the movement and its children raise ``ImportStepError``
and roll the whole file back. Cost-centre enrichment and the pieces of a
contract schedule (mutual flags, weeks, shifts, breaks) run inside
savepoints, so their failures become warnings and the rest of the file
still commits.
"""

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar, Union

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from team_movements.core.config import settings
from team_movements.core.database import async_session_maker
from team_movements.core.exceptions import DocumentParseError, ImportStepError
from team_movements.core.lookups import LookupCategory, is_unknown
from team_movements.repositories.contract_repository import ContractRepository
from team_movements.repositories.history_repository import HistoryEventRepository, TagRepository
from team_movements.repositories.lookup_repository import CostCentreRepository
from team_movements.repositories.movement_repository import (
    JobInfoRepository,
    MovementRepository,
    ParticipantRepository,
)
from team_movements.services.coercion import (
    coerce_bool,
    coerce_datetime,
    coerce_decimal,
    coerce_int,
    coerce_time,
)
from team_movements.services.document import JsonNode, extract_field, find_movement_files
from team_movements.services.importer.context import ImportContext, ImportSummary
from team_movements.services.importer.error_log import (
    IMPORT_ERROR,
    JSON_PARSE_ERROR,
    ErrorLogWriter,
    innermost_cause,
    movement_id_from_file_name,
)
from team_movements.utils.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")

WEEKDAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")
JOB_INFO_SLOTS = (("currentJobInfo", True), ("newJobInfo", False))
CONTRACT_SLOTS = (("currentContract", True), ("newContract", False))

PROGRESS_EVERY = 100


class DocumentImporter:
    """Writes one parsed document through an open transaction."""

    def __init__(self, session: AsyncSession, context: ImportContext):
        self.session = session
        self.context = context
        self.lookups = context.lookups
        self.sink = context.warnings

        self.movements = MovementRepository(session)
        self.participants = ParticipantRepository(session)
        self.job_info = JobInfoRepository(session)
        self.contracts = ContractRepository(session)
        self.history = HistoryEventRepository(session)
        self.tags = TagRepository(session)
        self.cost_centres = CostCentreRepository(session)

    async def run(self, root: JsonNode) -> int:
        """Import the document and return the movement's surrogate id."""
        await self.enrich_cost_centres(root)

        movement_pk = await self._step("movement", self.upsert_movement(root))
        await self._step("participants", self.replace_participants(root, movement_pk))
        for key, is_current in JOB_INFO_SLOTS:
            await self._step(key, self.replace_job_info(root, movement_pk, key, is_current))
        for key, is_current in CONTRACT_SLOTS:
            await self._step(key, self.replace_contract(root, movement_pk, key, is_current))
        await self._step("history", self.replace_history(root, movement_pk))
        await self._step("tags", self.replace_tags(root, movement_pk))
        return movement_pk

    async def _step(self, name: str, work: Awaitable[T]) -> T:
        try:
            return await work
        except Exception as e:
            raise ImportStepError(name, e) from e

    async def _savepoint(self, work: Callable[[], Awaitable[T]]) -> T:
        async with self.session.begin_nested():
            return await work()

    # ------------------------------------------------------------------
    # Cost-centre enrichment (tolerated)
    # ------------------------------------------------------------------

    async def enrich_cost_centres(self, root: JsonNode) -> bool:
        """Upsert geo data from manager and history cost-centre objects.

        Returns:
            True when every enrichment succeeded. Never raises.
        """
        ok = True
        for node in self._enrichment_sources(root):
            ok = await self.enrich_cost_centre(node) and ok
        return ok

    @staticmethod
    def _enrichment_sources(root: JsonNode) -> List[JsonNode]:
        sources: List[JsonNode] = []
        for key, _ in JOB_INFO_SLOTS:
            cost_centre = root.path(key, "manager").get_object("costCentre")
            if cost_centre is not None:
                sources.append(cost_centre)

        for entry in root.get_array("history"):
            keys = entry.keys()
            if not keys:
                continue
            payload = entry.get_object(keys[0])
            if payload is None:
                continue
            for holder in ("newManager", "participant"):
                cost_centre = payload.path(holder).get_object("costCentre")
                if cost_centre is not None:
                    sources.append(cost_centre)
        return sources

    async def enrich_cost_centre(self, node: JsonNode) -> bool:
        code = (node.get_str("costCentre") or "").strip()
        if not code or is_unknown(code):
            return True

        latitude = extract_field(node, ("lat",), coerce_decimal, self.sink, "latitude")
        longitude = extract_field(node, ("lng",), coerce_decimal, self.sink, "longitude")
        address = node.get_str("addressFormatted")
        try:
            await self._savepoint(
                lambda: self.cost_centres.enrich(
                    code, node.get_str("name"), address, latitude, longitude
                )
            )
        except Exception as e:
            self.sink.add(f"Failed to update cost centre {code} with location data: {e}")
            return False

        if address or latitude is not None or longitude is not None:
            LOGGER.debug(
                "Updated cost centre with location data",
                extra={"cost_centre": code, "address": address},
            )
        return True

    # ------------------------------------------------------------------
    # Movement and children (failing steps)
    # ------------------------------------------------------------------

    async def upsert_movement(self, root: JsonNode) -> int:
        movement_id = (root.get_str("movementId") or "").strip()
        if not movement_id:
            raise ValueError("Movement ID is required")

        workflow = root.get_object("workflow")
        return await self.movements.upsert(
            movement_id,
            employee_id=root.get_str("employeeId") or "Unknown",
            movement_type_id=self.lookups.resolve(
                LookupCategory.MOVEMENT_TYPE, root.get_str("movementType")
            ),
            status_id=self.lookups.resolve(LookupCategory.STATUS, root.get_str("status")),
            start_date=extract_field(root, ("startDate",), coerce_datetime, self.sink),
            end_date=extract_field(root, ("endDate",), coerce_datetime, self.sink),
            workflow_definition_id=(workflow.get_str("definitionId") if workflow else None) or "Unknown",
            workflow_version=extract_field(
                workflow, ("version",), coerce_int, self.sink, "workflow.version", default=0
            ),
            workflow_archived=extract_field(
                workflow, ("archived",), coerce_bool, self.sink, "workflow.archived", default=False
            ),
        )

    def participant_row(self, participant: JsonNode) -> Dict[str, Any]:
        """Column values for one entry of ``participants[]``.

        The brand is resolved by code, falling back to the display name that
        older documents carry instead.
        """
        resolve = self.lookups.resolve
        return {
            "employee_id": participant.get_str("employeeId") or "Unknown",
            "name": participant.get_text("name"),
            "position_id": participant.get_text("position"),
            "position_title": participant.get_text("positionTitle"),
            "banner_id": resolve(LookupCategory.BANNER, participant.get_str("banner")),
            "brand_id": resolve(
                LookupCategory.BRAND,
                participant.get_str("brand") or participant.get_str("brandDisplayName"),
            ),
            "department_id": resolve(
                LookupCategory.DEPARTMENT, participant.get_str("payingDepartment")
            ),
            "cost_centre_id": resolve(LookupCategory.COST_CENTRE, participant.get_str("costCentre")),
            "role_id": resolve(LookupCategory.PARTICIPANT_ROLE, participant.get_str("role")),
            "photo_url": participant.get_text("photo"),
        }

    async def replace_participants(self, root: JsonNode, movement_pk: int) -> None:
        rows = [
            self.participant_row(participant)
            for participant in root.get_array("participants")
            if participant.is_object
        ]
        await self.participants.replace_for_movement(movement_pk, rows)

    def job_info_values(self, job_info: JsonNode) -> Dict[str, Any]:
        """Column values for a job snapshot; absent sub-objects read as empty."""
        resolve = self.lookups.resolve
        sink = self.sink
        manager = job_info.get_object("manager") or JsonNode({})
        position = job_info.get_object("position")
        if position is None:
            # older documents carry the position id as a plain string
            position_id = job_info.get_text("position")
            position = JsonNode({})
        else:
            position_id = position.get_text("positionId")

        return {
            "working_days_per_week": extract_field(
                job_info, ("workingDaysPerWeek",), coerce_decimal, sink
            ),
            "base_hours": extract_field(job_info, ("baseHours",), coerce_decimal, sink),
            "employee_group_id": resolve(
                LookupCategory.EMPLOYEE_GROUP, job_info.get_str("employeeGroup")
            ),
            "position_id": position_id,
            "position_title": position.get_text("title"),
            "banner_id": resolve(LookupCategory.BANNER, position.get_str("banner")),
            "brand_id": resolve(LookupCategory.BRAND, position.get_str("brand")),
            "business_group_id": resolve(LookupCategory.BUSINESS_GROUP, position.get_str("group")),
            "cost_centre_id": resolve(LookupCategory.COST_CENTRE, position.get_str("costCentre")),
            "employee_subgroup_id": resolve(
                LookupCategory.EMPLOYEE_SUBGROUP, position.get_str("employeeSubgroup")
            ),
            "job_role_id": resolve(LookupCategory.JOB_ROLE, position.get_str("jobRole")),
            "department_id": resolve(
                LookupCategory.DEPARTMENT, position.get_str("payingDepartment")
            ),
            "salary_amount": extract_field(job_info, ("salary",), coerce_decimal, sink),
            "salary_min": extract_field(position, ("salaryMin",), coerce_decimal, sink),
            "salary_max": extract_field(position, ("salaryMax",), coerce_decimal, sink),
            "salary_benchmark": extract_field(
                position, ("salaryAwardBenchmark",), coerce_decimal, sink
            ),
            "discretionary_allowance": extract_field(
                job_info, ("discretionaryAllowance",), coerce_decimal, sink
            ),
            "sti_target": extract_field(position, ("stiTarget",), coerce_int, sink),
            "manager_employee_id": manager.get_text("employeeId"),
            "manager_name": manager.get_text("name"),
            "manager_position_id": manager.get_text("position"),
            "manager_position_title": manager.get_text("positionTitle"),
            "start_date": extract_field(job_info, ("startDate",), coerce_datetime, sink),
            "end_date": extract_field(job_info, ("endDate",), coerce_datetime, sink),
            "employee_movement_type": job_info.get_text("employeeMovementType"),
            "sti_scheme": job_info.get_text("stiScheme"),
            "pay_scale_group": job_info.get_text("payScaleGroup"),
            "pay_scale_level": job_info.get_text("payScaleLevel"),
            "leave_entitlement": position.get_text("leaveEntitlement"),
            "leave_entitlement_name": position.get_text("leaveEntitlementName"),
            "car_eligibility": position.get_text("carEligibility"),
        }

    async def replace_job_info(
        self, root: JsonNode, movement_pk: int, key: str, is_current: bool
    ) -> Optional[int]:
        job_info = root.get_object(key)
        if job_info is None:
            await self.job_info.clear_slot(movement_pk, is_current)
            return None
        return await self.job_info.replace_slot(movement_pk, is_current, self.job_info_values(job_info))

    async def replace_contract(
        self, root: JsonNode, movement_pk: int, key: str, is_current: bool
    ) -> Optional[int]:
        contract = root.get_object(key)
        if contract is None:
            await self.contracts.clear_slot(movement_pk, is_current)
            return None

        contract_pk = await self.contracts.replace_slot(movement_pk, is_current)
        await self.import_mutual_flags(contract, contract_pk)
        await self.import_weeks(contract, contract_pk)
        return contract_pk

    # ------------------------------------------------------------------
    # Contract sub-entities (tolerated)
    # ------------------------------------------------------------------

    async def import_mutual_flags(self, contract: JsonNode, contract_pk: int) -> bool:
        ok = True
        for flag in contract.get_array("mutualFlags"):
            value = flag.as_str()
            if value is None:
                continue
            flag_id = self.lookups.resolve(LookupCategory.MUTUAL_FLAG, value)
            try:
                await self._savepoint(lambda: self.contracts.add_mutual_flag(contract_pk, flag_id))
            except Exception as e:
                self.sink.add(f"Unable to import mutual flag '{value}': {e}")
                ok = False
        return ok

    async def import_weeks(self, contract: JsonNode, contract_pk: int) -> bool:
        ok = True
        weeks = [week for week in contract.get_array("weeks") if week.is_object]
        for week_index, week in enumerate(weeks):
            try:
                ok = await self._savepoint(
                    lambda: self.import_week(week, contract_pk, week_index)
                ) and ok
            except Exception as e:
                self.sink.add(f"Unable to import week {week_index}: {e}")
                ok = False
        return ok

    async def import_week(self, week: JsonNode, contract_pk: int, week_index: int) -> bool:
        week_pk = await self.contracts.add_week(contract_pk, week_index)
        ok = True
        for day in WEEKDAYS:
            for shift in week.get_array(day):
                if not shift.is_object:
                    continue
                try:
                    ok = await self._savepoint(
                        lambda: self.import_shift(shift, week_pk, day)
                    ) and ok
                except Exception as e:
                    self.sink.add(f"Unable to import shift for {day} in week {week_index}: {e}")
                    ok = False
        return ok

    async def import_shift(self, shift: JsonNode, week_pk: int, day: str) -> bool:
        start = extract_field(shift, ("start",), coerce_time, self.sink, f"{day}.start")
        end = extract_field(shift, ("end",), coerce_time, self.sink, f"{day}.end")
        schedule_pk = await self.contracts.add_daily_schedule(week_pk, day, start, end)

        ok = True
        for break_node in shift.get_array("breaks"):
            break_name = break_node.as_str()
            if break_name is None:
                continue
            break_type_id = self.lookups.resolve(LookupCategory.BREAK_TYPE, break_name)
            try:
                await self._savepoint(lambda: self.contracts.add_break(schedule_pk, break_type_id))
            except Exception as e:
                self.sink.add(f"Unable to import break: {e}")
                ok = False
        return ok

    # ------------------------------------------------------------------
    # History and tags (failing steps)
    # ------------------------------------------------------------------

    def history_row(self, event_type: str, payload: JsonNode, event_index: int) -> Dict[str, Any]:
        """Column values for one history entry; ``event_data`` keeps the raw payload."""
        details = payload if payload.is_object else JsonNode({})
        participant = details.get_object("participant") or JsonNode({})
        role = participant.get_str("role")
        return {
            "event_type_id": self.lookups.resolve(LookupCategory.HISTORY_EVENT_TYPE, event_type),
            "event_index": event_index,
            "created_date": extract_field(
                details, ("createdDate",), coerce_datetime, self.sink, "history.createdDate"
            ),
            "created_by": details.get_text("createdBy"),
            "created_by_name": details.get_text("createdByName"),
            "participant_employee_id": participant.get_text("employeeId"),
            "participant_name": participant.get_text("name"),
            "participant_position_id": participant.get_text("position"),
            "participant_position_title": participant.get_text("positionTitle"),
            "participant_role_id": self.lookups.resolve_optional(
                LookupCategory.PARTICIPANT_ROLE, role
            ),
            "notes": details.get_text("notes"),
            "event_data": payload.raw,
        }

    async def replace_history(self, root: JsonNode, movement_pk: int) -> None:
        rows: List[Dict[str, Any]] = []
        for entry in root.get_array("history"):
            keys = entry.keys()
            if not keys:
                continue
            rows.append(self.history_row(keys[0], entry.child(keys[0]), len(rows)))
        await self.history.replace_for_movement(movement_pk, rows)

    async def replace_tags(self, root: JsonNode, movement_pk: int) -> None:
        tags = dict.fromkeys(
            tag.as_str() for tag in root.get_array("tags") if isinstance(tag.raw, str) and tag.raw
        )
        await self.tags.replace_for_movement(movement_pk, list(tags))


class DataImporter:
    """Imports a corpus of movement files in bounded, sequential batches.

    Files within a batch run concurrently, each with its own session and
    transaction. Batches run one after another; a set ``cancel_event`` stops
    the run before the next batch starts.
    """

    def __init__(
        self,
        context: ImportContext,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        errors_dir: Optional[Union[str, Path]] = None,
        batch_size: Optional[int] = None,
        max_concurrency: Optional[int] = None,
        file_pattern: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self.context = context
        self.session_factory = session_factory or async_session_maker
        self.error_log = ErrorLogWriter(errors_dir or settings.importer.errors_dir)
        self.batch_size = batch_size or settings.importer.batch_size
        self.max_concurrency = max_concurrency or settings.importer.max_concurrency
        self.file_pattern = file_pattern or settings.importer.file_pattern
        self.cancel_event = cancel_event

    async def import_directory(self, path: Union[str, Path]) -> ImportSummary:
        """Import every matching file under ``path``.

        Returns:
            ImportSummary: Counts plus collected warnings and errors
        """
        files = await asyncio.to_thread(find_movement_files, path, self.file_pattern)
        LOGGER.info(f"Found {len(files)} team movement files to import", extra={"path": str(path)})
        return await self.import_files(files)

    async def import_files(self, files: Sequence[Union[str, Path]]) -> ImportSummary:
        """Import exactly ``files``; never raises."""
        paths = [Path(file) for file in files]
        semaphore = asyncio.Semaphore(self.max_concurrency)
        cancelled = False

        async def import_one(path: Path) -> bool:
            async with semaphore:
                return await self.import_file(path)

        for start in range(0, len(paths), self.batch_size):
            if self.cancel_event is not None and self.cancel_event.is_set():
                LOGGER.warning(
                    "Import cancelled between batches",
                    extra={"remaining": len(paths) - start},
                )
                cancelled = True
                break
            batch = paths[start:start + self.batch_size]
            await asyncio.gather(*(import_one(path) for path in batch))

        counters = self.context.counters
        LOGGER.info(
            f"Import complete: {counters.imported} imported, {counters.errored} errors",
            extra={"warnings": len(self.context.warnings)},
        )
        return ImportSummary(
            files_found=len(paths),
            imported=counters.imported,
            errored=counters.errored,
            warnings=self.context.warnings.snapshot(),
            errors=self.context.errors.snapshot(),
            cancelled=cancelled,
        )

    async def import_file(self, path: Path) -> bool:
        """Import one file in its own transaction.

        Returns:
            True if the file was committed
        """
        try:
            text = await asyncio.to_thread(path.read_text, encoding="utf-8-sig")
            root = JsonNode.parse(text)
        except DocumentParseError as e:
            await self._record_failure(path, JSON_PARSE_ERROR, e)
            return False
        except Exception as e:
            await self._record_failure(path, IMPORT_ERROR, e)
            return False

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await session.connection(
                        execution_options={"isolation_level": "READ COMMITTED"}
                    )
                    await DocumentImporter(session, self.context).run(root)
        except Exception as e:
            await self._record_failure(path, IMPORT_ERROR, e)
            return False

        done = self.context.counters.record_imported()
        LOGGER.debug(f"Successfully imported: {path.name}")
        self._log_progress(done)
        return True

    async def _record_failure(self, path: Path, error_type: str, error: Exception) -> None:
        self.context.counters.record_errored()
        inner = innermost_cause(error)
        movement_id = movement_id_from_file_name(path.name)
        self.context.errors.add(f"{path.name}: {inner}")
        LOGGER.error(
            f"Error importing {path.name} (MovementID: {movement_id}): {error}",
            extra={"error_type": error_type, "root_cause": str(inner)},
        )
        await asyncio.to_thread(self.error_log.write, path, error_type, str(inner), error)
        self._log_progress(self.context.counters.processed)

    def _log_progress(self, processed: int) -> None:
        if processed and processed % PROGRESS_EVERY == 0:
            LOGGER.info(f"Processed {processed} files")
