"""Tests for the per-file transactional importer."""

import asyncio
import threading
from datetime import datetime, time, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from team_movements.core.exceptions import ImportStepError
from team_movements.core.lookups import LookupCategory
from team_movements.services.document import JsonNode
from team_movements.services.importer.data_importer import DataImporter, DocumentImporter


@pytest.fixture
def importer(mock_session, import_context) -> DocumentImporter:
    """DocumentImporter with every repository replaced by an AsyncMock."""
    importer = DocumentImporter(mock_session, import_context)
    importer.movements = AsyncMock()
    importer.movements.upsert.return_value = 42
    importer.participants = AsyncMock()
    importer.job_info = AsyncMock()
    importer.job_info.replace_slot.return_value = 7
    importer.contracts = AsyncMock()
    importer.contracts.replace_slot.return_value = 9
    importer.contracts.add_week.return_value = 11
    importer.contracts.add_daily_schedule.return_value = 13
    importer.contracts.add_break.return_value = 15
    importer.history = AsyncMock()
    importer.tags = AsyncMock()
    importer.cost_centres = AsyncMock()
    return importer


class TestDocumentImporterRun:
    """Happy path through every step of a document."""

    @pytest.mark.asyncio
    async def test_movement_upsert_values(self, importer, sample_document, lookup_cache):
        assert await importer.run(JsonNode(sample_document)) == 42

        call = importer.movements.upsert.await_args
        assert call.args == ("MOV-1001",)
        assert call.kwargs["employee_id"] == "E100"
        assert call.kwargs["status_id"] == lookup_cache.resolve(LookupCategory.STATUS, "Approved")
        assert call.kwargs["movement_type_id"] == lookup_cache.resolve(
            LookupCategory.MOVEMENT_TYPE, "Transfer"
        )
        assert call.kwargs["start_date"] == datetime(2024, 3, 1, tzinfo=timezone.utc)
        assert call.kwargs["end_date"] == datetime(2024, 6, 1, tzinfo=timezone.utc)
        assert call.kwargs["workflow_definition_id"] == "wf-1"
        assert call.kwargs["workflow_version"] == 3
        assert call.kwargs["workflow_archived"] is False

    @pytest.mark.asyncio
    async def test_missing_optional_sections_clear_their_slots(self, importer, sample_document):
        await importer.run(JsonNode(sample_document))

        assert importer.job_info.replace_slot.await_count == 2
        importer.job_info.clear_slot.assert_not_awaited()
        importer.contracts.replace_slot.assert_awaited_once_with(42, True)
        importer.contracts.clear_slot.assert_awaited_once_with(42, False)

    @pytest.mark.asyncio
    async def test_tags_are_deduplicated_and_empty_ones_dropped(self, importer, sample_document):
        await importer.run(JsonNode(sample_document))

        importer.tags.replace_for_movement.assert_awaited_once_with(
            42, ["FromBanner:Supermarkets", "urgent"]
        )

    @pytest.mark.asyncio
    async def test_coercion_problems_become_warnings(self, importer, sample_document, import_context):
        await importer.run(JsonNode(sample_document))

        warnings = import_context.warnings.snapshot()
        assert "Could not parse workingDaysPerWeek value: 'five'" in warnings
        assert "Could not parse time string 'late', using default 00:00" in warnings
        assert "Failed to parse history.createdDate date: 'not a date'" in warnings

    @pytest.mark.asyncio
    async def test_sub_entities_use_savepoints(self, importer, sample_document, mock_session):
        await importer.run(JsonNode(sample_document))

        # two enrichments, one flag, one week, two shifts, one break
        assert mock_session.begin_nested.call_count == 7


class TestRowBuilders:
    def test_participant_brand_falls_back_to_display_name(self, importer, sample_document, lookup_cache):
        participant = JsonNode(sample_document["participants"][0])

        row = importer.participant_row(participant)

        assert row["brand_id"] == lookup_cache.resolve(LookupCategory.BRAND, "BR01")
        assert row["role_id"] == lookup_cache.resolve(LookupCategory.PARTICIPANT_ROLE, "Employee")
        assert row["photo_url"] == "https://example.com/jo.png"
        assert row["position_id"] == "P1"

    def test_participant_defaults(self, importer, lookup_cache):
        row = importer.participant_row(JsonNode({}))

        assert row["employee_id"] == "Unknown"
        assert row["name"] == ""
        assert row["banner_id"] == lookup_cache.unknown_id(LookupCategory.BANNER)

    def test_job_info_values(self, importer, sample_document, lookup_cache):
        values = importer.job_info_values(JsonNode(sample_document["currentJobInfo"]))

        assert values["salary_amount"] == Decimal("55000.00")
        assert values["salary_min"] == Decimal("50000")
        assert values["working_days_per_week"] == Decimal("5")
        assert values["sti_target"] == 10
        assert values["position_id"] == "P1"
        assert values["job_role_id"] == lookup_cache.resolve(LookupCategory.JOB_ROLE, "Store Manager")
        assert values["manager_name"] == "Max Boss"

    def test_legacy_string_position(self, importer, sample_document, lookup_cache):
        values = importer.job_info_values(JsonNode(sample_document["newJobInfo"]))

        assert values["position_id"] == "P2"
        assert values["position_title"] == ""
        assert values["banner_id"] == lookup_cache.unknown_id(LookupCategory.BANNER)
        assert values["working_days_per_week"] is None
        assert values["base_hours"] == Decimal("38")

    @pytest.mark.asyncio
    async def test_history_rows(self, importer, sample_document, lookup_cache):
        await importer.replace_history(JsonNode(sample_document), 42)

        movement_pk, rows = importer.history.replace_for_movement.await_args.args
        assert movement_pk == 42
        assert [row["event_index"] for row in rows] == [0, 1]
        assert rows[0]["event_type_id"] == lookup_cache.resolve(
            LookupCategory.HISTORY_EVENT_TYPE, "created"
        )
        assert rows[0]["participant_role_id"] == lookup_cache.resolve(
            LookupCategory.PARTICIPANT_ROLE, "Employee"
        )
        assert rows[0]["event_data"] == sample_document["history"][0]["created"]
        assert rows[1]["participant_role_id"] is None
        assert rows[1]["created_date"] is None


class TestContractSchedule:
    @pytest.mark.asyncio
    async def test_weeks_shifts_and_breaks(self, importer, sample_document, lookup_cache):
        await importer.run(JsonNode(sample_document))

        importer.contracts.add_week.assert_awaited_once_with(9, 0)
        schedules = [call.args for call in importer.contracts.add_daily_schedule.await_args_list]
        assert schedules == [
            (11, "mon", time(9, 0), time(17, 30)),
            (11, "tue", time(0, 0), time(17, 0)),
        ]
        importer.contracts.add_break.assert_awaited_once_with(
            13, lookup_cache.resolve(LookupCategory.BREAK_TYPE, "Meal")
        )
        importer.contracts.add_mutual_flag.assert_awaited_once_with(
            9, lookup_cache.resolve(LookupCategory.MUTUAL_FLAG, "Flexible")
        )

    @pytest.mark.asyncio
    async def test_unknown_break_type_keeps_every_week(self, importer, sample_document, lookup_cache):
        sample_document["currentContract"]["weeks"] = [
            {"mon": [{"start": "09:00", "end": "17:00", "breaks": ["Meal", "Siesta"]}]},
            {"wed": [{"start": "10:00", "end": "18:00", "breaks": ["Meal"]}]},
        ]

        await importer.run(JsonNode(sample_document))

        weeks = [call.args for call in importer.contracts.add_week.await_args_list]
        assert weeks == [(9, 0), (9, 1)]
        days = [call.args[1] for call in importer.contracts.add_daily_schedule.await_args_list]
        assert days == ["mon", "wed"]
        break_ids = [call.args[1] for call in importer.contracts.add_break.await_args_list]
        assert break_ids == [
            lookup_cache.resolve(LookupCategory.BREAK_TYPE, "Meal"),
            lookup_cache.unknown_id(LookupCategory.BREAK_TYPE),
            lookup_cache.resolve(LookupCategory.BREAK_TYPE, "Meal"),
        ]

    @pytest.mark.asyncio
    async def test_failing_mutual_flag_is_tolerated(self, importer, sample_document, import_context):
        importer.contracts.add_mutual_flag.side_effect = RuntimeError("fk violation")

        await importer.run(JsonNode(sample_document))

        assert "Unable to import mutual flag 'Flexible': fk violation" in import_context.warnings.snapshot()
        importer.history.replace_for_movement.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failing_week_is_tolerated(self, importer, sample_document, import_context):
        importer.contracts.add_week.side_effect = RuntimeError("boom")

        await importer.run(JsonNode(sample_document))

        assert "Unable to import week 0: boom" in import_context.warnings.snapshot()
        importer.contracts.add_daily_schedule.assert_not_awaited()
        importer.tags.replace_for_movement.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failing_shift_is_tolerated(self, importer, sample_document, import_context):
        importer.contracts.add_daily_schedule.side_effect = RuntimeError("bad time")

        await importer.run(JsonNode(sample_document))

        warnings = import_context.warnings.snapshot()
        assert "Unable to import shift for mon in week 0: bad time" in warnings
        assert "Unable to import shift for tue in week 0: bad time" in warnings

    @pytest.mark.asyncio
    async def test_failing_break_is_tolerated(self, importer, sample_document, import_context):
        importer.contracts.add_break.side_effect = RuntimeError("nope")

        await importer.run(JsonNode(sample_document))

        assert "Unable to import break: nope" in import_context.warnings.snapshot()


class TestFailingSteps:
    @pytest.mark.asyncio
    async def test_step_failure_stops_the_document(self, importer, sample_document):
        importer.participants.replace_for_movement.side_effect = RuntimeError("constraint")

        with pytest.raises(ImportStepError) as exc_info:
            await importer.run(JsonNode(sample_document))

        assert exc_info.value.step == "participants"
        assert str(exc_info.value.original_error) == "constraint"
        importer.job_info.replace_slot.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_movement_id_is_required(self, importer, sample_document):
        sample_document.pop("movementId")

        with pytest.raises(ImportStepError) as exc_info:
            await importer.run(JsonNode(sample_document))

        assert exc_info.value.step == "movement"
        assert isinstance(exc_info.value.original_error, ValueError)
        importer.movements.upsert.assert_not_awaited()


class TestCostCentreEnrichment:
    @pytest.mark.asyncio
    async def test_manager_and_history_sources(self, importer, sample_document):
        assert await importer.enrich_cost_centres(JsonNode(sample_document)) is True

        calls = [call.args for call in importer.cost_centres.enrich.await_args_list]
        assert calls == [
            ("CC100", "Store 100", "1 Main St, Sydney", Decimal("-33.86"), Decimal("151.2")),
            ("CC200", None, None, Decimal("1.5"), None),
        ]

    @pytest.mark.asyncio
    async def test_failure_is_a_warning(self, importer, sample_document, import_context):
        importer.cost_centres.enrich.side_effect = RuntimeError("deadlock")

        assert await importer.run(JsonNode(sample_document)) == 42

        warnings = import_context.warnings.snapshot()
        assert "Failed to update cost centre CC100 with location data: deadlock" in warnings
        assert "Failed to update cost centre CC200 with location data: deadlock" in warnings

    @pytest.mark.asyncio
    async def test_unknown_codes_are_skipped(self, importer):
        node = JsonNode({"costCentre": "unknown", "lat": 1})

        assert await importer.enrich_cost_centre(node) is True
        importer.cost_centres.enrich.assert_not_awaited()


class TestDataImporter:
    """Directory runs with the document import itself mocked out."""

    @pytest.fixture
    def data_importer(self, import_context, session_factory, tmp_path) -> DataImporter:
        return DataImporter(
            import_context,
            session_factory=session_factory,
            errors_dir=tmp_path / "errors",
            batch_size=2,
            max_concurrency=2,
        )

    @pytest.mark.asyncio
    async def test_file_discovery_runs_off_the_event_loop(self, data_importer, tmp_path):
        scan_threads = []

        def scan(path, pattern):
            scan_threads.append(threading.current_thread())
            return []

        with patch("team_movements.services.importer.data_importer.find_movement_files", side_effect=scan):
            summary = await data_importer.import_directory(tmp_path)

        assert summary.files_found == 0
        assert scan_threads and scan_threads[0] is not threading.main_thread()

    @pytest.mark.asyncio
    async def test_invalid_json_is_logged_and_counted(
        self, data_importer, write_movement_file, corpus_dir, sample_document, tmp_path
    ):
        for movement_id in ("MOV-1", "MOV-2", "MOV-3"):
            write_movement_file(movement_id, {**sample_document, "movementId": movement_id})
        write_movement_file("MOV-4", "{not json")

        with patch.object(DocumentImporter, "run", new=AsyncMock(return_value=1)):
            summary = await data_importer.import_directory(corpus_dir)

        assert (summary.files_found, summary.imported, summary.errored) == (4, 3, 1)
        assert summary.success_rate == 75.0
        logs = list((tmp_path / "errors").glob("*.log"))
        assert len(logs) == 1
        content = logs[0].read_text()
        assert "Error Type: JSON_PARSE_ERROR" in content
        assert "tms_team_movements_team_movement_MOV-4_20240301.json" in content

    @pytest.mark.asyncio
    async def test_failed_file_rolls_back_and_reports_root_cause(
        self, data_importer, write_movement_file, corpus_dir, sample_document, tmp_path
    ):
        write_movement_file("MOV-1", sample_document)
        bad = write_movement_file("MOV-2", {**sample_document, "movementId": "MOV-2"})

        async def fake_run(root):
            if root.get_str("movementId") == "MOV-2":
                raise ImportStepError("movement", ValueError("Movement ID is required"))
            return 1

        with patch.object(DocumentImporter, "run", new=AsyncMock(side_effect=fake_run)):
            summary = await data_importer.import_directory(corpus_dir)

        assert (summary.imported, summary.errored) == (1, 1)
        assert summary.errors == [f"{bad.name}: Movement ID is required"]
        (log,) = (tmp_path / "errors").glob("*.log")
        content = log.read_text()
        assert "Error Type: IMPORT_ERROR" in content
        assert "Root Cause: ValueError: Movement ID is required" in content

    @pytest.mark.asyncio
    async def test_one_read_committed_session_per_file(
        self, data_importer, write_movement_file, corpus_dir, sample_document, session_factory, mock_session
    ):
        for movement_id in ("MOV-1", "MOV-2", "MOV-3"):
            write_movement_file(movement_id, sample_document)

        with patch.object(DocumentImporter, "run", new=AsyncMock(return_value=1)):
            await data_importer.import_directory(corpus_dir)

        assert session_factory.call_count == 3
        assert mock_session.begin.call_count == 3
        mock_session.connection.assert_awaited_with(
            execution_options={"isolation_level": "READ COMMITTED"}
        )

    @pytest.mark.asyncio
    async def test_cancelled_run_starts_no_batches(
        self, import_context, session_factory, write_movement_file, corpus_dir, sample_document, tmp_path
    ):
        write_movement_file("MOV-1", sample_document)
        cancel = asyncio.Event()
        cancel.set()
        data_importer = DataImporter(
            import_context,
            session_factory=session_factory,
            errors_dir=tmp_path / "errors",
            cancel_event=cancel,
        )

        summary = await data_importer.import_directory(corpus_dir)

        assert summary.cancelled is True
        assert summary.imported == 0
        session_factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_import_files_only_touches_given_files(
        self, data_importer, write_movement_file, sample_document, session_factory
    ):
        target = write_movement_file("MOV-1", sample_document)
        write_movement_file("MOV-2", sample_document)

        with patch.object(DocumentImporter, "run", new=AsyncMock(return_value=1)):
            summary = await data_importer.import_files([target])

        assert (summary.files_found, summary.imported) == (1, 1)
        assert session_factory.call_count == 1
