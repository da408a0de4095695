"""Tests for tolerant scalar coercion."""

from datetime import datetime, time, timezone
from decimal import Decimal

import pytest

from team_movements.services.coercion import (
    WarningSink,
    coerce_bool,
    coerce_datetime,
    coerce_decimal,
    coerce_int,
    coerce_str,
    coerce_time,
)


@pytest.fixture
def sink() -> WarningSink:
    return WarningSink()


class TestCoerceDecimal:
    def test_strips_currency_symbols_and_separators(self, sink):
        result = coerce_decimal("$55,000.50", "salary", sink)

        assert result.ok
        assert result.value == Decimal("55000.50")
        assert len(sink) == 0

    @pytest.mark.parametrize("value", ["€1200", "£ 99.9", 38, 4.5])
    def test_accepts_numbers_and_other_currencies(self, sink, value):
        assert coerce_decimal(value, "salary", sink).value is not None

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_missing_or_empty_is_absent_without_warning(self, sink, value):
        result = coerce_decimal(value, "baseHours", sink)

        assert result.value is None
        assert result.ok
        assert len(sink) == 0

    @pytest.mark.parametrize("value", ["null", "N/A", "undefined", "na", "NA"])
    def test_placeholder_strings_are_absent_with_warning(self, sink, value):
        result = coerce_decimal(value, "baseHours", sink)

        assert result.value is None
        assert sink.snapshot() == [f"Could not parse baseHours value: '{value}', treating it as missing"]

    def test_rejects_text_with_warning(self, sink):
        result = coerce_decimal("five", "workingDaysPerWeek", sink)

        assert result.value is None
        assert not result.ok
        assert sink.snapshot() == ["Could not parse workingDaysPerWeek value: 'five'"]


class TestCoerceInt:
    def test_rounds_half_to_even(self, sink):
        assert coerce_int("2.5", "stiTarget", sink).value == 2
        assert coerce_int(3.5, "stiTarget", sink).value == 4

    def test_default_used_for_missing_value(self, sink):
        assert coerce_int(None, "workflow.version", sink, default=0).value == 0

    def test_placeholder_string_warns_and_returns_default(self, sink):
        assert coerce_int("N/A", "stiTarget", sink, default=0).value == 0
        assert len(sink) == 1

    def test_invalid_value_warns_and_returns_default(self, sink):
        result = coerce_int("three", "workflow.version", sink, default=0)

        assert result.value == 0
        assert "Could not parse workflow.version value as integer: 'three'" in sink.snapshot()


class TestCoerceBool:
    @pytest.mark.parametrize("value,expected", [
        (True, True), ("yes", True), ("TRUE", True), (1, True),
        (False, False), ("no", False), ("0", False), (0, False),
    ])
    def test_recognised_values(self, sink, value, expected):
        assert coerce_bool(value, "archived", sink).value is expected

    def test_unrecognised_value_warns(self, sink):
        result = coerce_bool("maybe", "archived", sink)

        assert result.value is False
        assert sink.snapshot() == ["Could not parse archived as boolean: 'maybe'"]


class TestCoerceDatetime:
    def test_iso_with_zulu_suffix(self, sink):
        value = coerce_datetime("2024-03-01T09:30:00Z", "startDate", sink).value

        assert value == datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)

    def test_naive_values_are_utc(self, sink):
        value = coerce_datetime("2024-03-01", "startDate", sink).value

        assert value.tzinfo == timezone.utc

    def test_slash_format(self, sink):
        value = coerce_datetime("12/31/2024", "endDate", sink).value

        assert (value.year, value.month, value.day) == (2024, 12, 31)

    def test_millisecond_timestamp(self, sink):
        value = coerce_datetime(1717200000000, "endDate", sink).value

        assert value == datetime(2024, 6, 1, tzinfo=timezone.utc)

    def test_unparseable_date_warns(self, sink):
        result = coerce_datetime("not a date", "history.createdDate", sink)

        assert result.value is None
        assert sink.snapshot() == ["Failed to parse history.createdDate date: 'not a date'"]

    @pytest.mark.parametrize("value", [None, "", "null"])
    def test_empty_values_are_absent(self, sink, value):
        assert coerce_datetime(value, "startDate", sink).value is None
        assert len(sink) == 0


class TestCoerceTime:
    @pytest.mark.parametrize("value,expected", [
        ("09:00", time(9, 0)),
        ("17:30:15", time(17, 30, 15)),
        ("1700", time(17, 0)),
        ("9:30 PM", time(21, 30)),
        ("9.45", time(9, 45)),
    ])
    def test_supported_formats(self, sink, value, expected):
        assert coerce_time(value, "mon.start", sink).value == expected

    def test_failure_defaults_to_midnight_with_warning(self, sink):
        result = coerce_time("late", "tue.start", sink)

        assert result.value == time(0, 0)
        assert not result.ok
        assert sink.snapshot() == ["Could not parse time string 'late', using default 00:00"]

    def test_missing_value_is_midnight_without_warning(self, sink):
        assert coerce_time(None, "mon.end", sink).value == time(0, 0)
        assert len(sink) == 0


class TestCoerceStr:
    def test_containers_are_absent(self):
        assert coerce_str({"a": 1}) is None
        assert coerce_str([1]) is None

    def test_scalars_render_as_text(self):
        assert coerce_str(12) == "12"
        assert coerce_str(True) == "true"
