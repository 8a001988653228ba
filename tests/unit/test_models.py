"""Tests for core domain models."""

import dataclasses

import pytest

from diagnostipy.core.models import (
    DuplicateGroup,
    LogCategory,
    LogEntry,
    Priority,
    QualityFlag,
    QualityFlags,
    QueryRecord,
    QueryTypeSummary,
    StackFrame,
)

pytestmark = [pytest.mark.core, pytest.mark.tier(0)]


class TestPriority:
    @pytest.mark.parametrize(
        ("priority", "level"),
        [
            (Priority.EMERGENCY, "error"),
            (Priority.CRITICAL, "error"),
            (Priority.ERROR, "error"),
            (Priority.WARNING, "warning"),
            (Priority.NOTICE, "info"),
            (Priority.INFO, "info"),
            (Priority.DEBUG, "info"),
        ],
    )
    def test_level(self, priority: Priority, level: str) -> None:
        assert priority.level == level

    def test_values_are_bit_flags(self) -> None:
        assert [p.value for p in Priority] == [1, 2, 4, 8, 16, 32, 64, 128]


class TestLogCategory:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("log", LogCategory.LOG),
            ("deprecated", LogCategory.DEPRECATED),
            ("deprecated-core", LogCategory.DEPRECATED_CORE),
            ("DatabaseQuery", LogCategory.DATABASE_QUERY),
            (" deprecation-notes ", LogCategory.DEPRECATION_NOTES),
        ],
    )
    def test_parse_known_categories(self, raw: str, expected: LogCategory) -> None:
        assert LogCategory.parse(raw) is expected

    def test_unknown_category_is_other(self) -> None:
        assert LogCategory.parse("jerror") is LogCategory.OTHER


class TestQueryRecord:
    def test_duration(self) -> None:
        query = QueryRecord(text="SELECT 1", start_time=1.0, end_time=1.25)

        assert query.duration == 0.25
        assert query.duration_ms == 250.0

    def test_duration_is_never_negative(self) -> None:
        query = QueryRecord(text="SELECT 1", start_time=2.0, end_time=1.0)

        assert query.duration == 0.0

    def test_is_immutable(self) -> None:
        query = QueryRecord(text="SELECT 1", start_time=0.0, end_time=1.0)

        with pytest.raises(dataclasses.FrozenInstanceError):
            query.text = "SELECT 2"  # type: ignore[misc]


class TestStackFrame:
    def test_location(self) -> None:
        assert StackFrame(file="app.py", line=12).location == "app.py:12"

    def test_location_without_line(self) -> None:
        assert StackFrame(file="app.py").location == "app.py:"

    def test_every_field_is_optional(self) -> None:
        frame = StackFrame()

        assert frame.location == ""
        assert frame.function is None


class TestLogEntry:
    def test_category_name_of_known_category(self) -> None:
        entry = LogEntry(
            timestamp=0.0, priority=Priority.INFO, category=LogCategory.LOG, message="m"
        )

        assert entry.category_name == "log"

    def test_category_name_keeps_raw_name_for_other(self) -> None:
        entry = LogEntry(
            timestamp=0.0,
            priority=Priority.INFO,
            category=LogCategory.OTHER,
            message="m",
            raw_category="jerror",
        )

        assert entry.category_name == "jerror"


class TestAggregates:
    def test_duplicate_group_size(self) -> None:
        assert DuplicateGroup(normalized_text="SELECT 1", indices=(0, 3, 4)).size == 3

    def test_quality_flags_contains(self) -> None:
        flags = QualityFlags(flags=frozenset({QualityFlag.SLOW}))

        assert QualityFlag.SLOW in flags
        assert QualityFlag.NO_INDEX not in flags
        assert flags.has_warnings

    def test_empty_quality_flags_have_no_warnings(self) -> None:
        assert not QualityFlags().has_warnings

    def test_query_type_summary_total(self) -> None:
        summary = QueryTypeSummary(select={"SELECT a FROM t": 3}, other={"DELETE FROM t": 1})

        assert summary.total == 2
