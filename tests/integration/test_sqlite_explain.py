"""Integration tests for SQLite EXPLAIN QUERY PLAN support."""

import sqlite3

import pytest

from diagnostipy.adapters.database.analysis import collect_analysis
from diagnostipy.adapters.database.connection import MonitoredConnection
from diagnostipy.adapters.database.monitor import QueryMonitor, bind_params
from diagnostipy.adapters.database.sqlite_explain import SQLiteExplainer, translate_plan
from diagnostipy.core.config import DebugConfig
from diagnostipy.core.models import BoundParam, QualityFlag, QueryRecord
from diagnostipy.core.ports import ExplainPort
from diagnostipy.core.queries import classify_query

pytestmark = [pytest.mark.integration, pytest.mark.tier(2)]


def _query(text: str, *params: object) -> QueryRecord:
    return QueryRecord(text=text, start_time=0.0, end_time=0.001, bound_params=bind_params(params))


class TestTranslatePlan:
    def test_full_scan_has_no_key(self) -> None:
        rows = translate_plan([(2, 0, 0, "SCAN events")])

        assert rows == [
            {
                "id": 2,
                "parent": 0,
                "table": "events",
                "type": "scan",
                "key": None,
                "Extra": "",
                "detail": "SCAN events",
            }
        ]

    def test_legacy_scan_table_wording(self) -> None:
        [row] = translate_plan([(0, 0, 0, "SCAN TABLE events AS e")])

        assert row["table"] == "events"
        assert row["key"] is None

    def test_index_search(self) -> None:
        [row] = translate_plan([(3, 0, 0, "SEARCH users USING INDEX idx_users_email (email=?)")])

        assert row["key"] == "idx_users_email"
        assert row["type"] == "search"

    def test_covering_index(self) -> None:
        [row] = translate_plan([(3, 0, 0, "SCAN users USING COVERING INDEX idx_users_email")])

        assert row["key"] == "idx_users_email"
        assert row["Extra"] == "Using index"

    def test_primary_key_search(self) -> None:
        [row] = translate_plan([(3, 0, 0, "SEARCH users USING INTEGER PRIMARY KEY (rowid=?)")])

        assert row["key"] == "PRIMARY"

    def test_temp_btree_notes_go_to_first_access_row(self) -> None:
        rows = translate_plan(
            [
                (2, 0, 0, "SCAN events"),
                (4, 0, 0, "SEARCH users USING INTEGER PRIMARY KEY (rowid=?)"),
                (9, 0, 0, "USE TEMP B-TREE FOR GROUP BY"),
                (12, 0, 0, "USE TEMP B-TREE FOR ORDER BY"),
            ]
        )

        assert rows[0]["Extra"] == "Using temporary; Using filesort"
        assert rows[1]["Extra"] == ""

    def test_constant_rows_are_skipped(self) -> None:
        assert translate_plan([(1, 0, 0, "SCAN CONSTANT ROW")]) == []


class TestSQLiteExplainer:
    def test_implements_explain_port(self, app_db: sqlite3.Connection) -> None:
        assert isinstance(SQLiteExplainer(app_db), ExplainPort)

    def test_unindexed_query_is_flagged(self, app_db: sqlite3.Connection) -> None:
        query = _query("SELECT * FROM events WHERE user_id = ?", 1)

        rows = SQLiteExplainer(app_db).explain(query)

        assert QualityFlag.NO_INDEX in classify_query(query, rows)

    def test_indexed_query_is_clean(self, app_db: sqlite3.Connection) -> None:
        query = _query("SELECT * FROM users WHERE email = ?", "ada@example.com")

        rows = SQLiteExplainer(app_db).explain(query)

        assert rows[0]["key"] == "idx_users_email"
        assert not classify_query(query, rows).has_warnings

    def test_order_by_without_index_is_a_filesort(self, app_db: sqlite3.Connection) -> None:
        query = _query("SELECT * FROM events ORDER BY created")

        flags = classify_query(query, SQLiteExplainer(app_db).explain(query))

        assert QualityFlag.FILESORT in flags
        assert QualityFlag.NO_INDEX in flags

    def test_named_parameters(self, app_db: sqlite3.Connection) -> None:
        query = QueryRecord(
            text="SELECT * FROM users WHERE id = :id",
            start_time=0.0,
            end_time=0.0,
            bound_params={"id": BoundParam(1, "int")},
        )

        rows = SQLiteExplainer(app_db).explain(query)

        assert rows[0]["key"] == "PRIMARY"

    def test_invalid_sql_raises(self, app_db: sqlite3.Connection) -> None:
        with pytest.raises(sqlite3.OperationalError):
            SQLiteExplainer(app_db).explain(_query("SELECT * FROM missing"))

    def test_profiles_are_unsupported(self, app_db: sqlite3.Connection) -> None:
        assert SQLiteExplainer(app_db).profiles() is None


class TestCollectAnalysis:
    def test_explains_errors_and_profile_notice(self, app_db: sqlite3.Connection) -> None:
        monitor = QueryMonitor()
        conn = MonitoredConnection(app_db, monitor)
        conn.execute("SELECT * FROM events WHERE kind = ?", ("login",))
        conn.execute("INSERT INTO events VALUES (3, 'logout', 3.0)")
        with pytest.raises(sqlite3.OperationalError):
            conn.execute("SELECT * FROM missing")
        config = DebugConfig(query_explains=True, query_profiles=True)

        analysis = collect_analysis(monitor, SQLiteExplainer(app_db), config)

        assert [q.text for q in analysis.queries] == [
            "SELECT * FROM events WHERE kind = ?",
            "INSERT INTO events VALUES (3, 'logout', 3.0)",
            "SELECT * FROM missing",
        ]
        assert analysis.explains[0][0]["key"] is None
        assert 1 not in analysis.explains
        assert "no such table" in analysis.explains[2][0]["Error"]
        assert analysis.profile_notice == "Query profiling is not supported by SQLiteExplainer"
        assert not monitor.active

    def test_analysis_queries_are_not_recorded(self, app_db: sqlite3.Connection) -> None:
        monitor = QueryMonitor()
        MonitoredConnection(app_db, monitor).execute("SELECT 1")

        analysis = collect_analysis(monitor, SQLiteExplainer(app_db), DebugConfig(query_explains=True))

        assert len(analysis.queries) == 1
        assert len(monitor.records) == 1

    def test_without_explainer(self) -> None:
        monitor = QueryMonitor()

        analysis = collect_analysis(monitor, None, DebugConfig(query_explains=True))

        assert analysis.explains == {}
        assert analysis.profile_notice is None
