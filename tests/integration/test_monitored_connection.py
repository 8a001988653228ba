"""Integration tests for MonitoredConnection."""

import sqlite3

import pytest

from diagnostipy.adapters.database.connection import MonitoredConnection
from diagnostipy.adapters.database.monitor import QueryMonitor
from diagnostipy.adapters.request_context import end_request, start_request

pytestmark = [pytest.mark.integration, pytest.mark.tier(2)]


class TestMonitoredConnection:
    def test_records_into_explicit_monitor(self, app_db: sqlite3.Connection) -> None:
        monitor = QueryMonitor()
        conn = MonitoredConnection(app_db, monitor)

        rows = conn.execute("SELECT name FROM users WHERE id = ?", (1,)).fetchall()

        assert rows == [("ada",)]
        [record] = monitor.records
        assert record.text == "SELECT name FROM users WHERE id = ?"
        assert record.bound_params["1"].value == 1

    def test_records_into_current_request(self, app_db: sqlite3.Connection) -> None:
        conn = MonitoredConnection(app_db)
        collector, token = start_request("req-1")
        try:
            conn.execute("SELECT 1")
        finally:
            end_request(token)

        assert [r.text for r in collector.monitor.records] == ["SELECT 1"]

    def test_unrecorded_outside_request(self, app_db: sqlite3.Connection) -> None:
        conn = MonitoredConnection(app_db)

        assert conn.monitor is None
        assert conn.execute("SELECT 1").fetchone() == (1,)

    def test_executemany_is_one_record(self, app_db: sqlite3.Connection) -> None:
        monitor = QueryMonitor()
        conn = MonitoredConnection(app_db, monitor)

        conn.executemany("INSERT INTO events VALUES (?, ?, ?)", [(1, "a", 1.0), (2, "b", 2.0)])
        conn.commit()

        assert [r.text for r in monitor.records] == ["INSERT INTO events VALUES (?, ?, ?)"]
        assert app_db.execute("SELECT COUNT(*) FROM events").fetchone() == (4,)

    def test_raw_connection_is_unmonitored(self, app_db: sqlite3.Connection) -> None:
        monitor = QueryMonitor()
        conn = MonitoredConnection(app_db, monitor)

        conn.raw.execute("SELECT 1")

        assert monitor.records == ()

    def test_close_stops_attached_monitor(self) -> None:
        monitor = QueryMonitor()

        with MonitoredConnection(sqlite3.connect(":memory:"), monitor) as conn:
            conn.execute("SELECT 1")

        assert not monitor.active
        assert len(monitor.records) == 1

    def test_rollback(self, app_db: sqlite3.Connection) -> None:
        conn = MonitoredConnection(app_db, QueryMonitor())
        conn.commit()

        conn.execute("DELETE FROM events")
        conn.rollback()

        assert app_db.execute("SELECT COUNT(*) FROM events").fetchone() == (2,)
