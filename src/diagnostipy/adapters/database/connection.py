"""sqlite3 connection wrapper feeding the query monitor."""

import sqlite3
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from diagnostipy.adapters.database.monitor import QueryMonitor
from diagnostipy.adapters.request_context import current_request

Params = Sequence[Any] | Mapping[str, Any]


class MonitoredConnection:
    """Wraps a sqlite3 connection and records every statement it executes.

    Without an explicit monitor, statements are recorded into the monitor of
    the request being handled (see ``request_context``); outside a request
    they are executed unrecorded.

    Example:
        ```python
        conn = MonitoredConnection(sqlite3.connect("app.db"))
        conn.execute("SELECT * FROM users WHERE id = ?", (1,))
        ```
    """

    def __init__(self, connection: sqlite3.Connection, monitor: QueryMonitor | None = None) -> None:
        self._connection = connection
        self._monitor = monitor

    @property
    def raw(self) -> sqlite3.Connection:
        """The wrapped connection, for running unmonitored statements."""
        return self._connection

    @property
    def monitor(self) -> QueryMonitor | None:
        if self._monitor is not None:
            return self._monitor
        collector = current_request()
        return collector.monitor if collector else None

    def execute(self, sql: str, params: Params = ()) -> sqlite3.Cursor:
        monitor = self.monitor
        if monitor is None:
            return self._connection.execute(sql, params)
        with monitor.track(sql, params):
            return self._connection.execute(sql, params)

    def executemany(self, sql: str, seq_of_params: Iterable[Params]) -> sqlite3.Cursor:
        monitor = self.monitor
        if monitor is None:
            return self._connection.executemany(sql, seq_of_params)
        with monitor.track(sql):
            return self._connection.executemany(sql, seq_of_params)

    def commit(self) -> None:
        self._connection.commit()

    def rollback(self) -> None:
        self._connection.rollback()

    def close(self) -> None:
        """Close the connection and stop an explicitly attached monitor."""
        if self._monitor is not None:
            self._monitor.stop()
        self._connection.close()

    def __enter__(self) -> "MonitoredConnection":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
