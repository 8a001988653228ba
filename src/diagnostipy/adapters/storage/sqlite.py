"""SQLite storage adapter for request reports."""

import json
import time
from typing import Any

from diagnostipy.adapters.storage.in_memory import matches, summary
from diagnostipy.adapters.storage.sqlite_base import (
    AsyncConnectionManager,
    _safe_json_loads,
)

_REPORTS_SCHEMA = """
CREATE TABLE IF NOT EXISTS reports (
    request_id TEXT PRIMARY KEY,
    stored_at REAL NOT NULL,
    info TEXT NOT NULL DEFAULT '{}',
    data TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_reports_stored_at ON reports(stored_at);
"""

_UPSERT_REPORT = """
INSERT INTO reports (request_id, stored_at, info, data) VALUES (?, ?, ?, ?)
ON CONFLICT(request_id) DO UPDATE SET
    stored_at = excluded.stored_at, info = excluded.info, data = excluded.data
"""

_SELECT_REPORT = """
SELECT data FROM reports WHERE request_id = ?
"""

_SELECT_INFOS = """
SELECT info FROM reports ORDER BY stored_at DESC, rowid DESC
"""

_DELETE_BEFORE = """
DELETE FROM reports WHERE stored_at < ?
"""

_CLEAR_REPORTS = """
DELETE FROM reports
"""


class SQLiteDebugStorage:
    """SQLite implementation of DebugStoragePort.

    Uses aiosqlite. File databases run in WAL mode; a :memory: database lives
    on one persistent connection until ``close()``.

    Reports are stored as JSON. Corrupt rows read back as missing.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._async_manager = AsyncConnectionManager(db_path, _REPORTS_SCHEMA)

    @staticmethod
    def _to_row(request_id: str, data: dict[str, Any]) -> tuple[str, float, str, str]:
        return (
            request_id,
            time.time(),
            json.dumps(summary(data)),
            json.dumps(data, default=repr),
        )

    async def save(self, request_id: str, data: dict[str, Any]) -> None:
        async with self._async_manager.connection() as db:
            await db.execute(_UPSERT_REPORT, self._to_row(request_id, data))
            await db.commit()

    async def get(self, request_id: str) -> dict[str, Any] | None:
        async with self._async_manager.connection() as db:
            async with db.execute(_SELECT_REPORT, (request_id,)) as cursor:
                row = await cursor.fetchone()
        return _safe_json_loads(row[0]) if row else None

    async def find(
        self, filters: dict[str, str] | None = None, max_items: int = 20, offset: int = 0
    ) -> list[dict[str, Any]]:
        """Return summaries of matching reports, newest first."""
        found: list[dict[str, Any]] = []
        async with self._async_manager.connection() as db:
            async with db.execute(_SELECT_INFOS) as cursor:
                async for row in cursor:
                    info = _safe_json_loads(row[0])
                    if info is not None and matches(info, filters):
                        found.append(info)
        return found[offset : offset + max_items]

    async def delete_before(self, timestamp: float) -> int:
        """Delete reports stored before ``timestamp``. Returns the number deleted."""
        async with self._async_manager.connection() as db:
            cursor = await db.execute(_DELETE_BEFORE, (timestamp,))
            deleted = cursor.rowcount
            await db.commit()
            return deleted

    async def clear(self) -> None:
        async with self._async_manager.connection() as db:
            await db.execute(_CLEAR_REPORTS)
            await db.commit()

    async def close(self) -> None:
        """Close persistent connection (for :memory: databases)."""
        await self._async_manager.close()

