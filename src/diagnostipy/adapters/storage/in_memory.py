"""Bounded in-memory storage for request reports.

Keeps the most recent reports in a ring buffer; once full, the oldest report
is evicted to make room for the new one.
"""

from collections import OrderedDict
from typing import Any


def summary(data: dict[str, Any]) -> dict[str, Any]:
    """The info section of a stored report, used by find()."""
    return dict(data.get("info") or {"request_id": data.get("request_id")})


def matches(info: dict[str, Any], filters: dict[str, str] | None) -> bool:
    if not filters:
        return True
    return all(str(info.get(k, "")) == str(v) for k, v in filters.items())


class InMemoryDebugStorage:
    """In-memory implementation of DebugStoragePort.

    Args:
        max_size: Maximum number of reports to keep.
    """

    def __init__(self, max_size: int = 100) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._max_size = max_size
        self._reports: OrderedDict[str, dict[str, Any]] = OrderedDict()

    async def save(self, request_id: str, data: dict[str, Any]) -> None:
        """Store a report, replacing any previous report with the same id."""
        self._reports.pop(request_id, None)
        self._reports[request_id] = data
        while len(self._reports) > self._max_size:
            self._reports.popitem(last=False)

    async def get(self, request_id: str) -> dict[str, Any] | None:
        return self._reports.get(request_id)

    async def find(
        self, filters: dict[str, str] | None = None, max_items: int = 20, offset: int = 0
    ) -> list[dict[str, Any]]:
        """Return summaries of matching reports, newest first."""
        found = [
            summary(data)
            for data in reversed(self._reports.values())
            if matches(summary(data), filters)
        ]
        return found[offset : offset + max_items]

    async def clear(self) -> None:
        self._reports.clear()
