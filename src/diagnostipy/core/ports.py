"""Port interfaces for diagnostics adapters.

These protocols define the contracts that database and storage adapters
must implement. The core depends only on these interfaces.
"""

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from diagnostipy.core.models import ExplainRow, QueryRecord


@runtime_checkable
class ExplainPort(Protocol):
    """Port for running analysis queries against the request's database.

    Examples: SQLiteExplainer.
    """

    supports_dml: bool

    def explain(self, query: QueryRecord) -> Sequence[ExplainRow]:
        """Return the EXPLAIN rows for a query.

        May raise; callers record failures as error rows.
        """
        ...

    def profiles(self) -> dict[int, list[ExplainRow]] | None:
        """Return per-query profile rows keyed by query index.

        Returns None when the engine has no profiling support.
        """
        ...


@runtime_checkable
class DebugStoragePort(Protocol):
    """Port for persisting request reports so they can be reopened later.

    Examples: InMemoryDebugStorage, SQLiteDebugStorage.
    """

    async def save(self, request_id: str, data: dict[str, Any]) -> None:
        """Store the encoded report of a request."""
        ...

    async def get(self, request_id: str) -> dict[str, Any] | None:
        """Return a stored report, or None if unknown."""
        ...

    async def find(
        self, filters: dict[str, str] | None = None, max_items: int = 20, offset: int = 0
    ) -> list[dict[str, Any]]:
        """Return report summaries (newest first) whose info matches ``filters``."""
        ...

    async def clear(self) -> None:
        """Remove every stored report."""
        ...
