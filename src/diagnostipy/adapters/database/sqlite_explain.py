"""EXPLAIN support for SQLite.

SQLite answers ``EXPLAIN QUERY PLAN`` with one ``detail`` line per plan step.
Table access steps are translated into rows with MySQL-style ``table``,
``key`` and ``Extra`` columns so the core classifier can flag full scans and
temporary sorts.
"""

import re
import sqlite3
from collections.abc import Sequence
from typing import Any

from diagnostipy.core.models import ExplainRow, QueryRecord

_ACCESS = re.compile(
    r"^(?P<kind>SCAN|SEARCH)\s+(?:TABLE\s+)?(?P<table>\S+)(?:\s+AS\s+\S+)?"
    r"(?:\s+USING\s+(?P<covering>COVERING\s+)?INDEX\s+(?P<index>\S+)"
    r"|\s+USING\s+(?:INTEGER\s+)?(?P<pk>PRIMARY\s+KEY))?",
    re.IGNORECASE,
)


def _params_for(query: QueryRecord) -> Sequence[Any] | dict[str, Any]:
    params = query.bound_params
    if not params:
        return ()
    if all(k.isdigit() for k in params):
        return tuple(params[k].value for k in sorted(params, key=int))
    return {k.lstrip(":@$"): p.value for k, p in params.items()}


def translate_plan(rows: Sequence[Sequence[Any]]) -> list[ExplainRow]:
    """Convert ``EXPLAIN QUERY PLAN`` rows into table access rows.

    Temporary B-trees used for ORDER BY are reported as "Using filesort" and
    those used for GROUP BY or DISTINCT as "Using temporary", on the first
    table access row.
    """
    access: list[ExplainRow] = []
    notes: list[str] = []
    for row in rows:
        step_id, parent, detail = row[0], row[1], str(row[-1])
        upper = detail.upper()
        if upper.startswith("USE TEMP B-TREE FOR ORDER BY") or upper.startswith(
            "USE TEMP B-TREE FOR RIGHT PART OF ORDER BY"
        ):
            notes.append("Using filesort")
            continue
        if upper.startswith("USE TEMP B-TREE"):
            notes.append("Using temporary")
            continue
        match = _ACCESS.match(detail)
        if match is None or match.group("table").upper() == "CONSTANT":
            continue
        if match.group("index"):
            key: str | None = match.group("index")
        elif match.group("pk"):
            key = "PRIMARY"
        else:
            key = None
        extra = ["Using index"] if match.group("covering") else []
        access.append(
            {
                "id": step_id,
                "parent": parent,
                "table": match.group("table"),
                "type": match.group("kind").lower(),
                "key": key,
                "Extra": "; ".join(extra),
                "detail": detail,
            }
        )
    if access and notes:
        first = access[0]
        first["Extra"] = "; ".join(p for p in [first["Extra"], *dict.fromkeys(notes)] if p)
    return access


class SQLiteExplainer:
    """Runs EXPLAIN QUERY PLAN on a plain (unmonitored) sqlite3 connection."""

    supports_dml = True

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._connection = connection

    def explain(self, query: QueryRecord) -> list[ExplainRow]:
        cursor = self._connection.execute("EXPLAIN QUERY PLAN " + query.text, _params_for(query))
        try:
            return translate_plan(cursor.fetchall())
        finally:
            cursor.close()

    def profiles(self) -> dict[int, list[ExplainRow]] | None:
        # SQLite has no per-query profiling
        return None
