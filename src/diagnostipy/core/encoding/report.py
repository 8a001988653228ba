"""JSON encoding of debug reports for storage and the open handler."""

import dataclasses
import json
from enum import Enum
from typing import Any

from diagnostipy.core.aggregator import DebugReport


def to_jsonable(value: Any) -> Any:
    """Convert dataclasses, enums, sets and tuples to plain JSON types."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (frozenset, set)):
        return sorted(to_jsonable(v) for v in value)
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return repr(value)


def report_to_dict(report: DebugReport) -> dict[str, Any]:
    data: dict[str, Any] = to_jsonable(report)
    queries = data.get("queries")
    if queries is not None:
        # has_warnings is a property, so fields() skips it
        for query in queries["queries"]:
            query["quality"]["has_warnings"] = bool(query["quality"]["flags"])
    return data


def encode_report(report: DebugReport) -> str:
    """Encode a report as a compact JSON document."""
    return json.dumps(report_to_dict(report), sort_keys=True, separators=(",", ":"))


def decode_report(text: str) -> dict[str, Any]:
    """Decode a stored report.

    Raises:
        ValueError: If the text is not a JSON object.
    """
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("Stored report is not a JSON object")
    return data


def pretty_print(data: Any) -> str:
    """Indented JSON used by the session and request panels."""
    return json.dumps(to_jsonable(data), indent=4, sort_keys=True, default=repr)
