"""NDJSON encoder for log entries."""

import json
from collections.abc import Iterable

from diagnostipy.core.models import LogEntry


def encode_logs(entries: Iterable[LogEntry]) -> str:
    """Encode log entries to newline-delimited JSON.

    Args:
        entries: An iterable of LogEntry objects.

    Returns:
        NDJSON string with one JSON object per line.
        Empty string if no entries.
    """
    lines = []
    for entry in entries:
        obj = {
            "timestamp": entry.timestamp,
            "priority": entry.priority.name,
            "category": entry.category_name,
            "message": entry.message,
            "caller": next((f.location for f in entry.call_stack if f.file), ""),
        }
        lines.append(json.dumps(obj))

    if not lines:
        return ""

    return "\n".join(lines) + "\n"
