"""Log entry helpers: creation, ingestion and category based filtering."""

import logging
import os
import time
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import replace
from typing import Any

from diagnostipy.core.config import LogPolicy
from diagnostipy.core.models import LogCategory, LogEntry, Message, Priority, StackFrame

logger = logging.getLogger(__name__)

MESSAGE_COLLECTORS = ("log", "deprecated", "deprecated-core", "deprecation-notes")


def log(
    priority: Priority,
    message: str,
    category: str = "log",
    call_stack: Sequence[StackFrame] = (),
) -> LogEntry:
    """Create a log entry with automatic timestamp.

    Args:
        priority: Severity of the message.
        message: The log message.
        category: Category name; unknown names become LogCategory.OTHER.
        call_stack: Frames of the calling code, innermost first.

    Returns:
        LogEntry with current timestamp
    """
    return LogEntry(
        timestamp=time.time(),
        priority=priority,
        category=LogCategory.parse(category),
        message=message,
        call_stack=tuple(call_stack),
        raw_category=category,
    )


def error(message: str, category: str = "log") -> LogEntry:
    """Create an ERROR log entry with automatic timestamp."""
    return log(Priority.ERROR, message, category)


def warning(message: str, category: str = "log") -> LogEntry:
    """Create a WARNING log entry with automatic timestamp."""
    return log(Priority.WARNING, message, category)


def info(message: str, category: str = "log") -> LogEntry:
    """Create an INFO log entry with automatic timestamp."""
    return log(Priority.INFO, message, category)


def debug(message: str, category: str = "log") -> LogEntry:
    """Create a DEBUG log entry with automatic timestamp."""
    return log(Priority.DEBUG, message, category)


def deprecated(message: str, call_stack: Sequence[StackFrame] = ()) -> LogEntry:
    """Create a deprecation WARNING entry for the code in ``call_stack``."""
    return log(Priority.WARNING, message, "deprecated", call_stack)


def parse_priority(value: Any) -> Priority:
    """Parse a priority given as Priority, int value or name."""
    if isinstance(value, Priority):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return Priority(value)
    if isinstance(value, str):
        name = value.strip().upper()
        if name == "WARN":
            name = "WARNING"
        if name in Priority.__members__:
            return Priority[name]
    raise ValueError(f"Unknown log priority: {value!r}")


def parse_stack_frame(raw: Mapping[str, Any]) -> StackFrame:
    line = raw.get("line")
    return StackFrame(
        file=raw.get("file") or None,
        line=int(line) if line not in (None, "") else None,
        function=raw.get("function") or None,
        cls=raw.get("class") or raw.get("cls") or None,
    )


def parse_log_entry(raw: Mapping[str, Any]) -> LogEntry:
    """Validate a raw log record and convert it to a LogEntry.

    Expected keys are ``message`` and ``priority``; ``category``,
    ``timestamp`` and ``call_stack`` (a list of frame mappings) are optional.

    Raises:
        ValueError: If the message is missing or the priority is unknown.
    """
    if "message" not in raw:
        raise ValueError("Log entry has no message")
    category = str(raw.get("category") or "log")
    frames = raw.get("call_stack") or raw.get("callStack") or ()
    try:
        call_stack = tuple(
            parse_stack_frame(f) if isinstance(f, Mapping) else StackFrame() for f in frames
        )
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid call stack: {e}") from e
    try:
        timestamp = float(raw.get("timestamp") or time.time())
    except TypeError as e:
        raise ValueError(f"Invalid timestamp: {e}") from e
    return LogEntry(
        timestamp=timestamp,
        priority=parse_priority(raw.get("priority", Priority.INFO)),
        category=LogCategory.parse(category),
        message=str(raw["message"]),
        call_stack=call_stack,
        raw_category=category,
    )


def ingest_log_entries(raws: Iterable[Mapping[str, Any] | LogEntry]) -> list[LogEntry]:
    """Convert raw records to LogEntry objects, skipping invalid ones."""
    entries = []
    for raw in raws:
        if isinstance(raw, LogEntry):
            entries.append(raw)
            continue
        try:
            entries.append(parse_log_entry(raw))
        except ValueError as e:
            logger.warning("Skipping invalid log entry: %s", e)
    return entries


def resolve_caller(call_stack: Sequence[StackFrame]) -> StackFrame | None:
    """Return the first frame that names a file."""
    for frame in call_stack:
        if frame.file:
            return frame
    return None


def is_core_path(file: str | None, core_paths: Iterable[str]) -> bool:
    """Return True if ``file`` lies under one of ``core_paths``."""
    if not file:
        return False
    path = os.path.normpath(file)
    for root in core_paths:
        root = os.path.normpath(root)
        if path == root or path.startswith(root.rstrip(os.sep) + os.sep):
            return True
    return False


def filter_logs(
    entries: Iterable[LogEntry],
    policy: LogPolicy,
    core_paths: Iterable[str] = (),
) -> list[LogEntry]:
    """Select the log entries the console shows.

    Deprecations raised from a core path are re-tagged as
    LogCategory.DEPRECATED_CORE. The input is never modified.

    Args:
        entries: Log entries in the order they were logged.
        policy: Which categories to include.
        core_paths: Path prefixes of core library code.

    Returns:
        Included entries, in input order.
    """
    core_paths = tuple(core_paths)
    result = []
    for entry in entries:
        category = entry.category
        if category is LogCategory.DATABASE_QUERY:
            if policy.show_sql:
                result.append(entry)
        elif category is LogCategory.DEPRECATION_NOTES:
            if policy.show_deprecated:
                result.append(entry)
        elif category in (LogCategory.DEPRECATED, LogCategory.DEPRECATED_CORE):
            caller = resolve_caller(entry.call_stack)
            from_core = category is LogCategory.DEPRECATED_CORE or is_core_path(
                caller.file if caller else None, core_paths
            )
            if from_core:
                if policy.show_deprecated_core:
                    result.append(replace(entry, category=LogCategory.DEPRECATED_CORE))
            elif policy.show_deprecated:
                result.append(entry)
        elif policy.show_everything:
            result.append(entry)
    return result


def group_messages(entries: Iterable[LogEntry]) -> dict[str, list[Message]]:
    """Shape filtered entries into the console's message collectors.

    Deprecations keep their caller location. Executed SQL and every other
    category go to the ``log`` collector as "<category> - <message>".
    """
    groups: dict[str, list[Message]] = {name: [] for name in MESSAGE_COLLECTORS}
    for entry in entries:
        name = entry.category_name
        if entry.category in (LogCategory.DEPRECATED, LogCategory.DEPRECATED_CORE):
            caller = resolve_caller(entry.call_stack)
            groups[entry.category.value].append(
                Message(
                    text=entry.message,
                    level="warning",
                    category=name,
                    caller=caller.location if caller else "",
                )
            )
        elif entry.category is LogCategory.DEPRECATION_NOTES:
            groups["deprecation-notes"].append(
                Message(text=entry.message, level=entry.priority.level, category=name)
            )
        else:
            groups["log"].append(
                Message(
                    text=f"{name} - {entry.message}",
                    level=entry.priority.level,
                    category=name,
                )
            )
    return groups
