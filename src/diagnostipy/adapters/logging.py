"""Python logging handler adapter for diagnostipy.

This adapter bridges Python's standard library logging module to the
request collector, so log records emitted while a request is handled show up
in its diagnostics console.
"""

import logging
import re
from collections.abc import Callable

from diagnostipy.adapters.request_context import current_request
from diagnostipy.core.models import LogCategory, LogEntry, Priority, StackFrame

# "path:line: Category: message" as formatted by warnings.formatwarning
_WARNING_FORMAT = re.compile(r"^(?P<file>.+?):(?P<line>\d+): (?P<kind>\w+): (?P<message>.*)$")

_DEPRECATION_KINDS = frozenset({"DeprecationWarning", "PendingDeprecationWarning"})


def _priority_for(levelno: int) -> Priority:
    if levelno >= logging.CRITICAL:
        return Priority.CRITICAL
    if levelno >= logging.ERROR:
        return Priority.ERROR
    if levelno >= logging.WARNING:
        return Priority.WARNING
    if levelno >= logging.INFO:
        return Priority.INFO
    return Priority.DEBUG


def record_to_entry(record: logging.LogRecord) -> LogEntry:
    """Convert a LogRecord into a LogEntry.

    The category comes from an explicit ``category`` extra field when given,
    otherwise from the logger name. Warnings routed through
    ``logging.captureWarnings`` are parsed so deprecations keep the location
    that triggered them.
    """
    message = record.getMessage()
    category = getattr(record, "category", None)
    call_stack = (
        StackFrame(file=record.pathname, line=record.lineno, function=record.funcName),
    )

    if record.name == "py.warnings":
        match = _WARNING_FORMAT.match(message.splitlines()[0] if message else "")
        if match:
            call_stack = (StackFrame(file=match["file"], line=int(match["line"])),)
            message = match["message"]
            if category is None and match["kind"] in _DEPRECATION_KINDS:
                category = LogCategory.DEPRECATED.value

    raw_category = str(category) if category else record.name
    return LogEntry(
        timestamp=record.created,
        priority=_priority_for(record.levelno),
        category=LogCategory.parse(raw_category),
        message=message,
        call_stack=call_stack,
        raw_category=raw_category,
    )


class DiagnosticsHandler(logging.Handler):
    """Logging handler that collects log records for the current request.

    Records emitted outside a request are passed to ``fallback`` when given
    and dropped otherwise. Records from diagnostipy's own loggers are ignored.

    Example:
        ```python
        import logging
        from diagnostipy.adapters.logging import DiagnosticsHandler

        logging.getLogger().addHandler(DiagnosticsHandler())
        logging.captureWarnings(True)
        ```
    """

    def __init__(
        self,
        level: int = logging.NOTSET,
        fallback: Callable[[LogEntry], None] | None = None,
    ) -> None:
        super().__init__(level)
        self._fallback = fallback

    def emit(self, record: logging.LogRecord) -> None:
        """Convert the record and append it to the current request's entries."""
        if record.name == "diagnostipy" or record.name.startswith("diagnostipy."):
            return
        try:
            entry = record_to_entry(record)
        except Exception:
            self.handleError(record)
            return
        collector = current_request()
        if collector is not None:
            collector.log_entries.append(entry)
        elif self._fallback is not None:
            self._fallback(entry)
