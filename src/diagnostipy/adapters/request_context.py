"""Per-request collector stored in a context variable.

The middleware starts a collector for each request; the query monitor, the
logging handler and application code find it through ``current_request()``.
Each asyncio task gets its own copy of the context, so concurrent requests
do not share collectors.
"""

from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from typing import Any

from diagnostipy.adapters.database.monitor import QueryMonitor
from diagnostipy.core.language import LanguageData
from diagnostipy.core.models import LogEntry
from diagnostipy.core.profiler import Profiler


@dataclass
class RequestCollector:
    """Mutable diagnostics state of the request in progress."""

    request_id: str
    monitor: QueryMonitor = field(default_factory=QueryMonitor)
    profiler: Profiler = field(default_factory=Profiler)
    log_entries: list[LogEntry] = field(default_factory=list)
    session: dict[str, Any] = field(default_factory=dict)
    language: LanguageData | None = None


_current: ContextVar[RequestCollector | None] = ContextVar(
    "diagnostipy_request", default=None
)


def start_request(request_id: str) -> tuple[RequestCollector, Token[RequestCollector | None]]:
    """Install a fresh collector for the current context."""
    collector = RequestCollector(request_id=request_id)
    token = _current.set(collector)
    return collector, token


def current_request() -> RequestCollector | None:
    """Return the collector of the request being handled, if any."""
    return _current.get()


def end_request(token: Token[RequestCollector | None]) -> None:
    """Restore the context that was active before ``start_request``."""
    _current.reset(token)


def mark(label: str) -> None:
    """Add a profiler mark to the current request. No-op outside a request."""
    collector = _current.get()
    if collector is not None:
        collector.profiler.mark(label)
