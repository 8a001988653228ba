"""Per-request diagnostics aggregation.

The aggregator turns a ``RequestSnapshot`` (everything the collectors gathered
while the request ran) into a ``DebugReport`` ready for rendering or storage.
It runs once per request, after the query monitor has been stopped.
"""

import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from diagnostipy._version import __version__
from diagnostipy.core.config import DebugConfig
from diagnostipy.core.language import LanguageData, LanguageReport, language_report
from diagnostipy.core.logs import filter_logs, group_messages
from diagnostipy.core.models import (
    AggregationResult,
    ExplainRow,
    LogEntry,
    Mark,
    MemoryInfo,
    Message,
    QueryRecord,
)
from diagnostipy.core.profiler import mark_table, total_ms
from diagnostipy.core.queries import (
    bar_class,
    classify_query,
    query_type_summary,
    record_queries,
    time_class,
)

logger = logging.getLogger(__name__)


@dataclass
class RequestSnapshot:
    """Raw diagnostics collected for one request."""

    request_id: str
    timestamp: float = field(default_factory=time.time)
    queries: Sequence[QueryRecord] = ()
    explains: Mapping[int, Sequence[ExplainRow]] = field(default_factory=dict)
    profiles: Mapping[int, Sequence[ExplainRow]] = field(default_factory=dict)
    profile_notice: str | None = None
    log_entries: Sequence[LogEntry] = ()
    marks: Sequence[Mark] = ()
    memory: MemoryInfo | None = None
    request: Mapping[str, Any] | None = None
    session: Mapping[str, Any] | None = None
    language: LanguageData | None = None
    client_request_id: str | None = None


@dataclass(frozen=True)
class DebugReport:
    """Render-ready diagnostics of one request. Sections are None when disabled."""

    request_id: str
    timestamp: float
    info: dict[str, Any]
    queries: AggregationResult | None = None
    messages: dict[str, list[Message]] | None = None
    memory: MemoryInfo | None = None
    request: dict[str, Any] | None = None
    session: dict[str, Any] | None = None
    profile: list[dict[str, Any]] | None = None
    language: LanguageReport | None = None


class DiagnosticsAggregator:
    """Builds DebugReports according to a DebugConfig."""

    def __init__(self, config: DebugConfig) -> None:
        self.config = config

    def aggregate(self, snapshot: RequestSnapshot) -> DebugReport:
        """Aggregate everything collected for a request."""
        config = self.config
        debug = config.debug
        return DebugReport(
            request_id=snapshot.request_id,
            timestamp=snapshot.timestamp,
            info=self._info(snapshot),
            queries=self.aggregate_queries(snapshot) if debug and config.queries else None,
            messages=self.aggregate_logs(snapshot.log_entries) if debug and config.logs else None,
            memory=snapshot.memory if debug and config.memory else None,
            request=dict(snapshot.request or {}) if debug and config.request else None,
            session=dict(snapshot.session or {}) if debug and config.session else None,
            profile=mark_table(list(snapshot.marks)) if debug and config.profile else None,
            language=self._language(snapshot.language) if config.debug_lang else None,
        )

    def aggregate_queries(self, snapshot: RequestSnapshot) -> AggregationResult:
        """Aggregate the query log with explain/profile rows and quality flags."""
        config = self.config
        result = record_queries(snapshot.queries)
        durations = [q.duration for q in snapshot.queries]

        reports = []
        for report in result.queries:
            explain = tuple(snapshot.explains.get(report.index, ())) if config.query_explains else ()
            profile = tuple(snapshot.profiles.get(report.index, ())) if config.query_profiles else ()
            quality = classify_query(report.record, explain, durations, profile)
            bar = report.bar
            if bar is not None:
                bar = replace(
                    bar, css_class=bar_class(report.record.duration_ms, quality.has_warnings)
                )
            reports.append(
                replace(report, explain=explain, profile=profile, quality=quality, bar=bar)
            )

        return replace(
            result,
            queries=tuple(reports),
            query_types=query_type_summary(snapshot.queries) if config.query_types else None,
            time_class=time_class(result.total_time_ms, total_ms(list(snapshot.marks))),
            profile_notice=snapshot.profile_notice if config.query_profiles else None,
        )

    def aggregate_logs(self, entries: Sequence[LogEntry]) -> dict[str, list[Message]]:
        filtered = filter_logs(entries, self.config.log_policy(), self.config.core_paths)
        return group_messages(filtered)

    def _language(self, data: LanguageData | None) -> LanguageReport:
        config = self.config
        return language_report(
            data or LanguageData(),
            strip_first=config.strip_first,
            strip_prefix=config.strip_prefix,
            strip_suffix=config.strip_suffix,
        )

    def _info(self, snapshot: RequestSnapshot) -> dict[str, Any]:
        request = snapshot.request or {}
        info = {
            "request_id": snapshot.request_id,
            "timestamp": snapshot.timestamp,
            "version": __version__,
            "method": request.get("method", ""),
            "path": request.get("path", ""),
            "query_count": len(snapshot.queries),
            "log_count": len(snapshot.log_entries),
        }
        if snapshot.client_request_id:
            info["client_request_id"] = snapshot.client_request_id
        return info
