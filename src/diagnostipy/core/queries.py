"""Query log analysis: duplicates, quality flags, timing bars and query types.

Everything here is a pure function of the query log (and any EXPLAIN rows
passed in). Running the analysis queries is left to the database adapters.
"""

import logging
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import replace

from diagnostipy.core.models import (
    AggregationResult,
    DuplicateGroup,
    ExplainRow,
    QualityFlag,
    QualityFlags,
    QueryRecord,
    QueryReport,
    QueryTypeSummary,
    TimingBar,
)

logger = logging.getLogger(__name__)

MIN_BAR_WIDTH = 0.3
SLOW_QUERY_THRESHOLD = 0.001

NO_INDEX_MARKER = "WARNING: no index used"
FILESORT_MARKER = "WARNING: Using filesort"

_QUOTES = re.compile(r"[`'\"]")
_WHITESPACE = re.compile(r"\s+")


def normalize_sql(text: str) -> str:
    """Strip quoting and collapse whitespace so equivalent queries compare equal."""
    return _WHITESPACE.sub(" ", _QUOTES.sub("", text)).strip()


def find_duplicates(log: Sequence[QueryRecord]) -> tuple[DuplicateGroup, ...]:
    """Group queries by normalized text, keeping groups with two or more members.

    Groups are ordered by the index of their first member.
    """
    groups: dict[str, list[int]] = {}
    for index, query in enumerate(log):
        groups.setdefault(normalize_sql(query.text), []).append(index)
    return tuple(
        DuplicateGroup(normalized_text=text, indices=tuple(indices))
        for text, indices in groups.items()
        if len(indices) >= 2
    )


def record_queries(log: Sequence[QueryRecord]) -> AggregationResult:
    """Summarize a request's query log.

    Args:
        log: Executed queries in execution order.

    Returns:
        AggregationResult with one QueryReport per query (gap since the
        previous query, timing bar, duplicate siblings), the duplicate
        groups and the total duplicate count.
    """
    duplicates = find_duplicates(log)
    siblings: dict[int, tuple[int, ...]] = {}
    for group in duplicates:
        for index in group.indices:
            siblings[index] = group.indices

    bars = compute_timing_bars(log)
    reports = []
    previous_end: float | None = None
    for index, query in enumerate(log):
        gap_ms = 0.0 if previous_end is None else max(query.start_time - previous_end, 0.0) * 1000
        reports.append(
            QueryReport(
                index=index,
                record=query,
                gap_ms=gap_ms,
                bar=bars[index] if bars else None,
                duplicate_of=siblings.get(index, ()),
            )
        )
        previous_end = query.end_time

    return AggregationResult(
        queries=tuple(reports),
        total_count=len(log),
        total_time_ms=sum(q.duration_ms for q in log),
        duplicates=duplicates,
        duplicate_count=sum(g.size for g in duplicates),
    )


def top_durations(
    values: Iterable[float],
    n: int = 2,
    threshold: float = SLOW_QUERY_THRESHOLD,
) -> set[float]:
    """Return the ``n`` largest values that are at least ``threshold`` (seconds)."""
    ranked = sorted(values, reverse=True)[:n]
    return {v for v in ranked if v >= threshold}


def classify_query(
    query: QueryRecord,
    explain: Sequence[ExplainRow] | None = None,
    durations: Iterable[float] = (),
    profile: Sequence[ExplainRow] | None = None,
) -> QualityFlags:
    """Flag quality problems of a single query.

    Args:
        query: The query to classify.
        explain: EXPLAIN rows for the query, if any were collected.
        durations: Durations (seconds) of every query in the batch; the query
            is flagged SLOW when it is one of the two slowest and takes at
            least 1 ms.
        profile: Profile rows of the query, if profiling is on; the query is
            flagged SLOW_PHASE when one of its phases is highlighted as slow.

    Returns:
        QualityFlags with the raised flags and the explain rows converted to
        display text, where warning cells carry NO_INDEX_MARKER or
        FILESORT_MARKER.
    """
    flags: set[QualityFlag] = set()
    display: list[dict[str, str]] = []

    for row in explain or ():
        if not isinstance(row, Mapping):
            row = {"Error": f"Unexpected explain row: {row!r}"}
        cells: dict[str, str] = {}
        for column, value in row.items():
            if column == "Error":
                flags.add(QualityFlag.EXPLAIN_ERROR)
                cells[column] = str(value)
            elif column == "key":
                if value is None or str(value).strip() in ("", "NULL"):
                    flags.add(QualityFlag.NO_INDEX)
                    cells[column] = NO_INDEX_MARKER
                else:
                    cells[column] = str(value)
            elif column == "Extra":
                text = "NULL" if value is None else str(value)
                if "Using filesort" in text:
                    flags.add(QualityFlag.FILESORT)
                    text = text.replace("Using filesort", FILESORT_MARKER)
                cells[column] = text
            else:
                cells[column] = "NULL" if value is None else str(value)
        display.append(cells)

    if query.duration in top_durations(durations):
        flags.add(QualityFlag.SLOW)

    if profile and any(slow for _, slow in highlight_profile_rows(profile)):
        flags.add(QualityFlag.SLOW_PHASE)

    return QualityFlags(flags=frozenset(flags), display=tuple(display))


def highlight_profile_rows(
    rows: Sequence[ExplainRow],
) -> list[tuple[ExplainRow, bool]]:
    """Pair each profile row with whether its Duration is among the two slowest."""
    durations = [_as_float(r.get("Duration")) for r in rows if "Duration" in r]
    slow = top_durations(d for d in durations if d is not None)
    return [(row, _as_float(row.get("Duration")) in slow) for row in rows]


def bar_class(duration_ms: float, has_warnings: bool) -> str:
    """CSS class of a query's timing bar."""
    if has_warnings or duration_ms >= 10:
        return "danger"
    if duration_ms >= 1:
        return "warning"
    return "success"


def time_class(total_query_ms: float, total_request_ms: float) -> str:
    """Rate the share of request time spent in the database."""
    if total_query_ms > total_request_ms * 0.25:
        return "danger"
    if total_query_ms < total_request_ms * 0.15:
        return "success"
    return "warning"


def compute_timing_bar(
    query: QueryRecord,
    total_elapsed: float,
    previous_end: float | None = None,
    min_width: float = MIN_BAR_WIDTH,
) -> TimingBar:
    """Place a query on the request timeline.

    The prefix is the idle time since ``previous_end`` and the width is the
    query duration, both as a percentage of ``total_elapsed``. Bars narrower
    than ``min_width`` grow by taking from their own prefix, which never goes
    below zero.

    Raises:
        ValueError: If total_elapsed is not positive.
    """
    if total_elapsed <= 0:
        raise ValueError("total_elapsed must be positive")
    gap = 0.0 if previous_end is None else max(query.start_time - previous_end, 0.0)
    pre = gap / total_elapsed * 100
    width = query.duration / total_elapsed * 100

    if width < min_width:
        pre -= min_width - width
        if pre < 0:
            min_width += pre
            pre = 0.0
        width = max(min_width, 0.0)

    return TimingBar(
        prefix_percent=pre,
        width_percent=width,
        css_class=bar_class(query.duration_ms, False),
        tip=f"{query.duration_ms:.2f} ms",
    )


def compute_timing_bars(log: Sequence[QueryRecord]) -> list[TimingBar]:
    """Compute timing bars for a whole query log.

    Returns an empty list when the log spans no measurable time. The first bar
    is floored at MIN_BAR_WIDTH by borrowing from the second bar's prefix.
    """
    if not log:
        return []
    start = min(q.start_time for q in log)
    end = max(q.end_time for q in log)
    total = end - start
    if total <= 0:
        return []

    bars = []
    previous_end: float | None = None
    for query in log:
        bars.append(compute_timing_bar(query, total, previous_end))
        previous_end = query.end_time

    if len(bars) > 1 and bars[0].width_percent < MIN_BAR_WIDTH:
        min_width = MIN_BAR_WIDTH
        pre = bars[1].prefix_percent - (min_width - bars[0].width_percent)
        if pre < 0:
            min_width += pre
            pre = 0.0
        bars[0] = replace(bars[0], width_percent=max(min_width, 0.0))
        bars[1] = replace(bars[1], prefix_percent=pre)

    return bars


def statement_key(text: str) -> str:
    """Return the statement text up to its WHERE (or ORDER BY) clause."""
    lowered = text.lower()
    from_start = max(lowered.find("from"), 0)
    end = lowered.find("where", from_start)
    if end == -1:
        end = lowered.find("order by", from_start)
    if end == -1:
        end = len(text)
    return " ".join(text[:end].split())


def query_type_summary(log: Sequence[QueryRecord]) -> QueryTypeSummary:
    """Count SELECT and other statements by their statement key."""
    select: dict[str, int] = {}
    other: dict[str, int] = {}
    for query in log:
        key = statement_key(query.text)
        target = select if query.text.lstrip().lower().startswith("select") else other
        target[key] = target.get(key, 0) + 1
    return QueryTypeSummary(select=select, other=other)


def is_explainable(text: str, include_dml: bool = False) -> bool:
    """Return True for statements EXPLAIN should be run for."""
    verb = text.lstrip().split(None, 1)[0].lower() if text.strip() else ""
    if verb == "select":
        return True
    return include_dml and verb in ("delete", "update")


def collect_explains(
    log: Sequence[QueryRecord],
    explain: Callable[[QueryRecord], Sequence[ExplainRow]],
    include_dml: bool = False,
) -> dict[int, tuple[ExplainRow, ...]]:
    """Run ``explain`` for every explainable query.

    A failing EXPLAIN is recorded as a single ``{"Error": message}`` row for
    that query; the remaining queries are still explained.
    """
    results: dict[int, tuple[ExplainRow, ...]] = {}
    for index, query in enumerate(log):
        if not is_explainable(query.text, include_dml):
            continue
        try:
            results[index] = tuple(explain(query))
        except Exception as e:
            logger.debug("EXPLAIN failed for query #%d: %s", index + 1, e)
            results[index] = ({"Error": str(e)},)
    return results


def _as_float(value: object) -> float | None:
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
