"""Step definitions for request aggregation scenarios."""

from dataclasses import dataclass, field

import pytest
from pytest_bdd import given, parsers, then, when

from diagnostipy.core.aggregator import DebugReport, DiagnosticsAggregator, RequestSnapshot
from diagnostipy.core.config import DebugConfig
from diagnostipy.core.logs import deprecated
from diagnostipy.core.models import ExplainRow, QualityFlag, QueryRecord, StackFrame


@dataclass
class AggregationContext:
    """Mutable state shared across the steps of one scenario."""

    queries: list[QueryRecord] = field(default_factory=list)
    explains: dict[int, list[ExplainRow]] = field(default_factory=dict)
    snapshot_logs: list = field(default_factory=list)
    report: DebugReport | None = None


@pytest.fixture
def ctx() -> AggregationContext:
    return AggregationContext()


def _aggregate(ctx: AggregationContext, config: DebugConfig) -> None:
    snapshot = RequestSnapshot(
        request_id="bdd",
        queries=ctx.queries,
        explains=ctx.explains,
        log_entries=ctx.snapshot_logs,
    )
    ctx.report = DiagnosticsAggregator(config).aggregate(snapshot)


def _query_report(ctx: AggregationContext, number: int):
    assert ctx.report is not None and ctx.report.queries is not None
    return ctx.report.queries.queries[number - 1]


# --- Given ---


@given("a request that executed the queries")
def step_executed_queries(ctx: AggregationContext, datatable: list[list[str]]) -> None:
    header, *rows = datatable
    cursor = 0.0
    for row in rows:
        values = dict(zip(header, row, strict=True))
        cursor += float(values["gap_ms"]) / 1000
        duration = float(values["duration_ms"]) / 1000
        ctx.queries.append(QueryRecord(text=values["sql"], start_time=cursor, end_time=cursor + duration))
        cursor += duration


@given(parsers.parse('query {number:d} was explained without an index on table "{table}"'))
def step_explained_without_index(ctx: AggregationContext, number: int, table: str) -> None:
    ctx.explains[number - 1] = [{"table": table, "key": None, "Extra": ""}]


@given(parsers.parse('a deprecation logged from "{file}"'))
def step_deprecation(ctx: AggregationContext, file: str) -> None:
    ctx.snapshot_logs.append(deprecated("old API", (StackFrame(file=file, line=1),)))


# --- When ---


@when("the request is aggregated")
def step_aggregate(ctx: AggregationContext) -> None:
    _aggregate(ctx, DebugConfig())


@when("the request is aggregated with explains enabled")
def step_aggregate_explains(ctx: AggregationContext) -> None:
    _aggregate(ctx, DebugConfig(query_explains=True))


@when("the request is aggregated with deprecation logging enabled")
def step_aggregate_deprecations(ctx: AggregationContext) -> None:
    config = DebugConfig(logs=True, log_deprecated=True, core_paths=("/usr/lib/python3",))
    _aggregate(ctx, config)


# --- Then ---


@then(parsers.parse("{count:d} queries are logged"))
def step_queries_logged(ctx: AggregationContext, count: int) -> None:
    assert ctx.report is not None and ctx.report.queries is not None
    assert ctx.report.queries.total_count == count


@then(parsers.parse("{count:d} duplicate queries are found"))
def step_duplicates_found(ctx: AggregationContext, count: int) -> None:
    assert ctx.report is not None and ctx.report.queries is not None
    assert ctx.report.queries.duplicate_count == count


@then(parsers.parse("query {number:d} is a duplicate of queries {first:d} and {second:d}"))
def step_duplicate_of(ctx: AggregationContext, number: int, first: int, second: int) -> None:
    assert _query_report(ctx, number).duplicate_of == (first - 1, second - 1)


@then(parsers.parse('queries {first:d} and {second:d} are flagged "{flag}"'))
def step_queries_flagged(ctx: AggregationContext, first: int, second: int, flag: str) -> None:
    for number in (first, second):
        assert QualityFlag(flag) in _query_report(ctx, number).quality


@then(parsers.parse('query {number:d} is flagged "{flag}"'))
def step_query_flagged(ctx: AggregationContext, number: int, flag: str) -> None:
    assert QualityFlag(flag) in _query_report(ctx, number).quality


@then(parsers.parse('query {number:d} is not flagged "{flag}"'))
def step_query_not_flagged(ctx: AggregationContext, number: int, flag: str) -> None:
    assert QualityFlag(flag) not in _query_report(ctx, number).quality


@then(parsers.parse('query {number:d} has a "{css_class}" timing bar'))
def step_timing_bar(ctx: AggregationContext, number: int, css_class: str) -> None:
    bar = _query_report(ctx, number).bar
    assert bar is not None
    assert bar.css_class == css_class


@then(parsers.parse('the "{collector}" collector shows {count:d} message'))
@then(parsers.parse('the "{collector}" collector shows {count:d} messages'))
def step_collector_count(ctx: AggregationContext, collector: str, count: int) -> None:
    assert ctx.report is not None and ctx.report.messages is not None
    assert len(ctx.report.messages[collector]) == count
