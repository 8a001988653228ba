"""Server-side HTML rendering of debug reports."""

import re
from collections.abc import Mapping, Sequence
from functools import lru_cache
from html import escape
from typing import Any

from diagnostipy.core.aggregator import DebugReport
from diagnostipy.core.encoding.report import pretty_print
from diagnostipy.core.language import LanguageReport
from diagnostipy.core.models import (
    AggregationResult,
    ExplainRow,
    Message,
    QueryReport,
    StackFrame,
    TimingBar,
)
from diagnostipy.core.queries import (
    FILESORT_MARKER,
    NO_INDEX_MARKER,
    highlight_profile_rows,
)

NEWLINE_KEYWORDS = frozenset(
    {
        "FROM", "LEFT", "INNER", "OUTER", "WHERE", "SET", "VALUES",
        "ORDER", "GROUP", "HAVING", "LIMIT", "ON", "AND", "CASE",
    }
)
# Escaped entities are lowercase, so uppercase words are always SQL text.
_TOKEN_SOURCE = r"\b(?P<word>[A-Z_]{2,})\b|(?P<operator>=)|(?P<star>\*)"
_TOKEN = re.compile(_TOKEN_SOURCE)

CONSOLE_ID = "diagnostipy-console"


@lru_cache(maxsize=32)
def _token_pattern(table_prefix: str) -> re.Pattern[str]:
    """Token regex, with prefixed table names as an extra alternative."""
    if not table_prefix:
        return _TOKEN
    # Entity names such as &quot; or &#x27; are never table names
    table = r"(?<![&#])\b(?P<table>" + re.escape(escape(table_prefix)) + r"[a-z_0-9]+)"
    return re.compile(table + "|" + _TOKEN_SOURCE)


def _mark_token(match: re.Match[str]) -> str:
    groups = match.groupdict()
    if groups.get("table"):
        return f'<span class="dbg-table">{groups["table"]}</span>'
    word, operator, star = groups["word"], groups["operator"], groups["star"]
    if operator:
        return '<b class="dbg-operator">=</b>'
    if star:
        return '<b class="dbg-star">*</b>'
    span = f'<span class="dbg-command">{word}</span>'
    if word in NEWLINE_KEYWORDS:
        return "<br />&#160;&#160;" + span
    return span


def highlight_query(query: str, table_prefix: str = "") -> str:
    """Escape a query and mark up keywords, operators and prefixed tables.

    Args:
        query: Raw SQL text.
        table_prefix: When set, table names starting with it are highlighted.

    Returns:
        HTML safe to embed inside a ``<pre>`` element.
    """
    return _token_pattern(table_prefix).sub(_mark_token, escape(query, quote=True))


def render_bars(bars: Sequence[TimingBar | None], active: int | None = None) -> str:
    """Render the request timeline, one bar per query."""
    parts = []
    for i, bar in enumerate(bars):
        if bar is None:
            continue
        if bar.prefix_percent:
            parts.append(f'<div class="dbg-bar-spacer" style="width:{round(bar.prefix_percent, 4)}%;"></div>')
        css = f"dbg-bar dbg-bar-{bar.css_class}" if bar.css_class else "dbg-bar"
        if active is not None and i == active:
            css += " dbg-bar-active"
        tip = f' title="{escape(bar.tip)}"' if bar.tip else ""
        parts.append(
            f'<a class="{css}"{tip} style="width:{round(bar.width_percent, 4)}%;" '
            f'href="#dbg-query-{i + 1}"></a>'
        )
    return '<div class="dbg-bars">' + "".join(parts) + "</div>"


def _cell(text: str) -> str:
    html = escape(text)
    for marker in (NO_INDEX_MARKER, FILESORT_MARKER):
        if marker in text:
            html = html.replace(escape(marker), f'<span class="dbg-warning">{escape(marker)}</span>')
    return html


def explain_table(display: Sequence[Mapping[str, str]]) -> str:
    """Render explain rows prepared by ``classify_query``."""
    if not display:
        return ""
    header = "".join(f"<th>{escape(k)}</th>" for k in display[0])
    rows = []
    for row in display:
        cells = []
        for column, text in row.items():
            css = ' class="dbg-warning"' if column == "Error" else ""
            cells.append(f"<td{css}>{_cell(text)}</td>")
        rows.append("<tr>" + "".join(cells) + "</tr>")
    return (
        '<table class="dbg-query-table"><thead><tr>'
        + header
        + "</tr></thead><tbody>"
        + "".join(rows)
        + "</tbody></table>"
    )


def profile_table(rows: Sequence[ExplainRow]) -> str:
    """Render profile rows, highlighting the two slowest phases."""
    if not rows:
        return ""
    header = "".join(f"<th>{escape(str(k))}</th>" for k in rows[0])
    body = []
    for row, slow in highlight_profile_rows(rows):
        cells = []
        for column, value in row.items():
            if column == "Duration":
                css = ' class="dbg-warning"' if slow else ""
                try:
                    text = f"{float(value) * 1000:.2f}&nbsp;ms"
                except (TypeError, ValueError):
                    text = escape(str(value))
                cells.append(f"<td{css}>{text}</td>")
            else:
                cells.append(f"<td>{escape('NULL' if value is None else str(value))}</td>")
        body.append("<tr>" + "".join(cells) + "</tr>")
    return (
        '<table class="dbg-query-table"><thead><tr>'
        + header
        + "</tr></thead><tbody>"
        + "".join(body)
        + "</tbody></table>"
    )


def render_call_stack(call_stack: Sequence[StackFrame]) -> str:
    """Render a call stack, numbered from the outermost frame."""
    if not call_stack:
        return ""
    rows = []
    count = len(call_stack)
    for frame in call_stack:
        caller = escape(f"{frame.cls}.{frame.function}" if frame.cls else frame.function or "")
        location = escape(frame.location) if frame.file else "same file"
        rows.append(f"<tr><td>{count}</td><td>{caller}()</td><td>{location}</td></tr>")
        count -= 1
    return (
        '<table class="dbg-query-table"><thead><tr><th>#</th><th>Caller</th>'
        "<th>File and line</th></tr></thead><tbody>" + "".join(rows) + "</tbody></table>"
    )


def _render_query(query: QueryReport, table_prefix: str) -> str:
    record = query.record
    label = query.bar.css_class if query.bar else "success"
    parts = [
        f'<li id="dbg-query-{query.index + 1}">',
        f'<div class="dbg-query-time">Query time: <span class="label label-{label}">'
        f"{record.duration_ms:.2f}&nbsp;ms</span>",
    ]
    if query.gap_ms:
        parts.append(f" after previous: {query.gap_ms:.2f}&nbsp;ms")
    if record.memory_before is not None and record.memory_after is not None:
        used = (record.memory_after - record.memory_before) / 1024
        parts.append(f" memory: {used:.3f}&nbsp;KB")
    parts.append("</div>")
    if query.duplicate_of:
        links = " ".join(
            f'<a href="#dbg-query-{i + 1}">#{i + 1}</a>' for i in query.duplicate_of
        )
        parts.append(f'<div class="dbg-duplicates">Duplicates: {links}</div>')
    parts.append(f"<pre>{highlight_query(record.text, table_prefix)}</pre>")
    if record.bound_params:
        params = ", ".join(
            f"{escape(k)}={escape(repr(p.value))}" for k, p in record.bound_params.items()
        )
        parts.append(f'<div class="dbg-params">{params}</div>')
    if query.quality.display:
        parts.append('<div class="dbg-explain">' + explain_table(query.quality.display) + "</div>")
    if query.profile:
        parts.append('<div class="dbg-profile">' + profile_table(query.profile) + "</div>")
    if record.call_stack:
        parts.append(render_call_stack(record.call_stack))
    parts.append("</li>")
    return "".join(parts)


def render_queries(result: AggregationResult, table_prefix: str = "") -> str:
    parts = [
        f"<h4>{result.total_count} queries logged "
        f'<span class="label label-{result.time_class}">{result.total_time_ms:.2f}&nbsp;ms</span>'
        "</h4>"
    ]
    if result.profile_notice:
        parts.append(f'<div class="dbg-notice">{escape(result.profile_notice)}</div>')
    if result.duplicate_count:
        parts.append(
            f'<div class="dbg-alert"><h4>{result.duplicate_count} duplicate queries found</h4>'
        )
        for group in result.duplicates:
            links = " ".join(f'<a href="#dbg-query-{i + 1}">#{i + 1}</a>' for i in group.indices)
            parts.append(f"<div>{group.size} duplicates: {links}</div>")
        parts.append("</div>")
    parts.append(render_bars([q.bar for q in result.queries]))
    parts.append("<ol>" + "".join(_render_query(q, table_prefix) for q in result.queries) + "</ol>")
    if result.query_types is not None:
        types = result.query_types
        parts.append(f"<h4>{types.total} query types logged</h4>")
        for title, counts in (("SELECT", types.select), ("Other", types.other)):
            if counts:
                items = "".join(
                    f"<li><code>{escape(key)}</code> &times; {count}</li>"
                    for key, count in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
                )
                parts.append(f"<h5>{title}</h5><ul>{items}</ul>")
    return "".join(parts)


def render_messages(messages: Mapping[str, Sequence[Message]]) -> str:
    parts = []
    for collector, items in messages.items():
        if not items:
            continue
        entries = []
        for message in items:
            caller = (
                f' <span class="dbg-caller">{escape(message.caller)}</span>' if message.caller else ""
            )
            entries.append(
                f'<li class="dbg-{escape(message.level)}">{escape(message.text)}{caller}</li>'
            )
        parts.append(
            f'<h4>{escape(collector)} ({len(items)})</h4><ul class="dbg-messages">'
            + "".join(entries)
            + "</ul>"
        )
    return "".join(parts)


def render_language(report: LanguageReport) -> str:
    parts = ["<h4>Language files loaded</h4><ul>"]
    for file, loaded in report.loaded.items():
        parts.append(f"<li>{'Loaded' if loaded else 'Not loaded'} : {escape(file)}</li>")
    parts.append("</ul><h4>Language file errors</h4>")
    if report.errors:
        parts.append(
            "<ul>"
            + "".join(f"<li>{escape(f)} {escape(e)}</li>" for f, e in report.errors.items())
            + "</ul>"
        )
    else:
        parts.append("<p>None</p>")
    parts.append("<h4>Untranslated strings</h4>")
    if report.untranslated:
        lines = []
        for file, keys in report.untranslated.items():
            lines.append(f"\n\n# {file or 'Unknown file'}\n\n")
            lines.append("\n".join(keys))
        parts.append("<pre>" + escape("".join(lines)) + "</pre>")
    else:
        parts.append("<p>None</p>")
    return "".join(parts)


def _section(name: str, title: str, body: str) -> str:
    return f'<section class="dbg-section" id="dbg-{name}"><h3>{escape(title)}</h3>{body}</section>'


def _dump(data: Any) -> str:
    return "<pre>" + escape(pretty_print(data)) + "</pre>"


def render_report(report: DebugReport, table_prefix: str = "") -> str:
    """Render the whole console for a report."""
    sections = [_section("info", "Info", _dump(report.info))]
    if report.request is not None:
        sections.append(_section("request", "Request", _dump(report.request)))
    if report.session is not None:
        sections.append(_section("session", "Session", _dump(report.session)))
    if report.profile is not None:
        rows = "".join(
            f"<tr><td>{escape(str(m['label']))}</td><td>{m['offset_ms']:.2f}&nbsp;ms</td>"
            f"<td>+{m['delta_ms']:.2f}&nbsp;ms</td></tr>"
            for m in report.profile
        )
        sections.append(
            _section("profile", "Profile", f'<table class="dbg-query-table"><tbody>{rows}</tbody></table>')
        )
    if report.memory is not None:
        sections.append(
            _section(
                "memory",
                "Memory",
                f"<p>Peak memory: {report.memory.peak / 1048576:.2f}&nbsp;MB, "
                f"current: {report.memory.current / 1048576:.2f}&nbsp;MB</p>",
            )
        )
    if report.queries is not None:
        sections.append(_section("queries", "Queries", render_queries(report.queries, table_prefix)))
    if report.messages is not None:
        sections.append(_section("logs", "Logs", render_messages(report.messages)))
    if report.language is not None:
        sections.append(_section("language", "Language", render_language(report.language)))
    return (
        f'<div id="{CONSOLE_ID}" data-request-id="{escape(report.request_id)}">'
        + "".join(sections)
        + "</div>"
    )
