"""ASGI adapter for request diagnostics.

``DebugMiddleware`` wraps any ASGI application (FastAPI, Starlette, plain
ASGI callables) without requiring a framework dependency. It collects the
queries, log records and profiler marks of each request, stores the
aggregated report and injects the rendered console into HTML pages.
"""

import asyncio
import json
import logging
import time
import uuid
from collections.abc import Callable, Coroutine, Iterable
from typing import Any

from diagnostipy.adapters.database.analysis import collect_analysis
from diagnostipy.adapters.frameworks.open_handler import handle_open_request
from diagnostipy.adapters.frameworks.query_params import parse_query_string
from diagnostipy.adapters.rendering.html import render_report
from diagnostipy.adapters.request_context import (
    RequestCollector,
    end_request,
    start_request,
)
from diagnostipy.core.aggregator import DebugReport, DiagnosticsAggregator, RequestSnapshot
from diagnostipy.core.config import DebugConfig, is_authorized
from diagnostipy.core.encoding.report import report_to_dict
from diagnostipy.core.ports import DebugStoragePort, ExplainPort
from diagnostipy.core.profiler import traced_memory

logger = logging.getLogger(__name__)

# ASGI type aliases
Scope = dict[str, Any]
Receive = Callable[[], Coroutine[Any, Any, dict[str, Any]]]
Send = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]
ASGIApp = Callable[[Scope, Receive, Send], Coroutine[Any, Any, None]]

REDIRECT_PAGE_PREFIX = b'<html><head><meta http-equiv="refresh" content="0;'


def _get_header(scope_or_headers: Scope | Iterable[tuple[bytes, bytes]], name: str) -> str | None:
    """Return the first header value with the given name (case-insensitive)."""
    headers = (
        scope_or_headers.get("headers", [])
        if isinstance(scope_or_headers, dict)
        else scope_or_headers
    )
    wanted = name.lower().encode()
    for key, value in headers:
        if key.lower() == wanted:
            return value.decode("latin-1")
    return None


def _new_request_id() -> str:
    """Storage key of a request's report. Never taken from the client."""
    return uuid.uuid4().hex


def _is_html(headers: Iterable[tuple[bytes, bytes]]) -> bool:
    content_type = _get_header(headers, "content-type") or ""
    return content_type.split(";")[0].strip().lower() == "text/html"


def _is_webkit_redirect(scope: Scope, body: bytes) -> bool:
    """Safari and Chrome redirect pages must be left untouched."""
    user_agent = (_get_header(scope, "user-agent") or "").lower()
    return body.startswith(REDIRECT_PAGE_PREFIX) and "webkit" in user_agent


def inject_console(body: bytes, console: str) -> bytes:
    """Insert the rendered console before every ``</body>`` of the page."""
    return body.replace(b"</body>", console.encode("utf-8") + b"</body>")


def _request_data(scope: Scope) -> dict[str, Any]:
    headers = {
        key.decode("latin-1"): value.decode("latin-1")
        for key, value in scope.get("headers", [])
        if key.lower() not in (b"cookie", b"authorization")
    }
    return {
        "method": scope.get("method", ""),
        "path": scope.get("path", ""),
        "query_string": scope.get("query_string", b"").decode(errors="replace"),
        "headers": headers,
        "client": list(scope["client"]) if scope.get("client") else None,
    }


async def _send_json(send: Send, status: int, body: Any) -> None:
    payload = json.dumps(body).encode()
    await send(
        {
            "type": "http.response.start",
            "status": status,
            "headers": [
                (b"content-type", b"application/json"),
                (b"content-length", str(len(payload)).encode()),
            ],
        }
    )
    await send({"type": "http.response.body", "body": payload})


class DebugMiddleware:
    """ASGI middleware collecting diagnostics for every HTTP request.

    Example:
        ```python
        from diagnostipy import DebugConfig, DebugMiddleware, InMemoryDebugStorage

        app = DebugMiddleware(app, DebugConfig(logs=True), InMemoryDebugStorage())
        ```
    """

    def __init__(
        self,
        app: ASGIApp,
        config: DebugConfig,
        storage: DebugStoragePort | None = None,
        explainer: ExplainPort | None = None,
        user_groups: Callable[[Scope], Iterable[str]] | None = None,
        request_id_header: str = "X-Request-ID",
        open_handler_path: str | None = "/_debug/open",
        analysis_in_thread: bool = False,
    ) -> None:
        """Initialize the middleware.

        Args:
            app: The ASGI application to wrap.
            config: Diagnostics settings.
            storage: Where aggregated reports are stored (optional).
            explainer: Runs EXPLAIN/profiling for the monitored queries (optional).
            user_groups: Returns the groups of the requesting user, checked
                against ``config.filter_groups``.
            request_id_header: Header carrying the client's own request id.
                It is recorded as ``info["client_request_id"]``; reports are
                always stored under a generated id.
            open_handler_path: Path serving the open handler, None to disable.
            analysis_in_thread: Run EXPLAIN and profiling in a worker thread
                instead of on the event loop. The explainer's connection must
                then be usable from other threads (for sqlite3,
                ``check_same_thread=False``).
        """
        self.app = app
        self.config = config
        self.storage = storage
        self.explainer = explainer
        self.user_groups = user_groups
        self.request_id_header = request_id_header
        self.open_handler_path = open_handler_path
        self.analysis_in_thread = analysis_in_thread
        self.aggregator = DiagnosticsAggregator(config)

    def _authorized(self, scope: Scope) -> bool:
        return _scope_authorized(self.config, self.user_groups, scope)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI callable interface that processes requests through the wrapped app."""
        enabled = self.config.debug or self.config.debug_lang
        if scope["type"] != "http" or not enabled:
            await self.app(scope, receive, send)
            return

        authorized = self._authorized(scope)
        if self.open_handler_path is not None and scope["path"] == self.open_handler_path:
            await self._serve_open_handler(scope, send, authorized)
            return
        if not authorized:
            await self.app(scope, receive, send)
            return

        request_id = _new_request_id()
        client_request_id = _get_header(scope, self.request_id_header)
        collector, token = start_request(request_id)
        collector.profiler.mark("afterInitialise")
        state: dict[str, Any] = {"start": None, "chunks": [], "finished": False}

        async def finish() -> DebugReport | None:
            if state["finished"]:
                return None
            state["finished"] = True
            collector.profiler.mark("afterRespond")
            return await self._finish(scope, collector, client_request_id)

        async def wrapped_send(message: dict[str, Any]) -> None:
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                headers.append((b"x-debug-id", request_id.encode()))
                message = {**message, "headers": headers}
                if _is_html(headers):
                    state["start"] = message
                    return
            elif message["type"] == "http.response.body" and state["start"] is not None:
                state["chunks"].append(message.get("body", b""))
                if message.get("more_body", False):
                    return
                report = await finish()
                start, body = self._inject(scope, state["start"], b"".join(state["chunks"]), report)
                state["start"] = None
                await send(start)
                await send({"type": "http.response.body", "body": body})
                return
            await send(message)

        try:
            await self.app(scope, receive, wrapped_send)
        finally:
            try:
                await finish()
            finally:
                end_request(token)

    def _inject(
        self,
        scope: Scope,
        start: dict[str, Any],
        body: bytes,
        report: DebugReport | None,
    ) -> tuple[dict[str, Any], bytes]:
        """Insert the console into a buffered HTML response."""
        if report is None or _is_webkit_redirect(scope, body):
            return start, body
        try:
            body = inject_console(body, render_report(report, self.config.table_prefix))
        except Exception:
            logger.exception("Failed to render debug console for request %s", report.request_id)
            return start, body
        headers = [(k, v) for k, v in start["headers"] if k.lower() != b"content-length"]
        headers.append((b"content-length", str(len(body)).encode()))
        return {**start, "headers": headers}, body

    async def _finish(
        self,
        scope: Scope,
        collector: RequestCollector,
        client_request_id: str | None = None,
    ) -> DebugReport | None:
        """Aggregate and store the request's diagnostics.

        EXPLAIN and profiling run synchronously against the explainer's
        connection and block the event loop unless ``analysis_in_thread`` is
        set. Errors are logged and swallowed so diagnostics never break the
        response.
        """
        try:
            if self.analysis_in_thread:
                analysis = await asyncio.to_thread(
                    collect_analysis, collector.monitor, self.explainer, self.config
                )
            else:
                analysis = collect_analysis(collector.monitor, self.explainer, self.config)
            snapshot = RequestSnapshot(
                request_id=collector.request_id,
                timestamp=time.time(),
                queries=analysis.queries,
                explains=analysis.explains,
                profiles=analysis.profiles,
                profile_notice=analysis.profile_notice,
                log_entries=list(collector.log_entries),
                marks=collector.profiler.marks,
                memory=traced_memory(),
                request=_request_data(scope),
                session=collector.session,
                language=collector.language,
                client_request_id=client_request_id,
            )
            report = self.aggregator.aggregate(snapshot)
            if self.storage is not None:
                await self.storage.save(report.request_id, report_to_dict(report))
            return report
        except Exception:
            logger.exception("Failed to collect diagnostics for request %s", collector.request_id)
            return None

    async def _serve_open_handler(self, scope: Scope, send: Send, authorized: bool) -> None:
        if not authorized:
            await _send_json(send, 403, {"error": "Forbidden"})
            return
        if self.storage is None:
            await _send_json(send, 404, {"error": "No debug storage configured"})
            return
        await _serve_open_request(self.storage, scope, send)


def _scope_authorized(
    config: DebugConfig,
    user_groups: Callable[[Scope], Iterable[str]] | None,
    scope: Scope,
) -> bool:
    groups = user_groups(scope) if user_groups is not None else ()
    return is_authorized(config, groups)


async def _serve_open_request(storage: DebugStoragePort, scope: Scope, send: Send) -> None:
    params = parse_query_string(scope.get("query_string", b""))
    try:
        status, body = await handle_open_request(storage, params, scope.get("method", "GET"))
    except Exception:
        logger.exception("Error serving open handler request")
        status, body = 500, {"error": "Internal Server Error"}
    await _send_json(send, status, body)


def create_open_handler_app(
    storage: DebugStoragePort,
    config: DebugConfig,
    user_groups: Callable[[Scope], Iterable[str]] | None = None,
) -> ASGIApp:
    """Create an ASGI app serving the open handler on every path.

    Args:
        storage: Storage adapter implementing DebugStoragePort.
        config: Diagnostics settings; ``filter_groups`` restricts access.
        user_groups: Returns the groups of the requesting user.

    Returns:
        ASGI application callable. Users outside ``config.filter_groups``
        get 403.
    """

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            return
        if not _scope_authorized(config, user_groups, scope):
            await _send_json(send, 403, {"error": "Forbidden"})
            return
        await _serve_open_request(storage, scope, send)

    return app
