"""Shared test fixtures for all test modules."""

import sqlite3
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

try:
    import httpx
except ImportError:
    httpx = None

from diagnostipy.core.models import QueryRecord


@pytest.fixture
def report_db_path(tmp_path: Path) -> str:
    """Provide a temporary database path for report storage tests."""
    return str(tmp_path / "reports.db")


@pytest.fixture
def make_query() -> Callable[..., QueryRecord]:
    """Factory fixture for QueryRecords with times given in milliseconds.

    Used in tests to build query logs without repeating perf_counter math.
    """

    def _make(text: str = "SELECT 1", start_ms: float = 0.0, duration_ms: float = 1.0) -> QueryRecord:
        start = start_ms / 1000
        return QueryRecord(text=text, start_time=start, end_time=start + duration_ms / 1000)

    return _make


@pytest.fixture
def sequential_log(make_query) -> Callable[..., list[QueryRecord]]:
    """Factory fixture building a query log from (text, gap_ms, duration_ms) tuples."""

    def _log(*steps: tuple[str, float, float]) -> list[QueryRecord]:
        queries = []
        cursor = 0.0
        for text, gap_ms, duration_ms in steps:
            cursor += gap_ms
            queries.append(make_query(text, cursor, duration_ms))
            cursor += duration_ms
        return queries

    return _log


@pytest.fixture
def app_db() -> Iterator[sqlite3.Connection]:
    """In-memory application database with an indexed and an unindexed table."""
    conn = sqlite3.connect(":memory:")
    conn.executescript(
        """
        CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT, email TEXT);
        CREATE INDEX idx_users_email ON users(email);
        CREATE TABLE events (user_id INTEGER, kind TEXT, created REAL);
        INSERT INTO users (name, email) VALUES ('ada', 'ada@example.com');
        INSERT INTO users (name, email) VALUES ('bob', 'bob@example.com');
        INSERT INTO events VALUES (1, 'login', 1.0);
        INSERT INTO events VALUES (2, 'login', 2.0);
        """
    )
    yield conn
    conn.close()


# === ASGI Test Fixtures ===


@pytest.fixture
def asgi_scope():
    """Factory fixture for creating ASGI scope dicts.

    Used in tests to create scope dicts with customizable method/path.
    """
    from diagnostipy.adapters.frameworks.asgi import Scope

    def _scope(
        method: str = "GET",
        path: str = "/test",
        query_string: bytes = b"",
        headers: list[tuple[bytes, bytes]] | None = None,
    ) -> Scope:
        return {
            "type": "http",
            "method": method,
            "path": path,
            "query_string": query_string,
            "headers": headers or [],
        }

    return _scope


@pytest.fixture
def asgi_send_capture():
    """Fixture that returns a send callable and a responses list for capture.

    Returns a tuple of (send_func, responses_list) for recording ASGI messages.
    """

    responses: list[dict[str, object]] = []

    async def send(message: dict[str, object]) -> None:
        """Capture ASGI messages."""
        responses.append(message)

    return send, responses


@pytest.fixture
def asgi_receive():
    """Receive callable returning an empty request body."""

    async def receive():
        return {"type": "http.request", "body": b""}

    return receive


@pytest.fixture
def asgi_test_client():
    """Factory fixture that creates an httpx.AsyncClient for ASGI testing.

    Usage:
        async def test_something(asgi_test_client):
            async with asgi_test_client(app) as client:
                response = await client.get("/endpoint")
    """
    if httpx is None:
        pytest.skip("httpx not installed")

    def _get_client(app):
        """Return an AsyncClient context manager for the given app."""
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        )

    return _get_client


@pytest.fixture
def html_app():
    """Factory fixture for an ASGI app returning a fixed HTML page."""
    from diagnostipy.adapters.frameworks.asgi import Receive, Scope, Send

    def _app(
        body: bytes = b"<html><body><p>hello</p></body></html>",
        content_type: bytes = b"text/html; charset=utf-8",
        status: int = 200,
    ):
        async def app(scope: Scope, receive: Receive, send: Send) -> None:
            await send(
                {
                    "type": "http.response.start",
                    "status": status,
                    "headers": [
                        (b"content-type", content_type),
                        (b"content-length", str(len(body)).encode()),
                    ],
                }
            )
            await send({"type": "http.response.body", "body": body})

        return app

    return _app
