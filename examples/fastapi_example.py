"""Example FastAPI application with the diagnostics console.

Run with:
    uvicorn examples.fastapi_example:app --reload

Pages:
    /                     - HTML page listing users; the console is injected
                            before </body>
    /events               - HTML page running an unindexed query and logging
                            a deprecation warning
    /_debug/open?op=find  - stored reports, newest first
    /_debug/open?op=get&id=<x-debug-id>
                          - one stored report as JSON
"""

import logging
import sqlite3
import warnings

from fastapi import FastAPI
from fastapi.responses import HTMLResponse

from diagnostipy import (
    DebugConfig,
    DebugMiddleware,
    DiagnosticsHandler,
    MonitoredConnection,
    SQLiteDebugStorage,
    SQLiteExplainer,
    mark,
)

logger = logging.getLogger("example")

db = sqlite3.connect(":memory:", check_same_thread=False)
db.executescript(
    """
    CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT);
    CREATE TABLE events (user_id INTEGER, kind TEXT);
    INSERT INTO users (name) VALUES ('Alice'), ('Bob');
    INSERT INTO events VALUES (1, 'login'), (2, 'login');
    """
)
conn = MonitoredConnection(db)

# Route log records and warnings of the running request into its console
logging.getLogger().addHandler(DiagnosticsHandler())
logging.captureWarnings(True)
warnings.simplefilter("default", DeprecationWarning)

config = DebugConfig(
    logs=True,
    log_deprecated=True,
    log_everything=True,
    query_explains=True,
    query_profiles=True,
)
storage = SQLiteDebugStorage("debug_reports.db")

app = FastAPI(title="Diagnostics Example")


def page(title: str, rows: list[str]) -> str:
    items = "".join(f"<li>{row}</li>" for row in rows)
    return f"<html><head><title>{title}</title></head><body><ul>{items}</ul></body></html>"


@app.get("/", response_class=HTMLResponse)
async def users() -> str:
    """Two identical queries show up as duplicates in the console."""
    names = [row[0] for row in conn.execute("SELECT name FROM users ORDER BY id")]
    conn.execute("SELECT name FROM users ORDER BY id")
    mark("afterRender")
    return page("Users", names)


@app.get("/events", response_class=HTMLResponse)
async def events() -> str:
    """An unindexed lookup and a deprecation warning."""
    rows = conn.execute("SELECT kind FROM events WHERE user_id = ?", (1,)).fetchall()
    warnings.warn("events() will be paginated", DeprecationWarning, stacklevel=1)
    logger.info("listed %d events", len(rows))
    return page("Events", [kind for (kind,) in rows])


app = DebugMiddleware(app, config, storage, SQLiteExplainer(db))
