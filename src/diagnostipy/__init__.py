"""diagnostipy - per-request SQL, log and profiling diagnostics for ASGI apps.

Quick start:
    ```python
    from diagnostipy import DebugConfig, DebugMiddleware, InMemoryDebugStorage

    app = DebugMiddleware(app, DebugConfig(logs=True), InMemoryDebugStorage())
    ```
"""

from diagnostipy._version import __version__
from diagnostipy.adapters.database.connection import MonitoredConnection
from diagnostipy.adapters.database.sqlite_explain import SQLiteExplainer
from diagnostipy.adapters.frameworks.asgi import DebugMiddleware, create_open_handler_app
from diagnostipy.adapters.logging import DiagnosticsHandler
from diagnostipy.adapters.request_context import current_request, mark
from diagnostipy.adapters.storage import InMemoryDebugStorage, SQLiteDebugStorage
from diagnostipy.core.aggregator import DebugReport, DiagnosticsAggregator, RequestSnapshot
from diagnostipy.core.config import DebugConfig, is_authorized
from diagnostipy.core.models import LogCategory, LogEntry, Priority, QueryRecord
from diagnostipy.core.ports import DebugStoragePort, ExplainPort

__all__ = [
    "DebugConfig",
    "DebugMiddleware",
    "DebugReport",
    "DebugStoragePort",
    "DiagnosticsAggregator",
    "DiagnosticsHandler",
    "ExplainPort",
    "InMemoryDebugStorage",
    "LogCategory",
    "LogEntry",
    "MonitoredConnection",
    "Priority",
    "QueryRecord",
    "RequestSnapshot",
    "SQLiteDebugStorage",
    "SQLiteExplainer",
    "__version__",
    "create_open_handler_app",
    "current_request",
    "is_authorized",
    "mark",
]
