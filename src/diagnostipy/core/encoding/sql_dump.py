"""Plain text dump of a request's executed SQL."""

import time
from collections.abc import Sequence

from diagnostipy._version import __version__
from diagnostipy.core.models import QueryRecord


def dump_queries(queries: Sequence[QueryRecord], now: float | None = None) -> str:
    """Render queries as a SQL log file.

    The header is a set of ``#`` comment lines. Each query is flattened to a
    single line with backticks removed and terminated by ``;``.

    Args:
        queries: Executed queries in execution order.
        now: Unix timestamp for the Date header (default: current time).
    """
    stamp = time.strftime("%Y-%m-%d %H:%M:%S", time.gmtime(time.time() if now is None else now))
    head = ["#", f"#Date: {stamp} UTC", f"#Software: diagnostipy {__version__}", "\n"]
    body = []
    for query in queries:
        text = query.text.replace("`", "")
        for sep in ("\r\n", "\t", "\n"):
            text = text.replace(sep, " ")
        body.append(text + ";\n")
    return "\n".join(head) + "".join(body)
