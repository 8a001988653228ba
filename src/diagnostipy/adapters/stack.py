"""Call stack capture for queries and log records."""

import contextlib
import logging
import os
import traceback

from diagnostipy.core.models import StackFrame

_PACKAGE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
_LOGGING_DIR = os.path.dirname(os.path.abspath(logging.__file__))
_CONTEXTLIB_FILE = os.path.abspath(contextlib.__file__)


def _is_internal(filename: str) -> bool:
    path = os.path.abspath(filename)
    return (
        path.startswith(_PACKAGE_DIR + os.sep)
        or path.startswith(_LOGGING_DIR + os.sep)
        or path == _CONTEXTLIB_FILE
    )


def capture_stack(limit: int = 20) -> tuple[StackFrame, ...]:
    """Return the current call stack, innermost first.

    Frames from this package, the logging module and contextlib are skipped
    so the first frame is the application code that issued the query or log
    call.
    """
    frames = traceback.extract_stack()
    result = []
    for summary in reversed(frames):
        if _is_internal(summary.filename):
            continue
        result.append(
            StackFrame(file=summary.filename, line=summary.lineno, function=summary.name)
        )
        if len(result) >= limit:
            break
    return tuple(result)
