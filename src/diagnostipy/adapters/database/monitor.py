"""Query monitor recording executed SQL with timings."""

import threading
import time
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any

from diagnostipy.adapters.stack import capture_stack
from diagnostipy.core.models import BoundParam, QueryRecord
from diagnostipy.core.profiler import traced_memory


def bind_params(params: Sequence[Any] | Mapping[str, Any] | None) -> dict[str, BoundParam]:
    """Convert DB-API parameters to named BoundParams.

    Positional parameters are keyed "1", "2", ... in order.
    """
    if not params:
        return {}
    if isinstance(params, Mapping):
        items = [(str(k), v) for k, v in params.items()]
    else:
        items = [(str(i + 1), v) for i, v in enumerate(params)]
    return {k: BoundParam(value=v, data_type=type(v).__name__) for k, v in items}


class QueryMonitor:
    """Collects QueryRecords in execution order.

    Once stopped, further queries are executed but not recorded, so the
    analysis queries run at the end of a request stay out of the log.
    """

    def __init__(self, capture_call_stack: bool = True) -> None:
        self._records: list[QueryRecord] = []
        self._lock = threading.Lock()
        self._active = True
        self.capture_call_stack = capture_call_stack

    @property
    def active(self) -> bool:
        return self._active

    @property
    def records(self) -> tuple[QueryRecord, ...]:
        with self._lock:
            return tuple(self._records)

    def stop(self) -> None:
        self._active = False

    def record(self, query: QueryRecord) -> None:
        if not self._active:
            return
        with self._lock:
            self._records.append(query)

    @contextmanager
    def track(
        self,
        sql: str,
        params: Sequence[Any] | Mapping[str, Any] | None = None,
    ) -> Iterator[None]:
        """Time the statement executed inside the block and record it.

        Statements that raise are recorded too, with the time until failure.
        """
        if not self._active:
            yield
            return
        call_stack = capture_stack() if self.capture_call_stack else ()
        before = traced_memory()
        start = time.perf_counter()
        try:
            yield
        finally:
            end = time.perf_counter()
            after = traced_memory()
            self.record(
                QueryRecord(
                    text=sql,
                    start_time=start,
                    end_time=end,
                    bound_params=bind_params(params),
                    call_stack=call_stack,
                    memory_before=before.current if before else None,
                    memory_after=after.current if after else None,
                )
            )
