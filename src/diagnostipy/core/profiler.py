"""Lightweight request profiler recording named time/memory marks."""

import time
import tracemalloc

from diagnostipy.core.models import Mark, MemoryInfo


def traced_memory() -> MemoryInfo | None:
    """Current and peak traced memory, or None when tracemalloc is not tracing."""
    if not tracemalloc.is_tracing():
        return None
    current, peak = tracemalloc.get_traced_memory()
    return MemoryInfo(current=current, peak=peak)


class Profiler:
    """Collects marks for one request.

    Example:
        ```python
        profiler = Profiler()
        profiler.mark("afterRoute")
        profiler.mark("afterRender")
        profiler.total_ms
        ```
    """

    def __init__(self) -> None:
        self._marks: list[Mark] = []

    def mark(self, label: str) -> Mark:
        memory = traced_memory()
        mark = Mark(
            label=label,
            time=time.perf_counter(),
            memory=memory.current if memory else None,
        )
        self._marks.append(mark)
        return mark

    @property
    def marks(self) -> tuple[Mark, ...]:
        return tuple(self._marks)

    @property
    def total_ms(self) -> float:
        return total_ms(self._marks)


def total_ms(marks: tuple[Mark, ...] | list[Mark]) -> float:
    """Elapsed milliseconds between the first and the last mark."""
    if len(marks) < 2:
        return 0.0
    return (marks[-1].time - marks[0].time) * 1000


def mark_table(marks: tuple[Mark, ...] | list[Mark]) -> list[dict[str, float | str | None]]:
    """Rows of label, offset from the first mark and delta from the previous mark (ms)."""
    rows: list[dict[str, float | str | None]] = []
    for i, mark in enumerate(marks):
        rows.append(
            {
                "label": mark.label,
                "offset_ms": (mark.time - marks[0].time) * 1000,
                "delta_ms": (mark.time - marks[i - 1].time) * 1000 if i else 0.0,
                "memory": mark.memory,
            }
        )
    return rows
