"""Core domain models for per-request diagnostics."""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any

# One row of an EXPLAIN (or profile) result. Columns vary by database engine.
ExplainRow = dict[str, Any]


class Priority(IntEnum):
    """Log priority, ordered from most to least severe."""

    EMERGENCY = 1
    ALERT = 2
    CRITICAL = 4
    ERROR = 8
    WARNING = 16
    NOTICE = 32
    INFO = 64
    DEBUG = 128

    @property
    def level(self) -> str:
        """Message level shown in the console ("error", "warning" or "info")."""
        if self <= Priority.ERROR:
            return "error"
        if self == Priority.WARNING:
            return "warning"
        return "info"


class LogCategory(Enum):
    """Known log categories. Anything else is ingested as OTHER."""

    LOG = "log"
    DEPRECATED = "deprecated"
    DEPRECATED_CORE = "deprecated-core"
    DEPRECATION_NOTES = "deprecation-notes"
    DATABASE_QUERY = "databasequery"
    OTHER = "other"

    @classmethod
    def parse(cls, raw: str) -> "LogCategory":
        """Map a raw category name onto a known category."""
        try:
            return cls(raw.strip().lower())
        except ValueError:
            return cls.OTHER


class QualityFlag(Enum):
    """Problems detected for a single query."""

    NO_INDEX = "no-index"
    FILESORT = "filesort"
    SLOW = "slow"
    SLOW_PHASE = "slow-phase"
    EXPLAIN_ERROR = "explain-error"


@dataclass(frozen=True)
class BoundParam:
    """A value bound to a prepared statement placeholder."""

    value: Any
    data_type: str = "str"


@dataclass(frozen=True)
class StackFrame:
    """A single call stack frame. Every field is optional."""

    file: str | None = None
    line: int | None = None
    function: str | None = None
    cls: str | None = None

    @property
    def location(self) -> str:
        """Return "file:line", or an empty string when the file is unknown."""
        if not self.file:
            return ""
        return f"{self.file}:{self.line if self.line is not None else ''}"


@dataclass(frozen=True)
class QueryRecord:
    """An executed SQL statement as logged by the query monitor.

    Attributes:
        text: The SQL text as sent to the database.
        start_time: perf_counter value when execution started (seconds).
        end_time: perf_counter value when execution finished (seconds).
        bound_params: Placeholder name to bound value.
        call_stack: Frames of the code that issued the query, innermost first.
        memory_before: Traced memory before execution, if known.
        memory_after: Traced memory after execution, if known.
    """

    text: str
    start_time: float
    end_time: float
    bound_params: dict[str, BoundParam] = field(default_factory=dict)
    call_stack: tuple[StackFrame, ...] = ()
    memory_before: int | None = None
    memory_after: int | None = None

    @property
    def duration(self) -> float:
        return max(self.end_time - self.start_time, 0.0)

    @property
    def duration_ms(self) -> float:
        return self.duration * 1000


@dataclass(frozen=True)
class LogEntry:
    """A log message captured during a request.

    Attributes:
        timestamp: Unix timestamp in seconds.
        priority: Severity of the message.
        category: Known category the entry belongs to.
        message: The log message.
        call_stack: Frames of the code that logged the message, innermost first.
        raw_category: Category name as produced by the logging source.
    """

    timestamp: float
    priority: Priority
    category: LogCategory
    message: str
    call_stack: tuple[StackFrame, ...] = ()
    raw_category: str = ""

    @property
    def category_name(self) -> str:
        if self.category is LogCategory.OTHER and self.raw_category:
            return self.raw_category
        return self.category.value


@dataclass(frozen=True)
class DuplicateGroup:
    """Indices of queries sharing the same normalized SQL text."""

    normalized_text: str
    indices: tuple[int, ...]

    @property
    def size(self) -> int:
        return len(self.indices)


@dataclass(frozen=True)
class QualityFlags:
    """Flags raised for a query plus its explain rows prepared for display."""

    flags: frozenset[QualityFlag] = frozenset()
    display: tuple[dict[str, str], ...] = ()

    @property
    def has_warnings(self) -> bool:
        return bool(self.flags)

    def __contains__(self, flag: object) -> bool:
        return flag in self.flags


@dataclass(frozen=True)
class TimingBar:
    """Horizontal position of one query on the request timeline (percent)."""

    prefix_percent: float
    width_percent: float
    css_class: str = ""
    tip: str = ""


@dataclass(frozen=True)
class QueryTypeSummary:
    """Statement counts keyed by the statement text up to its WHERE clause."""

    select: dict[str, int] = field(default_factory=dict)
    other: dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.select) + len(self.other)


@dataclass(frozen=True)
class QueryReport:
    """Everything known about a single query of the request."""

    index: int
    record: QueryRecord
    gap_ms: float = 0.0
    explain: tuple[ExplainRow, ...] = ()
    profile: tuple[ExplainRow, ...] = ()
    quality: QualityFlags = field(default_factory=QualityFlags)
    bar: TimingBar | None = None
    duplicate_of: tuple[int, ...] = ()


@dataclass(frozen=True)
class AggregationResult:
    """Aggregated query diagnostics for one request."""

    queries: tuple[QueryReport, ...] = ()
    total_count: int = 0
    total_time_ms: float = 0.0
    duplicates: tuple[DuplicateGroup, ...] = ()
    duplicate_count: int = 0
    query_types: QueryTypeSummary | None = None
    time_class: str = "success"
    profile_notice: str | None = None


@dataclass(frozen=True)
class Message:
    """A log entry prepared for one of the console's message collectors."""

    text: str
    level: str
    category: str
    caller: str = ""


@dataclass(frozen=True)
class Mark:
    """A named point in time recorded by the profiler."""

    label: str
    time: float
    memory: int | None = None


@dataclass(frozen=True)
class MemoryInfo:
    """Traced memory at the end of the request, in bytes."""

    current: int
    peak: int
