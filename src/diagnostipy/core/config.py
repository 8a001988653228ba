"""Configuration for the diagnostics console.

All toggles live on a single frozen ``DebugConfig`` which is validated when
constructed. ``DebugConfig.from_mapping`` accepts the plugin-style parameter
names (``log-executed-sql``, ``strip-first`` ...) as well as field names.
"""

import re
import sysconfig
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, fields
from typing import Any


def _default_core_paths() -> tuple[str, ...]:
    paths = sysconfig.get_paths()
    return tuple(
        dict.fromkeys(
            p for p in (paths.get("stdlib"), paths.get("purelib"), paths.get("platlib")) if p
        )
    )


@dataclass(frozen=True)
class LogPolicy:
    """Which log categories are shown in the console."""

    show_deprecated: bool = False
    show_deprecated_core: bool = False
    show_sql: bool = False
    show_everything: bool = False


@dataclass(frozen=True)
class DebugConfig:
    """Validated diagnostics settings.

    Attributes:
        debug: Collect request diagnostics at all.
        debug_lang: Collect language file and untranslated string diagnostics.
        queries: Monitor executed SQL.
        query_profiles: Attach per-query profile rows where the engine supports it.
        query_explains: Attach EXPLAIN rows to SELECT statements.
        query_types: Summarize statements by type.
        logs: Collect log messages.
        log_executed_sql: Show ``databasequery`` log entries.
        log_deprecated: Show deprecation entries from application code.
        log_deprecated_core: Show deprecation entries raised from core paths.
        log_everything: Show entries of every other category.
        memory: Include the memory collector.
        request: Include the request collector.
        session: Include the session collector.
        profile: Include the profiler marks collector.
        strip_first: Drop the first word when guessing untranslated strings.
        strip_prefix: Regex removed from the start of guessed strings.
        strip_suffix: Regex removed from the end of guessed strings.
        filter_groups: Only users in one of these groups may see diagnostics.
            Empty means everybody may.
        core_paths: Path prefixes treated as core library code.
        table_prefix: Table name prefix highlighted in rendered SQL.
    """

    debug: bool = True
    debug_lang: bool = False
    queries: bool = True
    query_profiles: bool = False
    query_explains: bool = False
    query_types: bool = True
    logs: bool = False
    log_executed_sql: bool = False
    log_deprecated: bool = False
    log_deprecated_core: bool = False
    log_everything: bool = False
    memory: bool = True
    request: bool = True
    session: bool = True
    profile: bool = True
    strip_first: bool = True
    strip_prefix: str = ""
    strip_suffix: str = ""
    filter_groups: tuple[str, ...] = ()
    core_paths: tuple[str, ...] = field(default_factory=_default_core_paths)
    table_prefix: str = ""

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if f.type is bool and not isinstance(value, bool):
                raise TypeError(f"{f.name} must be a bool, got {type(value).__name__}")
            if f.type is str and not isinstance(value, str):
                raise TypeError(f"{f.name} must be a str, got {type(value).__name__}")
        for name in ("strip_prefix", "strip_suffix"):
            pattern = getattr(self, name)
            if pattern:
                try:
                    re.compile(pattern)
                except re.error as e:
                    raise ValueError(f"{name} is not a valid pattern: {e}") from e
        # Normalize sequences so the config stays hashable
        object.__setattr__(self, "filter_groups", _as_tuple("filter_groups", self.filter_groups))
        object.__setattr__(self, "core_paths", _as_tuple("core_paths", self.core_paths))

    @classmethod
    def from_mapping(cls, params: Mapping[str, Any]) -> "DebugConfig":
        """Build a config from loosely typed parameters.

        Keys may use dashes or underscores. Integer flags (0/1) and the
        strings "0", "1", "true", "false" are accepted for bool fields.
        Unknown keys raise ValueError.

        Args:
            params: Parameter name to value.

        Returns:
            A validated DebugConfig.
        """
        known = {f.name: f for f in fields(cls)}
        values: dict[str, Any] = {}
        for raw_key, raw_value in params.items():
            key = raw_key.replace("-", "_")
            if key not in known:
                raise ValueError(f"Unknown debug option: {raw_key!r}")
            f = known[key]
            if f.type is bool:
                values[key] = _coerce_bool(raw_key, raw_value)
            elif f.type is str:
                values[key] = "" if raw_value is None else str(raw_value)
            else:
                values[key] = raw_value
        return cls(**values)

    def log_policy(self) -> LogPolicy:
        return LogPolicy(
            show_deprecated=self.log_deprecated,
            show_deprecated_core=self.log_deprecated_core,
            show_sql=self.log_executed_sql,
            show_everything=self.log_everything,
        )


def is_authorized(config: DebugConfig, user_groups: Iterable[str]) -> bool:
    """Return True if a user in ``user_groups`` may see the diagnostics.

    Computed once per request by the caller and passed along, rather than
    memoized globally.
    """
    if not config.filter_groups:
        return True
    return bool(set(config.filter_groups) & {str(g) for g in user_groups})


def _coerce_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in ("0", "1", "true", "false"):
        return value.strip().lower() in ("1", "true")
    raise ValueError(f"{key} must be a boolean flag, got {value!r}")


def _as_tuple(name: str, value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,) if value else ()
    try:
        return tuple(str(v) for v in value)
    except TypeError as e:
        raise TypeError(f"{name} must be a sequence of strings") from e
