"""Shared query parameter parsing utilities for framework adapters.

This module parses the open handler parameters (``op``, ``id``, ``max``,
``offset`` and ``filter[...]``) from query strings, so the plain ASGI app and
the FastAPI router behave the same way.
"""

from urllib.parse import parse_qs

VALID_OPS = {"find", "get", "clear"}

DEFAULT_MAX_ITEMS = 20
MAX_ITEMS_LIMIT = 500


def parse_query_string(query_string: bytes | str) -> dict[str, list[str]]:
    """Parse a raw query string into a parameter dictionary.

    Args:
        query_string: Raw query string, bytes as found in an ASGI scope.

    Returns:
        Dictionary mapping parameter names to lists of values.
    """
    if isinstance(query_string, bytes):
        query_string = query_string.decode(errors="replace")
    return parse_qs(query_string)


def _first(params: dict[str, list[str]], name: str) -> str | None:
    values = params.get(name)
    return values[0] if values else None


def _parse_op_param(params: dict[str, list[str]]) -> str | None:
    """Parse the 'op' parameter.

    Returns:
        Lowercased op, "find" when missing, or None when unknown.
    """
    op = (_first(params, "op") or "find").strip().lower()
    return op if op in VALID_OPS else None


def _parse_id_param(params: dict[str, list[str]]) -> str | None:
    value = _first(params, "id")
    if value is None:
        return None
    value = value.strip()
    return value or None


def _parse_int_param(
    params: dict[str, list[str]], name: str, default: int, maximum: int | None = None
) -> int:
    """Parse a non-negative integer parameter.

    Invalid and negative values fall back to ``default``; values above
    ``maximum`` are clamped.
    """
    raw = _first(params, name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if value < 0:
        return default
    if maximum is not None:
        value = min(value, maximum)
    return value


def _parse_max_param(params: dict[str, list[str]]) -> int:
    return _parse_int_param(params, "max", DEFAULT_MAX_ITEMS, MAX_ITEMS_LIMIT)


def _parse_offset_param(params: dict[str, list[str]]) -> int:
    return _parse_int_param(params, "offset", 0)


def _parse_filter_params(params: dict[str, list[str]]) -> dict[str, str]:
    """Collect ``filter[key]=value`` parameters into a dictionary."""
    filters: dict[str, str] = {}
    for name, values in params.items():
        if name.startswith("filter[") and name.endswith("]") and values:
            key = name[len("filter[") : -1]
            if key:
                filters[key] = values[0]
    return filters
