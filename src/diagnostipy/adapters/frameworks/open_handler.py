"""Framework-independent open handler.

The open handler lets a client list stored request reports (``op=find``),
reopen one of them (``op=get``) or wipe the storage (``op=clear``).
"""

import logging
from typing import Any

from diagnostipy.adapters.frameworks.query_params import (
    _parse_filter_params,
    _parse_id_param,
    _parse_max_param,
    _parse_offset_param,
    _parse_op_param,
)
from diagnostipy.core.ports import DebugStoragePort

logger = logging.getLogger(__name__)

CLEAR_METHODS = frozenset({"POST", "DELETE"})


async def handle_open_request(
    storage: DebugStoragePort,
    params: dict[str, list[str]],
    method: str = "GET",
) -> tuple[int, dict[str, Any] | list[dict[str, Any]]]:
    """Dispatch an open handler request.

    Args:
        storage: Storage adapter holding the reports.
        params: Parsed query string parameters.
        method: HTTP method of the request. ``op=clear`` is only accepted
            with POST or DELETE.

    Returns:
        Tuple of HTTP status code and JSON-serializable body.
    """
    op = _parse_op_param(params)
    if op is None:
        return 400, {"error": "Unknown operation"}

    if op == "find":
        return 200, await storage.find(
            _parse_filter_params(params),
            max_items=_parse_max_param(params),
            offset=_parse_offset_param(params),
        )

    if op == "get":
        request_id = _parse_id_param(params)
        if request_id is None:
            return 400, {"error": "Missing 'id' parameter"}
        data = await storage.get(request_id)
        if data is None:
            return 404, {"error": f"No report stored for id {request_id!r}"}
        return 200, data

    if method.upper() not in CLEAR_METHODS:
        return 405, {"error": "op=clear requires POST or DELETE"}
    await storage.clear()
    logger.info("Cleared stored debug reports")
    return 200, {"cleared": True}
