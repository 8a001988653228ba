"""FastAPI adapter for the debug open handler."""

from collections.abc import Callable, Iterable

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from diagnostipy.adapters.frameworks.open_handler import handle_open_request
from diagnostipy.adapters.frameworks.query_params import parse_query_string
from diagnostipy.core.config import DebugConfig, is_authorized
from diagnostipy.core.ports import DebugStoragePort


def create_debug_router(
    storage: DebugStoragePort,
    config: DebugConfig,
    user_groups: Callable[[Request], Iterable[str]] | None = None,
    path: str = "/_debug/open",
) -> APIRouter:
    """Create a FastAPI router serving the open handler.

    Args:
        storage: Storage adapter implementing DebugStoragePort.
        config: Diagnostics settings; ``filter_groups`` restricts access.
        user_groups: Returns the groups of the requesting user.
        path: Route of the open handler.

    Returns:
        APIRouter with the open handler endpoint configured.
    """
    router = APIRouter()

    @router.api_route(path, methods=["GET", "POST", "DELETE"])
    async def open_handler(request: Request) -> JSONResponse:
        """Find, get or clear stored request reports.

        Query parameters: ``op`` (find, get, clear), ``id``, ``max``,
        ``offset`` and ``filter[<info key>]``. Clearing needs POST or DELETE.
        """
        groups = user_groups(request) if user_groups is not None else ()
        if not is_authorized(config, groups):
            return JSONResponse(content={"error": "Forbidden"}, status_code=403)
        params = parse_query_string(request.url.query)
        status, body = await handle_open_request(storage, params, request.method)
        return JSONResponse(content=body, status_code=status)

    return router
