"""FastAPI application for previewhub.

Routes are organized into modules under previewhub/server/routes/:
- socket: workspace WebSocket at `/` and `/ws`
- files: file CRUD under /api/files
- execute: process launch under /api/execute
- preview: static preview under /preview
- misc: health, liveness
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from previewhub import __version__
from previewhub.foundation.config import HubConfig
from previewhub.foundation.errors import (
    HubError,
    InvalidArgument,
    NotFound,
    SpawnError,
    StorageError,
    invalid_value,
    missing_field,
)
from previewhub.server.hub import Hub
from previewhub.server.routes import (
    execute_router,
    files_router,
    misc_router,
    preview_router,
    socket_router,
)

logger = logging.getLogger(__name__)

_CROSS_ORIGIN_HEADERS = {
    "Cross-Origin-Resource-Policy": "cross-origin",
    "Cross-Origin-Embedder-Policy": "credentialless",
    "Cross-Origin-Opener-Policy": "same-origin",
}


def _status_for(error: HubError) -> int:
    match error:
        case NotFound():
            return 404
        case InvalidArgument():
            return 400
        case StorageError() | SpawnError():
            return 500
        case _:
            return 500


async def _hub_error_handler(request: Request, exc: HubError) -> JSONResponse:
    status = _status_for(exc)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc.cause)
    body = exc.to_dict()
    if process_id := exc.context.get("process_id"):
        body["processId"] = process_id
    return JSONResponse(body, status_code=status)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report request body/query problems as 400 with the first offending field."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = tuple(first.get("loc", ()))
    # Only the leading segment names the request part; a field may be called "path"
    if loc and loc[0] in ("body", "query", "path"):
        loc = loc[1:]
    field = ".".join(str(p) for p in loc)
    if first.get("type") == "missing":
        error = missing_field(field or "body")
    else:
        error = invalid_value(field or "body", first.get("msg", "invalid request"))
    return JSONResponse(error.to_dict(), status_code=400)


def create_app(config: HubConfig | None = None) -> FastAPI:
    """Create FastAPI application.

    Args:
        config: Server configuration. Defaults to built-in defaults.

    Returns:
        Configured FastAPI application with its Hub on `app.state.hub`.
    """
    config = config or HubConfig()
    hub = Hub.build(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "previewhub %s serving workspaces from %s",
            __version__,
            config.storage.data_root,
        )
        try:
            yield
        finally:
            await hub.shutdown()

    app = FastAPI(
        title="previewhub",
        description="Live shared shell and preview sessions",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.hub = hub

    app.include_router(socket_router)
    app.include_router(files_router)
    app.include_router(execute_router)
    app.include_router(preview_router)
    app.include_router(misc_router)

    app.add_exception_handler(HubError, _hub_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)

    @app.middleware("http")
    async def cross_origin_headers(request: Request, call_next):
        """Allow previews to be embedded cross-origin."""
        response = await call_next(request)
        response.headers.update(_CROSS_ORIGIN_HEADERS)
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.server.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    return app
