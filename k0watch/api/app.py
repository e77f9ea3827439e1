"""FastAPI application factory for the k0watch status API.

Usage::

    from k0watch.api.app import create_app

    app = create_app(graph=graph, events=events, podlogs=podlogs)

The factory is used by both the production bootstrap (``k0watch.app``) and
unit tests.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from k0watch.api.routes import metrics_router, router
from k0watch.api.schemas import ErrorResponse

_log = structlog.get_logger(component="api.app")

_API_PREFIX = "/api/v1"


def create_app(graph: Any, events: Any, podlogs: Any) -> FastAPI:
    """Create the status API over the three watch managers.

    Args:
        graph:   GraphManager instance.
        events:  EventManager instance.
        podlogs: PodLogManager instance.

    Returns:
        Configured FastAPI application, ready to be served by uvicorn.
    """
    from k0watch import __version__

    app = FastAPI(
        title="k0watch",
        summary="Watcher lifecycle status for k0rdent resources",
        version=__version__,
        docs_url="/api/v1/docs",
        redoc_url=None,
        openapi_url="/api/v1/openapi.json",
    )

    app.state.graph = graph
    app.state.events = events
    app.state.podlogs = podlogs
    app.state.managers = [m for m in (graph, events, podlogs) if m is not None]

    app.include_router(router, prefix=_API_PREFIX)
    app.include_router(metrics_router)

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Catch-all for unhandled exceptions. Never exposes stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                detail="An unexpected error occurred.",
            ).model_dump(),
        )

    return app
