"""FastAPI application factory.

Lifespan
--------
On startup the app builds one :class:`~citescrape.service.ContentService`
(shared across all requests via ``request.app.state.service``) unless one
was injected through :func:`create_app`.  On shutdown it drains pending
history writes and closes the HTTP client.

Routers
-------
    /tools     scrape, search and research tools
    /history   recent operations from the local history log
    /health    gate and cache counters

Errors
------
Every :class:`~citescrape.errors.CiteScrapeError` is returned as
``{"error": {"kind", "reason", "message"}}`` with status 502 when the
failure is transient and 422 otherwise; request validation errors are 400.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from citescrape.api.routers import history as history_router
from citescrape.api.routers import tools as tools_router
from citescrape.errors import CiteScrapeError
from citescrape.service import ContentService

logger = logging.getLogger(__name__)


def error_status(exc: CiteScrapeError) -> int:
    return 502 if exc.retryable else 422


def create_app(service: Optional[ContentService] = None) -> FastAPI:
    """Return a fully-configured FastAPI application instance.

    Args:
        service: Use this service instead of building one from settings.
            The caller keeps ownership and is responsible for closing it.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = service is None
        app.state.service = service or ContentService.from_settings()
        try:
            yield
        finally:
            if owned:
                await app.state.service.aclose()

    app = FastAPI(
        title="citescrape API",
        description=(
            "Fetches web pages and returns clean, bounded, citation-annotated "
            "content. Also exposes SearXNG search and a search-then-scrape "
            "research tool."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    # Allow browser frontends on any origin (tighten for production).
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CiteScrapeError)
    async def citescrape_error_handler(request: Request, exc: CiteScrapeError) -> JSONResponse:
        status = error_status(exc)
        logger.warning("%s %s failed (%d): %s", request.method, request.url.path, status, exc.message)
        return JSONResponse(status_code=status, content={"error": exc.to_dict()})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        detail: Any = exc.errors()
        return JSONResponse(
            status_code=400,
            content={
                "error": {
                    "kind": "validation",
                    "reason": "invalid_request",
                    "message": "; ".join(
                        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}"
                        for err in detail
                    ),
                }
            },
        )

    @app.get("/health", tags=["health"])
    async def health(request: Request) -> dict[str, Any]:
        svc: ContentService = request.app.state.service
        return {
            "status": "ok",
            "gate": {
                "limit": svc.gate.limit,
                "in_flight": svc.gate.in_flight,
                "peak": svc.gate.peak,
            },
            "cache": {
                "scrape_entries": len(svc.scrape_cache),
                "search_entries": len(svc.search_cache),
            },
        }

    app.include_router(tools_router.router, prefix="/tools", tags=["tools"])
    app.include_router(history_router.router, prefix="/history", tags=["history"])

    return app


# Module-level instance used by uvicorn:
#   uvicorn citescrape.api.app:app --reload
app = create_app()
