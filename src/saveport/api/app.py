"""
FastAPI Application Factory & Configuration.

Milestone
---------
M4 | Workflows & Surfaces
Step 4.3 | HTTP API

This module initializes the FastAPI application instance. It is responsible for:
1.  **Middleware Setup**: CORS so a browser front-end can call the API.
2.  **Exception Handling**: Domain errors become structured JSON with a
    mapped status code; anything else is a structured 500.
3.  **Routing**: Mounting the saves router and the health probe.
4.  **Lifecycle**: Opening the store session and creating the host bridge
    and status reporter on startup.

The ``HostBridge`` created here starts unresolved. A host runtime that
embeds the API resolves it with its filesystem-sync hook; until then
imports simply skip the sync.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from saveport import __version__
from saveport.api.routers import saves
from saveport.api.schemas import ErrorResponse, HealthResponse
from saveport.core.errors import SavePortError
from saveport.core.settings import get_logger
from saveport.host.runtime import HostBridge
from saveport.host.status import LogStatusReporter
from saveport.store.session import get_session

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    ASGI Lifespan context manager.

    - **Startup**: open the store session; a failure is logged and left on the
      session so ``/health`` can report it.
    - **Shutdown**: close the store connection.
    """
    logger.info("Starting up...")
    session = get_session()
    app.state.reporter = LogStatusReporter("saveport.api.status")
    app.state.bridge = HostBridge(session)

    try:
        await session.open()
    except SavePortError as exc:
        logger.error("Store unavailable at startup: %s", exc)

    yield

    logger.info("Shutting down...")
    session.close()


def create_app() -> FastAPI:
    """
    Construct and configure the SavePort FastAPI application.

    Returns
    -------
    FastAPI
        The configured ASGI application ready to be served by Uvicorn.
    """
    app = FastAPI(
        title="SavePort API",
        description="Export and import game save data as portable JSON archives",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "X-Record-Count"],
    )

    @app.exception_handler(SavePortError)
    async def domain_error_handler(request: Request, exc: SavePortError) -> JSONResponse:
        """Map domain errors to 4xx/5xx with their ``error_code``."""
        body = ErrorResponse(error=exc.error_code, detail=exc.message, context=exc.context)
        return JSONResponse(
            status_code=saves.http_status_for(exc.error_code),
            content=body.model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all handler to ensure unhandled exceptions return structured JSON."""
        logger.exception("Unhandled error on %s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal Server Error",
                "detail": str(exc),
                "path": request.url.path,
            },
        )

    app.include_router(saves.router)

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health_check() -> HealthResponse:
        """Liveness probe plus the store session state."""
        return HealthResponse(version=__version__, store=get_session().state)

    return app


__all__ = ["create_app"]
