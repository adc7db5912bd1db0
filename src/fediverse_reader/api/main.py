"""FastAPI application factory and entry point.

Creates the application instance, registers middleware and mounts the
federation router.  The shared ``httpx.AsyncClient`` and the federation
components built around it live for the lifetime of the application (see
:func:`lifespan`).

Usage::

    # Development server (from project root)
    uvicorn fediverse_reader.api.main:app --reload
"""

from __future__ import annotations

import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Callable

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from fediverse_reader.api.dependencies import build_components, build_http_client
from fediverse_reader.config.settings import get_settings
from fediverse_reader.core.logging_config import configure_logging
from fediverse_reader.federation.router import router as federation_router

# INFO until create_app() knows the configured level.
configure_logging("INFO")

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Own the shared HTTP client and the components built on it.

    Components already present on ``app.state`` (installed by tests) are
    left alone.
    """
    settings = get_settings()
    client = None
    if getattr(application.state, "federation", None) is None:
        client = build_http_client(settings)
        application.state.federation = build_components(client, settings)

    logger.info(
        "application_startup",
        app_name=settings.app_name,
        debug=settings.debug,
        log_level=settings.log_level,
        search_configured=bool(settings.mastodon_access_token),
    )
    try:
        yield
    finally:
        if client is not None:
            await client.aclose()
            application.state.federation = None
        logger.info("application_shutdown")


def create_app() -> FastAPI:
    """Build and configure the FastAPI application.

    Tests call this directly to get an app whose settings come from the
    environment they prepared.

    Returns:
        A fully configured ``FastAPI`` instance.
    """
    settings = get_settings()

    configure_logging(settings.log_level)

    application = FastAPI(
        title=settings.app_name,
        description=(
            "Resolve fediverse posts, profiles and hashtags from their home "
            "servers, with an accurate explanation when that fails."
        ),
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
    )

    # ---- Middleware --------------------------------------------------------

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    # ---- Request logging ---------------------------------------------------

    @application.middleware("http")
    async def log_requests(request: Request, call_next: Callable) -> Response:
        """Bind a request ID for the duration of the call and log the outcome.

        A caller-supplied ``X-Request-ID`` is kept so traces can span a proxy.
        """
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        started = time.perf_counter()
        with structlog.contextvars.bound_contextvars(
            request_id=request_id, method=request.method, path=request.url.path
        ):
            try:
                response = await call_next(request)
            except Exception:
                logger.exception("request_failed")
                raise
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
            log = logger.warning if response.status_code >= 400 else logger.info
            log("request_complete", status_code=response.status_code, elapsed_ms=elapsed_ms)

        response.headers["X-Request-ID"] = request_id
        return response

    # ---- Routers -----------------------------------------------------------

    application.include_router(federation_router)

    return application


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

app = create_app()
"""The FastAPI application instance.

This is the ASGI callable passed to Uvicorn.
"""
