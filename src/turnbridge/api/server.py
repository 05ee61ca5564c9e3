"""FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from turnbridge import __version__
from turnbridge.api.routes import health_router, router
from turnbridge.app import BridgeRuntime, build_runtime
from turnbridge.config import Settings, load_settings
from turnbridge.errors import (
    BridgeError,
    ConfigurationError,
    EngineConnectionError,
    NotConnectedError,
    RemoteError,
    SendFailure,
    SessionNotFoundError,
    TurnInProgressError,
)

_STATUS_BY_ERROR: tuple[tuple[type[BridgeError], int], ...] = (
    (SessionNotFoundError, status.HTTP_404_NOT_FOUND),
    (TurnInProgressError, status.HTTP_409_CONFLICT),
    (ConfigurationError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (EngineConnectionError, status.HTTP_502_BAD_GATEWAY),
    (RemoteError, status.HTTP_502_BAD_GATEWAY),
    (SendFailure, status.HTTP_502_BAD_GATEWAY),
    (NotConnectedError, status.HTTP_502_BAD_GATEWAY),
)


def status_for_error(exc: BridgeError) -> int:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def handle_bridge_error(request: Request, exc: BridgeError) -> JSONResponse:
    code = status_for_error(exc)
    message = "Chat session not found" if isinstance(exc, SessionNotFoundError) else str(exc)
    if code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("api.error path={} status={} error={}", request.url.path, code, exc)
    else:
        logger.info("api.rejected path={} status={} error={}", request.url.path, code, exc)
    return JSONResponse(status_code=code, content={"error": message})


def create_app(runtime: BridgeRuntime | None = None, settings: Settings | None = None) -> FastAPI:
    """Create the HTTP app; a runtime is built on startup unless one is given."""
    settings = settings or (runtime.settings if runtime is not None else load_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if getattr(app.state, "runtime", None) is None:
            app.state.runtime = build_runtime(settings)
        if not settings.engine_configured:
            logger.warning("api.engine.not_configured chat routes will fail until credentials are set")
        logger.info("api.start version={}", __version__)
        try:
            yield
        finally:
            await app.state.runtime.aclose()
            logger.info("api.stop")

    app = FastAPI(title="turnbridge", version=__version__, lifespan=lifespan)
    app.state.runtime = runtime
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(BridgeError, handle_bridge_error)  # type: ignore[arg-type]
    app.include_router(router)
    app.include_router(health_router)
    return app
