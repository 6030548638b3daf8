# kavach/main.py
# ------------------------------------------------------------
# FastAPI entrypoint for the Rail Kavach backend.
#
# Responsibilities:
# - App initialization & middleware
# - Error mapping for upstream / inbound failures
# - Route registration
# - Startup / shutdown of the polling loops (via Runtime)
# ------------------------------------------------------------

import logging
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, settings as default_settings
from .errors import (
    CameraNotReadyError,
    MalformedResponseError,
    MissingParameterError,
    TransportError,
    UpstreamStatusError,
)
from .routes import admin, alerts, detection, health, proxies, stream, trains
from .runtime import build_runtime

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the application and its Runtime.

    transport replaces the network for every outbound client
    (tests pass an httpx.MockTransport).
    """
    settings = settings or default_settings
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # --------------------------------------------------------
    # FastAPI application instance
    # --------------------------------------------------------
    app = FastAPI(
        title="Rail Kavach API",
        version="0.1.0",
        description="Train safety dashboard backend: fleet, detections and alerts",
    )
    app.state.runtime = build_runtime(settings, transport=transport)

    # --------------------------------------------------------
    # CORS configuration
    # Allows the dashboard frontend to connect
    # --------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --------------------------------------------------------
    # Error mapping
    # --------------------------------------------------------
    @app.exception_handler(MissingParameterError)
    async def missing_parameter_handler(request: Request, exc: MissingParameterError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(UpstreamStatusError)
    async def upstream_status_handler(request: Request, exc: UpstreamStatusError):
        logger.warning("%s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc), "details": exc.details},
        )

    @app.exception_handler(TransportError)
    @app.exception_handler(MalformedResponseError)
    async def bad_gateway_handler(request: Request, exc: Exception):
        logger.warning("%s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=502, content={"error": str(exc)})

    @app.exception_handler(CameraNotReadyError)
    async def camera_not_ready_handler(request: Request, exc: CameraNotReadyError):
        return JSONResponse(status_code=409, content={"error": str(exc)})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url)
        return JSONResponse(
            status_code=500,
            content={"ok": False, "error": str(exc), "path": str(request.url)},
        )

    # --------------------------------------------------------
    # API routes
    # --------------------------------------------------------
    app.include_router(trains.router)
    app.include_router(alerts.router)
    app.include_router(detection.router)
    app.include_router(proxies.router)
    app.include_router(stream.router)
    app.include_router(health.router)
    app.include_router(admin.router)

    # --------------------------------------------------------
    # Lifecycle hooks
    # --------------------------------------------------------
    @app.on_event("startup")
    async def startup():
        """
        Start the polling loops enabled in settings.
        The initial fleet was bootstrapped by build_runtime.
        """
        app.state.runtime.start()

    @app.on_event("shutdown")
    async def shutdown():
        await app.state.runtime.close()

    return app


app = create_app()
