"""
Dashboard API.

FastAPI-based REST interface exposing the client session to a dashboard.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ushield import __version__
from ushield.api.routes import deps, get_session, router
from ushield.api.schemas import (
    DeviceListResponse,
    DeviceResponse,
    DeviceStatistics,
    ErrorResponse,
    HealthCheck,
    OperationStatusSchema,
    StateResponse,
    TrustedPairResponse,
)
from ushield.config import UShieldConfig
from ushield.gateway.http import create_http_transport
from ushield.session import Session

logger = logging.getLogger(__name__)


def create_app(
    session: Session | None = None,
    config: UShieldConfig | None = None,
    debug: bool = False,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        session: Session to serve. When None, one is built at startup from
            ``config`` using the HTTP transport.
        config: Client configuration (defaults when None)
        debug: Include exception details in 500 responses

    Returns:
        Configured FastAPI application
    """
    if config is None:
        config = UShieldConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = []
        active = session
        if active is None:
            gateway, events = create_http_transport(config.gateway)
            owned = [gateway, events]
            active = Session(gateway, events, event_name=config.gateway.event_name)

        logger.info("Starting UShield dashboard API")
        deps.session = active
        await active.start()
        try:
            yield
        finally:
            logger.info("Shutting down UShield dashboard API")
            await active.deactivate()
            deps.session = None
            for transport in owned:
                await transport.close()

    app = FastAPI(
        title="UShield API",
        description="Dashboard API for the UShield USB port security client",
        version=__version__,
        debug=debug,
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.error("Unhandled exception: %s", exc, exc_info=True)
        body = ErrorResponse(
            error="Internal server error",
            detail=str(exc) if debug else None,
        )
        return JSONResponse(status_code=500, content=body.model_dump())

    return app


__all__ = [
    "create_app",
    "deps",
    "get_session",
    "router",
    "DeviceListResponse",
    "DeviceResponse",
    "DeviceStatistics",
    "ErrorResponse",
    "HealthCheck",
    "OperationStatusSchema",
    "StateResponse",
    "TrustedPairResponse",
]
