"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from aggzap import __version__
from aggzap.config import get_settings
from aggzap.errors import MissingContract, UnknownMessage, ZapError
from aggzap.services.deployment import ProtocolDeployment, deploy_protocol

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    owned = app.state.deployment is None
    if owned:
        app.state.deployment = await deploy_protocol(get_settings())
        logger.info("Local protocol deployment ready")
    yield
    # Shutdown
    if owned:
        await app.state.deployment.close()
        app.state.deployment = None


async def zap_error_handler(request: Request, exc: ZapError) -> JSONResponse:
    """Map protocol errors to HTTP responses."""
    status_code = 404 if isinstance(exc, (UnknownMessage, MissingContract)) else 400
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


def create_app(deployment: Optional[ProtocolDeployment] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        deployment: Protocol to serve. Without one, a local deployment is
            created from settings at startup.
    """
    settings = get_settings()

    app = FastAPI(
        title="AggZap API",
        description="Cross-chain zap protocol: fee quotes, pool state and bridge relaying",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.deployment = deployment

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ZapError, zap_error_handler)

    # Register routes
    from aggzap.api.routes import health, zaps

    app.include_router(health.router, tags=["Health"])
    app.include_router(zaps.router, prefix="/api/v1", tags=["Zaps"])

    return app


# Default app instance
app = create_app()
