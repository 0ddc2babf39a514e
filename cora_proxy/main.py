"""
FastAPI Proxy Application Factory
=================================

Entry point for the Cora mTLS proxy, which sits between internal services
and the Cora banking API.

Architecture:
    Internal service → Proxy (this service, x-proxy-secret) → Cora API (mTLS)

Routers:
    - /health       : Health check endpoint (no authentication)
    - /oauth/token  : Client-credentials token issuance
    - /invoices, /businesses/*, /cora/transfers : Named shortcuts
    - /proxy/*      : Generic passthrough to any Cora path

Environment Variables:
    - CORA_CERT_BASE64: Base64-encoded PEM client certificate (required)
    - CORA_KEY_BASE64: Base64-encoded PEM private key (required)
    - PROXY_SECRET: Shared secret callers send as x-proxy-secret (required)
    - PORT: Listening port (default: 3001)
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    cora-proxy
    python -m cora_proxy.main

    With uvicorn directly:
        uvicorn cora_proxy.main:create_app --factory --host 0.0.0.0 --port 3001
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from . import __version__
from .config import Settings, get_settings
from .credentials import CredentialSet, load_credentials
from .errors import ConfigurationError, ProxyError
from .models import HealthResponse
from .proxy import UpstreamForwarder, proxy_router

logger = logging.getLogger("cora_proxy.main")


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup logs the upstream configuration (never the credentials);
    shutdown closes the pooled upstream connections.
    """
    settings: Settings = app.state.settings
    setup_logging(settings.LOG_LEVEL)

    logger.info(
        "Starting Cora proxy",
        extra={
            "service": settings.SERVICE_NAME,
            "version": __version__,
            "stage_host": settings.CORA_STAGE_HOST,
            "production_host": settings.CORA_PRODUCTION_HOST,
            "port": settings.PORT,
        }
    )

    yield

    logger.info("Shutting down Cora proxy")
    await app.state.forwarder.aclose()
    logger.info("Closed upstream connections")


def create_app(
    settings: Optional[Settings] = None,
    credentials: Optional[CredentialSet] = None,
    forwarder: Optional[UpstreamForwarder] = None,
) -> FastAPI:
    """
    Application factory function.

    Credentials are decoded and the TLS context is built here, before the
    server accepts anything, so bad credential material stops the process.

    Args:
        settings: Settings to use (loaded from the environment if omitted)
        credentials: Pre-built CredentialSet (decoded from settings if omitted)
        forwarder: Pre-built UpstreamForwarder (built from credentials if omitted)

    Returns:
        FastAPI: Configured application instance

    Raises:
        ConfigurationError: If credential material is missing or unusable
    """
    if settings is None:
        settings = get_settings()
    if credentials is None:
        credentials = load_credentials(settings)
    if forwarder is None:
        forwarder = UpstreamForwarder.from_credentials(credentials, settings)

    app = FastAPI(
        title="Cora mTLS Proxy",
        description="Credential-gated mTLS forwarding proxy for the Cora API",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    app.state.settings = settings
    app.state.credentials = credentials
    app.state.forwarder = forwarder

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health check endpoint
    @app.get("/health", tags=["System"], response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Liveness probe; makes no upstream call and needs no secret."""
        return HealthResponse(service=settings.SERVICE_NAME)

    app.include_router(proxy_router)

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
        """Turn proxy errors into {"error": message} responses."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.message},
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Logs the error and returns the same {"error": ...} shape as
        transport failures.
        """
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        return JSONResponse(
            status_code=500,
            content={"error": str(exc) or "Internal server error"},
        )

    return app


def run() -> None:
    """
    Console entry point: validate configuration, then serve with uvicorn.

    Exits with status 1 when configuration is invalid, without binding
    the port.
    """
    try:
        settings = get_settings()
        setup_logging(settings.LOG_LEVEL)
        app = create_app(settings)
    except (ConfigurationError, ValidationError) as e:
        setup_logging()
        logger.critical(f"Refusing to start: {e}")
        sys.exit(1)

    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
