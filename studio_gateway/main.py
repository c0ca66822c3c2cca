"""
FastAPI Gateway Application Factory
===================================

This is the main entry point for the gateway that sits between the studio's
booking front-end and its tenant backend / auth provider.

Architecture:
    Booking Front-end → Gateway (this service) → Tenant Backend
                                               → Auth Provider (Supabase)

Routers:
    - /api/auth/*          : Confirmation and password reset link generation
    - /api/organization/*  : Studio profile and bank details
    - /api/*               : Proxied tenant backend routes
    - /health              : Health check endpoint

Running the Service:
    Development:
        uvicorn studio_gateway.main:app --reload --host 0.0.0.0 --port 8080

    Production:
        uvicorn studio_gateway.main:app --host 0.0.0.0 --port 8080 --workers 4

    With custom log level:
        LOG_LEVEL=DEBUG uvicorn studio_gateway.main:app --reload
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .auth.routes import auth_router
from .config import Settings, get_settings, validate_configuration
from .exceptions import GatewayError
from .models import HealthResponse
from .proxy.organization import organization_router
from .proxy.routes import proxy_router

SERVICE_NAME = "studio-gateway"


# Configure structured JSON logging
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


# Application state singletons
class AppState:
    """
    Global application state container.

    Holds the shared outbound HTTP client. Nothing request-specific is
    stored here.
    """
    def __init__(self):
        self.backend_client: Optional[httpx.AsyncClient] = None


def build_backend_client(settings: Settings) -> httpx.AsyncClient:
    """Outbound client shared by all routes; per-call timeouts override the default."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.BACKEND_TIMEOUT_SECONDS, connect=10.0),
    )


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Load configuration from environment
        - Open the shared outbound HTTP client
        - Log configuration warnings

    Shutdown tasks:
        - Close the outbound HTTP client
    """
    settings = get_settings()
    app_state: AppState = app.state.app_state

    setup_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("studio_gateway.main")

    report = validate_configuration(settings)
    for warning in report["warnings"]:
        logger.warning(f"Configuration warning: {warning}")

    created_client = False
    if app_state.backend_client is None:
        app_state.backend_client = build_backend_client(settings)
        created_client = True

    logger.info(
        "Studio gateway started",
        extra={
            "service": SERVICE_NAME,
            "version": __version__,
            "tenant_backend_url": settings.tenant_backend_url,
            "organization_id": settings.ORGANIZATION_ID,
        }
    )

    yield

    logger.info("Shutting down studio gateway")

    if created_client and app_state.backend_client is not None:
        await app_state.backend_client.aclose()
        app_state.backend_client = None
        logger.info("Closed backend HTTP client")


def register_exception_handlers(app: FastAPI) -> None:
    """Render every failure as a JSON body with an ``error`` field."""

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_content())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger = logging.getLogger("studio_gateway.main")
        logger.warning(
            "Rejected invalid request body",
            extra={"path": request.url.path, "errors": str(exc.errors())[:200]},
        )
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Logs the error and returns a generic error response.
        """
        logger = logging.getLogger("studio_gateway.main")
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
            content={"error": "Internal server error"},
        )


# Create FastAPI application
def create_app(backend_client: Optional[httpx.AsyncClient] = None) -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application instance with:
        - Lifespan management
        - CORS middleware
        - Route handlers
        - Exception handlers

    Args:
        backend_client: Pre-built outbound client (tests pass one backed by
            ``httpx.MockTransport``); the lifespan opens one when omitted.

    Returns:
        FastAPI: Configured application instance
    """
    settings = get_settings()

    app = FastAPI(
        title="Studio Gateway",
        description="Proxy gateway between the studio booking front-end and its tenant backend",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app_state = AppState()
    app_state.backend_client = backend_client
    app.state.app_state = app_state

    # Configure CORS
    origins = settings.allowed_origins_list
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["*"],
        )

    app.include_router(auth_router)
    app.include_router(organization_router)
    app.include_router(proxy_router)

    # Health check endpoint
    @app.get("/health", tags=["System"], response_model=HealthResponse)
    async def health_check() -> Dict[str, str]:
        """
        Health check endpoint.

        Returns service status and basic metadata. Does not call the
        backend.
        """
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "version": __version__
        }

    # Root endpoint
    @app.get("/", tags=["System"])
    async def root() -> Dict[str, Any]:
        """Service metadata and available endpoints."""
        return {
            "service": SERVICE_NAME,
            "version": __version__,
            "description": "Proxy gateway for the studio booking front-end",
            "endpoints": {
                "health": "/health",
                "docs": "/docs",
                "auth": "/api/auth",
                "organization": "/api/organization",
                "proxy": "/api"
            }
        }

    register_exception_handlers(app)

    return app


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    """
    Direct execution entry point.

    This allows running the service directly with: python -m studio_gateway.main
    However, using uvicorn command is recommended for production.
    """
    settings = get_settings()

    uvicorn.run(
        "studio_gateway.main:app",
        host=settings.GATEWAY_HOST,
        port=settings.GATEWAY_PORT,
        reload=True,
        log_level=settings.LOG_LEVEL.lower()
    )
