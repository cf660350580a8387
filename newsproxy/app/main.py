"""
FastAPI News Proxy Application Factory
======================================

This is the main entry point for the proxy service that sits between
browser clients and the Gemini generateContent API.

Architecture:
    Browser → News Proxy (this service, holds the API key) → Gemini API

Routers:
    - /api/get-news                : Fetch / summarize proxy (POST)
    - /.netlify/functions/get-news : Legacy path for the same handler
    - /health                      : Health check endpoint

Environment Variables:
    - GEMINI_API_KEY: Upstream credential (required for proxying)
    - GEMINI_MODEL: Model name (default: gemini-2.5-flash-preview-09-2025)
    - MAX_RETRIES: Total upstream attempts (default: 3)
    - BACKOFF_BASE_SECONDS: First retry delay, doubled per retry (default: 1.0)
    - RETRY_POLICY: uniform | forward_status (default: uniform)
    - ALLOWED_ORIGINS: Comma-separated CORS origins
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    Development:
        uvicorn newsproxy.app.main:app --reload --host 0.0.0.0 --port 8080

    Production:
        uvicorn newsproxy.app.main:app --host 0.0.0.0 --port 8080 --workers 4
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import httpx
import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, get_settings, validate_configuration
from .log_redaction import TRANSPORT_LOGGERS, install_redaction_filter
from .proxy.routes import proxy_router

SERVICE_NAME = "news-proxy"
SERVICE_VERSION = "1.0.0"


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

    # httpx logs full request URLs at INFO; keep transport chatter at WARNING
    for name in TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    install_redaction_filter()


# Application state singletons
class AppState:
    """
    Global application state container.

    Holds the shared upstream HTTP client. Nothing here is mutated per
    invocation.
    """
    def __init__(self):
        self.upstream_client: Optional[httpx.AsyncClient] = None
        self.settings: Optional[Settings] = None


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Load configuration and log a validation report
        - Create the shared upstream httpx.AsyncClient

    Shutdown tasks:
        - Close the upstream client
    """
    settings = get_settings()
    app_state: AppState = app.state.app_state
    app_state.settings = settings

    setup_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("newsproxy.main")

    report = validate_configuration(settings)
    for error in report["errors"]:
        logger.error(f"Configuration error: {error}")
    for warning in report["warnings"]:
        logger.warning(f"Configuration warning: {warning}")

    app_state.upstream_client = httpx.AsyncClient(
        timeout=httpx.Timeout(
            settings.UPSTREAM_TIMEOUT_SECONDS,
            connect=settings.UPSTREAM_CONNECT_TIMEOUT_SECONDS,
        )
    )

    logger.info(
        "News proxy started",
        extra={
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "model": settings.GEMINI_MODEL,
            "max_retries": settings.MAX_RETRIES,
        }
    )

    yield

    logger.info("Shutting down news proxy")
    await app_state.upstream_client.aclose()
    app_state.upstream_client = None
    logger.info("News proxy shutdown complete")


def create_app() -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application instance with:
        - Lifespan management
        - CORS middleware (when ALLOWED_ORIGINS is set)
        - Route handlers
        - Exception handlers

    Returns:
        FastAPI: Configured application instance
    """
    settings = get_settings()

    app = FastAPI(
        title="News Proxy",
        description="Secure proxy for finance news fetching and summarization",
        version=SERVICE_VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.app_state = AppState()

    origins = settings.allowed_origins_list
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=False,
            allow_methods=["POST", "OPTIONS"],
            allow_headers=["Content-Type"],
        )

    app.include_router(proxy_router, tags=["News Proxy"])

    @app.get("/health", tags=["System"])
    async def health_check(settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
        """
        Health check endpoint.

        Reports whether the credential is configured without revealing it.
        """
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "credential_configured": settings.has_api_key,
        }

    @app.get("/", tags=["System"])
    async def root() -> Dict[str, Any]:
        return {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "description": "Secure proxy for finance news fetching and summarization",
            "endpoints": {
                "health": "/health",
                "docs": "/docs",
                "get_news": "/api/get-news",
            }
        }

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """
        Render framework HTTP errors (404, 405, 503 from dependencies) with
        the same {"error": ...} body as proxied failures.
        """
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Logs the error and returns a standardized error response.
        """
        logger = logging.getLogger("newsproxy.main")
        logger.error(
            f"Unhandled exception: {type(exc).__name__}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            }
        )

    return app


# Create app instance for uvicorn
app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    settings = get_settings()

    uvicorn.run(
        "newsproxy.app.main:app",
        host=settings.PROXY_HOST,
        port=settings.PROXY_PORT,
        log_level=settings.LOG_LEVEL.lower()
    )


if __name__ == "__main__":
    run()
