"""
FastAPI Application Factory
===========================

Entry point for the marketplace authentication service.

Architecture:
    Browser → /auth/sign-in → Keycloak (IDIR / GitHub) → /auth/callback → App

Routers:
    - /auth/*          : Sign-in flow (authorization redirect, callback)
    - /api/sessions/*  : Current session read and sign-out
    - /health          : Health check endpoint

Environment Variables Required:
    - ORIGIN: Public origin of this service
    - KEYCLOAK_URL, KEYCLOAK_REALM: Keycloak location
    - KEYCLOAK_CLIENT_ID, KEYCLOAK_CLIENT_SECRET: Client credentials
    - SESSION_SECRET: Secret for signing the session cookie
    - DATABASE_URL: SQLAlchemy async URL (default: local SQLite)
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    Development:
        uvicorn marketplace.main:create_app --factory --reload --port 3000

    Production:
        uvicorn marketplace.main:create_app --factory --host 0.0.0.0 --port 3000 --workers 4
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Dict, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from marketplace import __version__
from marketplace.auth import auth_router
from marketplace.config import Settings, get_settings
from marketplace.db import Connection, DatabaseSessionManager
from marketplace.models import ErrorResponse, HealthResponse
from marketplace.notifications import Notifier
from marketplace.sessions import sessions_router

SERVICE_NAME = "marketplace-auth"


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


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Configure logging
        - Connect to the database and create tables
        - Create the shared HTTP client for Keycloak calls

    Shutdown tasks:
        - Wait for pending notifications
        - Close the HTTP client and dispose of the database engine

    Collaborators passed to ``create_app`` are used as-is and not closed here.
    """
    settings: Settings = app.state.settings

    setup_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("marketplace.main")

    manager: Optional[DatabaseSessionManager] = None
    if app.state.connection is None:
        manager = DatabaseSessionManager()
        manager.init(settings.DATABASE_URL)
        await manager.create_all()
        app.state.connection = Connection(manager)
        logger.info("Initialized database")

    owns_http_client = app.state.http_client is None
    if owns_http_client:
        app.state.http_client = httpx.AsyncClient()

    logger.info(
        "Marketplace auth service started",
        extra={
            "service": SERVICE_NAME,
            "version": __version__,
            "keycloak_realm": settings.KEYCLOAK_REALM,
        }
    )

    yield

    logger.info("Shutting down marketplace auth service")

    await app.state.notifier.drain()

    if owns_http_client:
        await app.state.http_client.aclose()
        app.state.http_client = None

    if manager is not None:
        await manager.close()
        app.state.connection = None

    logger.info("Marketplace auth service shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    *,
    connection: Optional[Connection] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    notifier: Optional[Notifier] = None,
) -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application instance with:
        - Lifespan management
        - CORS and signed-cookie session middleware
        - Route handlers
        - Exception handlers

    Args:
        settings: Settings to use instead of the environment
        connection: Persistence collaborator; created at startup when omitted
        http_client: HTTP client for Keycloak; created at startup when omitted
        notifier: Notification collaborator

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Marketplace Auth Service",
        description="Identity federation and session provisioning for the procurement marketplace",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.connection = connection
    app.state.http_client = http_client
    app.state.notifier = notifier or Notifier()

    if settings.allowed_origins_list:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins_list,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["*"],
        )

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SESSION_SECRET,
        session_cookie=settings.SESSION_COOKIE_NAME,
        https_only=settings.COOKIE_SECURE,
        same_site="lax",
    )

    app.include_router(auth_router)
    app.include_router(sessions_router)

    # Health check endpoint
    @app.get("/health", tags=["system"], response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        return HealthResponse(status="ok", service=SERVICE_NAME, version=__version__)

    @app.get("/", tags=["system"], include_in_schema=False)
    async def root() -> Dict[str, str]:
        return {
            "service": SERVICE_NAME,
            "version": __version__,
            "sign_in": "/auth/sign-in",
        }

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Log unhandled errors and return a standardized error response.
        """
        logger = logging.getLogger("marketplace.main")
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        body = ErrorResponse(
            error="internal_server_error",
            message="An unexpected error occurred",
            details={"exception": str(exc)} if settings.LOG_LEVEL == "DEBUG" else None,
        )
        return JSONResponse(status_code=500, content=body.model_dump())

    return app
