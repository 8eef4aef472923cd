"""
Aura - FastAPI Application

Main entry point for the backend API.
Provides endpoints for sessions, coaching chats, insights, billing and the
AI proxy.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from aura.config.settings import Settings, get_settings
from aura.infrastructure.exceptions import (
    AccessDeniedError,
    AuraError,
    AuthError,
    ConfigurationError,
    EmailInUseError,
    InsufficientCoinsError,
    NotFoundError,
    PaymentError,
    RateLimitError,
    StoreUnavailableError,
    ValidationError,
)
from aura.services import ServiceContainer, build_services


logger = logging.getLogger(__name__)


# ============================================================================
# Exception Handlers
# ============================================================================

# Most specific first; the first isinstance match wins
ERROR_STATUS = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (AccessDeniedError, 403),
    (InsufficientCoinsError, 402),
    (EmailInUseError, 409),
    (AuthError, 401),
    (PaymentError, 402),
    (RateLimitError, 429),
    (StoreUnavailableError, 503),
]


def status_for(exc: AuraError) -> int:
    for error_cls, status_code in ERROR_STATUS:
        if isinstance(exc, error_cls):
            return status_code
    return 500


async def aura_error_handler(request: Request, exc: AuraError):
    """Map the Aura exception hierarchy to HTTP responses."""
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{exc.__class__.__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


# ============================================================================
# Application Factory
# ============================================================================

def create_app(
    settings: Optional[Settings] = None,
    services: Optional[ServiceContainer] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Defaults to the cached environment settings
        services: Prebuilt container; built from settings in the lifespan when omitted
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown."""
        logger.info(f"Aura Backend starting in {settings.environment} mode...")

        if getattr(app.state, "services", None) is None:
            try:
                app.state.services = build_services(settings)
            except ConfigurationError as e:
                logger.error(f"Configuration error: {e.message} {e.details}")
                raise
        await app.state.services.startup()

        yield

        await app.state.services.shutdown()
        logger.info("Aura Backend shutting down...")

    app = FastAPI(
        title="Aura",
        description="AI companion with adaptive coaching modes",
        version="1.0.0",
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.services = services

    # CORS configuration from Settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AuraError, aura_error_handler)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "aura"}

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "message": "Aura API",
            "version": "1.0.0",
            "docs": "/docs",
        }

    from aura.api.routes import (
        ai,
        auth,
        chats,
        insights,
        modes,
        session,
        subscriptions,
        wallet,
        webhooks,
    )

    app.include_router(auth.router, prefix="/api", tags=["Auth"])
    app.include_router(session.router, prefix="/api", tags=["Session"])
    app.include_router(chats.router, prefix="/api", tags=["Chats"])
    app.include_router(modes.router, prefix="/api", tags=["Modes"])
    app.include_router(insights.router, prefix="/api", tags=["Insights"])
    app.include_router(subscriptions.router, prefix="/api", tags=["Subscriptions"])
    app.include_router(wallet.router, prefix="/api", tags=["Wallet"])
    app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])
    app.include_router(ai.router, prefix="/api", tags=["AI"])

    return app


# Configure logging
_settings = get_settings()
logging.basicConfig(
    level=getattr(logging, _settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

app = create_app(_settings)
