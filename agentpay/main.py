"""
AgentPay - x402 payment client with custodial agent wallets

Main FastAPI application entry point with OpenAPI documentation.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agentpay.api import router as api_router
from agentpay.core.config import Settings, get_settings
from agentpay.core.context import build_context
from agentpay.core.errors import (
    AgentPayError,
    agentpay_exception_handler,
    general_exception_handler,
)
from agentpay.core.security import configure_secure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler for startup and shutdown events.
    """
    settings: Settings = app.state.settings
    configure_secure_logging(settings.log_level, settings.log_format)

    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Network: {settings.network}")

    app.state.context = await build_context(settings)
    logger.info("✓ Payment context initialized")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await app.state.context.aclose()
    logger.info("All connections closed")


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Application settings; defaults to the cached environment settings

    Returns:
        Configured FastAPI app. ``app.state.context`` is populated on startup.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="""
## x402 Payment Client with Custodial Agent Wallets

AgentPay fetches HTTP resources on behalf of users and transparently pays
HTTP 402 Payment Required challenges from a per-user custodial wallet.

### Key Features

- **x402 Payment Protocol**: Automatic 402 handling with settlement-id retries
- **Custodial Wallets**: One wallet per user, keys encrypted at rest
- **Audit Log**: Every submitted payment is recorded
        """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Global exception handlers
    app.add_exception_handler(AgentPayError, agentpay_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Health check endpoint
    @app.get(
        "/health",
        tags=["Health"],
        summary="Health check",
        response_description="Application health status",
    )
    async def health_check() -> dict[str, Any]:
        """
        Check application health status.

        Returns basic health information including version and network.
        """
        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
            "network": settings.network,
        }

    # Include API routes
    app.include_router(api_router, prefix="/api/v1")

    # Root endpoint
    @app.get(
        "/",
        tags=["Root"],
        summary="API root",
        include_in_schema=False,
    )
    async def root() -> dict[str, str]:
        """Root endpoint with API information."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
            "redoc": "/redoc",
            "openapi": "/openapi.json",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "agentpay.main:app",
        host=_settings.host,
        port=_settings.port,
        reload=_settings.debug,
    )
