"""FastAPI application factory for the autopost control API."""

from __future__ import annotations

import os

from fastapi import FastAPI
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from src.api.middleware import SecurityHeadersMiddleware
from src.api.registry import ServiceRegistry

# Rate limiter (shared instance)
limiter = Limiter(key_func=get_remote_address)


def create_app(registry: ServiceRegistry) -> FastAPI:
    """Build the FastAPI application around already-constructed services."""
    app = FastAPI(
        title="Callcaster API",
        version="0.1.0",
        docs_url="/api/docs" if os.getenv("API_DEBUG") else None,
        redoc_url=None,
        openapi_url="/api/openapi.json" if os.getenv("API_DEBUG") else None,
    )
    app.state.registry = registry

    # Rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Security headers
    app.add_middleware(SecurityHeadersMiddleware)

    # Import and include routers
    from src.api.routers.autopost import router as autopost_router
    from src.api.routers.call import router as call_router
    from src.api.routers.graduations import router as graduations_router
    from src.api.routers.guilds import router as guilds_router
    from src.api.routers.health import router as health_router
    from src.api.routers.logs import router as logs_router

    app.include_router(health_router)
    app.include_router(autopost_router)
    app.include_router(graduations_router)
    app.include_router(guilds_router)
    app.include_router(logs_router)
    app.include_router(call_router)

    return app
