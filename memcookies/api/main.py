"""memcookies FastAPI application entry point.

Configures the FastAPI app with:
- Cookies-disabled mode middleware (encrypted cookie bundles)
- Request ID and security headers middleware
- CORS middleware exposing the bundle headers to browser scripts
- Health and session routes
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from memcookies import __version__
from memcookies.api.middleware import (
    MemCookiesMiddleware,
    RequestIDMiddleware,
    SecurityHeadersMiddleware,
)
from memcookies.api.routes import health, session
from memcookies.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Apply the configured level and a plain line format to the root logger."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title=settings.app_name,
        description="Encrypted in-memory cookie bundles for cookies-disabled clients",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Note: middleware is applied in reverse order (last added = first executed).
    # RequestIDMiddleware runs outermost so bundle rejections carry the request id.
    app.add_middleware(MemCookiesMiddleware, settings=settings)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "X-Request-ID",
            "X-Requested-With",
            settings.header_name,
            settings.hash_header_name,
        ],
        expose_headers=[settings.header_name, settings.hash_header_name],
    )
    app.add_middleware(RequestIDMiddleware)

    app.include_router(health.router)
    app.include_router(session.router)

    @app.exception_handler(Exception)  # Intentionally broad: top-level global error handler
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        request_id = getattr(request.state, "request_id", "unknown")
        logger.exception("Unhandled error [%s]: %s", request_id, exc)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "request_id": request_id},
        )

    logger.info("memcookies app created (header=%s)", settings.header_name)
    return app
