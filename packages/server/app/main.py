"""
Docify API Server

Entry point for the FastAPI application.
"""

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import get_settings
from app.core.database import engine, init_db
from app.core.errors import install_error_handlers
from app.core.logs import REQUEST_ID_HEADER, configure_logging
from app.core.middleware import RequestContextMiddleware
from app.api.v1 import router as api_v1_router
from app.api.v1.webhooks import router as webhooks_router

settings = get_settings()
log = structlog.get_logger()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Docify",
        description="Multi-tenant documentation platform: authorization core.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Middleware (last added is outermost)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER],
    )
    app.add_middleware(RequestContextMiddleware)

    install_error_handlers(app)

    # Identity-provider callbacks (not org-scoped)
    app.include_router(webhooks_router, prefix="/webhooks", tags=["Webhooks"])

    # API routes
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness checks."""
        return {"status": "ok"}

    @app.on_event("startup")
    async def on_startup():
        log.info("Docify starting", debug=settings.debug)
        if settings.debug:
            await init_db()

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("Docify shutting down")
        await engine.dispose()

    return app


app = create_app()


def run() -> None:
    """Serve the app with uvicorn using the configured host and port."""
    uvicorn.run("app.main:app", host=settings.host, port=settings.port, reload=settings.debug)
