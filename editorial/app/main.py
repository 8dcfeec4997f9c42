"""FastAPI application entry point for the chunking service."""
from fastapi import FastAPI

from .api import routes_admin, routes_chunks
from .core.config import settings
from .core.middleware import RequestLoggingMiddleware


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(title=settings.PROJECT_NAME, version=settings.VERSION)

    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(routes_admin.router, prefix="/admin", tags=["admin"])
    app.include_router(routes_chunks.router, prefix="/api/chunks", tags=["chunks"])

    return app


app = create_app()
