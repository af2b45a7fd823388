"""
FastAPI application entrypoint for the drive files web app.
"""

from __future__ import annotations

from fastapi import FastAPI

from graphfiles.api.routes import router as api_router
from graphfiles.core.config import get_settings
from graphfiles.core.logging import configure_logging


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Graph Files Web",
        version="0.1.0",
        description="Sign in with a Microsoft account and manage OneDrive files.",
    )
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
