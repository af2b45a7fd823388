"""
FastAPI dependency utilities for injecting configuration.
"""

from functools import lru_cache
from http import HTTPStatus
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Query

from graphfiles.core.config import AppSettings, get_settings


@lru_cache()
def _settings_singleton() -> AppSettings:
    """Ensure configuration is created once per process."""
    return get_settings()


def get_app_settings() -> AppSettings:
    """FastAPI dependency returning application settings."""
    return _settings_singleton()


SettingsDependency = Depends(get_app_settings)


def get_page_size(
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    page_size: Optional[int] = Query(
        default=None,
        description="Number of items to return; defaults to the configured page size.",
    ),
) -> int:
    """Resolve the requested page size within the configured bounds."""
    if page_size is None:
        return settings.default_page_size
    if page_size < 1 or page_size > settings.max_page_size:
        raise HTTPException(
            status_code=HTTPStatus.UNPROCESSABLE_ENTITY,
            detail=f"page_size must be between 1 and {settings.max_page_size}.",
        )
    return page_size


__all__ = ["SettingsDependency", "get_app_settings", "get_page_size"]
