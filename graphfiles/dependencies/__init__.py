"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_drive_files_service,
    get_graph_client,
    get_identity_client,
    get_payload_encoder,
    get_sqlite_store,
    get_token_cache,
    get_token_cipher_service,
    get_token_provider,
)
from .config import SettingsDependency, get_app_settings, get_page_size
from .session import get_current_user

__all__ = [
    "SettingsDependency",
    "get_app_settings",
    "get_current_user",
    "get_drive_files_service",
    "get_graph_client",
    "get_identity_client",
    "get_page_size",
    "get_payload_encoder",
    "get_sqlite_store",
    "get_token_cache",
    "get_token_cipher_service",
    "get_token_provider",
]
