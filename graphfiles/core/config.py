"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the token layer and the
maintenance scripts share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Optional

import os

from pydantic import AnyHttpUrl, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class IdentitySettings(BaseSettings):
    """Configuration for the Microsoft identity platform app registration."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    app_id: str = Field(..., validation_alias="IDA_APP_ID")
    app_secret: str = Field(..., validation_alias="IDA_APP_SECRET")
    redirect_uri: AnyHttpUrl = Field(..., validation_alias="IDA_REDIRECT_URI")
    aad_instance: str = Field(
        "https://login.microsoftonline.com/{0}{1}",
        validation_alias="IDA_AAD_INSTANCE",
        description="Authority template; formatted with the tenant and a suffix.",
    )
    tenant: str = Field("common", validation_alias="IDA_TENANT")
    scopes: Annotated[tuple[str, ...], NoDecode] = Field(
        (
            "openid",
            "offline_access",
            "User.Read",
            "Files.ReadWrite",
        ),
        validation_alias="IDA_SCOPES",
    )

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(
        cls, value: str | tuple[str, ...] | list[str]
    ) -> tuple[str, ...]:
        """Support providing scopes as a comma-separated string."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(value)
        return tuple(scope.strip() for scope in value.split(",") if scope.strip())

    @property
    def authority(self) -> str:
        """Authority URL, e.g. ``https://login.microsoftonline.com/common``."""
        return self.aad_instance.format(self.tenant, "").rstrip("/")


class GraphSettings(BaseSettings):
    """Settings for the Microsoft Graph file store."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    base_url: str = Field(
        "https://graph.microsoft.com/v1.0", validation_alias="GRAPH_BASE_URL"
    )
    timeout_seconds: float = Field(30.0, validation_alias="GRAPH_TIMEOUT_SECONDS")


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    token_encryption_secret: Optional[str] = Field(
        None,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for encrypting cached tokens."
        ),
    )
    session_secret: Optional[str] = Field(
        None,
        validation_alias="SESSION_SECRET",
        description="Secret used to sign session cookies and OAuth state values.",
    )
    session_cookie_name: str = Field(
        "graphfiles_session", validation_alias="SESSION_COOKIE_NAME"
    )
    session_ttl_seconds: int = Field(8 * 3600, validation_alias="SESSION_TTL_SECONDS")


class CacheSettings(BaseSettings):
    """Token cache persistence settings."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    db_path: str = Field("data/token_cache.db", validation_alias="TOKEN_CACHE_DB_PATH")
    refresh_window_seconds: int = Field(
        300,
        validation_alias="TOKEN_REFRESH_WINDOW_SECONDS",
        description="Refresh access tokens this many seconds before they expire.",
    )


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    default_page_size: int = Field(10, gt=0, validation_alias="DEFAULT_PAGE_SIZE")
    max_page_size: int = Field(200, gt=0, validation_alias="MAX_PAGE_SIZE")
    oauth_state_ttl_seconds: int = Field(900, validation_alias="OAUTH_STATE_TTL")
    post_login_url: Optional[HttpUrl] = Field(
        None,
        validation_alias="POST_LOGIN_URL",
        description="Fallback URL after sign-in when no return URL was supplied.",
    )
    identity: IdentitySettings = Field(default_factory=IdentitySettings)
    graph: GraphSettings = Field(default_factory=GraphSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "CacheSettings",
    "GraphSettings",
    "IdentitySettings",
    "SecuritySettings",
    "get_settings",
]
