"""
Domain models for delegated token caching.
"""

from datetime import datetime, timezone
from typing import NewType

from pydantic import BaseModel, ConfigDict, Field, field_validator

UserIdentity = NewType("UserIdentity", str)
"""Stable object id of the signed-in principal; the token cache key."""


class CachedCredential(BaseModel):
    """Access/refresh token pair held for one user."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    expires_at: datetime = Field(..., description="UTC instant the access token expires.")

    @field_validator("expires_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def is_expired(self, *, now: datetime, leeway_seconds: float = 0) -> bool:
        """True once ``now`` is within ``leeway_seconds`` of expiry or past it."""
        return (self.expires_at - now).total_seconds() <= leeway_seconds


__all__ = ["CachedCredential", "UserIdentity"]
