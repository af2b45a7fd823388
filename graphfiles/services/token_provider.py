"""
Helpers for retrieving and refreshing delegated Graph access tokens.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from graphfiles.clients.identity import (
    InvalidGrantError,
    MicrosoftIdentityClient,
    OAuthTokenExchangeError,
    TokenGrant,
)
from graphfiles.core.errors import (
    ReauthenticationRequired,
    StorageUnavailable,
    TokenRefreshFailed,
)
from graphfiles.models.oauth import CachedCredential, UserIdentity
from graphfiles.services.token_cache import TokenCache

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenProvider:
    """Hands out valid access tokens, refreshing cached credentials on expiry.

    Concurrent callers for the same user share a single in-flight refresh.
    The shared refresh is shielded, so one caller being cancelled does not
    abort it for the others.
    """

    def __init__(
        self,
        cache: TokenCache,
        oauth_client: MicrosoftIdentityClient,
        *,
        refresh_window_seconds: float = 300,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._cache = cache
        self._oauth = oauth_client
        self._refresh_window = refresh_window_seconds
        self._clock = clock
        self._inflight: Dict[UserIdentity, asyncio.Task[str]] = {}

    async def get_access_token(
        self, user: UserIdentity, return_url: Optional[str] = None
    ) -> str:
        """Return a usable access token for ``user``.

        Raises ``ReauthenticationRequired`` (carrying ``return_url``) when the
        user must sign in again, and ``TokenRefreshFailed`` when a refresh
        failed for a reason worth retrying.
        """
        credential = await self._load(user)
        if credential is None:
            raise ReauthenticationRequired(return_url, "No cached credential for user.")

        if not credential.is_expired(now=self._clock(), leeway_seconds=self._refresh_window):
            return credential.access_token

        try:
            return await self._refresh_once(user, credential)
        except ReauthenticationRequired as exc:
            raise ReauthenticationRequired(return_url, str(exc)) from exc

    async def store_grant(self, user: UserIdentity, grant: TokenGrant) -> CachedCredential:
        """Cache a freshly issued grant, e.g. after the sign-in callback."""
        if not grant.refresh_token:
            raise ValueError("An initial grant must include a refresh token.")
        credential = CachedCredential(
            access_token=grant.access_token,
            refresh_token=grant.refresh_token,
            expires_at=self._clock() + timedelta(seconds=grant.expires_in),
        )
        await self._cache.set(user, credential)
        return credential

    async def invalidate(self, user: UserIdentity) -> None:
        """Mark the cached access token unusable so the next call refreshes."""
        credential = await self._load(user)
        if credential is None:
            return
        expired = credential.model_copy(update={"expires_at": self._clock() - timedelta(seconds=1)})
        try:
            await self._cache.set(user, expired)
        except StorageUnavailable:
            logger.warning("Could not invalidate cached token; storage unavailable")

    async def sign_out(self, user: UserIdentity) -> None:
        """Drop the user's cached credential."""
        await self._cache.clear(user)

    async def _load(self, user: UserIdentity) -> Optional[CachedCredential]:
        try:
            return await self._cache.get(user)
        except StorageUnavailable:
            logger.warning("Token cache unavailable; treating as no cached credential")
            return None

    async def _refresh_once(self, user: UserIdentity, credential: CachedCredential) -> str:
        task = self._inflight.get(user)
        if task is None:
            task = asyncio.ensure_future(self._refresh(user, credential))
            self._inflight[user] = task
            task.add_done_callback(lambda done, key=user: self._forget_inflight(key, done))
        return await asyncio.shield(task)

    def _forget_inflight(self, user: UserIdentity, task: "asyncio.Task[str]") -> None:
        if self._inflight.get(user) is task:
            del self._inflight[user]
        if not task.cancelled():
            # Marks the exception retrieved when every waiter went away.
            task.exception()

    async def _refresh(self, user: UserIdentity, credential: CachedCredential) -> str:
        # The caller's copy may predate a refresh that has already finished and
        # rotated the refresh token, so start from whatever is stored now.
        current = await self._load(user)
        if current is not None:
            if not current.is_expired(now=self._clock(), leeway_seconds=self._refresh_window):
                return current.access_token
            credential = current

        refreshed_at = self._clock()
        try:
            grant = await self._oauth.refresh_token(credential.refresh_token)
        except InvalidGrantError as exc:
            logger.info("Refresh token rejected (%s); sign-in required", exc.error_code)
            try:
                await self._cache.clear(user)
            except StorageUnavailable:
                logger.warning("Could not clear rejected credential; storage unavailable")
            raise ReauthenticationRequired(None, "Refresh token is no longer valid.") from exc
        except OAuthTokenExchangeError as exc:
            logger.warning("Token refresh failed: %s", exc)
            raise TokenRefreshFailed("Access token refresh failed; try again shortly.") from exc

        refreshed = CachedCredential(
            access_token=grant.access_token,
            refresh_token=grant.refresh_token or credential.refresh_token,
            expires_at=refreshed_at + timedelta(seconds=grant.expires_in),
        )
        try:
            await self._cache.set(user, refreshed)
        except StorageUnavailable:
            logger.warning("Refreshed token could not be cached; storage unavailable")
        logger.info("Refreshed access token, valid until %s", refreshed.expires_at.isoformat())
        return refreshed.access_token


__all__ = ["TokenProvider"]
