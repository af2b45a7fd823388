"""
Per-user credential cache persisted in the session record store.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from typing import Any, Dict, Optional, Protocol

from graphfiles.core.errors import StorageUnavailable
from graphfiles.models.oauth import CachedCredential, UserIdentity
from graphfiles.services.token_cipher import TokenCipherService

logger = logging.getLogger(__name__)

# An unreachable database directory fails with OSError before sqlite is involved.
_STORAGE_ERRORS = (sqlite3.Error, OSError)


class RecordStore(Protocol):
    def put_item(self, item: Dict[str, Any]) -> None:
        ...

    def get_item(
        self, *, partition_key: str, sort_key: str
    ) -> Optional[Dict[str, Any]]:
        ...

    def delete_item(self, *, partition_key: str, sort_key: str) -> None:
        ...


class TokenCache:
    """Stores one encrypted ``CachedCredential`` per user identity.

    Entries are replaced wholesale, so concurrent writers for the same user
    resolve last-writer-wins. Persistence failures surface as
    ``StorageUnavailable``.
    """

    _SORT_KEY = "oauth#graph"

    def __init__(self, store: RecordStore, cipher: TokenCipherService) -> None:
        self._store = store
        self._cipher = cipher

    @staticmethod
    def _partition_key(user: UserIdentity) -> str:
        if not user:
            raise ValueError("A user identity is required for token cache access.")
        return f"user#{user}"

    async def get(self, user: UserIdentity) -> Optional[CachedCredential]:
        pk = self._partition_key(user)
        try:
            record = await asyncio.to_thread(
                self._store.get_item, partition_key=pk, sort_key=self._SORT_KEY
            )
        except _STORAGE_ERRORS as exc:
            raise StorageUnavailable("Token cache could not be read.") from exc

        if not record or not record.get("credential_sealed"):
            return None
        try:
            return self._cipher.open(record["credential_sealed"])
        except ValueError:
            # Unreadable entries (rotated secret, corruption) count as a miss.
            logger.warning("Discarding unreadable cached credential for %s", pk)
            return None

    async def set(self, user: UserIdentity, credential: CachedCredential) -> None:
        item = {
            "pk": self._partition_key(user),
            "sk": self._SORT_KEY,
            "user_id": str(user),
            "credential_sealed": self._cipher.seal(credential),
            "expires_at": credential.expires_at.isoformat(),
        }
        try:
            await asyncio.to_thread(self._store.put_item, item)
        except _STORAGE_ERRORS as exc:
            raise StorageUnavailable("Token cache could not be written.") from exc

    async def clear(self, user: UserIdentity) -> None:
        pk = self._partition_key(user)
        try:
            await asyncio.to_thread(
                self._store.delete_item, partition_key=pk, sort_key=self._SORT_KEY
            )
        except _STORAGE_ERRORS as exc:
            raise StorageUnavailable("Token cache could not be cleared.") from exc


__all__ = ["RecordStore", "TokenCache"]
