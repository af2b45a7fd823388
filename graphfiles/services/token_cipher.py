"""Symmetric encryption of cached credentials at rest."""

from __future__ import annotations

import base64
import hashlib
import json

from cryptography.fernet import Fernet, InvalidToken
from pydantic import ValidationError

from graphfiles.models.oauth import CachedCredential


class TokenCipherService:
    """Seal and open credential payloads using a derived Fernet key."""

    def __init__(self, *, secret: str) -> None:
        if not secret:
            raise ValueError("Token encryption secret must be provided.")
        digest = hashlib.sha256(secret.encode("utf-8")).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(digest))

    def seal(self, credential: CachedCredential) -> str:
        """Serialize and encrypt a credential into an opaque string."""
        payload = credential.model_dump_json().encode("utf-8")
        return self._fernet.encrypt(payload).decode("utf-8")

    def open(self, sealed: str) -> CachedCredential:
        """Decrypt a sealed credential.

        Raises ``ValueError`` when the value was produced with another key or
        has been tampered with.
        """
        try:
            plaintext = self._fernet.decrypt(sealed.encode("utf-8"))
        except InvalidToken as exc:
            raise ValueError("Failed to decrypt cached credential.") from exc
        try:
            return CachedCredential.model_validate(json.loads(plaintext))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise ValueError("Cached credential payload is malformed.") from exc


__all__ = ["TokenCipherService"]
