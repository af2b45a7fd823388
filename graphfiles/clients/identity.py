"""
Microsoft identity platform utilities.

These helpers manage the delegated sign-in flow and the token refresh
lifecycle against the OAuth2 v2 endpoints of the configured authority.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
import logging
from dataclasses import dataclass
from hashlib import sha256
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from graphfiles.core.config import IdentitySettings

logger = logging.getLogger(__name__)


class InvalidSignatureError(ValueError):
    """Raised when a signed payload fails verification."""


class SignedPayloadEncoder:
    """Encode and decode signed JSON payloads to guard against tampering.

    Used for both the OAuth ``state`` parameter and the session cookie.
    """

    _SIGNATURE_BYTES = 32

    def __init__(self, secret_key: str) -> None:
        if not secret_key:
            raise ValueError("A signing secret must be provided.")
        self._secret_key = secret_key.encode("utf-8")

    def encode(self, payload: Dict[str, Any]) -> str:
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        signature = hmac.new(self._secret_key, serialized.encode("utf-8"), sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized.encode("utf-8")).decode("utf-8")

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            raise InvalidSignatureError("Signed payload is not valid base64.") from exc
        if len(decoded) <= self._SIGNATURE_BYTES:
            raise InvalidSignatureError("Signed payload is truncated.")

        signature = decoded[: self._SIGNATURE_BYTES]
        serialized = decoded[self._SIGNATURE_BYTES :]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            raise InvalidSignatureError("Invalid payload signature.")
        return json.loads(serialized)


class OAuthTokenExchangeError(Exception):
    """Raised when the token endpoint returns an error."""

    def __init__(self, message: str, *, error_code: Optional[str] = None) -> None:
        super().__init__(message)
        self.error_code = error_code


class InvalidGrantError(OAuthTokenExchangeError):
    """The refresh token or authorization code is no longer accepted."""


class TokenEndpointUnavailable(OAuthTokenExchangeError):
    """The token endpoint could not be reached or failed server-side."""


@dataclass(frozen=True, slots=True)
class TokenGrant:
    """Tokens returned by the token endpoint."""

    access_token: str
    refresh_token: Optional[str]
    expires_in: int


class MicrosoftIdentityClient:
    """Build authorization URLs, exchange codes and refresh delegated tokens."""

    AUTHORIZE_PATH = "/oauth2/v2.0/authorize"
    TOKEN_PATH = "/oauth2/v2.0/token"

    # Token endpoint error codes that mean the user has to sign in again.
    _REAUTH_ERROR_CODES = frozenset(
        {"invalid_grant", "interaction_required", "consent_required", "login_required"}
    )

    def __init__(
        self,
        settings: IdentitySettings,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._timeout = timeout
        self._transport = transport

    @property
    def token_url(self) -> str:
        return f"{self._settings.authority}{self.TOKEN_PATH}"

    def build_authorization_url(self, state: str, login_hint: str | None = None) -> str:
        """Construct the consent URL for the delegated sign-in."""
        params = {
            "client_id": self._settings.app_id,
            "redirect_uri": str(self._settings.redirect_uri),
            "response_type": "code",
            "response_mode": "query",
            "scope": " ".join(self._settings.scopes),
            "state": state,
        }
        if login_hint:
            params["login_hint"] = login_hint
        return f"{self._settings.authority}{self.AUTHORIZE_PATH}?{urlencode(params)}"

    async def exchange_authorization_code(self, code: str) -> TokenGrant:
        """Exchange an authorization code for an access/refresh token pair."""
        grant = await self._request_token(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": str(self._settings.redirect_uri),
            }
        )
        if not grant.refresh_token:
            raise OAuthTokenExchangeError(
                "Token endpoint did not return a refresh token; is offline_access granted?"
            )
        return grant

    async def refresh_token(self, refresh_token: str) -> TokenGrant:
        """Redeem a refresh token. The returned refresh token may be rotated."""
        return await self._request_token(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )

    async def _request_token(self, grant_fields: Dict[str, str]) -> TokenGrant:
        payload = {
            "client_id": self._settings.app_id,
            "client_secret": self._settings.app_secret,
            "scope": " ".join(self._settings.scopes),
            **grant_fields,
        }

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(self.token_url, data=payload)
        except httpx.TransportError as exc:
            raise TokenEndpointUnavailable(f"Token endpoint unreachable: {exc}") from exc

        if response.status_code >= 500:
            raise TokenEndpointUnavailable(
                f"Token endpoint returned {response.status_code}."
            )
        if response.status_code != httpx.codes.OK:
            error_code, description = _parse_token_error(response)
            logger.info(
                "Token endpoint rejected %s grant: %s",
                grant_fields["grant_type"],
                error_code or response.status_code,
            )
            error_cls = (
                InvalidGrantError
                if error_code in self._REAUTH_ERROR_CODES
                else OAuthTokenExchangeError
            )
            raise error_cls(description or response.text, error_code=error_code)

        try:
            token_payload = response.json()
        except ValueError as exc:
            raise TokenEndpointUnavailable("Token endpoint returned invalid JSON.") from exc

        access_token = token_payload.get("access_token")
        expires_in = token_payload.get("expires_in")
        if not access_token or not expires_in:
            raise TokenEndpointUnavailable("Incomplete token payload returned.")

        return TokenGrant(
            access_token=access_token,
            refresh_token=token_payload.get("refresh_token"),
            expires_in=int(expires_in),
        )


def _parse_token_error(response: httpx.Response) -> tuple[Optional[str], Optional[str]]:
    """Extract ``error`` and ``error_description`` from an OAuth error body."""
    try:
        body = response.json()
    except ValueError:
        return None, None
    if not isinstance(body, dict):
        return None, None
    return body.get("error"), body.get("error_description")


__all__ = [
    "InvalidGrantError",
    "InvalidSignatureError",
    "MicrosoftIdentityClient",
    "OAuthTokenExchangeError",
    "SignedPayloadEncoder",
    "TokenEndpointUnavailable",
    "TokenGrant",
]
