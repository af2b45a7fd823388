try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from graphfiles.clients.identity import (
    InvalidGrantError,
    InvalidSignatureError,
    MicrosoftIdentityClient,
    OAuthTokenExchangeError,
    SignedPayloadEncoder,
    TokenEndpointUnavailable,
)
from graphfiles.core.config import IdentitySettings


def _settings() -> IdentitySettings:
    return IdentitySettings(
        IDA_APP_ID="app-id",
        IDA_APP_SECRET="app-secret",
        IDA_REDIRECT_URI="https://example.com/api/auth/callback",
    )


def _client(handler) -> MicrosoftIdentityClient:
    return MicrosoftIdentityClient(_settings(), transport=httpx.MockTransport(handler))


def test_authorization_url_targets_common_authority() -> None:
    client = MicrosoftIdentityClient(_settings())

    url = urlparse(client.build_authorization_url(state="signed-state"))
    params = parse_qs(url.query)

    assert url.netloc == "login.microsoftonline.com"
    assert url.path == "/common/oauth2/v2.0/authorize"
    assert params["client_id"] == ["app-id"]
    assert params["state"] == ["signed-state"]
    assert "offline_access" in params["scope"][0].split()


@pytest.mark.asyncio
async def test_refresh_posts_refresh_grant_and_parses_tokens() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(
            200,
            json={"access_token": "new-access", "refresh_token": "new-refresh", "expires_in": "3599"},
        )

    grant = await _client(handler).refresh_token("old-refresh")

    assert seen["url"] == "https://login.microsoftonline.com/common/oauth2/v2.0/token"
    assert seen["form"]["grant_type"] == ["refresh_token"]
    assert seen["form"]["refresh_token"] == ["old-refresh"]
    assert seen["form"]["client_secret"] == ["app-secret"]
    assert grant.access_token == "new-access"
    assert grant.refresh_token == "new-refresh"
    assert grant.expires_in == 3599


@pytest.mark.asyncio
async def test_invalid_grant_is_reported_as_reauthentication_case() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            400,
            json={"error": "invalid_grant", "error_description": "AADSTS700082: expired"},
        )

    with pytest.raises(InvalidGrantError) as excinfo:
        await _client(handler).refresh_token("stale")

    assert excinfo.value.error_code == "invalid_grant"


@pytest.mark.asyncio
async def test_other_client_errors_are_not_invalid_grant() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": "invalid_client"})

    with pytest.raises(OAuthTokenExchangeError) as excinfo:
        await _client(handler).refresh_token("refresh")

    assert not isinstance(excinfo.value, InvalidGrantError)
    assert not isinstance(excinfo.value, TokenEndpointUnavailable)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "handler",
    [
        lambda request: httpx.Response(503, text="busy"),
        lambda request: httpx.Response(200, json={"token_type": "Bearer"}),
    ],
)
async def test_server_failures_and_incomplete_payloads_are_transient(handler) -> None:
    with pytest.raises(TokenEndpointUnavailable):
        await _client(handler).refresh_token("refresh")


@pytest.mark.asyncio
async def test_connection_errors_are_transient() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TokenEndpointUnavailable):
        await _client(handler).refresh_token("refresh")


@pytest.mark.asyncio
async def test_code_exchange_requires_refresh_token() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert parse_qs(request.content.decode())["grant_type"] == ["authorization_code"]
        return httpx.Response(200, json={"access_token": "a", "expires_in": 3600})

    with pytest.raises(OAuthTokenExchangeError):
        await _client(handler).exchange_authorization_code("code")


def test_signed_payload_round_trip_and_tamper_detection() -> None:
    encoder = SignedPayloadEncoder("signing-secret")
    token = encoder.encode({"uid": "user-1"})

    assert encoder.decode(token) == {"uid": "user-1"}
    with pytest.raises(InvalidSignatureError):
        SignedPayloadEncoder("other-secret").decode(token)
    with pytest.raises(InvalidSignatureError):
        encoder.decode("!!not-base64!!")
