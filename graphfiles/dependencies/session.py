"""
Session cookie handling: maps the signed cookie to a ``UserIdentity``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from http import HTTPStatus
from typing import Annotated
from urllib.parse import urlencode

from fastapi import Depends, HTTPException, Request, Response

from graphfiles.clients.identity import InvalidSignatureError, SignedPayloadEncoder
from graphfiles.core.config import AppSettings
from graphfiles.dependencies.clients import get_payload_encoder
from graphfiles.dependencies.config import get_app_settings
from graphfiles.models.oauth import UserIdentity


def wants_html(request: Request) -> bool:
    """True when the caller is a browser expecting a page rather than JSON."""
    return "text/html" in request.headers.get("accept", "").lower()


def return_url_for(request: Request) -> str:
    """URL to come back to after sign-in: the listing for mutations."""
    if request.method == "GET":
        return str(request.url)
    return str(request.url_for("list_files"))


def login_url_for(request: Request, return_url: str | None) -> str:
    login_url = str(request.url_for("start_sign_in"))
    if return_url:
        login_url = f"{login_url}?{urlencode({'return_url': return_url})}"
    return login_url


def sign_in_required(request: Request, return_url: str | None) -> HTTPException:
    """Build the error that sends the caller through the sign-in flow.

    Browsers get a 303 so a POST from a form is followed by a GET of the
    sign-in page.
    """
    login_url = login_url_for(request, return_url)
    if wants_html(request):
        return HTTPException(
            status_code=HTTPStatus.SEE_OTHER,
            headers={"Location": login_url},
        )
    return HTTPException(
        status_code=HTTPStatus.UNAUTHORIZED,
        detail={"message": "Sign-in required.", "login_url": login_url},
    )


def issue_session_cookie(
    response: Response,
    *,
    user: UserIdentity,
    encoder: SignedPayloadEncoder,
    settings: AppSettings,
) -> None:
    token = encoder.encode(
        {"uid": str(user), "issued_at": datetime.now(timezone.utc).isoformat()}
    )
    response.set_cookie(
        settings.security.session_cookie_name,
        token,
        max_age=settings.security.session_ttl_seconds,
        httponly=True,
        samesite="lax",
        secure=settings.environment != "development",
        path="/",
    )


def clear_session_cookie(response: Response, *, settings: AppSettings) -> None:
    response.delete_cookie(settings.security.session_cookie_name, path="/")


def read_session_user(
    request: Request, *, encoder: SignedPayloadEncoder, settings: AppSettings
) -> UserIdentity | None:
    """Return the identity in the session cookie, or None if absent or invalid."""
    token = request.cookies.get(settings.security.session_cookie_name)
    if not token:
        return None
    try:
        payload = encoder.decode(token)
        issued_at = datetime.fromisoformat(payload["issued_at"])
        user_id = payload["uid"]
    except (InvalidSignatureError, KeyError, TypeError, ValueError):
        return None

    if issued_at.tzinfo is None:
        issued_at = issued_at.replace(tzinfo=timezone.utc)
    age = (datetime.now(timezone.utc) - issued_at).total_seconds()
    if age > settings.security.session_ttl_seconds or not user_id:
        return None
    return UserIdentity(user_id)


def get_current_user(
    request: Request,
    encoder: Annotated[SignedPayloadEncoder, Depends(get_payload_encoder)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> UserIdentity:
    """FastAPI dependency resolving the signed-in user or demanding sign-in."""
    user = read_session_user(request, encoder=encoder, settings=settings)
    if user is None:
        raise sign_in_required(request, return_url_for(request))
    return user


__all__ = [
    "clear_session_cookie",
    "get_current_user",
    "issue_session_cookie",
    "login_url_for",
    "read_session_user",
    "return_url_for",
    "sign_in_required",
    "wants_html",
]
