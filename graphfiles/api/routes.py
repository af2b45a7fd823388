"""
FastAPI routes for signing in and managing files in the user's drive.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from http import HTTPStatus
from typing import Annotated, Any, AsyncIterator, List
from urllib.parse import urlparse

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse, RedirectResponse, Response

from graphfiles.clients.identity import (
    InvalidSignatureError,
    OAuthTokenExchangeError,
    TokenEndpointUnavailable,
)
from graphfiles.core.errors import (
    Conflict,
    DriveError,
    GraphFilesError,
    NotFound,
    ReauthenticationRequired,
    StorageUnavailable,
    TokenRefreshFailed,
    TransientNetworkError,
    Unauthorized,
)
from graphfiles.dependencies import (
    get_app_settings,
    get_current_user,
    get_drive_files_service,
    get_graph_client,
    get_identity_client,
    get_page_size,
    get_payload_encoder,
    get_token_provider,
)
from graphfiles.dependencies.session import (
    clear_session_cookie,
    issue_session_cookie,
    read_session_user,
    return_url_for,
    sign_in_required,
    wants_html,
)
from graphfiles.models.drive import ROOT_ITEM_ID
from graphfiles.models.oauth import UserIdentity
from graphfiles.schemas import DeleteResponse, FileListResponse, UploadResponse
from graphfiles.services import UploadSource

router = APIRouter()
logger = logging.getLogger(__name__)

_UPLOAD_CHUNK_BYTES = 1024 * 1024
_REFRESH_RETRY_AFTER_SECONDS = "5"


def _http_error(exc: GraphFilesError, request: Request) -> HTTPException:
    """Translate a core error into a response the caller can act on."""
    if isinstance(exc, ReauthenticationRequired):
        return sign_in_required(request, exc.return_url)
    if isinstance(exc, TokenRefreshFailed):
        return HTTPException(
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
            detail=str(exc),
            headers={"Retry-After": _REFRESH_RETRY_AFTER_SECONDS},
        )
    if isinstance(exc, StorageUnavailable):
        return HTTPException(
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
            detail="Session storage is unavailable.",
        )
    if isinstance(exc, Unauthorized):
        return HTTPException(
            status_code=HTTPStatus.UNAUTHORIZED,
            detail="The drive rejected the access token; retry to refresh it.",
        )
    if isinstance(exc, Conflict):
        return HTTPException(
            status_code=HTTPStatus.PRECONDITION_FAILED,
            detail="The item changed since it was listed; refresh and try again.",
        )
    if isinstance(exc, NotFound):
        return HTTPException(status_code=HTTPStatus.NOT_FOUND, detail="Item not found.")
    if isinstance(exc, TransientNetworkError):
        return HTTPException(
            status_code=HTTPStatus.BAD_GATEWAY,
            detail="The drive is temporarily unreachable.",
        )
    if isinstance(exc, DriveError) and exc.status_code and 400 <= exc.status_code < 500:
        return HTTPException(status_code=exc.status_code, detail=str(exc))
    return HTTPException(status_code=HTTPStatus.BAD_GATEWAY, detail=str(exc))


def _safe_return_url(request: Request, candidate: str | None) -> str | None:
    """Only allow relative paths or URLs on this host as post-login targets."""
    if not candidate:
        return None
    if candidate.startswith("/") and not candidate.startswith("//"):
        return candidate
    parsed = urlparse(candidate)
    if parsed.scheme in ("http", "https") and parsed.netloc == request.url.netloc:
        return candidate
    return None


def _after_mutation(request: Request, payload: Any) -> Response:
    if wants_html(request):
        return RedirectResponse(
            url=str(request.url_for("list_files")), status_code=HTTPStatus.SEE_OTHER
        )
    return JSONResponse(content=payload.model_dump(mode="json"))


async def _read_chunks(upload: UploadFile) -> AsyncIterator[bytes]:
    while True:
        chunk = await upload.read(_UPLOAD_CHUNK_BYTES)
        if not chunk:
            break
        yield chunk


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/auth/login", name="start_sign_in")
async def start_sign_in(
    request: Request,
    identity_client: Annotated[Any, Depends(get_identity_client)],
    encoder: Annotated[Any, Depends(get_payload_encoder)],
    return_url: str | None = Query(
        default=None,
        description="Where to send the user once sign-in completes.",
    ),
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the consent screen.",
    ),
) -> Any:
    """Kick off the delegated sign-in by issuing a signed state value."""
    state = encoder.encode(
        {
            "nonce": uuid.uuid4().hex,
            "return_url": _safe_return_url(request, return_url),
            "issued_at": datetime.now(timezone.utc).isoformat(),
        }
    )
    authorization_url = identity_client.build_authorization_url(state=state)

    if redirect or wants_html(request):
        return RedirectResponse(url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT)
    return {"authorization_url": authorization_url, "state": state}


@router.get("/auth/callback", name="complete_sign_in")
async def complete_sign_in(
    request: Request,
    identity_client: Annotated[Any, Depends(get_identity_client)],
    graph_client: Annotated[Any, Depends(get_graph_client)],
    token_provider: Annotated[Any, Depends(get_token_provider)],
    encoder: Annotated[Any, Depends(get_payload_encoder)],
    settings: Annotated[Any, Depends(get_app_settings)],
    state: str = Query(..., description="Signed state issued by /auth/login."),
    code: str | None = Query(default=None, description="Authorization code."),
    error: str | None = Query(default=None),
    error_description: str | None = Query(default=None),
) -> Response:
    """Exchange the authorization code, cache the credential and start a session."""
    try:
        state_data = encoder.decode(state)
        issued_at = datetime.fromisoformat(state_data["issued_at"])
    except (InvalidSignatureError, KeyError, TypeError, ValueError) as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="Invalid OAuth state."
        ) from exc

    if issued_at.tzinfo is None:
        issued_at = issued_at.replace(tzinfo=timezone.utc)
    if datetime.now(timezone.utc) - issued_at > timedelta(
        seconds=settings.oauth_state_ttl_seconds
    ):
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="OAuth state token has expired."
        )

    if error or not code:
        logger.info("Sign-in was not completed: %s", error or "missing code")
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail=error_description or error or "Missing authorization code.",
        )

    try:
        grant = await identity_client.exchange_authorization_code(code)
    except TokenEndpointUnavailable as exc:
        raise HTTPException(
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
            detail="Identity provider is unavailable.",
        ) from exc
    except OAuthTokenExchangeError as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Failed to exchange authorization code.",
        ) from exc

    try:
        user = UserIdentity(
            await graph_client.get_signed_in_user_id(access_token=grant.access_token)
        )
        await token_provider.store_grant(user, grant)
    except GraphFilesError as exc:
        raise _http_error(exc, request) from exc

    redirect_target = (
        state_data.get("return_url")
        or (str(settings.post_login_url) if settings.post_login_url else None)
        or str(request.url_for("list_files"))
    )
    response: Response
    if wants_html(request):
        response = RedirectResponse(url=redirect_target, status_code=HTTPStatus.SEE_OTHER)
    else:
        response = JSONResponse(content={"status": "connected", "redirect_to": redirect_target})
    issue_session_cookie(response, user=user, encoder=encoder, settings=settings)
    logger.info("User signed in")
    return response


@router.get("/auth/logout", name="sign_out")
async def sign_out(
    request: Request,
    token_provider: Annotated[Any, Depends(get_token_provider)],
    encoder: Annotated[Any, Depends(get_payload_encoder)],
    settings: Annotated[Any, Depends(get_app_settings)],
) -> Response:
    """End the session and drop the cached credential."""
    user = read_session_user(request, encoder=encoder, settings=settings)
    if user is not None:
        try:
            await token_provider.sign_out(user)
        except StorageUnavailable:
            logger.warning("Cached credential could not be removed at sign-out")

    response = JSONResponse(content={"status": "signed_out"})
    clear_session_cookie(response, settings=settings)
    return response


@router.get("/files", response_model=FileListResponse, name="list_files")
async def list_files(
    request: Request,
    user: Annotated[UserIdentity, Depends(get_current_user)],
    service: Annotated[Any, Depends(get_drive_files_service)],
    page_size: Annotated[int, Depends(get_page_size)],
    parent_id: str = Query(default=ROOT_ITEM_ID, description="Folder to list."),
) -> FileListResponse:
    """Return a single page of the folder's children."""
    try:
        items = await service.list_files(
            user=user,
            page_size=page_size,
            parent_id=parent_id,
            return_url=return_url_for(request),
        )
    except GraphFilesError as exc:
        raise _http_error(exc, request) from exc
    return FileListResponse(parent_id=parent_id, page_size=page_size, items=items)


@router.post("/files/delete", name="delete_file")
async def delete_file(
    request: Request,
    user: Annotated[UserIdentity, Depends(get_current_user)],
    service: Annotated[Any, Depends(get_drive_files_service)],
    item_id: str = Form(...),
    etag: str = Form(..., description="Etag observed when the item was listed."),
) -> Response:
    """Delete an item, provided it has not changed since it was listed."""
    try:
        await service.delete_file(
            user=user,
            item_id=item_id,
            etag=etag,
            return_url=return_url_for(request),
        )
    except Conflict as exc:
        logger.info("Delete of %s rejected: etag is stale", item_id)
        raise _http_error(exc, request) from exc
    except GraphFilesError as exc:
        raise _http_error(exc, request) from exc
    return _after_mutation(request, DeleteResponse(item_id=item_id))


@router.post("/files/upload", name="upload_files")
async def upload_files(
    request: Request,
    user: Annotated[UserIdentity, Depends(get_current_user)],
    service: Annotated[Any, Depends(get_drive_files_service)],
    files: List[UploadFile] = File(...),
    parent_id: str = Form(default=ROOT_ITEM_ID),
) -> Response:
    """Upload one or more files into ``parent_id``."""
    sources = [
        UploadSource(
            filename=upload.filename or "",
            chunks=_read_chunks(upload),
            size=upload.size,
        )
        for upload in files
    ]
    try:
        outcome = await service.upload_files(
            user=user,
            sources=sources,
            parent_id=parent_id,
            return_url=return_url_for(request),
        )
    except GraphFilesError as exc:
        raise _http_error(exc, request) from exc
    return _after_mutation(
        request, UploadResponse(uploaded=outcome.uploaded, skipped=outcome.skipped)
    )


__all__ = ["router"]
