"""Microsoft Graph drive client wrapper."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterable, Dict, List, Optional, Protocol, Union
from urllib.parse import quote

import httpx

from graphfiles.core.errors import (
    Conflict,
    DriveError,
    NotFound,
    TransientNetworkError,
    Unauthorized,
)
from graphfiles.models.drive import ROOT_ITEM_ID, PageRequest, RemoteItem

logger = logging.getLogger(__name__)

UploadContent = Union[bytes, AsyncIterable[bytes]]


class DriveStore(Protocol):
    """The three operations the file routes need from a remote store."""

    async def list_children(
        self,
        *,
        access_token: str,
        parent_id: str = ROOT_ITEM_ID,
        page: PageRequest,
    ) -> List[RemoteItem]:
        ...

    async def delete_item(self, *, access_token: str, item_id: str, etag: str) -> None:
        ...

    async def upload_item(
        self,
        *,
        access_token: str,
        parent_id: str,
        filename: str,
        content: UploadContent,
        content_length: Optional[int] = None,
    ) -> RemoteItem:
        ...


class GraphDriveClient:
    """List, delete and upload items in the signed-in user's OneDrive.

    Every call takes the bearer token explicitly; nothing is retried here.
    HTTP failures are translated into the ``DriveError`` hierarchy.
    """

    _ITEM_FIELDS = "id,name,eTag,size,folder,file,webUrl"

    def __init__(
        self,
        *,
        base_url: str = "https://graph.microsoft.com/v1.0",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _client(self, access_token: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
            headers={"Authorization": f"Bearer {access_token}"},
        )

    @staticmethod
    def _item_path(item_id: str) -> str:
        if item_id == ROOT_ITEM_ID:
            return "/me/drive/root"
        return f"/me/drive/items/{quote(item_id, safe='')}"

    async def list_children(
        self,
        *,
        access_token: str,
        parent_id: str = ROOT_ITEM_ID,
        page: PageRequest,
    ) -> List[RemoteItem]:
        """Return at most ``page.page_size`` children of ``parent_id``."""
        params = {"$top": str(page.page_size), "$select": self._ITEM_FIELDS}
        response = await self._send(
            access_token,
            "GET",
            f"{self._item_path(parent_id)}/children",
            params=params,
        )
        values = _json_body(response).get("value", [])
        # No continuation is kept; the first page is all the caller gets.
        return [_to_item(value) for value in values[: page.page_size]]

    async def delete_item(self, *, access_token: str, item_id: str, etag: str) -> None:
        """Delete ``item_id`` only if its current etag still equals ``etag``."""
        if item_id == ROOT_ITEM_ID:
            raise DriveError("The drive root cannot be deleted.", status_code=400)
        if not etag:
            raise ValueError("An etag is required to delete an item.")
        await self._send(
            access_token,
            "DELETE",
            self._item_path(item_id),
            headers={"If-Match": etag},
        )
        logger.info("Deleted drive item %s", item_id)

    async def upload_item(
        self,
        *,
        access_token: str,
        parent_id: str,
        filename: str,
        content: UploadContent,
        content_length: Optional[int] = None,
    ) -> RemoteItem:
        """Stream ``content`` into ``parent_id`` under ``filename``.

        The remote store decides what happens when the name already exists.
        """
        if not filename:
            raise ValueError("A filename is required for uploads.")
        headers = {"Content-Type": "application/octet-stream"}
        if content_length is not None:
            headers["Content-Length"] = str(content_length)
        path = f"{self._item_path(parent_id)}:/{quote(filename, safe='')}:/content"
        response = await self._send(
            access_token, "PUT", path, content=content, headers=headers
        )
        item = _to_item(_json_body(response))
        logger.info("Uploaded drive item %s (%s bytes)", item.id, item.size)
        return item

    async def get_signed_in_user_id(self, *, access_token: str) -> str:
        """Return the object id of the principal the token was issued to."""
        response = await self._send(access_token, "GET", "/me", params={"$select": "id"})
        user_id = _json_body(response).get("id")
        if not user_id:
            raise DriveError("Profile response did not include an id.")
        return user_id

    async def _send(
        self,
        access_token: str,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            async with self._client(access_token) as client:
                response = await client.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            raise TransientNetworkError(f"Drive request failed: {exc}") from exc
        _raise_for_status(response)
        return response


def _raise_for_status(response: httpx.Response) -> None:
    status = response.status_code
    if status < 400:
        return
    message = _graph_error_message(response)
    if status == 401:
        raise Unauthorized(message, status_code=status)
    if status == 404:
        raise NotFound(message, status_code=status)
    if status in (409, 412):
        raise Conflict(message, status_code=status)
    if status == 429 or status >= 500:
        raise TransientNetworkError(message, status_code=status)
    raise DriveError(message, status_code=status)


def _json_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError as exc:
        raise DriveError("Drive returned a response that is not JSON.") from exc
    if not isinstance(body, dict):
        raise DriveError("Drive returned an unexpected response body.")
    return body


def _to_item(payload: Any) -> RemoteItem:
    try:
        return RemoteItem.from_graph(payload)
    except (KeyError, TypeError, ValueError) as exc:
        raise DriveError(f"Drive returned a malformed item: {exc}") from exc


def _graph_error_message(response: httpx.Response) -> str:
    """Extract ``code: message`` from a Graph error body, raw text otherwise."""
    try:
        body: Dict[str, Any] = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        code = error.get("code")
        return f"{code}: {error['message']}" if code else error["message"]
    return response.text or f"HTTP {response.status_code}"


__all__ = ["DriveStore", "GraphDriveClient", "UploadContent"]
