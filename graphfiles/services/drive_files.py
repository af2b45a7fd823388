"""
Business logic behind the file routes: one token lookup, one drive call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import PureWindowsPath
from typing import AsyncIterable, AsyncIterator, List, Optional

from graphfiles.clients.graph_drive import DriveStore
from graphfiles.core.errors import Unauthorized
from graphfiles.models.drive import ROOT_ITEM_ID, PageRequest, RemoteItem
from graphfiles.models.oauth import UserIdentity
from graphfiles.services.token_provider import TokenProvider

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class UploadSource:
    """A file received from the browser, read lazily in chunks."""

    filename: str
    chunks: AsyncIterable[bytes]
    size: Optional[int] = None


@dataclass(slots=True)
class UploadOutcome:
    uploaded: List[RemoteItem] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


def safe_filename(raw_name: str) -> str:
    """Strip any client-side directory components from an uploaded name."""
    # Handles both "dir/name" and "C:\\dir\\name" style paths.
    return PureWindowsPath(raw_name or "").name.strip()


async def _peek(chunks: AsyncIterable[bytes]) -> tuple[bytes, AsyncIterator[bytes]]:
    """Return the first non-empty chunk and the iterator positioned after it."""
    iterator = chunks.__aiter__()
    async for chunk in iterator:
        if chunk:
            return chunk, iterator
    return b"", iterator


async def _chain(first: bytes, rest: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
    yield first
    async for chunk in rest:
        yield chunk


async def _close(iterator: AsyncIterator[bytes]) -> None:
    aclose = getattr(iterator, "aclose", None)
    if aclose is not None:
        await aclose()


class DriveFilesService:
    """Resolve a token for the user and run a single drive operation.

    Errors from the token layer and the drive are propagated unchanged; the
    only side effect on failure is that an ``Unauthorized`` response
    invalidates the cached access token so the next call refreshes it.
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        drive: DriveStore,
        *,
        default_page_size: int = 10,
    ) -> None:
        self._tokens = token_provider
        self._drive = drive
        self._default_page_size = default_page_size

    async def list_files(
        self,
        *,
        user: UserIdentity,
        page_size: Optional[int] = None,
        parent_id: str = ROOT_ITEM_ID,
        return_url: Optional[str] = None,
    ) -> List[RemoteItem]:
        page = PageRequest(page_size=page_size or self._default_page_size)
        access_token = await self._tokens.get_access_token(user, return_url)
        try:
            return await self._drive.list_children(
                access_token=access_token, parent_id=parent_id, page=page
            )
        except Unauthorized:
            await self._tokens.invalidate(user)
            raise

    async def delete_file(
        self,
        *,
        user: UserIdentity,
        item_id: str,
        etag: str,
        return_url: Optional[str] = None,
    ) -> None:
        access_token = await self._tokens.get_access_token(user, return_url)
        try:
            await self._drive.delete_item(
                access_token=access_token, item_id=item_id, etag=etag
            )
        except Unauthorized:
            await self._tokens.invalidate(user)
            raise

    async def upload_files(
        self,
        *,
        user: UserIdentity,
        sources: List[UploadSource],
        parent_id: str = ROOT_ITEM_ID,
        return_url: Optional[str] = None,
    ) -> UploadOutcome:
        """Upload each non-empty source; empty files are skipped and reported."""
        outcome = UploadOutcome()
        for source in sources:
            filename = safe_filename(source.filename)
            if source.size == 0 or not filename:
                outcome.skipped.append(source.filename)
                continue

            first_chunk, remaining = await _peek(source.chunks)
            if not first_chunk:
                await _close(remaining)
                outcome.skipped.append(source.filename)
                continue

            chunks = _chain(first_chunk, remaining)
            try:
                access_token = await self._tokens.get_access_token(user, return_url)
                item = await self._drive.upload_item(
                    access_token=access_token,
                    parent_id=parent_id,
                    filename=filename,
                    content=chunks,
                    content_length=source.size,
                )
            except Unauthorized:
                await self._tokens.invalidate(user)
                raise
            finally:
                # Releases the source even when the upload never started.
                await chunks.aclose()
                await _close(remaining)
            outcome.uploaded.append(item)

        if outcome.skipped:
            logger.info("Skipped %d empty or unnamed upload(s)", len(outcome.skipped))
        return outcome


__all__ = ["DriveFilesService", "UploadOutcome", "UploadSource", "safe_filename"]
