from __future__ import annotations

from typing import AsyncIterator, List

import pytest

from drive_fakes import InMemoryDriveStore
from graphfiles.core.errors import Conflict, NotFound, ReauthenticationRequired, Unauthorized
from graphfiles.models.oauth import UserIdentity
from graphfiles.services.drive_files import DriveFilesService, UploadSource, safe_filename

USER = UserIdentity("user-1")


class StubTokenProvider:
    def __init__(self, token: str | None = "access-1") -> None:
        self.token = token
        self.requests: List[tuple[str, str | None]] = []
        self.invalidated: List[str] = []

    async def get_access_token(self, user, return_url=None) -> str:
        self.requests.append((user, return_url))
        if self.token is None:
            raise ReauthenticationRequired(return_url)
        return self.token

    async def invalidate(self, user) -> None:
        self.invalidated.append(user)


async def _chunks(*parts: bytes) -> AsyncIterator[bytes]:
    for part in parts:
        yield part


def _service(drive: InMemoryDriveStore, tokens: StubTokenProvider | None = None) -> DriveFilesService:
    return DriveFilesService(tokens or StubTokenProvider(), drive, default_page_size=10)


@pytest.mark.asyncio
@pytest.mark.parametrize("page_size", [1, 3, 10, 25])
async def test_listing_never_exceeds_page_size(page_size: int) -> None:
    drive = InMemoryDriveStore()
    for index in range(12):
        drive.add_item(f"file-{index}.txt", b"x")

    items = await _service(drive).list_files(user=USER, page_size=page_size)

    assert len(items) == min(page_size, 12)


@pytest.mark.asyncio
async def test_listing_defaults_to_configured_page_size() -> None:
    drive = InMemoryDriveStore()
    for index in range(15):
        drive.add_item(f"file-{index}.txt", b"x")

    assert len(await _service(drive).list_files(user=USER)) == 10


@pytest.mark.asyncio
async def test_list_without_credential_requires_reauthentication() -> None:
    drive = InMemoryDriveStore()
    service = _service(drive, StubTokenProvider(token=None))

    with pytest.raises(ReauthenticationRequired) as excinfo:
        await service.list_files(user=USER, return_url="https://app.example.com/api/files")

    assert excinfo.value.return_url == "https://app.example.com/api/files"
    assert drive.tokens_seen == []


@pytest.mark.asyncio
async def test_delete_with_stale_etag_conflicts_and_leaves_store_unchanged() -> None:
    drive = InMemoryDriveStore()
    item = drive.add_item("budget.xlsx", b"data")

    with pytest.raises(Conflict):
        await _service(drive).delete_file(user=USER, item_id=item.id, etag="abc123")

    assert drive.get(item.id) == item


@pytest.mark.asyncio
async def test_delete_after_concurrent_modification_conflicts() -> None:
    drive = InMemoryDriveStore()
    listed = drive.add_item("notes.txt", b"v1")
    drive.touch(listed.id)

    with pytest.raises(Conflict):
        await _service(drive).delete_file(user=USER, item_id=listed.id, etag=listed.etag)

    assert drive.get(listed.id) is not None


@pytest.mark.asyncio
async def test_delete_with_current_etag_removes_item() -> None:
    drive = InMemoryDriveStore()
    item = drive.add_item("old.log", b"log")

    await _service(drive).delete_file(user=USER, item_id=item.id, etag=item.etag)

    assert drive.get(item.id) is None


@pytest.mark.asyncio
async def test_delete_of_unknown_item_is_not_found() -> None:
    with pytest.raises(NotFound):
        await _service(InMemoryDriveStore()).delete_file(user=USER, item_id="missing", etag="e")


@pytest.mark.asyncio
async def test_uploaded_file_is_visible_in_next_listing() -> None:
    drive = InMemoryDriveStore()
    service = _service(drive)

    outcome = await service.upload_files(
        user=USER,
        sources=[UploadSource(filename="report.pdf", chunks=_chunks(b"%PDF-"), size=5)],
    )

    assert [item.name for item in outcome.uploaded] == ["report.pdf"]
    assert outcome.uploaded[0].size == 5
    listed = await service.list_files(user=USER, page_size=1)
    assert "report.pdf" in [item.name for item in listed]


@pytest.mark.asyncio
async def test_empty_uploads_are_skipped_and_reported() -> None:
    drive = InMemoryDriveStore()
    tokens = StubTokenProvider()

    outcome = await _service(drive, tokens).upload_files(
        user=USER,
        sources=[
            UploadSource(filename="empty.txt", chunks=_chunks(), size=0),
            UploadSource(filename="unknown-size.txt", chunks=_chunks(b"", b""), size=None),
            UploadSource(filename="real.txt", chunks=_chunks(b"a", b"bc"), size=None),
        ],
    )

    assert outcome.skipped == ["empty.txt", "unknown-size.txt"]
    assert [item.name for item in outcome.uploaded] == ["real.txt"]
    assert outcome.uploaded[0].size == 3
    assert len(tokens.requests) == 1


@pytest.mark.asyncio
async def test_client_side_directories_are_stripped_from_names() -> None:
    drive = InMemoryDriveStore()

    outcome = await _service(drive).upload_files(
        user=USER,
        sources=[UploadSource(filename="C:\\Users\\pat\\plan.docx", chunks=_chunks(b"doc"))],
    )

    assert outcome.uploaded[0].name == "plan.docx"


def test_safe_filename_handles_both_separators() -> None:
    assert safe_filename("reports/2026/q1.csv") == "q1.csv"
    assert safe_filename("D:\\tmp\\a b.txt") == "a b.txt"
    assert safe_filename("") == ""


@pytest.mark.asyncio
async def test_rejected_token_invalidates_cache_and_propagates() -> None:
    drive = InMemoryDriveStore(valid_tokens={"other-token"})
    tokens = StubTokenProvider()

    with pytest.raises(Unauthorized):
        await _service(drive, tokens).list_files(user=USER)

    assert tokens.invalidated == [USER]


@pytest.mark.asyncio
async def test_source_is_closed_when_token_lookup_fails_mid_upload() -> None:
    closed: List[bool] = []

    async def tracked_chunks() -> AsyncIterator[bytes]:
        try:
            yield b"first"
            yield b"second"
        finally:
            closed.append(True)

    drive = InMemoryDriveStore()
    service = _service(drive, StubTokenProvider(token=None))

    with pytest.raises(ReauthenticationRequired):
        await service.upload_files(
            user=USER,
            sources=[UploadSource(filename="notes.txt", chunks=tracked_chunks())],
        )

    assert closed == [True]
    assert drive.tokens_seen == []


@pytest.mark.asyncio
async def test_source_is_closed_when_drive_rejects_token() -> None:
    closed: List[bool] = []

    async def tracked_chunks() -> AsyncIterator[bytes]:
        try:
            yield b"data"
        finally:
            closed.append(True)

    tokens = StubTokenProvider()
    drive = InMemoryDriveStore(valid_tokens={"other-token"})

    with pytest.raises(Unauthorized):
        await _service(drive, tokens).upload_files(
            user=USER,
            sources=[UploadSource(filename="notes.txt", chunks=tracked_chunks())],
        )

    assert closed == [True]
    assert tokens.invalidated == [USER]
