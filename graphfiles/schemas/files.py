"""Response schemas for the file routes."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field

from graphfiles.models.drive import RemoteItem


class FileListResponse(BaseModel):
    """One page of children of a drive folder."""

    parent_id: str
    page_size: int = Field(..., description="Requested page size; no more items are returned.")
    items: List[RemoteItem]


class DeleteResponse(BaseModel):
    status: str = "deleted"
    item_id: str


class UploadResponse(BaseModel):
    """Result of a multi-file upload."""

    uploaded: List[RemoteItem] = Field(default_factory=list)
    skipped: List[str] = Field(
        default_factory=list,
        description="Names of files that were not sent because they were empty.",
    )


__all__ = ["DeleteResponse", "FileListResponse", "UploadResponse"]
