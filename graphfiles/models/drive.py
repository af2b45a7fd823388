"""
Domain models for items in the remote drive.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

ROOT_ITEM_ID = "root"


class RemoteItem(BaseModel):
    """Read-only view of a file or folder in the remote store."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    etag: str = ""
    size: Optional[int] = None
    is_folder: bool = False
    web_url: Optional[str] = None

    @classmethod
    def from_graph(cls, payload: Dict[str, Any]) -> "RemoteItem":
        """Build from a Graph ``driveItem`` resource."""
        return cls(
            id=payload["id"],
            name=payload.get("name", ""),
            etag=payload.get("eTag") or payload.get("etag") or "",
            size=payload.get("size"),
            is_folder="folder" in payload,
            web_url=payload.get("webUrl"),
        )


class PageRequest(BaseModel):
    """Single-page listing request."""

    page_size: int = Field(10, gt=0)


__all__ = ["PageRequest", "ROOT_ITEM_ID", "RemoteItem"]
