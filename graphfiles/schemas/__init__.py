"""Public schema exports."""

from .files import DeleteResponse, FileListResponse, UploadResponse

__all__ = [
    "DeleteResponse",
    "FileListResponse",
    "UploadResponse",
]
