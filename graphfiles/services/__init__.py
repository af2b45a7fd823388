"""Service layer exports."""

from .drive_files import DriveFilesService, UploadOutcome, UploadSource
from .token_cache import TokenCache
from .token_cipher import TokenCipherService
from .token_provider import TokenProvider

__all__ = [
    "DriveFilesService",
    "TokenCache",
    "TokenCipherService",
    "TokenProvider",
    "UploadOutcome",
    "UploadSource",
]
