"""
Error taxonomy shared by the token layer, the drive client and the routes.

Token-layer errors tell the boundary whether the user has to sign in again
(``ReauthenticationRequired``) or may simply retry (``TokenRefreshFailed``).
Drive errors are raised verbatim from the HTTP status of the remote store so
callers can tell an auth failure from a conflict or a missing item.
"""

from __future__ import annotations


class GraphFilesError(Exception):
    """Base class for application errors."""


class StorageUnavailable(GraphFilesError):
    """Raised when the token cache persistence layer cannot be reached."""


class ReauthenticationRequired(GraphFilesError):
    """Raised when no usable credential exists and the user must sign in."""

    def __init__(self, return_url: str | None, message: str | None = None) -> None:
        super().__init__(message or "Interactive sign-in required.")
        self.return_url = return_url


class TokenRefreshFailed(GraphFilesError):
    """Raised when a refresh attempt fails for a transient reason."""


class DriveError(GraphFilesError):
    """Base class for failures reported by the remote file store."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class Unauthorized(DriveError):
    """The remote store rejected the bearer token."""


class Conflict(DriveError):
    """The item's current etag differs from the one supplied by the caller."""


class NotFound(DriveError):
    """The requested item or parent folder does not exist."""


class TransientNetworkError(DriveError):
    """A network or server-side failure the caller may choose to retry."""


__all__ = [
    "Conflict",
    "DriveError",
    "GraphFilesError",
    "NotFound",
    "ReauthenticationRequired",
    "StorageUnavailable",
    "TokenRefreshFailed",
    "TransientNetworkError",
    "Unauthorized",
]
