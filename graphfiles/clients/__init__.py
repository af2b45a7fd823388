"""Expose constructed client wrappers."""

from .graph_drive import DriveStore, GraphDriveClient
from .identity import MicrosoftIdentityClient, SignedPayloadEncoder, TokenGrant
from .sqlite_store import SQLiteStore

__all__ = [
    "DriveStore",
    "GraphDriveClient",
    "MicrosoftIdentityClient",
    "SQLiteStore",
    "SignedPayloadEncoder",
    "TokenGrant",
]
