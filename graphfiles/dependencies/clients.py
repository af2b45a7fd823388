"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache

from graphfiles.clients import (
    GraphDriveClient,
    MicrosoftIdentityClient,
    SignedPayloadEncoder,
    SQLiteStore,
)
from graphfiles.core.config import get_settings
from graphfiles.services import (
    DriveFilesService,
    TokenCache,
    TokenCipherService,
    TokenProvider,
)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_payload_encoder() -> SignedPayloadEncoder:
    """Provide the signer for OAuth state values and session cookies."""
    settings = _settings()
    secret = settings.security.session_secret or settings.identity.app_secret
    return SignedPayloadEncoder(secret_key=secret)


@lru_cache()
def get_identity_client() -> MicrosoftIdentityClient:
    """Create a singleton identity platform client."""
    return MicrosoftIdentityClient(_settings().identity)


@lru_cache()
def get_graph_client() -> GraphDriveClient:
    """Provide the Graph drive client."""
    settings = _settings()
    return GraphDriveClient(
        base_url=settings.graph.base_url,
        timeout=settings.graph.timeout_seconds,
    )


@lru_cache()
def get_sqlite_store() -> SQLiteStore:
    """Provide the shared SQLite record store backing the token cache."""
    return SQLiteStore(_settings().cache.db_path)


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for cached credentials."""
    settings = _settings()
    secret = settings.security.token_encryption_secret or settings.identity.app_secret
    return TokenCipherService(secret=secret)


@lru_cache()
def get_token_cache() -> TokenCache:
    """Provide the per-user credential cache."""
    return TokenCache(get_sqlite_store(), get_token_cipher_service())


@lru_cache()
def get_token_provider() -> TokenProvider:
    """Provide the process-wide token provider.

    A single instance is required so concurrent refreshes for one user are
    coalesced.
    """
    return TokenProvider(
        get_token_cache(),
        get_identity_client(),
        refresh_window_seconds=_settings().cache.refresh_window_seconds,
    )


def get_drive_files_service() -> DriveFilesService:
    """Build the drive files service using configured clients."""
    return DriveFilesService(
        token_provider=get_token_provider(),
        drive=get_graph_client(),
        default_page_size=_settings().default_page_size,
    )


__all__ = [
    "get_drive_files_service",
    "get_graph_client",
    "get_identity_client",
    "get_payload_encoder",
    "get_sqlite_store",
    "get_token_cache",
    "get_token_cipher_service",
    "get_token_provider",
]
