"""Pytest configuration shared across the suite."""

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for rootdir-relative imports
    import _bootstrap  # type: ignore # noqa: F401

import pytest


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture()
def web():
    """Wire the FastAPI app to in-memory fakes and yield the moving parts."""
    import copy
    from types import SimpleNamespace

    from drive_fakes import InMemoryDriveStore, MemoryRecordStore, StubIdentityClient
    from graphfiles import dependencies
    from graphfiles.clients.identity import SignedPayloadEncoder
    from graphfiles.core.config import get_settings
    from graphfiles.main import app
    from graphfiles.services import (
        DriveFilesService,
        TokenCache,
        TokenCipherService,
        TokenProvider,
    )

    settings = copy.deepcopy(get_settings())
    settings.environment = "development"
    settings.post_login_url = None
    drive = InMemoryDriveStore()
    identity = StubIdentityClient()
    cache = TokenCache(MemoryRecordStore(), TokenCipherService(secret="route-secret"))
    provider = TokenProvider(cache, identity, refresh_window_seconds=0)
    encoder = SignedPayloadEncoder("route-session-secret")
    service = DriveFilesService(provider, drive, default_page_size=settings.default_page_size)

    app.dependency_overrides.update(
        {
            dependencies.get_app_settings: lambda: settings,
            dependencies.get_payload_encoder: lambda: encoder,
            dependencies.get_identity_client: lambda: identity,
            dependencies.get_graph_client: lambda: drive,
            dependencies.get_token_provider: lambda: provider,
            dependencies.get_drive_files_service: lambda: service,
        }
    )

    yield SimpleNamespace(
        app=app,
        settings=settings,
        drive=drive,
        identity=identity,
        cache=cache,
        provider=provider,
        encoder=encoder,
    )

    app.dependency_overrides.clear()
