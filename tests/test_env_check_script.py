"""Tests for the environment drift detection script."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from scripts import check_env

REQUIRED_ENV_KEYS = [
    "IDA_APP_ID",
    "IDA_APP_SECRET",
    "IDA_REDIRECT_URI",
    "TOKEN_CACHE_DB_PATH",
]


def _write_env(env_path: Path, **values: str) -> None:
    contents = "\n".join(f"{key}={value}" for key, value in values.items())
    env_path.write_text(contents + "\n", encoding="utf-8")


def _clear_required_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in REQUIRED_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.mark.parametrize("command", ["record", "verify", "check"])
def test_main_requires_existing_env_file(tmp_path: Path, command: str) -> None:
    env_file = tmp_path / ".missing-env"
    hash_file = tmp_path / ".env.sha256"

    argv = [command, "--env-file", str(env_file)]
    if command != "check":
        argv.extend(["--hash-file", str(hash_file)])

    assert check_env.main(argv) == check_env.EXIT_RUNTIME_ERROR


def test_record_and_verify_detects_mismatched_checksum(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / ".env"
    hash_file = tmp_path / ".env.sha256"
    cache_path = str(tmp_path / "cache" / "tokens.db")

    _clear_required_env(monkeypatch)
    _write_env(
        env_file,
        IDA_APP_ID="app",
        IDA_APP_SECRET="secret",
        IDA_REDIRECT_URI="https://example.com/api/auth/callback",
        TOKEN_CACHE_DB_PATH=cache_path,
    )

    argv = ["record", "--env-file", str(env_file), "--hash-file", str(hash_file)]
    assert check_env.main(argv) == check_env.EXIT_OK
    assert hash_file.read_text(encoding="utf-8").strip()

    _clear_required_env(monkeypatch)
    argv[0] = "verify"
    assert check_env.main(argv) == check_env.EXIT_OK

    _write_env(
        env_file,
        IDA_APP_ID="app",
        IDA_APP_SECRET="rotated",
        IDA_REDIRECT_URI="https://example.com/api/auth/callback",
        TOKEN_CACHE_DB_PATH=cache_path,
    )

    _clear_required_env(monkeypatch)
    assert check_env.main(argv) == check_env.EXIT_CHECKSUM_ERROR


def test_validation_failure_for_missing_required_values(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / ".env"

    _clear_required_env(monkeypatch)
    _write_env(
        env_file,
        IDA_APP_ID="app",
        IDA_REDIRECT_URI="https://example.com/api/auth/callback",
        TOKEN_CACHE_DB_PATH=str(tmp_path / "tokens.db"),
    )

    exit_code = check_env.main(
        ["record", "--env-file", str(env_file), "--hash-file", str(tmp_path / "h")]
    )
    assert exit_code == check_env.EXIT_VALIDATION_ERROR


@pytest.mark.skipif(
    hasattr(os, "geteuid") and os.geteuid() == 0,
    reason="root can write to read-only directories",
)
def test_unwritable_cache_location_is_reported(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / ".env"
    locked = tmp_path / "locked"
    locked.mkdir()
    locked.chmod(0o500)

    _clear_required_env(monkeypatch)
    _write_env(
        env_file,
        IDA_APP_ID="app",
        IDA_APP_SECRET="secret",
        IDA_REDIRECT_URI="https://example.com/api/auth/callback",
        TOKEN_CACHE_DB_PATH=str(locked / "sub" / "tokens.db"),
    )

    try:
        assert check_env.main(["check", "--env-file", str(env_file)]) == (
            check_env.EXIT_CACHE_PATH_ERROR
        )
    finally:
        locked.chmod(0o700)
