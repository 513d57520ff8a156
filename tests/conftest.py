"""Shared test fixtures for attach_credentials.

Provides isolated config environments, in-memory identity stores seeded
with credential records, a scripted token strategy, and a CLI runner.
These fixtures are automatically discovered by pytest and available to
all test modules without explicit imports.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

import pytest

from attach_credentials.exceptions import RefreshFailed
from attach_credentials.models import IdentityRecord
from attach_credentials.refresh import TokenStrategy
from attach_credentials.store import MemoryIdentityStore


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class ScriptedStrategy(TokenStrategy):
    """Token strategy that returns canned responses and records its calls."""

    def __init__(
        self,
        response: Optional[dict[str, Any]] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.response = response or {"access_token": "new-access", "expires_in": 3600}
        self.error = error
        self.calls: list[tuple[str, dict[str, str]]] = []

    async def request_token(
        self, refresh_token: str, params: Mapping[str, str]
    ) -> dict[str, Any]:
        self.calls.append((refresh_token, dict(params)))
        if self.error is not None:
            raise self.error
        return dict(self.response)


def past(hours: int = 1) -> str:
    return (datetime.now(timezone.utc) - timedelta(hours=hours)).isoformat()


def future(hours: int = 1) -> str:
    return (datetime.now(timezone.utc) + timedelta(hours=hours)).isoformat()


def identity(
    credentials: Optional[dict[str, Any]],
    subject_id: str = "alice",
    provider: str = "github",
    identity_id: str = "id-1",
) -> IdentityRecord:
    return IdentityRecord(
        id=identity_id, subject_id=subject_id, provider=provider, credentials=credentials
    )


# ---------------------------------------------------------------------------
# Identity store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def bearer_credentials() -> dict[str, Any]:
    """A typed, non-expiring bearer credential."""
    return {"type": "bearer", "payload": {"token": "tok-123"}}


@pytest.fixture
def oauth_credentials() -> dict[str, Any]:
    """An OAuth2 token record that expired an hour ago."""
    return {
        "access_token": "old-access",
        "refresh_token": "r-123",
        "token_type": "Bearer",
        "expires_at": past(),
    }


@pytest.fixture
def memory_store(bearer_credentials: dict[str, Any]) -> MemoryIdentityStore:
    """A memory store holding one bearer identity for alice/github."""
    return MemoryIdentityStore([identity(bearer_credentials)])


@pytest.fixture
def strategy() -> ScriptedStrategy:
    return ScriptedStrategy()


@pytest.fixture
def failing_strategy() -> ScriptedStrategy:
    return ScriptedStrategy(error=RefreshFailed("Token refresh failed with status 400"))


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME to subdirectories of tmp_path
    so that tests never touch real user config, and clears the
    ATTACH_CREDENTIALS_* environment variables.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setattr("attach_credentials.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    for var in ["ATTACH_CREDENTIALS_CONFIG", "ATTACH_CREDENTIALS_STORE"]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
