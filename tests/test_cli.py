"""Tests for the attach-credentials CLI."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import httpx
import pytest

from attach_credentials.cli import app, build_registry
from attach_credentials.config import save_settings
from attach_credentials.models import ProviderConfig, Settings
from attach_credentials.refresh import OAuth2TokenStrategy

from conftest import past


def _invoke(cli_runner, *args: str):
    return cli_runner.invoke(app, list(args))


def _store_data(isolated_config: Path) -> dict[str, Any]:
    path = isolated_config / "data" / "attach-credentials" / "identities.json"
    return json.loads(path.read_text(encoding="utf-8"))


class TestSetAndApply:
    def test_set_then_apply(self, cli_runner, isolated_config: Path) -> None:
        result = _invoke(
            cli_runner, "set", "alice", "github", "--type", "bearer", "--payload", '{"token": "t-1"}'
        )
        assert result.exit_code == 0, result.output

        result = _invoke(cli_runner, "apply", "alice", "github", "--params", '{"url": "/user"}')
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout) == {
            "url": "/user",
            "auth": {"bearer": "t-1", "send_immediately": True},
            "auth_type": "oauth",
        }

    def test_set_replaces_existing(self, cli_runner, isolated_config: Path) -> None:
        _invoke(cli_runner, "set", "alice", "github", "--type", "cookie", "--payload", '{"cookie": "a=1"}')
        _invoke(cli_runner, "set", "alice", "github", "--type", "cookie", "--payload", '{"cookie": "b=2"}')
        identities = _store_data(isolated_config)["identities"]
        assert len(identities) == 1
        assert identities[0]["credentials"]["payload"] == {"cookie": "b=2"}

    def test_set_requires_material(self, cli_runner, isolated_config: Path) -> None:
        result = _invoke(cli_runner, "set", "alice", "github")
        assert result.exit_code == 2

    def test_set_rejects_invalid_record(self, cli_runner, isolated_config: Path) -> None:
        result = _invoke(
            cli_runner, "set", "alice", "github", "--credentials", '{"expires_at": "garbage"}'
        )
        assert result.exit_code == 1
        assert "Invalid credential record" in result.output

    def test_set_rejects_non_object_record(self, cli_runner, isolated_config: Path) -> None:
        result = _invoke(
            cli_runner, "set", "alice", "github", "--credentials", "[1]", "--expires-at", "2030-01-01"
        )
        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert "must be a JSON object" in result.output

    def test_apply_keep_subject(self, cli_runner, isolated_config: Path) -> None:
        _invoke(cli_runner, "set", "alice", "github", "--type", "header", "--payload", '{"value": "v"}')
        result = _invoke(cli_runner, "apply", "alice", "github", "--keep-subject")
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["user"] == "alice"

    def test_apply_unknown_identity(self, cli_runner, isolated_config: Path) -> None:
        result = _invoke(cli_runner, "apply", "bob", "github")
        assert result.exit_code == 4

    def test_apply_invalid_params(self, cli_runner, isolated_config: Path) -> None:
        result = _invoke(cli_runner, "apply", "alice", "github", "--params", "[1, 2]")
        assert result.exit_code == 1

    def test_apply_expired_without_provider(self, cli_runner, isolated_config: Path) -> None:
        record = {"access_token": "a", "refresh_token": "r", "expires_at": past()}
        _invoke(cli_runner, "set", "alice", "github", "--credentials", json.dumps(record))
        result = _invoke(cli_runner, "apply", "alice", "github")
        assert result.exit_code == 10


class TestStatus:
    def test_shows_expiry(self, cli_runner, isolated_config: Path) -> None:
        record = {"access_token": "a", "refresh_token": "r", "expires_at": past()}
        _invoke(cli_runner, "set", "alice", "github", "--credentials", json.dumps(record))
        result = _invoke(cli_runner, "status", "alice", "github")
        assert result.exit_code == 0, result.output
        assert "yes" in result.stdout

    def test_missing_identity(self, cli_runner, isolated_config: Path) -> None:
        assert _invoke(cli_runner, "status", "alice", "github").exit_code == 4


class TestProviders:
    def test_lists_configured_providers(self, cli_runner, isolated_config: Path) -> None:
        save_settings(
            Settings(providers={"github": ProviderConfig(token_url="https://gh.example/token")})
        )
        result = _invoke(cli_runner, "providers")
        assert result.exit_code == 0, result.output
        assert "github" in result.stdout

    def test_invalid_settings(self, cli_runner, isolated_config: Path) -> None:
        path = isolated_config / "bad.json"
        path.write_text("{", encoding="utf-8")
        result = _invoke(cli_runner, "--config", str(path), "providers")
        assert result.exit_code == 1


class TestBuildRegistry:
    def test_resolves_secrets_for_requested_provider(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GH_ID", "cid")
        settings = Settings(
            providers={
                "github": ProviderConfig(token_url="https://gh.example/token", client_id_source="env:GH_ID"),
                "other": ProviderConfig(token_url="https://o.example/token", client_secret_source="prompt"),
            }
        )
        registry = build_registry(settings, "github")
        strategy = registry.get("github")
        assert isinstance(strategy, OAuth2TokenStrategy)
        assert strategy.client_id == "cid"
        assert "other" not in registry

    def test_refresh_through_cli(
        self, cli_runner, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json={"access_token": "fresh", "expires_in": 60})
        )
        original_init = OAuth2TokenStrategy.__init__

        def init_with_transport(self, *args: Any, **kwargs: Any) -> None:
            kwargs["transport"] = transport
            original_init(self, *args, **kwargs)

        monkeypatch.setattr(OAuth2TokenStrategy, "__init__", init_with_transport)
        save_settings(
            Settings(providers={"github": ProviderConfig(token_url="https://gh.example/token")})
        )
        record = {"access_token": "a", "refresh_token": "r", "expires_at": past()}
        _invoke(cli_runner, "set", "alice", "github", "--credentials", json.dumps(record))

        result = _invoke(cli_runner, "apply", "alice", "github")

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["auth"]["bearer"] == "fresh"
        stored = _store_data(isolated_config)["identities"][0]["credentials"]
        assert stored["access_token"] == "fresh"
        assert stored["refresh_token"] == "r"
