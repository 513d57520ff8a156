"""Tests for attach_credentials.refresh -- token strategies and the refresh step."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs

import httpx
import pytest

from attach_credentials.exceptions import ProviderNotRegistered, RefreshFailed
from attach_credentials.models import CredentialRecord
from attach_credentials.refresh import (
    OAuth2TokenStrategy,
    StrategyRegistry,
    refresh_credentials,
)

from conftest import ScriptedStrategy

TOKEN_URL = "https://auth.example.com/token"


def _strategy(handler, **kwargs) -> OAuth2TokenStrategy:
    return OAuth2TokenStrategy(TOKEN_URL, transport=httpx.MockTransport(handler), **kwargs)


# ---------------------------------------------------------------------------
# OAuth2TokenStrategy
# ---------------------------------------------------------------------------


class TestOAuth2TokenStrategy:
    @pytest.mark.asyncio
    async def test_posts_refresh_grant(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["form"] = parse_qs(request.content.decode())
            return httpx.Response(200, json={"access_token": "a", "expires_in": 60})

        strategy = _strategy(handler, client_id="cid", client_secret="sec", scopes=["read", "write"])
        data = await strategy.request_token("r-1", {"grant_type": "refresh_token"})

        assert data == {"access_token": "a", "expires_in": 60}
        assert seen["url"] == TOKEN_URL
        assert seen["form"] == {
            "grant_type": ["refresh_token"],
            "refresh_token": ["r-1"],
            "client_id": ["cid"],
            "client_secret": ["sec"],
            "scope": ["read write"],
        }

    @pytest.mark.asyncio
    async def test_error_status(self) -> None:
        strategy = _strategy(lambda request: httpx.Response(400, text="invalid_grant"))
        with pytest.raises(RefreshFailed, match="status 400: invalid_grant") as exc_info:
            await strategy.request_token("r", {})
        assert exc_info.value.retryable is True
        assert isinstance(exc_info.value.cause, httpx.HTTPStatusError)

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(RefreshFailed, match="connection refused"):
            await _strategy(handler).request_token("r", {})

    @pytest.mark.asyncio
    async def test_non_json_body(self) -> None:
        strategy = _strategy(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(RefreshFailed, match="non-JSON"):
            await strategy.request_token("r", {})

    @pytest.mark.asyncio
    async def test_missing_access_token(self) -> None:
        strategy = _strategy(lambda request: httpx.Response(200, json={"token_type": "Bearer"}))
        with pytest.raises(RefreshFailed, match="access_token"):
            await strategy.request_token("r", {})


# ---------------------------------------------------------------------------
# StrategyRegistry
# ---------------------------------------------------------------------------


class TestStrategyRegistry:
    def test_register_and_get(self) -> None:
        registry = StrategyRegistry()
        strategy = ScriptedStrategy()
        registry.register("github", strategy)
        assert registry.get("github") is strategy
        assert "github" in registry
        assert registry.list_providers() == ["github"]

    def test_from_mapping(self) -> None:
        registry = StrategyRegistry({"b": ScriptedStrategy(), "a": ScriptedStrategy()})
        assert registry.list_providers() == ["a", "b"]

    def test_missing_provider(self) -> None:
        registry = StrategyRegistry({"google": ScriptedStrategy()})
        with pytest.raises(ProviderNotRegistered) as exc_info:
            registry.get("github")
        message = str(exc_info.value)
        assert 'Auth provider with name "github" is not registered' in message
        assert "google" in message
        assert exc_info.value.retryable is False


# ---------------------------------------------------------------------------
# refresh_credentials
# ---------------------------------------------------------------------------


class TestRefreshCredentials:
    @pytest.mark.asyncio
    async def test_builds_new_record(self) -> None:
        strategy = ScriptedStrategy(
            {"access_token": "new", "refresh_token": "r-2", "expires_in": 3600, "token_type": "mac"}
        )
        record = CredentialRecord(access_token="old", refresh_token="r-1", subject_id="alice")
        before = datetime.now(timezone.utc)

        result = await refresh_credentials(strategy, record)

        assert strategy.calls == [("r-1", {"grant_type": "refresh_token"})]
        assert result.access_token == "new"
        assert result.refresh_token == "r-2"
        assert result.token_type == "mac"
        assert result.subject_id == "alice"
        assert result.issued_on >= before
        assert result.expires_at == result.issued_on + timedelta(seconds=3600)

    @pytest.mark.asyncio
    async def test_keeps_refresh_token_and_defaults_bearer(self) -> None:
        strategy = ScriptedStrategy({"access_token": "new"})
        result = await refresh_credentials(strategy, CredentialRecord(refresh_token="r-1"))
        assert result.refresh_token == "r-1"
        assert result.token_type == "Bearer"
        assert result.expires_at is None

    @pytest.mark.asyncio
    async def test_issued_on_from_response(self) -> None:
        strategy = ScriptedStrategy(
            {"access_token": "new", "issued_on": "2030-01-01T00:00:00Z", "expires_in": 60}
        )
        result = await refresh_credentials(strategy, CredentialRecord(refresh_token="r"))
        assert result.expires_at == datetime(2030, 1, 1, 0, 1, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_no_refresh_token(self) -> None:
        strategy = ScriptedStrategy()
        with pytest.raises(RefreshFailed, match="No refresh token"):
            await refresh_credentials(strategy, CredentialRecord(access_token="a"))
        assert strategy.calls == []

    @pytest.mark.asyncio
    async def test_strategy_failure_propagates(self, failing_strategy: ScriptedStrategy) -> None:
        with pytest.raises(RefreshFailed, match="status 400"):
            await refresh_credentials(failing_strategy, CredentialRecord(refresh_token="r"))

    @pytest.mark.asyncio
    async def test_malformed_response(self) -> None:
        strategy = ScriptedStrategy({"access_token": "a", "expires_in": "soon"})
        with pytest.raises(RefreshFailed, match="Malformed"):
            await refresh_credentials(strategy, CredentialRecord(refresh_token="r"))

    @pytest.mark.asyncio
    async def test_end_to_end_with_mock_transport(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=json.dumps({"access_token": "fresh", "expires_in": 10}))

        result = await refresh_credentials(_strategy(handler), CredentialRecord(refresh_token="r"))
        assert result.access_token == "fresh"
        assert result.to_store()["token_type"] == "Bearer"
