"""Refresh strategies -- exchanging stale credentials for fresh ones.

This module contains the three pieces of the refresh step:

- :class:`TokenStrategy` -- the transport that talks to a provider's token
  authority. :class:`OAuth2TokenStrategy` is the stock implementation,
  posting a ``refresh_token`` grant (:rfc:`6749` section 6) with
  :mod:`httpx`.
- :class:`StrategyRegistry` -- an explicit provider-name -> strategy
  mapping with a checked lookup.
- :func:`refresh_credentials` -- the default refresh procedure that drives
  a strategy and turns the token response into a new
  :class:`~attach_credentials.models.CredentialRecord`.

See Also:
    :class:`~attach_credentials.orchestrator.CredentialResolver`, which
    calls :func:`refresh_credentials` when a record has expired.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from attach_credentials.exceptions import ProviderNotRegistered, RefreshFailed
from attach_credentials.models import CredentialRecord

logger = logging.getLogger(__name__)


class TokenStrategy(ABC):
    """Transport to a provider's token authority.

    A strategy knows *where* and *how* to ask for a token; what to do with
    the answer is up to :func:`refresh_credentials` (or a replacement
    configured on the options).
    """

    @abstractmethod
    async def request_token(
        self, refresh_token: str, params: Mapping[str, str]
    ) -> dict[str, Any]:
        """Exchange *refresh_token* for a new token response.

        Args:
            refresh_token: The stored refresh token.
            params: Extra form fields, at least ``grant_type``.

        Returns:
            The parsed token response. Must contain ``access_token``.

        Raises:
            RefreshFailed: On transport or protocol errors.
        """
        ...


class OAuth2TokenStrategy(TokenStrategy):
    """Refresh tokens against a standard OAuth2 token endpoint.

    Args:
        token_url: The provider's token endpoint.
        client_id: Optional client id sent with the grant.
        client_secret: Optional client secret sent with the grant.
        scopes: Optional scopes, sent space-separated as ``scope``.
        timeout: Request timeout in seconds.
        transport: Optional :mod:`httpx` transport, mainly for tests.

    Example::

        strategy = OAuth2TokenStrategy(
            "https://github.com/login/oauth/access_token",
            client_id="abc",
            client_secret="s3cr3t",
        )
        token_data = await strategy.request_token(
            "r-123", {"grant_type": "refresh_token"}
        )
    """

    def __init__(
        self,
        token_url: str,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        scopes: tuple[str, ...] | list[str] = (),
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.scopes = list(scopes)
        self.timeout = timeout
        self._transport = transport

    async def request_token(
        self, refresh_token: str, params: Mapping[str, str]
    ) -> dict[str, Any]:
        data: dict[str, str] = {**params, "refresh_token": refresh_token}
        data.setdefault("grant_type", "refresh_token")
        if self.client_id:
            data["client_id"] = self.client_id
        if self.client_secret:
            data["client_secret"] = self.client_secret
        if self.scopes:
            data["scope"] = " ".join(self.scopes)

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self.token_url,
                    data=data,
                    headers={"Accept": "application/json"},
                )
                response.raise_for_status()
                token_data: dict[str, Any] = response.json()
        except httpx.HTTPStatusError as exc:
            raise RefreshFailed(
                f"Token refresh failed with status {exc.response.status_code}: "
                f"{exc.response.text}",
                cause=exc,
            ) from exc
        except httpx.HTTPError as exc:
            raise RefreshFailed(f"Token refresh failed: {exc}", cause=exc) from exc
        except ValueError as exc:
            raise RefreshFailed(
                f"Token refresh returned a non-JSON body: {exc}", cause=exc
            ) from exc

        if not isinstance(token_data, dict) or "access_token" not in token_data:
            raise RefreshFailed("Token refresh response missing 'access_token' field")
        return token_data


class StrategyRegistry:
    """Explicit mapping from provider name to :class:`TokenStrategy`.

    Example::

        registry = StrategyRegistry()
        registry.register("github", OAuth2TokenStrategy(token_url))
        strategy = registry.get("github")
    """

    def __init__(self, strategies: Optional[Mapping[str, TokenStrategy]] = None) -> None:
        self._strategies: dict[str, TokenStrategy] = dict(strategies or {})

    def register(self, provider: str, strategy: TokenStrategy) -> None:
        """Register *strategy* for *provider*, replacing any previous one."""
        self._strategies[provider] = strategy

    def get(self, provider: str) -> TokenStrategy:
        """Return the strategy for *provider*.

        Raises:
            ProviderNotRegistered: If nothing is registered under that name.
        """
        strategy = self._strategies.get(provider)
        if strategy is None:
            raise ProviderNotRegistered(provider, available=self.list_providers())
        return strategy

    def list_providers(self) -> list[str]:
        return sorted(self._strategies)

    def __contains__(self, provider: object) -> bool:
        return provider in self._strategies


async def refresh_credentials(
    strategy: TokenStrategy, record: CredentialRecord
) -> CredentialRecord:
    """Refresh *record* through *strategy* and build the replacement record.

    Sends ``grant_type=refresh_token`` with the stored refresh token. The
    new record carries ``access_token``, ``refresh_token`` (the old one is
    kept when the authority does not rotate it), ``issued_on`` (from the
    response, else now), ``expires_in``, ``expires_at = issued_on +
    expires_in`` and ``token_type`` (default ``"Bearer"``).

    Raises:
        RefreshFailed: If the record has no refresh token or the exchange
            fails.
    """
    if not record.refresh_token:
        raise RefreshFailed("No refresh token available")

    try:
        token_data = await strategy.request_token(
            record.refresh_token, {"grant_type": "refresh_token"}
        )
    except RefreshFailed:
        raise
    except httpx.HTTPError as exc:
        raise RefreshFailed(f"Token refresh failed: {exc}", cause=exc) from exc

    try:
        credentials = CredentialRecord(
            access_token=token_data["access_token"],
            refresh_token=token_data.get("refresh_token") or record.refresh_token,
            token_type=token_data.get("token_type") or "Bearer",
            expires_in=token_data.get("expires_in"),
            issued_on=token_data.get("issued_on") or datetime.now(timezone.utc),
            subject_id=record.subject_id,
        )
    except (KeyError, ValidationError) as exc:
        raise RefreshFailed(f"Malformed token response: {exc}", cause=exc) from exc

    if credentials.expires_in is not None and credentials.issued_on is not None:
        credentials.expires_at = credentials.issued_on + timedelta(
            seconds=credentials.expires_in
        )
    logger.debug(
        "Refreshed credentials for subject %s (expires at %s)",
        credentials.subject_id,
        credentials.expires_at,
    )
    return credentials
