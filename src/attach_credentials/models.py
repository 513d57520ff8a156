"""Canonical Pydantic models shared across all attach_credentials modules.

The models fall into three groups:

**Stored state** -- what the identity store holds:
    :class:`CredentialRecord` and :class:`IdentityRecord`.

**Payloads** -- the typed credential material consumed by the encoders in
:mod:`attach_credentials.encoders`:
    :class:`BasicPayload`, :class:`BearerPayload`, :class:`CookiePayload`,
    and :class:`HeaderPayload`.

**CLI settings** -- serialised as JSON in the user's config directory:
    :class:`ProviderConfig` and :class:`Settings`.

Stored records often come from JavaScript-era identity stores, so every
model accepts camelCase aliases (``expiresAt``, ``sendImmediately``) as well
as the snake_case field names.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


# --- Stored state ---


class CredentialRecord(BaseModel):
    """Stored authentication state for one (subject, provider) pair.

    The orchestrator only looks at :attr:`expires_at` and
    :attr:`subject_id`; everything else is opaque material handed to the
    encoders or the refresh strategy. Two shapes are common:

    * typed material -- ``type`` plus ``payload``, e.g.
      ``{"type": "basic", "payload": {"username": "u", "password": "p"}}``;
    * OAuth2 token material -- ``access_token``, ``refresh_token`` and the
      expiry bookkeeping fields produced by
      :func:`~attach_credentials.refresh.refresh_credentials`.

    Unknown keys are preserved in ``model_extra`` so that a store can round
    trip provider-specific fields untouched.
    """

    model_config = ConfigDict(
        extra="allow", populate_by_name=True, coerce_numbers_to_str=True
    )

    type: Optional[str] = Field(default=None, description="Encoder type tag")
    payload: Optional[dict[str, Any]] = Field(
        default=None, description="Encoder input for typed material"
    )
    access_token: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("access_token", "accessToken")
    )
    refresh_token: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("refresh_token", "refreshToken")
    )
    token_type: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("token_type", "tokenType")
    )
    issued_on: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("issued_on", "issuedOn")
    )
    expires_in: Optional[int] = Field(
        default=None,
        description="Lifetime in seconds as reported by the token authority",
        validation_alias=AliasChoices("expires_in", "expiresIn"),
    )
    expires_at: Optional[datetime] = Field(
        default=None,
        description="When this credential expires (None = never)",
        validation_alias=AliasChoices("expires_at", "expiresAt"),
    )
    subject_id: Optional[str] = Field(
        default=None,
        description="Identifier of the subject the credential belongs to",
        validation_alias=AliasChoices("subject_id", "subjectId", "userId"),
    )

    def is_empty(self) -> bool:
        """Return ``True`` when the record carries no credential material at all."""
        return (
            self.type is None
            and not self.payload
            and self.access_token is None
            and self.refresh_token is None
        )

    def to_store(self) -> dict[str, Any]:
        """Serialise the record for an identity store, dropping unset fields."""
        return self.model_dump(mode="json", exclude_none=True)


class IdentityRecord(BaseModel):
    """One identity-store entry linking a subject to a provider's credentials.

    A freshly created placeholder has ``credentials == {}``; it is filled in
    once the init hook has produced real material.
    """

    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str
    subject_id: str
    provider: str
    credentials: Optional[dict[str, Any]] = None

    @property
    def is_placeholder(self) -> bool:
        return self.credentials is not None and not self.credentials


# --- Payloads ---


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    auth_type: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("auth_type", "authType")
    )


class BasicPayload(_Payload):
    """Username/password material for HTTP Basic authentication."""

    username: Optional[str] = None
    password: Optional[str] = None
    send_immediately: bool = Field(
        default=True,
        validation_alias=AliasChoices("send_immediately", "sendImmediately"),
    )
    auth_type: Optional[str] = Field(
        default="basic", validation_alias=AliasChoices("auth_type", "authType")
    )


class BearerPayload(_Payload):
    """A bearer token."""

    token: Optional[str] = None
    send_immediately: bool = Field(
        default=True,
        validation_alias=AliasChoices("send_immediately", "sendImmediately"),
    )
    auth_type: Optional[str] = Field(
        default="oauth", validation_alias=AliasChoices("auth_type", "authType")
    )


class CookiePayload(_Payload):
    """A raw ``Cookie`` header fragment such as ``"session=abc"``."""

    cookie: Optional[str] = None
    auth_type: Optional[str] = Field(
        default="cookie", validation_alias=AliasChoices("auth_type", "authType")
    )


class HeaderPayload(_Payload):
    """An arbitrary header; ``name`` defaults to ``authorization``."""

    name: str = "authorization"
    value: str


# --- CLI settings ---


class ProviderConfig(BaseModel):
    """Token endpoint settings for one provider in :class:`Settings`.

    Client id and secret are given as credential *sources*
    (``env:VAR``, ``file:/path``, ``prompt``) and resolved lazily by
    :func:`~attach_credentials.config.resolve_credential`.
    """

    token_url: str
    client_id_source: Optional[str] = None
    client_secret_source: Optional[str] = None
    scopes: list[str] = Field(default_factory=list)
    timeout: float = Field(default=30.0, description="Token request timeout in seconds")


class Settings(BaseModel):
    """CLI configuration persisted at ``~/.config/attach-credentials/config.json``.

    Loaded and saved by :func:`~attach_credentials.config.load_settings` and
    :func:`~attach_credentials.config.save_settings`.
    """

    store_path: Optional[str] = Field(
        default=None,
        description="JSON identity store file (defaults to the data directory)",
    )
    subject_prop_name: str = "user"
    providers: dict[str, ProviderConfig] = Field(default_factory=dict)
