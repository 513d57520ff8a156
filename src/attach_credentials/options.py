"""Configuration surface of the credential-attach pipeline.

:class:`AttachCredentialsOptions` bundles the provider name, the handling of
the subject property, the collaborators (identity store, refresh strategy
registry, init hook) and the overridable pipeline steps. Every step has a
default; callers substitute their own by passing a different callable::

    options = AttachCredentialsOptions(
        provider_name="github",
        identity_store=store,
        strategies={"github": OAuth2TokenStrategy(token_url)},
        are_credentials_expired=with_leeway(30),
    )

Overridable steps may be plain functions or coroutine functions.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from attach_credentials.encoders import make_auth_params
from attach_credentials.exceptions import ConfigError
from attach_credentials.expiry import are_credentials_expired
from attach_credentials.refresh import StrategyRegistry, refresh_credentials
from attach_credentials.store import IdentityStore


class AttachCredentialsOptions(BaseModel):
    """Options for :class:`~attach_credentials.orchestrator.CredentialResolver`.

    Attributes:
        provider_name: Provider whose credentials are attached.
        remove_subject_prop: Drop the subject property from the params
            handed downstream.
        subject_prop_name: Request-params key holding the subject.
        credentials_method_name: Name of the subject's query method, used
            when no ``identity_store`` is configured and the subject object
            acts as the store. Called as ``method(provider, request_params)``.
        subject_relation_prop: Subject attribute holding its identities when
            it has no query method. ``None`` picks ``"credentials"`` for
            providers whose name ends in ``-link`` and ``"identities"``
            otherwise (see :attr:`relation_prop`).
        credentials_prop: Identity attribute (or key) holding the stored
            credentials.
        init_credentials: Optional hook ``(subject_id) -> credentials``
            that produces material for a subject with no identity yet.
        are_credentials_expired: ``(record) -> bool`` expiry policy.
        refresh_credentials: ``(strategy, record) -> record`` refresh step.
        make_auth_params: ``(record) -> params`` encoding step.
        strategies: Provider name -> token strategy registry. A plain
            mapping is accepted and wrapped.
        identity_store: The identity store. ``None`` means "ask the
            subject".
        init_wait_timeout: Seconds to wait for a concurrent invocation to
            populate a placeholder identity before taking it over.
        init_poll_interval: Seconds between placeholder polls.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    provider_name: str
    remove_subject_prop: bool = True
    subject_prop_name: str = "user"
    credentials_method_name: str = "get_credentials_for_provider"
    subject_relation_prop: Optional[str] = None
    credentials_prop: str = "credentials"
    init_credentials: Optional[Callable[..., Any]] = None
    are_credentials_expired: Callable[..., Any] = are_credentials_expired
    refresh_credentials: Callable[..., Any] = refresh_credentials
    make_auth_params: Callable[..., Any] = make_auth_params
    strategies: StrategyRegistry = Field(default_factory=StrategyRegistry)
    identity_store: Optional[IdentityStore] = None
    init_wait_timeout: float = Field(default=10.0, ge=0)
    init_poll_interval: float = Field(default=0.05, gt=0)

    @field_validator("strategies", mode="before")
    @classmethod
    def _wrap_strategies(cls, value: Any) -> Any:
        if value is None:
            return StrategyRegistry()
        if isinstance(value, Mapping):
            return StrategyRegistry(value)
        return value

    @property
    def relation_prop(self) -> str:
        """The subject relation to read identities from."""
        if self.subject_relation_prop:
            return self.subject_relation_prop
        return "credentials" if self.provider_name.endswith("-link") else "identities"


def build_options(
    options: AttachCredentialsOptions | Mapping[str, Any] | None = None, **overrides: Any
) -> AttachCredentialsOptions:
    """Validate options, turning pydantic errors into :class:`ConfigError`.

    Accepts an existing options object (returned as a copy with
    *overrides* applied), a mapping, or keyword arguments.

    Raises:
        ConfigError: Naming the first invalid field, e.g.
            ``options.provider_name must be a string``.
    """
    if isinstance(options, AttachCredentialsOptions):
        data: dict[str, Any] = {
            name: getattr(options, name) for name in AttachCredentialsOptions.model_fields
        }
    else:
        data = dict(options or {})
    data.update(overrides)

    try:
        return AttachCredentialsOptions(**data)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "options"
        if field == "provider_name":
            message = "options.provider_name must be a string"
        else:
            message = f"options.{field} is invalid: {first['msg']}"
        raise ConfigError(message) from exc
