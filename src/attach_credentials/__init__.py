"""attach_credentials -- attach stored credentials to outbound HTTP requests.

Given request params naming a subject (the user a request is made for),
the package loads the subject's credential record for a provider, refreshes
it through the provider's token authority when it has expired, and merges
the matching auth params (``basic``, ``bearer``, ``cookie`` or ``header``)
into a copy of the request params.

Typical usage::

    from attach_credentials import CredentialResolver, MemoryIdentityStore

    resolver = CredentialResolver(provider_name="github", identity_store=store)
    params = await resolver.resolve({"url": "/user", "user": alice})

Modules:
    orchestrator: The credential-attach pipeline.
    encoders: Payload encoders and the type dispatcher.
    expiry: Expiry policies.
    refresh: Token strategies, strategy registry, default refresh step.
    store: Identity-store interface and implementations.
    options: Pipeline configuration.
    plugins: Request-plugin chain and the attach-credentials plugin.
    config: XDG-aware settings for the CLI.
    exceptions: Exception hierarchy with exit-code mapping.
"""

__version__ = "0.1.0"

from attach_credentials.encoders import apply_credentials, dispatch, make_auth_params
from attach_credentials.exceptions import (
    AmbiguousIdentity,
    AttachCredentialsError,
    ConfigError,
    CredentialError,
    CredentialsNotFound,
    IdentityNotFound,
    InitializationFailed,
    InvalidCredentialPayload,
    MissingPayload,
    PersistenceFailed,
    PluginError,
    ProviderNotRegistered,
    RefreshFailed,
    UnsupportedCredentialType,
)
from attach_credentials.expiry import are_credentials_expired, with_leeway
from attach_credentials.models import CredentialRecord, IdentityRecord
from attach_credentials.options import AttachCredentialsOptions
from attach_credentials.orchestrator import CredentialResolver, attach_credentials
from attach_credentials.refresh import (
    OAuth2TokenStrategy,
    StrategyRegistry,
    TokenStrategy,
    refresh_credentials,
)
from attach_credentials.store import (
    IdentityStore,
    JsonFileIdentityStore,
    MemoryIdentityStore,
    SubjectIdentityStore,
)

__all__ = [
    "AmbiguousIdentity",
    "AttachCredentialsError",
    "AttachCredentialsOptions",
    "ConfigError",
    "CredentialError",
    "CredentialRecord",
    "CredentialResolver",
    "CredentialsNotFound",
    "IdentityNotFound",
    "IdentityRecord",
    "IdentityStore",
    "InitializationFailed",
    "InvalidCredentialPayload",
    "JsonFileIdentityStore",
    "MemoryIdentityStore",
    "MissingPayload",
    "OAuth2TokenStrategy",
    "PersistenceFailed",
    "PluginError",
    "ProviderNotRegistered",
    "RefreshFailed",
    "StrategyRegistry",
    "SubjectIdentityStore",
    "TokenStrategy",
    "UnsupportedCredentialType",
    "apply_credentials",
    "are_credentials_expired",
    "attach_credentials",
    "dispatch",
    "make_auth_params",
    "refresh_credentials",
    "with_leeway",
]
