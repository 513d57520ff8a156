"""Exception hierarchy for attach_credentials.

All exceptions inherit from :class:`AttachCredentialsError`, which carries an
``exit_code`` attribute mapped to a constant from
:mod:`attach_credentials.exit_codes`. The CLI entry point catches
``AttachCredentialsError`` and exits with the matching code; library callers
usually inspect :attr:`CredentialError.retryable` instead.

Subclass hierarchy::

    AttachCredentialsError            (exit 1)
    +-- ConfigError                   (exit 1)
    +-- PluginError                   (exit 10)
    +-- CredentialError               (exit 3)
        +-- UnsupportedCredentialType (exit 3)
        +-- MissingPayload            (exit 3)
        +-- InvalidCredentialPayload  (exit 3)
        +-- InitializationFailed      (exit 3)
        +-- IdentityNotFound          (exit 4)
        +-- AmbiguousIdentity         (exit 4)
        +-- CredentialsNotFound       (exit 4)
        +-- ProviderNotRegistered     (exit 10)
        +-- RefreshFailed             (exit 6, retryable)
        +-- PersistenceFailed         (exit 6, retryable)
"""

from __future__ import annotations

from typing import Any, Optional

from attach_credentials.exit_codes import (
    EXIT_CREDENTIAL_FAILURE,
    EXIT_GENERIC_FAILURE,
    EXIT_IDENTITY_FAILURE,
    EXIT_PLUGIN_ERROR,
    EXIT_TRANSIENT_FAILURE,
)


class AttachCredentialsError(Exception):
    """Base exception for all attach_credentials errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`attach_credentials.exit_codes`.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(AttachCredentialsError):
    """Raised for configuration problems (invalid options, bad settings file, bad credential sources)."""

    exit_code = EXIT_GENERIC_FAILURE


class PluginError(AttachCredentialsError):
    """Raised when a request plugin is registered twice or cannot be found."""

    exit_code = EXIT_PLUGIN_ERROR


class CredentialError(AttachCredentialsError):
    """Base class for failures of the credential-attach pipeline.

    ``retryable`` is ``True`` only for network-class failures (the token
    authority or the identity store misbehaved). Callers may retry those at
    a higher layer; every other subclass signals a data or deployment
    defect that a retry will not fix.
    """

    exit_code = EXIT_CREDENTIAL_FAILURE
    retryable: bool = False


class UnsupportedCredentialType(CredentialError):
    """Raised when a credential record names a type with no encoder."""

    def __init__(self, credential_type: Any):
        super().__init__(f"credentials type {credential_type} is not supported")
        self.credential_type = credential_type


class MissingPayload(CredentialError):
    """Raised when a credential record has no payload to encode."""

    def __init__(self, message: str = "payload must not be None"):
        super().__init__(message)


class InvalidCredentialPayload(CredentialError):
    """Raised when a payload is present but does not fit its credential type."""


class IdentityNotFound(CredentialError):
    """Raised when the identity store has no entry for the subject and provider."""

    exit_code = EXIT_IDENTITY_FAILURE

    def __init__(self, subject_id: Any, provider: str):
        super().__init__(
            f'Failed to load identities for user "{subject_id}" and provider "{provider}"'
        )
        self.subject_id = subject_id
        self.provider = provider


class AmbiguousIdentity(CredentialError):
    """Raised when the identity store holds several entries for one subject and provider."""

    exit_code = EXIT_IDENTITY_FAILURE

    def __init__(self, subject_id: Any, provider: str, count: int):
        super().__init__(
            f'Found {count} identities for user "{subject_id}" and provider '
            f'"{provider}"; expected exactly one'
        )
        self.subject_id = subject_id
        self.provider = provider
        self.count = count


class CredentialsNotFound(CredentialError):
    """Raised when the identity entry exists but holds no credential material."""

    exit_code = EXIT_IDENTITY_FAILURE

    def __init__(self, subject_id: Any, provider: str):
        super().__init__(
            f'No credentials found for user "{subject_id}" and provider "{provider}"'
        )
        self.subject_id = subject_id
        self.provider = provider


class ProviderNotRegistered(CredentialError):
    """Raised when no refresh strategy is registered for a provider.

    This is a deployment defect, not a transient failure.
    """

    exit_code = EXIT_PLUGIN_ERROR

    def __init__(self, provider: str, available: Optional[list[str]] = None):
        message = f'Auth provider with name "{provider}" is not registered'
        if available is not None:
            message += f". Available providers: {', '.join(available) or '(none)'}"
        super().__init__(message)
        self.provider = provider


class RefreshFailed(CredentialError):
    """Raised when the token authority rejects or fails a refresh exchange."""

    exit_code = EXIT_TRANSIENT_FAILURE
    retryable = True

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class PersistenceFailed(CredentialError):
    """Raised when the identity store cannot be read or written.

    When the failure happens after a successful refresh, ``credentials``
    holds the freshly issued record so the caller can still save or use it.
    """

    exit_code = EXIT_TRANSIENT_FAILURE
    retryable = True

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        credentials: Any = None,
    ):
        super().__init__(message)
        self.cause = cause
        self.credentials = credentials


class InitializationFailed(CredentialError):
    """Raised when the init hook cannot produce credentials for a new identity."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause
