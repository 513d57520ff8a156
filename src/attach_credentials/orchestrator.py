"""Credential resolver -- the credential-attach pipeline.

:class:`CredentialResolver` takes outbound request params that name a
subject, finds (or initializes) the subject's credential record for the
configured provider, refreshes it when it has expired, and merges the
resulting auth params into a copy of the request params.

Each invocation is a linear chain of awaits::

    start -> load | initialize -> expiry check -> [refresh + persist]
          -> encode -> merge

Any failure aborts the chain and propagates as a
:class:`~attach_credentials.exceptions.CredentialError` (or a
:class:`~attach_credentials.exceptions.ConfigError` for a misconfigured
subject); the caller gets either fully merged params or an exception,
never both.

Initialization is single-flight: a placeholder identity is created
*before* the init hook runs, so a concurrent invocation finds the
placeholder instead of creating a second identity, and waits for it to be
populated. No in-process lock is involved; how far the guarantee reaches
depends on the identity store (see :mod:`attach_credentials.store`).

See Also:
    :class:`~attach_credentials.plugins.attach.AttachCredentialsPlugin`,
    the request-plugin wrapper around this class.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Mapping
from typing import Any, Optional

from pydantic import ValidationError

from attach_credentials.exceptions import (
    AmbiguousIdentity,
    AttachCredentialsError,
    CredentialsNotFound,
    IdentityNotFound,
    InitializationFailed,
    InvalidCredentialPayload,
    PersistenceFailed,
    RefreshFailed,
)
from attach_credentials.models import CredentialRecord, IdentityRecord
from attach_credentials.options import AttachCredentialsOptions, build_options
from attach_credentials.store import IdentityStore, SubjectIdentityStore
from attach_credentials.utils import (
    deep_merge,
    get_subject_id,
    make_request_params_extractor,
)

logger = logging.getLogger(__name__)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _parse_record(credentials: Mapping[str, Any]) -> CredentialRecord:
    try:
        return CredentialRecord.model_validate(dict(credentials))
    except ValidationError as exc:
        raise InvalidCredentialPayload(f"Malformed credential record: {exc}") from exc


def _as_mapping(credentials: Any) -> dict[str, Any]:
    if isinstance(credentials, CredentialRecord):
        return credentials.to_store()
    if isinstance(credentials, Mapping):
        return dict(credentials)
    raise InvalidCredentialPayload(
        f"credentials must be a mapping, got {type(credentials).__name__}"
    )


class CredentialResolver:
    """Attach a subject's provider credentials to request params.

    Args:
        options: An :class:`~attach_credentials.options.AttachCredentialsOptions`
            instance or a mapping of option values.
        **overrides: Individual option values, applied on top of *options*.

    Raises:
        ConfigError: If the options are invalid.

    Example::

        resolver = CredentialResolver(
            provider_name="github",
            identity_store=MemoryIdentityStore(),
        )
        params = await resolver.resolve({"url": "/user", "user": "alice"})
        params["auth"]  # {"bearer": "...", "send_immediately": True}
    """

    def __init__(
        self,
        options: AttachCredentialsOptions | Mapping[str, Any] | None = None,
        **overrides: Any,
    ) -> None:
        self.options = build_options(options, **overrides)
        self._extract_params = make_request_params_extractor(
            self.options.remove_subject_prop, self.options.subject_prop_name
        )

    @property
    def provider(self) -> str:
        return self.options.provider_name

    # ------------------------------------------------------------------ #
    # Pipeline
    # ------------------------------------------------------------------ #

    async def resolve(self, params: Mapping[str, Any]) -> Mapping[str, Any]:
        """Return a copy of *params* with the subject's credentials attached.

        When *params* has no subject, *params* itself is returned
        unchanged: no subject means no credentials were requested.

        Raises:
            IdentityNotFound: No identity and no init hook.
            AmbiguousIdentity: More than one identity for the pair.
            CredentialsNotFound: The identity holds no material.
            InitializationFailed: The init hook failed.
            ProviderNotRegistered: Expired credentials and no refresh
                strategy for the provider.
            RefreshFailed: The token authority rejected the refresh.
            PersistenceFailed: The identity store failed.
            UnsupportedCredentialType: Unknown credential ``type``.
        """
        subject = params.get(self.options.subject_prop_name)
        if not subject:
            logger.debug(
                'No "%s" prop found in request params, skipping credentials',
                self.options.subject_prop_name,
            )
            return params

        request_params = self._extract_params(params)
        subject_id = get_subject_id(subject)
        if subject_id is None:
            raise IdentityNotFound(subject_id, self.provider)

        store = self._store_for(subject, subject_id, request_params)
        record = await self._load_or_initialize(store, subject_id)
        auth_params = await _maybe_await(self.options.make_auth_params(record))
        return deep_merge(request_params, auth_params)

    def _store_for(
        self, subject: Any, subject_id: str, request_params: Mapping[str, Any]
    ) -> IdentityStore:
        if self.options.identity_store is not None:
            return self.options.identity_store
        return SubjectIdentityStore(
            subject,
            subject_id,
            credentials_method_name=self.options.credentials_method_name,
            relation_prop=self.options.relation_prop,
            credentials_prop=self.options.credentials_prop,
            request_params=request_params,
        )

    async def _load_or_initialize(
        self, store: IdentityStore, subject_id: str
    ) -> CredentialRecord:
        identities = await self._query(store, subject_id)

        if not identities:
            if self.options.init_credentials is None:
                logger.debug(
                    'Failed to load identities for user "%s" and provider "%s"',
                    subject_id,
                    self.provider,
                )
                raise IdentityNotFound(subject_id, self.provider)
            placeholder = await self._create_placeholder(store, subject_id)
            return await self._initialize(store, placeholder, subject_id)

        if len(identities) > 1:
            raise AmbiguousIdentity(subject_id, self.provider, len(identities))

        identity = identities[0]
        if identity.is_placeholder and self.options.init_credentials is not None:
            identity = await self._wait_for_placeholder(store, identity, subject_id)
            if identity.is_placeholder:
                return await self._initialize(store, identity, subject_id)

        return await self._ensure_fresh(store, identity, subject_id)

    # ------------------------------------------------------------------ #
    # Steps
    # ------------------------------------------------------------------ #

    async def _query(self, store: IdentityStore, subject_id: str) -> list[IdentityRecord]:
        try:
            return list(await store.query_records(subject_id, self.provider))
        except AttachCredentialsError:
            raise
        except Exception as exc:
            logger.debug('Error while loading identities for user "%s"', subject_id)
            raise PersistenceFailed(
                f'Failed to query identities for user "{subject_id}": {exc}', cause=exc
            ) from exc

    async def _create_placeholder(
        self, store: IdentityStore, subject_id: str
    ) -> IdentityRecord:
        # Created before the init hook runs so concurrent invocations see it.
        logger.debug(
            'Initializing credentials for user "%s" and provider "%s"',
            subject_id,
            self.provider,
        )
        try:
            return await store.create_record(subject_id, self.provider, {})
        except AttachCredentialsError:
            raise
        except Exception as exc:
            raise PersistenceFailed(
                f'Failed to create identity for user "{subject_id}": {exc}', cause=exc
            ) from exc

    async def _initialize(
        self, store: IdentityStore, placeholder: IdentityRecord, subject_id: str
    ) -> CredentialRecord:
        assert self.options.init_credentials is not None
        try:
            credentials = await _maybe_await(self.options.init_credentials(subject_id))
        except Exception as exc:
            raise InitializationFailed(
                f'Failed to initialize credentials for user "{subject_id}" and '
                f'provider "{self.provider}": {exc}',
                cause=exc,
            ) from exc
        if not credentials:
            raise InitializationFailed(
                f'Init hook returned no credentials for user "{subject_id}"'
            )

        data = _as_mapping(credentials)
        record = _parse_record(data)
        try:
            await store.update_record_credentials(placeholder, data)
        except Exception as exc:
            raise PersistenceFailed(
                f'Failed to store initialized credentials for user "{subject_id}": {exc}',
                cause=exc,
                credentials=record,
            ) from exc
        if record.subject_id is None:
            record.subject_id = subject_id
        return record

    async def _wait_for_placeholder(
        self, store: IdentityStore, identity: IdentityRecord, subject_id: str
    ) -> IdentityRecord:
        """Poll until a concurrent invocation populates *identity*.

        Returns the populated identity, or the still-empty placeholder once
        ``init_wait_timeout`` elapses.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.options.init_wait_timeout
        while loop.time() < deadline:
            await asyncio.sleep(self.options.init_poll_interval)
            identities = await self._query(store, subject_id)
            current = next((item for item in identities if item.id == identity.id), None)
            if current is None:
                break
            if not current.is_placeholder:
                return current

        logger.warning(
            'Identity %s for user "%s" and provider "%s" is still uninitialized after '
            "%.1fs; initializing it here",
            identity.id,
            subject_id,
            self.provider,
            self.options.init_wait_timeout,
        )
        return identity

    async def _ensure_fresh(
        self, store: IdentityStore, identity: IdentityRecord, subject_id: str
    ) -> CredentialRecord:
        if not identity.credentials:
            logger.debug(
                'No credentials found for user "%s" and provider "%s"',
                subject_id,
                self.provider,
            )
            raise CredentialsNotFound(subject_id, self.provider)

        record = _parse_record(identity.credentials)
        if record.is_empty():
            raise CredentialsNotFound(subject_id, self.provider)
        if record.subject_id is None:
            record.subject_id = subject_id

        expired = await _maybe_await(self.options.are_credentials_expired(record))
        if not expired:
            return record

        logger.debug(
            'credentials for user "%s" and provider "%s" are expired',
            subject_id,
            self.provider,
        )
        strategy = self.options.strategies.get(self.provider)
        try:
            refreshed = await _maybe_await(self.options.refresh_credentials(strategy, record))
        except AttachCredentialsError:
            raise
        except Exception as exc:
            raise RefreshFailed(
                f'Failed to refresh credentials for user "{subject_id}": {exc}', cause=exc
            ) from exc

        data = _as_mapping(refreshed)
        new_record = _parse_record(data)
        try:
            updated = await store.update_record_credentials(identity, data)
        except Exception as exc:
            logger.error(
                'Refreshed credentials for user "%s" and provider "%s" could not be '
                "stored; they are attached to the raised error",
                subject_id,
                self.provider,
            )
            raise PersistenceFailed(
                f'Failed to store refreshed credentials for user "{subject_id}": {exc}',
                cause=exc,
                credentials=new_record,
            ) from exc

        logger.debug("updated identity %s", updated.id)
        if new_record.subject_id is None:
            new_record.subject_id = subject_id
        return new_record


async def attach_credentials(
    params: Mapping[str, Any],
    options: AttachCredentialsOptions | Mapping[str, Any] | None = None,
    **overrides: Any,
) -> Mapping[str, Any]:
    """One-shot helper: build a :class:`CredentialResolver` and resolve *params*."""
    return await CredentialResolver(options, **overrides).resolve(params)
