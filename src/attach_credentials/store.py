"""Identity stores -- where credential records live.

The orchestrator talks to storage only through the three coroutines of
:class:`IdentityStore`:

- ``query_records(subject_id, provider)`` -- all entries for the pair;
- ``create_record(subject_id, provider, credentials)`` -- a new entry;
- ``update_record_credentials(record, credentials)`` -- replace an entry's
  credentials in place.

Three implementations ship with the package:

- :class:`MemoryIdentityStore` -- a process-local dict, handy for tests and
  for callers that keep credentials elsewhere and only need the pipeline.
- :class:`JsonFileIdentityStore` -- one JSON file written atomically with
  ``0o600`` permissions; used by the CLI.
- :class:`SubjectIdentityStore` -- adapts a subject object (an ORM user)
  that knows how to load its own identities.

Single-flight initialization relies on the store making a created record
visible to subsequent queries before the creator has populated it.
:class:`MemoryIdentityStore` and :class:`JsonFileIdentityStore` satisfy that
within one process: their ``create_record`` finishes without suspending, so
no other task can query in between. :class:`JsonFileIdentityStore` takes no
file lock, so two processes sharing one file can each append a placeholder.
:class:`SubjectIdentityStore` gives whatever guarantee the subject's own
storage gives.
"""

from __future__ import annotations

import inspect
import json
import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Mapping, MutableMapping
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from attach_credentials.config import atomic_write
from attach_credentials.exceptions import ConfigError, PersistenceFailed
from attach_credentials.models import IdentityRecord

logger = logging.getLogger(__name__)


class IdentityStore(ABC):
    """Async interface to the external identity store."""

    @abstractmethod
    async def query_records(self, subject_id: str, provider: str) -> list[IdentityRecord]:
        """Return every identity entry for *subject_id* and *provider*."""
        ...

    @abstractmethod
    async def create_record(
        self, subject_id: str, provider: str, credentials: Mapping[str, Any]
    ) -> IdentityRecord:
        """Create a new identity entry and return it."""
        ...

    @abstractmethod
    async def update_record_credentials(
        self, record: IdentityRecord, credentials: Mapping[str, Any]
    ) -> IdentityRecord:
        """Replace the credentials of *record* and return the updated entry."""
        ...


class MemoryIdentityStore(IdentityStore):
    """Identity store backed by an in-process list.

    Example::

        store = MemoryIdentityStore()
        await store.create_record("alice", "github", {"type": "bearer", "payload": {...}})
    """

    def __init__(self, records: Optional[list[IdentityRecord]] = None) -> None:
        self._records: list[IdentityRecord] = list(records or [])

    @property
    def records(self) -> list[IdentityRecord]:
        return list(self._records)

    async def query_records(self, subject_id: str, provider: str) -> list[IdentityRecord]:
        return [
            record.model_copy(deep=True)
            for record in self._records
            if record.subject_id == subject_id and record.provider == provider
        ]

    async def create_record(
        self, subject_id: str, provider: str, credentials: Mapping[str, Any]
    ) -> IdentityRecord:
        record = IdentityRecord(
            id=uuid.uuid4().hex,
            subject_id=subject_id,
            provider=provider,
            credentials=dict(credentials),
        )
        self._records.append(record)
        return record.model_copy(deep=True)

    async def update_record_credentials(
        self, record: IdentityRecord, credentials: Mapping[str, Any]
    ) -> IdentityRecord:
        for index, stored in enumerate(self._records):
            if stored.id == record.id:
                updated = stored.model_copy(update={"credentials": dict(credentials)})
                self._records[index] = updated
                return updated.model_copy(deep=True)
        raise PersistenceFailed(f"Identity '{record.id}' does not exist")


class JsonFileIdentityStore(IdentityStore):
    """Identity store persisted as a single JSON file.

    The file holds ``{"identities": [...]}``. Every write rewrites the whole
    file atomically (temp file + ``os.replace``) with ``0o600``
    permissions.

    Meant for a single process such as the CLI. File I/O runs inline on the
    event loop so that ``create_record`` never suspends between its read and
    its write.

    Args:
        path: Location of the JSON file. Created on first write.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> list[IdentityRecord]:
        if not self._path.is_file():
            return []
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return [IdentityRecord.model_validate(item) for item in data.get("identities", [])]
        except (json.JSONDecodeError, ValidationError, AttributeError, OSError) as exc:
            raise PersistenceFailed(
                f"Cannot read identity store {self._path}: {exc}", cause=exc
            ) from exc

    def _save(self, records: list[IdentityRecord]) -> None:
        data = {"identities": [record.model_dump(mode="json") for record in records]}
        try:
            atomic_write(self._path, json.dumps(data, indent=2) + "\n", mode=0o600)
        except OSError as exc:
            raise PersistenceFailed(
                f"Cannot write identity store {self._path}: {exc}", cause=exc
            ) from exc

    async def query_records(self, subject_id: str, provider: str) -> list[IdentityRecord]:
        return [
            record
            for record in self._load()
            if record.subject_id == subject_id and record.provider == provider
        ]

    async def create_record(
        self, subject_id: str, provider: str, credentials: Mapping[str, Any]
    ) -> IdentityRecord:
        records = self._load()
        record = IdentityRecord(
            id=uuid.uuid4().hex,
            subject_id=subject_id,
            provider=provider,
            credentials=dict(credentials),
        )
        records.append(record)
        self._save(records)
        logger.debug("Created identity %s for %s/%s", record.id, subject_id, provider)
        return record

    async def update_record_credentials(
        self, record: IdentityRecord, credentials: Mapping[str, Any]
    ) -> IdentityRecord:
        records = self._load()
        for index, stored in enumerate(records):
            if stored.id == record.id:
                records[index] = stored.model_copy(update={"credentials": dict(credentials)})
                self._save(records)
                return records[index]
        raise PersistenceFailed(f"Identity '{record.id}' does not exist in {self._path}")


async def _resolve(result: Any) -> Any:
    if inspect.isawaitable(result):
        result = await result
    return result


def _get(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


class SubjectIdentityStore(IdentityStore):
    """Adapter that lets a subject object act as its own identity store.

    Identities are read from the first of these the subject provides:

    - a query method named by *credentials_method_name*, called as
      ``method(provider, request_params)`` so that it can derive material
      from the outbound request;
    - a relation attribute named by *relation_prop*: either a callable
      ``relation(provider)`` or an iterable of identities, filtered on
      their ``provider``.

    An identity is an :class:`~attach_credentials.models.IdentityRecord`, a
    mapping, or any object with an ``id``; its credentials live under
    *credentials_prop*.

    Writes go through ``create_identity(provider, credentials)`` and
    ``update_identity(identity_id, credentials)`` when the subject has them.
    Otherwise new identities are created with
    ``relation.create({"provider": ..., credentials_prop: ...})`` and loaded
    identities are updated in place, through
    ``identity.update_attribute(credentials_prop, credentials)`` when
    available. Every method may be a plain function or a coroutine.
    """

    def __init__(
        self,
        subject: Any,
        subject_id: str,
        credentials_method_name: str = "get_credentials_for_provider",
        relation_prop: str = "identities",
        credentials_prop: str = "credentials",
        request_params: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self._subject = subject
        self._subject_id = subject_id
        self._method_name = credentials_method_name
        self._relation_prop = relation_prop
        self._credentials_prop = credentials_prop
        self._request_params = dict(request_params or {})
        # identity id -> the subject-side object it was read from
        self._loaded: dict[str, Any] = {}

    def _normalize(self, item: Any, provider: str) -> IdentityRecord:
        if isinstance(item, IdentityRecord):
            self._loaded[item.id] = item
            return item
        identity_id = _get(item, "id")
        if identity_id is None or isinstance(item, (str, bytes)):
            raise ConfigError(
                f"subject.{self._method_name} returned an unsupported identity: "
                f"{type(item).__name__}"
            )
        try:
            record = IdentityRecord.model_validate(
                {
                    "id": identity_id,
                    "subject_id": _get(item, "subject_id") or self._subject_id,
                    "provider": _get(item, "provider") or provider,
                    "credentials": _get(item, self._credentials_prop),
                }
            )
        except ValidationError as exc:
            raise ConfigError(f"Invalid identity {identity_id!r}: {exc}") from exc
        self._loaded[record.id] = item
        return record

    def _relation(self) -> Any:
        return getattr(self._subject, self._relation_prop, None)

    async def _query_relation(self, provider: str) -> Any:
        relation = self._relation()
        if relation is None or isinstance(relation, (str, bytes, Mapping)):
            raise ConfigError(
                f"subject.{self._method_name} must be callable or "
                f"subject.{self._relation_prop} must hold identities"
            )
        if callable(relation):
            return await _resolve(relation(provider))
        return [item for item in relation if _get(item, "provider") == provider]

    async def query_records(self, subject_id: str, provider: str) -> list[IdentityRecord]:
        method = getattr(self._subject, self._method_name, None)
        if callable(method):
            result = await _resolve(method(provider, self._request_params))
        else:
            result = await self._query_relation(provider)
        if not result:
            return []
        if isinstance(result, (IdentityRecord, Mapping)):
            result = [result]
        return [self._normalize(item, provider) for item in result]

    async def create_record(
        self, subject_id: str, provider: str, credentials: Mapping[str, Any]
    ) -> IdentityRecord:
        create_identity = getattr(self._subject, "create_identity", None)
        if callable(create_identity):
            result = await _resolve(create_identity(provider, dict(credentials)))
            return self._normalize(result, provider)

        create = getattr(self._relation(), "create", None)
        if not callable(create):
            raise ConfigError(
                f"subject.create_identity or subject.{self._relation_prop}.create "
                "must be callable"
            )
        result = await _resolve(
            create({"provider": provider, self._credentials_prop: dict(credentials)})
        )
        return self._normalize(result, provider)

    async def update_record_credentials(
        self, record: IdentityRecord, credentials: Mapping[str, Any]
    ) -> IdentityRecord:
        update_identity = getattr(self._subject, "update_identity", None)
        if callable(update_identity):
            result = await _resolve(update_identity(record.id, dict(credentials)))
            if result is not None:
                return self._normalize(result, record.provider)
            return record.model_copy(update={"credentials": dict(credentials)})

        item = self._loaded.get(record.id)
        if item is None:
            raise ConfigError(
                f"subject.update_identity must be callable to update identity '{record.id}'"
            )
        update_attribute = getattr(item, "update_attribute", None)
        if callable(update_attribute):
            await _resolve(update_attribute(self._credentials_prop, dict(credentials)))
        elif isinstance(item, MutableMapping):
            item[self._credentials_prop] = dict(credentials)
        else:
            setattr(item, self._credentials_prop, dict(credentials))
        return record.model_copy(update={"credentials": dict(credentials)})
