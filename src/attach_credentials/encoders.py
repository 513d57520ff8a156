"""Payload encoders and the credential-type dispatcher.

Each encoder is a pure function ``(params, payload) -> new params`` that
turns one kind of credential material into the request-parameter shape
understood by the HTTP layer:

* ``basic``  -- ``auth = {username, password, send_immediately}``
* ``bearer`` -- ``auth = {bearer, send_immediately}``
* ``cookie`` -- appends to ``headers["cookie"]`` with a ``;`` separator
* ``header`` -- sets ``headers[name]`` (``name`` defaults to ``authorization``)

Encoders never mutate the params they receive; they deep-merge into a copy
via :func:`~attach_credentials.utils.deep_merge`.

:func:`dispatch` looks up the encoder for a type tag and fills in
``auth_type`` from the tag when the encoder left it unset.

See Also:
    :mod:`attach_credentials.models` for the payload models.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Callable, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from attach_credentials.exceptions import (
    InvalidCredentialPayload,
    MissingPayload,
    UnsupportedCredentialType,
)
from attach_credentials.models import (
    BasicPayload,
    BearerPayload,
    CookiePayload,
    CredentialRecord,
    HeaderPayload,
)
from attach_credentials.utils import deep_merge

Encoder = Callable[[Mapping[str, Any], Mapping[str, Any]], dict[str, Any]]

_P = TypeVar("_P", bound=BaseModel)


def _parse(model: type[_P], credential_type: str, payload: Mapping[str, Any]) -> _P:
    try:
        return model.model_validate(dict(payload))
    except ValidationError as exc:
        raise InvalidCredentialPayload(
            f"Invalid payload for credentials type {credential_type}: {exc}"
        ) from exc


def _with_auth_type(update: dict[str, Any], auth_type: Optional[str]) -> dict[str, Any]:
    if auth_type is not None:
        update["auth_type"] = auth_type
    return update


def basic(params: Mapping[str, Any], payload: Mapping[str, Any]) -> dict[str, Any]:
    """Attach HTTP Basic credentials."""
    data = _parse(BasicPayload, "basic", payload)
    update = {
        "auth": {
            "username": data.username,
            "password": data.password,
            "send_immediately": data.send_immediately,
        }
    }
    return deep_merge(params, _with_auth_type(update, data.auth_type))


def bearer(params: Mapping[str, Any], payload: Mapping[str, Any]) -> dict[str, Any]:
    """Attach a bearer token."""
    data = _parse(BearerPayload, "bearer", payload)
    update = {"auth": {"bearer": data.token, "send_immediately": data.send_immediately}}
    return deep_merge(params, _with_auth_type(update, data.auth_type))


def cookie(params: Mapping[str, Any], payload: Mapping[str, Any]) -> dict[str, Any]:
    """Attach a cookie, keeping any cookie already present in the headers."""
    data = _parse(CookiePayload, "cookie", payload)
    value = data.cookie
    headers = params.get("headers")
    existing = headers.get("cookie") if isinstance(headers, Mapping) else None
    if existing and value:
        value = f"{existing};{value}"
    elif existing:
        value = existing
    update = {"headers": {"cookie": value}}
    return deep_merge(params, _with_auth_type(update, data.auth_type))


def header(params: Mapping[str, Any], payload: Mapping[str, Any]) -> dict[str, Any]:
    """Attach an arbitrary header. ``auth_type`` has no built-in default."""
    data = _parse(HeaderPayload, "header", payload)
    update = {"headers": {data.name: data.value}}
    return deep_merge(params, _with_auth_type(update, data.auth_type))


ENCODERS: dict[str, Encoder] = {
    "basic": basic,
    "bearer": bearer,
    "cookie": cookie,
    "header": header,
}
"""Encoder table keyed by credential type tag."""


def dispatch(
    credential_type: str,
    payload: Optional[Mapping[str, Any]],
    params: Optional[Mapping[str, Any]] = None,
) -> dict[str, Any]:
    """Encode *payload* as *credential_type* on top of *params*.

    Args:
        credential_type: One of the keys of :data:`ENCODERS`.
        payload: The credential material.
        params: Base request params. Defaults to an empty mapping.

    Returns:
        A new params dict with the credentials applied and ``auth_type``
        set (by the encoder, or to *credential_type* as a fallback).

    Raises:
        UnsupportedCredentialType: If there is no encoder for the type.
        MissingPayload: If *payload* is ``None``.
        InvalidCredentialPayload: If *payload* does not fit the type.
    """
    encoder = ENCODERS.get(credential_type) if isinstance(credential_type, str) else None
    if encoder is None:
        raise UnsupportedCredentialType(credential_type)
    if payload is None:
        raise MissingPayload()
    if not isinstance(payload, Mapping):
        raise InvalidCredentialPayload(
            f"payload for credentials type {credential_type} must be a mapping, "
            f"got {type(payload).__name__}"
        )

    result = encoder(params or {}, payload)
    result.setdefault("auth_type", credential_type)
    return result


def apply_credentials(
    params: Mapping[str, Any], credentials: Mapping[str, Any]
) -> dict[str, Any]:
    """Apply a ``{"type": ..., "payload": ...}`` credential mapping to *params*."""
    return dispatch(credentials.get("type"), credentials.get("payload"), params)


def make_auth_params(record: CredentialRecord) -> dict[str, Any]:
    """Turn a stored record into the auth params to merge into a request.

    Typed records (``type`` + ``payload``) go through :func:`dispatch`.
    OAuth2 token records become ``bearer`` credentials carrying the access
    token.

    Raises:
        UnsupportedCredentialType: For an unknown ``type``.
        MissingPayload: When the record has neither ``type`` nor
            ``access_token``, or a ``type`` without ``payload``.
    """
    if record.type is not None:
        return dispatch(record.type, record.payload)
    if record.access_token:
        return dispatch("bearer", {"token": record.access_token})
    raise MissingPayload("credentials carry neither a type nor an access token")
