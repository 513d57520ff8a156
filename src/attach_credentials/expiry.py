"""Expiry evaluation for stored credential records.

The default policy, :func:`are_credentials_expired`, treats a record as
expired only once its ``expires_at`` lies strictly in the past. A record
without ``expires_at`` never expires.

Any callable with the same signature can replace it through
:attr:`~attach_credentials.options.AttachCredentialsOptions.are_credentials_expired`;
:func:`with_leeway` builds the common clock-skew tolerant variant.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from attach_credentials.models import CredentialRecord

ExpiryPolicy = Callable[[CredentialRecord], bool]


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def are_credentials_expired(
    record: CredentialRecord, now: Optional[datetime] = None
) -> bool:
    """Return ``True`` if *record* expired before *now*.

    A record whose ``expires_at`` equals *now* is still valid. Naive
    datetimes are interpreted as UTC.

    Args:
        record: The credential record to check.
        now: Reference time. Defaults to the current UTC time.
    """
    if record.expires_at is None:
        return False
    current = _as_utc(now) if now is not None else datetime.now(timezone.utc)
    return _as_utc(record.expires_at) < current


def with_leeway(seconds: float) -> ExpiryPolicy:
    """Build a policy that treats credentials as expired *seconds* early.

    Useful when the token authority's clock runs ahead of ours, or when a
    request may take a while to reach the API::

        options = AttachCredentialsOptions(
            provider_name="github",
            are_credentials_expired=with_leeway(30),
        )
    """
    margin = timedelta(seconds=seconds)

    def policy(record: CredentialRecord) -> bool:
        return are_credentials_expired(record, datetime.now(timezone.utc) + margin)

    return policy
