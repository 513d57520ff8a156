"""Small helpers shared by the encoders and the orchestrator."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Callable, Optional


def deep_merge(base: Mapping[str, Any], *overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Merge *overrides* into a copy of *base*, recursing into nested mappings.

    Keys present only in *base* are kept. When both sides hold a mapping for
    the same key the two are merged field by field; otherwise the override
    wins. Neither *base* nor any mapping nested inside it is mutated: every
    merged level is a new ``dict`` while untouched values are shared.

    Example::

        >>> deep_merge({"headers": {"accept": "json"}}, {"headers": {"cookie": "a=b"}})
        {'headers': {'accept': 'json', 'cookie': 'a=b'}}
    """
    result = dict(base)
    for override in overrides:
        for key, value in override.items():
            current = result.get(key)
            if isinstance(current, Mapping) and isinstance(value, Mapping):
                result[key] = deep_merge(current, value)
            elif isinstance(value, Mapping):
                result[key] = deep_merge({}, value)
            else:
                result[key] = value
    return result


def make_request_params_extractor(
    remove_subject_prop: bool, subject_prop_name: Optional[str]
) -> Callable[[Mapping[str, Any]], dict[str, Any]]:
    """Build the function that copies request params for downstream plugins.

    The subject reference is dropped from the copy unless
    *remove_subject_prop* is false.
    """
    if remove_subject_prop and subject_prop_name:
        return lambda params: {
            key: value for key, value in params.items() if key != subject_prop_name
        }
    return lambda params: dict(params)


def get_subject_id(subject: Any) -> Optional[str]:
    """Resolve a subject's identifier.

    Tries ``subject.get_id()``, then ``subject.id``. Plain strings and
    integers are their own identifier. Returns ``None`` when nothing usable
    is found.
    """
    if subject is None or isinstance(subject, bool):
        return None
    if isinstance(subject, (str, int)):
        return str(subject) if subject != "" else None
    get_id = getattr(subject, "get_id", None)
    if callable(get_id):
        value = get_id()
        if value:
            return str(value)
    value = getattr(subject, "id", None)
    if value:
        return str(value)
    if isinstance(subject, Mapping) and subject.get("id"):
        return str(subject["id"])
    return None
