"""Mask credentials in the configuration before it reaches DEBUG logs."""

from __future__ import annotations

from typing import Any

REDACTED = "<redacted>"

_CREDENTIAL_KEYS = frozenset({"password", "token", "user", "username"})


def redact_for_log(value: Any) -> Any:
    """Return *value* with every credential field replaced by ``<redacted>``.

    *value* is a ``model_dump()`` of the configuration: nested dicts, lists
    and scalars.
    """
    if isinstance(value, dict):
        return {key: REDACTED if key in _CREDENTIAL_KEYS else redact_for_log(item) for key, item in value.items()}
    if isinstance(value, list):
        return [redact_for_log(item) for item in value]
    return value
