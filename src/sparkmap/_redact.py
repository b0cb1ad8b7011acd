"""Helpers for safe debug logging.

Requests to the backend carry the API key, and report rows carry the
device identifier and its position. This module masks those fields
before they reach DEBUG logs.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_MASK = "<redacted>"
_MAX_DEPTH = 20

_SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "apikey",
        "authorization",
        "cookie",
        "device_id",
        # Reporter position
        "lat",
        "lng",
    }
)
_SENSITIVE_SUFFIXES: tuple[str, ...] = ("token", "_key", "secret")


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return lowered in _SENSITIVE_KEYS or lowered.endswith(_SENSITIVE_SUFFIXES)


def _shorten(text: str, max_string: int) -> str:
    if len(text) <= max_string:
        return text
    return f"{text[:max_string]}…<truncated>"


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a masked copy of *value* suitable for debug logs.

    Mapping keys listed as sensitive (or ending in ``token``, ``_key`` or
    ``secret``) have their values replaced wholesale, whatever their type.
    Long strings are cut at *max_string* characters.
    """
    if _depth > _MAX_DEPTH:
        return "<max-depth>"
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return _shorten(value, max_string)
    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"

    nested = _depth + 1
    if isinstance(value, Mapping):
        return {
            str(k): _MASK if _is_sensitive(str(k)) else redact_for_log(v, max_string=max_string, _depth=nested)
            for k, v in value.items()
        }
    if isinstance(value, Sequence):
        return [redact_for_log(item, max_string=max_string, _depth=nested) for item in value]
    return repr(value)
