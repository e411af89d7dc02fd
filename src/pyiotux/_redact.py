"""Helpers for safe debug logging.

pyiotux handles passwords and auth tokens on almost every request.  This
module redacts sensitive fields before they reach DEBUG logs.
"""

from __future__ import annotations

from collections.abc import Mapping, Set
from typing import Any

from pydantic import BaseModel

# Compared after lower-casing and dropping "-" and "_", so "X-Auth-Token",
# "auth_token" and "authToken" all match "xauthtoken"/"authtoken".
_SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "token",
        "authtoken",
        "xauthtoken",
        "pushtoken",
        "authorization",
        "cookie",
    }
)

_MAX_DEPTH = 20
_REDACTED = "<redacted>"


def _is_sensitive(key: object) -> bool:
    folded = str(key).lower().replace("-", "").replace("_", "")
    return folded in _SENSITIVE_KEYS


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else f"{text[:limit]}…<truncated>"


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a copy of *value* that is safe to put in a debug log.

    Sensitive mapping keys have their values replaced, long strings are cut
    at *max_string* characters and pydantic models are dumped first.
    Anything not JSON-like is logged by ``repr``.
    """
    if _depth > _MAX_DEPTH:
        return "<max-depth>"

    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return _truncate(value, max_string)
    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"
    if isinstance(value, BaseModel):
        return redact_for_log(value.model_dump(mode="json"), max_string=max_string, _depth=_depth)
    if isinstance(value, Mapping):
        return {
            str(k): _REDACTED if _is_sensitive(k) else redact_for_log(v, max_string=max_string, _depth=_depth + 1)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple, Set)):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]
    return _truncate(repr(value), max_string)


def mask_token(token: str | None) -> str:
    """Short, non-reversible label for a token (``abcd…`` or ``<none>``)."""
    if not token:
        return "<none>"
    return f"{token[:4]}…"
