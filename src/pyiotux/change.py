"""Content hashing for change detection.

Values are serialized canonically (mapping keys sorted, sequence order
kept) and hashed with SHA-256, so two snapshots that are equal up to key
order hash the same.  Tuples, sets and mappings with non-string keys are
tagged so they never collide with the list or string-keyed object JSON
would otherwise turn them into.  Hashing never raises: unserializable
input gets a fallback hash that is unique per call and therefore always
reads as "changed".
"""

from __future__ import annotations

import hashlib
import itertools
import json
import logging
import time
from collections.abc import Mapping, Set
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel

_logger = logging.getLogger(__name__)

_fallback_counter = itertools.count()


# Tags for shapes JSON would otherwise merge with lists or string-keyed objects.
_TUPLE_TAG = "__tuple__"
_SET_TAG = "__set__"
_MAPPING_TAG = "__mapping__"
_BYTES_TAG = "__bytes__"


def _canonical(value: Any, active: set[int]) -> Any:
    """Reduce *value* to plain JSON types, tagging tuples, sets and non-string keys."""
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, BaseModel):
        return _canonical(value.model_dump(mode="json"), active)
    if isinstance(value, Enum):
        return _canonical(value.value, active)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return {_BYTES_TAG: bytes(value).hex()}

    if id(value) in active:
        raise ValueError("circular reference")
    active.add(id(value))
    try:
        if isinstance(value, Mapping):
            if all(isinstance(key, str) for key in value):
                return {key: _canonical(item, active) for key, item in value.items()}
            pairs = [[_encode(key, active), _canonical(item, active)] for key, item in value.items()]
            return {_MAPPING_TAG: sorted(pairs, key=lambda pair: pair[0])}
        if isinstance(value, tuple):
            return {_TUPLE_TAG: [_canonical(item, active) for item in value]}
        if isinstance(value, list):
            return [_canonical(item, active) for item in value]
        if isinstance(value, Set):
            return {_SET_TAG: sorted(_encode(item, active) for item in value)}
    finally:
        active.discard(id(value))
    raise TypeError(f"{type(value).__name__} is not serializable")


def _encode(value: Any, active: set[int]) -> str:
    return json.dumps(
        _canonical(value, active),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=True,
    )


def canonical_json(value: Any) -> str:
    """Serialize *value* deterministically.  Raises on unserializable input."""
    return _encode(value, set())


def hash_value(value: Any) -> str:
    """Return a canonical content hash of *value*.

    Cyclic or otherwise unserializable values produce
    ``fallback:<type>:<ns>:<n>``, which differs on every call.
    """
    try:
        encoded = canonical_json(value)
    except (TypeError, ValueError, RecursionError) as exc:
        _logger.debug("Falling back to unique hash for %s: %s", type(value).__name__, exc)
        return f"fallback:{type(value).__name__}:{time.time_ns()}:{next(_fallback_counter)}"
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


class ChangeDetector:
    """Remember the last hash per key and report real changes only."""

    def __init__(self) -> None:
        self._hashes: dict[str, str] = {}

    def has_changed(self, key: str, value: Any) -> bool:
        digest = hash_value(value)
        if self._hashes.get(key) == digest:
            return False
        self._hashes[key] = digest
        return True

    def last_hash(self, key: str) -> str | None:
        return self._hashes.get(key)

    def forget(self, key: str) -> None:
        self._hashes.pop(key, None)

    def reset(self) -> None:
        self._hashes.clear()
