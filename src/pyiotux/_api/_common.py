"""Shared helpers for IoTux endpoint modules.

Internal to pyiotux and may change at any time.
"""

from __future__ import annotations

from typing import Any, TypeVar
from urllib.parse import quote

from pydantic import BaseModel, ValidationError

from pyiotux.exceptions import IotuxApiError

M = TypeVar("M", bound=BaseModel)


def device_segment(device_id: str) -> str:
    """URL-safe path segment for a device id."""
    stripped = device_id.strip()
    if not stripped:
        raise ValueError("device_id must be non-empty")
    return quote(stripped, safe="")


def parse_model(model: type[M], payload: Any, *, endpoint: str) -> M:
    if not isinstance(payload, dict):
        raise IotuxApiError(
            f"{endpoint} returned {type(payload).__name__}, expected an object",
            endpoint=endpoint,
        )
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise IotuxApiError(f"{endpoint} returned an invalid {model.__name__}: {exc}", endpoint=endpoint) from exc


def parse_model_list(model: type[M], payload: Any, *, endpoint: str) -> list[M]:
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise IotuxApiError(
            f"{endpoint} returned {type(payload).__name__}, expected a list",
            endpoint=endpoint,
        )
    return [parse_model(model, item, endpoint=endpoint) for item in payload]
