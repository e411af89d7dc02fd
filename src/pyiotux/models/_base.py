"""Base model for IoTux API payloads.

The service speaks snake_case JSON, so unlike the queue's persisted form no
alias generator is needed.  Unknown keys are ignored and the original
payload is kept in ``raw`` for fields this library does not map yet.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class IotuxBaseModel(BaseModel):
    """Frozen response model that stashes its source payload."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    raw: dict[str, Any] = Field(default_factory=dict, exclude=True, repr=False)
    """Original API response dict."""

    @model_validator(mode="before")
    @classmethod
    def _stash_raw(cls, values: Any) -> Any:
        if not isinstance(values, dict) or "raw" in values:
            return values
        return {**values, "raw": dict(values)}
