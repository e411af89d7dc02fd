"""Queued device command model."""

from __future__ import annotations

import secrets
import time
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class DeviceCommand(StrEnum):
    """Instructions understood by the tracker firmware."""

    ARM = "ARM"
    DISARM = "DISARM"
    BUZZ = "BUZZ"
    REQUEST_POSITION = "REQUEST_POSITION"


class CommandStatus(StrEnum):
    PENDING = "pending"
    SENDING = "sending"
    FAILED = "failed"
    SUCCESS = "success"


def _now_ms() -> int:
    return int(time.time() * 1000)


def new_command_id() -> str:
    """Opaque id: creation time plus randomness, unique within a queue."""
    return f"{_now_ms()}-{secrets.token_hex(6)}"


class QueuedCommand(BaseModel):
    """One pending instruction to a device.

    Persisted with camelCase keys (``deviceId``, ``retryCount``) so queues
    written by the mobile app load unchanged.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
        extra="ignore",
    )

    id: str = Field(default_factory=new_command_id)
    device_id: str
    command: str
    value: str | None = None
    timestamp: int = Field(default_factory=_now_ms)
    retry_count: int = Field(default=0, ge=0)
    status: CommandStatus = CommandStatus.PENDING

    @property
    def eligible(self) -> bool:
        """Whether a drain pass should attempt delivery."""
        return self.status in (CommandStatus.PENDING, CommandStatus.FAILED)
