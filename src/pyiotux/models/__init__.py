"""Data models for IoTux API payloads and the command queue."""

from pyiotux.models._base import IotuxBaseModel
from pyiotux.models.command import CommandStatus, DeviceCommand, QueuedCommand, new_command_id
from pyiotux.models.device import (
    Alert,
    ArmedState,
    ArmedStateResult,
    Device,
    DeviceCurrentStatus,
    DeviceStatus,
)
from pyiotux.models.user import User

__all__ = [
    "Alert",
    "ArmedState",
    "ArmedStateResult",
    "CommandStatus",
    "Device",
    "DeviceCommand",
    "DeviceCurrentStatus",
    "DeviceStatus",
    "IotuxBaseModel",
    "QueuedCommand",
    "User",
    "new_command_id",
]
