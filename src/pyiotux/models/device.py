"""Device, status and alert models."""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated

from pydantic import BeforeValidator

from pyiotux.models._base import IotuxBaseModel


class ArmedState(StrEnum):
    ARMED = "armed"
    DISARMED = "disarmed"
    UNKNOWN = "unknown"

    @classmethod
    def _missing_(cls, value: object) -> ArmedState:
        return cls.UNKNOWN


def _normalise_armed_state(value: object) -> object:
    # Firmware reports "ARMED", "Disarmed", ...
    if isinstance(value, str):
        return value.strip().lower()
    return value


ArmedStateValue = Annotated[ArmedState, BeforeValidator(_normalise_armed_state)]


class Device(IotuxBaseModel):
    """A tracker registered to the account."""

    id: str
    name: str = ""
    user_id: int | None = None


class DeviceStatus(IotuxBaseModel):
    """Connectivity of a tracker as last seen by the server."""

    device_id: str
    online: bool = False
    seconds_since_seen: float | None = None
    last_seen: str | None = None


class DeviceCurrentStatus(DeviceStatus):
    """Connectivity plus last reported state and position."""

    name: str = ""
    last_status: str | None = None
    armed_state: ArmedStateValue | None = None
    lat: float | None = None
    lon: float | None = None

    @property
    def has_position(self) -> bool:
        return self.lat is not None and self.lon is not None


class Alert(IotuxBaseModel):
    """One alert raised by a tracker (motion while armed, etc.)."""

    id: int
    device_id: str
    status: str = ""
    lat: float | None = None
    lon: float | None = None
    created_at: str = ""


class ArmedStateResult(IotuxBaseModel):
    """Response of the arm/disarm toggle endpoint."""

    device_id: str
    armed_state: ArmedStateValue = ArmedState.UNKNOWN
