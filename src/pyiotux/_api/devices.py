"""Device endpoints.

Reads (idempotent, safe to deduplicate):
  - GET /me/devices
  - GET /devices/{id}/status
  - GET /devices/{id}/current
  - GET /api/devices/{id}/alerts

Writes (never deduplicated):
  - POST /devices/register
  - DELETE /devices/{id}
  - POST /devices/{id}/toggle
  - POST /api/send/{id}
"""

from __future__ import annotations

from typing import Any

from pyiotux._api._common import device_segment, parse_model, parse_model_list
from pyiotux._transport import Transport
from pyiotux.models.device import (
    Alert,
    ArmedStateResult,
    Device,
    DeviceCurrentStatus,
    DeviceStatus,
)

DEVICES_PATH = "/me/devices"
REGISTER_DEVICE_PATH = "/devices/register"


def status_path(device_id: str) -> str:
    return f"/devices/{device_segment(device_id)}/status"


def current_status_path(device_id: str) -> str:
    return f"/devices/{device_segment(device_id)}/current"


def alerts_path(device_id: str) -> str:
    return f"/api/devices/{device_segment(device_id)}/alerts"


def send_path(device_id: str) -> str:
    return f"/api/send/{device_segment(device_id)}"


async def fetch_devices(transport: Transport, token: str) -> list[Device]:
    response = await transport.request("GET", DEVICES_PATH, token=token)
    return parse_model_list(Device, response, endpoint=DEVICES_PATH)


async def fetch_device_status(transport: Transport, token: str, device_id: str) -> DeviceStatus:
    path = status_path(device_id)
    response = await transport.request("GET", path, token=token)
    return parse_model(DeviceStatus, response, endpoint=path)


async def fetch_device_current_status(transport: Transport, token: str, device_id: str) -> DeviceCurrentStatus:
    path = current_status_path(device_id)
    response = await transport.request("GET", path, token=token)
    return parse_model(DeviceCurrentStatus, response, endpoint=path)


async def fetch_device_alerts(transport: Transport, token: str, device_id: str) -> list[Alert]:
    path = alerts_path(device_id)
    response = await transport.request("GET", path, token=token)
    return parse_model_list(Alert, response, endpoint=path)


async def register_device(transport: Transport, token: str, device_id: str, name: str) -> Device:
    response = await transport.request(
        "POST",
        REGISTER_DEVICE_PATH,
        json={"device_id": device_id.strip(), "name": name},
        token=token,
    )
    return parse_model(Device, response, endpoint=REGISTER_DEVICE_PATH)


async def remove_device(transport: Transport, token: str, device_id: str) -> Device:
    path = f"/devices/{device_segment(device_id)}"
    response = await transport.request("DELETE", path, token=token)
    return parse_model(Device, response, endpoint=path)


async def toggle_armed_state(transport: Transport, token: str, device_id: str) -> ArmedStateResult:
    path = f"/devices/{device_segment(device_id)}/toggle"
    response = await transport.request("POST", path, token=token)
    return parse_model(ArmedStateResult, response, endpoint=path)


async def send_command(
    transport: Transport,
    token: str,
    device_id: str,
    command: str,
    value: str | None = None,
) -> Any:
    """Deliver one command.  The response body is passed through untouched."""
    return await transport.request(
        "POST",
        send_path(device_id),
        json={"command": command, "value": value},
        token=token,
    )
