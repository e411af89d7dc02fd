"""pyiotux - Async Python client for the IoTux vehicle-tracking API."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyiotux")
except PackageNotFoundError:
    __version__ = "0+local"
from pyiotux.change import ChangeDetector, hash_value
from pyiotux.client import IotuxClient
from pyiotux.config import IotuxConfig
from pyiotux.connectivity import ConnectivityMonitor
from pyiotux.coordinator import RequestCoordinator
from pyiotux.credentials import CredentialCache
from pyiotux.exceptions import (
    IotuxApiError,
    IotuxAuthenticationError,
    IotuxConfigError,
    IotuxConnectivityError,
    IotuxError,
    IotuxStorageError,
    IotuxTransportError,
)
from pyiotux.models import (
    Alert,
    ArmedState,
    ArmedStateResult,
    CommandStatus,
    Device,
    DeviceCommand,
    DeviceCurrentStatus,
    DeviceStatus,
    QueuedCommand,
    User,
)
from pyiotux.poller import StatusPoller
from pyiotux.queue import DurableCommandQueue, QueueEvent, QueueEventType

__all__ = [
    "__version__",
    "Alert",
    "ArmedState",
    "ArmedStateResult",
    "ChangeDetector",
    "CommandStatus",
    "ConnectivityMonitor",
    "CredentialCache",
    "Device",
    "DeviceCommand",
    "DeviceCurrentStatus",
    "DeviceStatus",
    "DurableCommandQueue",
    "IotuxApiError",
    "IotuxAuthenticationError",
    "IotuxClient",
    "IotuxConfig",
    "IotuxConfigError",
    "IotuxConnectivityError",
    "IotuxError",
    "IotuxStorageError",
    "IotuxTransportError",
    "QueueEvent",
    "QueueEventType",
    "QueuedCommand",
    "RequestCoordinator",
    "StatusPoller",
    "User",
    "hash_value",
]
