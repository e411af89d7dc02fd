"""High-level async client for the IoTux tracking API."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import aiohttp
from pydantic import ValidationError

from pyiotux._api import auth as _auth_api
from pyiotux._api import devices as _devices_api
from pyiotux._constants import CACHED_ALERTS_KEY, CACHED_DEVICES_KEY, USER_DATA_KEY
from pyiotux._storage import DurableStore, JsonFileStore, MemoryStore
from pyiotux._transport import HttpTransport, Transport
from pyiotux.change import ChangeDetector
from pyiotux.config import IotuxConfig
from pyiotux.connectivity import ConnectivityMonitor, http_probe
from pyiotux.coordinator import RequestCoordinator
from pyiotux.credentials import CredentialCache
from pyiotux.exceptions import (
    IotuxAuthenticationError,
    IotuxConfigError,
    IotuxError,
    IotuxStorageError,
)
from pyiotux.models.device import Alert, ArmedStateResult, Device, DeviceCurrentStatus, DeviceStatus
from pyiotux.models.user import User
from pyiotux.poller import StatusPoller
from pyiotux.queue import DurableCommandQueue

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class IotuxClient:
    """Async client for the IoTux API.

    Owns the credential cache, the read coordinator, the connectivity
    monitor and the durable command queue; entering the context hydrates
    them and leaving it flushes them.

    Usage::

        async with IotuxClient(config) as client:
            await client.login("me@example.com", "secret")
            devices = await client.get_devices()
            client.queue_command(devices[0].id, DeviceCommand.ARM)
    """

    def __init__(
        self,
        config: IotuxConfig | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        store: DurableStore | None = None,
        monitor: ConnectivityMonitor | None = None,
    ) -> None:
        self._config = config or IotuxConfig()
        self._external_session = session is not None
        self._http_session = session
        self._transport: Transport | None = transport
        self._owns_transport = transport is None
        if store is None:
            path = self._config.storage_path
            store = JsonFileStore(path) if path is not None else MemoryStore()
        self._store = store
        self._monitor = monitor
        self._credentials = CredentialCache(store)
        self._coordinator = RequestCoordinator(ttl=self._config.dedup_ttl)
        self._detector = ChangeDetector()
        self._queue = DurableCommandQueue(
            store,
            self._deliver_command,
            max_retries=self._config.max_retries,
            save_debounce=self._config.save_debounce,
        )
        self._pollers: list[StatusPoller[Any]] = []
        self._cache_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> IotuxClient:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = HttpTransport(self._config, self._http_session)
        if self._monitor is None:
            probe = None
            if self._http_session is not None:
                probe = http_probe(self._http_session, self._config.base_url, timeout=self._config.probe_timeout)
            self._monitor = ConnectivityMonitor(probe)
        await self._queue.init()
        self._queue.attach(self._monitor)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        for poller in self._pollers:
            await poller.stop()
        self._pollers.clear()
        await self._queue.dispose()
        await self._credentials.flush()
        self._coordinator.clear()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        if self._owns_transport:
            self._transport = None

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def config(self) -> IotuxConfig:
        return self._config

    @property
    def credentials(self) -> CredentialCache:
        return self._credentials

    @property
    def coordinator(self) -> RequestCoordinator:
        return self._coordinator

    @property
    def queue(self) -> DurableCommandQueue:
        return self._queue

    @property
    def monitor(self) -> ConnectivityMonitor:
        if self._monitor is None:
            raise IotuxError("Client not initialized. Use 'async with IotuxClient(...) as client:'")
        return self._monitor

    async def check_connection(self) -> bool:
        """Probe the API right now; use before user-initiated work such as login."""
        return await self.monitor.check_connection()

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def _credentials_from_config(self, email: str | None, password: str | None) -> tuple[str, str]:
        email = email or self._config.email
        password = password or self._config.password
        if not email or not password:
            raise IotuxConfigError("email and password are required (pass them or set IOTUX_EMAIL/IOTUX_PASSWORD)")
        return email, password

    async def login(self, email: str | None = None, password: str | None = None) -> User:
        """Authenticate and cache the returned token."""
        email, password = self._credentials_from_config(email, password)
        user = await _auth_api.login(self._require_transport(), email, password)
        await self._remember_user(user)
        return user

    async def register(self, name: str, email: str, password: str) -> User:
        """Create an account and cache its token."""
        user = await _auth_api.register(self._require_transport(), name, email, password)
        await self._remember_user(user)
        return user

    async def logout(self) -> None:
        """Forget the session and everything queued or cached for it."""
        self._credentials.clear()
        self._coordinator.clear()
        self._detector.reset()
        await self._queue.clear_all()
        await self._remove_keys(USER_DATA_KEY, CACHED_DEVICES_KEY, CACHED_ALERTS_KEY)
        await self._credentials.flush()
        _logger.debug("Logged out")

    async def is_authenticated(self) -> bool:
        """Whether a token is cached.  It is validated by the next API call."""
        return await self._credentials.get_token() is not None

    async def current_user(self) -> User | None:
        raw = await self._read_key(USER_DATA_KEY)
        if raw is None:
            return None
        try:
            return User.model_validate_json(raw)
        except ValidationError:
            _logger.warning("Stored user data is unreadable; ignoring it")
            return None

    async def _remember_user(self, user: User) -> None:
        self._credentials.set_token(user.auth_token)
        try:
            await self._store.set(USER_DATA_KEY, json.dumps(user.model_dump(mode="json")))
        except IotuxStorageError as exc:
            _logger.warning("Could not persist user data: %s", exc)
        if self._queue.initialized and self._queue.pending_count():
            self._queue.trigger()

    async def _on_auth_rejected(self) -> None:
        # Memory first, so nothing can pick up the rejected token while we await the store.
        self._credentials.clear()
        _logger.info("Session rejected by the server; credential cleared")
        await self._remove_keys(USER_DATA_KEY)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise IotuxError("Client not initialized. Use 'async with IotuxClient(...) as client:'")
        return self._transport

    async def _call_authenticated(self, fn: Callable[[Transport, str], Awaitable[T]]) -> T:
        """Run an API call with the cached token; clear it if the server rejects it."""
        transport = self._require_transport()
        token = await self._credentials.get_token()
        if not token:
            raise IotuxAuthenticationError("Not logged in")
        try:
            return await fn(transport, token)
        except IotuxAuthenticationError:
            await self._on_auth_rejected()
            raise

    async def _read_key(self, key: str) -> str | None:
        try:
            return await self._store.get(key)
        except IotuxStorageError as exc:
            _logger.warning("Could not read %s: %s", key, exc)
            return None

    async def _remove_keys(self, *keys: str) -> None:
        try:
            await self._store.remove(*keys)
        except IotuxStorageError as exc:
            _logger.warning("Could not remove %s: %s", ", ".join(keys), exc)

    async def _write_key(self, key: str, value: Any) -> None:
        try:
            await self._store.set(key, json.dumps(value, separators=(",", ":")))
        except IotuxStorageError as exc:
            _logger.warning("Could not write %s: %s", key, exc)

    async def _deliver_command(self, device_id: str, command: str, value: str | None) -> Any:
        return await self._call_authenticated(
            lambda transport, token: _devices_api.send_command(transport, token, device_id, command, value)
        )

    # ------------------------------------------------------------------
    # Read endpoints (deduplicated)
    # ------------------------------------------------------------------

    async def get_devices(self) -> list[Device]:
        """Fetch all devices on the account (mirrored to the offline cache)."""

        async def _call() -> list[Device]:
            devices = await self._call_authenticated(_devices_api.fetch_devices)
            await self._write_key(CACHED_DEVICES_KEY, [d.model_dump(mode="json") for d in devices])
            return devices

        return list(await self._coordinator.coordinate("GET", _devices_api.DEVICES_PATH, _call))

    async def get_device_status(self, device_id: str) -> DeviceStatus:
        """Fetch connectivity status of one device."""
        return await self._coordinator.coordinate(
            "GET",
            _devices_api.status_path(device_id),
            lambda: self._call_authenticated(
                lambda transport, token: _devices_api.fetch_device_status(transport, token, device_id)
            ),
        )

    async def get_device_current_status(self, device_id: str) -> DeviceCurrentStatus:
        """Fetch status, armed state and last position of one device."""
        return await self._coordinator.coordinate(
            "GET",
            _devices_api.current_status_path(device_id),
            lambda: self._call_authenticated(
                lambda transport, token: _devices_api.fetch_device_current_status(transport, token, device_id)
            ),
        )

    async def get_device_alerts(self, device_id: str) -> list[Alert]:
        """Fetch alert history of one device (mirrored to the offline cache)."""

        async def _call() -> list[Alert]:
            alerts = await self._call_authenticated(
                lambda transport, token: _devices_api.fetch_device_alerts(transport, token, device_id)
            )
            await self._cache_alerts(device_id, alerts)
            return alerts

        return list(await self._coordinator.coordinate("GET", _devices_api.alerts_path(device_id), _call))

    # ------------------------------------------------------------------
    # Offline cache
    # ------------------------------------------------------------------

    async def _cached_json(self, key: str) -> Any:
        raw = await self._read_key(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            _logger.warning("Cached %s is not valid JSON; ignoring it", key)
            return None

    async def _cache_alerts(self, device_id: str, alerts: list[Alert]) -> None:
        async with self._cache_lock:
            cached = await self._cached_json(CACHED_ALERTS_KEY)
            by_device = cached if isinstance(cached, dict) else {}
            by_device[device_id] = [a.model_dump(mode="json") for a in alerts]
            await self._write_key(CACHED_ALERTS_KEY, by_device)

    async def get_cached_devices(self) -> list[Device]:
        """Devices from the last successful :meth:`get_devices`, for offline display."""
        cached = await self._cached_json(CACHED_DEVICES_KEY)
        if not isinstance(cached, list):
            return []
        return [Device.model_validate(item) for item in cached if isinstance(item, dict)]

    async def get_cached_alerts(self, device_id: str | None = None) -> list[Alert]:
        """Alerts from the last successful fetches, for offline display."""
        cached = await self._cached_json(CACHED_ALERTS_KEY)
        if not isinstance(cached, dict):
            return []
        groups = [cached.get(device_id, [])] if device_id is not None else list(cached.values())
        return [Alert.model_validate(item) for group in groups if isinstance(group, list) for item in group]

    # ------------------------------------------------------------------
    # Write endpoints (never deduplicated)
    # ------------------------------------------------------------------

    async def register_device(self, device_id: str, name: str) -> Device:
        """Claim a tracker for this account."""
        return await self._call_authenticated(
            lambda transport, token: _devices_api.register_device(transport, token, device_id, name)
        )

    async def remove_device(self, device_id: str) -> Device:
        """Release a tracker from this account."""
        return await self._call_authenticated(
            lambda transport, token: _devices_api.remove_device(transport, token, device_id)
        )

    async def toggle_armed_state(self, device_id: str) -> ArmedStateResult:
        """Flip a tracker between armed and disarmed."""
        return await self._call_authenticated(
            lambda transport, token: _devices_api.toggle_armed_state(transport, token, device_id)
        )

    async def send_command(self, device_id: str, command: str, value: str | None = None) -> Any:
        """Send a command right now, bypassing the queue."""
        return await self._deliver_command(device_id, str(command), value)

    def queue_command(self, device_id: str, command: str, value: str | None = None) -> str:
        """Queue a command for durable, retried delivery and return its id."""
        return self._queue.enqueue(device_id, command, value)

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def _start_poller(
        self,
        key: str,
        fetch: Callable[[], Awaitable[T]],
        on_change: Callable[[T], None],
        interval: float | None,
    ) -> StatusPoller[T]:
        poller: StatusPoller[T] = StatusPoller(
            fetch,
            on_change,
            key=key,
            interval=interval or self._config.poll_interval,
            monitor=self._monitor,
            detector=self._detector,
        )
        self._pollers.append(poller)
        poller.start()
        return poller

    def watch_devices(
        self,
        on_change: Callable[[list[Device]], None],
        *,
        interval: float | None = None,
    ) -> StatusPoller[list[Device]]:
        """Poll the device list, calling *on_change* only when it changes."""
        return self._start_poller("devices", self.get_devices, on_change, interval)

    def watch_device(
        self,
        device_id: str,
        on_change: Callable[[DeviceCurrentStatus], None],
        *,
        interval: float | None = None,
    ) -> StatusPoller[DeviceCurrentStatus]:
        """Poll one device's current status, calling *on_change* only when it changes."""
        return self._start_poller(
            f"current:{device_id}",
            lambda: self.get_device_current_status(device_id),
            on_change,
            interval,
        )

    def watch_alerts(
        self,
        device_id: str,
        on_change: Callable[[list[Alert]], None],
        *,
        interval: float | None = None,
    ) -> StatusPoller[list[Alert]]:
        """Poll one device's alerts, calling *on_change* only when new ones arrive."""
        return self._start_poller(
            f"alerts:{device_id}",
            lambda: self.get_device_alerts(device_id),
            on_change,
            interval,
        )
