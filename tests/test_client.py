"""IotuxClient behaviour against an in-process transport double."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from typing import Any

import pytest

from pyiotux._constants import AUTH_TOKEN_KEY, CACHED_ALERTS_KEY, CACHED_DEVICES_KEY, QUEUE_KEY, USER_DATA_KEY
from pyiotux._storage import MemoryStore
from pyiotux.client import IotuxClient
from pyiotux.config import IotuxConfig
from pyiotux.connectivity import ConnectivityMonitor
from pyiotux.exceptions import IotuxApiError, IotuxAuthenticationError, IotuxConfigError, IotuxError
from pyiotux.models.command import DeviceCommand
from pyiotux.models.device import ArmedState

_USER = {"user_id": 7, "name": "Ana", "email": "ana@example.com", "auth_token": "tok-abc"}


class _FakeTransport:
    """Routes ``(method, path)`` to canned responses and records every call."""

    def __init__(self, routes: dict[tuple[str, str], Any] | None = None) -> None:
        self.routes: dict[tuple[str, str], Any] = dict(routes or {})
        self.calls: list[tuple[str, str, dict[str, Any] | None, str | None]] = []
        self.gate = asyncio.Event()
        self.gate.set()

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Mapping[str, Any] | None = None,
        token: str | None = None,
    ) -> Any:
        self.calls.append((method, path, dict(json) if json is not None else None, token))
        await self.gate.wait()
        response = self.routes[(method, path)]
        if isinstance(response, BaseException):
            raise response
        return response

    def count(self, method: str, path: str) -> int:
        return sum(1 for call in self.calls if call[0] == method and call[1] == path)


def _client(transport: _FakeTransport, store: MemoryStore | None = None, **config: Any) -> IotuxClient:
    return IotuxClient(
        IotuxConfig(**config),
        transport=transport,
        store=store if store is not None else MemoryStore(),
        monitor=ConnectivityMonitor(),
    )


@pytest.mark.asyncio
async def test_login_caches_token_and_user() -> None:
    store = MemoryStore()
    transport = _FakeTransport({("POST", "/login"): _USER})

    async with _client(transport, store) as client:
        user = await client.login("ana@example.com", "pw")
        assert user.user_id == 7
        assert await client.is_authenticated()
        current = await client.current_user()
        assert current is not None and current.email == "ana@example.com"

    assert transport.calls == [("POST", "/login", {"email": "ana@example.com", "password": "pw"}, None)]
    assert store.dump()[AUTH_TOKEN_KEY] == "tok-abc"
    assert json.loads(store.dump()[USER_DATA_KEY])["user_id"] == 7


@pytest.mark.asyncio
async def test_login_falls_back_to_configured_credentials() -> None:
    transport = _FakeTransport({("POST", "/login"): _USER})

    async with _client(transport, email="ana@example.com", password="pw") as client:
        await client.login()

    assert transport.calls[0][2] == {"email": "ana@example.com", "password": "pw"}


@pytest.mark.asyncio
async def test_login_without_credentials_raises_config_error() -> None:
    async with _client(_FakeTransport()) as client:
        with pytest.raises(IotuxConfigError):
            await client.login()


@pytest.mark.asyncio
async def test_login_response_without_token_is_rejected() -> None:
    transport = _FakeTransport({("POST", "/login"): {"user_id": 7}})
    async with _client(transport) as client:
        with pytest.raises(IotuxApiError):
            await client.login("ana@example.com", "pw")
        assert not await client.is_authenticated()


@pytest.mark.asyncio
async def test_token_survives_restart() -> None:
    store = MemoryStore({AUTH_TOKEN_KEY: "tok-stored"})
    transport = _FakeTransport({("GET", "/me/devices"): [{"id": "D1", "name": "Car"}]})

    async with _client(transport, store) as client:
        devices = await client.get_devices()

    assert [d.id for d in devices] == ["D1"]
    assert transport.calls[0][3] == "tok-stored"


@pytest.mark.asyncio
async def test_concurrent_device_reads_share_one_request() -> None:
    transport = _FakeTransport({("GET", "/me/devices"): [{"id": "D1"}, {"id": "D2"}]})
    transport.gate.clear()

    async with _client(transport, MemoryStore({AUTH_TOKEN_KEY: "tok"})) as client:
        readers = [asyncio.create_task(client.get_devices()) for _ in range(5)]
        await asyncio.sleep(0.01)
        transport.gate.set()
        results = await asyncio.gather(*readers)

    assert transport.count("GET", "/me/devices") == 1
    assert all([d.id for d in result] == ["D1", "D2"] for result in results)
    # Each caller gets its own list.
    assert results[0] is not results[1]


@pytest.mark.asyncio
async def test_writes_are_never_deduplicated() -> None:
    transport = _FakeTransport({("POST", "/devices/D1/toggle"): {"device_id": "D1", "armed_state": "ARMED"}})
    transport.gate.clear()

    async with _client(transport, MemoryStore({AUTH_TOKEN_KEY: "tok"})) as client:
        toggles = [asyncio.create_task(client.toggle_armed_state("D1")) for _ in range(2)]
        await asyncio.sleep(0.01)
        transport.gate.set()
        results = await asyncio.gather(*toggles)

    assert transport.count("POST", "/devices/D1/toggle") == 2
    assert results[0].armed_state is ArmedState.ARMED


@pytest.mark.asyncio
async def test_rejected_token_is_cleared() -> None:
    store = MemoryStore({AUTH_TOKEN_KEY: "tok-old", USER_DATA_KEY: json.dumps(_USER)})
    transport = _FakeTransport({("GET", "/me/devices"): IotuxAuthenticationError("expired", status_code=401)})

    async with _client(transport, store) as client:
        with pytest.raises(IotuxAuthenticationError):
            await client.get_devices()
        assert not await client.is_authenticated()
        assert await client.current_user() is None

    assert AUTH_TOKEN_KEY not in store.dump()
    assert USER_DATA_KEY not in store.dump()


@pytest.mark.asyncio
async def test_calls_without_token_never_reach_the_server() -> None:
    transport = _FakeTransport()
    async with _client(transport) as client:
        with pytest.raises(IotuxAuthenticationError):
            await client.get_device_status("D1")
    assert transport.calls == []


@pytest.mark.asyncio
async def test_status_and_alerts_are_parsed() -> None:
    transport = _FakeTransport(
        {
            ("GET", "/devices/D1/status"): {"device_id": "D1", "online": True, "seconds_since_seen": 4},
            ("GET", "/devices/D1/current"): {
                "device_id": "D1",
                "online": False,
                "armed_state": " Disarmed ",
                "lat": -34.6,
                "lon": -58.4,
            },
            ("GET", "/api/devices/D1/alerts"): [
                {"id": 1, "device_id": "D1", "status": "MOVEMENT", "created_at": "2026-01-01T00:00:00Z"},
            ],
        }
    )

    async with _client(transport, MemoryStore({AUTH_TOKEN_KEY: "tok"})) as client:
        status = await client.get_device_status("D1")
        current = await client.get_device_current_status("D1")
        alerts = await client.get_device_alerts("D1")

    assert status.online is True
    assert status.seconds_since_seen == 4
    assert current.armed_state is ArmedState.DISARMED
    assert current.has_position
    assert [a.status for a in alerts] == ["MOVEMENT"]


@pytest.mark.asyncio
async def test_offline_cache_mirrors_last_reads() -> None:
    store = MemoryStore({AUTH_TOKEN_KEY: "tok"})
    transport = _FakeTransport(
        {
            ("GET", "/me/devices"): [{"id": "D1", "name": "Car"}],
            ("GET", "/api/devices/D1/alerts"): [{"id": 1, "device_id": "D1"}],
            ("GET", "/api/devices/D2/alerts"): [{"id": 2, "device_id": "D2"}, {"id": 3, "device_id": "D2"}],
        }
    )

    async with _client(transport, store) as client:
        assert await client.get_cached_devices() == []
        await client.get_devices()
        await asyncio.gather(client.get_device_alerts("D1"), client.get_device_alerts("D2"))

        cached_devices = await client.get_cached_devices()
        assert [d.name for d in cached_devices] == ["Car"]
        assert [a.id for a in await client.get_cached_alerts("D2")] == [2, 3]
        assert sorted(a.id for a in await client.get_cached_alerts()) == [1, 2, 3]
        assert await client.get_cached_alerts("D9") == []


@pytest.mark.asyncio
async def test_queued_command_is_delivered_with_token() -> None:
    store = MemoryStore({AUTH_TOKEN_KEY: "tok"})
    transport = _FakeTransport({("POST", "/api/send/D1"): {"ok": True}})

    async with _client(transport, store) as client:
        command_id = client.queue_command("D1", DeviceCommand.BUZZ, "2")
        assert client.queue.get(command_id) is not None

    assert transport.calls == [("POST", "/api/send/D1", {"command": "BUZZ", "value": "2"}, "tok")]
    assert json.loads(store.dump()[QUEUE_KEY]) == []


@pytest.mark.asyncio
async def test_queued_command_waits_for_login() -> None:
    store = MemoryStore()
    transport = _FakeTransport(
        {
            ("POST", "/login"): _USER,
            ("POST", "/api/send/D1"): {"ok": True},
        }
    )

    async with _client(transport, store) as client:
        command_id = client.queue_command("D1", DeviceCommand.ARM)
        await asyncio.sleep(0.01)
        # No token yet: the attempt fails locally and stays queued for a retry.
        pending = client.queue.get(command_id)
        assert pending is not None and pending.retry_count == 1

        await client.login("ana@example.com", "pw")

    assert transport.count("POST", "/api/send/D1") == 1
    assert client.queue.snapshot() == []


@pytest.mark.asyncio
async def test_send_command_bypasses_queue() -> None:
    transport = _FakeTransport({("POST", "/api/send/D%2F1"): {"ok": True}})
    async with _client(transport, MemoryStore({AUTH_TOKEN_KEY: "tok"})) as client:
        assert await client.send_command("D/1", DeviceCommand.DISARM) == {"ok": True}
        assert client.queue.snapshot() == []


@pytest.mark.asyncio
async def test_logout_forgets_session_and_queue() -> None:
    store = MemoryStore(
        {
            AUTH_TOKEN_KEY: "tok",
            USER_DATA_KEY: json.dumps(_USER),
            CACHED_DEVICES_KEY: json.dumps([{"id": "D1"}]),
            CACHED_ALERTS_KEY: json.dumps({"D1": []}),
        }
    )
    transport = _FakeTransport({("POST", "/api/send/D1"): {"ok": True}})
    transport.gate.clear()

    async with _client(transport, store) as client:
        client.queue_command("D1", DeviceCommand.ARM)
        client.queue_command("D1", DeviceCommand.BUZZ)
        await client.logout()
        transport.gate.set()

        assert not await client.is_authenticated()
        assert await client.get_cached_devices() == []

    dumped = store.dump()
    for key in (AUTH_TOKEN_KEY, USER_DATA_KEY, CACHED_DEVICES_KEY, CACHED_ALERTS_KEY):
        assert key not in dumped
    assert json.loads(dumped[QUEUE_KEY]) == []


@pytest.mark.asyncio
async def test_register_and_device_management() -> None:
    transport = _FakeTransport(
        {
            ("POST", "/register"): _USER,
            ("POST", "/devices/register"): {"id": "D1", "name": "Bike", "user_id": 7},
            ("DELETE", "/devices/D1"): {"id": "D1", "name": "Bike"},
        }
    )

    async with _client(transport) as client:
        await client.register("Ana", "ana@example.com", "pw")
        device = await client.register_device(" D1 ", "Bike")
        removed = await client.remove_device("D1")

    assert device.user_id == 7
    assert removed.id == "D1"
    assert transport.calls[1] == ("POST", "/devices/register", {"device_id": "D1", "name": "Bike"}, "tok-abc")


@pytest.mark.asyncio
async def test_watch_devices_reports_only_changes() -> None:
    transport = _FakeTransport({("GET", "/me/devices"): [{"id": "D1"}]})
    seen: list[list[str]] = []

    async with _client(transport, MemoryStore({AUTH_TOKEN_KEY: "tok"}), dedup_ttl=0.0) as client:
        poller = client.watch_devices(lambda devices: seen.append([d.id for d in devices]), interval=0.01)
        await asyncio.sleep(0.05)
        transport.routes[("GET", "/me/devices")] = [{"id": "D1"}, {"id": "D2"}]
        await asyncio.sleep(0.05)
        assert poller.running

    assert not poller.running
    assert seen == [["D1"], ["D1", "D2"]]
    assert transport.count("GET", "/me/devices") >= 3


@pytest.mark.asyncio
async def test_client_requires_context() -> None:
    client = IotuxClient(store=MemoryStore())
    with pytest.raises(IotuxError):
        await client.login("ana@example.com", "pw")
    with pytest.raises(IotuxError):
        _ = client.monitor


@pytest.mark.asyncio
async def test_two_watchers_on_one_device_both_see_changes() -> None:
    transport = _FakeTransport({("GET", "/devices/D1/current"): {"device_id": "D1", "online": True}})
    first: list[bool] = []
    second: list[bool] = []

    async with _client(transport, MemoryStore({AUTH_TOKEN_KEY: "tok"}), dedup_ttl=0.0) as client:
        client.watch_device("D1", lambda current: first.append(current.online), interval=0.01)
        client.watch_device("D1", lambda current: second.append(current.online), interval=0.01)
        await asyncio.sleep(0.05)
        transport.routes[("GET", "/devices/D1/current")] = {"device_id": "D1", "online": False}
        await asyncio.sleep(0.05)

    assert first == [True, False]
    assert second == [True, False]
