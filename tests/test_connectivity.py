from __future__ import annotations

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from pyiotux.connectivity import ConnectivityMonitor, http_probe
from pyiotux.exceptions import IotuxConnectivityError


def test_state_is_unknown_until_observed() -> None:
    monitor = ConnectivityMonitor()
    assert not monitor.known
    with pytest.raises(IotuxConnectivityError):
        monitor.currently_online()

    monitor.update(True)
    assert monitor.currently_online() is True


def test_listeners_fire_on_transitions_only() -> None:
    monitor = ConnectivityMonitor()
    seen: list[bool] = []
    monitor.subscribe(seen.append)

    monitor.update(True)
    monitor.update(True)
    monitor.update(False)
    monitor.update(False)
    monitor.update(True)

    assert seen == [False, True]


def test_unsubscribe_stops_notifications() -> None:
    monitor = ConnectivityMonitor()
    seen: list[bool] = []
    unsubscribe = monitor.subscribe(seen.append)
    monitor.update(True)
    unsubscribe()
    unsubscribe()
    monitor.update(False)
    assert seen == []


def test_failing_listener_does_not_block_others() -> None:
    monitor = ConnectivityMonitor()
    seen: list[bool] = []

    def _boom(_online: bool) -> None:
        raise RuntimeError("listener bug")

    monitor.subscribe(_boom)
    monitor.subscribe(seen.append)
    monitor.update(False)
    monitor.update(True)
    assert seen == [True]


@pytest.mark.asyncio
async def test_check_connection_records_probe_result() -> None:
    results = iter([False, True])

    async def _probe() -> bool:
        return next(results)

    monitor = ConnectivityMonitor(_probe)
    seen: list[bool] = []
    monitor.subscribe(seen.append)

    assert await monitor.check_connection() is False
    assert monitor.currently_online() is False
    assert await monitor.check_connection() is True
    assert seen == [True]


@pytest.mark.asyncio
async def test_check_connection_without_probe_raises() -> None:
    with pytest.raises(IotuxConnectivityError):
        await ConnectivityMonitor().check_connection()


@pytest.mark.asyncio
async def test_http_probe_treats_any_answer_as_reachable() -> None:
    app = web.Application()
    async with TestServer(app) as server, aiohttp.ClientSession() as session:
        # No routes: the server answers 404, which still proves reachability.
        probe = http_probe(session, str(server.make_url("/")), timeout=2.0)
        assert await probe() is True

        unreachable = http_probe(session, "http://127.0.0.1:1/", timeout=2.0)
        assert await unreachable() is False
