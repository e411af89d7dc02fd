"""Network reachability observer."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

import aiohttp

from pyiotux.exceptions import IotuxConnectivityError

_logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[bool], None]
Probe = Callable[[], Awaitable[bool]]


def http_probe(session: aiohttp.ClientSession, url: str, *, timeout: float) -> Probe:
    """Build a probe that treats any HTTP answer from *url* as reachable."""

    async def _probe() -> bool:
        try:
            async with session.head(
                url,
                timeout=aiohttp.ClientTimeout(total=timeout),
                allow_redirects=False,
            ):
                return True
        except (aiohttp.ClientError, TimeoutError) as exc:
            _logger.debug("Connectivity probe to %s failed: %s", url, exc)
            return False

    return _probe


class ConnectivityMonitor:
    """Track online/offline state and notify listeners on transitions.

    The state is unknown until the first :meth:`update` or
    :meth:`check_connection`; :meth:`currently_online` refuses to guess
    before that.
    """

    def __init__(self, probe: Probe | None = None) -> None:
        self._probe = probe
        self._online: bool | None = None
        self._listeners: list[ConnectivityListener] = []

    @property
    def known(self) -> bool:
        return self._online is not None

    def currently_online(self) -> bool:
        if self._online is None:
            raise IotuxConnectivityError("Connectivity unknown; call check_connection() first")
        return self._online

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def update(self, online: bool) -> None:
        """Record an observation from the platform connectivity signal."""
        previous = self._online
        self._online = online
        if previous is None or previous == online:
            # The first observation establishes state; it is not a transition.
            return
        _logger.debug("Connectivity changed: %s", "online" if online else "offline")
        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception:
                _logger.exception("Connectivity listener failed")

    async def check_connection(self) -> bool:
        """Probe reachability right now and record the result."""
        if self._probe is None:
            raise IotuxConnectivityError("No connectivity probe configured")
        online = await self._probe()
        self.update(online)
        return online
