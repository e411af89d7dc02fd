"""Periodic polling gated by content hashing."""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from pyiotux._constants import DEFAULT_POLL_INTERVAL
from pyiotux.change import ChangeDetector
from pyiotux.connectivity import ConnectivityMonitor
from pyiotux.exceptions import IotuxAuthenticationError, IotuxError

_logger = logging.getLogger(__name__)

T = TypeVar("T")

_poller_ids = itertools.count(1)


class StatusPoller(Generic[T]):
    """Fetch a resource every *interval* seconds and report real changes.

    *on_change* runs only when the fetched snapshot hashes differently from
    the previous one.  Ticks are skipped while *monitor* reports offline.
    An authentication rejection stops the poller; other errors are logged
    and polling continues.  Each poller compares against its own previous
    snapshot, even when several share one *detector* and *key*.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[T]],
        on_change: Callable[[T], None],
        *,
        key: str,
        interval: float = DEFAULT_POLL_INTERVAL,
        monitor: ConnectivityMonitor | None = None,
        detector: ChangeDetector | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._fetch = fetch
        self._on_change = on_change
        self._key = key
        # Pollers sharing a detector and a key must not consume each other's updates.
        self._slot = f"{key}#{next(_poller_ids)}"
        self._interval = interval
        self._monitor = monitor
        self._detector = detector if detector is not None else ChangeDetector()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def poll_once(self) -> bool:
        """Fetch once.  Returns ``True`` if *on_change* was called."""
        snapshot = await self._fetch()
        if not self._detector.has_changed(self._slot, snapshot):
            return False
        self._on_change(snapshot)
        return True

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"pyiotux-poll-{self._key}")

    async def stop(self) -> None:
        task = self._task
        self._task = None
        self._detector.forget(self._slot)
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def _offline(self) -> bool:
        return self._monitor is not None and self._monitor.known and not self._monitor.currently_online()

    async def _run(self) -> None:
        while True:
            if self._offline():
                _logger.debug("Offline, skipping poll of %s", self._key)
            else:
                try:
                    await self.poll_once()
                except IotuxAuthenticationError:
                    _logger.info("Polling %s stopped: authentication rejected", self._key)
                    return
                except IotuxError as exc:
                    _logger.warning("Polling %s failed: %s", self._key, exc)
                except Exception:
                    _logger.exception("Unexpected error while polling %s", self._key)
            await asyncio.sleep(self._interval)
