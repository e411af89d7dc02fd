"""Single-flight coordination of idempotent reads.

Concurrent calls for the same ``(method, path)`` share one underlying
request and observe the same outcome, including the same exception.
Only reads belong here; writes must always reach the server.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import partial
from typing import Any, TypeVar

from pyiotux._constants import DEFAULT_DEDUP_TTL

_logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class PendingRequest:
    """An in-flight read shared by every caller with the same key."""

    key: str
    future: asyncio.Future[Any]
    created_at: float


class RequestCoordinator:
    """Deduplicate concurrent identical reads.

    Entries are dropped as soon as their call settles, so a finished result
    is never served to a later, distinct call.  An entry still pending after
    *ttl* seconds is no longer shared; stale entries are swept whenever a
    new one is registered.
    """

    def __init__(
        self,
        *,
        ttl: float = DEFAULT_DEDUP_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl
        self._clock = clock
        self._pending: dict[str, PendingRequest] = {}

    @staticmethod
    def make_key(method: str, path: str) -> str:
        normalized = path.strip()
        if len(normalized) > 1:
            normalized = normalized.rstrip("/")
        return f"{method.strip().upper()} {normalized}"

    def pending_count(self) -> int:
        return len(self._pending)

    def clear(self) -> None:
        """Forget every entry.  Calls already running are not cancelled."""
        self._pending.clear()

    async def coordinate(
        self,
        method: str,
        path: str,
        factory: Callable[[], Awaitable[T]],
    ) -> T:
        key = self.make_key(method, path)
        now = self._clock()

        entry = self._pending.get(key)
        if entry is not None and not entry.future.done() and (now - entry.created_at) < self._ttl:
            _logger.debug("Joining in-flight request %s", key)
            return await asyncio.shield(entry.future)

        self._sweep(now)
        # Registered before the first await so callers in the same tick join it.
        future: asyncio.Future[T] = asyncio.ensure_future(factory())
        entry = PendingRequest(key=key, future=future, created_at=now)
        self._pending[key] = entry
        future.add_done_callback(partial(self._settled, entry))
        return await asyncio.shield(future)

    def _settled(self, entry: PendingRequest, future: asyncio.Future[Any]) -> None:
        if self._pending.get(entry.key) is entry:
            del self._pending[entry.key]
        if not future.cancelled():
            # Mark the exception retrieved; waiters re-raise it themselves.
            future.exception()

    def _sweep(self, now: float) -> None:
        stale = [key for key, entry in self._pending.items() if (now - entry.created_at) >= self._ttl]
        for key in stale:
            _logger.debug("Evicting stale request entry %s", key)
            del self._pending[key]
