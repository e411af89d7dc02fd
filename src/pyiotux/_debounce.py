"""Cancellable, flushable debounce timer for coroutine callbacks."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

_logger = logging.getLogger(__name__)


class DebounceTimer:
    """Coalesce bursts of :meth:`schedule` calls into one deferred call.

    Every ``schedule()`` restarts the delay.  When it elapses, *callback*
    runs as a task on the running loop.  ``flush()`` runs a pending call
    right away and ``cancel()`` drops it; one of the two must be used on
    shutdown so a pending write is never lost silently.
    """

    def __init__(self, delay: float, callback: Callable[[], Awaitable[None]]) -> None:
        self._delay = delay
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None
        self._running: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> bool:
        """Whether a deferred call is scheduled and has not fired yet."""
        return self._handle is not None

    def schedule(self) -> None:
        loop = asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self._delay, self._fire)

    def cancel(self) -> bool:
        """Drop the pending call.  Returns ``True`` if one was pending."""
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        return True

    async def flush(self) -> None:
        """Run the pending call now (if any) and wait for every in-progress run."""
        if self.cancel():
            await self._run()
        if self._running:
            await asyncio.gather(*(asyncio.shield(task) for task in list(self._running)))

    def _fire(self) -> None:
        self._handle = None
        task = asyncio.get_running_loop().create_task(self._run())
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _run(self) -> None:
        try:
            await self._callback()
        except Exception:
            _logger.exception("Debounced callback failed")
