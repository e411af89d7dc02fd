"""Single-flight cell for racing initializers.

A cell is *not started*, *in progress* (a shared future every caller
awaits) or *resolved* (a plain value).  Only the first caller runs the
loader; everyone else shares its outcome.
"""

from __future__ import annotations

import asyncio
import enum
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

T = TypeVar("T")


class CellState(enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


class SingleFlight(Generic[T]):
    """Memoize one asynchronous load, sharing it between concurrent callers.

    A failed load leaves the cell *not started*, so the next caller retries.
    ``set()`` and ``reset()`` win over a load that is still in flight: its
    result is not stored, and waiters see the value set in the meantime.
    """

    def __init__(self) -> None:
        self._state = CellState.NOT_STARTED
        self._value: T | None = None
        self._future: asyncio.Future[T] | None = None
        self._generation = 0

    @property
    def state(self) -> CellState:
        return self._state

    @property
    def value(self) -> T | None:
        """Resolved value, or ``None`` when the cell is not resolved."""
        return self._value if self._state is CellState.RESOLVED else None

    def set(self, value: T) -> None:
        self._generation += 1
        self._future = None
        self._value = value
        self._state = CellState.RESOLVED

    def reset(self) -> None:
        self._generation += 1
        self._future = None
        self._value = None
        self._state = CellState.NOT_STARTED

    async def get(self, loader: Callable[[], Awaitable[T]]) -> T:
        if self._state is CellState.RESOLVED:
            return self._value  # type: ignore[return-value]
        if self._future is None:
            self._future = asyncio.ensure_future(self._load(loader, self._generation))
            self._state = CellState.IN_PROGRESS
        generation = self._generation
        # shield: a cancelled waiter must not cancel the shared load
        value = await asyncio.shield(self._future)
        if generation != self._generation and self._state is CellState.RESOLVED:
            return self._value  # type: ignore[return-value]
        return value

    async def _load(self, loader: Callable[[], Awaitable[T]], generation: int) -> T:
        try:
            value = await loader()
        except BaseException:
            if generation == self._generation:
                self._future = None
                self._state = CellState.NOT_STARTED
            raise
        if generation == self._generation:
            self._future = None
            self._value = value
            self._state = CellState.RESOLVED
        return value
