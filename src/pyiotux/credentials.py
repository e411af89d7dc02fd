"""In-memory auth token cache backed by the durable store.

Memory is the source of truth.  The durable store is written behind, in
call order, so a slow write from an earlier ``set_token()`` can never
resurrect a token after ``clear()``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from pyiotux._constants import AUTH_TOKEN_KEY
from pyiotux._redact import mask_token
from pyiotux._singleflight import CellState, SingleFlight
from pyiotux._storage import DurableStore
from pyiotux.exceptions import IotuxStorageError

_logger = logging.getLogger(__name__)


class CredentialCache:
    """Process-wide holder of the current auth token.

    The first :meth:`get_token` reads the store once; concurrent callers
    during that read share it.  Later reads are served from memory.
    """

    def __init__(self, store: DurableStore, *, key: str = AUTH_TOKEN_KEY) -> None:
        self._store = store
        self._key = key
        self._cell: SingleFlight[str | None] = SingleFlight()
        self._last_write: asyncio.Task[None] | None = None

    @property
    def initialized(self) -> bool:
        return self._cell.state is CellState.RESOLVED

    async def get_token(self) -> str | None:
        return await self._cell.get(self._load)

    def set_token(self, token: str) -> None:
        """Replace the token in memory now; persist it in the background."""
        if not token:
            raise ValueError("token must be a non-empty string")
        self._cell.set(token)
        _logger.debug("Credential set token=%s", mask_token(token))
        self._chain_write(lambda: self._store.set(self._key, token))

    def clear(self) -> None:
        """Forget the token in memory now; remove it from the store in the background."""
        self._cell.set(None)
        _logger.debug("Credential cleared")
        self._chain_write(lambda: self._store.remove(self._key))

    async def flush(self) -> None:
        """Wait until every scheduled durable write has finished."""
        last = self._last_write
        if last is not None:
            await asyncio.wait([last])

    async def _load(self) -> str | None:
        try:
            token = await self._store.get(self._key)
        except IotuxStorageError as exc:
            _logger.warning("Could not read stored credential, continuing without it: %s", exc)
            return None
        _logger.debug("Credential loaded from store token=%s", mask_token(token))
        return token or None

    def _chain_write(self, op: Callable[[], Awaitable[None]]) -> None:
        previous = self._last_write
        self._last_write = asyncio.get_running_loop().create_task(self._write(previous, op))

    async def _write(self, previous: asyncio.Task[None] | None, op: Callable[[], Awaitable[None]]) -> None:
        if previous is not None:
            await asyncio.wait([previous])
        try:
            await op()
        except IotuxStorageError as exc:
            _logger.warning("Credential write failed, keeping in-memory value: %s", exc)
