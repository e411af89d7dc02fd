from __future__ import annotations

import asyncio

import pytest

from pyiotux._constants import AUTH_TOKEN_KEY
from pyiotux._storage import MemoryStore
from pyiotux.credentials import CredentialCache
from pyiotux.exceptions import IotuxStorageError


class _GatedStore(MemoryStore):
    """Memory store whose reads and writes block until released."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        super().__init__(initial)
        self.get_calls = 0
        self.read_gate = asyncio.Event()
        self.write_gate = asyncio.Event()
        self.write_gate.set()

    async def get(self, key: str) -> str | None:
        self.get_calls += 1
        await self.read_gate.wait()
        return await super().get(key)

    async def set(self, key: str, value: str) -> None:
        await self.write_gate.wait()
        await super().set(key, value)


class _BrokenStore:
    async def get(self, key: str) -> str | None:
        raise IotuxStorageError("disk gone", key=key)

    async def set(self, key: str, value: str) -> None:
        raise IotuxStorageError("disk gone", key=key)

    async def remove(self, *keys: str) -> None:
        raise IotuxStorageError("disk gone")


@pytest.mark.asyncio
async def test_cold_concurrent_reads_share_one_store_read() -> None:
    store = _GatedStore({AUTH_TOKEN_KEY: "tok-1"})
    cache = CredentialCache(store)

    first = asyncio.create_task(cache.get_token())
    second = asyncio.create_task(cache.get_token())
    await asyncio.sleep(0)
    store.read_gate.set()

    assert await asyncio.gather(first, second) == ["tok-1", "tok-1"]
    assert store.get_calls == 1

    assert await cache.get_token() == "tok-1"
    assert store.get_calls == 1
    assert cache.initialized


@pytest.mark.asyncio
async def test_cold_start_without_stored_token() -> None:
    store = _GatedStore()
    store.read_gate.set()
    cache = CredentialCache(store)

    assert await cache.get_token() is None
    assert await cache.get_token() is None
    assert store.get_calls == 1


@pytest.mark.asyncio
async def test_set_token_is_visible_before_write_completes() -> None:
    store = _GatedStore()
    store.write_gate.clear()
    cache = CredentialCache(store)

    cache.set_token("tok-2")
    assert await cache.get_token() == "tok-2"
    assert store.get_calls == 0

    store.write_gate.set()
    await cache.flush()
    assert store.dump()[AUTH_TOKEN_KEY] == "tok-2"


@pytest.mark.asyncio
async def test_clear_wins_over_pending_write() -> None:
    store = _GatedStore()
    store.write_gate.clear()
    cache = CredentialCache(store)

    cache.set_token("stale")
    cache.clear()
    assert await cache.get_token() is None

    store.write_gate.set()
    await cache.flush()
    assert AUTH_TOKEN_KEY not in store.dump()
    assert await cache.get_token() is None


@pytest.mark.asyncio
async def test_clear_during_initial_read_hides_stored_token() -> None:
    store = _GatedStore({AUTH_TOKEN_KEY: "old"})
    cache = CredentialCache(store)

    waiting = asyncio.create_task(cache.get_token())
    await asyncio.sleep(0)
    cache.clear()
    store.read_gate.set()

    assert await waiting is None
    assert await cache.get_token() is None
    await cache.flush()


@pytest.mark.asyncio
async def test_store_failures_degrade_to_memory_only() -> None:
    cache = CredentialCache(_BrokenStore())

    assert await cache.get_token() is None

    cache.set_token("tok-3")
    await cache.flush()
    assert await cache.get_token() == "tok-3"

    cache.clear()
    await cache.flush()
    assert await cache.get_token() is None


@pytest.mark.asyncio
async def test_empty_token_is_rejected() -> None:
    cache = CredentialCache(MemoryStore())
    with pytest.raises(ValueError):
        cache.set_token("")
