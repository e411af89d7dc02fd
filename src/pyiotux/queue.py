"""Durable, retrying queue for outbound device commands.

The queue is the system of record for commands the user has issued but the
server has not yet accepted.  It survives restarts (persisted as one JSON
list in the durable store) and is drained by external triggers: a new
enqueue, a restored connection, or an explicit :meth:`drain` call.  There
is no internal retry timer.

Per command, one delivery attempt moves ``pending|failed -> sending`` and
then either removes the command (accepted) or marks it ``failed``.  A
command that fails ``max_retries`` attempts is dropped and reported with a
``DROPPED`` event.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import ValidationError

from pyiotux._constants import DEFAULT_MAX_RETRIES, DEFAULT_SAVE_DEBOUNCE, QUEUE_KEY
from pyiotux._debounce import DebounceTimer
from pyiotux._storage import DurableStore
from pyiotux.connectivity import ConnectivityMonitor
from pyiotux.exceptions import IotuxAuthenticationError, IotuxError, IotuxStorageError
from pyiotux.models.command import CommandStatus, QueuedCommand

_logger = logging.getLogger(__name__)

CommandSender = Callable[[str, str, str | None], Awaitable[Any]]


class QueueEventType(StrEnum):
    SENT = "sent"
    FAILED = "failed"
    DROPPED = "dropped"
    AUTH_REJECTED = "auth_rejected"


@dataclass(frozen=True, slots=True)
class QueueEvent:
    """Outcome of one delivery attempt, as seen by listeners."""

    type: QueueEventType
    command: QueuedCommand
    error: BaseException | None = None


QueueListener = Callable[[QueueEvent], None]


class DurableCommandQueue:
    """Persisted command queue with bounded, externally triggered retries.

    Usage::

        queue = DurableCommandQueue(store, sender)
        await queue.init()
        command_id = queue.enqueue("D1", DeviceCommand.ARM)
        ...
        await queue.dispose()
    """

    def __init__(
        self,
        store: DurableStore,
        sender: CommandSender,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        save_debounce: float = DEFAULT_SAVE_DEBOUNCE,
        key: str = QUEUE_KEY,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self._store = store
        self._sender = sender
        self._max_retries = max_retries
        self._key = key
        self._queue: list[QueuedCommand] = []
        self._initialized = False
        self._draining = False
        self._drain_tasks: set[asyncio.Task[None]] = set()
        self._listeners: list[QueueListener] = []
        self._detach_monitor: Callable[[], None] | None = None
        self._write_lock = asyncio.Lock()
        self._saver = DebounceTimer(save_debounce, self._save_now)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def draining(self) -> bool:
        return self._draining

    @property
    def max_retries(self) -> int:
        return self._max_retries

    async def init(self) -> None:
        """Hydrate the queue from the durable store.  Runs once."""
        if self._initialized:
            return
        self._queue = await self._load()
        self._initialized = True
        if self._queue:
            _logger.info("Loaded %d queued commands", len(self._queue))

    def attach(self, monitor: ConnectivityMonitor) -> None:
        """Drain whenever *monitor* reports the connection coming back."""
        self.detach()

        def _on_change(online: bool) -> None:
            if online and self._initialized:
                _logger.debug("Connection restored, draining command queue")
                self.trigger()

        self._detach_monitor = monitor.subscribe(_on_change)

    def detach(self) -> None:
        if self._detach_monitor is not None:
            self._detach_monitor()
            self._detach_monitor = None

    async def dispose(self) -> None:
        """Stop reacting to triggers and flush state to the store.

        Background drains are awaited, then any pending debounced write is
        performed now rather than dropped.
        """
        self.detach()
        if self._drain_tasks:
            await asyncio.gather(*list(self._drain_tasks), return_exceptions=True)
        await self._saver.flush()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def subscribe(self, listener: QueueListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, event_type: QueueEventType, command: QueuedCommand, error: BaseException | None = None) -> None:
        event = QueueEvent(type=event_type, command=command.model_copy(deep=True), error=error)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                _logger.exception("Queue listener failed for %s", event_type)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def enqueue(self, device_id: str, command: str, value: str | None = None) -> str:
        """Queue a command and return its id without waiting for delivery."""
        self._require_initialized()
        queued = QueuedCommand(device_id=device_id, command=str(command), value=value)
        while self._find(queued.id) is not None:
            queued = QueuedCommand(device_id=device_id, command=str(command), value=value)
        self._queue.append(queued)
        self._saver.schedule()
        _logger.debug("Command queued id=%s command=%s device=%s", queued.id, queued.command, device_id)
        self.trigger()
        return queued.id

    async def drain(self) -> None:
        """Attempt delivery of every ``pending`` or ``failed`` command once.

        A call made while another drain is running returns immediately; the
        running pass or the next trigger picks up new commands.
        """
        self._require_initialized()
        if self._draining:
            _logger.debug("Drain already in progress")
            return
        self._draining = True
        try:
            for command in [c for c in self._queue if c.eligible]:
                if self._find(command.id) is not command:
                    # cleared while an earlier command was in flight
                    continue
                if command.retry_count >= self._max_retries:
                    self._drop(command)
                    continue
                await self._attempt(command)
        finally:
            self._draining = False
            await self._save_now()

    async def clear_all(self) -> None:
        """Discard every command and persist the empty queue immediately.

        A delivery attempt already in flight is not aborted; its outcome is
        ignored.
        """
        self._require_initialized()
        self._queue = []
        self._saver.cancel()
        await self._save_now()
        _logger.debug("Command queue cleared")

    def pending_count(self) -> int:
        return sum(1 for command in self._queue if command.eligible)

    def snapshot(self) -> list[QueuedCommand]:
        return [command.model_copy(deep=True) for command in self._queue]

    def get(self, command_id: str) -> QueuedCommand | None:
        command = self._find(command_id)
        return command.model_copy(deep=True) if command is not None else None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise IotuxError("Command queue used before init()")

    def _find(self, command_id: str) -> QueuedCommand | None:
        for command in self._queue:
            if command.id == command_id:
                return command
        return None

    def _remove(self, command: QueuedCommand) -> bool:
        before = len(self._queue)
        self._queue = [c for c in self._queue if c.id != command.id]
        return len(self._queue) != before

    def _drop(self, command: QueuedCommand, error: BaseException | None = None) -> None:
        self._remove(command)
        self._saver.schedule()
        _logger.warning(
            "Command %s (%s for %s) dropped after %d attempts",
            command.id,
            command.command,
            command.device_id,
            command.retry_count,
        )
        self._emit(QueueEventType.DROPPED, command, error)

    async def _attempt(self, command: QueuedCommand) -> None:
        """Run one delivery attempt.  Failures are recorded, never raised."""
        command.status = CommandStatus.SENDING
        command.retry_count += 1
        self._saver.schedule()
        try:
            await self._sender(command.device_id, command.command, command.value)
        except asyncio.CancelledError:
            command.status = CommandStatus.FAILED
            raise
        except Exception as exc:  # noqa: BLE001 - one failing command must not abort the pass
            command.status = CommandStatus.FAILED
            if self._find(command.id) is not command:
                return
            rejected = isinstance(exc, IotuxAuthenticationError)
            if rejected:
                _logger.info("Command %s rejected: not authenticated", command.id)
            else:
                _logger.debug("Command %s attempt %d failed: %s", command.id, command.retry_count, exc)
            if command.retry_count >= self._max_retries:
                self._drop(command, exc)
            else:
                self._saver.schedule()
                self._emit(QueueEventType.AUTH_REJECTED if rejected else QueueEventType.FAILED, command, exc)
            return

        command.status = CommandStatus.SUCCESS
        if self._remove(command):
            self._saver.schedule()
            _logger.debug("Command %s (%s) delivered", command.id, command.command)
            self._emit(QueueEventType.SENT, command)

    def trigger(self) -> None:
        """Start a drain in the background; it is a no-op if one is running."""
        task = asyncio.get_running_loop().create_task(self._background_drain())
        self._drain_tasks.add(task)
        task.add_done_callback(self._drain_tasks.discard)

    async def _background_drain(self) -> None:
        try:
            await self.drain()
        except Exception:
            _logger.exception("Background drain failed")

    def _serialize(self) -> str:
        return json.dumps(
            [command.model_dump(mode="json", by_alias=True) for command in self._queue],
            separators=(",", ":"),
        )

    async def _save_now(self) -> None:
        self._saver.cancel()
        async with self._write_lock:
            # Serialized under the lock so the last write always carries the latest state.
            payload = self._serialize()
            try:
                await self._store.set(self._key, payload)
            except IotuxStorageError as exc:
                _logger.warning("Failed to save command queue, keeping it in memory: %s", exc)

    async def _load(self) -> list[QueuedCommand]:
        try:
            stored = await self._store.get(self._key)
        except IotuxStorageError as exc:
            _logger.warning("Failed to load command queue, starting empty: %s", exc)
            return []
        if not stored:
            return []
        try:
            items = json.loads(stored)
        except json.JSONDecodeError:
            _logger.warning("Stored command queue is not valid JSON, starting empty")
            return []
        if not isinstance(items, list):
            _logger.warning("Stored command queue is not a list, starting empty")
            return []

        loaded: list[QueuedCommand] = []
        seen: set[str] = set()
        for item in items:
            try:
                command = QueuedCommand.model_validate(item)
            except ValidationError as exc:
                _logger.warning("Skipping unreadable queued command: %s", exc)
                continue
            if command.id in seen:
                continue
            seen.add(command.id)
            if command.status is CommandStatus.SENDING:
                # interrupted mid-attempt by a restart
                command.status = CommandStatus.FAILED
            loaded.append(command)
        return loaded
