"""Debounced automatic push after local edits.

The watcher listens to committed store mutations. Only user-origin writes
count; writes the orchestrator makes while applying a snapshot are tagged
with the sync origin and are ignored, so applying a merge never schedules
another push.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Coroutine
from typing import Any

import aiohttp

from autochecks.config import SyncConfig
from autochecks.connectivity import ConnectivityEvent, ConnectivityMonitor
from autochecks.exceptions import OfflineError, SyncError
from autochecks.network_queue import NetworkQueue
from autochecks.store.base import LocalStore
from autochecks.store.events import MutationEvent
from autochecks.sync.orchestrator import OFFLINE_MESSAGE, SyncOrchestrator
from autochecks.sync.status import SyncState

_logger = logging.getLogger(__name__)


class MutationWatcher:
    """Coalesces bursts of local writes into a single push.

    Each user-origin mutation cancels and restarts the debounce timer.
    While offline no timer is started; the status moves to
    ``offline-pending`` and the push runs once connectivity is restored.
    """

    def __init__(
        self,
        store: LocalStore,
        orchestrator: SyncOrchestrator,
        *,
        config: SyncConfig,
        connectivity: ConnectivityMonitor | None = None,
        queue: NetworkQueue | None = None,
        http_session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._store = store
        self._orchestrator = orchestrator
        self._config = config
        self._connectivity = connectivity
        self._queue = queue
        self._http = http_session
        self._pending = False
        self._timer: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._unsubscribers: list[Callable[[], None]] = []

    @property
    def has_pending_changes(self) -> bool:
        return self._pending

    @property
    def is_running(self) -> bool:
        return bool(self._unsubscribers)

    def start(self) -> None:
        if self._unsubscribers:
            return
        self._unsubscribers.append(self._store.subscribe(self._on_mutation))
        if self._connectivity is not None:
            self._unsubscribers.append(self._connectivity.subscribe(self._on_connectivity))
        _logger.debug("Mutation watcher started (debounce=%.3fs)", self._config.debounce_seconds)

    async def stop(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for task in list(self._tasks):
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def wait_idle(self) -> None:
        """Wait until any scheduled or in-flight push has finished."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def _is_offline(self) -> bool:
        return self._connectivity is not None and not self._connectivity.is_online

    def _on_mutation(self, event: MutationEvent) -> None:
        if not event.triggers_push or not self._config.auto_sync:
            return
        self._pending = True
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._spawn(self._debounce())

    def _on_connectivity(self, event: ConnectivityEvent) -> None:
        if event != ConnectivityEvent.RESTORED or not self._pending:
            return
        self._spawn(self._resume())

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ------------------------------------------------------------------
    # Work
    # ------------------------------------------------------------------

    async def _sync_account(self) -> str | None:
        """Account linked to this device, or ``None`` when sync is off."""
        settings = await self._store.get_settings()
        if settings.cloud_auto_sync is False or not settings.cloud_user_id:
            return None
        return settings.cloud_user_id

    async def _wait_for_quiet(self) -> bool:
        account_id = await self._sync_account()
        if account_id is None:
            self._pending = False
            return False
        if self._is_offline():
            self._orchestrator.publisher.set_state(SyncState.OFFLINE_PENDING, message=OFFLINE_MESSAGE)
            return False
        await asyncio.sleep(self._config.debounce_seconds)
        return True

    async def _debounce(self) -> None:
        try:
            ready = await self._wait_for_quiet()
        finally:
            # Once the timer has elapsed a new mutation starts a fresh timer
            # rather than cancelling the push below.
            if self._timer is asyncio.current_task():
                self._timer = None
        if ready:
            _logger.debug("Debounce elapsed; pushing local changes")
            await self.push_now()

    async def _resume(self) -> None:
        if self._queue is not None and self._http is not None and self._queue.count():
            try:
                result = await self._queue.flush(self._http)
            except OSError as exc:
                _logger.warning("Replaying queued requests failed: %s", exc)
            else:
                _logger.debug("Replayed queued requests: sent=%d failed=%d", result.sent, result.failed)
        if self._pending and self._timer is None:
            await self.push_now()

    async def push_now(self) -> bool:
        """Push pending local changes now. Returns True when a push succeeded."""
        account_id = await self._sync_account()
        if account_id is None:
            self._pending = False
            return False
        self._pending = False
        try:
            await self._orchestrator.push(account_id)
        except OfflineError:
            self._pending = True
            _logger.debug("Automatic push deferred until connectivity returns")
            return False
        except SyncError as exc:
            self._pending = True
            _logger.warning("Automatic push failed: %s", exc)
            return False
        return True
