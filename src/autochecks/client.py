"""High-level async client wiring the sync engine together."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, TypeVar

import aiohttp

from autochecks.backend import SupabaseBackend
from autochecks.config import SyncConfig
from autochecks.connectivity import ConnectivityMonitor
from autochecks.exceptions import AuthError, AutoChecksError, SessionExpiredError
from autochecks.models.snapshot import SyncResult
from autochecks.network_queue import NetworkQueue
from autochecks.session import AuthSession
from autochecks.store.events import WriteOrigin
from autochecks.store.memory import MemoryStore
from autochecks.sync.orchestrator import SyncOrchestrator
from autochecks.sync.status import StatusListener, SyncStatus, SyncStatusPublisher
from autochecks.sync.watcher import MutationWatcher

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class SyncClient:
    """Cloud sync for the local vehicle/check store.

    Usage::

        async with SyncClient(SyncConfig.from_env()) as client:
            await client.sign_in(email, password)
            await client.store.add_vehicle(Vehicle.new("B-01-ABC"))
            result = await client.smart_sync()
    """

    def __init__(
        self,
        config: SyncConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        store: MemoryStore | None = None,
        connectivity: ConnectivityMonitor | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._store = store or MemoryStore(config.store_path)
        self._connectivity = connectivity or ConnectivityMonitor()
        self._publisher = SyncStatusPublisher()
        self._queue = NetworkQueue(config.queue_path, timeout=config.request_timeout)
        self._backend: SupabaseBackend | None = None
        self._orchestrator: SyncOrchestrator | None = None
        self._watcher: MutationWatcher | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> SyncClient:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        try:
            self._backend = SupabaseBackend(self._config, self._http_session)
            await self._store.load()
        except AutoChecksError:
            await self._close_http()
            raise
        self._orchestrator = SyncOrchestrator(
            self._store,
            self._backend,
            publisher=self._publisher,
            connectivity=self._connectivity,
        )
        self._watcher = MutationWatcher(
            self._store,
            self._orchestrator,
            config=self._config,
            connectivity=self._connectivity,
            queue=self._queue,
            http_session=self._http_session,
        )
        self._watcher.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._watcher is not None:
            await self._watcher.stop()
            self._watcher = None
        self._orchestrator = None
        self._backend = None
        await self._close_http()

    async def _close_http(self) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def store(self) -> MemoryStore:
        return self._store

    @property
    def connectivity(self) -> ConnectivityMonitor:
        return self._connectivity

    @property
    def queue(self) -> NetworkQueue:
        return self._queue

    @property
    def status(self) -> SyncStatus:
        return self._publisher.status

    def subscribe_status(self, listener: StatusListener) -> Callable[[], None]:
        return self._publisher.subscribe(listener)

    def _require_backend(self) -> SupabaseBackend:
        if self._backend is None:
            raise AutoChecksError("Client not initialized. Use 'async with SyncClient(...) as client:'")
        return self._backend

    def _require_orchestrator(self) -> SyncOrchestrator:
        if self._orchestrator is None:
            raise AutoChecksError("Client not initialized. Use 'async with SyncClient(...) as client:'")
        return self._orchestrator

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def sign_in(self, email: str, password: str, *, hydrate: bool = True) -> AuthSession:
        """Sign in and, by default, load the account's data into the local store."""
        session = await self._require_backend().sign_in_with_password(email, password)
        if hydrate:
            await self.hydrate_for_account(session.user_id, email=session.email)
        return session

    async def sign_out(self) -> None:
        """Sign out remotely and unlink the local store from the account."""
        await self._require_backend().sign_out()
        await self._unlink_account()

    async def _unlink_account(self) -> None:
        await self._store.upsert_settings(
            origin=WriteOrigin.SYNC,
            cloud_user_id=None,
            cloud_user_email=None,
        )

    async def _account_id(self, account_id: str | None) -> str:
        if account_id:
            return account_id
        settings = await self._store.get_settings()
        if settings.cloud_user_id:
            return settings.cloud_user_id
        backend = self._require_backend()
        if backend.session is not None:
            return backend.session.user_id
        raise AuthError("No authenticated user session found.")

    async def _call(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run an orchestrator call, unlinking the account if the session went stale."""
        try:
            return await fn()
        except SessionExpiredError:
            _logger.debug("Session expired during sync; unlinking local store")
            await self._unlink_account()
            raise

    # ------------------------------------------------------------------
    # Sync operations
    # ------------------------------------------------------------------

    async def push(self, account_id: str | None = None) -> datetime:
        orchestrator = self._require_orchestrator()
        resolved = await self._account_id(account_id)
        return await self._call(lambda: orchestrator.push(resolved))

    async def pull(self, account_id: str | None = None) -> SyncResult:
        orchestrator = self._require_orchestrator()
        resolved = await self._account_id(account_id)
        return await self._call(lambda: orchestrator.pull(resolved))

    async def smart_sync(self, account_id: str | None = None) -> SyncResult:
        orchestrator = self._require_orchestrator()
        resolved = await self._account_id(account_id)
        return await self._call(lambda: orchestrator.smart_sync(resolved))

    async def hydrate_for_account(self, account_id: str, *, email: str | None = None) -> SyncResult:
        orchestrator = self._require_orchestrator()
        return await self._call(lambda: orchestrator.hydrate_for_account(account_id, email=email))

    async def wait_idle(self) -> None:
        """Wait for any pending automatic push to finish."""
        if self._watcher is not None:
            await self._watcher.wait_idle()
