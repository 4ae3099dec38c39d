"""Drives the remote round trip: push, pull, smart sync and hydrate.

Every operation:

* resolves the authenticated account id from the backend (the
  authenticated id wins over a stale caller-supplied one);
* runs under a per-account lock, so overlapping triggers (a debounced
  auto-push firing during a manual sync) serialize instead of racing on
  the local replace;
* publishes ``syncing`` and then exactly one terminal state, also when
  it fails.

Local writes made while applying a snapshot are tagged
:attr:`WriteOrigin.SYNC` and therefore never re-trigger a push.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TypeVar

from autochecks.backend import RemoteBackend
from autochecks.connectivity import ConnectivityMonitor
from autochecks.exceptions import NetworkError, OfflineError
from autochecks.models._base import utcnow
from autochecks.models.settings import Settings
from autochecks.models.snapshot import Snapshot, SyncResult
from autochecks.store.base import LocalStore
from autochecks.store.events import Collection, WriteOrigin
from autochecks.sync.codec import build_snapshot, encode_payload
from autochecks.sync.merge import canonicalize, merge
from autochecks.sync.status import SyncState, SyncStatusPublisher

_logger = logging.getLogger(__name__)

T = TypeVar("T")

OFFLINE_MESSAGE = "Offline. Changes are waiting to sync."


class SyncOrchestrator:
    """Reconciles the local store with the account's remote snapshot."""

    def __init__(
        self,
        store: LocalStore,
        backend: RemoteBackend,
        *,
        publisher: SyncStatusPublisher | None = None,
        connectivity: ConnectivityMonitor | None = None,
    ) -> None:
        self._store = store
        self._backend = backend
        self._publisher = publisher or SyncStatusPublisher()
        self._connectivity = connectivity
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def publisher(self) -> SyncStatusPublisher:
        return self._publisher

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def push(self, account_id: str) -> datetime:
        """Upload the local collections as the account's snapshot.

        Returns the remote ``updated_at`` of the written row.
        """

        async def _op() -> datetime:
            resolved = await self._resolve_account(account_id)
            return await self._push(resolved)

        return await self._run(account_id, "push", _op)

    async def pull(self, account_id: str) -> SyncResult:
        """Replace local collections with the remote snapshot.

        Returns :attr:`SyncResult.EMPTY` when the account has no snapshot yet.
        """

        async def _op() -> SyncResult:
            resolved = await self._resolve_account(account_id)
            row = await self._backend.fetch_snapshot(resolved)
            if row is None:
                return SyncResult.EMPTY
            await self._apply(row.payload, resolved)
            return SyncResult.APPLIED

        return await self._run(account_id, "pull", _op)

    async def smart_sync(self, account_id: str) -> SyncResult:
        """Primary entry point: union-merge local and remote, then converge both.

        The merge always runs; neither side is trusted to be "newer".
        """

        async def _op() -> SyncResult:
            resolved = await self._resolve_account(account_id)
            row = await self._backend.fetch_snapshot(resolved)
            if row is None:
                await self._push(resolved)
                return SyncResult.PUSHED_NEW

            local = await self._local_snapshot()
            merged = merge(local, row.payload)
            await self._apply(merged, resolved)
            await self._push(resolved, merged)
            return SyncResult.PULLED

        return await self._run(account_id, "smart_sync", _op)

    async def hydrate_for_account(self, account_id: str, *, email: str | None = None) -> SyncResult:
        """Load the account's data right after sign-in.

        With no remote snapshot the local collections are reset to a blank
        state linked to the new account, so a previous account's data never
        leaks into it.
        """

        async def _op() -> SyncResult:
            resolved = await self._resolve_account(account_id)
            row = await self._backend.fetch_snapshot(resolved)
            if row is None:
                await self._reset(resolved, email)
                return SyncResult.EMPTY
            await self._apply(row.payload, resolved, email=email)
            return SyncResult.APPLIED

        return await self._run(account_id, "hydrate", _op)

    # ------------------------------------------------------------------
    # Status + serialization wrapper
    # ------------------------------------------------------------------

    def _lock_for(self, account_id: str) -> asyncio.Lock:
        lock = self._locks.get(account_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[account_id] = lock
        return lock

    def _offline_error(self, exc: NetworkError | None = None) -> OfflineError | None:
        if self._connectivity is None or self._connectivity.is_online:
            return None
        if isinstance(exc, OfflineError):
            return exc
        if exc is None:
            return OfflineError("Device is offline")
        return OfflineError(str(exc), endpoint=exc.endpoint, status_code=exc.status_code)

    async def _run(self, account_id: str, name: str, op: Callable[[], Awaitable[T]]) -> T:
        async with self._lock_for(account_id):
            self._publisher.set_state(SyncState.SYNCING)
            try:
                offline = self._offline_error()
                if offline is not None:
                    raise offline
                result = await op()
            except OfflineError as exc:
                self._publisher.set_state(SyncState.OFFLINE_PENDING, message=OFFLINE_MESSAGE)
                _logger.debug("%s deferred: device offline (%s)", name, exc)
                raise
            except NetworkError as exc:
                offline = self._offline_error(exc)
                if offline is not None:
                    self._publisher.set_state(SyncState.OFFLINE_PENDING, message=OFFLINE_MESSAGE)
                    raise offline from exc
                self._publisher.set_state(SyncState.ERROR, message=str(exc))
                raise
            except Exception as exc:
                self._publisher.set_state(SyncState.ERROR, message=str(exc) or type(exc).__name__)
                raise

            settings = await self._store.get_settings()
            self._publisher.set_state(SyncState.SYNCED, last_synced_at=settings.cloud_last_synced_at)
            _logger.debug("%s finished for account=%s: %s", name, account_id, result)
            return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _resolve_account(self, expected: str) -> str:
        current = await self._backend.current_account_id()
        if expected and expected != current:
            _logger.warning("Sync account mismatch detected; using the authenticated account id")
        return current

    async def _local_snapshot(self) -> Snapshot:
        local = await self._store.read_all()
        return build_snapshot(local.vehicles, local.checks, local.settings)

    async def _canonicalize_local(self) -> Snapshot:
        """Renumber the local rows exactly as they are about to be uploaded.

        Local and remote then agree on surrogate ids, and with them on the
        fallback identity key of vehicles that have neither plate nor VIN.
        """
        async with self._store.transaction(WriteOrigin.SYNC) as tx:
            local = tx.snapshot()
            outgoing = canonicalize(build_snapshot(local.vehicles, local.checks, local.settings))
            if outgoing.vehicles != local.vehicles or outgoing.checks != local.checks:
                tx.clear(Collection.VEHICLES)
                tx.clear(Collection.CHECKS)
                tx.bulk_add_vehicles(outgoing.vehicles)
                tx.bulk_add_checks(outgoing.checks)
        return outgoing

    async def _push(self, account_id: str, snapshot: Snapshot | None = None) -> datetime:
        outgoing = await self._canonicalize_local() if snapshot is None else canonicalize(snapshot)
        updated_at = await self._backend.upsert_snapshot(account_id, encode_payload(outgoing))
        await self._store.upsert_settings(origin=WriteOrigin.SYNC, cloud_last_synced_at=utcnow())
        _logger.debug(
            "Pushed snapshot for account=%s vehicles=%d checks=%d",
            account_id,
            len(outgoing.vehicles),
            len(outgoing.checks),
        )
        return updated_at

    async def _apply(self, snapshot: Snapshot, account_id: str, *, email: str | None = None) -> None:
        """Atomically replace all three local collections with *snapshot*.

        Only the sync-identity settings fields are taken from the local row.
        """
        current = await self._store.get_settings()
        incoming = canonicalize(snapshot)
        auto_sync = current.cloud_auto_sync
        if auto_sync is None:
            auto_sync = incoming.settings.cloud_auto_sync
        settings = incoming.settings.model_copy(
            update={
                "cloud_user_id": account_id,
                "cloud_user_email": email or current.cloud_user_email,
                "cloud_auto_sync": auto_sync,
                "cloud_last_synced_at": utcnow(),
            }
        )
        async with self._store.transaction(WriteOrigin.SYNC) as tx:
            tx.clear(Collection.VEHICLES)
            tx.clear(Collection.CHECKS)
            tx.clear(Collection.SETTINGS)
            tx.bulk_add_vehicles(incoming.vehicles)
            tx.bulk_add_checks(incoming.checks)
            tx.put_settings(settings)

    async def _reset(self, account_id: str, email: str | None) -> None:
        current = await self._store.get_settings()
        blank = Settings(
            cloud_user_id=account_id,
            cloud_user_email=email,
            cloud_auto_sync=current.cloud_auto_sync,
        )
        async with self._store.transaction(WriteOrigin.SYNC) as tx:
            tx.clear(Collection.VEHICLES)
            tx.clear(Collection.CHECKS)
            tx.clear(Collection.SETTINGS)
            tx.put_settings(blank)
