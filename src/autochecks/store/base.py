"""Structural interface of the local store consumed by the sync engine."""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Protocol

from autochecks.models.check import Check
from autochecks.models.settings import Settings
from autochecks.models.snapshot import Snapshot
from autochecks.models.vehicle import Vehicle
from autochecks.store.events import Collection, MutationEvent, WriteOrigin

MutationListener = Callable[[MutationEvent], None]


class StoreTransaction(Protocol):
    """Staged writes that become visible together on commit."""

    def snapshot(self) -> Snapshot: ...

    def clear(self, collection: Collection) -> None: ...

    def bulk_add_vehicles(self, vehicles: list[Vehicle]) -> None: ...

    def bulk_add_checks(self, checks: list[Check]) -> None: ...

    def put_settings(self, settings: Settings) -> Settings: ...


class LocalStore(Protocol):
    """Three transactional collections plus a mutation hook.

    Having a protocol here lets the orchestrator and watcher run against
    any storage engine; :class:`autochecks.store.memory.MemoryStore` is the
    bundled implementation.
    """

    async def vehicles(self) -> list[Vehicle]: ...

    async def checks(self) -> list[Check]: ...

    async def get_settings(self) -> Settings: ...

    async def read_all(self) -> Snapshot: ...

    async def upsert_settings(self, *, origin: WriteOrigin = WriteOrigin.USER, **patch: object) -> Settings: ...

    def transaction(self, origin: WriteOrigin) -> AbstractAsyncContextManager[StoreTransaction]: ...

    def subscribe(self, listener: MutationListener) -> Callable[[], None]: ...
