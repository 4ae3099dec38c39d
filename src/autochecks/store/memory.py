"""In-memory local store with optional JSON file persistence.

All writes, including single-row user edits, go through a transaction:
changes are staged on a copy of the tables and swapped in together on
commit, so readers never observe a half-applied snapshot. Mutation events
are delivered to subscribers only after the swap.
"""

from __future__ import annotations

import asyncio
import contextlib
import copy
import dataclasses
import json
import logging
import os
import tempfile
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from autochecks.exceptions import RecordNotFoundError, StoreError
from autochecks.models._base import utcnow
from autochecks.models.check import Check
from autochecks.models.settings import Settings
from autochecks.models.snapshot import Snapshot
from autochecks.models.vehicle import Vehicle
from autochecks.store.base import MutationListener
from autochecks.store.events import Collection, MutationEvent, Operation, WriteOrigin

_logger = logging.getLogger(__name__)


@dataclasses.dataclass
class _Tables:
    vehicles: dict[int, Vehicle] = dataclasses.field(default_factory=dict)
    checks: dict[int, Check] = dataclasses.field(default_factory=dict)
    settings: Settings | None = None

    def copy(self) -> _Tables:
        return _Tables(vehicles=dict(self.vehicles), checks=dict(self.checks), settings=self.settings)

    def next_id(self, collection: Collection) -> int:
        table: dict[int, Any] = self.vehicles if collection == Collection.VEHICLES else self.checks
        return max(table, default=0) + 1


def _snapshot_of(tables: _Tables) -> Snapshot:
    return Snapshot(
        vehicles=[tables.vehicles[k] for k in sorted(tables.vehicles)],
        checks=[tables.checks[k] for k in sorted(tables.checks)],
        settings=tables.settings or Settings(),
    )


class MemoryTransaction:
    """Writes staged against a private copy of the store tables."""

    def __init__(self, tables: _Tables) -> None:
        self._tables = tables
        self._events: list[tuple[Collection, Operation, int | None]] = []

    def get_vehicle(self, vehicle_id: int) -> Vehicle | None:
        return self._tables.vehicles.get(vehicle_id)

    @property
    def settings(self) -> Settings | None:
        return self._tables.settings

    def snapshot(self) -> Snapshot:
        """Staged state, including writes made earlier in this transaction."""
        return _snapshot_of(self._tables)

    @property
    def events(self) -> list[tuple[Collection, Operation, int | None]]:
        return list(self._events)

    # Bulk operations used when applying a snapshot.

    def clear(self, collection: Collection) -> None:
        if collection == Collection.VEHICLES:
            self._tables.vehicles.clear()
        elif collection == Collection.CHECKS:
            self._tables.checks.clear()
        else:
            self._tables.settings = None
        self._events.append((collection, Operation.DELETE, None))

    def bulk_add_vehicles(self, vehicles: list[Vehicle]) -> None:
        for vehicle in vehicles:
            self.add_vehicle(vehicle)

    def bulk_add_checks(self, checks: list[Check]) -> None:
        for check in checks:
            self.add_check(check)

    def put_settings(self, settings: Settings) -> Settings:
        operation = Operation.CREATE if self._tables.settings is None else Operation.UPDATE
        stored = settings.model_copy(update={"id": 1})
        self._tables.settings = stored
        self._events.append((Collection.SETTINGS, operation, 1))
        return stored

    # Single-row operations.

    def add_vehicle(self, vehicle: Vehicle) -> Vehicle:
        vehicle_id = vehicle.id if vehicle.id is not None else self._tables.next_id(Collection.VEHICLES)
        if vehicle_id in self._tables.vehicles:
            raise StoreError(f"Vehicle id {vehicle_id} already exists")
        stored = vehicle.model_copy(update={"id": vehicle_id})
        self._tables.vehicles[vehicle_id] = stored
        self._events.append((Collection.VEHICLES, Operation.CREATE, vehicle_id))
        return stored

    def replace_vehicle(self, vehicle: Vehicle) -> Vehicle:
        if vehicle.id is None or vehicle.id not in self._tables.vehicles:
            raise RecordNotFoundError(f"Vehicle {vehicle.id} not found")
        self._tables.vehicles[vehicle.id] = vehicle
        self._events.append((Collection.VEHICLES, Operation.UPDATE, vehicle.id))
        return vehicle

    def remove_vehicle(self, vehicle_id: int) -> None:
        if self._tables.vehicles.pop(vehicle_id, None) is None:
            raise RecordNotFoundError(f"Vehicle {vehicle_id} not found")
        self._events.append((Collection.VEHICLES, Operation.DELETE, vehicle_id))
        for check_id in [cid for cid, c in self._tables.checks.items() if c.vehicle_id == vehicle_id]:
            self.remove_check(check_id)

    def add_check(self, check: Check) -> Check:
        check_id = check.id if check.id is not None else self._tables.next_id(Collection.CHECKS)
        if check_id in self._tables.checks:
            raise StoreError(f"Check id {check_id} already exists")
        stored = check.model_copy(update={"id": check_id})
        self._tables.checks[check_id] = stored
        self._events.append((Collection.CHECKS, Operation.CREATE, check_id))
        return stored

    def remove_check(self, check_id: int) -> None:
        if self._tables.checks.pop(check_id, None) is None:
            raise RecordNotFoundError(f"Check {check_id} not found")
        self._events.append((Collection.CHECKS, Operation.DELETE, check_id))


class MemoryStore:
    """Transactional vehicles/checks/settings collections.

    Parameters
    ----------
    path
        Optional JSON file. When given, every commit is written to it with
        a write-then-rename so a crash never leaves a partial file.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._tables = _Tables()
        self._lock = asyncio.Lock()
        self._listeners: list[MutationListener] = []

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Load tables from the backing file, if any."""
        if self._path is None or not self._path.exists():
            return
        text = await asyncio.to_thread(self._path.read_text, "utf-8")
        try:
            snapshot = Snapshot.model_validate(json.loads(text))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise StoreError(f"Local store file {self._path} is corrupt: {exc}") from exc
        async with self._lock:
            self._tables = _Tables(
                vehicles={v.id: v for v in snapshot.vehicles if v.id is not None},
                checks={c.id: c for c in snapshot.checks if c.id is not None},
                settings=snapshot.settings,
            )
        _logger.debug(
            "Loaded local store from %s: vehicles=%d checks=%d",
            self._path,
            len(self._tables.vehicles),
            len(self._tables.checks),
        )

    def _write_file(self, path: Path, document: dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle, separators=(",", ":"))
            os.replace(tmp_name, path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
            raise

    async def _persist(self, tables: _Tables) -> None:
        if self._path is None:
            return
        document = _snapshot_of(tables).to_wire()
        await asyncio.to_thread(self._write_file, self._path, document)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def subscribe(self, listener: MutationListener) -> Callable[[], None]:
        """Register *listener* for committed mutations; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, origin: WriteOrigin, events: list[tuple[Collection, Operation, int | None]]) -> None:
        for collection, operation, record_id in events:
            event = MutationEvent(collection=collection, operation=operation, origin=origin, record_id=record_id)
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception:
                    _logger.debug("Mutation listener failed", exc_info=True)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextlib.asynccontextmanager
    async def transaction(self, origin: WriteOrigin) -> AsyncIterator[MemoryTransaction]:
        """Stage writes and commit them atomically.

        If the block raises, nothing is applied and no events are emitted.
        """
        async with self._lock:
            staged = self._tables.copy()
            tx = MemoryTransaction(staged)
            yield tx
            await self._persist(staged)
            self._tables = staged
        self._emit(origin, tx.events)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def vehicles(self, *, include_deleted: bool = True) -> list[Vehicle]:
        rows = [self._tables.vehicles[k] for k in sorted(self._tables.vehicles)]
        if include_deleted:
            return rows
        return [v for v in rows if not v.is_deleted]

    async def checks(self, vehicle_id: int | None = None) -> list[Check]:
        rows = [self._tables.checks[k] for k in sorted(self._tables.checks)]
        if vehicle_id is None:
            return rows
        return [c for c in rows if c.vehicle_id == vehicle_id]

    async def get_vehicle(self, vehicle_id: int) -> Vehicle:
        vehicle = self._tables.vehicles.get(vehicle_id)
        if vehicle is None:
            raise RecordNotFoundError(f"Vehicle {vehicle_id} not found")
        return vehicle

    async def get_settings(self) -> Settings:
        return self._tables.settings or Settings()

    async def read_all(self) -> Snapshot:
        """Consistent view of all three collections."""
        return _snapshot_of(self._tables)

    # ------------------------------------------------------------------
    # User-facing writes
    # ------------------------------------------------------------------

    async def add_vehicle(self, vehicle: Vehicle, *, origin: WriteOrigin = WriteOrigin.USER) -> Vehicle:
        async with self.transaction(origin) as tx:
            return tx.add_vehicle(vehicle)

    async def update_vehicle(
        self,
        vehicle_id: int,
        *,
        origin: WriteOrigin = WriteOrigin.USER,
        **changes: Any,
    ) -> Vehicle:
        """Apply field changes and stamp ``updated_at``."""
        async with self.transaction(origin) as tx:
            current = tx.get_vehicle(vehicle_id)
            if current is None:
                raise RecordNotFoundError(f"Vehicle {vehicle_id} not found")
            data = current.model_dump()
            data.update(changes)
            data["id"] = vehicle_id
            if "updated_at" not in changes:
                data["updated_at"] = utcnow()
            return tx.replace_vehicle(Vehicle.model_validate(data))

    async def delete_vehicle(
        self,
        vehicle_id: int,
        *,
        hard: bool = False,
        origin: WriteOrigin = WriteOrigin.USER,
    ) -> None:
        """Soft-delete (stamp ``deleted_at``) or remove a vehicle and its checks."""
        if not hard:
            now = utcnow()
            await self.update_vehicle(vehicle_id, origin=origin, deleted_at=now, updated_at=now)
            return
        async with self.transaction(origin) as tx:
            tx.remove_vehicle(vehicle_id)

    async def add_check(self, check: Check, *, origin: WriteOrigin = WriteOrigin.USER) -> Check:
        async with self.transaction(origin) as tx:
            if tx.get_vehicle(check.vehicle_id) is None:
                raise RecordNotFoundError(f"Vehicle {check.vehicle_id} not found")
            return tx.add_check(check)

    async def delete_check(self, check_id: int, *, origin: WriteOrigin = WriteOrigin.USER) -> None:
        async with self.transaction(origin) as tx:
            tx.remove_check(check_id)

    async def upsert_settings(self, *, origin: WriteOrigin = WriteOrigin.USER, **patch: Any) -> Settings:
        """Update the settings row, creating it on first write."""
        async with self.transaction(origin) as tx:
            current = tx.settings or Settings()
            data = current.model_dump()
            data.update(copy.deepcopy(patch))
            return tx.put_settings(Settings.model_validate(data))
