"""Union merge of two snapshots.

This module intentionally contains *no* I/O. Given the same two snapshots
it always produces the same result, never raises for validated input, and
never drops additive data:

* vehicles are grouped by :func:`identity_key` and merged field by field
  (first non-empty identifier, unioned notes, latest expiry, earliest
  creation time);
* checks are re-attached to their vehicle's identity group and collapsed
  on ``(vehicle key, type, checked_at, expiry)``;
* surrogate ids are reassigned 1..N in a deterministic order so repeated
  merges of the same logical state are byte-identical.

A merge is a reconciliation event: every merged vehicle comes out live
(``deleted_at`` cleared). Soft deletes are not propagated through merge.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import Any

from autochecks._constants import NOTE_SEPARATOR
from autochecks.models.check import Check, CheckType
from autochecks.models.settings import Settings
from autochecks.models.snapshot import Snapshot
from autochecks.models.vehicle import Vehicle
from autochecks.sync.identity import identity_key, is_portable

_logger = logging.getLogger(__name__)

_EPOCH_MIN = datetime.min.replace(tzinfo=UTC)

CheckKey = tuple[str, CheckType, datetime, datetime | None]

# ---------------------------------------------------------------------------
# Field policies
# ---------------------------------------------------------------------------


def union_text(existing: str, incoming: str) -> str:
    """Union two free-text values without discarding either.

    Both sides are split on the note separator so that re-merging an
    already merged value is a no-op.
    """
    fragments: list[str] = []
    for text in (existing, incoming):
        for fragment in text.split(NOTE_SEPARATOR):
            cleaned = fragment.strip()
            if cleaned and cleaned not in fragments:
                fragments.append(cleaned)
    return NOTE_SEPARATOR.join(fragments)


def later(a: datetime | None, b: datetime | None) -> datetime | None:
    """Max of two optional timestamps; absent counts as minus infinity."""
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


def _first_non_empty(*values: str) -> str:
    for value in values:
        if value:
            return value
    return ""


def merge_vehicle(existing: Vehicle, incoming: Vehicle, *, keep_deleted: bool = False) -> Vehicle:
    """Merge two rows that share an identity key.

    With ``keep_deleted`` the result stays soft-deleted only when both
    rows are; otherwise ``deleted_at`` is cleared.
    """
    deleted_at: datetime | None = None
    if keep_deleted and existing.deleted_at is not None and incoming.deleted_at is not None:
        deleted_at = later(existing.deleted_at, incoming.deleted_at)

    return existing.model_copy(
        update={
            "plate": _first_non_empty(existing.plate, incoming.plate),
            "vin": _first_non_empty(existing.vin, incoming.vin),
            "notes": union_text(existing.notes, incoming.notes),
            "itp": later(existing.itp, incoming.itp),
            "rca": later(existing.rca, incoming.rca),
            "vignette": later(existing.vignette, incoming.vignette),
            "created_at": min(existing.created_at, incoming.created_at),
            "updated_at": later(existing.updated_at, incoming.updated_at),
            "deleted_at": deleted_at,
        }
    )


def merge_check(existing: Check, incoming: Check) -> Check:
    """Collapse two rows describing the same check event."""
    return existing.model_copy(
        update={
            "note": union_text(existing.note, incoming.note),
            "source_url": existing.source_url or incoming.source_url,
        }
    )


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def merge_settings(local: Settings, remote: Settings) -> Settings:
    """Local non-empty values win; lead days and feature flags are unioned."""
    merged: dict[str, Any] = remote.model_dump()
    for name, value in local.model_dump().items():
        if not _is_empty(value):
            merged[name] = value

    merged["reminder_lead_days"] = sorted(set(remote.reminder_lead_days) | set(local.reminder_lead_days))
    merged["feature_flags"] = {**remote.feature_flags, **local.feature_flags}
    return Settings.model_validate(merged)


# ---------------------------------------------------------------------------
# Re-keying
# ---------------------------------------------------------------------------


def _group_vehicles(vehicles: Iterable[Vehicle], *, keep_deleted: bool) -> dict[str, Vehicle]:
    groups: dict[str, Vehicle] = {}
    for vehicle in vehicles:
        key = identity_key(vehicle)
        current = groups.get(key)
        if current is None:
            groups[key] = vehicle if keep_deleted else vehicle.model_copy(update={"deleted_at": None})
        else:
            groups[key] = merge_vehicle(current, vehicle, keep_deleted=keep_deleted)
    return groups


def _vehicle_order(item: tuple[str, Vehicle]) -> tuple[str, str, datetime, int]:
    # Fallback keys embed the current id; ordering on them would reshuffle ids on every pass.
    key, vehicle = item
    return (vehicle.plate, key if is_portable(key) else "", vehicle.created_at, vehicle.id or 0)


def _assign_vehicle_ids(groups: dict[str, Vehicle]) -> tuple[list[Vehicle], dict[str, int]]:
    ordered = sorted(groups.items(), key=_vehicle_order)
    vehicles: list[Vehicle] = []
    new_ids: dict[str, int] = {}
    for index, (key, vehicle) in enumerate(ordered, start=1):
        new_ids[key] = index
        vehicles.append(vehicle.model_copy(update={"id": index}))
    return vehicles, new_ids


def _key_by_local_id(vehicles: Sequence[Vehicle]) -> dict[int, str]:
    return {vehicle.id: identity_key(vehicle) for vehicle in vehicles if vehicle.id is not None}


def _check_sort_key(check: Check) -> tuple[datetime, int, str, datetime]:
    return (check.checked_at, check.vehicle_id, check.type.value, check.expiry or _EPOCH_MIN)


def _merge_checks(sources: Sequence[Snapshot], new_ids: dict[str, int]) -> tuple[list[Check], int]:
    merged: dict[CheckKey, Check] = {}
    orphans = 0
    for snapshot in sources:
        owners = _key_by_local_id(snapshot.vehicles)
        for check in snapshot.checks:
            vehicle_key = owners.get(check.vehicle_id)
            if vehicle_key is None or vehicle_key not in new_ids:
                orphans += 1
                continue
            dedup_key: CheckKey = (vehicle_key, check.type, check.checked_at, check.expiry)
            rekeyed = check.model_copy(update={"vehicle_id": new_ids[vehicle_key]})
            current = merged.get(dedup_key)
            merged[dedup_key] = rekeyed if current is None else merge_check(current, rekeyed)

    ordered = sorted(merged.values(), key=_check_sort_key)
    return [check.model_copy(update={"id": index}) for index, check in enumerate(ordered, start=1)], orphans


def _combine(sources: Sequence[Snapshot], settings: Settings, *, keep_deleted: bool) -> Snapshot:
    groups = _group_vehicles((v for snapshot in sources for v in snapshot.vehicles), keep_deleted=keep_deleted)
    vehicles, new_ids = _assign_vehicle_ids(groups)
    checks, orphans = _merge_checks(sources, new_ids)
    _logger.debug(
        "Merged %d source(s): vehicles=%d checks=%d orphans_dropped=%d",
        len(sources),
        len(vehicles),
        len(checks),
        orphans,
    )
    return Snapshot(vehicles=vehicles, checks=checks, settings=settings)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def merge(local: Snapshot, remote: Snapshot) -> Snapshot:
    """Combine *local* and *remote* into one conflict-free snapshot.

    Commutative and idempotent for vehicles and checks; settings favour
    *local* for scalar preferences.
    """
    settings = merge_settings(local.settings, remote.settings)
    return _combine((local, remote), settings, keep_deleted=False)


def canonicalize(snapshot: Snapshot) -> Snapshot:
    """Enforce one vehicle per identity key and deduplicated checks.

    Applied to a single snapshot before upload. Unlike :func:`merge`, a
    soft-deleted vehicle stays deleted unless a live duplicate shares its
    identity key.
    """
    return _combine((snapshot,), snapshot.settings, keep_deleted=True)
