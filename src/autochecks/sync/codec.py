"""Snapshot codec.

Builds the payload sent to the remote backend from local collections and
turns a remote payload back into typed rows. The remote blob is never
trusted: the payload is validated row by row and rows that fail shape
validation are logged and skipped instead of aborting the whole sync.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from autochecks._constants import SNAPSHOT_SCHEMA_VERSION
from autochecks.exceptions import MalformedDataError
from autochecks.models.check import Check
from autochecks.models.settings import Settings
from autochecks.models.snapshot import CloudSnapshotRow, Snapshot
from autochecks.models.vehicle import Vehicle

_logger = logging.getLogger(__name__)

TModel = TypeVar("TModel", bound=BaseModel)


def build_snapshot(
    vehicles: Iterable[Vehicle],
    checks: Iterable[Check],
    settings: Settings | None,
) -> Snapshot:
    """Assemble an outgoing snapshot from local collections."""
    cloud_settings = (settings or Settings()).for_cloud()
    return Snapshot(vehicles=list(vehicles), checks=list(checks), settings=cloud_settings)


def encode_payload(snapshot: Snapshot) -> dict[str, Any]:
    """Serialize a snapshot to the camelCase JSON payload stored remotely."""
    outgoing = snapshot.model_copy(
        update={
            "schema_version": SNAPSHOT_SCHEMA_VERSION,
            "settings": snapshot.settings.for_cloud(),
        }
    )
    return outgoing.to_wire()


def _validate_rows(model: type[TModel], rows: Any, label: str) -> list[TModel]:
    if rows is None:
        return []
    if not isinstance(rows, list):
        _logger.warning("Snapshot %s is not a list (%s); ignoring", label, type(rows).__name__)
        return []
    valid: list[TModel] = []
    for index, row in enumerate(rows):
        try:
            valid.append(model.model_validate(row))
        except ValidationError as exc:
            _logger.warning(
                "Skipping malformed %s row %d (%d validation errors)",
                label,
                index,
                exc.error_count(),
            )
            _logger.debug("Malformed %s row %d: %s", label, index, exc)
    return valid


def _schema_version(payload: Mapping[str, Any]) -> int:
    version = payload.get("schemaVersion", payload.get("schema_version", 1))
    if isinstance(version, bool) or not isinstance(version, int):
        raise MalformedDataError(f"Snapshot schemaVersion must be an integer, got {version!r}")
    if version > SNAPSHOT_SCHEMA_VERSION:
        raise MalformedDataError(
            f"Snapshot schemaVersion {version} is newer than supported version {SNAPSHOT_SCHEMA_VERSION}"
        )
    return version


def decode_payload(raw: Any) -> Snapshot:
    """Validate a remote payload into a :class:`Snapshot`.

    Raises :class:`MalformedDataError` only when the payload as a whole is
    unusable. Individual bad rows are dropped.
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise MalformedDataError(f"Snapshot payload is not JSON: {exc}") from exc
    if not isinstance(raw, Mapping):
        raise MalformedDataError(f"Snapshot payload must be an object, got {type(raw).__name__}")

    _schema_version(raw)
    vehicles = _validate_rows(Vehicle, raw.get("vehicles"), "vehicle")
    checks = _validate_rows(Check, raw.get("checks"), "check")

    settings_raw = raw.get("settings")
    settings = Settings()
    if isinstance(settings_raw, Mapping):
        try:
            settings = Settings.model_validate(dict(settings_raw))
        except ValidationError as exc:
            _logger.warning("Ignoring malformed snapshot settings (%d validation errors)", exc.error_count())
    elif settings_raw is not None:
        _logger.warning("Snapshot settings is not an object (%s); ignoring", type(settings_raw).__name__)

    return Snapshot(vehicles=vehicles, checks=checks, settings=settings.for_cloud())


def decode_row(row: Mapping[str, Any]) -> CloudSnapshotRow:
    """Validate a ``{user_id, payload, updated_at}`` row from the backend."""
    account_id = row.get("user_id")
    if not isinstance(account_id, str) or not account_id:
        raise MalformedDataError("Snapshot row is missing user_id")
    try:
        return CloudSnapshotRow(
            account_id=account_id,
            payload=decode_payload(row.get("payload")),
            updated_at=row.get("updated_at"),
        )
    except ValidationError as exc:
        raise MalformedDataError(f"Snapshot row for {account_id} is malformed: {exc}") from exc
