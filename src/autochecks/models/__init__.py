"""Typed rows for vehicles, checks, settings and snapshots."""

from autochecks.models._base import OptionalTimestamp, Timestamp, parse_timestamp, to_epoch_millis, utcnow
from autochecks.models.check import Check, CheckStatus, CheckType
from autochecks.models.settings import Settings, company_display_name, resolve_feature_flags
from autochecks.models.snapshot import CloudSnapshotRow, Snapshot, SyncResult
from autochecks.models.vehicle import Vehicle

__all__ = [
    "Check",
    "CheckStatus",
    "CheckType",
    "CloudSnapshotRow",
    "OptionalTimestamp",
    "Settings",
    "Snapshot",
    "SyncResult",
    "Timestamp",
    "Vehicle",
    "company_display_name",
    "parse_timestamp",
    "resolve_feature_flags",
    "to_epoch_millis",
    "utcnow",
]
