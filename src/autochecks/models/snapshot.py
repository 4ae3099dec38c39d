"""Snapshot payload exchanged with the remote backend."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from autochecks._constants import SNAPSHOT_SCHEMA_VERSION
from autochecks.models._base import SnapshotModel, Timestamp
from autochecks.models.check import Check
from autochecks.models.settings import Settings
from autochecks.models.vehicle import Vehicle


class SyncResult(StrEnum):
    """Outcome vocabulary reported to the UI layer."""

    PUSHED_NEW = "pushed-new"
    PULLED = "pulled"
    APPLIED = "applied"
    EMPTY = "empty"


class Snapshot(SnapshotModel):
    """One side's full ``{vehicles, checks, settings}`` state."""

    schema_version: int = SNAPSHOT_SCHEMA_VERSION
    vehicles: list[Vehicle] = Field(default_factory=list)
    checks: list[Check] = Field(default_factory=list)
    settings: Settings = Field(default_factory=Settings)


class CloudSnapshotRow(BaseModel):
    """The single remote row stored per account."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    account_id: str = Field(alias="user_id")
    payload: Snapshot
    updated_at: Timestamp
