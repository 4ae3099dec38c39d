"""Mutation events emitted by the local store.

Every write carries an origin tag. The mutation watcher's decision to
schedule a push is a pure function of that tag: writes made while applying
a pulled or merged snapshot are tagged :attr:`WriteOrigin.SYNC` and never
trigger another push.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class Collection(StrEnum):
    VEHICLES = "vehicles"
    CHECKS = "checks"
    SETTINGS = "settings"


class Operation(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class WriteOrigin(StrEnum):
    USER = "user-origin"
    SYNC = "sync-origin"


class MutationEvent(BaseModel):
    """A committed change to one local collection."""

    model_config = ConfigDict(frozen=True)

    collection: Collection
    operation: Operation
    origin: WriteOrigin
    record_id: int | None = None
    committed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def triggers_push(self) -> bool:
        return self.origin == WriteOrigin.USER
