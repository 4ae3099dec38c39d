"""Vehicle model."""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator

from autochecks.models._base import OptionalTimestamp, SnapshotModel, Timestamp, utcnow


class Vehicle(SnapshotModel):
    """A tracked vehicle with its three document expiries.

    ``id`` is a device-local surrogate key and is never used to match
    vehicles across devices; see :func:`autochecks.sync.identity.identity_key`.
    """

    id: int | None = None
    """Local surrogate key assigned by the store."""
    plate: str = ""
    """License plate, trimmed and uppercased."""
    vin: str = ""
    """Vehicle Identification Number, trimmed and uppercased."""
    notes: str = ""
    """Free-text notes."""
    itp: OptionalTimestamp = Field(default=None, alias="itpExpiryMillis")
    """Technical inspection (ITP) expiry."""
    rca: OptionalTimestamp = Field(default=None, alias="rcaExpiryMillis")
    """Mandatory liability insurance (RCA) expiry."""
    vignette: OptionalTimestamp = Field(default=None, alias="vignetteExpiryMillis")
    """Road vignette expiry."""
    created_at: Timestamp
    updated_at: OptionalTimestamp = None
    deleted_at: OptionalTimestamp = None
    """Soft-delete marker; ``None`` means the vehicle is live."""

    @field_validator("plate", "vin", mode="before")
    @classmethod
    def _normalize_identifier(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip().upper()

    @field_validator("notes", mode="before")
    @classmethod
    def _coerce_notes(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @classmethod
    def new(cls, plate: str, **fields: Any) -> Vehicle:
        """Build a fresh vehicle stamped with the current time."""
        now = utcnow()
        fields.setdefault("created_at", now)
        fields.setdefault("updated_at", now)
        return cls(plate=plate, **fields)
