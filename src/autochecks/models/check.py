"""Document check model."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import Field, field_validator

from autochecks.models._base import OptionalTimestamp, SnapshotModel, Timestamp


class _UpperStrEnum(StrEnum):
    @classmethod
    def _missing_(cls, value: object) -> _UpperStrEnum | None:
        if isinstance(value, str):
            candidate = value.strip().upper()
            for member in cls:
                if member.value == candidate:
                    return member
        return None


class CheckType(_UpperStrEnum):
    ITP = "ITP"
    RCA = "RCA"
    VIGNETTE = "VIGNETTE"


class CheckStatus(_UpperStrEnum):
    OK = "OK"
    WARN = "WARN"
    FAIL = "FAIL"


class Check(SnapshotModel):
    """A recorded verification of one document for one vehicle.

    Within a merge, ``(vehicle identity, type, checked_at, expiry)``
    identifies the real-world check event.
    """

    id: int | None = None
    vehicle_id: int
    """Local surrogate id of the owning vehicle."""
    type: CheckType
    status: CheckStatus
    expiry: OptionalTimestamp = Field(default=None, alias="expiryMillis")
    checked_at: Timestamp
    note: str = ""
    source_url: str | None = None

    @field_validator("note", mode="before")
    @classmethod
    def _coerce_note(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("source_url", mode="before")
    @classmethod
    def _empty_url_is_none(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None
