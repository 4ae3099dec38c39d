"""Base model and timestamp types for snapshot rows.

Every snapshot model inherits from :class:`SnapshotModel` which
provides:

* ``alias_generator=to_camel`` so the camelCase wire keys written by
  other devices map automatically to snake_case fields.
* A ``model_validator(mode="before")`` that drops ``null`` values so the
  field default is used instead.

Timestamps travel as epoch milliseconds. :data:`Timestamp` and
:data:`OptionalTimestamp` accept milliseconds, seconds, ISO-8601 strings
or ``datetime`` objects and always yield timezone-aware UTC values.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, PlainSerializer, model_validator
from pydantic.alias_generators import to_camel

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 100_000_000_000


def _floor_millis(value: datetime) -> datetime:
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def parse_timestamp(value: Any) -> datetime | None:
    """Convert an epoch (seconds **or** milliseconds) or ISO string to a UTC datetime.

    Results are truncated to whole milliseconds, the precision timestamps
    have on the wire, so a value and its round-tripped copy compare equal.

    Returns ``None`` for ``None`` and empty strings. Raises ``ValueError``
    for anything else that cannot be interpreted as a point in time.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return _floor_millis(value.replace(tzinfo=UTC))
        return _floor_millis(value.astimezone(UTC))
    if isinstance(value, bool):
        raise ValueError(f"not a timestamp: {value!r}")
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return parse_timestamp(datetime.fromisoformat(text.replace("Z", "+00:00")))
        return parse_timestamp(number)
    if isinstance(value, (int, float)):
        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            raise ValueError(f"not a timestamp: {value!r}")
        seconds = value / 1000.0 if abs(value) >= _MS_THRESHOLD else float(value)
        return _floor_millis(datetime.fromtimestamp(seconds, tz=UTC))
    raise ValueError(f"not a timestamp: {value!r}")


def to_epoch_millis(value: datetime | None) -> int | None:
    """Serialize a datetime as integer epoch milliseconds."""
    if value is None:
        return None
    return int(round(value.timestamp() * 1000))


def _require_timestamp(value: Any) -> datetime:
    parsed = parse_timestamp(value)
    if parsed is None:
        raise ValueError("timestamp is required")
    return parsed


Timestamp = Annotated[
    datetime,
    BeforeValidator(_require_timestamp),
    PlainSerializer(to_epoch_millis, return_type=int),
]
"""Required point in time; serialized as epoch milliseconds."""

OptionalTimestamp = Annotated[
    datetime | None,
    BeforeValidator(parse_timestamp),
    PlainSerializer(to_epoch_millis, return_type=int | None),
]
"""Optional point in time; serialized as epoch milliseconds or ``null``."""


def utcnow() -> datetime:
    """Current time in UTC, truncated to the millisecond wire precision."""
    return _floor_millis(datetime.now(UTC))


class SnapshotModel(BaseModel):
    """Base for rows exchanged through snapshots and the local store."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, values: Any) -> Any:
        """Drop ``null`` values so field defaults apply."""
        if not isinstance(values, dict):
            return values
        return {key: value for key, value in values.items() if value is not None}

    def to_wire(self) -> dict[str, Any]:
        """Dump using camelCase keys and JSON-compatible values."""
        return self.model_dump(mode="json", by_alias=True)
