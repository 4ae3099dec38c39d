"""Settings row: user preferences plus local sync bookkeeping."""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import ConfigDict, field_validator

from autochecks._constants import DEFAULT_COMPANY_NAME, DEFAULT_FEATURE_FLAGS
from autochecks.models._base import OptionalTimestamp, SnapshotModel


class Settings(SnapshotModel):
    """The single logical settings row.

    Unknown keys written by other app versions are kept (``extra="allow"``)
    so they survive a round trip through the remote snapshot.
    """

    model_config = ConfigDict(extra="allow")

    LOCAL_ONLY_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {"id", "cloud_user_id", "cloud_user_email", "cloud_last_synced_at"}
    )
    """Bookkeeping that never leaves the device."""

    id: int | None = None
    username: str | None = None
    app_name: str | None = None
    company_name: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    timezone: str | None = None
    feature_flags: dict[str, bool] = {}
    reminder_lead_days: list[int] = []
    reminder_notify_hour: int | None = None
    reminder_notify_minute: int | None = None
    cloud_user_id: str | None = None
    cloud_user_email: str | None = None
    cloud_last_synced_at: OptionalTimestamp = None
    cloud_auto_sync: bool | None = None

    @field_validator("reminder_lead_days", mode="before")
    @classmethod
    def _clean_lead_days(cls, value: Any) -> list[int]:
        if not isinstance(value, (list, tuple, set)):
            return []
        days: set[int] = set()
        for item in value:
            if isinstance(item, bool):
                continue
            if isinstance(item, int) and item >= 0:
                days.add(item)
            elif isinstance(item, float) and item.is_integer() and item >= 0:
                days.add(int(item))
        return sorted(days)

    @field_validator("reminder_notify_hour", mode="before")
    @classmethod
    def _clamp_hour(cls, value: Any) -> int | None:
        if not isinstance(value, int) or isinstance(value, bool):
            return None
        return min(23, max(0, value))

    @field_validator("reminder_notify_minute", mode="before")
    @classmethod
    def _clamp_minute(cls, value: Any) -> int | None:
        if not isinstance(value, int) or isinstance(value, bool):
            return None
        return min(59, max(0, value))

    @field_validator("feature_flags", mode="before")
    @classmethod
    def _clean_flags(cls, value: Any) -> dict[str, bool]:
        if not isinstance(value, dict):
            return {}
        return {str(key): bool(flag) for key, flag in value.items()}

    def for_cloud(self) -> Settings:
        """Copy without the fields that are local bookkeeping."""
        return self.model_copy(update={name: None for name in self.LOCAL_ONLY_FIELDS})


def resolve_feature_flags(settings: Settings | None) -> dict[str, bool]:
    """Defaults overlaid with whatever the settings row overrides."""
    flags = dict(DEFAULT_FEATURE_FLAGS)
    if settings is not None:
        flags.update(settings.feature_flags)
    return flags


def company_display_name(settings: Settings | None) -> str:
    if settings is None:
        return DEFAULT_COMPANY_NAME
    for candidate in (settings.company_name, settings.app_name):
        if candidate and candidate.strip():
            return candidate.strip()
    return DEFAULT_COMPANY_NAME
