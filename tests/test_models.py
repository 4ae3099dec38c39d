from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from autochecks.models import (
    Check,
    CheckStatus,
    CheckType,
    Settings,
    Snapshot,
    Vehicle,
    company_display_name,
    parse_timestamp,
    resolve_feature_flags,
    to_epoch_millis,
    utcnow,
)

_JAN_2024 = datetime(2024, 1, 1, tzinfo=UTC)


class TestTimestamps:
    @pytest.mark.parametrize(
        "raw",
        [
            1704067200000,
            1704067200,
            1704067200.0,
            "1704067200000",
            "2024-01-01T00:00:00Z",
            "2024-01-01T02:00:00+02:00",
            datetime(2024, 1, 1),
        ],
    )
    def test_parse_timestamp_variants(self, raw: object) -> None:
        assert parse_timestamp(raw) == _JAN_2024

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_parse_timestamp_empty(self, raw: object) -> None:
        assert parse_timestamp(raw) is None

    @pytest.mark.parametrize("raw", [True, float("nan"), "next tuesday", [2024]])
    def test_parse_timestamp_rejects_garbage(self, raw: object) -> None:
        with pytest.raises(ValueError):
            parse_timestamp(raw)

    def test_parse_timestamp_normalizes_to_utc(self) -> None:
        local = datetime(2024, 1, 1, 3, tzinfo=timezone(timedelta(hours=3)))
        parsed = parse_timestamp(local)
        assert parsed == _JAN_2024
        assert parsed.tzinfo is UTC

    def test_to_epoch_millis(self) -> None:
        assert to_epoch_millis(_JAN_2024) == 1704067200000
        assert to_epoch_millis(None) is None

    def test_utcnow_has_millisecond_precision(self) -> None:
        now = utcnow()
        assert now.tzinfo is UTC
        assert now.microsecond % 1000 == 0


class TestVehicle:
    def test_identifiers_are_normalized(self) -> None:
        vehicle = Vehicle(plate="  b-01-abc ", vin=" wvwzzz1jzxw000001", created_at=_JAN_2024)
        assert vehicle.plate == "B-01-ABC"
        assert vehicle.vin == "WVWZZZ1JZXW000001"

    def test_wire_aliases_round_trip(self) -> None:
        vehicle = Vehicle.model_validate(
            {
                "id": 2,
                "plate": "B-01-ABC",
                "itpExpiryMillis": 1704067200000,
                "createdAt": 1704067200000,
                "deletedAt": None,
                "unknownFutureField": "ignored",
            }
        )
        assert vehicle.itp == _JAN_2024
        assert vehicle.deleted_at is None
        assert Vehicle.model_validate(vehicle.to_wire()) == vehicle

    def test_created_at_is_required(self) -> None:
        with pytest.raises(ValidationError):
            Vehicle(plate="B-01-ABC")

    def test_new_stamps_creation_time(self) -> None:
        vehicle = Vehicle.new("B-01-ABC", notes="spare")
        assert vehicle.created_at == vehicle.updated_at
        assert not vehicle.is_deleted

    def test_frozen(self) -> None:
        vehicle = Vehicle(plate="B-01-ABC", created_at=_JAN_2024)
        with pytest.raises(ValidationError):
            vehicle.plate = "X"  # type: ignore[misc]


class TestCheck:
    def test_enums_accept_any_case(self) -> None:
        check = Check(vehicle_id=1, type="vignette", status="warn", checked_at=_JAN_2024)
        assert check.type is CheckType.VIGNETTE
        assert check.status is CheckStatus.WARN

    def test_blank_source_url_becomes_none(self) -> None:
        check = Check(vehicle_id=1, type="ITP", status="OK", checked_at=_JAN_2024, source_url="  ")
        assert check.source_url is None

    def test_null_note_becomes_empty(self) -> None:
        check = Check.model_validate(
            {"vehicleId": 1, "type": "RCA", "status": "FAIL", "checkedAt": 1704067200000, "note": None}
        )
        assert check.note == ""


class TestSettings:
    def test_unknown_keys_survive(self) -> None:
        settings = Settings.model_validate({"username": "ana", "themeMode": "dark"})
        assert settings.to_wire()["themeMode"] == "dark"

    def test_for_cloud_drops_local_bookkeeping(self) -> None:
        settings = Settings(id=1, cloud_user_id="acct-1", cloud_user_email="a@b.c", cloud_auto_sync=False)
        cloud = settings.for_cloud()
        assert cloud.id is None
        assert cloud.cloud_user_id is None
        assert cloud.cloud_user_email is None
        assert cloud.cloud_auto_sync is False

    def test_reminder_fields_are_clamped(self) -> None:
        assert Settings().reminder_lead_days == []
        settings = Settings(reminder_notify_hour=30, reminder_notify_minute=-5, reminder_lead_days=[14, 14, 3, -1])
        assert (settings.reminder_notify_hour, settings.reminder_notify_minute) == (23, 0)
        assert settings.reminder_lead_days == [3, 14]

    def test_resolve_feature_flags_overlays_defaults(self) -> None:
        flags = resolve_feature_flags(Settings(feature_flags={"strictValidation": False, "beta": True}))
        assert flags["strictValidation"] is False
        assert flags["reminderSnooze"] is True
        assert flags["beta"] is True
        assert resolve_feature_flags(None)["dashboardFilters"] is True

    def test_company_display_name_fallbacks(self) -> None:
        assert company_display_name(Settings(company_name=" Fleet SRL ", app_name="Checks")) == "Fleet SRL"
        assert company_display_name(Settings(company_name=" ", app_name="Checks")) == "Checks"
        assert company_display_name(Settings()) == "AutoChecks"
        assert company_display_name(None) == "AutoChecks"


def test_empty_snapshot() -> None:
    snapshot = Snapshot()
    assert snapshot.vehicles == []
    assert snapshot.checks == []
    assert snapshot.to_wire()["schemaVersion"] == 1
