"""Cross-device vehicle identity.

Local surrogate ids are assigned per device, so two devices never agree
on them. Vehicles are matched across snapshots by plate, then VIN.
"""

from __future__ import annotations

import re

from autochecks.models._base import to_epoch_millis
from autochecks.models.vehicle import Vehicle

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")
_VIN_PATTERN = re.compile(r"^[A-HJ-NPR-Z0-9]{17}$")

PLATE_PREFIX = "PLATE:"
VIN_PREFIX = "VIN:"
UNKNOWN_PREFIX = "UNKNOWN:"


def canonical_plate(value: str | None) -> str:
    """Strip non-alphanumerics and uppercase (``"b-01 abc"`` -> ``"B01ABC"``)."""
    if not value:
        return ""
    return _NON_ALNUM.sub("", value).upper()


def canonical_vin(value: str | None) -> str:
    """Strip non-alphanumerics and uppercase (``" wvw-zzz1jz "`` -> ``"WVWZZZ1JZ"``)."""
    if not value:
        return ""
    return _NON_ALNUM.sub("", value).upper()


def identity_key(vehicle: Vehicle) -> str:
    """Return the stable cross-device key for *vehicle*.

    ``PLATE:<plate>`` when a plate is present, else ``VIN:<vin>``, else a
    key scoped to this device that never matches another device's vehicle.
    """
    plate = canonical_plate(vehicle.plate)
    if plate:
        return f"{PLATE_PREFIX}{plate}"
    vin = canonical_vin(vehicle.vin)
    if vin:
        return f"{VIN_PREFIX}{vin}"
    return f"{UNKNOWN_PREFIX}{vehicle.id}:{to_epoch_millis(vehicle.created_at)}"


def is_portable(key: str) -> bool:
    """Whether *key* can match the same vehicle on another device."""
    return not key.startswith(UNKNOWN_PREFIX)


def validate_plate(value: str) -> str | None:
    """Return an error message for an unusable plate, else ``None``."""
    canonical = canonical_plate(value.strip().upper())
    if not canonical:
        return "License plate is required."
    if not 4 <= len(canonical) <= 10:
        return "License plate must contain 4 to 10 alphanumeric characters."
    return None


def validate_vin(value: str) -> str | None:
    """Return an error message for a malformed VIN, else ``None``. Empty is allowed."""
    normalized = value.strip().upper()
    if not normalized:
        return None
    if not _VIN_PATTERN.match(normalized):
        return "VIN must be 17 characters and cannot contain I, O, or Q."
    return None
