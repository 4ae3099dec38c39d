"""Helpers for safe debug logging.

Sync traffic carries access tokens, API keys and whole account snapshots.
This module masks credentials and summarises snapshot payloads before they
reach DEBUG logs.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_SECRET_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "apikey",
        "access_token",
        "refresh_token",
        "authorization",
        "cookie",
    }
)

_PAYLOAD_KEYS: frozenset[str] = frozenset({"payload"})


def summarize_payload(payload: Any) -> str:
    """Describe a snapshot payload by its row counts only."""
    if not isinstance(payload, Mapping):
        return f"<payload:{type(payload).__name__}>"
    vehicles = payload.get("vehicles")
    checks = payload.get("checks")
    n_vehicles = len(vehicles) if isinstance(vehicles, list) else 0
    n_checks = len(checks) if isinstance(checks, list) else 0
    return f"<snapshot vehicles={n_vehicles} checks={n_checks}>"


def redact_for_log(value: Any, *, max_string: int = 256, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs."""
    if _depth > 12:
        return "<max-depth>"

    if value is None or isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, bytes):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            lowered = key.lower()
            if lowered in _SECRET_KEYS:
                redacted[key] = "<redacted>"
            elif lowered in _PAYLOAD_KEYS:
                redacted[key] = summarize_payload(v)
            else:
                redacted[key] = redact_for_log(v, max_string=max_string, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]

    return repr(value)
