"""Client configuration for autochecks."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from autochecks._constants import CLOUD_TABLE, DEFAULT_DEBOUNCE_SECONDS, DEFAULT_REQUEST_TIMEOUT
from autochecks.exceptions import ConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_first(env: Mapping[str, str], *keys: str) -> str | None:
    for key in keys:
        value = env.get(key)
        if value:
            return value
    return None


@dataclasses.dataclass(frozen=True)
class SyncConfig:
    """Sync engine configuration.

    Parameters
    ----------
    supabase_url : str
        Base URL of the Supabase project hosting the snapshot table.
        Empty disables remote sync entirely.
    supabase_anon_key : str
        Public anon API key sent with every request.
    snapshot_table : str
        Table keyed by ``user_id`` holding one snapshot row per account.
    debounce_seconds : float
        Quiet period after the last local write before an automatic push.
    request_timeout : float
        Total timeout in seconds for a single backend request.
    auto_sync : bool
        Whether local writes trigger an automatic debounced push.
    store_path : Path or None
        JSON file backing the local store. ``None`` keeps data in memory.
    queue_path : Path or None
        JSON file backing the offline network queue. ``None`` keeps the
        queue in memory.
    """

    supabase_url: str = ""
    supabase_anon_key: str = ""
    snapshot_table: str = CLOUD_TABLE
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    auto_sync: bool = True
    store_path: Path | None = None
    queue_path: Path | None = None

    def __post_init__(self) -> None:
        if self.debounce_seconds < 0:
            raise ConfigError(f"debounce_seconds must be >= 0, got {self.debounce_seconds}")
        if self.request_timeout <= 0:
            raise ConfigError(f"request_timeout must be > 0, got {self.request_timeout}")

    @property
    def is_remote_configured(self) -> bool:
        """Whether a remote backend URL and key are both present."""
        return bool(self.supabase_url and self.supabase_anon_key)

    def require_remote(self) -> None:
        """Raise :class:`ConfigError` when the remote backend is not configured."""
        if not self.is_remote_configured:
            raise ConfigError("Supabase URL and anon key are required for cloud sync")

    @classmethod
    def from_env(cls, **overrides: Any) -> SyncConfig:
        """Create configuration from environment variables.

        Reads ``AUTOCHECKS_*`` variables, falling back to the plain
        ``SUPABASE_URL`` / ``SUPABASE_ANON_KEY`` pair for the backend.
        Explicit keyword arguments override environment values.
        """
        env = os.environ
        kwargs: dict[str, Any] = {}

        url = _env_first(env, "AUTOCHECKS_SUPABASE_URL", "SUPABASE_URL")
        if url is not None:
            kwargs["supabase_url"] = url.rstrip("/")
        key = _env_first(env, "AUTOCHECKS_SUPABASE_ANON_KEY", "SUPABASE_ANON_KEY")
        if key is not None:
            kwargs["supabase_anon_key"] = key

        table = env.get("AUTOCHECKS_SNAPSHOT_TABLE")
        if table:
            kwargs["snapshot_table"] = table

        debounce_env = env.get("AUTOCHECKS_DEBOUNCE_SECONDS")
        if debounce_env is not None and "debounce_seconds" not in overrides:
            kwargs["debounce_seconds"] = float(debounce_env)

        timeout_env = env.get("AUTOCHECKS_REQUEST_TIMEOUT")
        if timeout_env is not None and "request_timeout" not in overrides:
            kwargs["request_timeout"] = float(timeout_env)

        if "auto_sync" not in overrides:
            kwargs["auto_sync"] = _env_bool(env.get("AUTOCHECKS_AUTO_SYNC"), True)

        for env_key, field_name in (
            ("AUTOCHECKS_STORE_PATH", "store_path"),
            ("AUTOCHECKS_QUEUE_PATH", "queue_path"),
        ):
            value = env.get(env_key)
            if value:
                kwargs[field_name] = Path(value).expanduser()

        kwargs.update(overrides)
        return cls(**kwargs)
