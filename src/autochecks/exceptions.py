"""Custom exception hierarchy for autochecks."""

from __future__ import annotations


class AutoChecksError(Exception):
    """Base exception for all autochecks errors."""


class ConfigError(AutoChecksError):
    """Invalid or missing configuration."""


class StoreError(AutoChecksError):
    """Local store operation failed."""


class RecordNotFoundError(StoreError):
    """A row addressed by id does not exist in the local store."""


class SyncError(AutoChecksError):
    """Base class for every failure on the remote sync path."""


class AuthError(SyncError):
    """No authenticated session is available.

    The UI layer reacts by forcing sign-out and asking the user to
    authenticate again.
    """


class SessionExpiredError(AuthError):
    """The session's identity claim is stale or expired.

    The backend has already discarded the local session when this is
    raised.
    """


class NetworkError(SyncError):
    """Transport-level failure (DNS, connection reset, timeout)."""

    def __init__(
        self,
        message: str,
        *,
        endpoint: str = "",
        status_code: int | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.status_code = status_code
        super().__init__(message)


class OfflineError(NetworkError):
    """The device has no connectivity.

    Non-fatal: the status publisher moves to ``offline-pending`` and the
    push is retried when connectivity is restored.
    """


class RemoteError(SyncError):
    """The backend rejected the operation."""

    def __init__(
        self,
        message: str,
        *,
        endpoint: str = "",
        status_code: int | None = None,
        code: str = "",
    ) -> None:
        self.endpoint = endpoint
        self.status_code = status_code
        self.code = code
        super().__init__(message)


class MalformedDataError(SyncError):
    """A snapshot payload failed shape validation as a whole."""
