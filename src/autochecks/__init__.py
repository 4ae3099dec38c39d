"""autochecks - cloud sync and union merge for vehicle document expiries."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("autochecks-sync")
except PackageNotFoundError:
    __version__ = "0+local"
from autochecks.backend import RemoteBackend, SupabaseBackend
from autochecks.client import SyncClient
from autochecks.config import SyncConfig
from autochecks.connectivity import ConnectivityEvent, ConnectivityMonitor
from autochecks.exceptions import (
    AuthError,
    AutoChecksError,
    ConfigError,
    MalformedDataError,
    NetworkError,
    OfflineError,
    RecordNotFoundError,
    RemoteError,
    SessionExpiredError,
    StoreError,
    SyncError,
)
from autochecks.models import (
    Check,
    CheckStatus,
    CheckType,
    CloudSnapshotRow,
    Settings,
    Snapshot,
    SyncResult,
    Vehicle,
)
from autochecks.network_queue import FlushResult, NetworkQueue, QueuedRequest
from autochecks.session import AuthSession
from autochecks.store import MemoryStore, WriteOrigin
from autochecks.sync.status import SyncState, SyncStatus, SyncStatusPublisher

__all__ = [
    "__version__",
    "AuthError",
    "AuthSession",
    "AutoChecksError",
    "Check",
    "CheckStatus",
    "CheckType",
    "CloudSnapshotRow",
    "ConfigError",
    "ConnectivityEvent",
    "ConnectivityMonitor",
    "FlushResult",
    "MalformedDataError",
    "MemoryStore",
    "NetworkError",
    "NetworkQueue",
    "OfflineError",
    "QueuedRequest",
    "RecordNotFoundError",
    "RemoteBackend",
    "RemoteError",
    "SessionExpiredError",
    "Settings",
    "Snapshot",
    "StoreError",
    "SupabaseBackend",
    "SyncClient",
    "SyncConfig",
    "SyncError",
    "SyncResult",
    "SyncState",
    "SyncStatus",
    "SyncStatusPublisher",
    "Vehicle",
    "WriteOrigin",
]
