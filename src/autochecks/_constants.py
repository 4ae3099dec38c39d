"""Internal constants shared across the library."""

USER_AGENT = "autochecks-sync/1"

#: Remote table holding one snapshot row per account.
CLOUD_TABLE = "user_snapshots"

#: Version written into every outgoing snapshot payload.
SNAPSHOT_SCHEMA_VERSION = 1

#: Delay coalescing bursts of local writes into one push.
DEFAULT_DEBOUNCE_SECONDS = 0.9

DEFAULT_REQUEST_TIMEOUT = 15.0

#: Fragments of backend auth errors that mean the session must be dropped.
SESSION_EXPIRED_MARKERS: frozenset[str] = frozenset({"sub claim in jwt", "jwt expired", "invalid jwt"})

#: Joins distinct free-text fragments when notes are unioned.
NOTE_SEPARATOR = " | "

DEFAULT_COMPANY_NAME = "AutoChecks"

DEFAULT_FEATURE_FLAGS: dict[str, bool] = {
    "reminderSnooze": True,
    "vehicleQuickActions": True,
    "dashboardFilters": True,
    "strictValidation": True,
}

