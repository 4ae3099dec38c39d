"""Observable sync status consumed by the UI layer."""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict

_logger = logging.getLogger(__name__)


class SyncState(StrEnum):
    IDLE = "idle"
    SYNCING = "syncing"
    SYNCED = "synced"
    OFFLINE_PENDING = "offline-pending"
    ERROR = "error"


class SyncStatus(BaseModel):
    """Status snapshot delivered to observers."""

    model_config = ConfigDict(frozen=True)

    state: SyncState = SyncState.IDLE
    last_synced_at: datetime | None = None
    message: str | None = None


StatusListener = Callable[[SyncStatus], None]


class SyncStatusPublisher:
    """Holds the current :class:`SyncStatus` and fans it out to listeners.

    New subscribers immediately receive the current status, so nobody
    misses the initial state.
    """

    def __init__(self) -> None:
        self._status = SyncStatus()
        self._listeners: list[StatusListener] = []

    @property
    def status(self) -> SyncStatus:
        return self._status

    def publish(self, status: SyncStatus) -> None:
        if status.state != self._status.state:
            _logger.debug("Sync status %s -> %s", self._status.state, status.state)
        self._status = status
        for listener in list(self._listeners):
            self._deliver(listener, status)

    def set_state(
        self,
        state: SyncState,
        *,
        message: str | None = None,
        last_synced_at: datetime | None = None,
    ) -> SyncStatus:
        """Publish *state*, carrying over ``last_synced_at`` when not given."""
        status = SyncStatus(
            state=state,
            message=message,
            last_synced_at=last_synced_at if last_synced_at is not None else self._status.last_synced_at,
        )
        self.publish(status)
        return status

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        self._listeners.append(listener)
        self._deliver(listener, self._status)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    @staticmethod
    def _deliver(listener: StatusListener, status: SyncStatus) -> None:
        try:
            listener(status)
        except Exception:
            _logger.debug("Sync status listener failed", exc_info=True)
