"""Device connectivity signal.

The host application feeds OS-level online/offline notifications into
:meth:`ConnectivityMonitor.set_online`; sync components subscribe to the
resulting transitions.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable
from enum import StrEnum

_logger = logging.getLogger(__name__)


class ConnectivityEvent(StrEnum):
    RESTORED = "connectivity-restored"
    LOST = "connectivity-lost"


ConnectivityListener = Callable[[ConnectivityEvent], None]


class ConnectivityMonitor:
    def __init__(self, *, online: bool = True) -> None:
        self._online = online
        self._listeners: list[ConnectivityListener] = []

    @property
    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        """Record the current connectivity; listeners hear only real transitions."""
        if online == self._online:
            return
        self._online = online
        event = ConnectivityEvent.RESTORED if online else ConnectivityEvent.LOST
        _logger.debug("Connectivity changed: %s", event)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                _logger.debug("Connectivity listener failed", exc_info=True)

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe
