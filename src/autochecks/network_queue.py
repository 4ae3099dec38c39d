"""Durable queue of outbound requests made while the device was offline.

Items are replayed in insertion order by :meth:`NetworkQueue.flush`; any
request that fails (transport error or non-2xx) stays queued, keeping its
position, for the next flush.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import secrets
import tempfile
from pathlib import Path
from typing import NamedTuple

import aiohttp
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from autochecks.models._base import Timestamp, utcnow

_logger = logging.getLogger(__name__)


def _new_request_id() -> str:
    return f"{int(utcnow().timestamp() * 1000)}-{secrets.token_hex(4)}"


class QueuedRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_request_id)
    url: str
    method: str = "GET"
    headers: dict[str, str] | None = None
    body: str | None = None
    created_at: Timestamp = Field(default_factory=utcnow)


_QUEUE_ADAPTER = TypeAdapter(list[QueuedRequest])


class FlushResult(NamedTuple):
    sent: int
    failed: int


class NetworkQueue:
    """Ordered request queue, persisted to *path* when one is given."""

    def __init__(self, path: Path | None = None, *, timeout: float = 15.0) -> None:
        self._path = path
        self._timeout = timeout
        self._items: list[QueuedRequest] | None = None
        self._lock = asyncio.Lock()

    def _read(self) -> list[QueuedRequest]:
        if self._items is not None:
            return self._items
        items: list[QueuedRequest] = []
        if self._path is not None and self._path.exists():
            try:
                items = _QUEUE_ADAPTER.validate_json(self._path.read_bytes())
            except (OSError, ValidationError) as exc:
                _logger.warning("Network queue file %s is unreadable; starting empty (%s)", self._path, exc)
        self._items = items
        return items

    def _write(self, items: list[QueuedRequest]) -> None:
        self._items = items
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=self._path.parent)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(_QUEUE_ADAPTER.dump_json(items))
            os.replace(tmp_name, self._path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
            raise

    def count(self) -> int:
        return len(self._read())

    def pending(self) -> list[QueuedRequest]:
        return list(self._read())

    async def enqueue(
        self,
        url: str,
        *,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        body: str | None = None,
    ) -> QueuedRequest:
        item = QueuedRequest(url=url, method=method.upper(), headers=headers, body=body)
        async with self._lock:
            items = [*self._read(), item]
            await asyncio.to_thread(self._write, items)
        _logger.debug("Queued %s %s (queue size %d)", item.method, url, len(items))
        return item

    async def flush(self, session: aiohttp.ClientSession) -> FlushResult:
        """Replay every queued request once."""
        async with self._lock:
            queue = list(self._read())
            if not queue:
                return FlushResult(0, 0)

            remaining: list[QueuedRequest] = []
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            for item in queue:
                try:
                    async with session.request(
                        item.method,
                        item.url,
                        headers=item.headers,
                        data=item.body,
                        timeout=timeout,
                    ) as resp:
                        ok = resp.status < 400
                except (aiohttp.ClientError, TimeoutError) as exc:
                    _logger.debug("Queued %s %s failed: %s", item.method, item.url, exc)
                    ok = False
                if not ok:
                    remaining.append(item)

            await asyncio.to_thread(self._write, remaining)

        result = FlushResult(sent=len(queue) - len(remaining), failed=len(remaining))
        _logger.debug("Flushed network queue: sent=%d failed=%d", result.sent, result.failed)
        return result
