"""Remote snapshot backend.

One table keyed by account id, holding an opaque JSON payload and an
``updated_at`` timestamp. :class:`SupabaseBackend` talks to a Supabase
project (GoTrue auth + PostgREST) over aiohttp.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Protocol

import aiohttp

from autochecks._constants import SESSION_EXPIRED_MARKERS, USER_AGENT
from autochecks._redact import redact_for_log
from autochecks.config import SyncConfig
from autochecks.exceptions import (
    AuthError,
    MalformedDataError,
    NetworkError,
    RemoteError,
    SessionExpiredError,
)
from autochecks.models._base import parse_timestamp, utcnow
from autochecks.models.snapshot import CloudSnapshotRow
from autochecks.session import AuthSession
from autochecks.sync.codec import decode_row

_logger = logging.getLogger(__name__)


class RemoteBackend(Protocol):
    """Structural interface the orchestrator needs from a backend.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (:class:`SupabaseBackend`) concrete.
    """

    async def current_account_id(self) -> str: ...

    async def fetch_snapshot(self, account_id: str) -> CloudSnapshotRow | None: ...

    async def upsert_snapshot(self, account_id: str, payload: Mapping[str, Any]) -> datetime: ...


def _error_message(body: Any, fallback: str) -> str:
    if isinstance(body, Mapping):
        for key in ("message", "msg", "error_description", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    if isinstance(body, str) and body:
        return body[:200]
    return fallback


def is_session_expired_message(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in SESSION_EXPIRED_MARKERS)


class SupabaseBackend:
    """Snapshot table and auth endpoints of a Supabase project."""

    def __init__(
        self,
        config: SyncConfig,
        http_session: aiohttp.ClientSession,
        *,
        session: AuthSession | None = None,
    ) -> None:
        config.require_remote()
        self._config = config
        self._http = http_session
        self._session = session

    # ------------------------------------------------------------------
    # Session handling
    # ------------------------------------------------------------------

    @property
    def session(self) -> AuthSession | None:
        return self._session

    def set_session(self, session: AuthSession | None) -> None:
        self._session = session

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        """Exchange credentials for an access token."""
        body = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json_body={"email": email, "password": password},
            authenticated=False,
        )
        if not isinstance(body, Mapping):
            raise AuthError("Sign-in response is not an object")
        session = AuthSession.from_token_response(dict(body))
        if not session.access_token or not session.user_id:
            raise AuthError("Sign-in response is missing the access token or user id")
        self._session = session
        _logger.debug("Signed in as user_id=%s", session.user_id)
        return session

    async def sign_out(self) -> None:
        """Revoke the server session (best effort) and forget it locally."""
        session = self._session
        self._session = None
        if session is None:
            return
        try:
            await self._request("POST", "/auth/v1/logout", token=session.access_token)
        except (NetworkError, RemoteError, AuthError):
            _logger.debug("Remote sign-out failed; local session already cleared", exc_info=True)

    async def current_account_id(self) -> str:
        """Ask the auth server who the current token belongs to."""
        if self._session is None:
            raise AuthError("No authenticated user session found.")
        body = await self._request("GET", "/auth/v1/user")
        user_id = body.get("id") if isinstance(body, Mapping) else None
        if not isinstance(user_id, str) or not user_id:
            raise AuthError("No authenticated user session found.")
        return user_id

    # ------------------------------------------------------------------
    # Snapshot table
    # ------------------------------------------------------------------

    @property
    def _table_path(self) -> str:
        return f"/rest/v1/{self._config.snapshot_table}"

    async def fetch_snapshot(self, account_id: str) -> CloudSnapshotRow | None:
        body = await self._request(
            "GET",
            self._table_path,
            params={"user_id": f"eq.{account_id}", "select": "user_id,payload,updated_at"},
        )
        if body is None or body == []:
            return None
        if not isinstance(body, list) or not isinstance(body[0], Mapping):
            raise MalformedDataError(f"Unexpected snapshot query response: {type(body).__name__}")
        return decode_row(body[0])

    async def upsert_snapshot(self, account_id: str, payload: Mapping[str, Any]) -> datetime:
        """Insert or overwrite the account's row; returns the stored ``updated_at``."""
        sent_at = utcnow()
        body = await self._request(
            "POST",
            self._table_path,
            params={"on_conflict": "user_id"},
            json_body=[{"user_id": account_id, "payload": dict(payload), "updated_at": sent_at.isoformat()}],
            extra_headers={"Prefer": "resolution=merge-duplicates,return=representation"},
        )
        if isinstance(body, list) and body and isinstance(body[0], Mapping):
            stored = parse_timestamp(body[0].get("updated_at"))
            if stored is not None:
                return stored
        return sent_at

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _headers(self, token: str | None, extra: Mapping[str, str] | None) -> dict[str, str]:
        headers = {
            "apikey": self._config.supabase_anon_key,
            "authorization": f"Bearer {token or self._config.supabase_anon_key}",
            "content-type": "application/json",
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }
        if extra:
            headers.update(extra)
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json_body: Any = None,
        extra_headers: Mapping[str, str] | None = None,
        authenticated: bool = True,
        token: str | None = None,
    ) -> Any:
        if token is None and authenticated:
            if self._session is None:
                raise AuthError("No authenticated user session found.")
            token = self._session.access_token

        url = f"{self._config.supabase_url}{path}"
        headers = self._headers(token, extra_headers)
        _logger.debug("%s %s params=%s body=%s", method, url, params, redact_for_log(json_body))

        timeout = aiohttp.ClientTimeout(total=self._config.request_timeout)
        try:
            async with self._http.request(
                method,
                url,
                params=params,
                data=None if json_body is None else json.dumps(json_body, separators=(",", ":")),
                headers=headers,
                timeout=timeout,
            ) as resp:
                status = resp.status
                text = await resp.text()
        except aiohttp.ClientError as exc:
            raise NetworkError(f"Request to {path} failed: {exc}", endpoint=path) from exc
        except TimeoutError as exc:
            raise NetworkError(f"Request to {path} timed out", endpoint=path) from exc

        body: Any = None
        if text.strip():
            try:
                body = json.loads(text)
            except json.JSONDecodeError as exc:
                if status < 400:
                    raise RemoteError(
                        f"Invalid JSON from {path}: {text[:200]}",
                        endpoint=path,
                        status_code=status,
                    ) from exc
                body = text

        if status < 400:
            return body

        message = _error_message(body, f"HTTP {status}")
        code = str(body.get("code", "")) if isinstance(body, Mapping) else ""
        if status in (401, 403) or is_session_expired_message(message):
            if is_session_expired_message(message):
                self._session = None
                raise SessionExpiredError("Session expired. Please sign in again.")
            raise AuthError(message)
        if status == 400 and path.startswith("/auth/"):
            raise AuthError(message)
        raise RemoteError(message, endpoint=path, status_code=status, code=code)
